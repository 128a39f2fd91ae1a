"""Content-addressed cache of per-file findings.

An entry is valid for a path only while the file's content hash matches the
stored hash. Any cache failure degrades to a miss, which forces a rescan.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .result import Finding

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1
CACHE_FILENAME = "scan-cache.json"


@dataclass(frozen=True)
class CacheEntry:
    path: str
    content_hash: str
    findings: Tuple[Finding, ...]
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "timestamp": self.timestamp,
            "findings": [finding.to_dict() for finding in self.findings],
        }

    @classmethod
    def from_dict(cls, path: str, data: Mapping[str, Any]) -> "CacheEntry":
        content_hash = data["content_hash"]
        if not isinstance(content_hash, str) or not content_hash:
            raise ValueError("content_hash must be a non-empty string")
        return cls(
            path=path,
            content_hash=content_hash,
            findings=tuple(Finding.from_dict(item) for item in data["findings"]),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    stores: int = 0


class ScanCache:
    """In-memory cache; the lock is held only for the duration of a get or put."""

    def __init__(self, fingerprint: str = "") -> None:
        self.fingerprint = fingerprint
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def lookup(self, path: str, content_hash: str) -> Optional[Tuple[Finding, ...]]:
        """Return the stored findings only when the stored hash matches exactly."""

        with self._lock:
            entry = self._entries.get(path)
            if entry is None or entry.content_hash != content_hash:
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return entry.findings

    def store(self, path: str, content_hash: str, findings: Iterable[Finding]) -> None:
        """Replace any previous entry for ``path``."""

        entry = CacheEntry(path=path, content_hash=content_hash, findings=tuple(findings), timestamp=time.time())
        with self._lock:
            self._entries[path] = entry
            self.stats.stores += 1

    def retain(self, paths: Iterable[str]) -> int:
        """Drop entries for paths outside ``paths``; return how many were dropped."""

        keep = set(paths)
        with self._lock:
            stale = [path for path in self._entries if path not in keep]
            for path in stale:
                del self._entries[path]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def load(self) -> None:
        """Nothing to load for a memory-only cache."""

    def persist(self) -> None:
        """Nothing to persist for a memory-only cache."""

    def _snapshot(self) -> Dict[str, CacheEntry]:
        with self._lock:
            return dict(self._entries)

    def _replace(self, entries: Dict[str, CacheEntry]) -> None:
        with self._lock:
            self._entries = entries


class FileScanCache(ScanCache):
    """Cache persisted as one JSON document inside ``cache_dir``.

    A store written under a different rule-set fingerprint or format version
    loads as empty. Malformed records are dropped individually.
    """

    def __init__(self, cache_dir: Union[str, Path], fingerprint: str = "") -> None:
        super().__init__(fingerprint=fingerprint)
        self.cache_dir = Path(cache_dir)
        self.cache_file = self.cache_dir / CACHE_FILENAME

    def load(self) -> None:
        entries: Dict[str, CacheEntry] = {}
        try:
            payload = json.loads(self.cache_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug("No cache at %s; starting empty", self.cache_file)
            self._replace(entries)
            return
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache %s: %s", self.cache_file, exc)
            self._replace(entries)
            return

        if not isinstance(payload, dict) or payload.get("version") != CACHE_FORMAT_VERSION:
            logger.warning("Ignoring cache %s with unsupported format", self.cache_file)
            self._replace(entries)
            return
        if payload.get("fingerprint") != self.fingerprint:
            logger.info("Rule set changed since %s was written; starting with an empty cache", self.cache_file)
            self._replace(entries)
            return

        records = payload.get("entries")
        if not isinstance(records, dict):
            logger.warning("Ignoring cache %s without an entries table", self.cache_file)
            self._replace(entries)
            return
        dropped = 0
        for path, record in records.items():
            try:
                entries[path] = CacheEntry.from_dict(path, record)
            except (AttributeError, KeyError, TypeError, ValueError):
                dropped += 1
        if dropped:
            logger.warning("Dropped %d malformed cache records from %s", dropped, self.cache_file)
        logger.debug("Loaded %d cache entries from %s", len(entries), self.cache_file)
        self._replace(entries)

    def persist(self) -> None:
        payload = {
            "version": CACHE_FORMAT_VERSION,
            "fingerprint": self.fingerprint,
            "entries": {path: entry.to_dict() for path, entry in sorted(self._snapshot().items())},
        }
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            handle, temp_name = tempfile.mkstemp(prefix=".scan-cache-", suffix=".tmp", dir=self.cache_dir)
            try:
                with os.fdopen(handle, "w", encoding="utf-8") as stream:
                    json.dump(payload, stream)
                os.replace(temp_name, self.cache_file)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(temp_name)
                raise
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Could not persist cache to %s: %s", self.cache_file, exc)

    def clear(self) -> None:
        super().clear()
        try:
            self.cache_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove cache %s: %s", self.cache_file, exc)

