"""Enumerate the files eligible for scanning under the configured roots."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .hashing import hash_bytes
from .result import SCAN_FILE_TOO_LARGE, Finding, scan_error
from .severity import Severity

logger = logging.getLogger(__name__)

GLOB_CHARS = frozenset("*?[")


@dataclass(frozen=True)
class FileRecord:
    """A file selected for scanning; the hash is filled in once, when read."""

    path: str
    size: int
    content_hash: Optional[str] = None

    def hashed(self, data: bytes) -> "FileRecord":
        if self.content_hash is not None:
            return self
        return replace(self, content_hash=hash_bytes(data), size=len(data))


@dataclass
class Discovery:
    files: List[FileRecord] = field(default_factory=list)
    notices: List[Finding] = field(default_factory=list)


def is_excluded(relative_path: str, patterns: Iterable[str]) -> bool:
    """Return True when ``relative_path`` (posix, root-relative) matches an exclude.

    Entries with glob characters match the whole path or the base name; plain
    entries match a path prefix or any single path component.
    """

    parts = relative_path.split("/")
    name = parts[-1]
    for pattern in patterns:
        pattern = pattern.strip().rstrip("/")
        if pattern.startswith("./"):
            pattern = pattern[2:]
        if not pattern:
            continue
        if GLOB_CHARS.intersection(pattern):
            if fnmatchcase(relative_path, pattern) or fnmatchcase(name, pattern):
                return True
        elif relative_path == pattern or relative_path.startswith(pattern + "/") or pattern in parts:
            return True
    return False


def oversized_notice(path: str, size: int, limit: int) -> Finding:
    return Finding(
        file_path=path,
        line=0,
        column=0,
        severity=Severity.INFO,
        rule_id=SCAN_FILE_TOO_LARGE,
        message=f"File skipped: {size} bytes exceeds the {limit} byte limit",
    )


def discover_files(
    roots: Sequence[str],
    exclude: Sequence[str] = (),
    max_depth: int = 10,
    max_file_size: int = 10 * 1024 * 1024,
    include_extensions: Sequence[str] = (".yml", ".yaml"),
) -> Discovery:
    """Walk ``roots`` and return eligible files sorted by path.

    A root that names a file is always eligible regardless of its extension.
    Oversized files and unreadable directories become findings instead of
    stopping the walk.
    """

    discovery = Discovery()
    seen: Dict[str, FileRecord] = {}
    extensions = tuple(extension.lower() for extension in include_extensions)

    def add(path: Path) -> None:
        display = path.as_posix()
        try:
            size = path.stat().st_size
        except OSError as exc:
            discovery.notices.append(scan_error(display, f"Cannot stat file: {exc.strerror or exc}"))
            return
        if size > max_file_size:
            logger.info("Skipping %s: %d bytes exceeds limit of %d", display, size, max_file_size)
            discovery.notices.append(oversized_notice(display, size, max_file_size))
            return
        key = os.path.realpath(path)
        if key not in seen:
            seen[key] = FileRecord(path=display, size=size)

    for root in roots:
        root_path = Path(root)
        if root_path.is_file():
            add(root_path)
            continue
        if not root_path.is_dir():
            discovery.notices.append(scan_error(root_path.as_posix(), "Path does not exist or is not accessible"))
            continue

        def on_error(exc: OSError) -> None:
            location = Path(exc.filename).as_posix() if exc.filename else root_path.as_posix()
            logger.warning("Cannot read directory %s: %s", location, exc)
            discovery.notices.append(scan_error(location, f"Cannot read directory: {exc.strerror or exc}"))

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=on_error):
            relative_dir = Path(dirpath).relative_to(root_path).as_posix()
            depth = 0 if relative_dir == "." else relative_dir.count("/") + 1
            kept = []
            for dirname in sorted(dirnames):
                relative = dirname if depth == 0 else f"{relative_dir}/{dirname}"
                if is_excluded(relative, exclude):
                    logger.info("Excluded directory %s", relative)
                    continue
                if depth + 1 < max_depth:
                    kept.append(dirname)
            dirnames[:] = kept
            if depth + 1 > max_depth:
                continue
            for filename in sorted(filenames):
                relative = filename if depth == 0 else f"{relative_dir}/{filename}"
                if not filename.lower().endswith(extensions):
                    continue
                if is_excluded(relative, exclude):
                    logger.info("Excluded file %s", relative)
                    continue
                add(Path(dirpath, filename))

    discovery.files = sorted(seen.values(), key=lambda record: record.path)
    return discovery
