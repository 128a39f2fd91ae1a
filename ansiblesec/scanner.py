"""Drive discovery, caching, detection, and aggregation across a worker pool."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import List, Optional, Set

from .aggregate import Aggregator, FileOutcome
from .cache import FileScanCache, ScanCache
from .config import ScanConfig
from .policy import PolicyEngine
from .result import Finding, ScanResult, scan_error
from .secrets import SecretsDetector
from .severity import Severity
from .utils.fileio import read_bounded
from .walker import FileRecord, discover_files, oversized_notice

logger = logging.getLogger(__name__)

SCAN_INTERNAL_ERROR = "SCAN_INTERNAL_ERROR"


class Scanner:
    """Scan every eligible file once, reusing cached findings for unchanged content.

    Workers own one file at a time from read to outcome; the cache and the
    aggregator are the only shared state.
    """

    def __init__(
        self,
        config: ScanConfig,
        cache: Optional[ScanCache] = None,
        detector: Optional[SecretsDetector] = None,
        policy_engine: Optional[PolicyEngine] = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.detector = detector or SecretsDetector(
            config.secret_patterns,
            entropy_threshold=config.entropy_threshold,
            min_entropy_length=config.min_entropy_length,
            entropy_severity=config.entropy_severity,
            entropy_enabled=config.entropy_enabled,
            dedupe_overlapping_patterns=config.dedupe_overlapping_patterns,
        )
        self.policy_engine = policy_engine or PolicyEngine(config.policy_rules)

    @classmethod
    def from_config(cls, config: ScanConfig) -> "Scanner":
        """Build a scanner with the persistent cache the configuration asks for."""

        cache: Optional[ScanCache] = None
        if config.cache_enabled:
            cache = FileScanCache(config.cache_dir, fingerprint=config.fingerprint())
            cache.load()
        return cls(config, cache=cache)

    def scan(self, cancel_event: Optional[threading.Event] = None) -> ScanResult:
        """Scan all eligible files and return the aggregated result.

        Setting ``cancel_event`` stops dispatching new files; files already
        handed to a worker finish and are reported in full.
        """

        config = self.config
        discovery = discover_files(
            config.roots,
            exclude=config.exclude,
            max_depth=config.max_depth,
            max_file_size=config.max_file_size,
            include_extensions=config.include_extensions,
        )
        workers = config.worker_count
        logger.info("Scanning %d files with %d workers", len(discovery.files), workers)

        aggregator = Aggregator()
        aggregator.add_notices(discovery.notices)
        window = workers * 2
        pending: Set[Future] = set()
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ansiblesec") as executor:
            for dispatched, record in enumerate(discovery.files):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("Scan cancelled; %d files were not dispatched", len(discovery.files) - dispatched)
                    break
                pending.add(executor.submit(self.scan_file, record))
                if len(pending) >= window:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    _collect(done, aggregator)
            done, _ = wait(pending)
            _collect(done, aggregator)

        if self.cache is not None:
            dropped = self.cache.retain(record.path for record in discovery.files)
            if dropped:
                logger.debug("Dropped %d cache entries for files no longer present", dropped)
            self.cache.persist()
        result = aggregator.result()
        logger.info(
            "Scanned %d files (%d from cache), %d findings",
            result.files_scanned,
            result.files_cached,
            len(result.findings),
        )
        return result

    def scan_file(self, record: FileRecord) -> FileOutcome:
        """Process one file from read to outcome."""

        limit = self.config.max_file_size
        try:
            data = read_bounded(record.path, limit)
        except OSError as exc:
            logger.warning("Cannot read %s: %s", record.path, exc)
            return FileOutcome(record.path, (scan_error(record.path, f"Cannot read file: {exc.strerror or exc}"),))
        if len(data) > limit:
            return FileOutcome(record.path, (oversized_notice(record.path, len(data), limit),), scanned=False)

        record = record.hashed(data)
        if self.cache is not None:
            cached = self.cache.lookup(record.path, record.content_hash)
            if cached is not None:
                logger.debug("Cache hit for %s", record.path)
                return FileOutcome(record.path, cached, cached=True)

        try:
            findings = self.detect(record.path, data)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected error while scanning %s", record.path)
            return FileOutcome(
                record.path,
                (
                    Finding(
                        file_path=record.path,
                        line=0,
                        column=0,
                        severity=Severity.ERROR,
                        rule_id=SCAN_INTERNAL_ERROR,
                        message=f"Scan failed: {exc}",
                    ),
                ),
            )

        if self.cache is not None:
            self.cache.store(record.path, record.content_hash, findings)
        return FileOutcome(record.path, tuple(findings))

    def detect(self, file_path: str, data: bytes) -> List[Finding]:
        """Run the secrets detector and the policy engine over one file's bytes."""

        findings: List[Finding] = []
        if self.config.secrets_enabled:
            findings.extend(self.detector.scan_bytes(file_path, data))
        if self.config.policies_enabled:
            text = data.decode("utf-8", errors="replace")
            findings.extend(self.policy_engine.evaluate_text(file_path, text))
        return findings


def _collect(done: Set[Future], aggregator: Aggregator) -> None:
    for future in done:
        aggregator.add(future.result())
