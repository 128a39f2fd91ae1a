"""Merge per-file outcomes into one deterministic :class:`ScanResult`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .result import Finding, ScanResult, Summary


@dataclass(frozen=True)
class FileOutcome:
    """The complete findings of one file, as produced by a worker."""

    path: str
    findings: Tuple[Finding, ...]
    cached: bool = False
    scanned: bool = True


class Aggregator:
    """Collect outcomes in any order; ordering is applied once, in :meth:`result`."""

    def __init__(self) -> None:
        self._findings: List[Finding] = []
        self._files = 0
        self._cached = 0

    def add(self, outcome: FileOutcome) -> None:
        if outcome.scanned:
            self._files += 1
        if outcome.cached:
            self._cached += 1
        self._findings.extend(outcome.findings)

    def add_notices(self, notices: Iterable[Finding]) -> None:
        """Record findings about files that were not scanned."""

        self._findings.extend(notices)

    def result(self) -> ScanResult:
        findings = sorted(self._findings, key=lambda finding: finding.sort_key)
        return ScanResult(
            files_scanned=self._files,
            findings=findings,
            summary=Summary.tally(findings),
            files_cached=self._cached,
        )
