"""Core result data structures for the scanner."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .severity import SEVERITY_ORDER, Severity

SCAN_READ_ERROR = "SCAN_READ_ERROR"
SCAN_FILE_TOO_LARGE = "SCAN_FILE_TOO_LARGE"


@dataclass(frozen=True)
class Finding:
    """Capture a single issue reported at a file location."""

    file_path: str
    line: int
    column: int
    severity: Severity
    rule_id: str
    message: str
    redacted_context: Optional[str] = None

    @property
    def sort_key(self) -> Tuple[str, int, int, str, str]:
        return (self.file_path, self.line, self.column, self.rule_id, self.message)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Finding":
        context = data.get("redacted_context")
        return cls(
            file_path=str(data["file_path"]),
            line=int(data["line"]),
            column=int(data["column"]),
            severity=Severity.parse(data["severity"]),
            rule_id=str(data["rule_id"]),
            message=str(data["message"]),
            redacted_context=None if context is None else str(context),
        )


def scan_error(file_path: str, message: str) -> Finding:
    """Build the file-level finding recorded when a file cannot be scanned."""

    return Finding(
        file_path=file_path,
        line=0,
        column=0,
        severity=Severity.ERROR,
        rule_id=SCAN_READ_ERROR,
        message=message,
    )


@dataclass
class Summary:
    """Aggregate finding counts by severity."""

    critical: int = 0
    error: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0

    def increment(self, severity: Severity) -> None:
        attr = severity.value.lower()
        setattr(self, attr, getattr(self, attr) + 1)

    def count(self, severity: Severity) -> int:
        return getattr(self, severity.value.lower())

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    def as_rows(self) -> List[Tuple[str, int]]:
        """Return severity/count pairs ordered for reporting."""

        return [(severity.value, self.count(severity)) for severity in SEVERITY_ORDER]

    @property
    def total(self) -> int:
        return sum(self.count(severity) for severity in SEVERITY_ORDER)

    @classmethod
    def tally(cls, findings: Iterable[Finding]) -> "Summary":
        summary = cls()
        for finding in findings:
            summary.increment(finding.severity)
        return summary


@dataclass
class ScanResult:
    """Bundle the scanned file count, ordered findings, and summary."""

    files_scanned: int = 0
    findings: List[Finding] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)
    files_cached: int = 0

    @property
    def has_critical(self) -> bool:
        return self.summary.critical > 0

    @property
    def has_high(self) -> bool:
        return self.summary.high > 0

    @property
    def has_scan_errors(self) -> bool:
        return self.summary.error > 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "files_scanned": self.files_scanned,
            "files_cached": self.files_cached,
            "summary": self.summary.to_dict(),
            "findings": [finding.to_dict() for finding in self.findings],
        }

    def exit_code(self) -> int:
        if self.has_critical:
            return 2
        if self.has_high:
            return 1
        return 0

    def top_findings(self, limit: int = 5) -> List[Finding]:
        """Return findings ordered by severity ranking."""

        ordered = sorted(
            self.findings,
            key=lambda finding: (finding.severity.rank, finding.sort_key),
        )
        return ordered[:limit]


def format_summary_table(result: ScanResult, max_findings: int = 5) -> str:
    """Create a human-readable summary table for console output."""

    lines: List[str] = []
    lines.append("Scan Summary")
    lines.append("=" * 40)
    lines.append(f"Files     : {result.files_scanned} ({result.files_cached} from cache)")
    header = f"{'Severity':<10} | {'Count':>5}"
    lines.append(header)
    lines.append("-" * len(header))
    for severity, count in result.summary.as_rows():
        lines.append(f"{severity:<10} | {count:>5}")
    lines.append("-" * len(header))
    lines.append(f"Findings  : {result.summary.total}")

    findings = result.top_findings(max_findings)
    if findings:
        lines.append("")
        lines.append("Top Findings")
        lines.append("-" * 40)
        for finding in findings:
            lines.append(f"[{finding.severity.value}] {finding.rule_id} {finding.message}")
            lines.append(f"  Location: {finding.file_path}:{finding.line}:{finding.column}")
            if finding.redacted_context:
                lines.append(f"  Match   : {finding.redacted_context}")
    return "\n".join(lines)
