"""Severity definitions for scanner findings."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Enumerate the supported severity levels for findings."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @classmethod
    def parse(cls, value: object) -> "Severity":
        """Return the severity named by ``value`` (case-insensitive).

        Raises ``ValueError`` for unknown names so rule files cannot silently
        downgrade a finding.
        """

        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            names = ", ".join(member.value for member in cls)
            raise ValueError(f"unknown severity {value!r} (expected one of {names})") from None

    @property
    def rank(self) -> int:
        """Return the reporting rank, 0 being the most severe."""

        return SEVERITY_ORDER.index(self)


SEVERITY_ORDER = (
    Severity.CRITICAL,
    Severity.ERROR,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
)
