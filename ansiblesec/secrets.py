"""Detect hardcoded secrets line by line with regex patterns and entropy."""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple, Union

from .result import Finding
from .rules import SecretPattern
from .severity import Severity

logger = logging.getLogger(__name__)

HIGH_ENTROPY_RULE_ID = "SECRET_HIGH_ENTROPY"
SKIPPED_LINE_RULE_ID = "SECRET_SKIPPED_LINE"

TOKEN_RUN = re.compile(r"[A-Za-z0-9+/=_\-]+")
QUOTED_VALUE = re.compile(r"""(["'])([^"'\s]+)\1""")

MASK = "*" * 8
FULL_MASK_LENGTH = 8
LONG_VALUE_LENGTH = 20

Span = Tuple[int, int]


def shannon_entropy(value: str) -> float:
    """Return the Shannon entropy of ``value`` in bits per character."""

    if not value:
        return 0.0
    length = len(value)
    return -sum((count / length) * math.log2(count / length) for count in Counter(value).values())


def entropy_estimate(value: str) -> float:
    """Return the Shannon entropy with the Miller-Madow small-sample correction.

    The plug-in estimate cannot exceed ``log2(len(value))``, which would hide
    short random tokens; the correction adds ``(k - 1) / (2 n ln 2)`` bits for
    ``k`` distinct characters. A single repeated character stays at zero.
    """

    if not value:
        return 0.0
    distinct = len(set(value))
    return shannon_entropy(value) + (distinct - 1) / (2 * len(value) * math.log(2))


def redact(value: str) -> str:
    """Mask ``value`` so that only a few leading and trailing characters remain."""

    if len(value) <= FULL_MASK_LENGTH:
        return MASK
    keep = 4 if len(value) >= LONG_VALUE_LENGTH else 2
    return f"{value[:keep]}{MASK}{value[-keep:]}"


def looks_random(candidate: str) -> bool:
    """Cheap filter against prose: require a digit or mixed-case letters."""

    if any(char.isdigit() for char in candidate):
        return True
    return any(char.isupper() for char in candidate) and any(char.islower() for char in candidate)


def split_lines(data: bytes) -> Iterator[Tuple[int, Union[str, UnicodeDecodeError]]]:
    """Yield ``(line_number, text)`` per line, or the decode error for that line."""

    lines = data.split(b"\n")
    if lines and lines[-1] == b"":
        lines.pop()
    for index, raw in enumerate(lines, start=1):
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        try:
            yield index, raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            yield index, exc


class SecretsDetector:
    """Scan text for secrets using the enabled patterns and an entropy check."""

    def __init__(
        self,
        patterns: Iterable[SecretPattern],
        entropy_threshold: float = 4.5,
        min_entropy_length: int = 20,
        entropy_severity: Severity = Severity.MEDIUM,
        entropy_enabled: bool = True,
        dedupe_overlapping_patterns: bool = False,
    ) -> None:
        self._patterns: List[SecretPattern] = [pattern for pattern in patterns if pattern.enabled]
        self.entropy_threshold = entropy_threshold
        self.min_entropy_length = min_entropy_length
        self.entropy_severity = entropy_severity
        self.entropy_enabled = entropy_enabled
        self.dedupe_overlapping_patterns = dedupe_overlapping_patterns

    @property
    def patterns(self) -> Sequence[SecretPattern]:
        return tuple(self._patterns)

    def scan_bytes(self, file_path: str, data: bytes) -> List[Finding]:
        findings: List[Finding] = []
        for line_number, line in split_lines(data):
            if isinstance(line, UnicodeDecodeError):
                logger.debug("Skipping undecodable line %s:%d: %s", file_path, line_number, line)
                findings.append(
                    Finding(
                        file_path=file_path,
                        line=line_number,
                        column=line.start + 1,
                        severity=Severity.INFO,
                        rule_id=SKIPPED_LINE_RULE_ID,
                        message="Line skipped: not valid UTF-8",
                    )
                )
                continue
            findings.extend(self.scan_line(file_path, line_number, line))
        return findings

    def scan_text(self, file_path: str, text: str) -> List[Finding]:
        return self.scan_bytes(file_path, text.encode("utf-8"))

    def scan_line(self, file_path: str, line_number: int, line: str) -> List[Finding]:
        matches = self._regex_matches(line)
        findings = [
            Finding(
                file_path=file_path,
                line=line_number,
                column=start + 1,
                severity=pattern.severity,
                rule_id=pattern.id,
                message=pattern.message,
                redacted_context=redact(line[start:end]),
            )
            for start, end, pattern in matches
        ]
        if self.entropy_enabled:
            regex_spans = [(start, end) for start, end, _ in matches]
            for start, end, entropy in self._entropy_hits(line, regex_spans):
                findings.append(
                    Finding(
                        file_path=file_path,
                        line=line_number,
                        column=start + 1,
                        severity=self.entropy_severity,
                        rule_id=HIGH_ENTROPY_RULE_ID,
                        message=f"High entropy string detected (entropy: {entropy:.2f})",
                        redacted_context=redact(line[start:end]),
                    )
                )
        return findings

    # ------------------------------------------------------------------
    # Regex stage
    # ------------------------------------------------------------------
    def _regex_matches(self, line: str) -> List[Tuple[int, int, SecretPattern]]:
        matches: List[Tuple[int, int, SecretPattern]] = []
        for pattern in self._patterns:
            for match in pattern.regex.finditer(line):
                if match.end() > match.start():
                    matches.append((match.start(), match.end(), pattern))
        if self.dedupe_overlapping_patterns:
            matches = self._dedupe(matches)
        return matches

    @staticmethod
    def _dedupe(matches: List[Tuple[int, int, SecretPattern]]) -> List[Tuple[int, int, SecretPattern]]:
        best: Dict[Span, Tuple[int, int, SecretPattern]] = {}
        for match in matches:
            start, end, pattern = match
            current = best.get((start, end))
            if current is None or (pattern.severity.rank, pattern.id) < (current[2].severity.rank, current[2].id):
                best[(start, end)] = match
        return [match for match in matches if best[(match[0], match[1])] is match]

    # ------------------------------------------------------------------
    # Entropy stage
    # ------------------------------------------------------------------
    def _candidate_spans(self, line: str) -> List[Span]:
        spans = {match.span() for match in TOKEN_RUN.finditer(line)}
        spans.update(match.span(2) for match in QUOTED_VALUE.finditer(line))
        return sorted(
            (span for span in spans if span[1] - span[0] >= self.min_entropy_length),
            key=lambda span: (span[0], span[0] - span[1]),
        )

    def _entropy_hits(self, line: str, regex_spans: List[Span]) -> List[Tuple[int, int, float]]:
        hits: List[Tuple[int, int, float]] = []
        for start, end in self._candidate_spans(line):
            if any(start < other_end and other_start < end for other_start, other_end in regex_spans):
                continue
            if any(hit_start <= start and end <= hit_end for hit_start, hit_end, _ in hits):
                continue
            candidate = line[start:end]
            if not looks_random(candidate):
                continue
            entropy = entropy_estimate(candidate)
            if entropy >= self.entropy_threshold:
                hits.append((start, end, entropy))
        return hits
