"""Render a :class:`ScanResult` as text, JSON, or SARIF."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

from . import __version__
from .result import ScanResult, format_summary_table
from .severity import Severity

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.ERROR: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
    Severity.INFO: "note",
}


def render_text(result: ScanResult) -> str:
    return format_summary_table(result)


def render_json(result: ScanResult) -> str:
    return json.dumps(result.to_dict(), indent=2)


def render_sarif(result: ScanResult) -> str:
    """Minimal SARIF 2.1.0 log with one run and one result per finding."""

    rules: Dict[str, Dict[str, Any]] = {}
    results: List[Dict[str, Any]] = []
    for finding in result.findings:
        rules.setdefault(
            finding.rule_id,
            {
                "id": finding.rule_id,
                "name": finding.rule_id,
                "shortDescription": {"text": finding.rule_id},
                "properties": {"severity": finding.severity.value},
            },
        )
        message = finding.message
        if finding.redacted_context:
            message = f"{message} ({finding.redacted_context})"
        results.append(
            {
                "ruleId": finding.rule_id,
                "level": SARIF_LEVELS[finding.severity],
                "message": {"text": message},
                "locations": [
                    {
                        "physicalLocation": {
                            "artifactLocation": {"uri": finding.file_path.replace("\\", "/")},
                            # SARIF regions are 1-based; file-level findings point at the start
                            "region": {"startLine": finding.line or 1, "startColumn": finding.column or 1},
                        }
                    }
                ],
            }
        )

    sarif = {
        "version": "2.1.0",
        "$schema": SARIF_SCHEMA,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "ansiblesec",
                        "version": __version__,
                        "rules": [rules[rule_id] for rule_id in sorted(rules)],
                    }
                },
                "results": results,
            }
        ],
    }
    return json.dumps(sarif, indent=2)


RENDERERS: Dict[str, Callable[[ScanResult], str]] = {
    "text": render_text,
    "json": render_json,
    "sarif": render_sarif,
}
