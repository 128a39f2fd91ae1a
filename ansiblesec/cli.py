"""Command-line entry point for the ansiblesec scanner."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import __version__
from .config import ScanConfig, load_config
from .errors import ConfigError
from .reporting import RENDERERS
from .result import ScanResult, format_summary_table
from .rules import PolicyRule, SecretPattern
from .rules.defaults import default_policy_rules, default_secret_patterns
from .rules.loader import detect_rule_kind, load_rule_entries, parse_policy_rules, parse_secret_patterns
from .scanner import Scanner

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ansiblesec",
        description="Secrets and policy scanner for Ansible playbooks and YAML infrastructure code",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase log output on stderr (-v info, -vv debug).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Scan files and directories.")
    scan.add_argument("paths", nargs="+", help="Files or directories to scan.")
    scan.add_argument("--config", "-c", default=None, help="Configuration file (defaults to .ansiblesec.yml if present).")
    scan.add_argument("--secrets-rules", default=None, help="YAML file with secret detection rules.")
    scan.add_argument("--policy-rules", default=None, help="YAML file with policy rules.")
    scan.add_argument(
        "--format",
        "-f",
        choices=sorted(RENDERERS),
        default="text",
        help="Report format (defaults to text).",
    )
    scan.add_argument(
        "--out",
        "--output",
        "-o",
        dest="output_path",
        default=None,
        help="Path to write the report to instead of stdout.",
    )
    scan.add_argument("--no-cache", action="store_true", help="Disable the findings cache for this run.")
    scan.add_argument("--cache-dir", default=None, help="Directory holding the findings cache.")
    scan.add_argument("--threads", "-t", type=int, default=None, help="Worker threads (0 means one per CPU).")
    scan.add_argument(
        "--ci-mode",
        "--fail-on-findings",
        dest="fail_on_findings",
        action="store_true",
        help="Exit 2 on critical findings and 1 on high findings.",
    )
    scan.add_argument("--verbose", "-v", action="count", default=argparse.SUPPRESS, help=argparse.SUPPRESS)

    rules = commands.add_parser("rules", help="Inspect rule files.")
    rule_commands = rules.add_subparsers(dest="rules_command", required=True)
    validate = rule_commands.add_parser("validate", help="Validate a secrets or policy rule file.")
    validate.add_argument("file", help="Rule file to validate.")
    listing = rule_commands.add_parser("list", help="List rules from a file, or the built-in defaults.")
    listing.add_argument("file", nargs="?", default=None, help="Rule file to list.")
    return parser


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def build_config(args: argparse.Namespace) -> ScanConfig:
    return load_config(
        args.config,
        secrets_rules=args.secrets_rules,
        policy_rules=args.policy_rules,
        roots=tuple(args.paths),
        threads=args.threads,
        cache_dir=args.cache_dir,
        cache_enabled=False if args.no_cache else None,
    )


def run_scan(config: ScanConfig) -> ScanResult:
    logger.debug(
        "Scanning %s with %d secret patterns and %d policy rules",
        ", ".join(config.roots),
        len(config.secret_patterns),
        len(config.policy_rules),
    )
    return Scanner.from_config(config).scan()


def write_output(result: ScanResult, output_path: Optional[str], report_format: str) -> None:
    payload = RENDERERS[report_format](result)
    if output_path:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(payload + "\n", encoding="utf-8")
        if report_format != "text":
            print(format_summary_table(result))
        print(f"\nReport written to {output_path}")
    else:
        print(payload)


# ----------------------------------------------------------------------
# Rule file commands
# ----------------------------------------------------------------------
def validate_rules(path: str) -> int:
    entries = load_rule_entries(path)
    kind = detect_rule_kind(entries)
    if kind == "secrets":
        count = len(parse_secret_patterns(entries))
    else:
        count = len(parse_policy_rules(entries))
    print(f"{path}: {count} {kind} rules OK")
    return 0


def list_rules(path: Optional[str]) -> int:
    patterns: Sequence[SecretPattern] = ()
    policies: Sequence[PolicyRule] = ()
    if path is None:
        patterns = default_secret_patterns()
        policies = default_policy_rules()
    else:
        entries = load_rule_entries(path)
        if detect_rule_kind(entries) == "secrets":
            patterns = parse_secret_patterns(entries)
        else:
            policies = parse_policy_rules(entries)

    lines: List[str] = []
    if patterns:
        lines.append("Secret Rules")
        lines.append("-" * 40)
        for pattern in patterns:
            state = "" if pattern.enabled else " (disabled)"
            lines.append(f"{pattern.id:<28} {pattern.severity.value:<8} {pattern.name}{state}")
    if policies:
        if lines:
            lines.append("")
        lines.append("Policy Rules")
        lines.append("-" * 40)
        for rule in policies:
            state = "" if rule.enabled else " (disabled)"
            lines.append(f"{rule.id:<28} {rule.severity.value:<8} [{rule.type_name}] {rule.name}{state}")
    print("\n".join(lines))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.command == "rules":
            if args.rules_command == "validate":
                return validate_rules(args.file)
            return list_rules(args.file)
        config = build_config(args)
    except ConfigError as exc:
        print(f"ansiblesec: error: {exc}", file=sys.stderr)
        return 2

    result = run_scan(config)
    write_output(result, args.output_path, args.format)
    if args.fail_on_findings:
        return result.exit_code()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
