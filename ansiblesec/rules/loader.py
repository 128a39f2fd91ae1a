"""Load and validate secret pattern and policy rule files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import yaml

from ansiblesec.errors import RuleValidationError
from ansiblesec.severity import Severity
from ansiblesec.utils.fileio import read_yaml_file
from ansiblesec.utils.permissions import parse_mode

from . import (
    DEFAULT_SENSITIVE_KEYWORDS,
    RULE_TYPES,
    Condition,
    CustomConditions,
    ForbiddenPath,
    ModuleBlacklist,
    NoLogRequired,
    Operator,
    PermissionCheck,
    PolicyRule,
    RequiredPath,
    RuleType,
    Scope,
    SecretPattern,
    VaultRequired,
)

logger = logging.getLogger(__name__)

RESERVED_PREFIXES = ("SCAN_",)
SECRETS = "secrets"
POLICIES = "policies"


# ----------------------------------------------------------------------
# File loading
# ----------------------------------------------------------------------
def load_rule_entries(path: Union[str, Path]) -> List[Mapping[str, Any]]:
    """Return the ``rules`` list of a YAML rule file."""

    try:
        data = read_yaml_file(path)
    except (OSError, yaml.YAMLError) as exc:
        raise RuleValidationError(f"cannot read rules file {path}: {exc}") from exc
    if data is None:
        raise RuleValidationError(f"rules file {path} does not exist or is empty")
    if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
        raise RuleValidationError(f"rules file {path} must contain a top-level 'rules' list")
    return data["rules"]


def detect_rule_kind(entries: Sequence[Mapping[str, Any]]) -> str:
    """Guess whether ``entries`` are secret patterns or policy rules."""

    if entries and all(isinstance(entry, Mapping) and "pattern" in entry for entry in entries):
        return SECRETS
    return POLICIES


def load_secret_patterns(path: Union[str, Path]) -> List[SecretPattern]:
    patterns = parse_secret_patterns(load_rule_entries(path))
    logger.info("Loaded %d secret patterns from %s", len(patterns), path)
    return patterns


def load_policy_rules(path: Union[str, Path]) -> List[PolicyRule]:
    rules = parse_policy_rules(load_rule_entries(path))
    logger.info("Loaded %d policy rules from %s", len(rules), path)
    return rules


# ----------------------------------------------------------------------
# Secret patterns
# ----------------------------------------------------------------------
def parse_secret_patterns(entries: Iterable[Mapping[str, Any]]) -> List[SecretPattern]:
    """Validate every entry and compile its regex; any error rejects the whole set."""

    patterns: List[SecretPattern] = []
    seen: Set[str] = set()
    for entry in entries:
        rule_id, name, severity = _common_fields(entry, seen)
        raw_pattern = entry.get("pattern")
        if not isinstance(raw_pattern, str) or not raw_pattern:
            raise RuleValidationError("missing 'pattern'", rule_id)
        try:
            regex = re.compile(raw_pattern)
        except re.error as exc:
            raise RuleValidationError(f"invalid regex {raw_pattern!r}: {exc}", rule_id) from exc
        patterns.append(
            SecretPattern(
                id=rule_id,
                name=name,
                regex=regex,
                severity=severity,
                description=str(entry.get("description") or ""),
                enabled=_enabled(entry, rule_id),
            )
        )
    return patterns


# ----------------------------------------------------------------------
# Policy rules
# ----------------------------------------------------------------------
def parse_policy_rules(entries: Iterable[Mapping[str, Any]]) -> List[PolicyRule]:
    """Validate every entry and build its typed parameters; any error rejects the whole set."""

    rules: List[PolicyRule] = []
    seen: Set[str] = set()
    for entry in entries:
        rule_id, name, severity = _common_fields(entry, seen)
        type_name = entry.get("type", entry.get("rule_type"))
        if not isinstance(type_name, str):
            raise RuleValidationError("missing 'type'", rule_id)
        normalized = type_name.strip().lower().replace("-", "_")
        builder = _BUILDERS.get(normalized)
        if builder is None:
            known = ", ".join(sorted(RULE_TYPES))
            raise RuleValidationError(f"unknown rule type {type_name!r} (expected one of {known})", rule_id)
        params = entry.get("parameters")
        if params is None:
            params = {key: value for key, value in entry.items() if key not in _COMMON_KEYS}
        if not isinstance(params, Mapping):
            raise RuleValidationError("'parameters' must be a mapping", rule_id)
        rules.append(
            PolicyRule(
                id=rule_id,
                name=name,
                severity=severity,
                rule_type=builder(params, rule_id),
                description=str(entry.get("description") or ""),
                enabled=_enabled(entry, rule_id),
            )
        )
    return rules


def _build_module_blacklist(params: Mapping[str, Any], rule_id: str) -> RuleType:
    return ModuleBlacklist(modules=_string_list(params, "modules", rule_id, required=True))


def _build_required_path(params: Mapping[str, Any], rule_id: str) -> RuleType:
    return RequiredPath(
        path=_path(params, rule_id),
        scope=_scope(params, rule_id),
        expected_value=params.get("expected_value"),
    )


def _build_forbidden_path(params: Mapping[str, Any], rule_id: str) -> RuleType:
    return ForbiddenPath(path=_path(params, rule_id), scope=_scope(params, rule_id), value=params.get("value"))


def _build_vault_required(params: Mapping[str, Any], rule_id: str) -> RuleType:
    keywords = _string_list(params, "keywords", rule_id) or DEFAULT_SENSITIVE_KEYWORDS
    return VaultRequired(
        keywords=tuple(keyword.lower() for keyword in keywords),
        exceptions=_string_list(params, "exceptions", rule_id),
    )


def _build_permission_check(params: Mapping[str, Any], rule_id: str) -> RuleType:
    raw = params.get("max_permissions", "0644")
    max_mode = parse_mode(raw)
    if max_mode is None:
        raise RuleValidationError(f"invalid max_permissions {raw!r}", rule_id)
    return PermissionCheck(max_permissions=str(raw), max_mode=max_mode)


def _build_custom_conditions(params: Mapping[str, Any], rule_id: str) -> RuleType:
    raw_conditions = params.get("conditions")
    if not isinstance(raw_conditions, list) or not raw_conditions:
        raise RuleValidationError("'conditions' must be a non-empty list", rule_id)
    conditions = tuple(_condition(item, rule_id) for item in raw_conditions)
    return CustomConditions(conditions=conditions, scope=_scope(params, rule_id))


def _build_no_log_required(params: Mapping[str, Any], rule_id: str) -> RuleType:
    return NoLogRequired(modules=_string_list(params, "modules", rule_id, required=True))


_BUILDERS: Dict[str, Callable[[Mapping[str, Any], str], RuleType]] = {
    "module_blacklist": _build_module_blacklist,
    "required_path": _build_required_path,
    "forbidden_path": _build_forbidden_path,
    "vault_required": _build_vault_required,
    "permission_check": _build_permission_check,
    "custom_conditions": _build_custom_conditions,
    "no_log_required": _build_no_log_required,
}

_COMMON_KEYS = frozenset({"id", "name", "severity", "description", "enabled", "type", "rule_type"})


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------
def _common_fields(entry: Any, seen: Set[str]) -> Tuple[str, str, Severity]:
    if not isinstance(entry, Mapping):
        raise RuleValidationError(f"rule entries must be mappings, got {type(entry).__name__}")
    rule_id = str(entry.get("id") or "").strip()
    if not rule_id:
        raise RuleValidationError("rule has empty id")
    if rule_id.startswith(RESERVED_PREFIXES):
        raise RuleValidationError("ids starting with SCAN_ are reserved", rule_id)
    if rule_id in seen:
        raise RuleValidationError("duplicate rule id", rule_id)
    seen.add(rule_id)
    name = str(entry.get("name") or "").strip()
    if not name:
        raise RuleValidationError("rule has empty name", rule_id)
    try:
        severity = Severity.parse(entry.get("severity"))
    except ValueError as exc:
        raise RuleValidationError(str(exc), rule_id) from exc
    return rule_id, name, severity


def _enabled(entry: Mapping[str, Any], rule_id: str) -> bool:
    enabled = entry.get("enabled", True)
    if not isinstance(enabled, bool):
        raise RuleValidationError("'enabled' must be a boolean", rule_id)
    return enabled


def _string_list(params: Mapping[str, Any], key: str, rule_id: str, required: bool = False) -> Tuple[str, ...]:
    value = params.get(key)
    if value is None:
        if required:
            raise RuleValidationError(f"missing '{key}'", rule_id)
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise RuleValidationError(f"'{key}' must be a list of strings", rule_id)
    if required and not value:
        raise RuleValidationError(f"'{key}' must not be empty", rule_id)
    return tuple(value)


def _path(params: Mapping[str, Any], rule_id: str) -> str:
    path = params.get("path")
    if not isinstance(path, str) or not path.strip() or any(not part for part in path.split(".")):
        raise RuleValidationError(f"invalid key-path {path!r}", rule_id)
    return path.strip()


def _scope(params: Mapping[str, Any], rule_id: str) -> Scope:
    raw = params.get("scope", Scope.TASK.value)
    try:
        return Scope(str(raw).lower())
    except ValueError:
        raise RuleValidationError(f"invalid scope {raw!r}", rule_id) from None


def _condition(item: Any, rule_id: str) -> Condition:
    if isinstance(item, (list, tuple)) and len(item) in (2, 3):
        item = {"field": item[0], "operator": item[1], "value": item[2] if len(item) == 3 else None}
    if not isinstance(item, Mapping):
        raise RuleValidationError("conditions must be mappings or [field, operator, value] triples", rule_id)
    field_path = item.get("field")
    if not isinstance(field_path, str) or not field_path:
        raise RuleValidationError("condition is missing 'field'", rule_id)
    try:
        operator = Operator.parse(item.get("operator"))
    except ValueError:
        raise RuleValidationError(f"unknown operator {item.get('operator')!r}", rule_id) from None
    value = item.get("value")
    regex: Optional[re.Pattern[str]] = None
    if operator is Operator.MATCHES:
        try:
            regex = re.compile(str(value))
        except re.error as exc:
            raise RuleValidationError(f"invalid condition pattern {value!r}: {exc}", rule_id) from exc
    elif operator not in (Operator.EXISTS, Operator.NOT_EXISTS) and value is None:
        raise RuleValidationError(f"operator '{operator.value}' needs a value", rule_id)
    return Condition(field=field_path, operator=operator, value=value, regex=regex)
