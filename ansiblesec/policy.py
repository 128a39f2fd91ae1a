"""Evaluate policy rules against parsed Ansible documents."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Sequence, Type

import yaml

from .playbook import iter_scopes, iter_tasks, module_arguments, module_matches, module_name
from .result import Finding
from .rules import (
    Condition,
    CustomConditions,
    ForbiddenPath,
    ModuleBlacklist,
    NoLogRequired,
    Operator,
    PermissionCheck,
    PolicyRule,
    RequiredPath,
    VaultRequired,
)
from .severity import Severity
from .utils.iac import DocNode, load_documents
from .utils.permissions import excess_bits, format_mode, parse_mode

logger = logging.getLogger(__name__)

POLICY_PARSE_ERROR = "POLICY_PARSE_ERROR"

TRUE_WORDS = frozenset({"true", "yes", "on", "y"})
FALSE_WORDS = frozenset({"false", "no", "off", "n"})


class PolicyEngine:
    """Apply the enabled policy rules to one document at a time.

    The engine keeps no per-file state, so a single instance is shared by all
    scanner workers.
    """

    def __init__(self, rules: Iterable[PolicyRule]) -> None:
        self._rules: List[PolicyRule] = list(rules)
        self._evaluators: Dict[Type[Any], Callable[[PolicyRule, str, DocNode], List[Finding]]] = {
            ModuleBlacklist: self._check_module_blacklist,
            RequiredPath: self._check_required_path,
            ForbiddenPath: self._check_forbidden_path,
            VaultRequired: self._check_vault_required,
            PermissionCheck: self._check_permissions,
            CustomConditions: self._check_conditions,
            NoLogRequired: self._check_no_log,
        }

    @property
    def rules(self) -> Sequence[PolicyRule]:
        return tuple(self._rules)

    def evaluate_text(self, file_path: str, text: str) -> List[Finding]:
        """Parse ``text`` and evaluate every document it contains.

        Malformed YAML produces a single informational finding instead of an
        exception.
        """

        try:
            documents = load_documents(text)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            line = mark.line + 1 if mark is not None else 0
            column = mark.column + 1 if mark is not None else 0
            problem = getattr(exc, "problem", None) or str(exc).splitlines()[0]
            logger.info("Skipping policy checks for %s: %s", file_path, problem)
            return [
                Finding(
                    file_path=file_path,
                    line=line,
                    column=column,
                    severity=Severity.INFO,
                    rule_id=POLICY_PARSE_ERROR,
                    message=f"Document could not be parsed as YAML: {problem}",
                )
            ]
        findings: List[Finding] = []
        for document in documents:
            findings.extend(self.evaluate(file_path, document))
        return findings

    def evaluate(self, file_path: str, document: DocNode) -> List[Finding]:
        findings: List[Finding] = []
        for rule in self._rules:
            if not rule.enabled:
                continue
            evaluator = self._evaluators[type(rule.rule_type)]
            findings.extend(evaluator(rule, file_path, document))
        return findings

    # ------------------------------------------------------------------
    # Rule-type evaluators
    # ------------------------------------------------------------------
    def _check_module_blacklist(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: ModuleBlacklist = rule.rule_type
        findings = []
        for task in iter_tasks(document):
            name = module_name(task)
            if name is not None and module_matches(name, params.modules):
                location = task.get(name) or task
                findings.append(
                    _finding(rule, file_path, location, f"Use of disallowed module '{name}': {rule.message}")
                )
        return findings

    def _check_required_path(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: RequiredPath = rule.rule_type
        findings = []
        for scope in iter_scopes(document, params.scope):
            node = scope.resolve(params.path)
            if node is None:
                findings.append(
                    _finding(rule, file_path, scope, f"Required path '{params.path}' is missing: {rule.message}")
                )
            elif params.expected_value is not None and not values_equal(node, params.expected_value):
                findings.append(
                    _finding(
                        rule,
                        file_path,
                        node,
                        f"Value at '{params.path}' should be '{_display(params.expected_value)}': {rule.message}",
                    )
                )
        return findings

    def _check_forbidden_path(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: ForbiddenPath = rule.rule_type
        findings = []
        for scope in iter_scopes(document, params.scope):
            node = scope.resolve(params.path)
            if node is None:
                continue
            if params.value is not None and not values_equal(node, params.value):
                continue
            findings.append(_finding(rule, file_path, node, f"Forbidden path '{params.path}' is set: {rule.message}"))
        return findings

    def _check_vault_required(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: VaultRequired = rule.rule_type
        exceptions = {name.lower() for name in params.exceptions}
        findings = []
        for key, node in document.walk_entries():
            lowered = key.lower()
            if lowered in exceptions or not any(keyword in lowered for keyword in params.keywords):
                continue
            if not _is_plain_secret_value(node):
                continue
            findings.append(
                _finding(
                    rule,
                    file_path,
                    node,
                    f"Sensitive field '{key}' holds a plain value instead of a vault-encrypted one: {rule.message}",
                )
            )
        return findings

    def _check_permissions(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: PermissionCheck = rule.rule_type
        findings = []
        for task in iter_tasks(document):
            for arguments in module_arguments(task):
                node = arguments.get("mode")
                if node is None or not node.is_scalar:
                    continue
                mode = parse_mode(node.raw if node.raw is not None else node.value)
                if mode is None:
                    continue
                excess = excess_bits(mode, params.max_mode)
                if not excess:
                    continue
                detail = "world-writable" if excess & 0o002 else f"exceeds {params.max_permissions}"
                findings.append(
                    _finding(
                        rule,
                        file_path,
                        node,
                        f"File mode {format_mode(mode)} is too permissive ({detail}): {rule.message}",
                    )
                )
        return findings

    def _check_conditions(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: CustomConditions = rule.rule_type
        findings = []
        for scope in iter_scopes(document, params.scope):
            if all(condition_holds(scope, condition) for condition in params.conditions):
                findings.append(_finding(rule, file_path, scope, rule.message))
        return findings

    def _check_no_log(self, rule: PolicyRule, file_path: str, document: DocNode) -> List[Finding]:
        params: NoLogRequired = rule.rule_type
        findings = []
        for task in iter_tasks(document):
            name = module_name(task)
            if name is None or not module_matches(name, params.modules):
                continue
            no_log = task.get("no_log")
            if no_log is not None and _truthy(no_log):
                continue
            findings.append(
                _finding(rule, file_path, task, f"Task using '{name}' should set 'no_log: true': {rule.message}")
            )
        return findings


# ----------------------------------------------------------------------
# Condition helpers
# ----------------------------------------------------------------------
def condition_holds(scope: DocNode, condition: Condition) -> bool:
    node = scope.resolve(condition.field)
    operator = condition.operator
    if operator is Operator.EXISTS:
        return node is not None
    if operator is Operator.NOT_EXISTS:
        return node is None
    if operator is Operator.EQUALS:
        return node is not None and values_equal(node, condition.value)
    if operator is Operator.NOT_EQUALS:
        return node is None or not values_equal(node, condition.value)
    if operator is Operator.CONTAINS:
        return node is not None and _contains(node, condition.value)
    if operator is Operator.NOT_CONTAINS:
        return node is None or not _contains(node, condition.value)
    if operator is Operator.MATCHES:
        if node is None or not node.is_scalar or node.value is None:
            return False
        regex = condition.regex or re.compile(str(condition.value))
        return regex.search(normalize(node.value)) is not None
    raise ValueError(f"unsupported operator {operator!r}")


def normalize(value: Any) -> str:
    """Return a comparable text form; booleans and yes/no words collapse."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    text = str(value).strip()
    lowered = text.lower()
    if lowered in TRUE_WORDS:
        return "true"
    if lowered in FALSE_WORDS:
        return "false"
    return text


def values_equal(node: DocNode, expected: Any) -> bool:
    if not node.is_scalar:
        return node.to_python() == expected
    return normalize(node.value) == normalize(expected)


def _contains(node: DocNode, expected: Any) -> bool:
    if node.is_sequence:
        wanted = normalize(expected)
        return any(item.is_scalar and normalize(item.value) == wanted for item in node.items)
    if node.is_mapping:
        return str(expected) in node.entries
    if node.value is None:
        return False
    return str(expected) in str(node.value)


def _truthy(node: DocNode) -> bool:
    return node.is_scalar and normalize(node.value) == "true"


def _is_plain_secret_value(node: DocNode) -> bool:
    if not node.is_scalar or node.is_vault or node.is_template:
        return False
    value = node.value
    if value is None or isinstance(value, bool):
        return False
    return str(value).strip() != ""


def _display(value: Any) -> str:
    return normalize(value) if isinstance(value, bool) else str(value)


def _finding(rule: PolicyRule, file_path: str, node: DocNode, message: str) -> Finding:
    return Finding(
        file_path=file_path,
        line=node.line,
        column=node.column,
        severity=rule.severity,
        rule_id=rule.id,
        message=message,
    )
