"""Secret pattern and policy rule definitions consumed by the scanner.

Policy rule parameters form a closed set of variants, one dataclass per
``rule_type``. The policy engine keeps one evaluation function per variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Pattern, Tuple, Type, Union

from ansiblesec.severity import Severity

DEFAULT_SENSITIVE_KEYWORDS = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "private_key",
    "credential",
)


@dataclass(frozen=True)
class SecretPattern:
    """A named regular expression that identifies one kind of secret."""

    id: str
    name: str
    regex: Pattern[str]
    severity: Severity
    description: str = ""
    enabled: bool = True

    @property
    def pattern(self) -> str:
        return self.regex.pattern

    @property
    def message(self) -> str:
        return self.description or f"{self.name} detected"


class Scope(str, Enum):
    """Document scopes a key-path is resolved against."""

    TASK = "task"
    PLAY = "play"
    DOCUMENT = "document"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    MATCHES = "matches"

    @classmethod
    def parse(cls, value: object) -> "Operator":
        name = str(value).strip().lower().replace("-", "_")
        if name == "matches_pattern":
            name = "matches"
        return cls(name)


@dataclass(frozen=True)
class Condition:
    """One ``(field, operator, value)`` triple of a custom rule."""

    field: str
    operator: Operator
    value: Any = None
    regex: Optional[Pattern[str]] = None


@dataclass(frozen=True)
class ModuleBlacklist:
    modules: Tuple[str, ...]


@dataclass(frozen=True)
class RequiredPath:
    path: str
    scope: Scope = Scope.TASK
    expected_value: Any = None


@dataclass(frozen=True)
class ForbiddenPath:
    path: str
    scope: Scope = Scope.TASK
    value: Any = None


@dataclass(frozen=True)
class VaultRequired:
    keywords: Tuple[str, ...] = DEFAULT_SENSITIVE_KEYWORDS
    exceptions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PermissionCheck:
    max_permissions: str
    max_mode: int


@dataclass(frozen=True)
class CustomConditions:
    conditions: Tuple[Condition, ...]
    scope: Scope = Scope.TASK


@dataclass(frozen=True)
class NoLogRequired:
    modules: Tuple[str, ...]


RuleType = Union[
    ModuleBlacklist,
    RequiredPath,
    ForbiddenPath,
    VaultRequired,
    PermissionCheck,
    CustomConditions,
    NoLogRequired,
]

RULE_TYPES: Dict[str, Type[Any]] = {
    "module_blacklist": ModuleBlacklist,
    "required_path": RequiredPath,
    "forbidden_path": ForbiddenPath,
    "vault_required": VaultRequired,
    "permission_check": PermissionCheck,
    "custom_conditions": CustomConditions,
    "no_log_required": NoLogRequired,
}


def rule_type_name(rule_type: RuleType) -> str:
    for name, cls in RULE_TYPES.items():
        if isinstance(rule_type, cls):
            return name
    raise TypeError(f"unsupported rule type {type(rule_type).__name__}")


@dataclass(frozen=True)
class PolicyRule:
    """A policy check applied to parsed documents."""

    id: str
    name: str
    severity: Severity
    rule_type: RuleType
    description: str = ""
    enabled: bool = True

    @property
    def type_name(self) -> str:
        return rule_type_name(self.rule_type)

    @property
    def message(self) -> str:
        return self.description or self.name


__all__ = [
    "Condition",
    "CustomConditions",
    "DEFAULT_SENSITIVE_KEYWORDS",
    "ForbiddenPath",
    "ModuleBlacklist",
    "NoLogRequired",
    "Operator",
    "PermissionCheck",
    "PolicyRule",
    "RULE_TYPES",
    "RequiredPath",
    "RuleType",
    "Scope",
    "SecretPattern",
    "VaultRequired",
    "rule_type_name",
]
