"""Exception types raised before a scan starts."""

from __future__ import annotations


class AnsibleSecError(Exception):
    """Base class for scanner errors."""


class ConfigError(AnsibleSecError, ValueError):
    """Invalid scan configuration."""


class RuleValidationError(ConfigError):
    """A secret pattern or policy rule definition is malformed."""

    def __init__(self, message: str, rule_id: str | None = None) -> None:
        self.rule_id = rule_id
        if rule_id:
            message = f"rule {rule_id}: {message}"
        super().__init__(message)
