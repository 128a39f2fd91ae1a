"""Scan configuration and its YAML file format."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import yaml

from . import __version__
from .errors import ConfigError
from .rules import PolicyRule, SecretPattern
from .rules.defaults import default_policy_rules, default_secret_patterns
from .rules.loader import load_policy_rules, load_secret_patterns
from .severity import Severity
from .utils.fileio import read_yaml_file

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".ansiblesec.yml"
DEFAULT_CACHE_DIR = ".ansiblesec_cache"
DEFAULT_EXCLUDES = (".git", "venv", "node_modules", "vendor", "*.retry", "*.swp")
DEFAULT_EXTENSIONS = (".yml", ".yaml")
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


@dataclass(frozen=True)
class ScanConfig:
    """Everything the scanner needs for one run."""

    roots: Tuple[str, ...] = (".",)
    exclude: Tuple[str, ...] = DEFAULT_EXCLUDES
    include_extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    max_depth: int = 10
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    threads: int = 0
    cache_enabled: bool = True
    cache_dir: str = DEFAULT_CACHE_DIR
    secrets_enabled: bool = True
    policies_enabled: bool = True
    entropy_enabled: bool = True
    entropy_threshold: float = 4.5
    min_entropy_length: int = 20
    entropy_severity: Severity = Severity.MEDIUM
    dedupe_overlapping_patterns: bool = False
    secret_patterns: Tuple[SecretPattern, ...] = field(default_factory=lambda: tuple(default_secret_patterns()))
    policy_rules: Tuple[PolicyRule, ...] = field(default_factory=lambda: tuple(default_policy_rules()))

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not self.roots:
            raise ConfigError("at least one root path is required")
        if self.max_depth < 0:
            raise ConfigError("max_depth must be >= 0")
        if self.max_file_size <= 0:
            raise ConfigError("max_file_size must be > 0")
        if self.threads < 0:
            raise ConfigError("threads must be >= 0 (0 means auto)")
        if self.entropy_threshold < 0:
            raise ConfigError("entropy_threshold must be >= 0")
        if self.min_entropy_length < 1:
            raise ConfigError("min_entropy_length must be >= 1")

    @property
    def worker_count(self) -> int:
        return self.threads or os.cpu_count() or 1

    def fingerprint(self) -> str:
        """Hash of every setting that influences a file's findings."""

        material = {
            "version": __version__,
            "secrets_enabled": self.secrets_enabled,
            "policies_enabled": self.policies_enabled,
            "entropy": [
                self.entropy_enabled,
                self.entropy_threshold,
                self.min_entropy_length,
                self.entropy_severity.value,
                self.dedupe_overlapping_patterns,
            ],
            "patterns": [
                [pattern.id, pattern.pattern, pattern.severity.value, pattern.description, pattern.enabled]
                for pattern in self.secret_patterns
            ],
            "rules": [
                [rule.id, rule.severity.value, rule.description, rule.enabled, repr(rule.rule_type)]
                for rule in self.policy_rules
            ],
        }
        encoded = json.dumps(material, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def with_overrides(self, **changes: Any) -> "ScanConfig":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


# ----------------------------------------------------------------------
# File loading
# ----------------------------------------------------------------------
def load_config(
    path: Union[str, Path, None] = None,
    secrets_rules: Union[str, Path, None] = None,
    policy_rules: Union[str, Path, None] = None,
    **overrides: Any,
) -> ScanConfig:
    """Build a :class:`ScanConfig` from a YAML file, rule files, and overrides.

    When ``path`` is not given, ``.ansiblesec.yml`` in the working directory is
    used if present. Rule file arguments take precedence over the
    ``rules_file`` entries of the config file; keyword overrides that are not
    ``None`` win over everything.
    """

    if path is None and Path(DEFAULT_CONFIG_FILE).exists():
        path = DEFAULT_CONFIG_FILE
    data: Mapping[str, Any] = {}
    if path is not None:
        try:
            loaded = read_yaml_file(path)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot read config file {path}: {exc}") from exc
        if loaded is None:
            raise ConfigError(f"config file {path} does not exist or is empty")
        if not isinstance(loaded, dict):
            raise ConfigError(f"config file {path} must contain a mapping")
        data = loaded
        logger.info("Loaded configuration from %s", path)

    general = _section(data, "general")
    secrets = _section(data, "secrets")
    policies = _section(data, "policies")

    settings: Dict[str, Any] = {}
    _copy(general, "max_depth", int, settings)
    _copy(general, "max_file_size", int, settings)
    _copy(general, "parallel_jobs", int, settings, target="threads")
    _copy(general, "cache_enabled", bool, settings)
    _copy(general, "cache_dir", str, settings)
    excludes = _string_tuple(general, "exclude_paths") + _string_tuple(general, "exclude_patterns")
    if "exclude_paths" in general or "exclude_patterns" in general:
        settings["exclude"] = excludes
    if "include_extensions" in general:
        settings["include_extensions"] = _string_tuple(general, "include_extensions")

    _copy(secrets, "enabled", bool, settings, target="secrets_enabled")
    _copy(secrets, "entropy_enabled", bool, settings)
    _copy(secrets, "entropy_threshold", (int, float), settings)
    _copy(secrets, "min_entropy_length", int, settings)
    _copy(secrets, "dedupe_overlapping_patterns", bool, settings)
    if "entropy_severity" in secrets:
        try:
            settings["entropy_severity"] = Severity.parse(secrets["entropy_severity"])
        except ValueError as exc:
            raise ConfigError(f"secrets.entropy_severity: {exc}") from exc
    _copy(policies, "enabled", bool, settings, target="policies_enabled")

    secrets_rules = secrets_rules or secrets.get("rules_file")
    policy_rules = policy_rules or policies.get("rules_file")
    if secrets_rules:
        settings["secret_patterns"] = tuple(load_secret_patterns(secrets_rules))
    if policy_rules:
        settings["policy_rules"] = tuple(load_policy_rules(policy_rules))

    settings.update({key: value for key, value in overrides.items() if value is not None})
    if "roots" in settings:
        settings["roots"] = tuple(str(root) for root in settings["roots"])
    try:
        return ScanConfig(**settings)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return section


def _copy(
    section: Mapping[str, Any],
    key: str,
    expected: Union[type, Tuple[type, ...]],
    settings: Dict[str, Any],
    target: Optional[str] = None,
) -> None:
    if key not in section or section[key] is None:
        return
    value = section[key]
    # bool is an int subclass; reject it where a number is expected
    if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
        raise ConfigError(f"'{key}' has invalid value {value!r}")
    settings[target or key] = value


def _string_tuple(section: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    value = section.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Sequence) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return tuple(value)
