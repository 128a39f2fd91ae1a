"""Built-in rules used when no rule files are configured."""

from __future__ import annotations

from typing import Any, Dict, List

from . import PolicyRule, SecretPattern
from .loader import parse_policy_rules, parse_secret_patterns

DEFAULT_SECRET_RULES: List[Dict[str, Any]] = [
    {
        "id": "SECRET_AWS_ACCESS_KEY",
        "name": "AWS Access Key",
        "pattern": r"(?:A3T[A-Z0-9]|AKIA|ASIA)[0-9A-Z]{16}",
        "severity": "CRITICAL",
        "description": "AWS access key ID detected",
    },
    {
        "id": "SECRET_GITHUB_TOKEN",
        "name": "GitHub Token",
        "pattern": r"gh[pousr]_[0-9A-Za-z]{36}",
        "severity": "CRITICAL",
        "description": "GitHub token detected",
    },
    {
        "id": "SECRET_PRIVATE_KEY",
        "name": "Private Key",
        "pattern": r"-----BEGIN (?:RSA |DSA |EC |OPENSSH |ENCRYPTED )?PRIVATE KEY-----",
        "severity": "CRITICAL",
        "description": "Private key block detected",
    },
    {
        "id": "SECRET_SLACK_TOKEN",
        "name": "Slack Token",
        "pattern": r"xox[baprs]-[0-9A-Za-z-]{10,}",
        "severity": "HIGH",
        "description": "Slack token detected",
    },
    {
        "id": "SECRET_PASSWORD_ASSIGNMENT",
        "name": "Hardcoded Password",
        "pattern": r"""(?i)(?:password|passwd|pwd)\b\s*[:=]\s*["']?(?!\{\{)(?!!vault)(?!\$ANSIBLE_VAULT)[^\s"'#]{4,}""",
        "severity": "HIGH",
        "description": "Hardcoded password assignment detected",
    },
]

DEFAULT_POLICY_RULES: List[Dict[str, Any]] = [
    {
        "id": "POLICY_001",
        "name": "Disallow Risky Modules",
        "description": "Prevents use of risky modules like shell, command, and raw",
        "severity": "HIGH",
        "type": "module_blacklist",
        "modules": ["shell", "command", "raw"],
    },
    {
        "id": "POLICY_002",
        "name": "Require Ansible Vault",
        "description": "Ensures sensitive variables are encrypted with Ansible Vault",
        "severity": "CRITICAL",
        "type": "vault_required",
        "exceptions": ["ansible_connection", "update_password", "password_lock", "token_file"],
    },
    {
        "id": "POLICY_003",
        "name": "Require no_log for Sensitive Tasks",
        "description": "Ensures sensitive tasks have no_log: true",
        "severity": "HIGH",
        "type": "no_log_required",
        "modules": ["user", "mysql_user", "postgresql_user", "uri", "get_url"],
    },
    {
        "id": "POLICY_004",
        "name": "Check File Permissions",
        "description": "Validates file/directory permissions are not overly permissive",
        "severity": "MEDIUM",
        "type": "permission_check",
        "max_permissions": "0644",
    },
    {
        "id": "POLICY_005",
        "name": "Privilege Escalation Without Password",
        "description": "Task escalates privileges without an explicit become_password",
        "severity": "LOW",
        "type": "custom_conditions",
        "conditions": [
            {"field": "become", "operator": "equals", "value": True},
            {"field": "become_password", "operator": "not_exists"},
        ],
    },
]


def default_secret_patterns() -> List[SecretPattern]:
    return parse_secret_patterns(DEFAULT_SECRET_RULES)


def default_policy_rules() -> List[PolicyRule]:
    return parse_policy_rules(DEFAULT_POLICY_RULES)
