"""Parse octal and symbolic file modes."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Tuple

OCTAL_MODE = re.compile(r"^(?:0o|0)?([0-7]{1,4})$", re.IGNORECASE)
SYMBOLIC_CLAUSE = re.compile(r"^([ugoa]*)([-+=])([rwxXst]*)$")

WHO_BITS: Dict[str, int] = {
    "u": 0o4700,
    "g": 0o2070,
    "o": 0o1007,
}
PERMISSION_BITS: Dict[Tuple[str, str], int] = {
    ("u", "r"): 0o400,
    ("u", "w"): 0o200,
    ("u", "x"): 0o100,
    ("u", "s"): 0o4000,
    ("g", "r"): 0o040,
    ("g", "w"): 0o020,
    ("g", "x"): 0o010,
    ("g", "s"): 0o2000,
    ("o", "r"): 0o004,
    ("o", "w"): 0o002,
    ("o", "x"): 0o001,
    ("o", "t"): 0o1000,
}


def parse_mode(value: Any) -> Optional[int]:
    """Return the numeric mode for ``value`` or ``None`` when it is not a literal mode.

    Digits are always read as octal, so ``644`` and ``0644`` are equivalent.
    Templated values and ``preserve`` yield ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().strip("'\"")
    if not text or "{{" in text or text.lower() == "preserve":
        return None
    match = OCTAL_MODE.match(text)
    if match:
        return int(match.group(1), 8)
    return _parse_symbolic(text)


def _parse_symbolic(text: str) -> Optional[int]:
    mode = 0
    for clause in text.split(","):
        match = SYMBOLIC_CLAUSE.match(clause.strip())
        if not match:
            return None
        who, op, perms = match.groups()
        targets = "ugo" if who in ("", "a") or "a" in who else who
        bits = 0
        for target in targets:
            for perm in perms:
                perm = "x" if perm == "X" else perm
                bits |= PERMISSION_BITS.get((target, perm), 0)
        if op == "+":
            mode |= bits
        elif op == "-":
            mode &= ~bits
        else:
            for target in targets:
                mode &= ~WHO_BITS[target]
            mode |= bits
    return mode


def excess_bits(mode: int, maximum: int) -> int:
    """Return the permission bits ``mode`` grants beyond ``maximum``."""

    return mode & ~maximum & 0o7777


def format_mode(mode: int) -> str:
    return f"0{mode:o}" if mode < 0o1000 else f"{mode:o}"
