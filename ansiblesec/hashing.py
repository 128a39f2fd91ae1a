"""Content hashing used as the cache validity key."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Union

CHUNK_SIZE = 64 * 1024
ALGORITHM = "sha256"


def hash_bytes(data: bytes) -> str:
    """Return the hex digest of ``data``."""

    return hashlib.new(ALGORITHM, data).hexdigest()


def hash_file(path: Union[str, Path]) -> str:
    """Return the hex digest of the file at ``path``.

    I/O errors propagate to the caller.
    """

    digest = hashlib.new(ALGORITHM)
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
