"""Basic file IO helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union

import yaml


class AnsibleLoader(yaml.SafeLoader):
    """YAML loader that tolerates Ansible tags such as ``!vault`` and ``!unsafe``."""


def _construct_local_tag(loader: AnsibleLoader, tag_suffix: str, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        return loader.construct_scalar(node)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node)
    if isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node)
    return None


AnsibleLoader.add_multi_constructor("!", _construct_local_tag)


def read_yaml_file(path: Union[str, Path]) -> Any:
    """Return the parsed YAML if the file exists, otherwise ``None``."""

    path = Path(path)
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return yaml.load(handle, Loader=AnsibleLoader)


def read_bounded(path: Union[str, Path], limit: int) -> bytes:
    """Return at most ``limit + 1`` bytes of the file at ``path``.

    A result longer than ``limit`` means the file exceeds the limit. I/O
    errors propagate to the caller.
    """

    with open(path, "rb") as handle:
        return handle.read(limit + 1)
