"""Infrastructure-as-code document helpers.

Documents are composed with PyYAML and converted into :class:`DocNode`
trees so every node keeps the line and column it came from.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

import yaml

from .fileio import AnsibleLoader

MAPPING = "mapping"
SEQUENCE = "sequence"
SCALAR = "scalar"

VAULT_TAG = "!vault"
VAULT_HEADER = "$ANSIBLE_VAULT"


@dataclass
class DocNode:
    """One node of a parsed document with its source position (1-indexed)."""

    kind: str
    line: int
    column: int
    tag: str = ""
    value: Any = None
    raw: Optional[str] = None
    entries: Dict[str, "DocNode"] = field(default_factory=dict)
    items: List["DocNode"] = field(default_factory=list)

    @property
    def is_mapping(self) -> bool:
        return self.kind == MAPPING

    @property
    def is_sequence(self) -> bool:
        return self.kind == SEQUENCE

    @property
    def is_scalar(self) -> bool:
        return self.kind == SCALAR

    @property
    def is_vault(self) -> bool:
        if self.tag == VAULT_TAG:
            return True
        return isinstance(self.value, str) and self.value.lstrip().startswith(VAULT_HEADER)

    @property
    def is_template(self) -> bool:
        return isinstance(self.value, str) and "{{" in self.value

    def get(self, key: str) -> Optional["DocNode"]:
        if self.is_mapping:
            return self.entries.get(key)
        return None

    def resolve(self, path: str) -> Optional["DocNode"]:
        """Follow a dotted key-path; integer segments index sequences."""

        node: Optional[DocNode] = self
        for segment in path.split("."):
            if node is None:
                return None
            if node.is_mapping:
                node = node.entries.get(segment)
            elif node.is_sequence and segment.lstrip("-").isdigit():
                index = int(segment)
                node = node.items[index] if -len(node.items) <= index < len(node.items) else None
            else:
                return None
        return node

    def walk_entries(self, _seen: Optional[Set[int]] = None) -> Iterator[Tuple[str, "DocNode"]]:
        """Yield every ``(key, node)`` mapping entry beneath this node.

        A mapping or sequence shared through aliases is walked once.
        """

        seen = set() if _seen is None else _seen
        if self.is_mapping:
            if id(self.entries) in seen:
                return
            seen.add(id(self.entries))
            for key, child in self.entries.items():
                yield key, child
                yield from child.walk_entries(seen)
        elif self.is_sequence:
            if id(self.items) in seen:
                return
            seen.add(id(self.items))
            for item in self.items:
                yield from item.walk_entries(seen)

    def to_python(self, _built: Optional[Dict[int, Any]] = None) -> Any:
        built = {} if _built is None else _built
        if self.is_mapping:
            if id(self.entries) not in built:
                mapping: Dict[str, Any] = {}
                built[id(self.entries)] = mapping
                for key, child in self.entries.items():
                    mapping[key] = child.to_python(built)
            return built[id(self.entries)]
        if self.is_sequence:
            if id(self.items) not in built:
                sequence: List[Any] = []
                built[id(self.items)] = sequence
                sequence.extend(item.to_python(built) for item in self.items)
            return built[id(self.items)]
        return self.value


def load_documents(text: str) -> List[DocNode]:
    """Parse every YAML document in ``text``.

    Aliases share the converted node of their anchor, so a document that
    references an anchor many times, or from inside itself, stays linear in
    size. Raises ``yaml.YAMLError`` when the text is not valid YAML.
    """

    loader = AnsibleLoader(text)
    documents: List[DocNode] = []
    try:
        while loader.check_node():
            node = loader.get_node()
            if node is not None:
                documents.append(_convert(node, loader, {}))
    except RecursionError:
        raise yaml.constructor.ConstructorError(
            None, None, "document is nested too deeply or merges into itself", None
        ) from None
    finally:
        loader.dispose()
    return documents


def _convert(node: yaml.Node, loader: AnsibleLoader, converted: Dict[int, DocNode]) -> DocNode:
    known = converted.get(id(node))
    if known is not None:
        return known
    line = node.start_mark.line + 1
    column = node.start_mark.column + 1
    if isinstance(node, yaml.MappingNode):
        loader.flatten_mapping(node)
        mapping = converted[id(node)] = DocNode(MAPPING, line, column, tag=node.tag)
        for key_node, value_node in node.value:
            # the entry reports the position of its key
            child = replace(
                _convert(value_node, loader, converted),
                line=key_node.start_mark.line + 1,
                column=key_node.start_mark.column + 1,
            )
            mapping.entries[_key_text(key_node)] = child
        return mapping
    if isinstance(node, yaml.SequenceNode):
        sequence = converted[id(node)] = DocNode(SEQUENCE, line, column, tag=node.tag)
        sequence.items.extend(_convert(item, loader, converted) for item in node.value)
        return sequence
    scalar = converted[id(node)] = DocNode(
        SCALAR, line, column, tag=node.tag, value=_scalar_value(node, loader), raw=node.value
    )
    return scalar


def _key_text(node: yaml.Node) -> str:
    if isinstance(node, yaml.ScalarNode):
        return str(node.value)
    return yaml.serialize(node).strip()


def _scalar_value(node: yaml.ScalarNode, loader: AnsibleLoader) -> Any:
    try:
        return loader.construct_object(node, deep=True)
    except yaml.YAMLError:
        return node.value
