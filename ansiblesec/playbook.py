"""Locate plays and tasks inside parsed Ansible documents."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Set

from .rules import Scope
from .utils.iac import DocNode

PLAY_MARKERS = frozenset({"hosts", "import_playbook", "roles"})
TASK_LIST_KEYS = ("pre_tasks", "tasks", "post_tasks", "handlers")
BLOCK_KEYS = ("block", "rescue", "always")
ACTION_KEYS = ("action", "local_action")

TASK_KEYWORDS = frozenset(
    {
        "any_errors_fatal",
        "args",
        "async",
        "become",
        "become_exe",
        "become_flags",
        "become_method",
        "become_password",
        "become_user",
        "changed_when",
        "check_mode",
        "collections",
        "connection",
        "debugger",
        "delay",
        "delegate_facts",
        "delegate_to",
        "diff",
        "environment",
        "failed_when",
        "ignore_errors",
        "ignore_unreachable",
        "listen",
        "loop",
        "loop_control",
        "module_defaults",
        "name",
        "no_log",
        "notify",
        "poll",
        "port",
        "register",
        "remote_user",
        "retries",
        "run_once",
        "tags",
        "throttle",
        "timeout",
        "until",
        "vars",
        "when",
    }
    | set(BLOCK_KEYS)
)


def is_play(node: DocNode) -> bool:
    if not node.is_mapping:
        return False
    keys = set(node.entries)
    return bool(keys & PLAY_MARKERS) or any(key in keys for key in TASK_LIST_KEYS)


def iter_plays(document: DocNode) -> Iterator[DocNode]:
    if document.is_sequence:
        for item in document.items:
            if is_play(item):
                yield item


def iter_tasks(document: DocNode) -> Iterator[DocNode]:
    """Yield every task of a playbook or task file, blocks included.

    A block reached again through an alias is expanded only once.
    """

    if not document.is_sequence:
        return
    blocks: Set[int] = set()
    for item in document.items:
        if is_play(item):
            for key in TASK_LIST_KEYS:
                task_list = item.get(key)
                if task_list is not None:
                    yield from _iter_task_list(task_list, blocks)
        elif item.is_mapping:
            yield from _iter_task(item, blocks)


def _iter_task_list(node: DocNode, blocks: Set[int]) -> Iterator[DocNode]:
    if node.is_sequence:
        for item in node.items:
            if item.is_mapping:
                yield from _iter_task(item, blocks)


def _iter_task(task: DocNode, blocks: Set[int]) -> Iterator[DocNode]:
    if any(key in task.entries for key in BLOCK_KEYS):
        if id(task.entries) in blocks:
            return
        blocks.add(id(task.entries))
        for key in BLOCK_KEYS:
            section = task.get(key)
            if section is not None:
                yield from _iter_task_list(section, blocks)
        return
    yield task


def iter_scopes(document: DocNode, scope: Scope) -> Iterable[DocNode]:
    if scope is Scope.DOCUMENT:
        return [document]
    if scope is Scope.PLAY:
        return list(iter_plays(document))
    return list(iter_tasks(document))


def module_name(task: DocNode) -> Optional[str]:
    """Return the module a task invokes, or ``None`` if it has none."""

    for key in ACTION_KEYS:
        action = task.get(key)
        if action is None:
            continue
        if action.is_mapping:
            inner = action.get("module")
            return str(inner.value) if inner is not None and inner.is_scalar else None
        if action.is_scalar and action.value:
            return str(action.value).split()[0]
        return None
    for key in task.entries:
        if key not in TASK_KEYWORDS and not key.startswith("with_"):
            return key
    return None


def module_matches(name: str, modules: Iterable[str]) -> bool:
    short = name.rsplit(".", 1)[-1]
    return any(name == candidate or short == candidate for candidate in modules)


def module_arguments(task: DocNode) -> List[DocNode]:
    """Return the mapping nodes holding a task's module arguments."""

    found: List[DocNode] = []
    name = module_name(task)
    if name is not None:
        node = task.get(name)
        if node is not None and node.is_mapping:
            found.append(node)
    for key in ("args",) + ACTION_KEYS:
        node = task.get(key)
        if node is not None and node.is_mapping:
            found.append(node)
    return found
