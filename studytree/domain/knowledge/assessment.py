"""Rules for the one-question-at-a-time O/X assessment flow."""
from __future__ import annotations

from collections import deque
from typing import Any, Collection, Sequence

from studytree.domain.knowledge.models import ConceptNode


_O_TOKENS = {"o", "true", "t", "yes", "참", "맞음", "정답"}
_X_TOKENS = {"x", "false", "f", "no", "거짓", "틀림", "오답"}


def normalize_ox_answer(value: Any) -> str | None:
    if isinstance(value, bool):
        return "O" if value else "X"
    text = str(value or "").strip().lower()
    if text in _O_TOKENS:
        return "O"
    if text in _X_TOKENS:
        return "X"
    return None


def build_dependents_map(nodes: Sequence[ConceptNode]) -> dict[str, list[str]]:
    """Prerequisite name -> ids of nodes listing it."""
    dependents: dict[str, list[str]] = {}
    for node in nodes:
        for prerequisite in node.prerequisites or ():
            dependents.setdefault(prerequisite, []).append(node.id)
    return dependents


def find_dependents_to_skip(
    nodes: Sequence[ConceptNode],
    node_id: str,
    assessed: Collection[str],
) -> list[str]:
    """
    Ids of nodes that should be skipped after the learner failed `node_id`.

    Walks breadth-first over nodes that name the failed node as a prerequisite
    and over its children by parent_id. Nodes the learner already answered are
    neither skipped nor expanded.
    """
    by_id = {node.id: node for node in nodes}
    failed = by_id.get(node_id)
    if failed is None:
        return []

    dependents = build_dependents_map(nodes)

    def _neighbours(current: ConceptNode) -> list[str]:
        children = [node.id for node in nodes if node.parent_id == current.id]
        return list(dict.fromkeys([*dependents.get(current.name, []), *children]))

    to_skip: list[str] = []
    processed: set[str] = set()
    queue = deque(_neighbours(failed))
    while queue:
        current_id = queue.popleft()
        if current_id in processed or current_id == node_id:
            continue
        processed.add(current_id)
        if current_id in assessed:
            continue
        to_skip.append(current_id)
        current = by_id.get(current_id)
        if current is not None:
            queue.extend(_neighbours(current))
    return to_skip


def next_assessable_index(
    nodes: Sequence[ConceptNode],
    start: int,
    assessed: Collection[str],
    skipped: Collection[str],
) -> int:
    for index in range(max(0, start), len(nodes)):
        node_id = nodes[index].id
        if node_id not in assessed and node_id not in skipped:
            return index
    return -1


def split_by_understanding(
    levels: dict[str, int],
    threshold: int,
) -> tuple[list[str], list[str]]:
    weak = [node_id for node_id, level in levels.items() if level < threshold]
    strong = [node_id for node_id, level in levels.items() if level >= threshold]
    return weak, strong
