"""
Dependency-ordered sequencing of concept nodes for the O/X assessment.

Prerequisites are referenced by name, not id. Names are expected to be unique
within a document but nothing enforces it, and the LLM that produced the
nodes may emit dangling references or cycles. None of these are errors:
they are collected into a SequenceReport and logged, and the ordering
degrades to a best effort.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from studytree.domain.knowledge.models import ConceptNode


logger = logging.getLogger(__name__)


@dataclass
class SequenceReport:
    duplicate_names: list[str] = field(default_factory=list)
    dangling_prerequisites: list[tuple[str, str]] = field(default_factory=list)
    cyclic_names: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.duplicate_names or self.dangling_prerequisites or self.cyclic_names)

    def as_dict(self) -> dict[str, Any]:
        return {
            "duplicate_names": list(self.duplicate_names),
            "dangling_prerequisites": [
                {"node": node_name, "prerequisite": missing}
                for node_name, missing in self.dangling_prerequisites
            ],
            "cyclic_names": list(self.cyclic_names),
        }


def _root_sort_key(node: ConceptNode) -> tuple[int, int]:
    return (node.level, node.position)


def sequence_with_report(nodes: Sequence[ConceptNode]) -> tuple[list[ConceptNode], SequenceReport]:
    """
    Order nodes so that resolvable prerequisites come before their dependents.

    Roots (no prerequisites) are visited first by (level, position), then every
    node in input order catches whatever the roots did not reach. A name is
    marked visited before its prerequisites are explored, so cycles terminate;
    their members come out in first-visited-first-emitted order.
    """
    report = SequenceReport()

    # 이름 충돌 시 마지막 노드가 선수 지식 해석을 가져간다.
    index_by_name: dict[str, int] = {}
    for index, node in enumerate(nodes):
        if node.name in index_by_name and node.name not in report.duplicate_names:
            report.duplicate_names.append(node.name)
        index_by_name[node.name] = index

    visited: set[str] = set()
    stack: list[str] = []
    emitted: set[int] = set()
    ordered: list[ConceptNode] = []

    def visit(name: str) -> None:
        if name in visited:
            if name in stack:
                for member in stack[stack.index(name):]:
                    if member not in report.cyclic_names:
                        report.cyclic_names.append(member)
            return

        index = index_by_name.get(name)
        if index is None:
            return

        visited.add(name)
        stack.append(name)
        node = nodes[index]
        for prerequisite in node.prerequisites or ():
            if prerequisite not in index_by_name:
                report.dangling_prerequisites.append((node.name, prerequisite))
                continue
            visit(prerequisite)
        stack.pop()

        emitted.add(index)
        ordered.append(node)

    roots = [node for node in nodes if not node.prerequisites]
    for root in sorted(roots, key=_root_sort_key):
        visit(root.name)

    for index, node in enumerate(nodes):
        visit(node.name)
        if index not in emitted:
            # 동명 노드에 가려진 노드도 선수 지식을 먼저 내보낸 뒤 추가해 순열을 유지한다.
            for prerequisite in node.prerequisites or ():
                if prerequisite not in index_by_name:
                    report.dangling_prerequisites.append((node.name, prerequisite))
                    continue
                visit(prerequisite)
            emitted.add(index)
            ordered.append(node)

    if not report.is_clean:
        logger.warning(
            "concept sequencing degraded nodes=%d duplicates=%s dangling=%d cyclic=%s",
            len(nodes),
            report.duplicate_names,
            len(report.dangling_prerequisites),
            report.cyclic_names,
        )

    return ordered, report


def sequence(nodes: Sequence[ConceptNode]) -> list[ConceptNode]:
    ordered, _report = sequence_with_report(nodes)
    return ordered
