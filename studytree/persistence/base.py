"""Store contract used by the learning services."""
from __future__ import annotations

from typing import Any, Protocol, Sequence

from studytree.domain.knowledge.models import ConceptNode, OXQuizItem, Understanding


class StoreError(RuntimeError):
    """A read or write against the backing store failed."""


class NotFoundError(LookupError):
    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity}_not_found:{key}")


class KnowledgeStore(Protocol):
    def get_document(self, document_id: str) -> dict[str, Any]:
        ...

    def update_document(self, document_id: str, fields: dict[str, Any]) -> None:
        ...

    def delete_document(self, document_id: str, file_path: str | None) -> None:
        ...

    def download_file(self, file_path: str) -> bytes:
        ...

    def list_nodes(self, document_id: str) -> list[ConceptNode]:
        ...

    def delete_nodes(self, document_id: str) -> None:
        ...

    def insert_nodes(self, rows: Sequence[dict[str, Any]]) -> list[ConceptNode]:
        ...

    def update_node_parent(self, node_id: str, parent_id: str) -> None:
        ...

    def list_ox_items(self, document_id: str) -> list[OXQuizItem]:
        ...

    def replace_ox_items(self, document_id: str, items: Sequence[OXQuizItem]) -> list[OXQuizItem]:
        ...

    def list_understanding(self, user_id: str, node_ids: Sequence[str]) -> list[Understanding]:
        ...

    def upsert_understanding(self, user_id: str, rows: Sequence[Understanding]) -> None:
        ...

    def save_quiz_questions(self, document_id: str, questions: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        ...

    def save_study_guide(self, document_id: str, user_id: str, guide: dict[str, Any]) -> dict[str, Any]:
        ...
