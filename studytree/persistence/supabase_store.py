from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Sequence

from supabase import Client, create_client

from studytree.domain.knowledge.models import ConceptNode, OXQuizItem, Understanding
from studytree.persistence.base import NotFoundError, StoreError


logger = logging.getLogger(__name__)

DOCUMENTS_TABLE = "documents"
NODES_TABLE = "knowledge_nodes"
QUIZ_ITEMS_TABLE = "quiz_items"
UNDERSTANDING_TABLE = "user_knowledge_status"
STUDY_GUIDES_TABLE = "study_guides"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseKnowledgeStore:
    def __init__(self, *, url: str, key: str, bucket: str = "documents") -> None:
        if not url or not key:
            raise ValueError("supabase_config_missing")
        self.client: Client = create_client(url, key)
        self.bucket = bucket

    def _execute(self, operation: str, query: Any) -> list[dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as exc:
            logger.error("supabase %s failed: %s", operation, exc)
            raise StoreError(f"db_error:{operation}:{exc}") from exc
        return list(response.data or [])

    def get_document(self, document_id: str) -> dict[str, Any]:
        rows = self._execute(
            "select_document",
            self.client.table(DOCUMENTS_TABLE).select("*").eq("id", document_id).limit(1),
        )
        if not rows:
            raise NotFoundError("document", document_id)
        return rows[0]

    def update_document(self, document_id: str, fields: dict[str, Any]) -> None:
        payload = {**fields, "updated_at": _now_iso()}
        self._execute(
            "update_document",
            self.client.table(DOCUMENTS_TABLE).update(payload).eq("id", document_id),
        )

    def delete_document(self, document_id: str, file_path: str | None) -> None:
        if file_path:
            try:
                self.client.storage.from_(self.bucket).remove([file_path])
            except Exception as exc:
                # 파일이 남아도 문서 삭제는 계속 진행한다.
                logger.error("storage remove failed bucket=%s path=%s: %s", self.bucket, file_path, exc)
        # 노드, 퀴즈, 이해도 행은 documents FK의 cascade 로 함께 지워진다.
        self._execute(
            "delete_document",
            self.client.table(DOCUMENTS_TABLE).delete().eq("id", document_id),
        )

    def download_file(self, file_path: str) -> bytes:
        try:
            return self.client.storage.from_(self.bucket).download(file_path)
        except Exception as exc:
            logger.error("storage download failed bucket=%s path=%s: %s", self.bucket, file_path, exc)
            raise StoreError(f"db_error:download:{exc}") from exc

    def list_nodes(self, document_id: str) -> list[ConceptNode]:
        rows = self._execute(
            "select_nodes",
            self.client.table(NODES_TABLE).select("*").eq("document_id", document_id),
        )
        return [ConceptNode.from_row(row) for row in rows]

    def delete_nodes(self, document_id: str) -> None:
        self._execute(
            "delete_nodes",
            self.client.table(NODES_TABLE).delete().eq("document_id", document_id),
        )

    def insert_nodes(self, rows: Sequence[dict[str, Any]]) -> list[ConceptNode]:
        if not rows:
            return []
        inserted = self._execute(
            "insert_nodes",
            self.client.table(NODES_TABLE).insert(list(rows)),
        )
        return [ConceptNode.from_row(row) for row in inserted]

    def update_node_parent(self, node_id: str, parent_id: str) -> None:
        self._execute(
            "update_node_parent",
            self.client.table(NODES_TABLE).update({"parent_id": parent_id}).eq("id", node_id),
        )

    def list_ox_items(self, document_id: str) -> list[OXQuizItem]:
        rows = self._execute(
            "select_ox_items",
            self.client.table(QUIZ_ITEMS_TABLE)
            .select("*")
            .eq("document_id", document_id)
            .eq("is_assessment", True),
        )
        return [OXQuizItem.from_row(row) for row in rows]

    def replace_ox_items(self, document_id: str, items: Sequence[OXQuizItem]) -> list[OXQuizItem]:
        self._execute(
            "delete_ox_items",
            self.client.table(QUIZ_ITEMS_TABLE)
            .delete()
            .eq("document_id", document_id)
            .eq("is_assessment", True),
        )
        if not items:
            return []
        rows = [
            {
                "document_id": document_id,
                "node_id": item.node_id,
                "question_type": "true_false",
                "question": item.question,
                "correct_answer": item.correct_answer,
                "explanation": item.explanation,
                "is_assessment": True,
            }
            for item in items
        ]
        inserted = self._execute("insert_ox_items", self.client.table(QUIZ_ITEMS_TABLE).insert(rows))
        return [OXQuizItem.from_row(row) for row in inserted]

    def list_understanding(self, user_id: str, node_ids: Sequence[str]) -> list[Understanding]:
        if not node_ids:
            return []
        rows = self._execute(
            "select_understanding",
            self.client.table(UNDERSTANDING_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .in_("node_id", list(node_ids)),
        )
        return [Understanding.from_row(row) for row in rows]

    def upsert_understanding(self, user_id: str, rows: Sequence[Understanding]) -> None:
        if not rows:
            return
        now = _now_iso()
        payload = [
            {
                "user_id": user_id,
                "node_id": row.node_id,
                "status": row.status,
                "understanding_level": row.understanding_level,
                "assessment_method": row.assessment_method,
                "last_reviewed": now,
                "updated_at": now,
            }
            for row in rows
        ]
        self._execute(
            "upsert_understanding",
            self.client.table(UNDERSTANDING_TABLE).upsert(payload, on_conflict="user_id,node_id"),
        )

    def save_quiz_questions(self, document_id: str, questions: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        if not questions:
            return []
        rows = [
            {
                "document_id": document_id,
                "node_id": question.get("node_id"),
                "question_type": question["type"],
                "question": question["question"],
                "difficulty": question["difficulty"],
                "explanation": question["explanation"],
                "source_quote": question["source_quote"],
                "payload": question,
                "is_assessment": False,
            }
            for question in questions
        ]
        return self._execute("insert_quiz_items", self.client.table(QUIZ_ITEMS_TABLE).insert(rows))

    def save_study_guide(self, document_id: str, user_id: str, guide: dict[str, Any]) -> dict[str, Any]:
        self._execute(
            "delete_study_guide",
            self.client.table(STUDY_GUIDES_TABLE)
            .delete()
            .eq("document_id", document_id)
            .eq("user_id", user_id),
        )
        rows = self._execute(
            "insert_study_guide",
            self.client.table(STUDY_GUIDES_TABLE).insert(
                {
                    "document_id": document_id,
                    "user_id": user_id,
                    "title": guide["title"],
                    "content": guide,
                }
            ),
        )
        return rows[0] if rows else {"document_id": document_id, "user_id": user_id, **guide}
