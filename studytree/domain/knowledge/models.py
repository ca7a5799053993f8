"""Knowledge domain models: pure Python, no DB or HTTP dependencies."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ConceptNode:
    id: str
    document_id: str
    name: str
    parent_id: Optional[str] = None
    description: str = ""
    level: int = 0
    position: int = 0
    prerequisites: list[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ConceptNode":
        return cls(
            id=str(row["id"]),
            document_id=str(row.get("document_id") or ""),
            name=str(row.get("name") or ""),
            parent_id=row.get("parent_id"),
            description=str(row.get("description") or ""),
            level=int(row.get("level") or 0),
            position=int(row.get("position") or 0),
            prerequisites=[str(item) for item in (row.get("prerequisites") or [])],
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "parent_id": self.parent_id,
            "name": self.name,
            "description": self.description,
            "level": self.level,
            "position": self.position,
            "prerequisites": list(self.prerequisites),
        }


@dataclass
class OXQuizItem:
    node_id: str
    question: str
    correct_answer: str  # O | X
    explanation: str = ""
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "OXQuizItem":
        return cls(
            id=row.get("id"),
            node_id=str(row.get("node_id") or ""),
            question=str(row.get("question") or ""),
            correct_answer=str(row.get("correct_answer") or ""),
            explanation=str(row.get("explanation") or ""),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "node_id": self.node_id,
            "question": self.question,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
        }


@dataclass
class Understanding:
    node_id: str
    understanding_level: int  # 0..100
    assessment_method: str = "ox_quiz"

    @property
    def status(self) -> str:
        return status_for_level(self.understanding_level)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Understanding":
        return cls(
            node_id=str(row.get("node_id") or ""),
            understanding_level=int(row.get("understanding_level") or 0),
            assessment_method=str(row.get("assessment_method") or "ox_quiz"),
        )


def status_for_level(level: int) -> str:
    if level >= 80:
        return "known"
    if level >= 50:
        return "unclear"
    return "unknown"
