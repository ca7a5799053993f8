from typing import Any

from fastapi import APIRouter

from studytree.services.learning.analysis_service import analyze_document, delete_document
from studytree.services.learning.assessment_service import (
    AnswerRequest,
    CompleteAssessmentRequest,
    complete_assessment,
    generate_ox_quiz,
    get_assessment_plan,
    record_answer,
)


router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.delete("/{document_id}")
def documents_delete(document_id: str) -> dict[str, Any]:
    return delete_document(document_id)


@router.post("/{document_id}/analyze")
def documents_analyze(document_id: str) -> dict[str, Any]:
    return analyze_document(document_id)


@router.get("/{document_id}/assessment")
def documents_assessment_plan(document_id: str) -> dict[str, Any]:
    return get_assessment_plan(document_id)


@router.post("/{document_id}/assessment/ox-quiz")
def documents_assessment_ox_quiz(document_id: str) -> dict[str, Any]:
    return generate_ox_quiz(document_id)


@router.post("/{document_id}/assessment/answers")
def documents_assessment_answer(document_id: str, payload: AnswerRequest) -> dict[str, Any]:
    return record_answer(document_id, payload)


@router.post("/{document_id}/complete-assessment")
def documents_complete_assessment(document_id: str, payload: CompleteAssessmentRequest) -> dict[str, Any]:
    return complete_assessment(document_id, payload)
