from typing import Any

from fastapi import APIRouter

from studytree.services.learning.quiz_service import QuizGenerateRequest, generate_quiz
from studytree.services.learning.study_guide_service import StudyGuideRequest, generate_study_guide


router = APIRouter(prefix="/api", tags=["generation"])


@router.post("/quiz/generate")
def quiz_generate(payload: QuizGenerateRequest) -> dict[str, Any]:
    return generate_quiz(payload)


@router.post("/study-guide/generate")
def study_guide_generate(payload: StudyGuideRequest) -> dict[str, Any]:
    return generate_study_guide(payload)
