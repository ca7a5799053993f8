"""Practice quiz generation with multiple question types."""
import json
import logging
from typing import Any, Callable, Collection

from pydantic import BaseModel, Field

from studytree.domain.ai.providers.common import DocumentPart, require_fields
from studytree.domain.knowledge.assessment import normalize_ox_answer
from studytree.domain.knowledge.models import ConceptNode
from studytree.domain.knowledge.sequencer import sequence
from studytree.persistence.base import KnowledgeStore, NotFoundError, StoreError
from studytree.services.learning import dependencies as deps
from studytree.services.learning.normalizer_validator import (
    as_non_empty_str,
    clean_string_list,
    normalize_difficulty,
    normalize_option_text,
    normalize_options,
    safe_int,
)
from studytree.services.learning.pipeline_runtime import PipelineFailure, run_ai_with_retry


logger = logging.getLogger(__name__)

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer", "fill_in_blank", "matching")
BLANK_MARKER = "___"


class QuizGenerateRequest(BaseModel):
    documentId: str
    questionCount: int = Field(default=10, ge=1, le=30)
    difficulty: str = "medium"
    questionTypes: list[str] = Field(default_factory=lambda: ["multiple_choice"])
    focusNodeIds: list[str] = Field(default_factory=list)


def _normalize_multiple_choice(item: dict[str, Any]) -> dict[str, Any] | None:
    options = normalize_options(item.get("options"))
    if len(options) < 2:
        return None
    raw_answer = item.get("correct_answer")
    if isinstance(raw_answer, int) and not isinstance(raw_answer, bool):
        answer = options[raw_answer] if 0 <= raw_answer < len(options) else ""
    else:
        answer = normalize_option_text(raw_answer)
    if answer not in options:
        return None
    return {"options": options, "correct_answer": answer}


def _normalize_true_false(item: dict[str, Any]) -> dict[str, Any] | None:
    answer = normalize_ox_answer(item.get("correct_answer"))
    if answer is None:
        return None
    return {"correct_answer": answer == "O"}


def _normalize_short_answer(item: dict[str, Any]) -> dict[str, Any] | None:
    answers = clean_string_list(item.get("acceptable_answers"))
    if not answers:
        single = as_non_empty_str(item.get("correct_answer"))
        answers = [single] if single else []
    if not answers:
        return None
    normalized: dict[str, Any] = {"acceptable_answers": answers}
    hint = as_non_empty_str(item.get("hint"))
    if hint:
        normalized["hint"] = hint
    return normalized


def _normalize_fill_in_blank(item: dict[str, Any]) -> dict[str, Any] | None:
    template = as_non_empty_str(item.get("template"))
    if BLANK_MARKER not in template:
        return None
    raw_blanks = item.get("blanks")
    blanks: list[dict[str, Any]] = []
    for idx, blank in enumerate(raw_blanks if isinstance(raw_blanks, list) else []):
        if not isinstance(blank, dict):
            continue
        answer = as_non_empty_str(blank.get("answer"))
        if not answer:
            continue
        blanks.append(
            {
                "position": safe_int(blank.get("position"), idx),
                "answer": answer,
                "alternatives": clean_string_list(blank.get("alternatives")),
            }
        )
    if not blanks:
        return None
    return {"template": template, "blanks": blanks}


def _normalize_matching(item: dict[str, Any]) -> dict[str, Any] | None:
    left = clean_string_list(item.get("left_items"))
    right = clean_string_list(item.get("right_items"))
    if len(left) < 2 or len(left) != len(right):
        return None

    raw_pairs = item.get("correct_pairs")
    pairs: list[dict[str, int]] = []
    used_left: set[int] = set()
    for pair in raw_pairs if isinstance(raw_pairs, list) else []:
        if not isinstance(pair, dict):
            return None
        left_index = safe_int(pair.get("left_index"), -1)
        right_index = safe_int(pair.get("right_index"), -1)
        if not (0 <= left_index < len(left) and 0 <= right_index < len(right)):
            return None
        if left_index in used_left:
            return None
        used_left.add(left_index)
        pairs.append({"left_index": left_index, "right_index": right_index})
    if len(pairs) != len(left):
        return None
    return {"left_items": left, "right_items": right, "correct_pairs": pairs}


_TYPE_NORMALIZERS: dict[str, Callable[[dict[str, Any]], dict[str, Any] | None]] = {
    "multiple_choice": _normalize_multiple_choice,
    "true_false": _normalize_true_false,
    "short_answer": _normalize_short_answer,
    "fill_in_blank": _normalize_fill_in_blank,
    "matching": _normalize_matching,
}


def normalize_question(item: Any, known_node_ids: Collection[str]) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None
    question_type = str(item.get("type") or "multiple_choice").strip().lower()
    normalizer = _TYPE_NORMALIZERS.get(question_type)
    question = as_non_empty_str(item.get("question"))
    if normalizer is None or not question:
        return None
    specific = normalizer(item)
    if specific is None:
        return None

    node_id = item.get("node_id")
    return {
        "type": question_type,
        "question": question,
        "explanation": as_non_empty_str(item.get("explanation")),
        "source_quote": as_non_empty_str(item.get("source_quote")),
        "difficulty": normalize_difficulty(item.get("difficulty")),
        "node_id": node_id if isinstance(node_id, str) and node_id in known_node_ids else None,
        **specific,
    }


def normalize_questions(
    raw: dict[str, Any],
    known_node_ids: Collection[str],
    limit: int,
    *,
    allowed_types: Collection[str] | None = None,
) -> tuple[list[dict[str, Any]], int]:
    require_fields(raw, ["questions"], "quiz")
    items = raw.get("questions")
    if not isinstance(items, list):
        raise ValueError("schema_mismatch:quiz questions is not a list")

    normalized: list[dict[str, Any]] = []
    dropped = 0
    for item in items:
        question = normalize_question(item, known_node_ids)
        # 요청하지 않은 유형의 문제는 버린다.
        if question is None or (allowed_types and question["type"] not in allowed_types):
            dropped += 1
            continue
        normalized.append(question)
    if not normalized:
        raise ValueError("quality_validation_failed:quiz has no valid questions")
    return normalized[:limit], dropped


def _normalize_question_types(values: list[str]) -> list[str]:
    selected = [value for value in dict.fromkeys(str(v).strip().lower() for v in values) if value in QUESTION_TYPES]
    return selected or ["multiple_choice"]


def _build_quiz_prompts(
    nodes: list[ConceptNode],
    *,
    question_count: int,
    difficulty: str,
    question_types: list[str],
    focus_node_ids: Collection[str],
) -> tuple[str, str]:
    system_prompt = (
        "당신은 한국 대학생을 위한 퀴즈 출제 전문가입니다.\n"
        "문제, 보기, 해설은 모두 한국어로 작성하고 암기보다 이해를 확인하세요.\n"
        "반드시 JSON 객체 하나만 반환하세요."
    )
    concepts = [
        {
            "node_id": node.id,
            "name": node.name,
            "description": node.description,
            "prerequisites": node.prerequisites,
            "focus": node.id in focus_node_ids,
        }
        for node in nodes
    ]
    user_prompt = (
        f"question_count={question_count}\n"
        f"difficulty={difficulty}\n"
        f"question_types={','.join(question_types)}\n"
        f"concepts={json.dumps(concepts, ensure_ascii=False)}\n"
        "focus=true 인 개념을 우선 출제하고, 각 문제에는 관련 개념의 node_id를 넣으세요.\n"
        "첨부된 PDF 본문에서 근거 문장을 source_quote로 인용하세요.\n"
        "유형별 필드: multiple_choice(options, correct_answer), true_false(correct_answer: true/false), "
        "short_answer(acceptable_answers, hint), fill_in_blank(template에 ___ 표시, blanks[{position, answer, alternatives}]), "
        "matching(left_items, right_items, correct_pairs[{left_index, right_index}]).\n"
        '형식: {"questions":[{"type":"multiple_choice","question":"...","options":["..."],'
        '"correct_answer":"...","explanation":"...","source_quote":"...","difficulty":"medium","node_id":"..."}]}'
    )
    return system_prompt, user_prompt


def build_quiz_for_document(
    store: KnowledgeStore,
    ai_service,
    document_id: str,
    *,
    question_count: int,
    difficulty: str = "medium",
    question_types: list[str] | None = None,
    focus_node_ids: Collection[str] = (),
) -> dict[str, Any]:
    """Generate, normalize and persist a quiz. Raises PipelineFailure / StoreError."""
    document = store.get_document(document_id)
    nodes = sequence(store.list_nodes(document_id))
    known_ids = {node.id for node in nodes}
    types = _normalize_question_types(question_types or [])
    system_prompt, user_prompt = _build_quiz_prompts(
        nodes,
        question_count=question_count,
        difficulty=normalize_difficulty(difficulty),
        question_types=types,
        focus_node_ids=set(focus_node_ids),
    )
    file_path = as_non_empty_str(document.get("file_path"))
    pdf = DocumentPart(data=store.download_file(file_path)) if file_path else None

    (questions, dropped), attempt_count = run_ai_with_retry(
        lambda _attempt: normalize_questions(
            ai_service.generate_json(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                document=pdf,
                temperature=0.5,
            ),
            known_ids,
            question_count,
            allowed_types=types,
        ),
        pipeline="quiz_generate",
        max_attempts=deps.settings.ai_max_attempts,
        retryable_kinds={"rate_limited", "timeout", "schema_mismatch", "quality_failed"},
        initial_delay_ms=deps.settings.ai_retry_initial_delay_ms,
    )
    if dropped:
        logger.warning("quiz for document %s dropped %d invalid questions", document_id, dropped)
    saved = store.save_quiz_questions(document_id, questions)
    logger.info("quiz generated document_id=%s questions=%d", document_id, len(questions))
    return {
        "documentId": document_id,
        "questions": questions,
        "questionsGenerated": len(saved) or len(questions),
        "meta": {"attempt_count": attempt_count, "dropped": dropped},
    }


def generate_quiz(payload: QuizGenerateRequest) -> dict[str, Any]:
    store = deps.require_store()
    ai_service = deps.require_ai_service()
    try:
        return build_quiz_for_document(
            store,
            ai_service,
            payload.documentId,
            question_count=payload.questionCount,
            difficulty=payload.difficulty,
            question_types=payload.questionTypes,
            focus_node_ids=payload.focusNodeIds,
        )
    except PipelineFailure as failure:
        deps.raise_pipeline_http_exception(failure)
    except (NotFoundError, StoreError) as exc:
        deps.raise_store_http_exception(exc)
