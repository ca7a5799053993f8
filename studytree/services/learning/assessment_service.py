"""O/X knowledge assessment: sequencing, answers, completion."""
from concurrent.futures import ThreadPoolExecutor
import json
import logging
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

from studytree.domain.ai.providers.common import require_fields
from studytree.domain.knowledge.assessment import (
    find_dependents_to_skip,
    next_assessable_index,
    normalize_ox_answer,
    split_by_understanding,
)
from studytree.domain.knowledge.models import ConceptNode, OXQuizItem, Understanding
from studytree.domain.knowledge.sequencer import sequence, sequence_with_report
from studytree.persistence.base import NotFoundError, StoreError
from studytree.services.learning import dependencies as deps
from studytree.services.learning.normalizer_validator import as_non_empty_str
from studytree.services.learning.pipeline_runtime import (
    PipelineFailure,
    ai_error_detail,
    classify_ai_failure,
    run_ai_with_retry,
)
from studytree.services.learning.quiz_service import build_quiz_for_document
from studytree.services.learning.study_guide_service import build_study_guide_for_document


logger = logging.getLogger(__name__)

KNOWN_LEVEL = 100
UNKNOWN_LEVEL = 0


class AnswerRequest(BaseModel):
    userId: str
    nodeId: str
    answer: Literal["O", "X"]
    assessedNodeIds: list[str] = Field(default_factory=list)
    skippedNodeIds: list[str] = Field(default_factory=list)


class CompleteAssessmentRequest(BaseModel):
    userId: str


def _load_document(store, document_id: str) -> dict[str, Any]:
    try:
        return store.get_document(document_id)
    except (NotFoundError, StoreError) as exc:
        deps.raise_store_http_exception(exc)


def _load_nodes(store, document_id: str) -> list[ConceptNode]:
    try:
        return store.list_nodes(document_id)
    except StoreError as exc:
        deps.raise_store_http_exception(exc)


def get_assessment_plan(document_id: str) -> dict[str, Any]:
    store = deps.require_store()
    document = _load_document(store, document_id)
    status = str(document.get("status") or "")
    if status != "completed":
        # 분석이 끝나지 않았으면 UI가 상태를 폴링하며 기다린다.
        return {"documentId": document_id, "status": "pending", "documentStatus": status, "nodes": []}

    raw_nodes = _load_nodes(store, document_id)
    if not raw_nodes:
        return {"documentId": document_id, "status": "pending", "documentStatus": status, "nodes": []}

    nodes, report = sequence_with_report(raw_nodes)
    try:
        items = {item.node_id: item for item in store.list_ox_items(document_id)}
    except StoreError as exc:
        deps.raise_store_http_exception(exc)

    logger.info(
        "assessment plan document_id=%s nodes=%d roots=%d quiz_items=%d",
        document_id,
        len(nodes),
        sum(1 for node in nodes if not node.prerequisites),
        len(items),
    )
    return {
        "documentId": document_id,
        "status": "ready",
        "documentStatus": status,
        "nodes": [node.as_dict() for node in nodes],
        "quizItems": [items[node.id].as_dict() for node in nodes if node.id in items],
        "sequenceReport": report.as_dict(),
    }


def normalize_ox_items(raw: dict[str, Any], known_node_ids: set[str]) -> list[OXQuizItem]:
    require_fields(raw, ["quiz_items"], "ox_quiz")
    raw_items = raw.get("quiz_items")
    if not isinstance(raw_items, list):
        raise ValueError("schema_mismatch:ox_quiz quiz_items is not a list")

    items: dict[str, OXQuizItem] = {}
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        node_id = item.get("node_id")
        question = as_non_empty_str(item.get("question"))
        answer = normalize_ox_answer(item.get("correct_answer"))
        if not isinstance(node_id, str) or node_id not in known_node_ids:
            continue
        if not question or answer is None or node_id in items:
            continue
        items[node_id] = OXQuizItem(
            node_id=node_id,
            question=question,
            correct_answer=answer,
            explanation=as_non_empty_str(item.get("explanation")),
        )
    if not items:
        raise ValueError("ai_response_empty:ox_quiz has no usable items")
    return list(items.values())


def _build_ox_prompts(nodes: list[ConceptNode]) -> tuple[str, str]:
    system_prompt = (
        "당신은 한국 대학생의 이해도를 평가하는 O/X 문제 출제 전문가입니다.\n"
        "문제와 해설은 한국어로 작성하세요.\n"
        "반드시 JSON 객체 하나만 반환하세요."
    )
    concepts = [
        {"node_id": node.id, "name": node.name, "description": node.description}
        for node in nodes
    ]
    user_prompt = (
        f"concepts={json.dumps(concepts, ensure_ascii=False)}\n"
        "각 개념마다 정확히 하나의 O/X 문제를 만드세요. 개념을 이해했는지 판단할 수 있어야 합니다.\n"
        '형식: {"quiz_items":[{"node_id":"...","question":"...","correct_answer":"O","explanation":"..."}]}'
    )
    return system_prompt, user_prompt


def generate_ox_quiz(document_id: str) -> dict[str, Any]:
    store = deps.require_store()
    _load_document(store, document_id)
    nodes = sequence(_load_nodes(store, document_id))
    if not nodes:
        deps.raise_invalid_state("Document has no analyzed concepts", f"knowledge_nodes_missing:{document_id}")

    ai_service = deps.require_ai_service()
    system_prompt, user_prompt = _build_ox_prompts(nodes)
    known_ids = {node.id for node in nodes}
    try:
        items, attempt_count = run_ai_with_retry(
            lambda _attempt: normalize_ox_items(
                ai_service.generate_json(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    temperature=0.4,
                ),
                known_ids,
            ),
            pipeline="ox_quiz_generate",
            max_attempts=deps.settings.ai_max_attempts,
            initial_delay_ms=deps.settings.ai_retry_initial_delay_ms,
        )
        saved = store.replace_ox_items(document_id, items)
    except PipelineFailure as failure:
        deps.raise_pipeline_http_exception(failure)
    except StoreError as exc:
        deps.raise_store_http_exception(exc)

    order = {node.id: index for index, node in enumerate(nodes)}
    saved = sorted(saved or items, key=lambda item: order.get(item.node_id, len(order)))
    if len(saved) < len(nodes):
        logger.warning("ox quiz covers %d of %d nodes document_id=%s", len(saved), len(nodes), document_id)
    return {
        "documentId": document_id,
        "quizItems": [item.as_dict() for item in saved],
        "meta": {"attempt_count": attempt_count},
    }


def record_answer(document_id: str, payload: AnswerRequest) -> dict[str, Any]:
    store = deps.require_store()
    nodes = sequence(_load_nodes(store, document_id))
    if payload.nodeId not in {node.id for node in nodes}:
        deps.raise_store_http_exception(NotFoundError("knowledge_node", payload.nodeId))
    try:
        items = {item.node_id: item for item in store.list_ox_items(document_id)}
    except StoreError as exc:
        deps.raise_store_http_exception(exc)
    item = items.get(payload.nodeId)
    if item is None:
        deps.raise_invalid_state("No O/X question exists for this concept", f"ox_item_missing:{payload.nodeId}")

    correct = payload.answer == item.correct_answer
    assessed = set(payload.assessedNodeIds) | {payload.nodeId}
    skipped = set(payload.skippedNodeIds)
    rows = [
        Understanding(
            node_id=payload.nodeId,
            understanding_level=KNOWN_LEVEL if correct else UNKNOWN_LEVEL,
            assessment_method="ox_quiz",
        )
    ]

    newly_skipped: list[str] = []
    if not correct:
        newly_skipped = [
            node_id
            for node_id in find_dependents_to_skip(nodes, payload.nodeId, assessed)
            if node_id not in skipped
        ]
        rows.extend(
            Understanding(node_id=node_id, understanding_level=UNKNOWN_LEVEL, assessment_method="skipped")
            for node_id in newly_skipped
        )
        skipped.update(newly_skipped)

    try:
        store.upsert_understanding(payload.userId, rows)
    except StoreError as exc:
        deps.raise_store_http_exception(exc)

    next_index = next_assessable_index(nodes, 0, assessed, skipped)
    return {
        "documentId": document_id,
        "nodeId": payload.nodeId,
        "correct": correct,
        "explanation": item.explanation,
        "skippedNodeIds": newly_skipped,
        "nextNodeId": nodes[next_index].id if next_index >= 0 else None,
        "finished": next_index < 0,
    }


def _run_branch(name: str, call: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    try:
        result = call()
    except PipelineFailure as failure:
        logger.error("%s failed after assessment: %s", name, failure)
        return {"ok": False, "error_code": failure.kind, "message": failure.reason}
    except Exception as exc:
        reason = ai_error_detail(exc)
        code = "db_error" if isinstance(exc, (StoreError, NotFoundError)) else classify_ai_failure(reason)[0]
        logger.exception("%s failed after assessment", name)
        return {"ok": False, "error_code": code, "message": reason}
    return {"ok": True, "result": result}


def complete_assessment(document_id: str, payload: CompleteAssessmentRequest) -> dict[str, Any]:
    store = deps.require_store()
    ai_service = deps.require_ai_service()
    _load_document(store, document_id)
    try:
        store.update_document(document_id, {"assessment_completed": True})
        nodes = store.list_nodes(document_id)
        records = store.list_understanding(payload.userId, [node.id for node in nodes])
    except StoreError as exc:
        deps.raise_store_http_exception(exc)

    weak, strong = split_by_understanding(
        {record.node_id: record.understanding_level for record in records},
        deps.settings.weak_understanding_threshold,
    )
    logger.info(
        "assessment completed document_id=%s nodes=%d assessed=%d weak=%d strong=%d",
        document_id,
        len(nodes),
        len(records),
        len(weak),
        len(strong),
    )

    # 학습 가이드와 연습 문제는 서로 독립적이므로 동시에 생성한다.
    with ThreadPoolExecutor(max_workers=2) as pool:
        guide_future = pool.submit(
            _run_branch,
            "study_guide",
            lambda: build_study_guide_for_document(store, ai_service, document_id, payload.userId),
        )
        quiz_future = pool.submit(
            _run_branch,
            "practice_quiz",
            lambda: build_quiz_for_document(
                store,
                ai_service,
                document_id,
                question_count=deps.settings.practice_question_count,
                difficulty="medium",
                question_types=["multiple_choice"],
                focus_node_ids=weak,
            ),
        )
        guide_result = guide_future.result()
        quiz_result = quiz_future.result()

    return {
        "documentId": document_id,
        "weakNodeIds": weak,
        "strongNodeIds": strong,
        "studyGuide": guide_result,
        "practiceQuiz": quiz_result,
        "success": guide_result["ok"] and quiz_result["ok"],
    }
