"""Document lifecycle: PDF → knowledge tree extraction, persistence and deletion."""
import logging
import time
from typing import Any

from studytree.domain.ai.providers.common import DocumentPart, require_fields
from studytree.domain.knowledge.models import ConceptNode
from studytree.persistence.base import NotFoundError, StoreError
from studytree.services.learning import dependencies as deps
from studytree.services.learning.normalizer_validator import (
    as_non_empty_str,
    clean_string_list,
    safe_int,
)
from studytree.services.learning.pipeline_runtime import PipelineFailure, run_ai_with_retry


logger = logging.getLogger(__name__)

KNOWLEDGE_TREE_SYSTEM_PROMPT = (
    "당신은 한국 대학생을 위한 커리큘럼 설계 전문가입니다.\n"
    "학습 자료를 분석해 구조화된 지식 트리를 만듭니다. 항상 한국어로 답하세요.\n"
    "반드시 JSON 객체 하나만 반환하세요."
)

KNOWLEDGE_TREE_USER_PROMPT = (
    "첨부된 PDF 학습 자료를 분석해 핵심 개념의 지식 트리를 만드세요.\n"
    "- 각 개념은 고유한 id와 이름(name)을 가집니다. 이름은 문서 안에서 중복되지 않아야 합니다.\n"
    "- parent_id는 상위 개념의 id이며 최상위 개념은 null입니다.\n"
    "- level은 0부터 시작하는 깊이/난이도입니다.\n"
    "- prerequisites에는 먼저 알아야 하는 다른 개념의 이름(name)을 나열합니다.\n"
    "- 개념 수는 5~30개로 유지하세요.\n"
    '형식: {"nodes":[{"id":"n1","parent_id":null,"name":"개념","description":"설명",'
    '"level":0,"prerequisites":[]}]}'
)


def _normalize_knowledge_nodes(raw: dict[str, Any]) -> list[dict[str, Any]]:
    require_fields(raw, ["nodes"], "knowledge_tree")
    nodes = raw.get("nodes")
    if not isinstance(nodes, list):
        raise ValueError("schema_mismatch:knowledge_tree nodes is not a list")

    normalized: list[dict[str, Any]] = []
    for position, item in enumerate(nodes):
        if not isinstance(item, dict):
            logger.warning("skipping invalid knowledge node at index %d: %r", position, item)
            continue
        temp_id = item.get("id")
        temp_parent = item.get("parent_id")
        normalized.append(
            {
                "temp_id": str(temp_id) if temp_id not in (None, "") else None,
                "temp_parent_id": str(temp_parent) if temp_parent not in (None, "") else None,
                "name": as_non_empty_str(item.get("name"), "Untitled Node"),
                "description": as_non_empty_str(item.get("description"), ""),
                "level": max(0, safe_int(item.get("level"), 0)),
                "position": position,
                "prerequisites": clean_string_list(item.get("prerequisites")),
            }
        )

    if not normalized:
        raise ValueError("quality_validation_failed:knowledge_tree has no nodes")
    return normalized


def _extract_knowledge_tree(ai_service, document: DocumentPart) -> list[dict[str, Any]]:
    raw = ai_service.generate_json(
        system_prompt=KNOWLEDGE_TREE_SYSTEM_PROMPT,
        user_prompt=KNOWLEDGE_TREE_USER_PROMPT,
        document=document,
        temperature=0.3,
    )
    return _normalize_knowledge_nodes(raw)


def _persist_nodes(store, document_id: str, extracted: list[dict[str, Any]]) -> list[ConceptNode]:
    store.delete_nodes(document_id)
    rows = [
        {
            "document_id": document_id,
            "parent_id": None,
            "name": item["name"],
            "description": item["description"],
            "level": item["level"],
            "position": item["position"],
            "prerequisites": item["prerequisites"],
        }
        for item in extracted
    ]
    saved = store.insert_nodes(rows)

    id_mapping: dict[str, str] = {}
    for item, node in zip(extracted, saved):
        if item["temp_id"]:
            id_mapping[item["temp_id"]] = node.id

    for item, node in zip(extracted, saved):
        parent_temp = item["temp_parent_id"]
        if not parent_temp:
            continue
        parent_id = id_mapping.get(parent_temp)
        if parent_id is None or parent_id == node.id:
            logger.warning("unresolved parent %s for node %r", parent_temp, node.name)
            continue
        store.update_node_parent(node.id, parent_id)
        node.parent_id = parent_id
    return saved


def _mark_failed(store, document_id: str) -> None:
    try:
        store.update_document(document_id, {"status": "failed"})
    except StoreError:
        logger.exception("could not mark document %s as failed", document_id)


def analyze_document(document_id: str) -> dict[str, Any]:
    store = deps.require_store()
    try:
        document = store.get_document(document_id)
    except (NotFoundError, StoreError) as exc:
        deps.raise_store_http_exception(exc)

    file_path = as_non_empty_str(document.get("file_path"))
    if not file_path:
        deps.raise_invalid_state("Document has no uploaded file", f"document_file_missing:{document_id}")

    ai_service = deps.require_ai_service()
    started = time.monotonic()
    logger.info("document analysis started document_id=%s", document_id)
    try:
        store.update_document(document_id, {"status": "processing"})
        pdf = DocumentPart(data=store.download_file(file_path))
        extracted, attempt_count = run_ai_with_retry(
            lambda _attempt: _extract_knowledge_tree(ai_service, pdf),
            pipeline="knowledge_tree",
            max_attempts=deps.settings.ai_max_attempts,
            retryable_kinds={"rate_limited", "timeout", "schema_mismatch", "quality_failed"},
            initial_delay_ms=deps.settings.ai_retry_initial_delay_ms,
        )
        saved = _persist_nodes(store, document_id, extracted)
        store.update_document(document_id, {"status": "completed"})
    except PipelineFailure as failure:
        _mark_failed(store, document_id)
        deps.raise_pipeline_http_exception(failure)
    except StoreError as exc:
        _mark_failed(store, document_id)
        deps.raise_store_http_exception(exc)

    logger.info(
        "document analysis completed document_id=%s nodes=%d attempts=%d elapsed_ms=%d",
        document_id,
        len(saved),
        attempt_count,
        int((time.monotonic() - started) * 1000),
    )
    return {
        "documentId": document_id,
        "status": "completed",
        "nodeCount": len(saved),
        "nodes": [node.as_dict() for node in saved],
        "meta": {"attempt_count": attempt_count},
    }


def delete_document(document_id: str) -> dict[str, Any]:
    store = deps.require_store()
    try:
        document = store.get_document(document_id)
        file_path = as_non_empty_str(document.get("file_path")) or None
        store.delete_document(document_id, file_path)
    except (NotFoundError, StoreError) as exc:
        deps.raise_store_http_exception(exc)

    logger.info("document deleted document_id=%s file_path=%s", document_id, file_path)
    return {"documentId": document_id, "success": True}
