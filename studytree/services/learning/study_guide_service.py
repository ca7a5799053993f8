"""Personalized study guide generation from per-concept understanding."""
import json
import logging
from typing import Any

from pydantic import BaseModel

from studytree.domain.ai.providers.common import DocumentPart, require_fields
from studytree.domain.knowledge.models import ConceptNode, Understanding
from studytree.domain.knowledge.sequencer import sequence
from studytree.persistence.base import KnowledgeStore, NotFoundError, StoreError
from studytree.services.learning import dependencies as deps
from studytree.services.learning.normalizer_validator import as_non_empty_str, clean_string_list
from studytree.services.learning.pipeline_runtime import PipelineFailure, run_ai_with_retry


logger = logging.getLogger(__name__)


class StudyGuideRequest(BaseModel):
    documentId: str
    userId: str


def annotate_concepts(
    nodes: list[ConceptNode],
    understanding: dict[str, Understanding],
) -> list[dict[str, Any]]:
    annotated: list[dict[str, Any]] = []
    for node in nodes:
        record = understanding.get(node.id)
        annotated.append(
            {
                "node_id": node.id,
                "name": node.name,
                "description": node.description,
                "prerequisites": node.prerequisites,
                "understanding_level": record.understanding_level if record else 0,
                "status": record.status if record else "unknown",
            }
        )
    return annotated


def normalize_study_guide(raw: dict[str, Any]) -> dict[str, Any]:
    require_fields(raw, ["title", "sections", "summary"], "study_guide")
    raw_sections = raw.get("sections")
    sections: list[dict[str, Any]] = []
    for section in raw_sections if isinstance(raw_sections, list) else []:
        if not isinstance(section, dict):
            continue
        heading = as_non_empty_str(section.get("heading"))
        content = as_non_empty_str(section.get("content"))
        if not heading or not content:
            continue
        sections.append(
            {
                "heading": heading,
                "content": content,
                "key_points": clean_string_list(section.get("key_points")),
            }
        )
    if not sections:
        raise ValueError("quality_validation_failed:study_guide has no sections")

    guide: dict[str, Any] = {
        "title": as_non_empty_str(raw.get("title"), "맞춤 학습 가이드"),
        "sections": sections,
        "summary": as_non_empty_str(raw.get("summary")),
    }
    references = clean_string_list(raw.get("references"))
    if references:
        guide["references"] = references
    return guide


def _build_study_guide_prompts(document_title: str, concepts: list[dict[str, Any]]) -> tuple[str, str]:
    system_prompt = (
        "당신은 한국 대학생을 위한 학습 자료 제작 전문가입니다.\n"
        "명확한 구조와 핵심 포인트를 갖춘 학습 가이드를 한국어로 작성하세요.\n"
        "반드시 JSON 객체 하나만 반환하세요."
    )
    user_prompt = (
        f"document_title={document_title}\n"
        f"concepts={json.dumps(concepts, ensure_ascii=False)}\n"
        "concepts는 선수 지식 순서로 정렬되어 있습니다. 이 순서를 유지하세요.\n"
        "status가 unknown 인 개념은 기초부터 자세히, unclear 는 헷갈리는 부분 위주로, "
        "known 은 짧게 복습하도록 설명하세요.\n"
        '형식: {"title":"...","sections":[{"heading":"...","content":"...","key_points":["..."]}],'
        '"summary":"...","references":["..."]}'
    )
    return system_prompt, user_prompt


def build_study_guide_for_document(store: KnowledgeStore, ai_service, document_id: str, user_id: str) -> dict[str, Any]:
    """Generate and persist a study guide. Raises PipelineFailure / StoreError."""
    document = store.get_document(document_id)
    nodes = sequence(store.list_nodes(document_id))
    records = store.list_understanding(user_id, [node.id for node in nodes])
    concepts = annotate_concepts(nodes, {record.node_id: record for record in records})
    system_prompt, user_prompt = _build_study_guide_prompts(
        as_non_empty_str(document.get("title"), "학습 자료"),
        concepts,
    )
    file_path = as_non_empty_str(document.get("file_path"))
    pdf = DocumentPart(data=store.download_file(file_path)) if file_path else None

    guide, attempt_count = run_ai_with_retry(
        lambda _attempt: normalize_study_guide(
            ai_service.generate_json(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                document=pdf,
                temperature=0.7,
            )
        ),
        pipeline="study_guide_generate",
        max_attempts=deps.settings.ai_max_attempts,
        retryable_kinds={"rate_limited", "timeout", "schema_mismatch", "quality_failed"},
        initial_delay_ms=deps.settings.ai_retry_initial_delay_ms,
    )
    saved = store.save_study_guide(document_id, user_id, guide)
    logger.info(
        "study guide generated document_id=%s sections=%d attempts=%d",
        document_id,
        len(guide["sections"]),
        attempt_count,
    )
    return {
        "documentId": document_id,
        "studyGuide": {**guide, "id": saved.get("id")},
        "meta": {"attempt_count": attempt_count},
    }


def generate_study_guide(payload: StudyGuideRequest) -> dict[str, Any]:
    store = deps.require_store()
    ai_service = deps.require_ai_service()
    try:
        return build_study_guide_for_document(store, ai_service, payload.documentId, payload.userId)
    except PipelineFailure as failure:
        deps.raise_pipeline_http_exception(failure)
    except (NotFoundError, StoreError) as exc:
        deps.raise_store_http_exception(exc)
