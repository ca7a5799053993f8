"""Lazily built collaborators shared by the learning services."""
from functools import lru_cache
from typing import NoReturn

from fastapi import HTTPException

from studytree.core.config import get_settings
from studytree.domain.ai import build_ai_service
from studytree.persistence.base import NotFoundError, StoreError
from studytree.persistence.supabase_store import SupabaseKnowledgeStore
from studytree.services.learning.error_policy import build_structured_error_detail
from studytree.services.learning.pipeline_runtime import (
    PipelineFailure,
    ai_error_detail,
    format_pipeline_error_detail,
)


settings = get_settings()


@lru_cache(maxsize=1)
def _get_ai_service():
    return build_ai_service(settings)


@lru_cache(maxsize=1)
def _get_store():
    return SupabaseKnowledgeStore(
        url=settings.supabase_url,
        key=settings.supabase_key,
        bucket=settings.storage_bucket,
    )


def _raise_config_error(kind: str, exc: Exception) -> NoReturn:
    reason = ai_error_detail(exc)
    raise HTTPException(
        status_code=503,
        detail=build_structured_error_detail(
            error_code="config_error",
            message=reason,
            retryable=False,
            detail=f"{kind}_init_failed:config_error:{reason}",
        ),
    ) from exc


def require_ai_service():
    try:
        return _get_ai_service()
    except Exception as exc:
        _raise_config_error("ai_service", exc)


def require_store():
    try:
        return _get_store()
    except Exception as exc:
        _raise_config_error("store", exc)


def raise_pipeline_http_exception(failure: PipelineFailure) -> NoReturn:
    raise HTTPException(
        status_code=failure.status_code,
        detail=build_structured_error_detail(
            error_code=failure.kind,
            message=failure.reason,
            retryable=failure.retryable,
            detail=format_pipeline_error_detail(failure.pipeline, failure.kind, failure.reason),
        ),
    ) from failure


def raise_store_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(
            status_code=404,
            detail=build_structured_error_detail(
                error_code="not_found",
                message=f"{exc.entity} not found",
                retryable=False,
                detail=str(exc),
            ),
        ) from exc
    reason = str(exc)[:260] if isinstance(exc, StoreError) else ai_error_detail(exc)
    raise HTTPException(
        status_code=500,
        detail=build_structured_error_detail(
            error_code="db_error",
            message=reason,
            retryable=False,
            detail=reason,
        ),
    ) from exc


def raise_invalid_state(message: str, detail: str) -> NoReturn:
    raise HTTPException(
        status_code=409,
        detail=build_structured_error_detail(
            error_code="invalid_state",
            message=message,
            retryable=False,
            detail=detail,
        ),
    )
