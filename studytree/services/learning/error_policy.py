import re
from typing import Any

from fastapi import HTTPException


KNOWN_ERROR_CODES = {
    "schema_mismatch",
    "rate_limited",
    "timeout",
    "quality_failed",
    "config_error",
    "empty_output",
    "provider_error",
    "db_error",
    "not_found",
    "invalid_state",
    "unknown",
}

RETRYABLE_ERROR_CODES = {
    "schema_mismatch",
    "rate_limited",
    "timeout",
    "quality_failed",
}

_DEFAULT_MESSAGES = {
    "schema_mismatch": "AI response schema mismatch",
    "rate_limited": "AI provider rate limited the request",
    "timeout": "AI request timed out",
    "quality_failed": "Generated output did not pass quality checks",
    "config_error": "Service configuration error",
    "empty_output": "AI returned empty content",
    "provider_error": "AI provider request failed",
    "db_error": "Failed to read or persist data",
    "not_found": "Requested resource was not found",
    "invalid_state": "Resource is not in a state that allows this action",
    "unknown": "Request failed",
}

_PIPELINE_FAILURE_PATTERN = re.compile(r"^[a-z0-9_]+_failed:([a-z_]+):(.*)$")
_NOT_FOUND_PATTERN = re.compile(r"^([a-z_]+)_not_found:(.*)$")


def normalize_error_code(value: Any) -> str:
    raw = str(value or "").strip().lower()
    if raw in KNOWN_ERROR_CODES:
        return raw
    return "unknown"


def _squash(value: Any) -> str:
    return " ".join(str(value or "").split()).strip()


def _build_message(code: str, reason: str) -> str:
    message = _squash(reason)
    if message:
        return message[:260]
    return _DEFAULT_MESSAGES.get(code, "Request failed")


def build_structured_error_detail(
    *,
    error_code: str,
    message: str | None = None,
    retryable: bool | None = None,
    detail: Any = None,
) -> dict[str, Any]:
    code = normalize_error_code(error_code)
    message_text = _squash(message)
    if not message_text:
        message_text = _build_message(code, str(detail or ""))
    if retryable is None:
        retryable = code in RETRYABLE_ERROR_CODES

    return {
        "error_code": code,
        "message": message_text[:260],
        "retryable": bool(retryable),
        "detail": _squash(detail) or message_text,
    }


def parse_error_detail(detail: Any) -> tuple[str, str, str]:
    """Best-effort (code, message, detail) for plain-string HTTPException details."""
    text = _squash(detail)
    if not text:
        return "unknown", _build_message("unknown", ""), ""

    match = _PIPELINE_FAILURE_PATTERN.match(text)
    if match:
        code = normalize_error_code(match.group(1))
        if code == "unknown":
            code = "provider_error"
        return code, _build_message(code, match.group(2)), text

    not_found = _NOT_FOUND_PATTERN.match(text)
    if not_found:
        return "not_found", f"{not_found.group(1)} not found: {not_found.group(2)}", text

    token = text.split(":", 1)[0].strip().lower()
    token_code = normalize_error_code(token)
    if token_code != "unknown":
        reason = text.split(":", 1)[1] if ":" in text else ""
        return token_code, _build_message(token_code, reason), text

    return "unknown", _build_message("unknown", text), text


def _payload_from_detail_dict(detail: dict[str, Any]) -> tuple[str, str, bool, str]:
    code = normalize_error_code(detail.get("error_code"))
    inferred = ""
    if code == "unknown":
        code, _, inferred = parse_error_detail(detail.get("detail"))
    message = _squash(detail.get("message")) or _build_message(code, detail.get("detail") or "")
    retryable = bool(detail.get("retryable")) if "retryable" in detail else code in RETRYABLE_ERROR_CODES
    detail_text = str(detail.get("detail") or "").strip() or inferred or message
    return code, message[:260], retryable, detail_text


def build_http_error_payload(exc: HTTPException, trace_id: str) -> dict[str, Any]:
    detail = exc.detail

    if isinstance(detail, dict):
        code, message, retryable, detail_text = _payload_from_detail_dict(detail)
    else:
        code, message, detail_text = parse_error_detail(detail)
        retryable = code in RETRYABLE_ERROR_CODES

    return {
        "error_code": code,
        "message": message,
        "retryable": retryable,
        "trace_id": trace_id,
        "detail": detail_text,
    }


def build_unexpected_error_payload(trace_id: str) -> dict[str, Any]:
    return {
        "error_code": "unknown",
        "message": "Unexpected server error",
        "retryable": False,
        "trace_id": trace_id,
        "detail": "unexpected_server_error",
    }
