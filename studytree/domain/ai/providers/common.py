import base64
from dataclasses import dataclass
import json
from typing import Any, Iterable


@dataclass(frozen=True)
class DocumentPart:
    """Raw file attached inline to a generation request."""

    data: bytes
    mime_type: str = "application/pdf"

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


def strip_code_fence(text: str) -> str:
    raw = text.strip()
    if raw.startswith("```"):
        lines = raw.splitlines()
        if len(lines) >= 2 and lines[-1].strip().startswith("```"):
            return "\n".join(lines[1:-1]).strip()
    return raw


def parse_json_text(text: str) -> dict:
    cleaned = strip_code_fence(text)
    if not cleaned:
        raise ValueError("ai_response_empty")
    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise ValueError("ai_response_not_object")
    return parsed


def require_fields(response: dict[str, Any], fields: Iterable[str], response_type: str) -> None:
    missing = [name for name in fields if name not in response]
    if missing:
        raise ValueError(f"schema_mismatch:{response_type} missing fields [{', '.join(missing)}]")
