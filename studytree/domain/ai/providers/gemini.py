import json
import logging
import time
from typing import Any
from urllib import parse, request

from studytree.domain.ai.providers.common import DocumentPart, parse_json_text


logger = logging.getLogger(__name__)


class GeminiProvider:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_sec: int = 120,
        max_output_tokens: int = 8192,
    ) -> None:
        if not api_key:
            raise ValueError("gemini_api_key_missing")
        self.api_key = api_key
        self.model = model
        self.timeout_sec = timeout_sec
        self.max_output_tokens = max_output_tokens

    def generate_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        document: DocumentPart | None = None,
        temperature: float = 0.3,
    ) -> dict[str, Any]:
        endpoint = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{parse.quote(self.model)}:generateContent?key={parse.quote(self.api_key)}"
        )
        parts: list[dict[str, Any]] = []
        if document is not None:
            # 문서는 프롬프트보다 앞에 둔다.
            parts.append(
                {
                    "inline_data": {
                        "mime_type": document.mime_type,
                        "data": document.as_base64(),
                    }
                }
            )
        parts.append({"text": user_prompt})
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

        req = request.Request(
            endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        started = time.monotonic()
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as response:
                body = response.read().decode("utf-8")
        except Exception as exc:  # pragma: no cover - network boundary
            raise RuntimeError(f"gemini_request_failed:{exc}") from exc
        logger.info(
            "gemini call finished model=%s document=%s elapsed_ms=%d",
            self.model,
            document is not None,
            int((time.monotonic() - started) * 1000),
        )

        decoded = json.loads(body)
        text = self._extract_text(decoded)
        return parse_json_text(text)

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        candidates = response_json.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise RuntimeError("gemini_candidates_missing")

        first = candidates[0]
        content = first.get("content", {})
        parts = content.get("parts", [])
        if not isinstance(parts, list):
            raise RuntimeError("gemini_parts_missing")

        for part in parts:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str) and text.strip():
                return text

        if first.get("finishReason") == "MAX_TOKENS":
            raise RuntimeError("gemini_output_truncated:json response cut off")
        raise RuntimeError("gemini_text_missing")
