import json
import unittest
from unittest import mock

from studytree.domain.ai.providers.common import DocumentPart, parse_json_text, require_fields, strip_code_fence
from studytree.domain.ai.providers.gemini import GeminiProvider
from studytree.domain.ai.service import AIService


class _FakeResponse:
    def __init__(self, body: dict) -> None:
        self._body = json.dumps(body).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        return None


class _RecordingProvider:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.kwargs: dict = {}

    def generate_json(self, **kwargs) -> dict:
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return {"ok": True}


class ProviderCommonTests(unittest.TestCase):
    def test_strip_code_fence_and_parse(self) -> None:
        text = '```json\n{"nodes": []}\n```'

        self.assertEqual(strip_code_fence(text), '{"nodes": []}')
        self.assertEqual(parse_json_text(text), {"nodes": []})

    def test_parse_rejects_non_object_and_empty(self) -> None:
        with self.assertRaisesRegex(ValueError, "ai_response_not_object"):
            parse_json_text("[1, 2]")
        with self.assertRaisesRegex(ValueError, "ai_response_empty"):
            parse_json_text("   ")

    def test_require_fields_names_missing_fields(self) -> None:
        require_fields({"title": "x", "sections": []}, ["title", "sections"], "study_guide")

        with self.assertRaisesRegex(ValueError, r"schema_mismatch:study_guide missing fields \[summary\]"):
            require_fields({"title": "x", "sections": []}, ["title", "sections", "summary"], "study_guide")

    def test_document_part_base64(self) -> None:
        self.assertEqual(DocumentPart(data=b"%PDF").as_base64(), "JVBERg==")


class GeminiProviderTests(unittest.TestCase):
    def test_missing_api_key_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValueError, "gemini_api_key_missing"):
            GeminiProvider(api_key="", model="gemini-2.5-flash")

    def test_generate_json_sends_inline_pdf_and_parses_text(self) -> None:
        provider = GeminiProvider(api_key="key", model="gemini-2.5-flash")
        captured = {}

        def fake_urlopen(req, timeout):
            captured["payload"] = json.loads(req.data.decode("utf-8"))
            captured["timeout"] = timeout
            return _FakeResponse(
                {"candidates": [{"content": {"parts": [{"text": '{"nodes": [{"name": "미분"}]}'}]}}]}
            )

        with mock.patch("studytree.domain.ai.providers.gemini.request.urlopen", side_effect=fake_urlopen):
            result = provider.generate_json(
                system_prompt="system",
                user_prompt="user",
                document=DocumentPart(data=b"%PDF"),
                temperature=0.4,
            )

        self.assertEqual(result, {"nodes": [{"name": "미분"}]})
        parts = captured["payload"]["contents"][0]["parts"]
        self.assertEqual(parts[0]["inline_data"], {"mime_type": "application/pdf", "data": "JVBERg=="})
        self.assertEqual(parts[1], {"text": "user"})
        self.assertEqual(captured["payload"]["systemInstruction"]["parts"][0]["text"], "system")
        self.assertEqual(captured["payload"]["generationConfig"]["temperature"], 0.4)
        self.assertEqual(captured["timeout"], 120)

    def test_extract_text_errors(self) -> None:
        with self.assertRaisesRegex(RuntimeError, "gemini_candidates_missing"):
            GeminiProvider._extract_text({"candidates": []})
        with self.assertRaisesRegex(RuntimeError, "gemini_output_truncated"):
            GeminiProvider._extract_text({"candidates": [{"content": {"parts": []}, "finishReason": "MAX_TOKENS"}]})
        with self.assertRaisesRegex(RuntimeError, "gemini_text_missing"):
            GeminiProvider._extract_text({"candidates": [{"content": {"parts": [{"text": " "}]}}]})


class AIServiceTests(unittest.TestCase):
    def test_forwards_document_and_temperature(self) -> None:
        provider = _RecordingProvider()
        service = AIService(primary=provider)
        pdf = DocumentPart(data=b"%PDF")

        self.assertEqual(
            service.generate_json(system_prompt="s", user_prompt="u", document=pdf, temperature=0.7),
            {"ok": True},
        )
        self.assertIs(provider.kwargs["document"], pdf)
        self.assertEqual(provider.kwargs["temperature"], 0.7)

    def test_wraps_provider_errors(self) -> None:
        service = AIService(primary=_RecordingProvider(RuntimeError("429 too many requests")))

        with self.assertRaisesRegex(RuntimeError, "ai_primary_failed:429 too many requests"):
            service.generate_json(system_prompt="s", user_prompt="u")

    def test_backpressure_when_semaphore_exhausted(self) -> None:
        service = AIService(primary=_RecordingProvider(), max_concurrency=1, acquire_timeout_ms=10)
        service._semaphore.acquire()
        try:
            with self.assertRaisesRegex(RuntimeError, "ai_backpressure_busy"):
                service.generate_json(system_prompt="s", user_prompt="u")
        finally:
            service._semaphore.release()


if __name__ == "__main__":
    unittest.main()
