import unittest

from fastapi import HTTPException

from studytree.services.learning.error_policy import (
    build_http_error_payload,
    build_structured_error_detail,
    build_unexpected_error_payload,
)


class ErrorPolicyTests(unittest.TestCase):
    def test_structured_detail_round_trip(self) -> None:
        detail = build_structured_error_detail(
            error_code="rate_limited",
            message="429 too many requests",
            retryable=True,
            detail="knowledge_tree_failed:rate_limited:429 too many requests",
        )
        exc = HTTPException(status_code=429, detail=detail)
        payload = build_http_error_payload(exc, trace_id="trace-1")

        self.assertEqual(payload["error_code"], "rate_limited")
        self.assertEqual(payload["message"], "429 too many requests")
        self.assertTrue(payload["retryable"])
        self.assertEqual(payload["trace_id"], "trace-1")
        self.assertIn("knowledge_tree_failed:rate_limited", payload["detail"])

    def test_structured_detail_defaults_retryable_from_code(self) -> None:
        detail = build_structured_error_detail(
            error_code="db_error",
            message="insert failed",
        )
        payload = build_http_error_payload(HTTPException(status_code=500, detail=detail), trace_id="trace-2")

        self.assertEqual(payload["error_code"], "db_error")
        self.assertFalse(payload["retryable"])
        self.assertEqual(payload["detail"], "insert failed")

    def test_plain_string_details_are_parsed(self) -> None:
        pipeline = build_http_error_payload(
            HTTPException(status_code=504, detail="quiz_generate_failed:timeout:request timed out"),
            trace_id="t",
        )
        self.assertEqual(pipeline["error_code"], "timeout")
        self.assertEqual(pipeline["message"], "request timed out")
        self.assertTrue(pipeline["retryable"])

        missing = build_http_error_payload(
            HTTPException(status_code=404, detail="document_not_found:doc-9"),
            trace_id="t",
        )
        self.assertEqual(missing["error_code"], "not_found")
        self.assertFalse(missing["retryable"])

        unknown = build_http_error_payload(HTTPException(status_code=400, detail="Not Found"), trace_id="t")
        self.assertEqual(unknown["error_code"], "unknown")

    def test_partial_dict_detail_falls_back_to_message_or_inferred_code(self) -> None:
        message_only = build_http_error_payload(HTTPException(status_code=500, detail={"message": "boom"}), "t")
        self.assertEqual(message_only["error_code"], "unknown")
        self.assertEqual(message_only["detail"], "boom")

        inferred = build_http_error_payload(
            HTTPException(status_code=404, detail={"detail": "document_not_found:doc-1"}),
            "t",
        )
        self.assertEqual(inferred["error_code"], "not_found")
        self.assertEqual(inferred["detail"], "document_not_found:doc-1")

    def test_unknown_code_is_normalized(self) -> None:
        detail = build_structured_error_detail(error_code="weird", message="")

        self.assertEqual(detail["error_code"], "unknown")
        self.assertEqual(detail["message"], "Request failed")

    def test_unexpected_error_payload(self) -> None:
        payload = build_unexpected_error_payload("trace-3")

        self.assertEqual(payload["error_code"], "unknown")
        self.assertEqual(payload["trace_id"], "trace-3")
        self.assertFalse(payload["retryable"])


if __name__ == "__main__":
    unittest.main()
