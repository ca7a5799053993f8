import unittest

from studytree.services.learning.pipeline_runtime import (
    PipelineFailure,
    backoff_delay_sec,
    classify_ai_failure,
    format_pipeline_error_detail,
    run_ai_with_retry,
)


class PipelineRuntimeTests(unittest.TestCase):
    def test_classify_ai_failure_maps_known_kinds(self) -> None:
        self.assertEqual(classify_ai_failure("request timed out"), ("timeout", 504, True))
        self.assertEqual(classify_ai_failure("429 too many requests"), ("rate_limited", 429, True))
        self.assertEqual(classify_ai_failure("ai_backpressure_busy"), ("rate_limited", 429, True))
        self.assertEqual(
            classify_ai_failure("quality_validation_failed:quiz has no valid questions"),
            ("quality_failed", 422, True),
        )
        self.assertEqual(
            classify_ai_failure("schema_mismatch:knowledge_tree missing fields [nodes]"),
            ("schema_mismatch", 422, True),
        )
        self.assertEqual(classify_ai_failure("gemini_api_key_missing"), ("config_error", 503, False))
        self.assertEqual(classify_ai_failure("connection reset"), ("provider_error", 502, False))

    def test_backoff_doubles_per_attempt(self) -> None:
        self.assertEqual(backoff_delay_sec(1, 1000), 1.0)
        self.assertEqual(backoff_delay_sec(2, 1000), 2.0)
        self.assertEqual(backoff_delay_sec(3, 1000), 4.0)
        self.assertEqual(backoff_delay_sec(1, 0), 0)

    def test_retry_sleeps_between_retryable_failures(self) -> None:
        sleeps: list[float] = []
        outcomes = [RuntimeError("429 too many requests"), RuntimeError("request timed out"), {"ok": True}]

        def call(attempt: int):
            outcome = outcomes[attempt - 1]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        result, attempts = run_ai_with_retry(
            call,
            pipeline="knowledge_tree",
            max_attempts=3,
            initial_delay_ms=500,
            sleep=sleeps.append,
        )

        self.assertEqual(result, {"ok": True})
        self.assertEqual(attempts, 3)
        self.assertEqual(sleeps, [0.5, 1.0])

    def test_non_retryable_failure_raises_immediately(self) -> None:
        calls: list[int] = []

        def call(attempt: int):
            calls.append(attempt)
            raise RuntimeError("gemini_api_key_missing")

        with self.assertRaises(PipelineFailure) as ctx:
            run_ai_with_retry(call, pipeline="quiz_generate", max_attempts=3, sleep=lambda _s: None)

        self.assertEqual(calls, [1])
        self.assertEqual(ctx.exception.kind, "config_error")
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.attempt_count, 1)

    def test_exhausted_retries_report_last_kind(self) -> None:
        def call(_attempt: int):
            raise ValueError("quality_validation_failed:study_guide has no sections")

        with self.assertRaises(PipelineFailure) as ctx:
            run_ai_with_retry(
                call,
                pipeline="study_guide_generate",
                max_attempts=2,
                retryable_kinds={"quality_failed"},
                sleep=lambda _s: None,
            )

        self.assertEqual(ctx.exception.kind, "quality_failed")
        self.assertEqual(ctx.exception.attempt_count, 2)
        self.assertTrue(ctx.exception.retryable)

    def test_format_pipeline_error_detail(self) -> None:
        self.assertEqual(
            format_pipeline_error_detail("quiz_generate", "timeout", "  request \n timed out "),
            "quiz_generate_failed:timeout:request timed out",
        )


if __name__ == "__main__":
    unittest.main()
