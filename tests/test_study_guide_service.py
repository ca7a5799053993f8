import json
import unittest

from fastapi import HTTPException

from studytree.domain.knowledge.models import Understanding
from studytree.services.learning import dependencies as deps
from studytree.services.learning import study_guide_service as sg

try:
    from tests.learning_fakes import FakeAIService, FakeStore, node
except ModuleNotFoundError:
    from learning_fakes import FakeAIService, FakeStore, node


GUIDE = {
    "title": "미적분 맞춤 가이드",
    "sections": [
        {"heading": "극한", "content": "수열이 한 값에 가까워지는 현상", "key_points": ["수렴", "수렴", ""]},
        {"heading": "", "content": "제목 없는 섹션"},
        {"heading": "미분", "content": "순간 변화율"},
    ],
    "summary": "극한에서 미분으로 이어집니다.",
    "references": ["교재 2장"],
}


class StudyGuideNormalizationTests(unittest.TestCase):
    def test_normalize_drops_incomplete_sections(self) -> None:
        guide = sg.normalize_study_guide(GUIDE)

        self.assertEqual([section["heading"] for section in guide["sections"]], ["극한", "미분"])
        self.assertEqual(guide["sections"][0]["key_points"], ["수렴"])
        self.assertEqual(guide["sections"][1]["key_points"], [])
        self.assertEqual(guide["references"], ["교재 2장"])

    def test_normalize_requires_sections(self) -> None:
        with self.assertRaisesRegex(ValueError, "schema_mismatch"):
            sg.normalize_study_guide({"title": "t", "sections": []})
        with self.assertRaisesRegex(ValueError, "quality_validation_failed"):
            sg.normalize_study_guide({"title": "t", "sections": [{"heading": "h"}], "summary": ""})

    def test_annotate_treats_untested_concepts_as_unknown(self) -> None:
        concepts = sg.annotate_concepts(
            [node("극한"), node("미분")],
            {"id-극한": Understanding(node_id="id-극한", understanding_level=100)},
        )

        self.assertEqual([item["status"] for item in concepts], ["known", "unknown"])
        self.assertEqual(concepts[1]["understanding_level"], 0)


class GenerateStudyGuideTests(unittest.TestCase):
    def setUp(self) -> None:
        self._original_store = deps._get_store
        self._original_ai = deps._get_ai_service
        self._original_settings = deps.settings
        deps.settings = deps.settings.model_copy(update={"ai_retry_initial_delay_ms": 0, "ai_max_attempts": 2})
        self.store = FakeStore()
        self.store.add_document("doc-1")
        self.store.nodes["doc-1"] = [node("미분", prerequisites=["극한"]), node("극한")]
        self.store.understanding[("user-1", "id-극한")] = Understanding(node_id="id-극한", understanding_level=60)
        deps._get_store = lambda: self.store

    def tearDown(self) -> None:
        deps._get_store = self._original_store
        deps._get_ai_service = self._original_ai
        deps.settings = self._original_settings

    def test_generate_study_guide_uses_understanding_and_persists(self) -> None:
        fake_ai = FakeAIService(GUIDE)
        deps._get_ai_service = lambda: fake_ai

        result = sg.generate_study_guide(sg.StudyGuideRequest(documentId="doc-1", userId="user-1"))

        self.assertEqual(result["studyGuide"]["title"], "미적분 맞춤 가이드")
        self.assertIsNotNone(result["studyGuide"]["id"])
        self.assertIn(("doc-1", "user-1"), self.store.study_guides)
        prompt = fake_ai.calls[0]["user_prompt"]
        concepts = json.loads(prompt.split("concepts=", 1)[1].split("\n", 1)[0])
        self.assertEqual([item["name"] for item in concepts], ["극한", "미분"])
        self.assertEqual([item["status"] for item in concepts], ["unclear", "unknown"])
        self.assertEqual(fake_ai.calls[0]["temperature"], 0.7)

    def test_generate_study_guide_store_failure(self) -> None:
        deps._get_ai_service = lambda: FakeAIService(GUIDE)
        self.store.fail_on.add("save_study_guide")

        with self.assertRaises(HTTPException) as ctx:
            sg.generate_study_guide(sg.StudyGuideRequest(documentId="doc-1", userId="user-1"))

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.detail["error_code"], "db_error")


if __name__ == "__main__":
    unittest.main()
