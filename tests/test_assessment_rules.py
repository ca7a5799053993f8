import unittest

from studytree.domain.knowledge.assessment import (
    build_dependents_map,
    find_dependents_to_skip,
    next_assessable_index,
    normalize_ox_answer,
    split_by_understanding,
)
from studytree.domain.knowledge.models import Understanding, status_for_level

try:
    from tests.learning_fakes import node
except ModuleNotFoundError:
    from learning_fakes import node


class AssessmentRuleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.nodes = [
            node("극한", node_id="limit"),
            node("미분", node_id="derivative", prerequisites=["극한"]),
            node("적분", node_id="integral", prerequisites=["미분"]),
            node("연쇄법칙", node_id="chain", parent_id="derivative"),
            node("급수", node_id="series"),
        ]

    def test_dependents_map_groups_by_prerequisite_name(self) -> None:
        dependents = build_dependents_map(self.nodes)

        self.assertEqual(dependents, {"극한": ["derivative"], "미분": ["integral"]})

    def test_failed_node_skips_transitive_dependents_and_children(self) -> None:
        skipped = find_dependents_to_skip(self.nodes, "limit", assessed={"limit"})

        self.assertEqual(skipped, ["derivative", "integral", "chain"])

    def test_assessed_nodes_stop_propagation(self) -> None:
        skipped = find_dependents_to_skip(self.nodes, "limit", assessed={"limit", "derivative"})

        self.assertEqual(skipped, [])

    def test_unknown_node_has_nothing_to_skip(self) -> None:
        self.assertEqual(find_dependents_to_skip(self.nodes, "missing", assessed=set()), [])

    def test_cyclic_dependents_terminate(self) -> None:
        nodes = [
            node("A", node_id="a", prerequisites=["B"]),
            node("B", node_id="b", prerequisites=["A"]),
        ]

        self.assertEqual(find_dependents_to_skip(nodes, "a", assessed={"a"}), ["b"])

    def test_next_assessable_index_skips_answered_and_skipped(self) -> None:
        index = next_assessable_index(self.nodes, 0, assessed={"limit"}, skipped={"derivative", "integral"})

        self.assertEqual(index, 3)
        self.assertEqual(
            next_assessable_index(self.nodes, 0, assessed={"limit", "chain", "series"}, skipped={"derivative", "integral"}),
            -1,
        )

    def test_normalize_ox_answer_accepts_common_spellings(self) -> None:
        self.assertEqual(normalize_ox_answer("o"), "O")
        self.assertEqual(normalize_ox_answer(" 참 "), "O")
        self.assertEqual(normalize_ox_answer(True), "O")
        self.assertEqual(normalize_ox_answer("X"), "X")
        self.assertEqual(normalize_ox_answer("거짓"), "X")
        self.assertEqual(normalize_ox_answer(False), "X")
        self.assertIsNone(normalize_ox_answer("모름"))
        self.assertIsNone(normalize_ox_answer(None))

    def test_split_by_understanding_uses_threshold(self) -> None:
        weak, strong = split_by_understanding({"a": 0, "b": 49, "c": 50, "d": 100}, 50)

        self.assertEqual(weak, ["a", "b"])
        self.assertEqual(strong, ["c", "d"])

    def test_status_for_level(self) -> None:
        self.assertEqual(status_for_level(100), "known")
        self.assertEqual(status_for_level(60), "unclear")
        self.assertEqual(status_for_level(0), "unknown")
        self.assertEqual(Understanding(node_id="a", understanding_level=80).status, "known")


if __name__ == "__main__":
    unittest.main()
