"""Knowledge tree domain: concept nodes, sequencing and assessment rules."""

from studytree.domain.knowledge.models import ConceptNode, OXQuizItem, Understanding
from studytree.domain.knowledge.sequencer import SequenceReport, sequence, sequence_with_report

__all__ = [
    "ConceptNode",
    "OXQuizItem",
    "SequenceReport",
    "Understanding",
    "sequence",
    "sequence_with_report",
]
