from typing import Any, Protocol

from studytree.domain.ai.providers.common import DocumentPart


class StructuredAIProvider(Protocol):
    """LLM provider contract that returns structured JSON outputs."""

    def generate_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        document: DocumentPart | None = None,
        temperature: float = 0.3,
    ) -> dict[str, Any]:
        ...
