"""AI providers."""

from studytree.domain.ai.providers.gemini import GeminiProvider

__all__ = ["GeminiProvider"]
