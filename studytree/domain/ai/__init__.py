"""AI domain services and provider abstractions."""

from studytree.domain.ai.factory import build_ai_service
from studytree.domain.ai.service import AIService

__all__ = ["AIService", "build_ai_service"]
