from studytree.core.config import Settings
from studytree.domain.ai.providers.gemini import GeminiProvider
from studytree.domain.ai.service import AIService


def build_ai_service(settings: Settings) -> AIService:
    primary = GeminiProvider(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout_sec=settings.ai_request_timeout_sec,
    )
    return AIService(
        primary=primary,
        max_concurrency=settings.ai_max_concurrency,
        acquire_timeout_ms=settings.ai_backpressure_acquire_timeout_ms,
    )
