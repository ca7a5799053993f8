from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    env: str = "development"
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # 키 이름 하위호환: GEMINI_API_KEY 또는 GOOGLE_GENERATIVE_AI_API_KEY 둘 다 허용
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"),
    )
    gemini_model: str = "gemini-2.5-flash"
    ai_request_timeout_sec: int = 120
    ai_max_concurrency: int = 4
    ai_backpressure_acquire_timeout_ms: int = 200
    ai_max_attempts: int = 3
    ai_retry_initial_delay_ms: int = 1000

    supabase_url: str = ""
    supabase_key: str = Field(
        default="",
        validation_alias=AliasChoices("SUPABASE_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
    )
    storage_bucket: str = "documents"

    # 이해도 50 미만은 취약 개념으로 분류
    weak_understanding_threshold: int = 50
    practice_question_count: int = 10

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
