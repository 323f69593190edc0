"""Runtime configuration helpers.

Classes:
    Settings: Pydantic settings model capturing environment-driven defaults.

Functions:
    get_settings(): Return a cached Settings instance for dependency injection.
"""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Talent Match RAG"
    database_url: str = "sqlite+aiosqlite:///./data/talent_match.db"
    log_level: str = "INFO"

    openai_api_key: SecretStr | None = None
    openai_embedding_model: str = "text-embedding-3-small"
    openai_chat_model: str = "gpt-4o-mini"
    embedding_timeout_seconds: float = 30.0
    embedding_batch_timeout_seconds: float = 60.0
    chat_timeout_seconds: float = 60.0
    chat_max_tokens: int = 2000
    provider_max_attempts: int = 3

    analysis_tool_url: str = "http://mcp-server:3002"
    analysis_tool_timeout_seconds: float = 30.0
    analysis_tool_max_attempts: int = 2
    analysis_user_role: str = "hr_manager"
    analysis_urgency: str = "standard"
    analysis_confidentiality_level: str = "internal"

    person_api_url: str = "http://backend:3001/api/v1"
    person_api_timeout_seconds: float = 10.0

    similarity_threshold: float = 0.7
    similar_persons_top_n: int = 3
    search_default_limit: int = 10
    batch_concurrency: int = 1


@lru_cache()
def get_settings() -> Settings:
    return Settings()
