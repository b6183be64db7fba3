"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "You are Plexo, an assistant that helps people organize their work into tasks. "
    "Answer briefly. When the user asks you to create a task, call the create_task "
    "function and infer every field you can from the conversation."
)


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    llm_api_key: str = Field(..., alias="LLM_API_KEY")
    llm_model_name: str = Field(default="gpt-3.5-turbo", alias="LLM_MODEL_NAME")
    llm_base_url: str = Field(default="https://api.openai.com/v1", alias="LLM_BASE_URL")
    llm_max_tokens: int = Field(default=1024, alias="LLM_MAX_TOKENS")
    database_path: Path = Field(default=Path("cognition.db"), alias="DATABASE_PATH")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")
    chat_system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, alias="CHAT_SYSTEM_PROMPT")
    # Number of existing tasks whose fingerprints are shown to the model when suggesting.
    suggestion_context_tasks: int = Field(default=10, alias="SUGGESTION_CONTEXT_TASKS")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()
