"""Persona engine configuration models.

Defaults reproduce the constants the engine has always used. Values can be
overridden from environment variables (or a ``.env`` file) via
:meth:`EngineConfig.from_env`.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default fallback."""
    return os.getenv(key, default)


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get environment variable as float with default fallback."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class MemoryStoreConfig(BaseModel):
    """Bounds of the per-profile memory store."""

    max_memories: int = 100
    retain_after_eviction: int = 80
    importance_band: float = 0.1  # same band -> recency decides
    max_content_chars: int = 500

    @model_validator(mode="after")
    def _check_bounds(self) -> "MemoryStoreConfig":
        if not 0 < self.retain_after_eviction < self.max_memories:
            raise ValueError(
                "retain_after_eviction must be positive and smaller than "
                f"max_memories ({self.retain_after_eviction} >= {self.max_memories})"
            )
        if self.importance_band <= 0:
            raise ValueError("importance_band must be positive")
        return self


class RetrievalConfig(BaseModel):
    """Composite score weights for memory retrieval."""

    default_limit: int = 5
    importance_weight: float = Field(default=0.4, ge=0.0)
    recency_weight: float = Field(default=0.3, ge=0.0)
    reference_weight: float = Field(default=0.3, ge=0.0)


class ContextConfig(BaseModel):
    """Prompt construction and per-mode generation hints."""

    history_window: int = 10
    chat_max_tokens: int = 600
    chat_temperature: float = 0.7
    quick_max_tokens: int = 500
    quick_temperature: float = 0.7
    interview_max_tokens: int = 300
    interview_temperature: float = 0.8
    interview_complete_after: int = 8


class ExtractionConfig(BaseModel):
    """Profile-data extraction bounds."""

    max_tokens: int = 400
    temperature: float = 0.3
    max_list_items: int = 5
    max_item_chars: int = 200
    max_name_chars: int = 100
    max_category_chars: int = 50
    max_notes_chars: int = 500
    heuristic_item_chars: int = 100
    heuristic_category_chars: int = 20


class LLMConfig(BaseModel):
    """OpenAI-compatible backend settings."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-3.5-turbo"
    timeout_seconds: float = 30.0


class StorageConfig(BaseModel):
    base_path: str = "./data/persona_engine"
    create_backup: bool = True
    pretty_print: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"


class EngineConfig(BaseModel):
    """Top-level persona engine configuration."""

    memory: MemoryStoreConfig = Field(default_factory=MemoryStoreConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from environment variables (``.env`` is loaded first)."""
        load_dotenv()
        defaults_llm = LLMConfig()
        defaults_storage = StorageConfig()
        return cls(
            llm=LLMConfig(
                api_key=get_env("OPENAI_API_KEY", defaults_llm.api_key),
                base_url=get_env("PERSONA_LLM_BASE_URL", defaults_llm.base_url),
                model=get_env("PERSONA_LLM_MODEL", defaults_llm.model),
                timeout_seconds=get_env_float(
                    "PERSONA_LLM_TIMEOUT", defaults_llm.timeout_seconds
                ),
            ),
            storage=StorageConfig(
                base_path=get_env("PERSONA_STORAGE_PATH", defaults_storage.base_path),
            ),
            logging=LoggingConfig(level=get_env("PERSONA_LOG_LEVEL", "INFO")),
        )
