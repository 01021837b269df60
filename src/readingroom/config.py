"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOPIC_VOCABULARY = [
    "leadership",
    "banking",
    "finance",
    "investment",
    "investing",
    "management",
    "hr",
    "coaching",
    "meetings",
    "philosophy",
    "psychology",
    "business",
    "strategy",
    "marketing",
    "productivity",
    "negotiation",
]

DEFAULT_DOMAIN_KEYWORDS = [
    "leadership",
    "management",
    "manager",
    "coaching",
    "feedback",
    "strategy",
    "finance",
    "investing",
    "investment",
    "portfolio",
    "dividend",
    "banking",
    "marketing",
    "negotiation",
    "productivity",
    "psychology",
    "philosophy",
    "habits",
    "motivation",
    "team",
    "culture",
]

DEFAULT_WORKFORCE_KEYWORDS = [
    "firing",
    "fire",
    "hiring",
    "hire",
    "layoff",
    "layoffs",
    "performance review",
    "performance",
    "employee",
    "employees",
    "staff",
    "human resources",
    "hr",
    "workplace",
    "onboarding",
    "promotion",
]

DEFAULT_DOCUMENT_TYPES = ["video", "article", "podcast", "course", "paper", "guide"]

DEFAULT_VECTOR_THRESHOLDS = {
    "catalog_browse": 0.1,
    "book_recommendation": 0.15,
    "topic_book_list": 0.15,
    "specific_search": 0.2,
    "hr_scenario": 0.2,
    "advice_restricted": 0.25,
    "advice_general": 0.2,
    "direct_question": 0.3,
    "hybrid": 0.2,
}

DEFAULT_RESULT_COUNTS = {
    "catalog_browse": 20,
    "book_recommendation": 8,
    "topic_book_list": 10,
    "specific_search": 8,
    "hr_scenario": 6,
    "advice_restricted": 6,
    "advice_general": 6,
    "direct_question": 5,
    "hybrid": 6,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:7b"
    ollama_embed_model: str = "nomic-embed-text"

    # Model parameters
    llm_temperature: float = 0.1
    llm_context_window: int = 8192
    llm_max_tokens: int = 1200

    # Timeouts (seconds)
    embedding_timeout: float = 60.0
    completion_timeout: float = 120.0
    strategy_timeout: float = 30.0

    # ChromaDB settings
    chroma_persist_dir: Path = Path("./.chroma_db")
    chroma_collection: str = "corpus_chunks"

    # Vocabularies
    topic_vocabulary: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TOPIC_VOCABULARY)
    )
    domain_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DOMAIN_KEYWORDS)
    )
    workforce_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WORKFORCE_KEYWORDS)
    )
    document_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DOCUMENT_TYPES)
    )

    # Strategy caps (items per token)
    entity_cap: int = 5
    topic_cap: int = 4
    type_cap: int = 3
    keyword_cap: int = 6
    vector_cap: int = 8

    # Vector similarity floors
    vector_thresholds: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_VECTOR_THRESHOLDS)
    )
    relaxed_vector_threshold: float = 0.1
    relaxed_vector_cap: int = 15
    relaxation_trigger: int = 3

    # Ranking
    rank_score_tolerance: float = 0.1
    result_counts: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_RESULT_COUNTS)
    )
    max_result_count: int = 50
    catalog_page_size: int = 20

    # Query analysis
    query_analysis_mode: Literal["heuristic", "llm"] = "heuristic"

    # Prompt assembly
    max_context_chars: int = 12000
    history_turns: int = 6

    # Logging
    log_level: str = "WARNING"
    log_json: bool = False
    debug: bool = False

    @field_validator("catalog_page_size", "max_result_count", "relaxation_trigger")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    def vector_threshold_for(self, intent: str) -> float:
        """Similarity floor for an intent, falling back to the hybrid floor."""
        return self.vector_thresholds.get(
            intent, self.vector_thresholds.get("hybrid", 0.2)
        )

    def result_count_for(self, intent: str) -> int:
        """Default number of ranked results for an intent."""
        return self.result_counts.get(intent, self.result_counts.get("hybrid", 6))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
