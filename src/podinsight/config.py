"""
PodInsight Configuration
Pydantic Settings for all configurable options.
"""

from pathlib import Path
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Storage ---
    storage_path: Path = Field(default=Path.home() / ".podinsight")
    database_url: str = ""  # empty = SQLite file under storage_path
    store_backend: Literal["sql", "memory"] = "sql"

    # --- Transcript Acquisition ---
    # Tried in this order; the first provider returning text wins
    transcript_providers: List[str] = Field(
        default_factory=lambda: ["captions", "deepgram", "whisper"]
    )
    http_timeout_seconds: float = 30.0

    deepgram_api_key: str = Field(default="", validation_alias="DEEPGRAM_API_KEY")
    deepgram_base_url: str = "https://api.deepgram.com"
    deepgram_model: str = "whisper-large"
    deepgram_timeout_seconds: float = 600.0
    deepgram_max_retries: int = 3
    deepgram_retry_base_delay: float = 1.0

    whisper_model: str = "large-v3-turbo"  # faster-whisper model name
    whisper_device: str = "auto"  # auto, cuda, cpu

    # --- LLM Provider ---
    llm_provider: Literal["ollama", "openai", "anthropic"] = "anthropic"
    ollama_model: str = "llama3.2:3b"
    ollama_base_url: str = "http://localhost:11434"
    openai_model: str = "gpt-4o-mini"
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    anthropic_model: str = "claude-sonnet-4-5"
    anthropic_api_key: str = Field(default="", validation_alias="ANTHROPIC_API_KEY")
    llm_timeout_seconds: float = 300.0

    # --- Generation ---
    transcript_char_limit: int = 100_000  # single-pass generators clip beyond this
    quick_max_tokens: int = 1500
    deep_max_tokens: int = 4000
    insights_max_tokens: int = 4000

    # --- Transcript Sampler (Analyst briefing) ---
    sampler_sections: int = 8
    sampler_head: int = 20
    sampler_tail: int = 10
    sampler_per_section: int = 10
    sampler_max_utterances: int = 150
    sampler_max_chars: int = 60_000

    # --- Multi-Agent Synthesis ---
    use_multi_agent_deep: bool = True
    analyst_min_blocks: int = 4
    analyst_max_blocks: int = 8
    analyst_max_tokens: int = 4000
    writer_max_tokens: int = 2000
    editor_max_tokens: int = 4000
    writer_failure_policy: Literal["strict", "degrade"] = "strict"

    # --- Ask ---
    ask_max_tokens: int = 1500
    ask_transcript_char_limit: int = 500_000
    ask_max_question_chars: int = 2000
    ask_max_history: int = 20

    # --- Recovery ---
    stale_job_minutes: float = 60.0  # in-flight records idle this long count as abandoned

    # --- Client Polling ---
    poll_max_attempts: int = 30
    poll_initial_delay: float = 2.0
    poll_max_delay: float = 30.0

    # --- Server ---
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def resolved_database_url(self) -> str:
        return self.database_url or f"sqlite:///{self.storage_path / 'podinsight.db'}"

    def ensure_directories(self) -> None:
        """Create storage directories if they don't exist."""
        self.storage_path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
