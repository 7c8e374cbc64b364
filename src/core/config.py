"""
Settings for the dashboard builder: LLM backend, generation retry policy,
collaborator sample windows, cache bounds and server options.

Values come from the environment or a project-root .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic | gateway
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    llm_gateway_api_key: str = ""
    llm_gateway_model: str = "google/gemini-2.5-flash"
    llm_max_tokens: int = 2000
    llm_temperature: float = 0.3
    llm_timeout_seconds: float = 30.0

    # ── Generation ───────────────────────────────────────
    ai_max_retries: int = 2
    ai_retry_backoff_seconds: float = 1.0
    ai_sample_rows: int = 50
    refinement_sample_rows: int = 10
    history_window: int = 6

    # ── Cache ────────────────────────────────────────────
    cache_ttl_seconds: float = 300.0
    cache_max_size: int = 100

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
