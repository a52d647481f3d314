"""Republic of Bean — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class BeanSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── LLM Provider ───────────────────────────────────────────
    openai_api_key: str = ""
    stakeholder_model: str = "openai/gpt-3.5-turbo"
    feedback_model: str = "openai/gpt-3.5-turbo"
    message_max_tokens: int = 150
    feedback_max_tokens: int = 600
    temperature: float = 0.7
    text_generation_timeout_seconds: float = 20.0

    # ── Simulation ─────────────────────────────────────────────
    budget_total: int = 14
    stakeholder_count: int = 4
    random_seed: int | None = None

    # ── Dashboard ──────────────────────────────────────────────
    dashboard_host: str = "0.0.0.0"
    dashboard_port: int = 3001

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)


settings = BeanSettings()
