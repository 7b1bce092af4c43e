"""Settings via pydantic-settings with PRAXIS_ env prefix.

DB connection fields use validation_alias to read the same unprefixed
env vars (DB_PASSWORD, DB_PORT, etc.) that docker-compose uses, so a single
.env file drives both the container and the Python app.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PRAXIS_", env_file=".env", extra="ignore", populate_by_name=True
    )

    # DB connection: unprefixed aliases match docker-compose env vars
    db_host: str = Field("localhost", validation_alias="DB_HOST")
    db_port: int = Field(5432, validation_alias="DB_PORT")
    db_user: str = Field("praxis", validation_alias="DB_USER")
    db_password: str = Field("praxis_dev_password", validation_alias="DB_PASSWORD")
    db_name: str = Field("praxis", validation_alias="DB_NAME")
    # Full SQLAlchemy URL override (e.g. sqlite+aiosqlite:///./praxis.db)
    database_url: str = ""

    db_pool_size: int = 10
    db_max_overflow: int = 5
    storage_backend: Literal["postgres", "memory"] = "postgres"
    auto_create_schema: bool = False
    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    # Shared secret for the scheduled endpoints (Authorization: Bearer <secret>)
    cron_secret: str = ""

    # Providers
    openai_api_key: str = Field("", validation_alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    openrouter_api_key: str = Field("", validation_alias="OPENROUTER_API_KEY")
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_base_url: str = "https://api.anthropic.com"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ollama_base_url: str = "http://localhost:11434"
    provider_timeout_connect: int = 10  # seconds
    provider_timeout_read: int = 120  # seconds
    provider_max_connections: int = Field(10, ge=1)
    provider_max_keepalive: int = Field(5, ge=0)
    provider_max_tokens: int = 1000

    # Fallback definition for agents that own behaviors but were never registered
    default_provider: str = "local"
    default_model: str = "gpt-4o-mini"
    default_temperature: float = Field(0.7, ge=0.0, le=1.0)
    default_prompt: str = (
        "You are agent {{agent}}. Carry out the '{{action_type}}' action "
        "and report the outcome concisely."
    )

    # Execution relay
    relay_history_limit: int = 5
    collaboration_concurrency: int = Field(1, ge=1)
    behavior_cache_ttl: float = 300.0  # seconds

    # Reflection
    reflection_memory_limit: int = 20
    reflection_agent: str = ""  # agent whose provider writes reflections; empty = the reflecting agent
    reflect_after_run: bool = False

    # Agent memory
    memory_sync_limit: int = Field(25, ge=1)
    memory_sync_window_hours: int = Field(24, ge=1)

    # Metrics + leaderboard
    metrics_reflection_window: int = 500
    rank_weight_impact: float = 0.5
    rank_weight_consistency: float = 0.3
    rank_weight_collaboration: float = 0.2

    # Feedback optimizer
    feedback_window_days: int = 7
    feedback_low_threshold: float = 0.2
    feedback_high_threshold: float = 0.8
    feedback_min_samples: int = Field(2, ge=1)

    # Event bus + scheduler
    event_bus_enabled: bool = True
    scheduler_enabled: bool = False
    scheduler_check_interval: int = 60  # seconds
    behavior_trigger: str = "daily"
    behavior_cron: str = "0 6 * * *"
    reflect_cron: str = "0 */6 * * *"
    cycle_cron: str = "30 6 * * *"
    memory_sync_cron: str = "15 */6 * * *"

    @model_validator(mode="after")
    def _validate_tuning(self) -> "Settings":
        if self.feedback_low_threshold >= self.feedback_high_threshold:
            raise ValueError(
                f"feedback_low_threshold ({self.feedback_low_threshold}) must be < "
                f"feedback_high_threshold ({self.feedback_high_threshold})"
            )
        total = self.rank_weight_impact + self.rank_weight_consistency + self.rank_weight_collaboration
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"rank weights must sum to 1.0 (got {total:.4f})")
        return self

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
