"""Settings via pydantic-settings with RELAY_ env prefix.

The orchestrator URL and DB connection fields use validation_alias to read
the same unprefixed env vars the deployment already exports
(ORCHESTRATOR_URL, DB_HOST, ...), so one .env file drives everything.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RELAY_", env_file=".env", populate_by_name=True)

    # Orchestrator
    orchestrator_url: str = Field("http://127.0.0.1:8000", validation_alias="ORCHESTRATOR_URL")
    orchestrator_timeout_connect: float = 10.0  # seconds
    orchestrator_timeout_read: float = 60.0  # seconds

    # Task polling
    poll_interval: float = 1.0  # seconds between status calls
    poll_timeout: float = 300.0  # overall deadline per task

    # Chunked delivery
    chunk_size: int = 50
    chunk_delay: float = 0.02
    context_turns: int = 10  # trailing messages sent as conversation_history
    stream_buffer: int = 16  # max events queued ahead of a slow consumer

    # Admission control
    rate_limit: int = 30
    rate_window: float = 3600.0
    default_user_id: str = "dev-user"

    # Conversation store
    store_backend: Literal["memory", "postgres"] = "memory"
    db_host: str = Field("localhost", validation_alias="DB_HOST")
    db_port: int = Field(5432, validation_alias="DB_PORT")
    db_user: str = Field("relay", validation_alias="DB_USER")
    db_password: str = Field("relay_dev_password", validation_alias="DB_PASSWORD")
    db_name: str = Field("relay", validation_alias="DB_NAME")
    db_pool_size: int = 10
    db_max_overflow: int = 5

    # Runtime
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    @model_validator(mode="after")
    def _validate_positive(self) -> "Settings":
        for name in ("chunk_size", "rate_limit", "context_turns", "stream_buffer"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.poll_timeout <= 0 or self.rate_window <= 0:
            raise ValueError("poll_timeout and rate_window must be > 0")
        return self

    @property
    def db_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
