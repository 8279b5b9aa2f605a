"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
Settings are read once at startup and never hot-reloaded.
"""

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from transfer_indexer.config.constants import (
    BLOCKCHAIN_TIMEOUT,
    DEFAULT_BATCH_DELAY,
    DEFAULT_BATCH_SIZE,
    DEFAULT_POLL_INTERVAL,
    RECONNECT_MAX_ATTEMPTS,
    RETRY_INITIAL_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    RETRY_MULTIPLIER,
    RPC_MAX_CONCURRENT,
)
from transfer_indexer.utils.validation import normalize_address


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Blockchain RPC
    rpc_url: str = "http://127.0.0.1:8545"
    chain_id: int = Field(default=31337, gt=0)
    poa_chain: bool = Field(
        default=False, description="Inject extraData middleware (BSC, Polygon)"
    )

    # Tracked tokens
    token_addresses: str = ""  # Comma-separated list of token contracts
    start_block: int = Field(
        default=0, ge=0, description="Block used when a token has no checkpoint"
    )

    # Backfill
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE, gt=0, description="Blocks per backfill range"
    )
    batch_delay: float = Field(
        default=DEFAULT_BATCH_DELAY, ge=0, description="Pause between ranges (seconds)"
    )

    # Live tail
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL, gt=0, description="New block polling interval (seconds)"
    )
    confirmations: int = Field(
        default=0, ge=0, description="Blocks behind head considered final"
    )

    # RPC behaviour
    rpc_timeout: float = Field(default=BLOCKCHAIN_TIMEOUT, gt=0)
    rpc_max_concurrency: int = Field(default=RPC_MAX_CONCURRENT, gt=0)

    # Retry / backoff
    retry_initial_delay: float = Field(default=RETRY_INITIAL_DELAY, ge=0)
    retry_multiplier: float = Field(default=RETRY_MULTIPLIER, ge=1)
    retry_max_delay: float = Field(default=RETRY_MAX_DELAY, ge=0)
    retry_max_attempts: int = Field(default=RETRY_MAX_ATTEMPTS, gt=0)
    reconnect_max_attempts: int = Field(default=RECONNECT_MAX_ATTEMPTS, gt=0)

    # Application
    log_level: str = "INFO"
    log_file: str | None = "logs/indexer.log"
    health_check_port: int = Field(
        default=8081, ge=0, le=65535, description="Health check HTTP port (0 disables)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must start with postgresql+asyncpg:// "
                "or sqlite+aiosqlite://"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        return v.upper()

    @model_validator(mode="after")
    def validate_tokens(self) -> "Settings":
        """Require at least one valid token address."""
        tokens = self.get_token_addresses()
        if not tokens:
            raise ValueError("TOKEN_ADDRESSES is required")
        return self

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "Settings":
        """Initial delay cannot exceed the cap."""
        if self.retry_initial_delay > self.retry_max_delay:
            raise ValueError(
                "RETRY_INITIAL_DELAY must not exceed RETRY_MAX_DELAY"
            )
        return self

    def get_token_addresses(self) -> list[str]:
        """
        Parse token addresses from comma-separated string.

        Returns:
            Lower-cased, de-duplicated addresses in configured order

        Raises:
            ValueError: If any entry is not a valid address
        """
        result: list[str] = []
        for raw in self.token_addresses.split(","):
            raw = raw.strip()
            if not raw:
                continue
            address = normalize_address(raw)
            if address not in result:
                result.append(address)
        return result


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
