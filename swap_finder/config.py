"""Configuration management for the swap finder."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SWAP_FINDER_",
        case_sensitive=False,
    )

    # Bitcoin Configuration
    network: str = Field(
        default="bitcoin",
        description="Network parameter set used for address derivation",
    )

    # Esplora API Configuration
    esplora_api_url: str = Field(
        default="https://blockstream.info/api",
        description="Esplora REST API URL",
    )
    request_timeout: float = Field(
        default=30.0,
        description="HTTP timeout in seconds for Esplora requests",
    )
    tip_cache_ttl: int = Field(
        default=30,
        description="Seconds to cache the chain tip height",
    )

    # Swap discovery
    history_batch_size: int = Field(
        default=100,
        description="Maximum transactions requested per bulk fetch",
    )

    # Polling
    poll_interval: float = Field(
        default=5.0,
        description="Initial delay in seconds between polls",
    )
    poll_max_interval: float = Field(
        default=60.0,
        description="Upper bound for the poll delay",
    )
    poll_backoff: float = Field(
        default=2.0,
        description="Multiplier applied to the delay after each miss",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("history_batch_size")
    @classmethod
    def validate_batch_size(cls, v):
        """Batches must hold at least one transaction."""
        if v < 1:
            raise ValueError("history_batch_size must be positive")
        return v

    @field_validator("network")
    @classmethod
    def validate_network(cls, v):
        """Only the known parameter sets are accepted."""
        v = v.lower()
        if v not in ("bitcoin", "testnet", "regtest"):
            raise ValueError(f"Unknown network: {v}")
        return v


# Global config instance
config = Config()
