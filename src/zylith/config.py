"""Runtime settings for the Zylith shielded pool.

Values are read from the environment (prefix ``ZYLITH_``) and from an optional
``.env`` file in the working directory.
"""

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Coordinator, engine and service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ZYLITH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field("sqlite:///zylith.db", description="SQLAlchemy database URL")
    root_history_size: int = Field(100, ge=1, description="Ring buffer size for accepted roots")
    max_swap_iterations: int = Field(512, ge=1, description="Hard ceiling on swap steps")
    protocol_fee_denominator: int = Field(
        0, description="Protocol share is fee // denominator; 0 disables it"
    )
    admin_address: int = Field(0, ge=0, description="Identifier allowed to pause and collect")
    root_publisher_public_key: Optional[str] = Field(
        None, description="Hex Ed25519 public key trusted for root publication"
    )
    verification_key_dir: Optional[str] = Field(
        None, description="Directory holding withdraw/swap/mint/burn verification keys"
    )
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Origins allowed by CORS")
    log_level: str = "INFO"

    @field_validator("protocol_fee_denominator")
    @classmethod
    def check_protocol_fee(cls, value: int) -> int:
        if value != 0 and not 4 <= value <= 10:
            raise ValueError("protocol_fee_denominator must be 0 or between 4 and 10")
        return value


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


_logging_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install a root log handler once.

    Args:
        level: Log level name; defaults to ``Settings.log_level``
    """
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logging_configured = True
