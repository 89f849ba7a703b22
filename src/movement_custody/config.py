"""Application configuration using pydantic-settings.

Settings are resolved from the environment exactly once, at the process
entry point (see ``movement_custody.service.create_service``). Components
receive the plain config objects built from them and never read the
environment themselves.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from movement_custody.pool.types import PoolConfig
from movement_custody.transactions.pipeline import PipelineConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Custody platform (Fireblocks)
    # ======================
    fireblocks_api_key: str = Field(default="", description="Fireblocks API key")
    fireblocks_secret_key: str = Field(
        default="",
        description="Fireblocks API secret: inline PEM or a path to a .pem/.key file",
    )
    fireblocks_base_url: str = Field(
        default="https://api.fireblocks.io", description="Fireblocks API base URL"
    )
    signer_backend: Literal["fireblocks", "simulated"] = Field(
        default="fireblocks", description="Which custody signer backend to use"
    )
    simulated_signer_seed: str = Field(
        default="movement-custody-dev", description="Seed for the simulated signer keys"
    )

    # ======================
    # Movement network
    # ======================
    movement_fullnode_url: str = Field(
        default="https://mainnet.movementnetwork.xyz/v1",
        description="Movement fullnode REST URL",
    )
    movement_indexer_url: str = Field(
        default="https://indexer.mainnet.movementnetwork.xyz/v1/graphql",
        description="Movement indexer GraphQL URL",
    )
    commit_timeout_s: float = Field(
        default=20.0, description="Seconds to wait for a submitted transaction to commit"
    )
    default_max_gas_amount: int = Field(
        default=200_000, description="Max gas amount when the caller sets none"
    )
    default_expiration_s: int = Field(
        default=20, description="Transaction expiry offset when the caller sets none"
    )

    # ======================
    # Client pool
    # ======================
    pool_max_size: int = Field(default=100, ge=1, description="Maximum pooled account clients")
    pool_idle_timeout_ms: int = Field(
        default=30 * 60 * 1000, description="Idle time before a pooled client is swept"
    )
    pool_cleanup_interval_ms: int = Field(
        default=5 * 60 * 1000, description="Interval between idle sweeps"
    )
    pool_acquire_timeout_ms: int = Field(
        default=30 * 1000, description="How long acquire waits for a busy account"
    )

    # ======================
    # Transaction pipeline
    # ======================
    signing_poll_interval_s: float = Field(
        default=3.0, description="Seconds between custody status polls"
    )
    signing_timeout_s: Optional[float] = Field(
        default=600.0, description="Give up polling a signing request after this many seconds"
    )
    verify_signatures: bool = Field(
        default=True, description="Verify custody signatures locally before submission"
    )

    # ======================
    # Runtime
    # ======================
    debug: bool = Field(default=False, description="Enable debug logging")

    def pool_config(self) -> PoolConfig:
        """Build the pool configuration."""
        return PoolConfig(
            max_pool_size=self.pool_max_size,
            idle_timeout_ms=self.pool_idle_timeout_ms,
            cleanup_interval_ms=self.pool_cleanup_interval_ms,
            acquire_timeout_ms=self.pool_acquire_timeout_ms,
        )

    def pipeline_config(self) -> PipelineConfig:
        """Build the transaction pipeline configuration."""
        return PipelineConfig(
            poll_interval_s=self.signing_poll_interval_s,
            signing_timeout_s=self.signing_timeout_s,
            verify_signatures=self.verify_signatures,
        )

    def load_secret_key(self) -> str:
        """Return the Fireblocks API secret as PEM text.

        A value ending in ``.pem`` or ``.key`` is treated as a file path.
        """
        secret = self.fireblocks_secret_key
        if not secret:
            raise ValueError("FIREBLOCKS_SECRET_KEY is not set")
        if secret.endswith((".pem", ".key")):
            return Path(secret).read_text(encoding="utf-8")
        return secret

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "debug": self.debug,
            "signer_backend": self.signer_backend,
            "fireblocks": {
                "base_url": self.fireblocks_base_url,
                "api_key": "***" if self.fireblocks_api_key else "(not set)",
                "secret_key": "***" if self.fireblocks_secret_key else "(not set)",
            },
            "movement": {
                "fullnode": self.movement_fullnode_url,
                "indexer": self.movement_indexer_url,
                "commit_timeout_s": self.commit_timeout_s,
            },
            "pool": {
                "max_size": self.pool_max_size,
                "idle_timeout_ms": self.pool_idle_timeout_ms,
                "cleanup_interval_ms": self.pool_cleanup_interval_ms,
                "acquire_timeout_ms": self.pool_acquire_timeout_ms,
            },
            "signing": {
                "poll_interval_s": self.signing_poll_interval_s,
                "timeout_s": self.signing_timeout_s,
                "verify_signatures": self.verify_signatures,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(debug: bool = False) -> None:
    """Configure root logging for a process entry point."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
