"""Client pool data types."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from movement_custody.account import AccountClient


@dataclass(frozen=True)
class PoolConfig:
    """Pool sizing and timing, fixed for the lifetime of a pool.

    Attributes:
        max_pool_size: Maximum number of account clients (including ones being built)
        idle_timeout_ms: Idle time after which the sweep drops a client
        cleanup_interval_ms: Period of the background idle sweep
        acquire_timeout_ms: Default wait for a busy account (None = wait forever)
    """
    max_pool_size: int = 100
    idle_timeout_ms: int = 30 * 60 * 1000
    cleanup_interval_ms: int = 5 * 60 * 1000
    acquire_timeout_ms: Optional[int] = 30 * 1000

    def __post_init__(self):
        if self.max_pool_size < 1:
            raise ValueError(f"max_pool_size must be at least 1, got {self.max_pool_size}")
        if self.idle_timeout_ms < 0:
            raise ValueError(f"idle_timeout_ms must be non-negative, got {self.idle_timeout_ms}")
        if self.cleanup_interval_ms <= 0:
            raise ValueError(f"cleanup_interval_ms must be positive, got {self.cleanup_interval_ms}")
        if self.acquire_timeout_ms is not None and self.acquire_timeout_ms < 0:
            raise ValueError(f"acquire_timeout_ms must be non-negative, got {self.acquire_timeout_ms}")

    @property
    def acquire_timeout_s(self) -> Optional[float]:
        if self.acquire_timeout_ms is None:
            return None
        return self.acquire_timeout_ms / 1000


@dataclass
class PooledClient:
    """Pool entry. ``last_used`` is a reading of the pool clock, in seconds."""
    client: "AccountClient"
    last_used: float
    in_use: bool = False


@dataclass
class PoolMetrics:
    total_instances: int = 0
    active_instances: int = 0
    idle_instances: int = 0
    instances_by_account: dict[str, bool] = field(default_factory=dict)
