"""Per-account client pool."""

from movement_custody.pool.manager import ClientFactory, ClientPool
from movement_custody.pool.types import PoolConfig, PooledClient, PoolMetrics

__all__ = [
    "ClientFactory",
    "ClientPool",
    "PoolConfig",
    "PoolMetrics",
    "PooledClient",
]
