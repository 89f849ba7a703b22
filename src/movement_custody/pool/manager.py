"""Bounded pool of per-account clients.

Creating an account client costs a round trip to the custody platform, so
clients are kept per account id and reused. The pool:

- holds at most ``max_pool_size`` clients, counting ones still being built
- hands each client to one caller at a time; a second caller waits for the
  release up to a timeout and then gets ``AccountBusyError``
- evicts the least recently used idle client when a new account needs room
- drops clients idle for longer than ``idle_timeout_ms`` in a background sweep

Every state transition happens while holding one ``asyncio.Condition``.
Client construction runs outside of it, with the account id reserved.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Optional

from movement_custody.errors import (
    AccountBusyError,
    AccountInitializationError,
    PoolCapacityError,
    PoolClosedError,
)
from movement_custody.pool.types import PoolConfig, PooledClient, PoolMetrics
from movement_custody.signing.base import canonical_account_id

if TYPE_CHECKING:
    from movement_custody.account import AccountClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], Awaitable["AccountClient"]]


class ClientPool:
    """Per-account client pool with capacity back-pressure and idle eviction.

    Example:
        async with ClientPool(factory, PoolConfig(max_pool_size=10)) as pool:
            async with pool.lease("7") as client:
                await client.create_transfer(recipient, 100)
    """

    def __init__(
        self,
        factory: ClientFactory,
        config: Optional[PoolConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the pool.

        Args:
            factory: Coroutine function building the client for an account id
            config: Pool sizing and timing
            clock: Source of ``last_used`` timestamps, in seconds
        """
        self.config = config or PoolConfig()
        self._factory = factory
        self._clock = clock
        self._entries: dict[str, PooledClient] = {}
        self._pending: set[str] = set()
        self._condition = asyncio.Condition()
        self._sweep_task: Optional[asyncio.Task] = None
        self._closed = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, account_id: str) -> bool:
        try:
            return canonical_account_id(account_id) in self._entries
        except ValueError:
            return False

    @property
    def closed(self) -> bool:
        return self._closed

    # ======================
    # Acquire / release
    # ======================

    async def acquire(self, account_id: str, timeout: Optional[float] = None) -> "AccountClient":
        """Get exclusive use of the client for ``account_id``.

        Args:
            account_id: Custody account id, normalised so "03" and "3" share a client
            timeout: Seconds to wait if the account is busy (default from config)

        Raises:
            AccountBusyError: Account stayed in use past the timeout
            PoolCapacityError: Pool is full and no client is idle
            AccountInitializationError: Building the client failed
            PoolClosedError: Pool was shut down
        """
        try:
            account_id = canonical_account_id(account_id)
        except ValueError as e:
            raise AccountInitializationError(account_id, str(e)) from e
        if timeout is None:
            timeout = self.config.acquire_timeout_s
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        async with self._condition:
            while True:
                self._ensure_open()
                entry = self._entries.get(account_id)
                if entry is not None and not entry.in_use:
                    entry.in_use = True
                    entry.last_used = self._clock()
                    logger.info(f"Reusing client for account {account_id}")
                    return entry.client
                if entry is None and account_id not in self._pending:
                    break

                remaining = None if deadline is None else deadline - loop.time()
                if remaining is not None and remaining <= 0:
                    raise AccountBusyError(account_id, timeout)
                logger.warning(f"Account {account_id} is busy, waiting for release")
                try:
                    await asyncio.wait_for(self._condition.wait(), timeout=remaining)
                except asyncio.TimeoutError:
                    logger.warning(f"Account {account_id} still busy after {timeout}s")
                    raise AccountBusyError(account_id, timeout)

            if len(self._entries) + len(self._pending) >= self.config.max_pool_size:
                self._evict_oldest_idle()
            self._pending.add(account_id)

        return await self._construct(account_id)

    async def _construct(self, account_id: str) -> "AccountClient":
        client = None
        inserted = False
        try:
            client = await self._create_client(account_id)
        finally:
            async with self._condition:
                self._pending.discard(account_id)
                if client is not None and not self._closed:
                    self._entries[account_id] = PooledClient(
                        client=client, last_used=self._clock(), in_use=True
                    )
                    inserted = True
                self._condition.notify_all()

        if not inserted:
            raise PoolClosedError(f"Pool was shut down while creating client for account {account_id}")
        logger.info(f"Created client for account {account_id} ({len(self._entries)}/{self.config.max_pool_size})")
        return client

    async def _create_client(self, account_id: str) -> "AccountClient":
        try:
            return await self._factory(account_id)
        except AccountInitializationError:
            raise
        except Exception as e:
            logger.error(f"Failed to create client for account {account_id}: {e}")
            raise AccountInitializationError(account_id, str(e)) from e

    def _evict_oldest_idle(self) -> None:
        """Drop the least recently used idle client. Caller holds the condition."""
        idle = [(entry.last_used, account_id) for account_id, entry in self._entries.items() if not entry.in_use]
        if not idle:
            raise PoolCapacityError(
                f"Pool is at maximum capacity ({self.config.max_pool_size}) and no client is idle"
            )
        _, account_id = min(idle)
        del self._entries[account_id]
        logger.warning(f"Pool full, evicted idle client for account {account_id}")

    async def release(self, account_id: str) -> None:
        """Return the client for ``account_id`` to the pool. No-op if absent."""
        try:
            account_id = canonical_account_id(account_id)
        except ValueError:
            return
        async with self._condition:
            entry = self._entries.get(account_id)
            if entry is None:
                return
            entry.in_use = False
            entry.last_used = self._clock()
            self._condition.notify_all()
        logger.debug(f"Released client for account {account_id}")

    @asynccontextmanager
    async def lease(self, account_id: str, timeout: Optional[float] = None) -> AsyncIterator["AccountClient"]:
        """Acquire the client for the duration of the block."""
        client = await self.acquire(account_id, timeout=timeout)
        try:
            yield client
        finally:
            await self.release(account_id)

    # ======================
    # Metrics
    # ======================

    def metrics(self) -> PoolMetrics:
        active = sum(1 for entry in self._entries.values() if entry.in_use)
        return PoolMetrics(
            total_instances=len(self._entries),
            active_instances=active,
            idle_instances=len(self._entries) - active,
            instances_by_account={account_id: entry.in_use for account_id, entry in self._entries.items()},
        )

    # ======================
    # Idle sweep
    # ======================

    async def sweep_idle(self) -> list[str]:
        """Drop idle clients unused for longer than the idle timeout.

        Returns:
            Account ids that were removed
        """
        async with self._condition:
            now = self._clock()
            expired = [
                account_id
                for account_id, entry in self._entries.items()
                if not entry.in_use and (now - entry.last_used) * 1000 > self.config.idle_timeout_ms
            ]
            for account_id in expired:
                del self._entries[account_id]

        if expired:
            logger.info(f"Idle sweep removed {len(expired)} client(s): {', '.join(expired)}")
        return expired

    async def _sweep_loop(self) -> None:
        interval = self.config.cleanup_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            await self.sweep_idle()

    def start(self) -> None:
        """Start the background idle sweep."""
        self._ensure_open()
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def shutdown(self) -> None:
        """Stop the sweep and drop every client.

        In-flight operations are not awaited. Callers waiting in ``acquire``
        get ``PoolClosedError``.
        """
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        async with self._condition:
            self._closed = True
            self._entries.clear()
            self._condition.notify_all()
        logger.info("Client pool shut down")

    def _ensure_open(self) -> None:
        if self._closed:
            raise PoolClosedError("Client pool is shut down")

    async def __aenter__(self) -> "ClientPool":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False
