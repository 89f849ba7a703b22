"""Tests for the per-account client pool."""

import asyncio

import pytest

from movement_custody.account import AccountClient
from movement_custody.errors import (
    AccountBusyError,
    AccountInitializationError,
    PoolCapacityError,
    PoolClosedError,
    RemoteCallError,
)
from movement_custody.pool import ClientPool, PoolConfig


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingFactory:
    """Builds placeholder clients and records which accounts were built."""

    def __init__(self):
        self.created: list[str] = []
        self.fail_for: set[str] = set()
        self.gate: asyncio.Event | None = None

    async def __call__(self, account_id: str):
        if self.gate is not None:
            await self.gate.wait()
        if account_id in self.fail_for:
            raise AccountInitializationError(account_id, "public key lookup failed")
        self.created.append(account_id)
        return object()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory()


def make_pool(factory, clock, **overrides) -> ClientPool:
    config = PoolConfig(
        max_pool_size=overrides.pop("max_pool_size", 2),
        idle_timeout_ms=overrides.pop("idle_timeout_ms", 60_000),
        cleanup_interval_ms=overrides.pop("cleanup_interval_ms", 60_000),
        acquire_timeout_ms=overrides.pop("acquire_timeout_ms", 50),
    )
    return ClientPool(factory, config, clock=clock)


class TestPoolConfig:
    """Tests for pool configuration."""

    def test_max_pool_size_must_be_positive(self):
        with pytest.raises(ValueError):
            PoolConfig(max_pool_size=0)

    def test_acquire_timeout_in_seconds(self):
        assert PoolConfig(acquire_timeout_ms=2500).acquire_timeout_s == 2.5
        assert PoolConfig(acquire_timeout_ms=None).acquire_timeout_s is None


class TestAcquireRelease:
    """Tests for acquiring and releasing clients."""

    @pytest.mark.asyncio
    async def test_release_then_acquire_reuses_client(self, factory, clock):
        pool = make_pool(factory, clock)

        first = await pool.acquire("1")
        await pool.release("1")
        second = await pool.acquire("1")

        assert first is second
        assert factory.created == ["1"]

    @pytest.mark.asyncio
    async def test_reused_account_client_keeps_identity(self, signer, ledger, pipeline, clock):
        async def build(account_id: str) -> AccountClient:
            return await AccountClient.create(account_id, signer, ledger, pipeline)

        pool = make_pool(build, clock)

        first = await pool.acquire("4")
        address, public_key = first.get_address(), first.get_public_key()
        await pool.release("4")
        second = await pool.acquire("4")

        assert (second.get_address(), second.get_public_key()) == (address, public_key)

    @pytest.mark.asyncio
    async def test_release_unknown_account_is_noop(self, factory, clock):
        pool = make_pool(factory, clock)

        await pool.release("missing")

        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_lease_releases_on_error(self, factory, clock):
        pool = make_pool(factory, clock)

        with pytest.raises(RuntimeError):
            async with pool.lease("1"):
                raise RuntimeError("boom")

        assert pool.metrics().instances_by_account == {"1": False}


class TestBusyAccount:
    """Tests for exclusive use of an account's client."""

    @pytest.mark.asyncio
    async def test_busy_account_times_out(self, factory, clock):
        pool = make_pool(factory, clock, acquire_timeout_ms=20)
        await pool.acquire("1")

        with pytest.raises(AccountBusyError) as exc_info:
            await pool.acquire("1")

        assert exc_info.value.account_id == "1"
        assert pool.metrics().active_instances == 1

    @pytest.mark.asyncio
    async def test_waiter_gets_client_after_release(self, factory, clock):
        pool = make_pool(factory, clock, acquire_timeout_ms=1000)
        client = await pool.acquire("1")

        waiter = asyncio.create_task(pool.acquire("1"))
        await asyncio.sleep(0)
        assert not waiter.done()

        await pool.release("1")

        assert await waiter is client
        assert pool.metrics().active_instances == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_acquire_builds_once(self, factory, clock):
        pool = make_pool(factory, clock, acquire_timeout_ms=1000)
        factory.gate = asyncio.Event()

        first = asyncio.create_task(pool.acquire("1"))
        second = asyncio.create_task(pool.acquire("1"))
        await asyncio.sleep(0)
        assert pool.metrics().total_instances == 0

        factory.gate.set()
        client = await first
        await pool.release("1")

        assert await second is client
        assert factory.created == ["1"]

    @pytest.mark.asyncio
    async def test_equivalent_account_ids_share_one_client(self, factory, clock):
        pool = make_pool(factory, clock, acquire_timeout_ms=20)
        client = await pool.acquire("3")

        with pytest.raises(AccountBusyError):
            await pool.acquire("03")
        await pool.release("003")

        assert await pool.acquire(" 03 ") is client
        assert "03" in pool
        assert factory.created == ["3"]
        assert pool.metrics().instances_by_account == {"3": True}

    @pytest.mark.asyncio
    async def test_non_ascii_digits_rejected(self, factory, clock):
        pool = make_pool(factory, clock)

        with pytest.raises(AccountInitializationError):
            await pool.acquire("\u0663")

        assert factory.created == []


class TestCapacity:
    """Tests for capacity back-pressure and eviction."""

    @pytest.mark.asyncio
    async def test_full_pool_without_idle_clients(self, factory, clock):
        pool = make_pool(factory, clock, max_pool_size=2)
        await pool.acquire("1")
        await pool.acquire("2")

        with pytest.raises(PoolCapacityError):
            await pool.acquire("3")

        assert len(pool) == 2
        assert "3" not in pool

    @pytest.mark.asyncio
    async def test_evicts_oldest_idle_client(self, factory, clock):
        pool = make_pool(factory, clock, max_pool_size=2)
        await pool.acquire("1")
        await pool.acquire("2")
        await pool.release("1")
        clock.advance(5)
        await pool.release("2")

        await pool.acquire("3")

        assert "1" not in pool
        assert "2" in pool
        assert len(pool) == 2

    @pytest.mark.asyncio
    async def test_pending_construction_counts_toward_capacity(self, factory, clock):
        pool = make_pool(factory, clock, max_pool_size=1)
        factory.gate = asyncio.Event()

        building = asyncio.create_task(pool.acquire("1"))
        await asyncio.sleep(0)

        with pytest.raises(PoolCapacityError):
            await pool.acquire("2")

        factory.gate.set()
        await building
        assert len(pool) == 1


class TestConstructionFailure:
    """Tests for failed client construction."""

    @pytest.mark.asyncio
    async def test_failure_adds_no_entry(self, factory, clock):
        pool = make_pool(factory, clock)
        factory.fail_for.add("1")

        with pytest.raises(AccountInitializationError):
            await pool.acquire("1")

        assert len(pool) == 0
        assert pool.metrics().total_instances == 0

    @pytest.mark.asyncio
    async def test_failure_is_not_retried(self, factory, clock):
        pool = make_pool(factory, clock)
        factory.fail_for.add("1")

        with pytest.raises(AccountInitializationError):
            await pool.acquire("1")
        factory.fail_for.clear()

        await pool.acquire("1")
        assert factory.created == ["1"]

    @pytest.mark.asyncio
    async def test_other_custody_errors_are_wrapped(self, clock):
        async def broken(account_id: str):
            raise RemoteCallError("Fireblocks", "down")

        pool = make_pool(broken, clock)

        with pytest.raises(AccountInitializationError) as exc_info:
            await pool.acquire("1")

        assert "Fireblocks call failed: down" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_wrapped(self, clock):
        async def broken(account_id: str):
            raise RuntimeError("connection pool exhausted")

        pool = make_pool(broken, clock)

        with pytest.raises(AccountInitializationError) as exc_info:
            await pool.acquire("1")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_invalid_account_id(self, factory, clock):
        pool = make_pool(factory, clock)

        with pytest.raises(AccountInitializationError):
            await pool.acquire("abc")

        assert factory.created == []


class TestIdleSweep:
    """Tests for the idle sweep."""

    @pytest.mark.asyncio
    async def test_removes_only_expired_idle_clients(self, factory, clock):
        pool = make_pool(factory, clock, max_pool_size=3, idle_timeout_ms=10_000)
        await pool.acquire("1")
        await pool.acquire("2")
        await pool.acquire("3")
        await pool.release("1")
        clock.advance(8)
        await pool.release("3")
        clock.advance(3)

        removed = await pool.sweep_idle()

        assert removed == ["1"]
        assert "2" in pool
        assert "3" in pool

    @pytest.mark.asyncio
    async def test_exact_timeout_is_kept(self, factory, clock):
        pool = make_pool(factory, clock, idle_timeout_ms=10_000)
        await pool.acquire("1")
        await pool.release("1")
        clock.advance(10)

        assert await pool.sweep_idle() == []

    @pytest.mark.asyncio
    async def test_in_use_client_never_swept(self, factory, clock):
        pool = make_pool(factory, clock, idle_timeout_ms=1)
        await pool.acquire("1")
        clock.advance(3600)

        assert await pool.sweep_idle() == []
        assert "1" in pool

    @pytest.mark.asyncio
    async def test_background_sweep_runs(self, factory):
        config = PoolConfig(max_pool_size=2, idle_timeout_ms=0, cleanup_interval_ms=10)
        clock = FakeClock()

        async with ClientPool(factory, config, clock=clock) as pool:
            await pool.acquire("1")
            await pool.release("1")
            clock.advance(1)
            await asyncio.sleep(0.05)

            assert len(pool) == 0


class TestMetricsAndShutdown:
    """Tests for metrics and shutdown."""

    @pytest.mark.asyncio
    async def test_metrics(self, factory, clock):
        pool = make_pool(factory, clock, max_pool_size=3)
        await pool.acquire("1")
        await pool.acquire("2")
        await pool.release("2")

        metrics = pool.metrics()

        assert metrics.total_instances == 2
        assert metrics.active_instances == 1
        assert metrics.idle_instances == 1
        assert metrics.instances_by_account == {"1": True, "2": False}

    @pytest.mark.asyncio
    async def test_shutdown_clears_and_closes(self, factory, clock):
        pool = make_pool(factory, clock)
        pool.start()
        await pool.acquire("1")

        await pool.shutdown()

        assert len(pool) == 0
        assert pool.closed
        with pytest.raises(PoolClosedError):
            await pool.acquire("2")

    @pytest.mark.asyncio
    async def test_shutdown_wakes_waiters(self, factory, clock):
        pool = make_pool(factory, clock, acquire_timeout_ms=5000)
        await pool.acquire("1")
        waiter = asyncio.create_task(pool.acquire("1"))
        await asyncio.sleep(0)

        await pool.shutdown()

        with pytest.raises(PoolClosedError):
            await waiter
