"""
Concurrency safety tests.

Demonstrates:
1. Concurrent accepts on one ride leave exactly one ACCEPTED passenger.
2. Concurrent posts by one driver leave exactly one active ride.
3. A failed operation leaves the stored ride untouched.
4. Distributed lock prevents simultaneous acquire.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from campus_rides.domain.enums import PassengerStatus, RideStatus
from campus_rides.domain.errors import (
    ActiveRideExistsError,
    ReportNotFoundError,
    RideNotFoundError,
    SeatTakenError,
)
from campus_rides.infrastructure.locks import (
    DistributedLock,
    LocalLockProvider,
    LockNotAcquired,
    RedisLockProvider,
)
from tests.conftest import DRIVER, PICKUP, post_ride


class TestSingleAcceptedPassenger:
    @pytest.mark.asyncio
    async def test_concurrent_accepts_have_one_winner(self, engine):
        ride = await post_ride(engine)
        await engine.request_ride(ride.id, "a", "555", PICKUP)
        await engine.request_ride(ride.id, "b", "556", PICKUP)

        results = await asyncio.gather(
            engine.respond_to_request(ride.id, "a", "ACCEPTED", DRIVER),
            engine.respond_to_request(ride.id, "b", "ACCEPTED", DRIVER),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], SeatTakenError)

        stored = await engine.get_ride(ride.id)
        statuses = sorted(p.status for p in stored.passengers)
        assert statuses == [PassengerStatus.ACCEPTED, PassengerStatus.REJECTED]

    @pytest.mark.asyncio
    async def test_many_concurrent_accepts(self, engine):
        ride = await post_ride(engine)
        users = [f"student-{i}" for i in range(10)]
        for user in users:
            await engine.request_ride(ride.id, user, "555", PICKUP)

        results = await asyncio.gather(
            *(engine.respond_to_request(ride.id, u, "ACCEPTED") for u in users),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        stored = await engine.get_ride(ride.id)
        accepted = [
            p for p in stored.passengers if p.status == PassengerStatus.ACCEPTED
        ]
        assert len(accepted) == 1


class TestSingleActiveRide:
    @pytest.mark.asyncio
    async def test_concurrent_posts_by_one_driver(self, engine):
        results = await asyncio.gather(
            *(post_ride(engine) for _ in range(5)), return_exceptions=True
        )

        rides = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(rides) == 1
        assert all(isinstance(f, ActiveRideExistsError) for f in failures)
        active = [
            r for r in await engine.list_rides(driver_id=DRIVER) if r.is_active
        ]
        assert len(active) == 1


class TestAtomicUpdates:
    @pytest.mark.asyncio
    async def test_failed_block_discards_changes(self, engine):
        ride = await post_ride(engine)

        with pytest.raises(RuntimeError):
            async with engine.rides.transaction(ride.id) as working:
                working.status = RideStatus.CANCELLED
                raise RuntimeError("boom")

        assert (await engine.get_ride(ride.id)).status == RideStatus.PENDING

    @pytest.mark.asyncio
    async def test_callers_get_detached_copies(self, engine):
        ride = await post_ride(engine)
        fetched = await engine.get_ride(ride.id)
        fetched.status = RideStatus.CANCELLED
        assert (await engine.get_ride(ride.id)).status == RideStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_ids_leave_no_locks(self, engine, services):
        db = engine.rides.db
        await post_ride(engine)
        before = (len(db.ride_locks), len(db.report_locks))

        for i in range(200):
            with pytest.raises(RideNotFoundError):
                await engine.verify_otp(f"missing-{i}", "123456")
            with pytest.raises(ReportNotFoundError):
                await services.moderation.warn(f"missing-{i}", "admin-1")

        assert (len(db.ride_locks), len(db.report_locks)) == before

    @pytest.mark.asyncio
    async def test_delete_drops_the_ride_lock(self, engine):
        ride = await post_ride(engine)
        await engine.cancel_by_driver(ride.id, DRIVER)
        assert ride.id in engine.rides.db.ride_locks

        await engine.delete_ride(ride.id)
        assert ride.id not in engine.rides.db.ride_locks


class TestLocalLockProvider:
    @pytest.mark.asyncio
    async def test_same_key_is_serialised(self):
        locks = LocalLockProvider()
        order = []

        async def worker(name):
            async with locks.hold("driver:1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_idle_keys_are_dropped(self):
        locks = LocalLockProvider()
        for i in range(50):
            async with locks.hold(f"driver:{i}"):
                pass
        with pytest.raises(RuntimeError):
            async with locks.hold("driver:x"):
                raise RuntimeError("boom")
        assert locks._locks == {}


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "driver:1", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "lock:driver:1", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "driver:1", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval_with_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "driver:1", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        args = mock_redis.eval.await_args.args
        assert args[1:] == (1, "lock:driver:1", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "driver:1", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="try again"):
            async with lock:
                pass

    @pytest.mark.asyncio
    async def test_acquire_within_polls_until_free(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[False, False, True])

        lock = DistributedLock(mock_redis, "driver:1")
        assert await lock.acquire_within(1.0, poll_seconds=0.001) is True
        assert mock_redis.set.await_count == 3


class TestRedisLockProvider:
    @pytest.mark.asyncio
    async def test_hold_releases_after_block(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        locks = RedisLockProvider(mock_redis, ttl_seconds=5, wait_seconds=0.1)
        async with locks.hold("driver:1"):
            mock_redis.eval.assert_not_awaited()
        mock_redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hold_gives_up_as_conflict(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        locks = RedisLockProvider(mock_redis, ttl_seconds=5, wait_seconds=0.01)
        with pytest.raises(LockNotAcquired, match="try again"):
            async with locks.hold("driver:1"):
                pytest.fail("lock should not have been acquired")
        mock_redis.eval.assert_not_awaited()
