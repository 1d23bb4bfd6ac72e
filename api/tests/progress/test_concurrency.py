"""Tests for the keyed lock and the bounded recompute pool."""

import asyncio
from uuid import UUID, uuid4

import pytest

from learnpath.progress.concurrency import KeyedLock, RecomputePool


class TestKeyedLock:
    """Tests for KeyedLock."""

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        events: list[str] = []

        async def section(name: str) -> None:
            async with locks.hold("key"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(section("a"), section("b"))

        assert events == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_run_in_parallel(self):
        locks = KeyedLock()
        both_inside = asyncio.Event()
        inside = 0

        async def section(key: str) -> None:
            nonlocal inside
            async with locks.hold(key):
                inside += 1
                if inside == 2:
                    both_inside.set()
                await asyncio.wait_for(both_inside.wait(), timeout=1)

        await asyncio.gather(section("a"), section("b"))

        assert both_inside.is_set()

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self):
        locks = KeyedLock()

        async with locks.hold("key"):
            assert len(locks) == 1

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = KeyedLock()

        with pytest.raises(RuntimeError):
            async with locks.hold("key"):
                raise RuntimeError("boom")

        assert len(locks) == 0


class TestRecomputePool:
    """Tests for RecomputePool.run_batch."""

    def test_rejects_non_positive_concurrency(self):
        with pytest.raises(ValueError):
            RecomputePool(0)

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        pool = RecomputePool(concurrency=2)
        active = 0
        peak = 0

        async def work(student_id: UUID) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        outcome = await pool.run_batch(
            uuid4(), [uuid4() for _ in range(6)], work, operation="test"
        )

        assert outcome.succeeded == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_failures_are_collected_in_input_order(self):
        pool = RecomputePool(concurrency=4)
        students = [uuid4() for _ in range(5)]
        failing = {students[3], students[1]}

        async def work(student_id: UUID) -> None:
            if student_id in failing:
                raise RuntimeError("recompute failed")

        outcome = await pool.run_batch(uuid4(), students, work, operation="test")

        assert outcome.succeeded == 3
        assert outcome.failed_student_ids == [students[1], students[3]]

    @pytest.mark.asyncio
    async def test_duplicates_processed_once(self):
        pool = RecomputePool()
        student = uuid4()
        calls: list[UUID] = []

        async def work(student_id: UUID) -> None:
            calls.append(student_id)

        outcome = await pool.run_batch(
            uuid4(), [student, student, student], work, operation="test"
        )

        assert calls == [student]
        assert outcome.succeeded == 1

    @pytest.mark.asyncio
    async def test_batch_waits_for_serialized_trigger(self):
        """A batch recompute never interleaves with a held (student, course) lock."""
        pool = RecomputePool()
        student, course = uuid4(), uuid4()
        events: list[str] = []

        async def trigger() -> None:
            async with pool.serialized(student, course):
                events.append("trigger-in")
                await asyncio.sleep(0.01)
                events.append("trigger-out")

        async def work(student_id: UUID) -> None:
            events.append("batch")

        task = asyncio.create_task(trigger())
        await asyncio.sleep(0)
        await pool.run_batch(course, [student], work, operation="test")
        await task

        assert events == ["trigger-in", "trigger-out", "batch"]
