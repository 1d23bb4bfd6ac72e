"""Bounded fan-out for multi-student recomputes.

RecomputePool caps the number of in-flight recomputes with a semaphore and
serializes work per (student, course) with a KeyedLock, so two recomputes
of the same aggregate never interleave while unrelated students proceed in
parallel.
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from uuid import UUID

import structlog


logger = structlog.get_logger(__name__)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._refs: dict[Hashable, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class BatchOutcome:
    """Per-student results of a pool run."""

    succeeded: int = 0
    failed_student_ids: list[UUID] = field(default_factory=list)


class RecomputePool:
    """Worker pool for per-student recomputes."""

    def __init__(self, concurrency: int = 16):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self._locks = KeyedLock()

    def serialized(self, student_id: UUID, course_id: UUID):
        """Exclusive section for one (student, course) aggregate."""
        return self._locks.hold((student_id, course_id))

    async def run_batch(
        self,
        course_id: UUID,
        student_ids: Iterable[UUID],
        fn: Callable[[UUID], Awaitable[object]],
        operation: str,
    ) -> BatchOutcome:
        """Run `fn(student_id)` for every student, bounded and serialized.

        A failing student is logged and recorded; the rest of the batch
        still runs.

        Args:
            course_id: Course the students' aggregates belong to
            student_ids: Students to process (duplicates are collapsed)
            fn: Per-student coroutine function
            operation: Name used in log events

        Returns:
            BatchOutcome with the failed student ids in input order
        """
        outcome = BatchOutcome()
        failures: set[UUID] = set()
        ordered = list(dict.fromkeys(student_ids))

        async def worker(student_id: UUID) -> None:
            async with self._semaphore, self.serialized(student_id, course_id):
                try:
                    await fn(student_id)
                except Exception:
                    logger.exception(
                        "progress_recompute_failed",
                        operation=operation,
                        student_id=str(student_id),
                        course_id=str(course_id),
                    )
                    failures.add(student_id)
                else:
                    outcome.succeeded += 1

        await asyncio.gather(*(worker(student_id) for student_id in ordered))

        outcome.failed_student_ids = [sid for sid in ordered if sid in failures]
        return outcome
