"""Progress engine service layer.

Single entry point for collaborators:
- Lesson access / quiz grading triggers (synchronous cascade)
- Content added / deleted / quiz reset events (multi-student reconciliation)
- Enrollment initialization
- Progress queries and the certificate completion gate
"""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnpath.content.repository import ContentRepository, SubmissionRepository
from learnpath.core.context import OperationContext

from .access import AccessTracker
from .aggregators import CourseAggregator, ModuleAggregator
from .concurrency import RecomputePool
from .exceptions import CourseNotFoundError
from .invalidator import ContentChangeInvalidator
from .models import (
    CourseProgress,
    LessonProgress,
    ModuleProgress,
    ReconciliationResult,
)
from .protocols import ContentReader, ProgressStore, SubmissionStore
from .recalculation import RecalculationEngine
from .reconciler import DeletionReconciler
from .repository import ProgressRepository


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ProgressService:
    """Service for hierarchical progress aggregation.

    Stateless apart from the injected stores and the recompute pool; every
    aggregate is recomputed from source rows on each trigger.
    """

    def __init__(
        self,
        content: ContentReader,
        submissions: SubmissionStore,
        progress: ProgressStore,
        concurrency: int = 16,
    ):
        self.content = content
        self.submissions = submissions
        self.progress = progress
        self.pool = RecomputePool(concurrency)

        self.modules = ModuleAggregator(content, submissions, progress)
        self.courses = CourseAggregator(content, submissions, progress)
        self.engine = RecalculationEngine(self.modules, self.courses)
        self.tracker = AccessTracker(
            content, progress, self.modules, self.courses, self.pool
        )
        self.reconciler = DeletionReconciler(
            content,
            submissions,
            progress,
            self.modules,
            self.courses,
            self.engine,
            self.pool,
        )
        self.invalidator = ContentChangeInvalidator(
            content, submissions, self.modules, self.courses, self.pool
        )

    @classmethod
    def from_session(
        cls, session: "Session", keyspace: str, concurrency: int = 16
    ) -> "ProgressService":
        """Build the service over the Cassandra repositories."""
        return cls(
            content=ContentRepository(session, keyspace),
            submissions=SubmissionRepository(session, keyspace),
            progress=ProgressRepository(session, keyspace),
            concurrency=concurrency,
        )

    # ==========================================================================
    # Triggers
    # ==========================================================================

    async def record_access(
        self, student_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        """Record a lesson access (completes the lesson) and cascade upward."""
        return await self.tracker.record_access(student_id, lesson_id)

    async def mark_lesson_completed(
        self, student_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        """Mark a lesson completed (convenience alias of record_access)."""
        return await self.record_access(student_id, lesson_id)

    async def on_quiz_graded(
        self,
        student_id: UUID,
        quiz_id: UUID,
        score: float | None = None,
    ) -> ModuleProgress | None:
        """Recompute the quiz's module and course after a submission is graded.

        The submission itself is written by the quiz collaborator; `score`
        is informational only, the best stored score is what counts.

        Returns:
            Recomputed ModuleProgress, or None if the quiz is unknown
        """
        quiz = await self.content.get_quiz(quiz_id)
        if quiz is None:
            logger.warning(
                "quiz_not_found", quiz_id=str(quiz_id), student_id=str(student_id)
            )
            return None

        async with self.pool.serialized(student_id, quiz.course_id):
            module_progress = await self.modules.recompute(student_id, quiz.module_id)
            await self.courses.recompute(student_id, quiz.course_id)

        logger.info(
            "quiz_grade_recorded",
            student_id=str(student_id),
            quiz_id=str(quiz_id),
            module_id=str(quiz.module_id),
            score=score,
        )
        return module_progress

    async def on_content_added(self, module_id: UUID) -> ReconciliationResult | None:
        """Re-evaluate enrolled students after a lesson or quiz is added."""
        return await self.invalidator.on_content_added(module_id)

    async def on_quiz_questions_changed(
        self, quiz_id: UUID, module_id: UUID
    ) -> ReconciliationResult | None:
        """Purge stale submissions and re-evaluate the quiz's module."""
        return await self.invalidator.on_quiz_questions_changed(quiz_id, module_id)

    async def on_lesson_deleted(
        self, lesson_id: UUID, module_id: UUID
    ) -> ReconciliationResult:
        """Purge a deleted lesson's progress and recompute its students."""
        return await self.reconciler.on_lesson_deleted(lesson_id, module_id)

    async def on_module_deleted(
        self, module_id: UUID, course_id: UUID
    ) -> ReconciliationResult:
        """Purge a deleted module's rows and recompute the course."""
        return await self.reconciler.on_module_deleted(module_id, course_id)

    async def on_quiz_deleted(
        self, quiz_id: UUID, module_id: UUID
    ) -> ReconciliationResult:
        """Purge a deleted quiz's submissions and recompute its module."""
        return await self.reconciler.on_quiz_deleted(quiz_id, module_id)

    async def initialize_course_progress(
        self, student_id: UUID, course_id: UUID
    ) -> CourseProgress:
        """Create baseline progress for a newly enrolled student.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        async with self.pool.serialized(student_id, course_id):
            return await self.courses.initialize_course_progress(student_id, course_id)

    async def recalculate_students(
        self, course_id: UUID, student_ids: list[UUID]
    ) -> ReconciliationResult:
        """Operator retry: full recalculation for the given students.

        Meant for the `failed_student_ids` of an earlier batch.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        if not await self.content.course_exists(course_id):
            raise CourseNotFoundError

        result = ReconciliationResult(
            operation="recalculate", entity_id=course_id
        )
        with OperationContext("recalculate", course_id):
            outcome = await self.pool.run_batch(
                course_id,
                student_ids,
                lambda sid: self.engine.recalculate_course_progress(sid, course_id),
                operation="recalculate",
            )
        result.affected_students = len(set(student_ids))
        result.recomputed = outcome.succeeded
        result.failed_student_ids = outcome.failed_student_ids

        logger.info(
            "progress_recalculated",
            course_id=str(course_id),
            students=result.affected_students,
            failed=len(result.failed_student_ids),
        )
        return result

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_course_progress(
        self, student_id: UUID, course_id: UUID
    ) -> CourseProgress:
        """Get course progress, initializing it on first read.

        Raises:
            CourseNotFoundError: If no progress exists and the course does not
        """
        progress = await self.progress.get_course_progress(student_id, course_id)
        if progress is None:
            progress = await self.initialize_course_progress(student_id, course_id)
        return progress

    async def get_course_progress_detail(
        self, student_id: UUID, course_id: UUID
    ) -> tuple[CourseProgress, list[ModuleProgress]]:
        """Course summary plus one row per module, in course order.

        Modules added after the student's last recompute are reported at 0%.
        """
        course_progress = await self.get_course_progress(student_id, course_id)
        modules = await self.content.get_course_modules(course_id)
        rows = {
            row.module_id: row
            for row in await self.progress.get_course_module_progress(
                student_id, course_id
            )
        }
        module_progress = [
            rows.get(module.module_id)
            or ModuleProgress(
                user_id=student_id, course_id=course_id, module_id=module.module_id
            )
            for module in modules
        ]
        return course_progress, module_progress

    async def get_module_progress(
        self, student_id: UUID, module_id: UUID
    ) -> ModuleProgress | None:
        """Stored module progress; None for an unknown module."""
        module = await self.content.get_module(module_id)
        if module is None:
            return None
        return await self.progress.get_module_progress(
            student_id, module.course_id, module_id
        )

    async def is_course_completed(self, student_id: UUID, course_id: UUID) -> bool:
        """Certificate gate: True only at 100%."""
        progress = await self.progress.get_course_progress(student_id, course_id)
        return progress is not None and progress.is_completed
