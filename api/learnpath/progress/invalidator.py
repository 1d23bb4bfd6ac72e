"""Re-evaluation of enrolled students when a module's content changes."""

from uuid import UUID

import structlog

from learnpath.core.context import OperationContext

from .aggregators import CourseAggregator, ModuleAggregator
from .concurrency import RecomputePool
from .models import ReconciliationResult
from .protocols import ContentReader, SubmissionStore


logger = structlog.get_logger(__name__)


class ContentChangeInvalidator:
    """Pulls previously complete modules back under new requirements.

    Drives off enrollments rather than existing progress rows: a student
    who finished the module before the new lesson existed has no row for
    that lesson, yet must drop below 100%.
    """

    def __init__(
        self,
        content: ContentReader,
        submissions: SubmissionStore,
        modules: ModuleAggregator,
        courses: CourseAggregator,
        pool: RecomputePool,
    ):
        self.content = content
        self.submissions = submissions
        self.modules = modules
        self.courses = courses
        self.pool = pool

    async def on_content_added(self, module_id: UUID) -> ReconciliationResult | None:
        """Recompute a module (and its course) for every enrolled student.

        Returns:
            ReconciliationResult, or None if the module does not exist
        """
        return await self._reevaluate(module_id, operation="content_added")

    async def on_quiz_questions_changed(
        self, quiz_id: UUID, module_id: UUID
    ) -> ReconciliationResult | None:
        """Invalidate a quiz whose questions changed.

        Existing answers and submissions no longer match the quiz, so they
        are purged atomically before the module is re-evaluated for every
        enrolled student and every former submitter.
        """
        with OperationContext("quiz_questions_changed", quiz_id):
            submitters = await self.submissions.get_quiz_submitters(quiz_id)
            purged = await self.submissions.purge_quiz(quiz_id)

        return await self._reevaluate(
            module_id,
            operation="quiz_questions_changed",
            entity_id=quiz_id,
            extra_students=sorted(submitters),
            rows_purged=purged,
        )

    async def _reevaluate(
        self,
        module_id: UUID,
        operation: str,
        entity_id: UUID | None = None,
        extra_students: list[UUID] | None = None,
        rows_purged: int = 0,
    ) -> ReconciliationResult | None:
        module = await self.content.get_module(module_id)
        if module is None:
            logger.warning("module_not_found", module_id=str(module_id), operation=operation)
            return None

        result = ReconciliationResult(
            operation=operation,
            entity_id=entity_id or module_id,
            rows_purged=rows_purged,
        )

        with OperationContext(operation, result.entity_id):
            enrolled = await self.content.get_enrolled_students(module.course_id)
            student_ids = list(dict.fromkeys([*enrolled, *(extra_students or [])]))
            result.affected_students = len(student_ids)

            async def recompute(student_id: UUID) -> None:
                await self.modules.recompute_structure(student_id, module, touch=False)
                await self.courses.recompute(student_id, module.course_id, touch=False)

            outcome = await self.pool.run_batch(
                module.course_id, student_ids, recompute, operation=operation
            )
            result.recomputed = outcome.succeeded
            result.failed_student_ids = outcome.failed_student_ids

        log = logger.warning if result.has_failures else logger.info
        log(
            "content_change_reconciled",
            operation=operation,
            module_id=str(module_id),
            course_id=str(module.course_id),
            affected_students=result.affected_students,
            recomputed=result.recomputed,
            rows_purged=result.rows_purged,
            failed=len(result.failed_student_ids),
        )
        return result
