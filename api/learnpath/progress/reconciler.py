"""Deletion reconciliation for lessons, modules and quizzes.

Every handler follows the same shape: capture the affected structure and
students, purge the orphaned rows, then re-drive aggregation for each
affected student through the recompute pool. Purge errors propagate to the
caller; a single student's failed recompute is logged and reported in
`ReconciliationResult.failed_student_ids` without blocking the deletion.
"""

from collections import defaultdict
from uuid import UUID

import structlog

from learnpath.content.models import ContentExclusions
from learnpath.core.context import OperationContext

from .aggregators import CourseAggregator, ModuleAggregator
from .concurrency import RecomputePool
from .models import ReconciliationResult, TrackedStudent
from .protocols import ContentReader, ProgressStore, SubmissionStore
from .recalculation import RecalculationEngine


logger = structlog.get_logger(__name__)


def _group_by_course(tracked: list[TrackedStudent]) -> dict[UUID, list[UUID]]:
    groups: dict[UUID, list[UUID]] = defaultdict(list)
    for student in tracked:
        if student.user_id not in groups[student.course_id]:
            groups[student.course_id].append(student.user_id)
    return groups


class DeletionReconciler:
    """Purges progress for deleted content and recomputes affected students."""

    def __init__(
        self,
        content: ContentReader,
        submissions: SubmissionStore,
        progress: ProgressStore,
        modules: ModuleAggregator,
        courses: CourseAggregator,
        engine: RecalculationEngine,
        pool: RecomputePool,
    ):
        self.content = content
        self.submissions = submissions
        self.progress = progress
        self.modules = modules
        self.courses = courses
        self.engine = engine
        self.pool = pool

    # ==========================================================================
    # Lesson deletion
    # ==========================================================================

    async def on_lesson_deleted(
        self, lesson_id: UUID, module_id: UUID
    ) -> ReconciliationResult:
        """Purge a lesson's progress rows and recompute its module and course.

        The lesson is excluded from the module's totals, so the module falls
        back to quiz-only (or 0) when it was the last lesson.
        """
        result = ReconciliationResult(operation="lesson_deleted", entity_id=lesson_id)

        with OperationContext("lesson_deleted", lesson_id):
            tracked = await self.progress.get_lesson_students(lesson_id)
            tracked += await self.progress.get_module_students(module_id)
            groups = _group_by_course(tracked)
            result.affected_students = sum(len(ids) for ids in groups.values())

            result.rows_purged = await self.progress.delete_lesson_progress(lesson_id)

            exclusions = ContentExclusions(lesson_id=lesson_id)

            async def recompute(student_id: UUID, course_id: UUID) -> None:
                await self.modules.recompute(
                    student_id, module_id, exclusions=exclusions, touch=False
                )
                await self.courses.recompute(
                    student_id, course_id, exclusions=exclusions, touch=False
                )

            for course_id, student_ids in groups.items():
                outcome = await self.pool.run_batch(
                    course_id,
                    student_ids,
                    lambda sid, cid=course_id: recompute(sid, cid),
                    operation="lesson_deleted",
                )
                result.recomputed += outcome.succeeded
                result.failed_student_ids.extend(outcome.failed_student_ids)

        self._log_result(result, module_id=str(module_id))
        return result

    # ==========================================================================
    # Module deletion
    # ==========================================================================

    async def on_module_deleted(
        self, module_id: UUID, course_id: UUID
    ) -> ReconciliationResult:
        """Purge a module's lessons, quiz submissions and progress rows.

        The module's lesson set and quiz are read before anything is
        deleted. Affected students are then recalculated with the module
        excluded from the course totals.
        """
        result = ReconciliationResult(operation="module_deleted", entity_id=module_id)

        with OperationContext("module_deleted", module_id):
            # Capture structure first; later steps lose it
            module = await self.content.get_module(module_id)
            module_students = await self.progress.get_module_students(module_id)

            if module is not None:
                lesson_ids = list(module.lesson_ids)
                quiz_id = module.quiz_id
            else:
                # Content row already gone: recover lessons and quiz from student rows
                lesson_ids = await self._tracked_lesson_ids(module_id, module_students)
                quiz_id = await self._orphaned_quiz_id(
                    module_id, course_id, module_students
                )

            student_ids: list[UUID] = []
            for student in module_students:
                student_ids.append(student.user_id)
            for lesson_id in lesson_ids:
                for student in await self.progress.get_lesson_students(lesson_id):
                    student_ids.append(student.user_id)
            if quiz_id is not None:
                student_ids.extend(await self.submissions.get_quiz_submitters(quiz_id))
            student_ids = list(dict.fromkeys(student_ids))
            result.affected_students = len(student_ids)

            result.rows_purged = await self.progress.delete_module_progress(
                module_id, lesson_ids
            )
            if quiz_id is not None:
                result.rows_purged += await self.submissions.purge_quiz(quiz_id)

            outcome = await self.pool.run_batch(
                course_id,
                student_ids,
                lambda sid: self.engine.recalculate_course_progress(
                    sid, course_id, exclude_module_id=module_id
                ),
                operation="module_deleted",
            )
            result.recomputed = outcome.succeeded
            result.failed_student_ids = outcome.failed_student_ids

        self._log_result(result, course_id=str(course_id), lessons=len(lesson_ids))
        return result

    async def _tracked_lesson_ids(
        self, module_id: UUID, module_students: list[TrackedStudent]
    ) -> list[UUID]:
        lesson_ids: list[UUID] = []
        for student in module_students:
            rows = await self.progress.get_module_lesson_progress(
                student.user_id, student.course_id, module_id
            )
            lesson_ids.extend(row.lesson_id for row in rows)
        return list(dict.fromkeys(lesson_ids))

    async def _orphaned_quiz_id(
        self, module_id: UUID, course_id: UUID, module_students: list[TrackedStudent]
    ) -> UUID | None:
        """Quiz the module's students submitted to that no surviving module owns."""
        owned = {
            module.quiz_id
            for module in await self.content.get_course_modules(course_id)
            if module.quiz_id is not None
        }
        candidates: list[UUID] = []
        for student in module_students:
            for submission in await self.submissions.get_course_submissions(
                student.user_id, course_id
            ):
                if submission.quiz_id not in owned:
                    candidates.append(submission.quiz_id)

        for quiz_id in dict.fromkeys(candidates):
            quiz = await self.content.get_quiz(quiz_id)
            if quiz is None or quiz.module_id == module_id:
                return quiz_id
        return None

    # ==========================================================================
    # Quiz deletion
    # ==========================================================================

    async def on_quiz_deleted(self, quiz_id: UUID, module_id: UUID) -> ReconciliationResult:
        """Purge a quiz's answers and submissions, then recompute.

        Submissions are removed before any recompute so the soon-gone quiz
        is never counted. Everyone tracked in the module is recomputed, not
        only submitters: dropping the quiz changes every student's module
        denominator.
        """
        result = ReconciliationResult(operation="quiz_deleted", entity_id=quiz_id)

        with OperationContext("quiz_deleted", quiz_id):
            module_students = await self.progress.get_module_students(module_id)
            submitters = await self.submissions.get_quiz_submitters(quiz_id)
            course_id = await self._quiz_course_id(quiz_id, module_id, module_students)

            student_ids = list(
                dict.fromkeys([*sorted(submitters), *(s.user_id for s in module_students)])
            )
            result.affected_students = len(student_ids)

            result.rows_purged = await self.submissions.purge_quiz(quiz_id)

            if course_id is None:
                logger.warning(
                    "quiz_course_unresolved",
                    quiz_id=str(quiz_id),
                    module_id=str(module_id),
                )
                return result

            exclusions = ContentExclusions(quiz_id=quiz_id)

            async def recompute(student_id: UUID) -> None:
                await self._reset_module_quiz(student_id, course_id, module_id)
                await self.modules.recompute(
                    student_id, module_id, exclusions=exclusions, touch=False
                )
                await self.courses.recompute(
                    student_id, course_id, exclusions=exclusions, touch=False
                )

            outcome = await self.pool.run_batch(
                course_id, student_ids, recompute, operation="quiz_deleted"
            )
            result.recomputed = outcome.succeeded
            result.failed_student_ids = outcome.failed_student_ids

        self._log_result(result, module_id=str(module_id))
        return result

    async def _quiz_course_id(
        self,
        quiz_id: UUID,
        module_id: UUID,
        module_students: list[TrackedStudent],
    ) -> UUID | None:
        module = await self.content.get_module(module_id)
        if module is not None:
            return module.course_id
        quiz = await self.content.get_quiz(quiz_id)
        if quiz is not None:
            return quiz.course_id
        if module_students:
            return module_students[0].course_id
        return None

    async def _reset_module_quiz(
        self, student_id: UUID, course_id: UUID, module_id: UUID
    ) -> None:
        progress = await self.progress.get_module_progress(
            student_id, course_id, module_id
        )
        if progress is None or (not progress.quiz_completed and progress.quiz_score is None):
            return
        progress.quiz_completed = False
        progress.quiz_score = None
        await self.progress.save_module_progress(progress)

    def _log_result(self, result: ReconciliationResult, **extra: object) -> None:
        log = logger.warning if result.has_failures else logger.info
        log(
            f"{result.operation.removesuffix('_deleted')}_deletion_reconciled",
            entity_id=str(result.entity_id),
            affected_students=result.affected_students,
            recomputed=result.recomputed,
            rows_purged=result.rows_purged,
            failed=len(result.failed_student_ids),
            **extra,
        )
