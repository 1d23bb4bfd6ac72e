"""Module and course aggregators.

Both recompute from source rows (lesson progress + quiz submissions) on
every call instead of patching cached figures, so any call repairs whatever
a previous interrupted cascade left behind.

Callers are responsible for holding the (student, course) lock.
"""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from learnpath.content.models import NO_EXCLUSIONS, ContentExclusions, ModuleStructure

from .calculator import course_figures, module_figures
from .exceptions import CourseNotFoundError
from .models import CourseProgress, ModuleProgress
from .protocols import ContentReader, ProgressStore, SubmissionStore


logger = structlog.get_logger(__name__)


class ModuleAggregator:
    """Derives a module's completion from its lessons and optional quiz."""

    def __init__(
        self,
        content: ContentReader,
        submissions: SubmissionStore,
        progress: ProgressStore,
    ):
        self.content = content
        self.submissions = submissions
        self.progress = progress

    async def recompute(
        self,
        student_id: UUID,
        module_id: UUID,
        *,
        exclusions: ContentExclusions = NO_EXCLUSIONS,
        touch: bool = True,
    ) -> ModuleProgress | None:
        """Recompute and store one student's module progress.

        Args:
            student_id: Student UUID
            module_id: Module UUID
            exclusions: Content mid-deletion to leave out of the totals
            touch: Refresh last_accessed_at (False for bulk recomputes)

        Returns:
            Stored ModuleProgress, or None if the module is unknown or excluded
        """
        module = await self.content.get_module(module_id)
        if module is None:
            logger.warning(
                "module_not_found",
                module_id=str(module_id),
                student_id=str(student_id),
            )
            return None

        module = exclusions.apply_module(module)
        if module is None:
            return None

        return await self.recompute_structure(student_id, module, touch=touch)

    async def recompute_structure(
        self,
        student_id: UUID,
        module: ModuleStructure,
        *,
        touch: bool = True,
    ) -> ModuleProgress:
        """Recompute against an already-loaded (possibly filtered) module."""
        lesson_ids = set(module.lesson_ids)
        lesson_rows = await self.progress.get_module_lesson_progress(
            student_id, module.course_id, module.module_id
        )
        lessons_completed = sum(
            1 for row in lesson_rows if row.is_completed and row.lesson_id in lesson_ids
        )

        best_score = None
        if module.quiz_id is not None:
            best = await self.submissions.get_best_submission(student_id, module.quiz_id)
            if best is not None:
                best_score = best.score

        figures = module_figures(
            lesson_total=module.lesson_count,
            lessons_completed=lessons_completed,
            has_quiz=module.has_quiz,
            best_score=best_score,
        )

        existing = await self.progress.get_module_progress(
            student_id, module.course_id, module.module_id
        )
        now = datetime.now(UTC)

        # Completion timestamp survives recomputes while the module stays complete
        completed_at = None
        if figures.is_completed:
            completed_at = now
            if existing and existing.is_completed and existing.completed_at:
                completed_at = existing.completed_at

        last_accessed_at = now
        if not touch:
            last_accessed_at = existing.last_accessed_at if existing else None

        progress = ModuleProgress(
            user_id=student_id,
            course_id=module.course_id,
            module_id=module.module_id,
            progress_percent=figures.progress_percent,
            lessons_completed=figures.lessons_completed,
            quiz_completed=figures.quiz_completed,
            quiz_score=figures.quiz_score,
            is_completed=figures.is_completed,
            completed_at=completed_at,
            last_accessed_at=last_accessed_at,
        )
        await self.progress.save_module_progress(progress)

        logger.debug(
            "module_progress_recomputed",
            student_id=str(student_id),
            module_id=str(module.module_id),
            progress_percent=progress.progress_percent,
            lessons_completed=progress.lessons_completed,
            quiz_completed=progress.quiz_completed,
        )
        return progress


class CourseAggregator:
    """Derives course completion from course-wide lesson and quiz ratios."""

    def __init__(
        self,
        content: ContentReader,
        submissions: SubmissionStore,
        progress: ProgressStore,
    ):
        self.content = content
        self.submissions = submissions
        self.progress = progress

    async def recompute(
        self,
        student_id: UUID,
        course_id: UUID,
        *,
        exclusions: ContentExclusions = NO_EXCLUSIONS,
        touch: bool = True,
    ) -> CourseProgress | None:
        """Recompute and store one student's course progress.

        Returns:
            Stored CourseProgress, or None if the course does not exist
        """
        if not await self.content.course_exists(course_id):
            logger.warning(
                "course_not_found",
                course_id=str(course_id),
                student_id=str(student_id),
            )
            return None

        modules = exclusions.apply(await self.content.get_course_modules(course_id))
        return await self.recompute_from(student_id, course_id, modules, touch=touch)

    async def recompute_from(
        self,
        student_id: UUID,
        course_id: UUID,
        modules: list[ModuleStructure],
        *,
        touch: bool = True,
    ) -> CourseProgress:
        """Recompute against an already-loaded module list."""
        lesson_ids = {lesson_id for m in modules for lesson_id in m.lesson_ids}
        quiz_ids = {m.quiz_id for m in modules if m.quiz_id is not None}

        lesson_rows = await self.progress.get_course_lesson_progress(
            student_id, course_id
        )
        lessons_completed = sum(
            1 for row in lesson_rows if row.is_completed and row.lesson_id in lesson_ids
        )

        graded = [
            sub
            for sub in await self.submissions.get_course_submissions(
                student_id, course_id
            )
            if sub.is_graded and sub.quiz_id in quiz_ids
        ]

        figures = course_figures(
            lesson_total=len(lesson_ids),
            lessons_completed=lessons_completed,
            quiz_total=len(quiz_ids),
            quizzes_completed=len({sub.quiz_id for sub in graded}),
            graded_scores=[sub.score for sub in graded],
        )

        # Resume pointer: most recently accessed module still in the course
        module_ids = {m.module_id for m in modules}
        accessed = [
            row
            for row in await self.progress.get_course_module_progress(
                student_id, course_id
            )
            if row.module_id in module_ids and row.last_accessed_at is not None
        ]
        current_module_id = None
        if accessed:
            current_module_id = max(accessed, key=lambda row: row.last_accessed_at).module_id

        existing = await self.progress.get_course_progress(student_id, course_id)
        last_accessed_at = datetime.now(UTC)
        if not touch:
            last_accessed_at = existing.last_accessed_at if existing else None

        progress = CourseProgress(
            user_id=student_id,
            course_id=course_id,
            progress_percent=figures.progress_percent,
            lessons_completed=figures.lessons_completed,
            quizzes_completed=figures.quizzes_completed,
            average_quiz_score=figures.average_quiz_score,
            current_module_id=current_module_id,
            last_accessed_at=last_accessed_at,
        )
        await self.progress.save_course_progress(progress)

        logger.debug(
            "course_progress_recomputed",
            student_id=str(student_id),
            course_id=str(course_id),
            progress_percent=progress.progress_percent,
            lessons_completed=progress.lessons_completed,
            quizzes_completed=progress.quizzes_completed,
        )
        return progress

    async def initialize_course_progress(
        self, student_id: UUID, course_id: UUID
    ) -> CourseProgress:
        """Create baseline progress rows for a freshly enrolled student.

        Adds a 0% ModuleProgress for every module without a row and computes
        the CourseProgress if it is missing. Safe to call more than once.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        if not await self.content.course_exists(course_id):
            raise CourseNotFoundError

        modules = await self.content.get_course_modules(course_id)
        tracked = {
            row.module_id
            for row in await self.progress.get_course_module_progress(
                student_id, course_id
            )
        }
        created = 0
        for module in modules:
            if module.module_id in tracked:
                continue
            await self.progress.save_module_progress(
                ModuleProgress(
                    user_id=student_id,
                    course_id=course_id,
                    module_id=module.module_id,
                )
            )
            created += 1

        course_progress = await self.progress.get_course_progress(student_id, course_id)
        if course_progress is None:
            course_progress = await self.recompute_from(
                student_id, course_id, modules, touch=False
            )

        logger.info(
            "course_progress_initialized",
            student_id=str(student_id),
            course_id=str(course_id),
            modules=len(modules),
            module_rows_created=created,
        )
        return course_progress
