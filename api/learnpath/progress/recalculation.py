"""Full from-scratch course recompute with mid-deletion exclusions."""

from uuid import UUID

import structlog

from learnpath.content.models import ContentExclusions

from .aggregators import CourseAggregator, ModuleAggregator
from .models import CourseProgress


logger = structlog.get_logger(__name__)


class RecalculationEngine:
    """Recomputes every module row of a course, then the course row.

    Content being deleted is excluded from the loaded structure rather than
    looked up, so the recompute is correct whether or not the content
    collaborator has already removed its own rows.
    """

    def __init__(self, modules: ModuleAggregator, courses: CourseAggregator):
        self.modules = modules
        self.courses = courses

    async def recalculate_course_progress(
        self,
        student_id: UUID,
        course_id: UUID,
        exclude_module_id: UUID | None = None,
        exclude_lesson_id: UUID | None = None,
        exclude_quiz_id: UUID | None = None,
    ) -> CourseProgress | None:
        """Recompute a student's whole course.

        Args:
            student_id: Student UUID
            course_id: Course UUID
            exclude_module_id: Module mid-deletion (dropped with its lessons/quiz)
            exclude_lesson_id: Lesson mid-deletion
            exclude_quiz_id: Quiz mid-deletion

        Returns:
            Stored CourseProgress, or None if the course does not exist
        """
        content = self.courses.content
        if not await content.course_exists(course_id):
            logger.warning(
                "course_not_found",
                course_id=str(course_id),
                student_id=str(student_id),
            )
            return None

        exclusions = ContentExclusions(
            module_id=exclude_module_id,
            lesson_id=exclude_lesson_id,
            quiz_id=exclude_quiz_id,
        )
        modules = exclusions.apply(await content.get_course_modules(course_id))

        for module in modules:
            await self.modules.recompute_structure(student_id, module, touch=False)

        progress = await self.courses.recompute_from(
            student_id, course_id, modules, touch=False
        )

        logger.debug(
            "course_progress_recalculated",
            student_id=str(student_id),
            course_id=str(course_id),
            modules=len(modules),
            excluded_module_id=str(exclude_module_id) if exclude_module_id else None,
        )
        return progress
