"""Lesson access tracking.

Any access completes the lesson (simplified completion policy), then the
change cascades: lesson -> module -> course, as one causal chain under the
student's (student, course) lock.
"""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from .aggregators import CourseAggregator, ModuleAggregator
from .concurrency import RecomputePool
from .models import LessonProgress
from .protocols import ContentReader, ProgressStore


logger = structlog.get_logger(__name__)


class AccessTracker:
    """Records lesson accesses and drives the upward recompute."""

    def __init__(
        self,
        content: ContentReader,
        progress: ProgressStore,
        modules: ModuleAggregator,
        courses: CourseAggregator,
        pool: RecomputePool,
    ):
        self.content = content
        self.progress = progress
        self.modules = modules
        self.courses = courses
        self.pool = pool

    async def record_access(
        self, student_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        """Record that a student accessed a lesson.

        First access creates the row completed at 100%; later accesses only
        bump the view count and access time.

        Returns:
            Updated LessonProgress, or None if the lesson is unknown
        """
        lesson = await self.content.get_lesson(lesson_id)
        if lesson is None:
            logger.warning(
                "lesson_not_found",
                lesson_id=str(lesson_id),
                student_id=str(student_id),
            )
            return None

        async with self.pool.serialized(student_id, lesson.course_id):
            progress = await self.progress.get_lesson_progress(
                student_id, lesson.course_id, lesson.module_id, lesson_id
            )
            first_access = progress is None
            if progress is None:
                progress = LessonProgress(
                    user_id=student_id,
                    course_id=lesson.course_id,
                    module_id=lesson.module_id,
                    lesson_id=lesson_id,
                )

            progress.register_access(datetime.now(UTC))
            await self.progress.save_lesson_progress(progress)

            await self.modules.recompute(student_id, lesson.module_id)
            await self.courses.recompute(student_id, lesson.course_id)

        logger.info(
            "lesson_access_recorded",
            student_id=str(student_id),
            lesson_id=str(lesson_id),
            module_id=str(lesson.module_id),
            view_count=progress.view_count,
            first_access=first_access,
        )
        return progress
