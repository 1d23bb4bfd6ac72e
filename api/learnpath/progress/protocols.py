"""Storage contracts the progress engine depends on.

The aggregators and reconcilers receive these by injection; the Cassandra
repositories implement them in production and tests pass in-memory doubles.
"""

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from learnpath.content.models import LessonRef, ModuleStructure, QuizRef, QuizSubmission

from .models import CourseProgress, LessonProgress, ModuleProgress, TrackedStudent


class ContentReader(Protocol):
    """Read-only view of the content tree and enrollments."""

    async def course_exists(self, course_id: UUID) -> bool: ...

    async def get_lesson(self, lesson_id: UUID) -> LessonRef | None: ...

    async def get_quiz(self, quiz_id: UUID) -> QuizRef | None: ...

    async def get_module(self, module_id: UUID) -> ModuleStructure | None:
        """Lesson set and optional quiz of a module, None if it is gone."""
        ...

    async def get_course_modules(self, course_id: UUID) -> list[ModuleStructure]:
        """Every module of a course, in course order."""
        ...

    async def get_enrolled_students(self, course_id: UUID) -> list[UUID]: ...


class SubmissionStore(Protocol):
    """Quiz submission history."""

    async def get_best_submission(
        self, user_id: UUID, quiz_id: UUID
    ) -> QuizSubmission | None:
        """Highest-scoring graded submission, None when nothing is graded."""
        ...

    async def get_course_submissions(
        self, user_id: UUID, course_id: UUID
    ) -> list[QuizSubmission]: ...

    async def get_quiz_submitters(self, quiz_id: UUID) -> set[UUID]: ...

    async def purge_quiz(self, quiz_id: UUID) -> int:
        """Delete answers then submissions of a quiz atomically."""
        ...


class ProgressStore(Protocol):
    """The engine's own lesson/module/course progress tables."""

    async def get_lesson_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None: ...

    async def save_lesson_progress(self, progress: LessonProgress) -> None: ...

    async def get_module_lesson_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> list[LessonProgress]: ...

    async def get_course_lesson_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[LessonProgress]: ...

    async def get_module_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress | None: ...

    async def save_module_progress(self, progress: ModuleProgress) -> None: ...

    async def get_course_module_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[ModuleProgress]: ...

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgress | None: ...

    async def save_course_progress(self, progress: CourseProgress) -> None: ...

    async def get_lesson_students(self, lesson_id: UUID) -> list[TrackedStudent]:
        """Students holding a progress row for the lesson."""
        ...

    async def get_module_students(self, module_id: UUID) -> list[TrackedStudent]:
        """Students holding a progress row for the module."""
        ...

    async def delete_lesson_progress(self, lesson_id: UUID) -> int:
        """Remove every student's row for a lesson; returns rows removed."""
        ...

    async def delete_module_progress(
        self, module_id: UUID, lesson_ids: Iterable[UUID]
    ) -> int:
        """Remove module rows and the module's lesson rows; returns students purged."""
        ...
