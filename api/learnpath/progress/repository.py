"""Cassandra persistence for lesson, module and course progress.

Dual-write pattern: every lesson/module row is mirrored into a lookup table
keyed by the content id, so deletion handlers can find every tracked student
without scanning. Multi-row purges go through one LOGGED batch per student.
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from .models import CourseProgress, LessonProgress, ModuleProgress, TrackedStudent


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ProgressRepository:
    """Repository for the engine-owned progress tables."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Lesson Progress
        self._get_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ? AND lesson_id = ?
        """)

        self._get_module_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        self._get_course_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (user_id, course_id, module_id, lesson_id, view_count, is_completed,
             progress, started_at, last_accessed_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._upsert_lesson_progress_by_lesson = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress_by_lesson
            (lesson_id, user_id, course_id, module_id)
            VALUES (?, ?, ?, ?)
        """)

        self._get_lesson_students = self.session.prepare(f"""
            SELECT user_id, course_id, module_id
            FROM {self.keyspace}.lesson_progress_by_lesson
            WHERE lesson_id = ?
        """)

        self._delete_lesson_progress = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ? AND lesson_id = ?
        """)

        # Range delete on the module clustering prefix
        self._delete_module_lessons = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        self._delete_lesson_progress_by_lesson = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.lesson_progress_by_lesson
            WHERE lesson_id = ? AND user_id = ?
        """)

        # Module Progress
        self._get_module_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        self._get_course_module_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_module_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress
            (user_id, course_id, module_id, progress_percent, lessons_completed,
             quiz_completed, quiz_score, is_completed, completed_at, last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._upsert_module_progress_by_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_progress_by_module
            (module_id, user_id, course_id)
            VALUES (?, ?, ?)
        """)

        self._get_module_students = self.session.prepare(f"""
            SELECT user_id, course_id
            FROM {self.keyspace}.module_progress_by_module
            WHERE module_id = ?
        """)

        self._delete_module_progress = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.module_progress
            WHERE user_id = ? AND course_id = ? AND module_id = ?
        """)

        self._delete_module_progress_by_module = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.module_progress_by_module
            WHERE module_id = ? AND user_id = ?
        """)

        # Course Progress
        self._get_course_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_course_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_progress
            (user_id, course_id, progress_percent, lessons_completed,
             quizzes_completed, average_quiz_score, current_module_id,
             last_accessed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Lesson Progress
    # ==========================================================================

    async def get_lesson_progress(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
    ) -> LessonProgress | None:
        """Get lesson progress for a student."""
        result = await self.session.aexecute(
            self._get_lesson_progress, [user_id, course_id, module_id, lesson_id]
        )
        row = result.one()
        return LessonProgress.from_row(row) if row else None

    async def get_module_lesson_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> list[LessonProgress]:
        rows = await self.session.aexecute(
            self._get_module_lesson_progress, [user_id, course_id, module_id]
        )
        return [LessonProgress.from_row(row) for row in rows]

    async def get_course_lesson_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        rows = await self.session.aexecute(
            self._get_course_lesson_progress, [user_id, course_id]
        )
        return [LessonProgress.from_row(row) for row in rows]

    async def save_lesson_progress(self, progress: LessonProgress) -> None:
        """Save lesson progress (dual write: main + lookup)."""
        await self.session.aexecute(
            self._upsert_lesson_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.module_id,
                progress.lesson_id,
                progress.view_count,
                progress.is_completed,
                progress.progress,
                progress.started_at,
                progress.last_accessed_at,
                progress.completed_at,
            ],
        )

        await self.session.aexecute(
            self._upsert_lesson_progress_by_lesson,
            [
                progress.lesson_id,
                progress.user_id,
                progress.course_id,
                progress.module_id,
            ],
        )

    async def get_lesson_students(self, lesson_id: UUID) -> list[TrackedStudent]:
        rows = await self.session.aexecute(self._get_lesson_students, [lesson_id])
        return [
            TrackedStudent(row.user_id, row.course_id, row.module_id) for row in rows
        ]

    async def delete_lesson_progress(self, lesson_id: UUID) -> int:
        """Delete every student's progress for a lesson.

        Each student's main row and lookup row go in one logged batch.

        Returns:
            Number of lesson progress rows removed
        """
        tracked = await self.get_lesson_students(lesson_id)
        for student in tracked:
            batch = BatchStatement(batch_type=BatchType.LOGGED)
            batch.add(
                self._delete_lesson_progress,
                [student.user_id, student.course_id, student.module_id, lesson_id],
            )
            batch.add(
                self._delete_lesson_progress_by_lesson, [lesson_id, student.user_id]
            )
            await self.session.aexecute(batch)

        logger.info(
            "lesson_progress_deleted",
            lesson_id=str(lesson_id),
            rows=len(tracked),
        )
        return len(tracked)

    # ==========================================================================
    # Module Progress
    # ==========================================================================

    async def get_module_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress | None:
        """Get module progress for a student."""
        result = await self.session.aexecute(
            self._get_module_progress, [user_id, course_id, module_id]
        )
        row = result.one()
        return ModuleProgress.from_row(row) if row else None

    async def get_course_module_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[ModuleProgress]:
        rows = await self.session.aexecute(
            self._get_course_module_progress, [user_id, course_id]
        )
        return [ModuleProgress.from_row(row) for row in rows]

    async def save_module_progress(self, progress: ModuleProgress) -> None:
        """Save module progress (dual write: main + lookup)."""
        await self.session.aexecute(
            self._upsert_module_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.module_id,
                progress.progress_percent,
                progress.lessons_completed,
                progress.quiz_completed,
                progress.quiz_score,
                progress.is_completed,
                progress.completed_at,
                progress.last_accessed_at,
            ],
        )

        await self.session.aexecute(
            self._upsert_module_progress_by_module,
            [progress.module_id, progress.user_id, progress.course_id],
        )

    async def get_module_students(self, module_id: UUID) -> list[TrackedStudent]:
        rows = await self.session.aexecute(self._get_module_students, [module_id])
        return [TrackedStudent(row.user_id, row.course_id, module_id) for row in rows]

    async def delete_module_progress(
        self, module_id: UUID, lesson_ids: Iterable[UUID]
    ) -> int:
        """Delete a module's progress rows and its lessons' progress rows.

        Students are collected from both lookup tables so lesson rows are
        purged even where no module row was ever written. Per student, the
        lesson range, lesson lookups, module row and module lookup are
        removed in one logged batch.

        Args:
            module_id: Module being deleted
            lesson_ids: Lessons of the module, captured before deletion

        Returns:
            Number of students purged
        """
        lesson_ids = list(lesson_ids)
        students: dict[tuple[UUID, UUID], set[UUID]] = {}
        for student in await self.get_module_students(module_id):
            students.setdefault((student.user_id, student.course_id), set())
        for lesson_id in lesson_ids:
            for student in await self.get_lesson_students(lesson_id):
                students.setdefault((student.user_id, student.course_id), set()).add(
                    lesson_id
                )

        for (user_id, course_id), tracked_lessons in students.items():
            batch = BatchStatement(batch_type=BatchType.LOGGED)
            batch.add(self._delete_module_lessons, [user_id, course_id, module_id])
            for lesson_id in tracked_lessons:
                batch.add(self._delete_lesson_progress_by_lesson, [lesson_id, user_id])
            batch.add(self._delete_module_progress, [user_id, course_id, module_id])
            batch.add(self._delete_module_progress_by_module, [module_id, user_id])
            await self.session.aexecute(batch)

        logger.info(
            "module_progress_deleted",
            module_id=str(module_id),
            students=len(students),
            lessons=len(lesson_ids),
        )
        return len(students)

    # ==========================================================================
    # Course Progress
    # ==========================================================================

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgress | None:
        """Get course progress for a student."""
        result = await self.session.aexecute(
            self._get_course_progress, [user_id, course_id]
        )
        row = result.one()
        return CourseProgress.from_row(row) if row else None

    async def save_course_progress(self, progress: CourseProgress) -> None:
        await self.session.aexecute(
            self._upsert_course_progress,
            [
                progress.user_id,
                progress.course_id,
                progress.progress_percent,
                progress.lessons_completed,
                progress.quizzes_completed,
                progress.average_quiz_score,
                progress.current_module_id,
                progress.last_accessed_at,
            ],
        )
