"""Cassandra readers for content structure, enrollments and quiz submissions.

ContentRepository answers the structural questions the aggregators ask
(lessons of a module, quiz of a module, modules of a course, enrolled
students). SubmissionRepository reads graded attempts and purges a quiz's
answers and submissions, one logged batch per student.
"""

from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from .models import LessonRef, ModuleStructure, QuizRef, QuizSubmission


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ContentRepository:
    """Read-only access to the content collaborator's tables."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        self._get_course = self.session.prepare(
            f"SELECT id FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_module = self.session.prepare(
            f"SELECT id, course_id, quiz_id FROM {self.keyspace}.modules WHERE id = ?"
        )
        self._get_course_modules = self.session.prepare(
            f"SELECT module_id FROM {self.keyspace}.modules_by_course WHERE course_id = ?"
        )
        self._get_module_lessons = self.session.prepare(
            f"SELECT lesson_id FROM {self.keyspace}.lessons_by_module WHERE module_id = ?"
        )
        self._get_lesson = self.session.prepare(
            f"SELECT id, module_id, course_id FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._get_quiz = self.session.prepare(
            f"SELECT id, module_id, course_id FROM {self.keyspace}.quizzes WHERE id = ?"
        )
        self._get_enrollments = self.session.prepare(
            f"SELECT user_id FROM {self.keyspace}.enrollments WHERE course_id = ?"
        )

    async def course_exists(self, course_id: UUID) -> bool:
        result = await self.session.aexecute(self._get_course, [course_id])
        return result.one() is not None

    async def get_lesson(self, lesson_id: UUID) -> LessonRef | None:
        result = await self.session.aexecute(self._get_lesson, [lesson_id])
        row = result.one()
        return LessonRef.from_row(row) if row else None

    async def get_quiz(self, quiz_id: UUID) -> QuizRef | None:
        result = await self.session.aexecute(self._get_quiz, [quiz_id])
        row = result.one()
        return QuizRef.from_row(row) if row else None

    async def get_module(self, module_id: UUID) -> ModuleStructure | None:
        """Load a module's lesson set and optional quiz.

        Returns None if the module row no longer exists.
        """
        result = await self.session.aexecute(self._get_module, [module_id])
        row = result.one()
        if not row:
            return None

        lesson_rows = await self.session.aexecute(self._get_module_lessons, [module_id])
        return ModuleStructure(
            module_id=row.id,
            course_id=row.course_id,
            lesson_ids=tuple(r.lesson_id for r in lesson_rows),
            quiz_id=row.quiz_id,
        )

    async def get_course_modules(self, course_id: UUID) -> list[ModuleStructure]:
        """Load every module of a course in course order.

        Modules listed in the course but already gone from `modules` are
        skipped.
        """
        rows = await self.session.aexecute(self._get_course_modules, [course_id])
        modules = []
        for row in rows:
            module = await self.get_module(row.module_id)
            if module is None:
                logger.debug(
                    "course_module_missing",
                    course_id=str(course_id),
                    module_id=str(row.module_id),
                )
                continue
            modules.append(module)
        return modules

    async def get_enrolled_students(self, course_id: UUID) -> list[UUID]:
        rows = await self.session.aexecute(self._get_enrollments, [course_id])
        return [row.user_id for row in rows]


class SubmissionRepository:
    """Quiz submission history, written by the quiz collaborator."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        self._get_quiz_submissions = self.session.prepare(f"""
            SELECT user_id, quiz_id, submission_id, course_id, module_id, score, ended_at
            FROM {self.keyspace}.quiz_submissions
            WHERE user_id = ? AND quiz_id = ?
        """)

        self._get_course_submissions = self.session.prepare(f"""
            SELECT user_id, course_id, quiz_id, submission_id, score, ended_at
            FROM {self.keyspace}.quiz_submissions_by_course
            WHERE user_id = ? AND course_id = ?
        """)

        self._get_submissions_by_quiz = self.session.prepare(f"""
            SELECT user_id, submission_id, course_id
            FROM {self.keyspace}.quiz_submissions_by_quiz
            WHERE quiz_id = ?
        """)

        # Purge statements (answers first, then submissions)
        self._delete_answers = self.session.prepare(
            f"DELETE FROM {self.keyspace}.quiz_answers WHERE submission_id = ?"
        )
        self._delete_user_quiz_submissions = self.session.prepare(
            f"DELETE FROM {self.keyspace}.quiz_submissions WHERE user_id = ? AND quiz_id = ?"
        )
        self._delete_course_quiz_submissions = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.quiz_submissions_by_course
            WHERE user_id = ? AND course_id = ? AND quiz_id = ?
        """)
        self._delete_quiz_index = self.session.prepare(
            f"DELETE FROM {self.keyspace}.quiz_submissions_by_quiz WHERE quiz_id = ?"
        )

    async def get_best_submission(
        self, user_id: UUID, quiz_id: UUID
    ) -> QuizSubmission | None:
        """Highest-scoring graded submission; None if nothing is graded yet."""
        rows = await self.session.aexecute(
            self._get_quiz_submissions, [user_id, quiz_id]
        )
        graded = [
            sub for sub in (QuizSubmission.from_row(row) for row in rows) if sub.is_graded
        ]
        if not graded:
            return None
        return max(graded, key=lambda sub: sub.score)

    async def get_course_submissions(
        self, user_id: UUID, course_id: UUID
    ) -> list[QuizSubmission]:
        """All of a student's submissions to quizzes in a course (graded or not)."""
        rows = await self.session.aexecute(
            self._get_course_submissions, [user_id, course_id]
        )
        return [QuizSubmission.from_row(row) for row in rows]

    async def get_quiz_submitters(self, quiz_id: UUID) -> set[UUID]:
        rows = await self.session.aexecute(self._get_submissions_by_quiz, [quiz_id])
        return {row.user_id for row in rows}

    async def purge_quiz(self, quiz_id: UUID) -> int:
        """Delete every answer and submission of a quiz.

        Each student's answers and submission rows go in one logged batch.
        The by-quiz index partition is dropped last.

        Returns:
            Number of submissions removed
        """
        rows = list(
            await self.session.aexecute(self._get_submissions_by_quiz, [quiz_id])
        )
        if not rows:
            return 0

        by_user: dict[UUID, list[Any]] = {}
        for row in rows:
            by_user.setdefault(row.user_id, []).append(row)

        for user_id, user_rows in by_user.items():
            batch = BatchStatement(batch_type=BatchType.LOGGED)
            for row in user_rows:
                batch.add(self._delete_answers, [row.submission_id])
            batch.add(self._delete_user_quiz_submissions, [user_id, quiz_id])
            for course_id in dict.fromkeys(row.course_id for row in user_rows):
                if course_id is not None:
                    batch.add(
                        self._delete_course_quiz_submissions,
                        [user_id, course_id, quiz_id],
                    )
            await self.session.aexecute(batch)

        await self.session.aexecute(self._delete_quiz_index, [quiz_id])

        logger.info(
            "quiz_submissions_purged",
            quiz_id=str(quiz_id),
            submissions=len(rows),
            students=len(by_user),
        )
        return len(rows)
