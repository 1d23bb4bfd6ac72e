"""Read models for course content and quiz submissions.

These tables belong to external collaborators (course CRUD, quiz runner,
enrollment). The progress engine only reads them, with one exception: quiz
answers and submissions are purged here when their quiz (or its module) is
deleted or its questions change.

Architecture: lookup tables keyed by the parent id so every read the engine
needs is a single-partition query.
"""

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions (content collaborator)
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    status TEXT,
    created_at TIMESTAMP
)
"""

# One quiz per module at most
MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules (
    id UUID PRIMARY KEY,
    course_id UUID,
    title TEXT,
    position INT,
    quiz_id UUID
)
"""

MODULES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules_by_course (
    course_id UUID,
    position INT,
    module_id UUID,
    PRIMARY KEY (course_id, position, module_id)
) WITH CLUSTERING ORDER BY (position ASC, module_id ASC)
"""

LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    module_id UUID,
    course_id UUID,
    title TEXT,
    content_type TEXT
)
"""

LESSONS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_module (
    module_id UUID,
    position INT,
    lesson_id UUID,
    PRIMARY KEY (module_id, position, lesson_id)
) WITH CLUSTERING ORDER BY (position ASC, lesson_id ASC)
"""

QUIZ_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quizzes (
    id UUID PRIMARY KEY,
    module_id UUID,
    course_id UUID,
    title TEXT
)
"""

# Same table the enrollment collaborator writes; partitioned by course
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    user_id UUID,
    status TEXT,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id)
)
"""

# ==============================================================================
# CQL Table Definitions (quiz submissions)
# ==============================================================================

# score is NULL while the attempt is in progress / ungraded
QUIZ_SUBMISSIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_submissions (
    user_id UUID,
    quiz_id UUID,
    submission_id UUID,
    course_id UUID,
    module_id UUID,
    score DOUBLE,
    ended_at TIMESTAMP,
    PRIMARY KEY ((user_id, quiz_id), submission_id)
)
"""

QUIZ_SUBMISSIONS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_submissions_by_course (
    user_id UUID,
    course_id UUID,
    quiz_id UUID,
    submission_id UUID,
    score DOUBLE,
    ended_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), quiz_id, submission_id)
)
"""

QUIZ_SUBMISSIONS_BY_QUIZ_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_submissions_by_quiz (
    quiz_id UUID,
    user_id UUID,
    submission_id UUID,
    course_id UUID,
    PRIMARY KEY (quiz_id, user_id, submission_id)
)
"""

QUIZ_ANSWERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_answers (
    submission_id UUID,
    question_id UUID,
    answer TEXT,
    is_correct BOOLEAN,
    PRIMARY KEY (submission_id, question_id)
)
"""

CONTENT_TABLES_CQL = [
    COURSE_TABLE_CQL,
    MODULE_TABLE_CQL,
    MODULES_BY_COURSE_TABLE_CQL,
    LESSON_TABLE_CQL,
    LESSONS_BY_MODULE_TABLE_CQL,
    QUIZ_TABLE_CQL,
    ENROLLMENTS_TABLE_CQL,
]

SUBMISSION_TABLES_CQL = [
    QUIZ_SUBMISSIONS_TABLE_CQL,
    QUIZ_SUBMISSIONS_BY_COURSE_TABLE_CQL,
    QUIZ_SUBMISSIONS_BY_QUIZ_TABLE_CQL,
    QUIZ_ANSWERS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class LessonRef:
    """Where a lesson sits in the content tree."""

    lesson_id: UUID
    module_id: UUID
    course_id: UUID

    @classmethod
    def from_row(cls, row: Any) -> "LessonRef":
        """Create LessonRef from a `lessons` row."""
        return cls(lesson_id=row.id, module_id=row.module_id, course_id=row.course_id)


@dataclass(frozen=True)
class QuizRef:
    """Where a quiz sits in the content tree."""

    quiz_id: UUID
    module_id: UUID
    course_id: UUID

    @classmethod
    def from_row(cls, row: Any) -> "QuizRef":
        """Create QuizRef from a `quizzes` row."""
        return cls(quiz_id=row.id, module_id=row.module_id, course_id=row.course_id)


@dataclass(frozen=True)
class ModuleStructure:
    """Gradable components of a module: its lessons and optional quiz.

    Attributes:
        module_id: Module UUID
        course_id: Owning course UUID
        lesson_ids: Lessons in module order
        quiz_id: The module's quiz, if any
    """

    module_id: UUID
    course_id: UUID
    lesson_ids: tuple[UUID, ...] = ()
    quiz_id: UUID | None = None

    @property
    def lesson_count(self) -> int:
        return len(self.lesson_ids)

    @property
    def has_quiz(self) -> bool:
        return self.quiz_id is not None

    def without(
        self,
        lesson_id: UUID | None = None,
        quiz_id: UUID | None = None,
    ) -> "ModuleStructure":
        """Return a copy with a soon-deleted lesson and/or quiz removed."""
        lesson_ids = self.lesson_ids
        if lesson_id is not None:
            lesson_ids = tuple(lid for lid in lesson_ids if lid != lesson_id)
        module_quiz = self.quiz_id
        if quiz_id is not None and module_quiz == quiz_id:
            module_quiz = None
        return replace(self, lesson_ids=lesson_ids, quiz_id=module_quiz)


@dataclass(frozen=True)
class ContentExclusions:
    """Content that is mid-deletion and must not count toward any total.

    The collaborator may notify the engine before or after removing its own
    row, so recomputes drop excluded content from the structures they load
    instead of trusting the content tables to be up to date.
    """

    module_id: UUID | None = None
    lesson_id: UUID | None = None
    quiz_id: UUID | None = None

    @property
    def is_empty(self) -> bool:
        return self.module_id is None and self.lesson_id is None and self.quiz_id is None

    def apply_module(self, module: ModuleStructure) -> ModuleStructure | None:
        """Filter one module; None when the whole module is excluded."""
        if self.module_id is not None and module.module_id == self.module_id:
            return None
        if self.lesson_id is None and self.quiz_id is None:
            return module
        return module.without(lesson_id=self.lesson_id, quiz_id=self.quiz_id)

    def apply(self, modules: list[ModuleStructure]) -> list[ModuleStructure]:
        """Filter a course's module list."""
        kept = []
        for module in modules:
            filtered = self.apply_module(module)
            if filtered is not None:
                kept.append(filtered)
        return kept


NO_EXCLUSIONS = ContentExclusions()


@dataclass
class QuizSubmission:
    """A student's attempt at a quiz.

    Only submissions with a non-null score count toward quiz completion.
    """

    user_id: UUID
    quiz_id: UUID
    submission_id: UUID
    score: float | None = None
    ended_at: datetime | None = None
    course_id: UUID | None = None
    module_id: UUID | None = None

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    @classmethod
    def from_row(cls, row: Any) -> "QuizSubmission":
        """Create QuizSubmission from a submissions row (either table)."""
        return cls(
            user_id=row.user_id,
            quiz_id=row.quiz_id,
            submission_id=row.submission_id,
            score=row.score,
            ended_at=ensure_utc_aware(row.ended_at),
            course_id=getattr(row, "course_id", None),
            module_id=getattr(row, "module_id", None),
        )
