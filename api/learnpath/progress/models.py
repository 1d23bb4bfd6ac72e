"""Database models for hierarchical progress aggregation.

Cassandra table definitions for:
- Lesson progress: access count and completion per (student, lesson)
- Module progress: lesson ratio + quiz state per (student, module)
- Course progress: course-wide ratios per (student, course)
- Lookup tables: find every student tracked in a lesson or module

Architecture: Dual-write pattern. Main tables are partitioned by
(user_id, course_id) so a course recompute is one partition read; lookup
tables are partitioned by content id so deletions can find affected students.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, NamedTuple
from uuid import UUID

from learnpath.content.models import ensure_utc_aware


# Completed lessons are stored at 100 under the access-completes policy.
LESSON_COMPLETE_PROGRESS = 100


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progresso de aula por usuario
# Partition key: (user_id, course_id) para recalcular o curso inteiro
# Clustering: module_id, lesson_id (range delete por modulo)
LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    user_id UUID,
    course_id UUID,
    module_id UUID,
    lesson_id UUID,
    view_count INT,
    is_completed BOOLEAN,
    progress INT,
    started_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), module_id, lesson_id)
) WITH CLUSTERING ORDER BY (module_id ASC, lesson_id ASC)
"""

# Lookup: students with progress on a lesson (lesson deletion)
LESSON_PROGRESS_BY_LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress_by_lesson (
    lesson_id UUID,
    user_id UUID,
    course_id UUID,
    module_id UUID,
    PRIMARY KEY (lesson_id, user_id)
)
"""

MODULE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress (
    user_id UUID,
    course_id UUID,
    module_id UUID,
    progress_percent INT,
    lessons_completed INT,
    quiz_completed BOOLEAN,
    quiz_score DOUBLE,
    is_completed BOOLEAN,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), module_id)
)
"""

# Lookup: students tracked in a module (lesson/module/quiz deletion)
MODULE_PROGRESS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_progress_by_module (
    module_id UUID,
    user_id UUID,
    course_id UUID,
    PRIMARY KEY (module_id, user_id)
)
"""

COURSE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_progress (
    user_id UUID,
    course_id UUID,
    progress_percent INT,
    lessons_completed INT,
    quizzes_completed INT,
    average_quiz_score DOUBLE,
    current_module_id UUID,
    last_accessed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id))
)
"""

PROGRESS_TABLES_CQL = [
    LESSON_PROGRESS_TABLE_CQL,
    LESSON_PROGRESS_BY_LESSON_TABLE_CQL,
    MODULE_PROGRESS_TABLE_CQL,
    MODULE_PROGRESS_BY_MODULE_TABLE_CQL,
    COURSE_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class LessonProgress:
    """Lesson progress entity for a specific student.

    Invariant: is_completed implies progress == 100. `progress` is kept as an
    integer 0-100 so a finer-grained completion model can replace the current
    access-completes policy without a schema change.

    Attributes:
        user_id: Student UUID
        course_id: Course UUID (partition key)
        module_id: Module UUID
        lesson_id: Lesson UUID
        view_count: Number of recorded accesses
        is_completed: Completion flag (never reverts once set)
        progress: 0-100
        started_at: First access timestamp
        last_accessed_at: Last access timestamp
        completed_at: Completion timestamp (null if not completed)
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        lesson_id: UUID,
        view_count: int = 0,
        is_completed: bool = False,
        progress: int = 0,
        started_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
        completed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.module_id = module_id
        self.lesson_id = lesson_id
        self.view_count = view_count
        self.is_completed = is_completed
        self.progress = progress
        self.started_at = ensure_utc_aware(started_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at) or datetime.now(UTC)
        self.completed_at = ensure_utc_aware(completed_at)

    def register_access(self, now: datetime) -> None:
        """Apply one access under the access-completes policy.

        Bumps the view count and access time; completes the lesson on the
        first access only, so repeated calls keep the original completed_at.
        """
        self.view_count += 1
        self.last_accessed_at = now
        if self.started_at is None:
            self.started_at = now
        if not self.is_completed:
            self.is_completed = True
            self.progress = LESSON_COMPLETE_PROGRESS
            self.completed_at = now

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            view_count=row.view_count or 0,
            is_completed=bool(row.is_completed),
            progress=row.progress or 0,
            started_at=row.started_at,
            last_accessed_at=row.last_accessed_at,
            completed_at=row.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "lesson_id": self.lesson_id,
            "view_count": self.view_count,
            "is_completed": self.is_completed,
            "progress": self.progress,
            "started_at": self.started_at,
            "last_accessed_at": self.last_accessed_at,
            "completed_at": self.completed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<LessonProgress user={self.user_id} lesson={self.lesson_id} "
            f"views={self.view_count} {self.progress}%>"
        )


class ModuleProgress:
    """Module progress entity (derived from lessons + quiz submissions).

    Never authoritative: always recomputable from lesson progress and quiz
    submissions.

    Attributes:
        user_id: Student UUID
        course_id: Course UUID
        module_id: Module UUID
        progress_percent: Rounded average of the present components (0-100)
        lessons_completed: Completed lessons in the module
        quiz_completed: Student has a graded submission for the module quiz
        quiz_score: Best graded score (null if none)
        is_completed: progress_percent == 100
        completed_at: Set while completed, cleared otherwise
        last_accessed_at: Last access timestamp (null for baseline rows)
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        module_id: UUID,
        progress_percent: int = 0,
        lessons_completed: int = 0,
        quiz_completed: bool = False,
        quiz_score: float | None = None,
        is_completed: bool = False,
        completed_at: datetime | None = None,
        last_accessed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.module_id = module_id
        self.progress_percent = progress_percent
        self.lessons_completed = lessons_completed
        self.quiz_completed = quiz_completed
        self.quiz_score = quiz_score
        self.is_completed = is_completed
        self.completed_at = ensure_utc_aware(completed_at)
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)

    @classmethod
    def from_row(cls, row: Any) -> "ModuleProgress":
        """Create ModuleProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            progress_percent=row.progress_percent or 0,
            lessons_completed=row.lessons_completed or 0,
            quiz_completed=bool(row.quiz_completed),
            quiz_score=row.quiz_score,
            is_completed=bool(row.is_completed),
            completed_at=row.completed_at,
            last_accessed_at=row.last_accessed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "progress_percent": self.progress_percent,
            "lessons_completed": self.lessons_completed,
            "quiz_completed": self.quiz_completed,
            "quiz_score": self.quiz_score,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "last_accessed_at": self.last_accessed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<ModuleProgress user={self.user_id} module={self.module_id} "
            f"{self.progress_percent}%>"
        )


class CourseProgress:
    """Course progress entity (course-wide lesson and quiz ratios).

    Attributes:
        user_id: Student UUID
        course_id: Course UUID
        progress_percent: Rounded average of the course-wide ratios (0-100)
        lessons_completed: Completed lessons across all modules
        quizzes_completed: Distinct quizzes with a graded submission
        average_quiz_score: Mean of all graded scores (null if none)
        current_module_id: Most recently accessed module (resume pointer)
        last_accessed_at: Last access timestamp
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        progress_percent: int = 0,
        lessons_completed: int = 0,
        quizzes_completed: int = 0,
        average_quiz_score: float | None = None,
        current_module_id: UUID | None = None,
        last_accessed_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.progress_percent = progress_percent
        self.lessons_completed = lessons_completed
        self.quizzes_completed = quizzes_completed
        self.average_quiz_score = average_quiz_score
        self.current_module_id = current_module_id
        self.last_accessed_at = ensure_utc_aware(last_accessed_at)

    @property
    def is_completed(self) -> bool:
        """Check if course is completed (certificate gate)."""
        return self.progress_percent >= LESSON_COMPLETE_PROGRESS

    @classmethod
    def from_row(cls, row: Any) -> "CourseProgress":
        """Create CourseProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            progress_percent=row.progress_percent or 0,
            lessons_completed=row.lessons_completed or 0,
            quizzes_completed=row.quizzes_completed or 0,
            average_quiz_score=row.average_quiz_score,
            current_module_id=row.current_module_id,
            last_accessed_at=row.last_accessed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "progress_percent": self.progress_percent,
            "lessons_completed": self.lessons_completed,
            "quizzes_completed": self.quizzes_completed,
            "average_quiz_score": self.average_quiz_score,
            "current_module_id": self.current_module_id,
            "last_accessed_at": self.last_accessed_at,
        }

    def __repr__(self) -> str:
        return (
            f"<CourseProgress user={self.user_id} course={self.course_id} "
            f"{self.progress_percent}%>"
        )


class TrackedStudent(NamedTuple):
    """A student found through a lookup table, with the partition it lives in."""

    user_id: UUID
    course_id: UUID
    module_id: UUID | None = None


@dataclass
class ReconciliationResult:
    """Outcome of a multi-student reconciliation pass.

    Per-student recompute failures do not abort the pass; their ids are kept
    in `failed_student_ids` so an operator can retry them.
    """

    operation: str
    entity_id: UUID
    affected_students: int = 0
    recomputed: int = 0
    rows_purged: int = 0
    failed_student_ids: list[UUID] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_student_ids)
