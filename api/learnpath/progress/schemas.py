"""Pydantic schemas for the progress engine API.

Request and response models for:
- Lesson access and quiz grading triggers
- Content change and deletion events
- Progress queries (course, course detail, module, completion gate)
- Reconciliation results and operator recalculation
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import CourseProgress, LessonProgress, ModuleProgress, ReconciliationResult


# ==============================================================================
# Trigger Schemas
# ==============================================================================


class RecordAccessRequest(BaseModel):
    """Request to record that a student opened a lesson."""

    student_id: UUID = Field(..., description="Student UUID")


class QuizGradedRequest(BaseModel):
    """Notification that a quiz submission was graded."""

    student_id: UUID = Field(..., description="Student UUID")
    score: float | None = Field(None, ge=0, description="Graded score")


class LessonProgressResponse(BaseModel):
    """Lesson progress response."""

    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    module_id: UUID
    course_id: UUID
    view_count: int
    is_completed: bool
    progress: int = Field(description="0-100")
    started_at: datetime | None = None
    last_accessed_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        """Create response from entity."""
        return cls(
            lesson_id=entity.lesson_id,
            module_id=entity.module_id,
            course_id=entity.course_id,
            view_count=entity.view_count,
            is_completed=entity.is_completed,
            progress=entity.progress,
            started_at=entity.started_at,
            last_accessed_at=entity.last_accessed_at,
            completed_at=entity.completed_at,
        )


# ==============================================================================
# Content Event Schemas
# ==============================================================================


class ContentAddedEvent(BaseModel):
    """A lesson or quiz was added to a module."""

    module_id: UUID


class LessonDeletedEvent(BaseModel):
    lesson_id: UUID
    module_id: UUID


class ModuleDeletedEvent(BaseModel):
    module_id: UUID
    course_id: UUID


class QuizDeletedEvent(BaseModel):
    quiz_id: UUID
    module_id: UUID


class QuizQuestionsChangedEvent(BaseModel):
    quiz_id: UUID
    module_id: UUID


class RecalculateRequest(BaseModel):
    """Operator retry for students a previous batch failed to recompute."""

    course_id: UUID
    student_ids: list[UUID] = Field(..., min_length=1, max_length=10_000)


class ReconciliationResponse(BaseModel):
    """Outcome of a multi-student reconciliation pass."""

    operation: str
    entity_id: UUID
    affected_students: int
    recomputed: int
    rows_purged: int
    failed_student_ids: list[UUID] = []

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "ReconciliationResponse":
        """Create response from reconciliation result."""
        return cls(
            operation=result.operation,
            entity_id=result.entity_id,
            affected_students=result.affected_students,
            recomputed=result.recomputed,
            rows_purged=result.rows_purged,
            failed_student_ids=result.failed_student_ids,
        )


# ==============================================================================
# Progress Query Schemas
# ==============================================================================


class ModuleProgressResponse(BaseModel):
    """Module progress response (aggregated)."""

    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    course_id: UUID
    progress_percent: int
    lessons_completed: int
    quiz_completed: bool
    quiz_score: float | None = None
    is_completed: bool
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ModuleProgress) -> "ModuleProgressResponse":
        """Create response from entity."""
        return cls(
            module_id=entity.module_id,
            course_id=entity.course_id,
            progress_percent=entity.progress_percent,
            lessons_completed=entity.lessons_completed,
            quiz_completed=entity.quiz_completed,
            quiz_score=entity.quiz_score,
            is_completed=entity.is_completed,
            completed_at=entity.completed_at,
            last_accessed_at=entity.last_accessed_at,
        )


class CourseProgressResponse(BaseModel):
    """Course progress as consumed by UI and certificate issuance."""

    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    student_id: UUID
    percentage: int = Field(description="0-100; 100 means completed")
    lessons_completed: int
    quizzes_completed: int
    average_quiz_score: float | None = None
    current_module_id: UUID | None = Field(None, description="Module to resume from")
    is_completed: bool
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: CourseProgress) -> "CourseProgressResponse":
        """Create response from entity."""
        return cls(
            course_id=entity.course_id,
            student_id=entity.user_id,
            percentage=entity.progress_percent,
            lessons_completed=entity.lessons_completed,
            quizzes_completed=entity.quizzes_completed,
            average_quiz_score=entity.average_quiz_score,
            current_module_id=entity.current_module_id,
            is_completed=entity.is_completed,
            last_accessed_at=entity.last_accessed_at,
        )


class CourseProgressDetailResponse(BaseModel):
    """Course progress with every module, in course order."""

    course: CourseProgressResponse
    modules: list[ModuleProgressResponse] = []


class CourseCompletionResponse(BaseModel):
    """Certificate gate."""

    course_id: UUID
    student_id: UUID
    completed: bool
