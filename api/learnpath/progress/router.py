"""Progress engine API endpoints.

Provides routes for:
- Lesson access and quiz grading triggers
- Enrollment initialization
- Progress queries and the completion gate
- Content change/deletion events from the content collaborator
- Operator recalculation of failed students

Authentication and role checks belong to the calling collaborator; ids are
passed explicitly.
"""

from uuid import UUID

from fastapi import APIRouter, status

from .dependencies import ProgressServiceDep, handle_progress_error
from .exceptions import (
    CourseModuleNotFoundError,
    LessonNotFoundError,
    ProgressError,
    QuizNotFoundError,
)
from .schemas import (
    ContentAddedEvent,
    CourseCompletionResponse,
    CourseProgressDetailResponse,
    CourseProgressResponse,
    LessonDeletedEvent,
    LessonProgressResponse,
    ModuleDeletedEvent,
    ModuleProgressResponse,
    QuizDeletedEvent,
    QuizGradedRequest,
    QuizQuestionsChangedEvent,
    RecalculateRequest,
    RecordAccessRequest,
    ReconciliationResponse,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Trigger Endpoints
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/access",
    response_model=LessonProgressResponse,
    status_code=status.HTTP_200_OK,
    summary="Record lesson access",
)
async def record_lesson_access(
    lesson_id: UUID,
    data: RecordAccessRequest,
    progress_service: ProgressServiceDep,
) -> LessonProgressResponse:
    """Record that a student opened a lesson.

    Any access completes the lesson; module and course progress are
    recomputed before the response returns.
    """
    progress = await progress_service.record_access(data.student_id, lesson_id)
    if progress is None:
        raise handle_progress_error(LessonNotFoundError())
    return LessonProgressResponse.from_entity(progress)


@router.post(
    "/quizzes/{quiz_id}/graded",
    response_model=ModuleProgressResponse,
    status_code=status.HTTP_200_OK,
    summary="Quiz submission graded",
)
async def quiz_graded(
    quiz_id: UUID,
    data: QuizGradedRequest,
    progress_service: ProgressServiceDep,
) -> ModuleProgressResponse:
    """Recompute module and course progress after a quiz is graded."""
    progress = await progress_service.on_quiz_graded(
        data.student_id, quiz_id, data.score
    )
    if progress is None:
        raise handle_progress_error(QuizNotFoundError())
    return ModuleProgressResponse.from_entity(progress)


@router.post(
    "/courses/{course_id}/students/{student_id}/initialize",
    response_model=CourseProgressResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Initialize course progress",
)
async def initialize_course_progress(
    course_id: UUID,
    student_id: UUID,
    progress_service: ProgressServiceDep,
) -> CourseProgressResponse:
    """Create baseline progress rows for a newly enrolled student."""
    try:
        progress = await progress_service.initialize_course_progress(
            student_id, course_id
        )
        return CourseProgressResponse.from_entity(progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/courses/{course_id}/students/{student_id}",
    response_model=CourseProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    student_id: UUID,
    progress_service: ProgressServiceDep,
) -> CourseProgressResponse:
    """Get a student's course progress (initialized on first read)."""
    try:
        progress = await progress_service.get_course_progress(student_id, course_id)
        return CourseProgressResponse.from_entity(progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e


@router.get(
    "/courses/{course_id}/students/{student_id}/detail",
    response_model=CourseProgressDetailResponse,
    summary="Get course progress with modules",
)
async def get_course_progress_detail(
    course_id: UUID,
    student_id: UUID,
    progress_service: ProgressServiceDep,
) -> CourseProgressDetailResponse:
    """Course summary plus every module's progress, in course order."""
    try:
        course, modules = await progress_service.get_course_progress_detail(
            student_id, course_id
        )
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return CourseProgressDetailResponse(
        course=CourseProgressResponse.from_entity(course),
        modules=[ModuleProgressResponse.from_entity(m) for m in modules],
    )


@router.get(
    "/courses/{course_id}/students/{student_id}/completion",
    response_model=CourseCompletionResponse,
    summary="Check course completion",
)
async def get_course_completion(
    course_id: UUID,
    student_id: UUID,
    progress_service: ProgressServiceDep,
) -> CourseCompletionResponse:
    """Certificate gate: completed only at 100%."""
    completed = await progress_service.is_course_completed(student_id, course_id)
    return CourseCompletionResponse(
        course_id=course_id, student_id=student_id, completed=completed
    )


@router.get(
    "/modules/{module_id}/students/{student_id}",
    response_model=ModuleProgressResponse,
    summary="Get module progress",
)
async def get_module_progress(
    module_id: UUID,
    student_id: UUID,
    progress_service: ProgressServiceDep,
) -> ModuleProgressResponse:
    progress = await progress_service.get_module_progress(student_id, module_id)
    if progress is None:
        raise handle_progress_error(
            CourseModuleNotFoundError("Progresso do modulo nao encontrado")
        )
    return ModuleProgressResponse.from_entity(progress)


# ==============================================================================
# Content Event Endpoints
# ==============================================================================


@router.post(
    "/events/content-added",
    response_model=ReconciliationResponse,
    summary="Lesson or quiz added to a module",
)
async def content_added(
    data: ContentAddedEvent,
    progress_service: ProgressServiceDep,
) -> ReconciliationResponse:
    """Re-evaluate the module for every enrolled student."""
    result = await progress_service.on_content_added(data.module_id)
    if result is None:
        raise handle_progress_error(CourseModuleNotFoundError())
    return ReconciliationResponse.from_result(result)


@router.post(
    "/events/lesson-deleted",
    response_model=ReconciliationResponse,
    summary="Lesson deleted",
)
async def lesson_deleted(
    data: LessonDeletedEvent,
    progress_service: ProgressServiceDep,
) -> ReconciliationResponse:
    result = await progress_service.on_lesson_deleted(data.lesson_id, data.module_id)
    return ReconciliationResponse.from_result(result)


@router.post(
    "/events/module-deleted",
    response_model=ReconciliationResponse,
    summary="Module deleted",
)
async def module_deleted(
    data: ModuleDeletedEvent,
    progress_service: ProgressServiceDep,
) -> ReconciliationResponse:
    result = await progress_service.on_module_deleted(data.module_id, data.course_id)
    return ReconciliationResponse.from_result(result)


@router.post(
    "/events/quiz-deleted",
    response_model=ReconciliationResponse,
    summary="Quiz deleted",
)
async def quiz_deleted(
    data: QuizDeletedEvent,
    progress_service: ProgressServiceDep,
) -> ReconciliationResponse:
    result = await progress_service.on_quiz_deleted(data.quiz_id, data.module_id)
    return ReconciliationResponse.from_result(result)


@router.post(
    "/events/quiz-questions-changed",
    response_model=ReconciliationResponse,
    summary="Quiz questions changed",
)
async def quiz_questions_changed(
    data: QuizQuestionsChangedEvent,
    progress_service: ProgressServiceDep,
) -> ReconciliationResponse:
    """Purge stale submissions and re-evaluate the module."""
    result = await progress_service.on_quiz_questions_changed(
        data.quiz_id, data.module_id
    )
    if result is None:
        raise handle_progress_error(CourseModuleNotFoundError())
    return ReconciliationResponse.from_result(result)


# ==============================================================================
# Operator Endpoints
# ==============================================================================


@router.post(
    "/admin/recalculate",
    response_model=ReconciliationResponse,
    summary="Recalculate students",
)
async def recalculate_students(
    data: RecalculateRequest,
    progress_service: ProgressServiceDep,
) -> ReconciliationResponse:
    """Full recalculation for students a previous batch reported as failed."""
    try:
        result = await progress_service.recalculate_students(
            data.course_id, data.student_ids
        )
        return ReconciliationResponse.from_result(result)
    except ProgressError as e:
        raise handle_progress_error(e) from e
