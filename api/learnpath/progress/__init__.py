"""Hierarchical progress aggregation.

Provides:
- Lesson access tracking (access completes the lesson)
- Module and course aggregation with quiz results
- Full recalculation with mid-deletion exclusions
- Deletion reconciliation and content-change invalidation
"""

from .exceptions import (
    CourseModuleNotFoundError,
    CourseNotFoundError,
    LessonNotFoundError,
    ProgressError,
    QuizNotFoundError,
)
from .models import (
    PROGRESS_TABLES_CQL,
    CourseProgress,
    LessonProgress,
    ModuleProgress,
    ReconciliationResult,
    TrackedStudent,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CourseModuleNotFoundError",
    "CourseNotFoundError",
    "CourseProgress",
    "LessonNotFoundError",
    "LessonProgress",
    "ModuleProgress",
    "ProgressError",
    "QuizNotFoundError",
    "ReconciliationResult",
    "TrackedStudent",
]
