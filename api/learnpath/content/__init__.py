"""Content structure and quiz submission read models.

Provides:
- Lesson/module/quiz placement lookups
- Module structure (lesson set + optional quiz) and course module lists
- Enrollment sets per course
- Quiz submission history and atomic purge
"""

from .models import (
    CONTENT_TABLES_CQL,
    NO_EXCLUSIONS,
    SUBMISSION_TABLES_CQL,
    ContentExclusions,
    LessonRef,
    ModuleStructure,
    QuizRef,
    QuizSubmission,
)


__all__ = [
    "CONTENT_TABLES_CQL",
    "NO_EXCLUSIONS",
    "SUBMISSION_TABLES_CQL",
    "ContentExclusions",
    "LessonRef",
    "ModuleStructure",
    "QuizRef",
    "QuizSubmission",
]
