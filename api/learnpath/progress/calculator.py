"""Completion math shared by the module and course aggregators.

Percentages are the average of the components that exist (lesson ratio,
quiz ratio), rounded half-up to an integer. Decimal arithmetic keeps ties
such as 12.5 exact, so stored aggregates never drift by one.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


HUNDRED = Decimal(100)


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def ratio_percent(completed: int, total: int) -> Decimal | None:
    """completed/total as a 0-100 Decimal; None when there is nothing to count."""
    if total <= 0:
        return None
    completed = max(0, min(completed, total))
    return Decimal(completed) * HUNDRED / Decimal(total)


def average_present(*components: Decimal | None) -> int:
    """Average of the present components, rounded; 0 when none exist."""
    present = [c for c in components if c is not None]
    if not present:
        return 0
    return round_half_up(sum(present, Decimal(0)) / len(present))


@dataclass(frozen=True)
class ModuleFigures:
    """Derived figures for one (student, module) pair."""

    progress_percent: int
    lessons_completed: int
    quiz_completed: bool
    quiz_score: float | None

    @property
    def is_completed(self) -> bool:
        return self.progress_percent >= 100


@dataclass(frozen=True)
class CourseFigures:
    """Derived figures for one (student, course) pair."""

    progress_percent: int
    lessons_completed: int
    quizzes_completed: int
    average_quiz_score: float | None


def module_figures(
    lesson_total: int,
    lessons_completed: int,
    has_quiz: bool,
    best_score: float | None,
) -> ModuleFigures:
    """Compute a module's completion from its lesson ratio and quiz state.

    Args:
        lesson_total: Lessons currently in the module
        lessons_completed: Student's completed lessons among them
        has_quiz: Whether the module has a quiz
        best_score: Student's best graded score for that quiz (None if ungraded)

    Returns:
        ModuleFigures
    """
    quiz_completed = has_quiz and best_score is not None
    quiz_pct = None
    if has_quiz:
        quiz_pct = HUNDRED if quiz_completed else Decimal(0)

    return ModuleFigures(
        progress_percent=average_present(
            ratio_percent(lessons_completed, lesson_total), quiz_pct
        ),
        lessons_completed=lessons_completed,
        quiz_completed=quiz_completed,
        quiz_score=best_score if quiz_completed else None,
    )


def course_figures(
    lesson_total: int,
    lessons_completed: int,
    quiz_total: int,
    quizzes_completed: int,
    graded_scores: list[float],
) -> CourseFigures:
    """Compute course-wide completion from flattened lesson and quiz totals.

    Lessons and quizzes are counted across the whole course, so a large
    module weighs proportionally more than a small one.
    """
    average_score = None
    if graded_scores:
        average_score = sum(graded_scores) / len(graded_scores)

    return CourseFigures(
        progress_percent=average_present(
            ratio_percent(lessons_completed, lesson_total),
            ratio_percent(quizzes_completed, quiz_total),
        ),
        lessons_completed=lessons_completed,
        quizzes_completed=quizzes_completed,
        average_quiz_score=average_score,
    )
