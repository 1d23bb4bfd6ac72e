"""Progress engine errors.

Each error carries a stable `code` that the HTTP layer maps to a status.
"""


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(ProgressError):
    """Course does not exist."""

    def __init__(self, message: str = "Curso nao encontrado"):
        super().__init__(message, "course_not_found")


class LessonNotFoundError(ProgressError):
    """Lesson does not exist."""

    def __init__(self, message: str = "Aula nao encontrada"):
        super().__init__(message, "lesson_not_found")


class CourseModuleNotFoundError(ProgressError):
    """Module does not exist."""

    def __init__(self, message: str = "Modulo nao encontrado"):
        super().__init__(message, "module_not_found")


class QuizNotFoundError(ProgressError):
    """Quiz does not exist."""

    def __init__(self, message: str = "Quiz nao encontrado"):
        super().__init__(message, "quiz_not_found")
