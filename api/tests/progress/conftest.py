"""In-memory stores for progress engine tests.

The doubles implement the ContentReader / SubmissionStore / ProgressStore
protocols over plain dicts, with synchronous seeding helpers.
"""

import copy
from dataclasses import replace
from uuid import UUID, uuid4

import pytest

from learnpath.content.models import LessonRef, ModuleStructure, QuizRef, QuizSubmission
from learnpath.progress.models import (
    CourseProgress,
    LessonProgress,
    ModuleProgress,
    TrackedStudent,
)
from learnpath.progress.service import ProgressService


class InMemoryContent:
    """Content tree + enrollments."""

    def __init__(self) -> None:
        self.courses: set[UUID] = set()
        self.modules: dict[UUID, ModuleStructure] = {}
        self.course_modules: dict[UUID, list[UUID]] = {}
        self.enrollments: dict[UUID, list[UUID]] = {}

    # Seeding helpers

    def add_course(self) -> UUID:
        course_id = uuid4()
        self.courses.add(course_id)
        self.course_modules[course_id] = []
        return course_id

    def add_module(
        self, course_id: UUID, lessons: int = 0, quiz: bool = False
    ) -> ModuleStructure:
        module = ModuleStructure(
            module_id=uuid4(),
            course_id=course_id,
            lesson_ids=tuple(uuid4() for _ in range(lessons)),
            quiz_id=uuid4() if quiz else None,
        )
        self.modules[module.module_id] = module
        self.course_modules[course_id].append(module.module_id)
        return module

    def add_lesson(self, module_id: UUID) -> UUID:
        lesson_id = uuid4()
        module = self.modules[module_id]
        self.modules[module_id] = replace(
            module, lesson_ids=(*module.lesson_ids, lesson_id)
        )
        return lesson_id

    def add_quiz(self, module_id: UUID) -> UUID:
        quiz_id = uuid4()
        self.modules[module_id] = replace(self.modules[module_id], quiz_id=quiz_id)
        return quiz_id

    def remove_lesson(self, lesson_id: UUID) -> None:
        for module_id, module in self.modules.items():
            if lesson_id in module.lesson_ids:
                self.modules[module_id] = module.without(lesson_id=lesson_id)

    def remove_quiz(self, quiz_id: UUID) -> None:
        for module_id, module in self.modules.items():
            if module.quiz_id == quiz_id:
                self.modules[module_id] = module.without(quiz_id=quiz_id)

    def remove_module(self, module_id: UUID) -> None:
        module = self.modules.pop(module_id)
        self.course_modules[module.course_id].remove(module_id)

    def enroll(self, course_id: UUID, student_id: UUID) -> None:
        self.enrollments.setdefault(course_id, []).append(student_id)

    # ContentReader

    async def course_exists(self, course_id: UUID) -> bool:
        return course_id in self.courses

    async def get_lesson(self, lesson_id: UUID) -> LessonRef | None:
        for module in self.modules.values():
            if lesson_id in module.lesson_ids:
                return LessonRef(lesson_id, module.module_id, module.course_id)
        return None

    async def get_quiz(self, quiz_id: UUID) -> QuizRef | None:
        for module in self.modules.values():
            if module.quiz_id == quiz_id:
                return QuizRef(quiz_id, module.module_id, module.course_id)
        return None

    async def get_module(self, module_id: UUID) -> ModuleStructure | None:
        return self.modules.get(module_id)

    async def get_course_modules(self, course_id: UUID) -> list[ModuleStructure]:
        return [
            self.modules[mid]
            for mid in self.course_modules.get(course_id, [])
            if mid in self.modules
        ]

    async def get_enrolled_students(self, course_id: UUID) -> list[UUID]:
        return list(self.enrollments.get(course_id, []))


class InMemorySubmissions:
    """Quiz submissions."""

    def __init__(self) -> None:
        self.rows: list[QuizSubmission] = []

    def submit(
        self,
        user_id: UUID,
        quiz_id: UUID,
        course_id: UUID,
        score: float | None,
    ) -> QuizSubmission:
        submission = QuizSubmission(
            user_id=user_id,
            quiz_id=quiz_id,
            submission_id=uuid4(),
            score=score,
            course_id=course_id,
        )
        self.rows.append(submission)
        return submission

    async def get_best_submission(
        self, user_id: UUID, quiz_id: UUID
    ) -> QuizSubmission | None:
        graded = [
            s for s in self.rows if s.user_id == user_id and s.quiz_id == quiz_id and s.is_graded
        ]
        return max(graded, key=lambda s: s.score) if graded else None

    async def get_course_submissions(
        self, user_id: UUID, course_id: UUID
    ) -> list[QuizSubmission]:
        return [s for s in self.rows if s.user_id == user_id and s.course_id == course_id]

    async def get_quiz_submitters(self, quiz_id: UUID) -> set[UUID]:
        return {s.user_id for s in self.rows if s.quiz_id == quiz_id}

    async def purge_quiz(self, quiz_id: UUID) -> int:
        before = len(self.rows)
        self.rows = [s for s in self.rows if s.quiz_id != quiz_id]
        return before - len(self.rows)


class InMemoryProgress:
    """Progress tables; `failing_students` makes their course reads raise."""

    def __init__(self) -> None:
        self.lessons: dict[tuple[UUID, UUID, UUID, UUID], LessonProgress] = {}
        self.modules: dict[tuple[UUID, UUID, UUID], ModuleProgress] = {}
        self.courses: dict[tuple[UUID, UUID], CourseProgress] = {}
        self.failing_students: set[UUID] = set()

    async def get_lesson_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        row = self.lessons.get((user_id, course_id, module_id, lesson_id))
        return copy.copy(row) if row else None

    async def save_lesson_progress(self, progress: LessonProgress) -> None:
        key = (progress.user_id, progress.course_id, progress.module_id, progress.lesson_id)
        self.lessons[key] = copy.copy(progress)

    async def get_module_lesson_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> list[LessonProgress]:
        return [
            copy.copy(row)
            for (uid, cid, mid, _), row in self.lessons.items()
            if (uid, cid, mid) == (user_id, course_id, module_id)
        ]

    async def get_course_lesson_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[LessonProgress]:
        if user_id in self.failing_students:
            raise RuntimeError("store unavailable")
        return [
            copy.copy(row)
            for (uid, cid, _, _), row in self.lessons.items()
            if (uid, cid) == (user_id, course_id)
        ]

    async def get_module_progress(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress | None:
        row = self.modules.get((user_id, course_id, module_id))
        return copy.copy(row) if row else None

    async def save_module_progress(self, progress: ModuleProgress) -> None:
        key = (progress.user_id, progress.course_id, progress.module_id)
        self.modules[key] = copy.copy(progress)

    async def get_course_module_progress(
        self, user_id: UUID, course_id: UUID
    ) -> list[ModuleProgress]:
        return [
            copy.copy(row)
            for (uid, cid, _), row in self.modules.items()
            if (uid, cid) == (user_id, course_id)
        ]

    async def get_course_progress(
        self, user_id: UUID, course_id: UUID
    ) -> CourseProgress | None:
        row = self.courses.get((user_id, course_id))
        return copy.copy(row) if row else None

    async def save_course_progress(self, progress: CourseProgress) -> None:
        self.courses[(progress.user_id, progress.course_id)] = copy.copy(progress)

    async def get_lesson_students(self, lesson_id: UUID) -> list[TrackedStudent]:
        return [
            TrackedStudent(uid, cid, mid)
            for (uid, cid, mid, lid) in self.lessons
            if lid == lesson_id
        ]

    async def get_module_students(self, module_id: UUID) -> list[TrackedStudent]:
        return [
            TrackedStudent(uid, cid, mid)
            for (uid, cid, mid) in self.modules
            if mid == module_id
        ]

    async def delete_lesson_progress(self, lesson_id: UUID) -> int:
        keys = [key for key in self.lessons if key[3] == lesson_id]
        for key in keys:
            del self.lessons[key]
        return len(keys)

    async def delete_module_progress(self, module_id, lesson_ids) -> int:
        lesson_ids = set(lesson_ids)
        students = set()
        for key in [k for k in self.lessons if k[2] == module_id or k[3] in lesson_ids]:
            students.add((key[0], key[1]))
            del self.lessons[key]
        for key in [k for k in self.modules if k[2] == module_id]:
            students.add((key[0], key[1]))
            del self.modules[key]
        return len(students)

    # Test helpers

    def lesson_rows_for(self, lesson_id: UUID) -> list[LessonProgress]:
        return [row for key, row in self.lessons.items() if key[3] == lesson_id]

    def module_row(
        self, user_id: UUID, course_id: UUID, module_id: UUID
    ) -> ModuleProgress | None:
        return self.modules.get((user_id, course_id, module_id))

    def course_row(self, user_id: UUID, course_id: UUID) -> CourseProgress | None:
        return self.courses.get((user_id, course_id))


@pytest.fixture
def content() -> InMemoryContent:
    return InMemoryContent()


@pytest.fixture
def submissions() -> InMemorySubmissions:
    return InMemorySubmissions()


@pytest.fixture
def store() -> InMemoryProgress:
    return InMemoryProgress()


@pytest.fixture
def service(content, submissions, store) -> ProgressService:
    """ProgressService over the in-memory stores."""
    return ProgressService(content, submissions, store, concurrency=4)


@pytest.fixture
def student_id() -> UUID:
    return uuid4()
