"""Tests for lesson access tracking and the upward cascade."""

from datetime import timedelta
from uuid import UUID, uuid4

import pytest

from learnpath.progress.service import ProgressService


class TestRecordAccess:
    """Tests for ProgressService.record_access."""

    @pytest.mark.asyncio
    async def test_first_access_completes_lesson(
        self, service: ProgressService, content, store, student_id: UUID
    ):
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=2)

        progress = await service.record_access(student_id, module.lesson_ids[0])

        assert progress is not None
        assert progress.view_count == 1
        assert progress.is_completed is True
        assert progress.progress == 100
        assert progress.started_at is not None
        assert progress.completed_at == progress.started_at

        module_row = store.module_row(student_id, course_id, module.module_id)
        assert module_row.progress_percent == 50
        assert module_row.lessons_completed == 1
        assert module_row.is_completed is False

        course_row = store.course_row(student_id, course_id)
        assert course_row.progress_percent == 50
        assert course_row.current_module_id == module.module_id

    @pytest.mark.asyncio
    async def test_repeat_access_only_counts_views(
        self, service: ProgressService, content, student_id: UUID
    ):
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=1)
        lesson_id = module.lesson_ids[0]

        first = await service.record_access(student_id, lesson_id)
        second = await service.record_access(student_id, lesson_id)

        assert second.view_count == 2
        assert second.completed_at == first.completed_at
        assert second.started_at == first.started_at
        assert second.last_accessed_at >= first.last_accessed_at

    @pytest.mark.asyncio
    async def test_unknown_lesson_returns_none(
        self, service: ProgressService, store, student_id: UUID
    ):
        assert await service.record_access(student_id, uuid4()) is None
        assert store.lessons == {}
        assert store.courses == {}

    @pytest.mark.asyncio
    async def test_mark_lesson_completed_is_alias(
        self, service: ProgressService, content, store, student_id: UUID
    ):
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=1)

        progress = await service.mark_lesson_completed(student_id, module.lesson_ids[0])

        assert progress.is_completed is True
        assert store.module_row(student_id, course_id, module.module_id).is_completed
        assert await service.is_course_completed(student_id, course_id) is True

    @pytest.mark.asyncio
    async def test_module_completion_sets_completed_at(
        self, service: ProgressService, content, store, student_id: UUID
    ):
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=2)

        await service.record_access(student_id, module.lesson_ids[0])
        assert store.module_row(student_id, course_id, module.module_id).completed_at is None

        await service.record_access(student_id, module.lesson_ids[1])
        row = store.module_row(student_id, course_id, module.module_id)
        assert row.progress_percent == 100
        assert row.completed_at is not None

    @pytest.mark.asyncio
    async def test_current_module_follows_latest_access(
        self, service: ProgressService, content, store, student_id: UUID
    ):
        course_id = content.add_course()
        module_a = content.add_module(course_id, lessons=1)
        module_b = content.add_module(course_id, lessons=1)

        await service.record_access(student_id, module_a.lesson_ids[0])
        # Push module A's access into the past so B is strictly newer
        row_a = store.modules[(student_id, course_id, module_a.module_id)]
        row_a.last_accessed_at -= timedelta(minutes=5)

        await service.record_access(student_id, module_b.lesson_ids[0])

        assert store.course_row(student_id, course_id).current_module_id == module_b.module_id

    @pytest.mark.asyncio
    async def test_quiz_blocks_module_completion(
        self, service: ProgressService, content, store, student_id: UUID
    ):
        """All lessons done but quiz ungraded: (100 + 0) / 2."""
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=1, quiz=True)

        await service.record_access(student_id, module.lesson_ids[0])

        row = store.module_row(student_id, course_id, module.module_id)
        assert row.progress_percent == 50
        assert row.quiz_completed is False
        assert await service.is_course_completed(student_id, course_id) is False


class TestQuizGraded:
    """Tests for ProgressService.on_quiz_graded."""

    @pytest.mark.asyncio
    async def test_graded_quiz_completes_module(
        self, service: ProgressService, content, submissions, store, student_id: UUID
    ):
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=1, quiz=True)
        await service.record_access(student_id, module.lesson_ids[0])

        submissions.submit(student_id, module.quiz_id, course_id, score=40.0)
        submissions.submit(student_id, module.quiz_id, course_id, score=85.0)
        result = await service.on_quiz_graded(student_id, module.quiz_id, score=85.0)

        assert result.progress_percent == 100
        assert result.quiz_completed is True
        assert result.quiz_score == 85.0

        course_row = store.course_row(student_id, course_id)
        assert course_row.progress_percent == 100
        assert course_row.quizzes_completed == 1
        assert course_row.average_quiz_score == pytest.approx(62.5)

    @pytest.mark.asyncio
    async def test_ungraded_submission_does_not_count(
        self, service: ProgressService, content, submissions, student_id: UUID
    ):
        course_id = content.add_course()
        module = content.add_module(course_id, lessons=0, quiz=True)

        submissions.submit(student_id, module.quiz_id, course_id, score=None)
        result = await service.on_quiz_graded(student_id, module.quiz_id)

        assert result.progress_percent == 0
        assert result.quiz_completed is False

    @pytest.mark.asyncio
    async def test_unknown_quiz_returns_none(
        self, service: ProgressService, student_id: UUID
    ):
        assert await service.on_quiz_graded(student_id, uuid4(), score=10.0) is None
