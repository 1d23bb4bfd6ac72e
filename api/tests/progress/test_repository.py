"""Tests for the Cassandra repositories (mocked session)."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from uuid import UUID, uuid4

import pytest
from cassandra.cluster import Session
from cassandra.query import BatchType

from learnpath.content.repository import ContentRepository, SubmissionRepository
from learnpath.progress.models import LessonProgress, ModuleProgress
from learnpath.progress.repository import ProgressRepository


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    # Mock prepare to avoid actual statement preparation
    session.prepare = Mock(side_effect=lambda cql: Mock(name="prepared", cql=cql))
    # Make aexecute awaitable (cassandra-asyncio-driver)
    session.aexecute = AsyncMock(return_value=[])
    return session


def one(row) -> Mock:
    """ResultSet stand-in for queries read with `.one()`."""
    result = Mock()
    result.one = Mock(return_value=row)
    return result


# ==============================================================================
# ProgressRepository
# ==============================================================================


class TestProgressRepository:
    """Tests for ProgressRepository."""

    def test_prepares_statements_with_keyspace(self, mock_session):
        ProgressRepository(mock_session, "test_keyspace")

        statements = [call.args[0] for call in mock_session.prepare.call_args_list]
        assert statements
        assert all("test_keyspace." in cql for cql in statements)

    @pytest.mark.asyncio
    async def test_save_lesson_progress_dual_writes(self, mock_session):
        repo = ProgressRepository(mock_session, "ks")
        progress = LessonProgress(uuid4(), uuid4(), uuid4(), uuid4())

        await repo.save_lesson_progress(progress)

        assert mock_session.aexecute.await_count == 2
        main, lookup = mock_session.aexecute.await_args_list
        assert main.args[0] is repo._upsert_lesson_progress
        assert lookup.args[0] is repo._upsert_lesson_progress_by_lesson
        assert lookup.args[1] == [
            progress.lesson_id,
            progress.user_id,
            progress.course_id,
            progress.module_id,
        ]

    @pytest.mark.asyncio
    async def test_save_module_progress_dual_writes(self, mock_session):
        repo = ProgressRepository(mock_session, "ks")
        progress = ModuleProgress(uuid4(), uuid4(), uuid4(), progress_percent=40)

        await repo.save_module_progress(progress)

        main, lookup = mock_session.aexecute.await_args_list
        assert main.args[1][3] == 40
        assert lookup.args[1] == [progress.module_id, progress.user_id, progress.course_id]

    @pytest.mark.asyncio
    async def test_get_lesson_progress_missing(self, mock_session):
        repo = ProgressRepository(mock_session, "ks")
        mock_session.aexecute = AsyncMock(return_value=one(None))

        assert await repo.get_lesson_progress(uuid4(), uuid4(), uuid4(), uuid4()) is None

    @pytest.mark.asyncio
    async def test_get_course_progress_from_row(self, mock_session):
        repo = ProgressRepository(mock_session, "ks")
        user_id, course_id = uuid4(), uuid4()
        row = SimpleNamespace(
            user_id=user_id,
            course_id=course_id,
            progress_percent=100,
            lessons_completed=4,
            quizzes_completed=None,
            average_quiz_score=None,
            current_module_id=None,
            last_accessed_at=None,
        )
        mock_session.aexecute = AsyncMock(return_value=one(row))

        progress = await repo.get_course_progress(user_id, course_id)

        assert progress.is_completed is True
        assert progress.quizzes_completed == 0

    @pytest.mark.asyncio
    async def test_delete_lesson_progress_batches_per_student(self, mock_session):
        repo = ProgressRepository(mock_session, "ks")
        lesson_id = uuid4()
        tracked = [
            SimpleNamespace(user_id=uuid4(), course_id=uuid4(), module_id=uuid4()),
            SimpleNamespace(user_id=uuid4(), course_id=uuid4(), module_id=uuid4()),
        ]
        mock_session.aexecute = AsyncMock(side_effect=[tracked, None, None])

        with patch("learnpath.progress.repository.BatchStatement") as batch_cls:
            deleted = await repo.delete_lesson_progress(lesson_id)

        assert deleted == 2
        assert batch_cls.call_count == 2
        batch_cls.assert_called_with(batch_type=BatchType.LOGGED)
        assert batch_cls.return_value.add.call_count == 4

    @pytest.mark.asyncio
    async def test_delete_module_progress_collects_both_lookups(self, mock_session):
        repo = ProgressRepository(mock_session, "ks")
        module_id, course_id = uuid4(), uuid4()
        lesson_a, lesson_b = uuid4(), uuid4()
        alice, bob = uuid4(), uuid4()
        mock_session.aexecute = AsyncMock(
            side_effect=[
                # module lookup: alice only
                [SimpleNamespace(user_id=alice, course_id=course_id)],
                # lesson_a lookup: alice and bob (bob has no module row)
                [
                    SimpleNamespace(user_id=alice, course_id=course_id, module_id=module_id),
                    SimpleNamespace(user_id=bob, course_id=course_id, module_id=module_id),
                ],
                # lesson_b lookup: nobody
                [],
                None,
                None,
            ]
        )

        with patch("learnpath.progress.repository.BatchStatement") as batch_cls:
            purged = await repo.delete_module_progress(module_id, [lesson_a, lesson_b])

        assert purged == 2
        assert batch_cls.call_count == 2
        batch = batch_cls.return_value
        # Per student: range delete + lesson lookup + module row + module lookup
        assert batch.add.call_count == 8
        added = [call.args[0] for call in batch.add.call_args_list]
        assert added.count(repo._delete_module_lessons) == 2
        assert added.count(repo._delete_lesson_progress_by_lesson) == 2


# ==============================================================================
# ContentRepository / SubmissionRepository
# ==============================================================================


class TestContentRepository:
    """Tests for ContentRepository."""

    @pytest.mark.asyncio
    async def test_get_module_loads_lessons(self, mock_session):
        repo = ContentRepository(mock_session, "ks")
        module_id, course_id, quiz_id = uuid4(), uuid4(), uuid4()
        lessons = [uuid4(), uuid4()]
        mock_session.aexecute = AsyncMock(
            side_effect=[
                one(SimpleNamespace(id=module_id, course_id=course_id, quiz_id=quiz_id)),
                [SimpleNamespace(lesson_id=lesson_id) for lesson_id in lessons],
            ]
        )

        module = await repo.get_module(module_id)

        assert module.lesson_ids == tuple(lessons)
        assert module.quiz_id == quiz_id
        assert module.lesson_count == 2

    @pytest.mark.asyncio
    async def test_get_course_modules_skips_missing(self, mock_session):
        repo = ContentRepository(mock_session, "ks")
        course_id, present, missing = uuid4(), uuid4(), uuid4()
        mock_session.aexecute = AsyncMock(
            side_effect=[
                [SimpleNamespace(module_id=missing), SimpleNamespace(module_id=present)],
                one(None),
                one(SimpleNamespace(id=present, course_id=course_id, quiz_id=None)),
                [],
            ]
        )

        modules = await repo.get_course_modules(course_id)

        assert [m.module_id for m in modules] == [present]
        assert modules[0].has_quiz is False

    @pytest.mark.asyncio
    async def test_course_exists(self, mock_session):
        repo = ContentRepository(mock_session, "ks")
        mock_session.aexecute = AsyncMock(return_value=one(None))

        assert await repo.course_exists(uuid4()) is False


class TestSubmissionRepository:
    """Tests for SubmissionRepository."""

    @staticmethod
    def submission(user_id: UUID, quiz_id: UUID, score) -> SimpleNamespace:
        return SimpleNamespace(
            user_id=user_id,
            quiz_id=quiz_id,
            submission_id=uuid4(),
            course_id=uuid4(),
            module_id=uuid4(),
            score=score,
            ended_at=None,
        )

    @pytest.mark.asyncio
    async def test_best_submission_ignores_ungraded(self, mock_session):
        repo = SubmissionRepository(mock_session, "ks")
        user_id, quiz_id = uuid4(), uuid4()
        mock_session.aexecute = AsyncMock(
            return_value=[
                self.submission(user_id, quiz_id, 40.0),
                self.submission(user_id, quiz_id, None),
                self.submission(user_id, quiz_id, 75.0),
            ]
        )

        best = await repo.get_best_submission(user_id, quiz_id)

        assert best.score == 75.0

    @pytest.mark.asyncio
    async def test_best_submission_none_when_ungraded(self, mock_session):
        repo = SubmissionRepository(mock_session, "ks")
        user_id, quiz_id = uuid4(), uuid4()
        mock_session.aexecute = AsyncMock(
            return_value=[self.submission(user_id, quiz_id, None)]
        )

        assert await repo.get_best_submission(user_id, quiz_id) is None

    @pytest.mark.asyncio
    async def test_purge_quiz_batches_per_student(self, mock_session):
        repo = SubmissionRepository(mock_session, "ks")
        quiz_id, course_id = uuid4(), uuid4()
        first, second = uuid4(), uuid4()
        rows = [
            SimpleNamespace(user_id=first, submission_id=uuid4(), course_id=course_id),
            SimpleNamespace(user_id=first, submission_id=uuid4(), course_id=course_id),
            SimpleNamespace(user_id=second, submission_id=uuid4(), course_id=course_id),
        ]
        mock_session.aexecute = AsyncMock(side_effect=[rows, None, None, None])

        with patch("learnpath.content.repository.BatchStatement") as batch_cls:
            purged = await repo.purge_quiz(quiz_id)

        assert purged == 3
        assert batch_cls.call_count == 2
        batch_cls.assert_called_with(batch_type=BatchType.LOGGED)
        # first: 2 answers + 2 partitions; second: 1 answer + 2 partitions
        assert batch_cls.return_value.add.call_count == 7
        # select, one batch per student, then the by-quiz index
        assert mock_session.aexecute.await_count == 4
        mock_session.aexecute.assert_awaited_with(repo._delete_quiz_index, [quiz_id])

    @pytest.mark.asyncio
    async def test_purge_quiz_without_submissions(self, mock_session):
        repo = SubmissionRepository(mock_session, "ks")
        mock_session.aexecute = AsyncMock(return_value=[])

        assert await repo.purge_quiz(uuid4()) == 0
        assert mock_session.aexecute.await_count == 1
