"""
Unit tests for the background job scheduler.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from admissions.core import scheduler
from admissions.core.scheduler import (
    list_registered_jobs,
    pause_job,
    register_job,
    resume_job,
    run_soon,
    trigger_job_manually,
)


@pytest.fixture(autouse=True)
def clean_scheduler():
    with (
        patch.dict(scheduler._job_registry, clear=True),
        patch.object(scheduler, "_scheduler", None),
    ):
        yield


@pytest.fixture
def running_scheduler():
    instance = MagicMock()
    instance.running = True
    with patch.object(scheduler, "_scheduler", instance):
        yield instance


class TestRegisterJob:
    def test_registered_before_start_waits_for_startup(self):
        func = AsyncMock()
        register_job("student_sync_retry", func, IntervalTrigger(hours=1))

        assert scheduler._job_registry["student_sync_retry"][0] is func
        assert list_registered_jobs() == [{"job_id": "student_sync_retry", "registered": True}]

    def test_registered_after_start_is_added(self, running_scheduler):
        func = AsyncMock()
        trigger = IntervalTrigger(hours=1)
        register_job("student_sync_retry", func, trigger)

        running_scheduler.add_job.assert_called_once_with(
            func, trigger=trigger, id="student_sync_retry", replace_existing=True
        )


class TestTriggerJobManually:
    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(ValueError):
            await trigger_job_manually("nope")

    @pytest.mark.asyncio
    async def test_success(self):
        func = AsyncMock()
        register_job("student_sync_retry", func, IntervalTrigger(hours=1))

        result = await trigger_job_manually("student_sync_retry")

        func.assert_awaited_once()
        assert result["status"] == "success"
        assert "error" not in result

    @pytest.mark.asyncio
    async def test_failure_is_reported(self):
        func = AsyncMock(side_effect=RuntimeError("database down"))
        register_job("student_sync_retry", func, IntervalTrigger(hours=1))

        result = await trigger_job_manually("student_sync_retry")

        assert result["status"] == "error"
        assert result["error"] == "database down"


class TestPauseResume:
    def test_without_scheduler(self):
        assert pause_job("student_sync_retry") is False
        assert resume_job("student_sync_retry") is False

    def test_unknown_job(self, running_scheduler):
        running_scheduler.get_job.return_value = None
        assert pause_job("nope") is False
        running_scheduler.pause_job.assert_not_called()

    def test_pause_and_resume(self, running_scheduler):
        assert pause_job("student_sync_retry") is True
        assert resume_job("student_sync_retry") is True
        running_scheduler.pause_job.assert_called_once_with("student_sync_retry")
        running_scheduler.resume_job.assert_called_once_with("student_sync_retry")


class TestRunSoon:
    def test_not_dispatched_without_scheduler(self):
        assert run_soon("sync:1", AsyncMock(), 1) is False

    def test_not_dispatched_when_stopped(self, running_scheduler):
        running_scheduler.running = False
        assert run_soon("sync:1", AsyncMock(), 1) is False
        running_scheduler.add_job.assert_not_called()

    def test_replaces_pending_task_with_same_id(self, running_scheduler):
        func = AsyncMock()

        assert run_soon("sync:1", func, "a", delay_seconds=5) is True

        kwargs = running_scheduler.add_job.call_args.kwargs
        assert running_scheduler.add_job.call_args.args == (func,)
        assert isinstance(kwargs["trigger"], DateTrigger)
        assert kwargs["args"] == ["a"]
        assert kwargs["id"] == "sync:1"
        assert kwargs["replace_existing"] is True
