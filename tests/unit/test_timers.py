"""
Unit tests for mediajobs/tasks/timers.py
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.date import DateTrigger

from mediajobs.tasks.timers import BackgroundTimers, ManualTimers, ScheduledTask

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestScheduledTask:
    """Tests for ScheduledTask."""

    @pytest.mark.unit
    def test_runs_once(self):
        calls = []
        task = ScheduledTask("t", T0, lambda: calls.append(1))

        task.run()
        task.run()

        assert calls == [1]
        assert task.fired
        assert not task.pending

    @pytest.mark.unit
    def test_cancelled_task_does_not_run(self):
        calls = []
        on_cancel = MagicMock()
        task = ScheduledTask("t", T0, lambda: calls.append(1), on_cancel=on_cancel)

        assert task.cancel() is True
        task.run()

        assert calls == []
        on_cancel.assert_called_once()

    @pytest.mark.unit
    def test_cancel_after_fire_is_noop(self):
        task = ScheduledTask("t", T0, lambda: None)
        task.run()
        assert task.cancel() is False


class TestManualTimers:
    """Tests for ManualTimers."""

    @pytest.mark.unit
    def test_fires_in_deadline_order(self):
        timers = ManualTimers(now=T0)
        order = []
        timers.call_later(5, lambda: order.append("late"), name="late")
        timers.call_later(1, lambda: order.append("early"), name="early")

        fired = timers.advance(10)

        assert fired == 2
        assert order == ["early", "late"]
        assert timers.now == T0 + timedelta(seconds=10)

    @pytest.mark.unit
    def test_advance_stops_at_target(self):
        timers = ManualTimers(now=T0)
        order = []
        timers.call_later(1, lambda: order.append(1), name="a")
        timers.call_later(3, lambda: order.append(3), name="b")

        timers.advance(2)

        assert order == [1]
        assert len(timers.pending) == 1

    @pytest.mark.unit
    def test_clock_at_deadline_during_callback(self):
        timers = ManualTimers(now=T0)
        seen = []
        timers.call_later(4, lambda: seen.append(timers.now), name="a")

        timers.advance(10)

        assert seen == [T0 + timedelta(seconds=4)]

    @pytest.mark.unit
    def test_callbacks_can_schedule_followups(self):
        """A follow-up that falls due within the same advance also fires."""
        timers = ManualTimers(now=T0)
        order = []

        def first():
            order.append("first")
            timers.call_later(2, lambda: order.append("second"), name="second")

        timers.call_later(1, first, name="first")
        timers.advance(5)

        assert order == ["first", "second"]

    @pytest.mark.unit
    def test_cancelled_tasks_are_skipped(self):
        timers = ManualTimers(now=T0)
        calls = []
        task = timers.call_later(1, lambda: calls.append(1), name="a")

        task.cancel()

        assert timers.advance(5) == 0
        assert calls == []

    @pytest.mark.unit
    def test_run_all(self):
        timers = ManualTimers(now=T0)
        timers.call_later(100, lambda: None, name="a")
        timers.call_later(3600, lambda: None, name="b")

        assert timers.run_all() == 2
        assert timers.now == T0 + timedelta(seconds=3600)

    @pytest.mark.unit
    def test_shutdown_cancels_pending(self):
        timers = ManualTimers(now=T0)
        task = timers.call_later(1, lambda: None, name="a")

        timers.shutdown()

        assert task.cancelled
        assert timers.pending == []


class TestBackgroundTimers:
    """Tests for BackgroundTimers with a mocked APScheduler."""

    @pytest.fixture
    def mock_scheduler(self):
        scheduler = MagicMock()
        scheduler.running = False
        return scheduler

    @pytest.mark.unit
    def test_call_later_adds_date_job(self, mock_scheduler):
        timers = BackgroundTimers(scheduler=mock_scheduler)

        task = timers.call_later(5, lambda: None, name="start:job-1")

        _, kwargs = mock_scheduler.add_job.call_args
        assert isinstance(kwargs["trigger"], DateTrigger)
        assert kwargs["name"] == "start:job-1"
        assert mock_scheduler.add_job.call_args[0][0] == task.run

    @pytest.mark.unit
    def test_cancel_removes_job(self, mock_scheduler):
        job = MagicMock()
        mock_scheduler.add_job.return_value = job
        timers = BackgroundTimers(scheduler=mock_scheduler)

        task = timers.call_later(5, lambda: None, name="a")
        task.cancel()

        job.remove.assert_called_once()

    @pytest.mark.unit
    def test_cancel_tolerates_already_removed_job(self, mock_scheduler):
        job = MagicMock()
        job.remove.side_effect = JobLookupError("a")
        mock_scheduler.add_job.return_value = job
        timers = BackgroundTimers(scheduler=mock_scheduler)

        task = timers.call_later(5, lambda: None, name="a")

        assert task.cancel() is True

    @pytest.mark.unit
    def test_start_and_shutdown(self, mock_scheduler):
        timers = BackgroundTimers(scheduler=mock_scheduler)

        timers.start()
        mock_scheduler.start.assert_called_once()

        mock_scheduler.running = True
        timers.shutdown()
        mock_scheduler.shutdown.assert_called_once_with(wait=False)

    @pytest.mark.unit
    def test_real_scheduler_fires_callback(self):
        """End-to-end with APScheduler's own thread pool."""
        import threading

        done = threading.Event()
        timers = BackgroundTimers()
        timers.start()
        try:
            timers.call_later(0.05, done.set, name="quick")
            assert done.wait(timeout=5)
        finally:
            timers.shutdown()
