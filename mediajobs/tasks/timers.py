"""Cancellable delayed callbacks.

``BackgroundTimers`` runs callbacks on APScheduler's thread pool after a real
delay. ``ManualTimers`` keeps a virtual clock that only moves when the caller
advances it, so tests can fire transitions deterministically.
"""

import heapq
import itertools
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

logger = structlog.get_logger()


class ScheduledTask:
    """Handle for a pending callback: its deadline and a way to cancel it."""

    def __init__(
        self,
        name: str,
        deadline: datetime,
        callback: Callable[[], None],
        on_cancel: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False
        self.fired = False
        self._on_cancel = on_cancel

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        if not self.pending:
            return False
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
        return True

    def run(self) -> None:
        if not self.pending:
            return
        self.fired = True
        self.callback()

    def __repr__(self) -> str:
        return f"<ScheduledTask {self.name} at {self.deadline.isoformat()}>"


class Timers(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None], name: str) -> ScheduledTask: ...

    def start(self) -> None: ...

    def shutdown(self) -> None: ...


class BackgroundTimers:
    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler or BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": False,
                "max_instances": 1,
                "misfire_grace_time": None,  # late callbacks still run
            },
        )

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("timers_started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("timers_stopped")

    def call_later(self, delay: float, callback: Callable[[], None], name: str) -> ScheduledTask:
        deadline = datetime.now(timezone.utc) + timedelta(seconds=max(delay, 0.0))
        task = ScheduledTask(name, deadline, callback)
        job = self._scheduler.add_job(task.run, trigger=DateTrigger(run_date=deadline), name=name)

        def remove_job() -> None:
            try:
                job.remove()
            except JobLookupError:
                pass  # already fired

        task._on_cancel = remove_job
        return task


class ManualTimers:
    """Virtual clock for tests and simulations."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(timezone.utc)
        self._queue: list[tuple[datetime, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        for task in self.pending:
            task.cancel()

    def call_later(self, delay: float, callback: Callable[[], None], name: str) -> ScheduledTask:
        with self._lock:
            task = ScheduledTask(name, self.now + timedelta(seconds=max(delay, 0.0)), callback)
            heapq.heappush(self._queue, (task.deadline, next(self._counter), task))
        return task

    @property
    def pending(self) -> list[ScheduledTask]:
        with self._lock:
            return [task for _, _, task in sorted(self._queue) if task.pending]

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every callback that falls due."""
        target = self.now + timedelta(seconds=seconds)
        fired = 0
        while True:
            task = self._pop_due(target)
            if task is None:
                break
            self.now = max(self.now, task.deadline)
            task.run()
            fired += 1
        self.now = target
        return fired

    def run_all(self, max_steps: int = 1000) -> int:
        """Fire callbacks in deadline order until nothing is scheduled."""
        fired = 0
        while fired < max_steps:
            task = self._pop_due(None)
            if task is None:
                break
            self.now = max(self.now, task.deadline)
            task.run()
            fired += 1
        return fired

    def _pop_due(self, until: datetime | None) -> ScheduledTask | None:
        with self._lock:
            while self._queue:
                deadline, _, task = self._queue[0]
                if until is not None and deadline > until:
                    return None
                heapq.heappop(self._queue)
                if task.pending:
                    return task
            return None
