"""Job state machine: pending -> processing -> completed | failed.

Every transition after submission runs from a timer callback. Callbacks never
raise: failures are logged, reported through the notifier and, unless the job
was deleted, leave it in ``failed`` rather than stuck in ``processing``.
"""

import enum
import itertools
import random
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from mediajobs.core.config import Settings
from mediajobs.core.errors import AlreadyProcessing, InvalidInput, NotFound, PersistenceError
from mediajobs.models import JobRecord, JobStatus, ProcessingOptions, VideoFormat, VideoResolution
from mediajobs.services.artifacts import ArtifactSet, ShareLinkFactory, generate_artifacts
from mediajobs.services.notifications import JobEvent, Notifier, completion_message
from mediajobs.services.store import JobStore
from mediajobs.tasks.guards import InFlightGuard, LocalInFlightGuard
from mediajobs.tasks.timers import ScheduledTask, Timers

logger = structlog.get_logger()


class Step(str, enum.Enum):
    START = "start"
    COMPLETE = "complete"


class StaleTransition(Exception):
    """The job is no longer in the state the scheduled step expects."""


class ProcessingScheduler:
    def __init__(
        self,
        store: JobStore,
        timers: Timers,
        notifier: Notifier,
        link_factory: ShareLinkFactory,
        settings: Settings,
        guard: InFlightGuard | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.timers = timers
        self.notifier = notifier
        self.link_factory = link_factory
        self.settings = settings
        self.guard = guard or LocalInFlightGuard()
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        # Only the step holding the job's current ticket may act on it
        self._tickets = itertools.count(1)
        self._current: dict[str, int] = {}
        self._tasks: dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def enqueue(self, job_id: str) -> ScheduledTask | None:
        """Schedule the pending -> processing step of a freshly stored job.

        Returns None if the job was cancelled before its timer existed.
        """
        if not self.guard.acquire(job_id):
            raise AlreadyProcessing(f"Job {job_id} is already scheduled", job_id=job_id)

        task = self._schedule(job_id, Step.START, self._queue_delay())
        self.notify(job_id, JobEvent.QUEUED)
        logger.info("job_queued", job_id=job_id, deadline=task.deadline.isoformat() if task else None)
        return task

    def reprocess(
        self,
        job_id: str,
        format: VideoFormat,
        resolution: VideoResolution,
        options: ProcessingOptions | None,
    ) -> JobRecord:
        """Move a terminal job back to processing with new parameters.

        The flip to ``processing`` happens before returning; completion is
        scheduled. Raises ``AlreadyProcessing`` unless the job is completed
        or failed and has nothing in flight.
        """
        options = ProcessingOptions.coerce(options)

        if not self.guard.acquire(job_id):
            raise AlreadyProcessing(f"Job {job_id} is already being processed", job_id=job_id)

        def mutate(record: JobRecord) -> None:
            if not record.status.is_terminal:
                raise AlreadyProcessing(
                    f"Job {job_id} cannot be reprocessed while {record.status.value}", job_id=job_id
                )
            record.status = JobStatus.PROCESSING
            record.format = format
            record.resolution = resolution
            record.options = options

        try:
            record = self.store.update(job_id, mutate)
        except PersistenceError as e:
            # In-memory state already flipped; completion must still follow
            self._after_reprocess_flip(e.record)
            raise
        except Exception:
            self.guard.release(job_id)
            raise

        self._after_reprocess_flip(record)
        return record

    def report_failure(self, job_id: str, reason: str) -> JobRecord:
        """Record a failure reported from outside, e.g. by a real transcoder."""

        def mutate(record: JobRecord) -> None:
            if record.status != JobStatus.PROCESSING:
                raise InvalidInput(
                    f"Only processing jobs can fail, job {job_id} is {record.status.value}", job_id=job_id
                )
            record.status = JobStatus.FAILED
            record.error_message = reason

        try:
            record = self.store.update(job_id, mutate)
        except PersistenceError:
            self.cancel(job_id)
            self.notify(job_id, JobEvent.FAILED, error=reason)
            raise

        self.cancel(job_id)
        self.notify(job_id, JobEvent.FAILED, error=reason)
        logger.info("job_failure_reported", job_id=job_id, reason=reason)
        return record

    def cancel(self, job_id: str) -> bool:
        """Drop the pending step of a job. Returns True if one was pending."""
        with self._lock:
            self._current.pop(job_id, None)
            task = self._tasks.pop(job_id, None)
        self.guard.release(job_id)
        return task.cancel() if task is not None else False

    def resume(self) -> int:
        """Reschedule jobs loaded in a non-terminal state so none stay stuck.

        The loaded store is authoritative, so the in-flight mark is claimed
        even when a previous process left it set.
        """
        resumed = 0
        for record in self.store.snapshot():
            if record.status.is_terminal:
                continue
            with self._lock:
                if record.id in self._current:
                    continue
            self.guard.claim(record.id)
            if record.status == JobStatus.PENDING:
                self._schedule(record.id, Step.START, self._queue_delay())
            else:
                self._schedule(record.id, Step.COMPLETE, self._processing_delay())
            resumed += 1

        if resumed:
            logger.info("jobs_resumed", count=resumed)
        return resumed

    def in_flight(self, job_id: str) -> bool:
        return self.guard.is_held(job_id)

    def shutdown(self) -> None:
        with self._lock:
            tasks, self._tasks = self._tasks, {}
            self._current.clear()
        for job_id, task in tasks.items():
            task.cancel()
            self.guard.release(job_id)

    # ------------------------------------------------------------------
    # Scheduled steps
    # ------------------------------------------------------------------

    def _fire(self, job_id: str, step: Step, reprocessed: bool, ticket: int) -> None:
        with self._lock:
            if self._current.get(job_id) != ticket:
                superseded = True
            else:
                superseded = False
                self._tasks.pop(job_id, None)

        if superseded:
            # Cancelled or replaced; the in-flight mark belongs to someone else
            logger.info("transition_skipped", job_id=job_id, step=step.value, reason="superseded")
            return

        try:
            if not self.store.contains(job_id):
                logger.info("transition_skipped", job_id=job_id, step=step.value, reason="deleted")
                self.guard.release(job_id)
                return

            try:
                if step == Step.START:
                    self._start(job_id, ticket)
                else:
                    self._complete(job_id, reprocessed)
            except NotFound:
                logger.info("transition_skipped", job_id=job_id, step=step.value, reason="deleted")
                self.guard.release(job_id)
            except StaleTransition as e:
                logger.warning("transition_stale", job_id=job_id, step=step.value, status=str(e))
                self.guard.release(job_id)
            except Exception as e:
                logger.error("transition_failed", job_id=job_id, step=step.value, error=str(e))
                self._fail(job_id, str(e))
        finally:
            self._retire(job_id, ticket)

    def _start(self, job_id: str, ticket: int) -> None:
        def mutate(record: JobRecord) -> None:
            if record.status != JobStatus.PENDING:
                raise StaleTransition(record.status.value)
            record.status = JobStatus.PROCESSING

        try:
            record = self.store.update(job_id, mutate)
        except PersistenceError as e:
            self.notify(job_id, JobEvent.PERSISTENCE_FAILED, error=e.message)
            record = e.record

        task = self._schedule(job_id, Step.COMPLETE, self._processing_delay(), expect=ticket)
        if task is None:
            # Failed or deleted while the flip was being written
            logger.info("completion_not_scheduled", job_id=job_id)
            return

        self.notify(job_id, JobEvent.PROCESSING_STARTED, message=f'Processing started for "{record.title}"')
        logger.info("processing_started", job_id=job_id)

    def _complete(self, job_id: str, reprocessed: bool) -> None:
        produced: list[ArtifactSet] = []

        def mutate(record: JobRecord) -> None:
            if record.status != JobStatus.PROCESSING:
                raise StaleTransition(record.status.value)
            artifacts = generate_artifacts(
                job_id=record.id,
                title=record.title,
                format=record.format,
                resolution=record.resolution,
                options=record.options,
                original_size_bytes=record.original_size_bytes,
                link_factory=self.link_factory,
                thumbnail_base_url=self.settings.thumbnail_base_url,
                subtitle_base_url=self.settings.subtitle_base_url,
                thumbnail_count=self.settings.thumbnail_count,
                compression_ratio=self.settings.compression_ratio,
            )
            artifacts.apply_to(record, self._clock())
            record.status = JobStatus.COMPLETED
            produced.append(artifacts)

        try:
            record = self.store.update(job_id, mutate)
        except PersistenceError as e:
            self.notify(job_id, JobEvent.PERSISTENCE_FAILED, error=e.message)
            record = e.record
        finally:
            if produced:
                self.guard.release(job_id)

        features = produced[0].applied_features
        self.notify(
            job_id,
            JobEvent.COMPLETED,
            features=features,
            share_link=record.share_link,
            message=completion_message(record.title, features, reprocessed),
        )
        logger.info("processing_completed", job_id=job_id, features=features, reprocessed=reprocessed)

    def _fail(self, job_id: str, reason: str) -> None:
        def mutate(record: JobRecord) -> None:
            record.status = JobStatus.FAILED
            record.error_message = reason[:500]

        try:
            self.store.update(job_id, mutate)
        except NotFound:
            return
        except PersistenceError as e:
            self.notify(job_id, JobEvent.PERSISTENCE_FAILED, error=e.message)
        finally:
            self.guard.release(job_id)

        self.notify(job_id, JobEvent.FAILED, error=reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _after_reprocess_flip(self, record: JobRecord) -> None:
        self._schedule(record.id, Step.COMPLETE, self._reprocess_delay(), reprocessed=True)
        self.notify(record.id, JobEvent.REPROCESS_STARTED, message=f'Reprocessing started for "{record.title}"')
        logger.info("reprocess_started", job_id=record.id)

    def _schedule(
        self,
        job_id: str,
        step: Step,
        delay: float,
        reprocessed: bool = False,
        expect: int | None = None,
    ) -> ScheduledTask | None:
        """Schedule ``step`` as the job's only pending transition.

        With ``expect``, nothing is scheduled unless the job's current ticket
        is still ``expect``. Returns None when the job was cancelled first.
        """
        with self._lock:
            if expect is not None and self._current.get(job_id) != expect:
                return None
            ticket = next(self._tickets)
            self._current[job_id] = ticket

        task = self.timers.call_later(
            delay,
            lambda: self._fire(job_id, step, reprocessed, ticket),
            name=f"{step.value}:{job_id}",
        )

        with self._lock:
            if self._current.get(job_id) == ticket:
                if not task.fired:
                    self._tasks[job_id] = task
                return task
        if task.fired:
            return task
        # Cancelled while the timer was being created
        task.cancel()
        return None

    def _retire(self, job_id: str, ticket: int) -> None:
        with self._lock:
            if self._current.get(job_id) == ticket:
                del self._current[job_id]

    def _between(self, low: float, high: float) -> float:
        low, high = sorted((low, high))
        return self._rng.uniform(low, high)

    def _queue_delay(self) -> float:
        s = self.settings
        return self._between(s.queue_delay_min_seconds, s.queue_delay_max_seconds)

    def _processing_delay(self) -> float:
        s = self.settings
        return self._between(s.processing_delay_min_seconds, s.processing_delay_max_seconds)

    def _reprocess_delay(self) -> float:
        s = self.settings
        return self._between(s.reprocess_delay_min_seconds, s.reprocess_delay_max_seconds)

    def notify(self, job_id: str, event: JobEvent, **details: Any) -> None:
        try:
            self.notifier.notify(job_id, event, details)
        except Exception as e:
            logger.warning("notifier_failed", job_id=job_id, event=event.value, error=str(e))
