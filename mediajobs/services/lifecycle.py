import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog
from pydantic import ValidationError

from mediajobs.core.config import Settings, get_settings
from mediajobs.core.errors import InvalidInput, PersistenceError, Unauthorized
from mediajobs.models import (
    Identity,
    JobRecord,
    JobStatus,
    ProcessingOptions,
    VideoFormat,
    VideoResolution,
)
from mediajobs.models.job import new_job_id
from mediajobs.services.artifacts import ShareLinkFactory, build_cover
from mediajobs.services.notifications import JobEvent, Notifier, build_notifier
from mediajobs.services.persistence import (
    InMemoryJobAdapter,
    JobPersistenceAdapter,
    SqlAlchemyJobAdapter,
    sample_jobs,
)
from mediajobs.services.storage import build_link_factory
from mediajobs.services.store import JobStore, Predicate
from mediajobs.tasks.guards import InFlightGuard, build_guard
from mediajobs.tasks.processing import ProcessingScheduler
from mediajobs.tasks.timers import BackgroundTimers, Timers

logger = structlog.get_logger()


@dataclass(frozen=True)
class FileMeta:
    """What the upload layer knows about the submitted asset."""

    file_name: str
    size_bytes: int
    content_type: str | None = None
    duration_label: str = "00:00"


@dataclass(frozen=True)
class JobStats:
    total: int
    pending: int
    processing: int
    completed: int
    failed: int
    owners: int


class LifecycleService:
    """Public operations on media jobs.

    Authorization and validation happen here, before anything is written.
    Call ``start()`` once before use and ``shutdown()`` when done.
    """

    def __init__(self, store: JobStore, scheduler: ProcessingScheduler, settings: Settings) -> None:
        self.store = store
        self.scheduler = scheduler
        self.settings = settings
        self._started = False

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        adapter: JobPersistenceAdapter | None = None,
        timers: Timers | None = None,
        notifier: Notifier | None = None,
        link_factory: ShareLinkFactory | None = None,
        guard: InFlightGuard | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "LifecycleService":
        """Wire a service from settings; any collaborator can be overridden."""
        settings = settings or get_settings()

        if adapter is None:
            if settings.persistence_backend == "memory":
                adapter = InMemoryJobAdapter()
            else:
                adapter = SqlAlchemyJobAdapter.from_url(settings.database_url)

        store = JobStore(adapter)
        scheduler = ProcessingScheduler(
            store=store,
            timers=timers or BackgroundTimers(),
            notifier=notifier or build_notifier(settings),
            link_factory=link_factory or build_link_factory(settings),
            settings=settings,
            guard=guard or build_guard(settings),
            rng=rng,
            clock=clock,
        )
        return cls(store, scheduler, settings)

    def start(self) -> None:
        if self._started:
            return
        seed = sample_jobs() if self.settings.seed_sample_jobs else []
        self.store.load(seed=seed)
        self.scheduler.timers.start()
        self.scheduler.resume()
        self._started = True
        logger.info("lifecycle_started")

    def shutdown(self) -> None:
        if not self._started:
            return
        self.scheduler.shutdown()
        self.scheduler.timers.shutdown()
        try:
            self.store.flush()
        except PersistenceError as e:
            logger.error("final_flush_failed", error=e.message)
        self._started = False
        logger.info("lifecycle_stopped")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit(
        self,
        owner: Identity,
        file_meta: FileMeta,
        format: VideoFormat | str,
        resolution: VideoResolution | str,
        options: ProcessingOptions | dict | None = None,
    ) -> JobRecord:
        if owner is None or not owner.id or not owner.id.strip():
            raise InvalidInput("Owner identity is required")
        self._validate_file(file_meta)

        job_id = new_job_id()
        record = JobRecord(
            id=job_id,
            owner_id=owner.id,
            original_file_name=file_meta.file_name,
            format=_parse_format(format),
            resolution=_parse_resolution(resolution),
            options=_parse_options(options),
            size_bytes=file_meta.size_bytes,
            duration_label=file_meta.duration_label,
            cover_ref=build_cover(job_id, file_meta.file_name, self.settings.thumbnail_base_url),
        )

        try:
            stored = self.store.insert(record)
        except PersistenceError:
            self.scheduler.enqueue(record.id)
            raise

        self.scheduler.enqueue(stored.id)
        logger.info("job_submitted", job_id=stored.id, owner_id=owner.id, file_name=stored.original_file_name)
        return stored

    def get(self, caller: Identity, job_id: str) -> JobRecord:
        return self._authorized(caller, job_id)

    def reprocess(
        self,
        caller: Identity,
        job_id: str,
        format: VideoFormat | str,
        resolution: VideoResolution | str,
        options: ProcessingOptions | dict | None = None,
    ) -> JobRecord:
        self._authorized(caller, job_id)
        record = self.scheduler.reprocess(
            job_id,
            _parse_format(format),
            _parse_resolution(resolution),
            _parse_options(options),
        )
        logger.info("job_reprocess_requested", job_id=job_id, caller_id=caller.id)
        return record

    def delete(self, caller: Identity, job_id: str) -> None:
        self._authorized(caller, job_id)
        try:
            self.store.remove(job_id)
        finally:
            self.scheduler.cancel(job_id)
        self.scheduler.notify(job_id, JobEvent.DELETED)
        logger.info("job_deleted", job_id=job_id, caller_id=caller.id)

    def list(self, caller: Identity, filter: Predicate | None = None) -> list[JobRecord]:
        if filter is None:
            return self.store.list_for(caller)
        return self.store.list_filtered(caller, filter)

    def report_failure(self, caller: Identity, job_id: str, reason: str) -> JobRecord:
        """Admin-only: mark a processing job as failed."""
        self._require_admin(caller)
        if not reason or not reason.strip():
            raise InvalidInput("A failure reason is required", job_id=job_id)
        self.store.get(job_id)
        return self.scheduler.report_failure(job_id, reason.strip())

    def stats(self, caller: Identity) -> JobStats:
        self._require_admin(caller)
        records = self.store.list_for(caller)
        counts = {status: 0 for status in JobStatus}
        for record in records:
            counts[record.status] += 1
        return JobStats(
            total=len(records),
            pending=counts[JobStatus.PENDING],
            processing=counts[JobStatus.PROCESSING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            owners=len({record.owner_id for record in records}),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _authorized(self, caller: Identity, job_id: str) -> JobRecord:
        if caller is None:
            raise Unauthorized("Caller identity is required", job_id=job_id)
        record = self.store.get(job_id)
        if not record.is_visible_to(caller):
            raise Unauthorized(f"Caller {caller.id} may not access job {job_id}", job_id=job_id)
        return record

    def _require_admin(self, caller: Identity) -> None:
        if caller is None or not caller.is_admin:
            raise Unauthorized("Admin role required")

    def _validate_file(self, file_meta: FileMeta) -> None:
        if file_meta is None or not file_meta.file_name or not file_meta.file_name.strip():
            raise InvalidInput("File name is required")
        if file_meta.size_bytes < 0:
            raise InvalidInput("File size cannot be negative")
        if file_meta.size_bytes > self.settings.max_video_size_bytes:
            raise InvalidInput(f"File too large. Max: {self.settings.max_video_size_mb}MB")
        if file_meta.content_type and file_meta.content_type not in self.settings.allowed_content_types:
            raise InvalidInput(f"Unsupported content type: {file_meta.content_type}")


def _parse_format(value: VideoFormat | str) -> VideoFormat:
    try:
        return VideoFormat(value)
    except ValueError:
        allowed = ", ".join(f.value for f in VideoFormat)
        raise InvalidInput(f"Unsupported format {value!r}. Allowed: {allowed}")


def _parse_resolution(value: VideoResolution | str) -> VideoResolution:
    try:
        return VideoResolution(value)
    except ValueError:
        allowed = ", ".join(r.value for r in VideoResolution)
        raise InvalidInput(f"Unsupported resolution {value!r}. Allowed: {allowed}")


def _parse_options(value: ProcessingOptions | dict | None) -> ProcessingOptions:
    try:
        return ProcessingOptions.coerce(value)
    except (TypeError, ValidationError) as e:
        raise InvalidInput(f"Invalid processing options: {e}")
