import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from mediajobs.core.errors import DuplicateId, NotFound, PersistenceError
from mediajobs.models import Identity, JobRecord, JobStatus
from mediajobs.services.persistence import JobPersistenceAdapter

logger = structlog.get_logger()

Mutator = Callable[[JobRecord], None]
Predicate = Callable[[JobRecord], bool]


@dataclass(frozen=True)
class JobFilter:
    """Status tab plus free-text search, as used by list views."""

    status: JobStatus | None = None
    text: str | None = None

    def __call__(self, record: JobRecord) -> bool:
        if self.status is not None and record.status != self.status:
            return False
        if self.text:
            needle = self.text.strip().lower()
            haystack = (record.title, record.original_file_name, record.owner_id)
            return any(needle in value.lower() for value in haystack)
        return True


class JobStore:
    """Owner-aware job collection written through to a persistence adapter.

    Records never leave the store by reference: ``get``/``list_*`` return deep
    copies and ``update`` mutates a working copy that is swapped in once the
    mutator returns. Updates to one job are serialized by a per-job lock;
    the store lock guards the mapping and every full-collection write, so the
    adapter never sees two overlapping ``save_all`` calls.
    """

    def __init__(self, adapter: JobPersistenceAdapter) -> None:
        self._adapter = adapter
        self._records: dict[str, JobRecord] = {}
        self._lock = threading.RLock()
        self._record_locks: dict[str, threading.Lock] = {}
        self._dirty = False

    @property
    def dirty(self) -> bool:
        """True when the last write to the adapter failed."""
        return self._dirty

    def load(self, seed: Iterable[JobRecord] = ()) -> int:
        try:
            records = self._adapter.load_all()
        except Exception as e:
            logger.error("jobs_load_failed", error=str(e))
            raise PersistenceError(f"Failed to load jobs: {e}") from e

        seeded = False
        if not records:
            records = list(seed)
            seeded = bool(records)

        with self._lock:
            self._records = {record.id: record for record in records}
            if seeded:
                try:
                    self._persist_locked()
                except PersistenceError as e:
                    # Seeds stay in memory; the next write or flush() retries
                    logger.warning("jobs_seed_persist_deferred", count=len(records), error=e.message)

        logger.info("jobs_loaded", count=len(records), seeded=seeded)
        return len(records)

    def insert(self, record: JobRecord) -> JobRecord:
        with self._lock:
            if record.id in self._records:
                raise DuplicateId(f"Job {record.id} already exists", job_id=record.id)
            self._records[record.id] = record.model_copy(deep=True)
            self._persist_locked(record)
        return record.model_copy(deep=True)

    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                raise NotFound(f"Job {job_id} not found", job_id=job_id)
            return record.model_copy(deep=True)

    def contains(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._records

    def update(self, job_id: str, mutator: Mutator) -> JobRecord:
        """Apply ``mutator`` to the job and persist the collection.

        A mutator that raises leaves the stored record untouched and the
        exception propagates. Returns a copy of the updated record.
        """
        with self._record_lock(job_id):
            working = self.get(job_id)
            mutator(working)

            with self._lock:
                if job_id not in self._records:
                    raise NotFound(f"Job {job_id} not found", job_id=job_id)
                self._records[job_id] = working
                snapshot = working.model_copy(deep=True)
                self._persist_locked(snapshot)

        return snapshot

    def remove(self, job_id: str) -> JobRecord:
        with self._record_lock(job_id):
            with self._lock:
                record = self._records.pop(job_id, None)
                if record is None:
                    raise NotFound(f"Job {job_id} not found", job_id=job_id)
                self._record_locks.pop(job_id, None)
                self._persist_locked(record)
        return record

    def list_for(self, caller: Identity) -> list[JobRecord]:
        """Jobs visible to ``caller``, most recently submitted first."""
        with self._lock:
            visible = [r.model_copy(deep=True) for r in self._records.values() if r.is_visible_to(caller)]
        return sorted(visible, key=lambda r: r.submitted_at, reverse=True)

    def list_filtered(self, caller: Identity, predicate: Predicate) -> list[JobRecord]:
        return [record for record in self.list_for(caller) if predicate(record)]

    def snapshot(self) -> list[JobRecord]:
        """Copies of every stored job, for internal bookkeeping."""
        with self._lock:
            return [record.model_copy(deep=True) for record in self._records.values()]

    def flush(self) -> None:
        """Write the collection again if the previous write failed."""
        with self._lock:
            if self._dirty:
                self._persist_locked()

    def _record_lock(self, job_id: str) -> threading.Lock:
        with self._lock:
            return self._record_locks.setdefault(job_id, threading.Lock())

    def _persist_locked(self, record: JobRecord | None = None) -> None:
        try:
            self._adapter.save_all(list(self._records.values()))
        except Exception as e:
            self._dirty = True
            job_id = record.id if record is not None else None
            logger.error("jobs_persist_failed", job_id=job_id, error=str(e))
            raise PersistenceError(f"Failed to persist jobs: {e}", job_id=job_id, record=record) from e
        self._dirty = False
