from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from mediajobs.models import Base, JobRecord, JobRow, JobStatus, create_db_engine, create_session_factory
from mediajobs.models.job import BYTES_PER_MB

logger = structlog.get_logger()


class JobPersistenceAdapter(Protocol):
    """Load-all / save-all contract used by the job store.

    ``save_all`` receives the entire collection and replaces whatever was
    stored before. Implementations raise on failure.
    """

    def load_all(self) -> list[JobRecord]: ...

    def save_all(self, records: list[JobRecord]) -> None: ...


class InMemoryJobAdapter:
    """Keeps deep copies of the last saved collection. Used in tests and demos."""

    def __init__(self, records: Iterable[JobRecord] = ()) -> None:
        self._records = [r.model_copy(deep=True) for r in records]
        self.save_count = 0

    def load_all(self) -> list[JobRecord]:
        return [r.model_copy(deep=True) for r in self._records]

    def save_all(self, records: list[JobRecord]) -> None:
        self._records = [r.model_copy(deep=True) for r in records]
        self.save_count += 1


class SqlAlchemyJobAdapter:
    """Stores the collection in the ``jobs`` table.

    Each save replaces every row inside a single transaction, so a failed
    write leaves the previous durable copy intact.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlAlchemyJobAdapter":
        engine = create_db_engine(database_url)
        Base.metadata.create_all(engine)
        return cls(create_session_factory(engine))

    def load_all(self) -> list[JobRecord]:
        db = self.session_factory()
        try:
            rows = db.query(JobRow).order_by(JobRow.submitted_at.desc()).all()
            return [row.to_record() for row in rows]
        finally:
            db.close()

    def save_all(self, records: list[JobRecord]) -> None:
        db = self.session_factory()
        try:
            db.query(JobRow).delete()
            db.add_all([JobRow.from_record(record) for record in records])
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("jobs_save_failed", count=len(records), error=str(e))
            raise
        finally:
            db.close()


_COVER = "https://placehold.co/600x400/"


def _mb(value: float) -> int:
    return int(value * BYTES_PER_MB)


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def sample_jobs() -> list[JobRecord]:
    """Records seeded into an empty store at start-up."""
    return [
        JobRecord(
            id="1",
            owner_id="2",
            title="Product Demo",
            cover_ref=_COVER + "667eea/ffffff?text=Product+Demo",
            original_file_name="product_demo.mp4",
            processed_file_name="product_demo_720p.mp4",
            status=JobStatus.COMPLETED,
            format="mp4",
            resolution="720p",
            size_bytes=_mb(24.5),
            duration_label="2:45",
            submitted_at=_ts("2023-10-15T10:30:00Z"),
            completed_at=_ts("2023-10-15T10:35:00Z"),
            share_link="https://drive.google.com/mock-link-1",
        ),
        JobRecord(
            id="2",
            owner_id="2",
            title="Training Session",
            cover_ref=_COVER + "f6ad55/ffffff?text=Training+Session",
            original_file_name="training.mp4",
            status=JobStatus.PROCESSING,
            format="mp4",
            resolution="1080p",
            size_bytes=_mb(155.2),
            duration_label="18:22",
            submitted_at=_ts("2023-10-16T14:20:00Z"),
        ),
        JobRecord(
            id="3",
            owner_id="1",
            title="Company Presentation",
            cover_ref=_COVER + "9f7aea/ffffff?text=Company+Presentation",
            original_file_name="presentation.avi",
            processed_file_name="presentation_720p.mp4",
            status=JobStatus.COMPLETED,
            format="mp4",
            resolution="720p",
            size_bytes=_mb(85.7),
            duration_label="10:15",
            submitted_at=_ts("2023-10-14T09:15:00Z"),
            completed_at=_ts("2023-10-14T09:25:00Z"),
            share_link="https://drive.google.com/mock-link-2",
        ),
        JobRecord(
            id="4",
            owner_id="1",
            title="Customer Testimonial",
            cover_ref=_COVER + "4299e1/ffffff?text=Customer+Testimonial",
            original_file_name="testimonial.mkv",
            processed_file_name="testimonial_480p.mp4",
            status=JobStatus.COMPLETED,
            format="mp4",
            resolution="480p",
            size_bytes=_mb(18.3),
            duration_label="3:45",
            submitted_at=_ts("2023-10-13T16:40:00Z"),
            completed_at=_ts("2023-10-13T16:45:00Z"),
            share_link="https://drive.google.com/mock-link-3",
        ),
        JobRecord(
            id="5",
            owner_id="2",
            title="Project Overview",
            cover_ref=_COVER + "ed8936/ffffff?text=Project+Overview",
            original_file_name="project.mp4",
            status=JobStatus.PENDING,
            format="mp4",
            resolution="1080p",
            size_bytes=_mb(210.6),
            duration_label="25:18",
            submitted_at=_ts("2023-10-17T11:10:00Z"),
        ),
    ]
