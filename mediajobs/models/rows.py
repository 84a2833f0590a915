from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, DateTime, Enum, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .job import JobRecord, JobStatus, VideoFormat, VideoResolution

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class JobRow(Base):
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[JobStatus] = mapped_column(Enum(JobStatus), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    original_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    format: Mapped[VideoFormat] = mapped_column(Enum(VideoFormat), nullable=False)
    resolution: Mapped[VideoResolution] = mapped_column(Enum(VideoResolution), nullable=False)
    options: Mapped[dict] = mapped_column(JSONType, nullable=False)

    original_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_label: Mapped[str] = mapped_column(String(16), nullable=False)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cover_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    processed_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    share_link: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    thumbnail_set: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    subtitle_ref: Mapped[str | None] = mapped_column(String(512), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobRow":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            status=record.status,
            title=record.title,
            original_file_name=record.original_file_name,
            format=record.format,
            resolution=record.resolution,
            options=record.options.model_dump(),
            original_size_bytes=record.original_size_bytes,
            size_bytes=record.size_bytes,
            duration_label=record.duration_label,
            submitted_at=record.submitted_at,
            completed_at=record.completed_at,
            cover_ref=record.cover_ref,
            processed_file_name=record.processed_file_name,
            share_link=record.share_link,
            thumbnail_set=list(record.thumbnail_set) if record.thumbnail_set is not None else None,
            subtitle_ref=record.subtitle_ref,
            error_message=record.error_message,
        )

    def to_record(self) -> JobRecord:
        return JobRecord(
            id=self.id,
            owner_id=self.owner_id,
            status=self.status,
            title=self.title,
            original_file_name=self.original_file_name,
            format=self.format,
            resolution=self.resolution,
            options=self.options,
            original_size_bytes=self.original_size_bytes,
            size_bytes=self.size_bytes,
            duration_label=self.duration_label,
            submitted_at=_as_utc(self.submitted_at),
            completed_at=_as_utc(self.completed_at),
            cover_ref=self.cover_ref,
            processed_file_name=self.processed_file_name,
            share_link=self.share_link,
            thumbnail_set=self.thumbnail_set,
            subtitle_ref=self.subtitle_ref,
            error_message=self.error_message,
        )


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
