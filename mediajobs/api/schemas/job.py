from datetime import datetime

from pydantic import BaseModel, Field

from mediajobs.models.job import JobRecord, JobStatus, VideoFormat, VideoResolution


class ProcessingOptionsPayload(BaseModel):
    compression: bool = False
    noise_reduction: bool = False
    subtitles: bool = False
    thumbnails: bool = False


class SubmitRequest(BaseModel):
    file_name: str
    size_bytes: int = Field(ge=0)
    content_type: str | None = None
    duration_label: str = "00:00"
    format: str = VideoFormat.MP4.value
    resolution: str = VideoResolution.HD.value
    options: ProcessingOptionsPayload | None = None


class ReprocessRequest(BaseModel):
    format: str
    resolution: str
    options: ProcessingOptionsPayload | None = None


class FailureReport(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class JobResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    original_file_name: str
    status: JobStatus
    format: VideoFormat
    resolution: VideoResolution
    options: ProcessingOptionsPayload
    size_bytes: int
    size: str
    duration: str
    submitted_at: datetime
    completed_at: datetime | None = None
    cover: str | None = None
    processed_file_name: str | None = None
    share_link: str | None = None
    thumbnails: list[str] | None = None
    subtitles_url: str | None = None
    error_message: str | None = None
    download_available: bool = False

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobResponse":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            title=record.title,
            original_file_name=record.original_file_name,
            status=record.status,
            format=record.format,
            resolution=record.resolution,
            options=ProcessingOptionsPayload(**record.options.model_dump()),
            size_bytes=record.size_bytes,
            size=record.size_label,
            duration=record.duration_label,
            submitted_at=record.submitted_at,
            completed_at=record.completed_at,
            cover=record.cover_ref,
            processed_file_name=record.processed_file_name,
            share_link=record.share_link,
            thumbnails=record.thumbnail_set,
            subtitles_url=record.subtitle_ref,
            error_message=record.error_message,
            download_available=record.status == JobStatus.COMPLETED and record.share_link is not None,
        )


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class StatsResponse(BaseModel):
    total: int
    pending: int
    processing: int
    completed: int
    failed: int
    owners: int
