import enum
import re
import uuid
from datetime import datetime, timezone
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mediajobs.core.errors import InvalidInput

BYTES_PER_MB = 1024 * 1024


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class VideoFormat(str, enum.Enum):
    MP4 = "mp4"
    AVI = "avi"
    MKV = "mkv"


class VideoResolution(str, enum.Enum):
    SD = "480p"
    HD = "720p"
    FULL_HD = "1080p"


FEATURE_LABELS = {
    "compression": "compression",
    "noise_reduction": "noise reduction",
    "subtitles": "subtitle generation",
    "thumbnails": "thumbnail generation",
}


class ProcessingOptions(BaseModel):
    """Independent feature flags requested for a job.

    An absent options bag and an all-false one mean the same thing.
    """

    model_config = ConfigDict(frozen=True)

    compression: bool = False
    noise_reduction: bool = False
    subtitles: bool = False
    thumbnails: bool = False

    @classmethod
    def coerce(cls, value: "ProcessingOptions | dict | None") -> "ProcessingOptions":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls(**value)

    def enabled_features(self) -> list[str]:
        """Human-readable labels of the enabled flags, in a stable order."""
        return [label for name, label in FEATURE_LABELS.items() if getattr(self, name)]


def format_size(size_bytes: int) -> str:
    return f"{size_bytes / BYTES_PER_MB:.1f} MB"


def derive_title(file_name: str) -> str:
    """'product_demo-v2.mp4' -> 'product demo v2'"""
    stem = PurePath(file_name).name.split(".")[0]
    return re.sub(r"[_-]", " ", stem)


def slugify_title(title: str) -> str:
    return re.sub(r"\s+", "_", title.lower())


def new_job_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRecord(BaseModel):
    """A submitted asset and everything derived from processing it."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_job_id, frozen=True)
    owner_id: str = Field(frozen=True)
    original_file_name: str = Field(frozen=True)
    title: str = Field(default="", frozen=True)

    status: JobStatus = JobStatus.PENDING
    format: VideoFormat
    resolution: VideoResolution
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)

    original_size_bytes: int = Field(default=0, ge=0, frozen=True)
    size_bytes: int = Field(default=0, ge=0)
    duration_label: str = "00:00"

    submitted_at: datetime = Field(default_factory=_utcnow, frozen=True)
    completed_at: datetime | None = None

    cover_ref: str | None = None
    processed_file_name: str | None = None
    share_link: str | None = None
    thumbnail_set: list[str] | None = None
    subtitle_ref: str | None = None
    error_message: str | None = None

    def __init__(self, **data) -> None:
        if data.get("options") is None:
            data.pop("options", None)
        if not data.get("title") and data.get("original_file_name"):
            data["title"] = derive_title(data["original_file_name"])
        if "size_bytes" in data and "original_size_bytes" not in data:
            data["original_size_bytes"] = data["size_bytes"]
        if "original_size_bytes" in data and "size_bytes" not in data:
            data["size_bytes"] = data["original_size_bytes"]
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise InvalidInput(_first_error(e), job_id=data.get("id")) from e

    @field_validator("owner_id", "original_file_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def size_label(self) -> str:
        return format_size(self.size_bytes)

    def is_visible_to(self, caller) -> bool:
        return caller.is_admin or caller.id == self.owner_id


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"]) or "record"
    return f"{location}: {error['msg']}"
