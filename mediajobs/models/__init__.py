from .base import Base, create_db_engine, create_session_factory
from .identity import Identity, Role
from .job import (
    JobRecord,
    JobStatus,
    ProcessingOptions,
    VideoFormat,
    VideoResolution,
    format_size,
)
from .rows import JobRow

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "Identity",
    "Role",
    "JobRecord",
    "JobStatus",
    "ProcessingOptions",
    "VideoFormat",
    "VideoResolution",
    "format_size",
    "JobRow",
]
