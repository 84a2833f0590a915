from .job import (
    FailureReport,
    JobListResponse,
    JobResponse,
    ProcessingOptionsPayload,
    ReprocessRequest,
    StatsResponse,
    SubmitRequest,
)

__all__ = [
    "FailureReport",
    "JobListResponse",
    "JobResponse",
    "ProcessingOptionsPayload",
    "ReprocessRequest",
    "StatsResponse",
    "SubmitRequest",
]
