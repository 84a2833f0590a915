from fastapi import APIRouter, Query, Response, status

from mediajobs.api.dependencies import CurrentIdentity, Lifecycle
from mediajobs.api.schemas import JobListResponse, JobResponse, ReprocessRequest, SubmitRequest
from mediajobs.models import JobStatus
from mediajobs.services.lifecycle import FileMeta
from mediajobs.services.store import JobFilter

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post(
    "",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a job",
    description="""
Registers an uploaded asset for processing.

**Process:**
1. Job is stored with status `pending`
2. After a short queue delay it moves to `processing`
3. Artifacts (share link, thumbnails, subtitles, compressed size) are attached on `completed`

**Supported formats:** `mp4`, `avi`, `mkv` at `480p`, `720p` or `1080p`.
    """,
)
async def submit_job(payload: SubmitRequest, caller: CurrentIdentity, lifecycle: Lifecycle) -> JobResponse:
    file_meta = FileMeta(
        file_name=payload.file_name,
        size_bytes=payload.size_bytes,
        content_type=payload.content_type,
        duration_label=payload.duration_label,
    )
    options = payload.options.model_dump() if payload.options else None
    record = lifecycle.submit(caller, file_meta, payload.format, payload.resolution, options)
    return JobResponse.from_record(record)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="Lists the caller's jobs, or every job for admins. Filter by `status` and free text `q`.",
)
async def list_jobs(
    caller: CurrentIdentity,
    lifecycle: Lifecycle,
    job_status: JobStatus | None = Query(None, alias="status", description="Status tab"),
    q: str | None = Query(None, description="Matches title, filename or owner id"),
) -> JobListResponse:
    records = lifecycle.list(caller, JobFilter(status=job_status, text=q))
    return JobListResponse(jobs=[JobResponse.from_record(r) for r in records], total=len(records))


@router.get("/{job_id}", response_model=JobResponse, summary="Job details")
async def get_job(job_id: str, caller: CurrentIdentity, lifecycle: Lifecycle) -> JobResponse:
    return JobResponse.from_record(lifecycle.get(caller, job_id))


@router.post(
    "/{job_id}/reprocess",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Reprocess a job",
    description="""
Runs a `completed` or `failed` job again with new output parameters.

Returns `409` while the job is still `pending` or `processing`.
    """,
)
async def reprocess_job(
    job_id: str, payload: ReprocessRequest, caller: CurrentIdentity, lifecycle: Lifecycle
) -> JobResponse:
    options = payload.options.model_dump() if payload.options else None
    record = lifecycle.reprocess(caller, job_id, payload.format, payload.resolution, options)
    return JobResponse.from_record(record)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a job")
async def delete_job(job_id: str, caller: CurrentIdentity, lifecycle: Lifecycle) -> Response:
    lifecycle.delete(caller, job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
