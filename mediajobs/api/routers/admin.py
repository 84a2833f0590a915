from dataclasses import asdict

from fastapi import APIRouter

from mediajobs.api.dependencies import CurrentIdentity, Lifecycle
from mediajobs.api.schemas import FailureReport, JobResponse, StatsResponse

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/stats", response_model=StatsResponse, summary="Job statistics")
async def get_stats(caller: CurrentIdentity, lifecycle: Lifecycle) -> StatsResponse:
    return StatsResponse(**asdict(lifecycle.stats(caller)))


@router.post(
    "/jobs/{job_id}/fail",
    response_model=JobResponse,
    summary="Report a processing failure",
    description="Moves a `processing` job to `failed`, e.g. when an external transcoder gives up.",
)
async def report_failure(
    job_id: str, payload: FailureReport, caller: CurrentIdentity, lifecycle: Lifecycle
) -> JobResponse:
    return JobResponse.from_record(lifecycle.report_failure(caller, job_id, payload.reason))
