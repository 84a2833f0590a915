from fastapi import APIRouter

from mediajobs.api.dependencies import Lifecycle

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict:
    return {"status": "healthy", "service": "mediajobs"}


@router.get("/health/ready")
async def readiness_check(lifecycle: Lifecycle) -> dict:
    if lifecycle.store.dirty:
        return {"status": "degraded", "persistence": "write_failed"}
    return {"status": "ready", "persistence": "ok"}
