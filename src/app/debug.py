"""
Debug endpoints for background jobs.

Mounted by main only in development.
"""

from fastapi import APIRouter, HTTPException, status

from app.core.scheduler import list_registered_jobs, trigger_job_manually

debug_router = APIRouter(prefix="/debug", tags=["Debug"])


@debug_router.get("/jobs")
async def list_jobs():
    """List registered background jobs and their next run time."""
    return {"jobs": list_registered_jobs()}


@debug_router.post("/jobs/{job_id}/trigger")
async def trigger_job(job_id: str):
    """
    Run a background job now.

    Available jobs: roster_refresh_cache, membership_receipts_sweep
    """
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "UNKNOWN_JOB", "message": str(e)},
        ) from e
