"""Endpoints for triggering lifecycle jobs by hand."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.deps import get_lifecycle_jobs
from src.auth.jwt import require_admin
from src.jobs.lifecycle import LifecycleJobs
from src.schemas.job import JobResultRead
from src.services.limits import check_rate_limit


router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/cleanup", response_model=JobResultRead)
async def cleanup_stale_assignments(
    merchant_id: Optional[str] = None,
    auth=Depends(require_admin),
    jobs: LifecycleJobs = Depends(get_lifecycle_jobs),
):
    await check_rate_limit(auth["user_id"], action="jobs")
    return await jobs.manual_cleanup(merchant_id=merchant_id)


@router.post("/{job_name}/run", response_model=JobResultRead)
async def run_job(
    job_name: str,
    auth=Depends(require_admin),
    jobs: LifecycleJobs = Depends(get_lifecycle_jobs),
):
    await check_rate_limit(auth["user_id"], action="jobs")
    if job_name not in jobs.jobs:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown job {job_name}",
        )
    return await jobs.run(job_name)
