"""作业查询接口：查询单个作业、列出全部作业与清理终态作业。"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from verifyhub.api.v1.schemas import ClearJobsResponse, JobListResponse, JobResponse
from verifyhub.application.container import get_job_manager
from verifyhub.application.job_manager import JobManager

router = APIRouter()
logger = logging.getLogger(__name__)


def _service() -> JobManager:
    return get_job_manager()


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(manager: JobManager = Depends(_service)) -> JobListResponse:
    """按创建顺序返回全部作业。"""
    jobs = manager.get_all_jobs()
    return JobListResponse(
        jobs=[JobResponse.from_job(job) for job in jobs],
        total=len(jobs),
        active=sum(1 for job in jobs if not job.is_terminal),
    )


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str, manager: JobManager = Depends(_service)) -> JobResponse:
    """查询作业详情。"""
    job = manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"job not found: {job_id}")
    return JobResponse.from_job(job)


@router.delete("/jobs/completed", response_model=ClearJobsResponse)
def clear_completed_jobs(manager: JobManager = Depends(_service)) -> ClearJobsResponse:
    cleared = manager.clear_completed_jobs()
    logger.info("clear_completed_jobs succeeded: cleared=%s", cleared)
    return ClearJobsResponse(cleared=cleared, message=f"Cleared {cleared} finished jobs")
