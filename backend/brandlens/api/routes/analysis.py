"""
Analysis Job Routes
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from brandlens.api.dependencies import get_job_engine, get_owner_id, get_store
from brandlens.models import AnalysisJob, JobPhase
from brandlens.schemas import AnalyzePromptRequest, JobResponse, JobStats, JobSubmit
from brandlens.services.job_engine import JobEngine, summarize_jobs
from brandlens.services.store import Store

router = APIRouter()


def _enqueue(jobs: List[AnalysisJob]) -> None:
    """Hand pending jobs to the worker queue"""
    from brandlens.workers.tasks.analysis_tasks import run_analysis_job
    for job in jobs:
        run_analysis_job.delay(str(job.id))


@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def submit_job(
    data: JobSubmit,
    owner_id: UUID = Depends(get_owner_id),
    engine: JobEngine = Depends(get_job_engine),
):
    """
    Submit a prompt for analysis by one engine.

    Missing prompt or brand is rejected with 422 before any job exists.
    With run_inline the job is driven to a terminal phase before returning.
    """
    job = await engine.submit(owner_id, data.prompt_id, data.model, data.persona)
    if data.run_inline:
        return await engine.run(job.id)
    _enqueue([job])
    return job


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(
    prompt_id: Optional[List[UUID]] = Query(None),
    phase: Optional[JobPhase] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """List jobs, newest first"""
    return await store.list_jobs(owner_id, prompt_ids=prompt_id, phase=phase, limit=limit)


@router.get("/jobs/stats", response_model=JobStats)
async def get_job_stats(
    prompt_id: Optional[List[UUID]] = Query(None),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Wins, losses and in-flight counts"""
    jobs = await store.list_jobs(owner_id, prompt_ids=prompt_id, limit=10000)
    return summarize_jobs(jobs)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: UUID,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    job = await store.get_job(job_id, owner_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/jobs/{job_id}/run", response_model=JobResponse)
async def run_job(
    job_id: UUID,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
    engine: JobEngine = Depends(get_job_engine),
):
    """Drive a pending job now; terminal jobs are returned unchanged"""
    if await store.get_job(job_id, owner_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return await engine.run(job_id)


@router.post("/prompts/{prompt_id}/analyze", response_model=List[JobResponse], status_code=status.HTTP_201_CREATED)
async def analyze_prompt(
    prompt_id: UUID,
    data: AnalyzePromptRequest,
    owner_id: UUID = Depends(get_owner_id),
    engine: JobEngine = Depends(get_job_engine),
):
    """One job per engine (the default engines when none are given)"""
    jobs = await engine.submit_many(owner_id, prompt_id, data.engines, data.persona)
    if not data.run_inline:
        _enqueue(jobs)
        return jobs

    job_ids = [job.id for job in jobs]
    return [await engine.run(job_id) for job_id in job_ids]
