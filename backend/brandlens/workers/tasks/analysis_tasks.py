"""
Analysis Job Tasks
Queue entry points that drive jobs through the phase state machine
"""

from typing import Dict, List, Optional
from uuid import UUID

from celery.utils.log import get_task_logger

from brandlens.adapters.llm import EngineRouter
from brandlens.errors import ValidationError
from brandlens.services.job_engine import JobEngine
from brandlens.services.serper_service import SerperService
from brandlens.services.store import Store
from brandlens.workers.celery_app import celery_app
from brandlens.workers.runtime import run_async, task_store

logger = get_task_logger(__name__)


def build_job_engine(store: Store) -> JobEngine:
    return JobEngine(store, EngineRouter(), search=SerperService())


async def _run_job(job_id: str) -> Dict:
    async with task_store() as store:
        job = await build_job_engine(store).run(UUID(job_id))
        return {
            "success": True,
            "job_id": str(job.id),
            "phase": job.phase.value,
            "visibility_score": job.visibility_score,
        }


@celery_app.task(
    name="brandlens.workers.tasks.analysis_tasks.run_analysis_job",
    acks_late=True,
)
def run_analysis_job(job_id: str) -> Dict:
    """
    Drive one pending job to complete or failed.

    Redelivery of a job that already finished is a no-op; one that was
    interrupted mid-phase is failed rather than resumed.
    """
    try:
        return run_async(_run_job(job_id))
    except Exception as e:
        logger.exception(f"Error running analysis job {job_id}: {e}")
        return {"error": str(e), "job_id": job_id}


async def _submit_for_prompt(prompt_id: str, engines: Optional[List[str]], persona: str) -> List[str]:
    async with task_store() as store:
        prompt = await store.get_prompt(UUID(prompt_id))
        if prompt is None:
            raise ValidationError(f"Prompt {prompt_id} not found", field="prompt_id")
        jobs = await build_job_engine(store).submit_many(prompt.user_id, prompt.id, engines, persona)
        return [str(job.id) for job in jobs]


@celery_app.task(
    name="brandlens.workers.tasks.analysis_tasks.analyze_prompt",
)
def analyze_prompt(prompt_id: str, engines: Optional[List[str]] = None, persona: str = "general") -> Dict:
    """Submit one job per engine for a prompt and queue each"""
    try:
        job_ids = run_async(_submit_for_prompt(prompt_id, engines, persona))
    except Exception as e:
        logger.exception(f"Error analyzing prompt {prompt_id}: {e}")
        return {"error": str(e), "prompt_id": prompt_id}

    for job_id in job_ids:
        run_analysis_job.delay(job_id)

    return {
        "success": True,
        "prompt_id": prompt_id,
        "jobs_queued": len(job_ids),
        "job_ids": job_ids,
    }
