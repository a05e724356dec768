"""
Scheduled Tasks
Periodic analysis, trust aggregation and citation verification
"""

from datetime import date, datetime, timedelta
from typing import Dict, Optional

from celery.utils.log import get_task_logger

from brandlens.services.alert_service import AlertService
from brandlens.services.citation_verifier import CitationVerifier
from brandlens.services.monitoring import MonitoringRun
from brandlens.services.trust_aggregator import TrustAggregator
from brandlens.workers.celery_app import celery_app
from brandlens.workers.runtime import run_async, task_store
from brandlens.workers.tasks.analysis_tasks import build_job_engine

logger = get_task_logger(__name__)

CORRELATION_PERIOD_DAYS = 30


def _parse_day(day: Optional[str], default: date) -> date:
    return date.fromisoformat(day) if day else default


async def _scheduled_analysis() -> Dict:
    async with task_store() as store:
        run = MonitoringRun(store, build_job_engine(store), AlertService(store))
        summary = await run.run_all()
        return summary.to_dict()


@celery_app.task(
    name="brandlens.workers.tasks.scheduled_tasks.run_scheduled_analysis",
)
def run_scheduled_analysis() -> Dict:
    """
    Re-analyze every tracked prompt across the default engines.
    Runs hourly; a failing prompt is skipped and the batch continues.
    """
    try:
        summary = run_async(_scheduled_analysis())
        return {"success": True, "timestamp": datetime.utcnow().isoformat(), **summary}
    except Exception as e:
        logger.exception(f"Error in scheduled analysis: {e}")
        return {"error": str(e)}


async def _build_snapshots(day: date) -> int:
    async with task_store() as store:
        return len(await TrustAggregator(store).build_daily_snapshots(day))


@celery_app.task(
    name="brandlens.workers.tasks.scheduled_tasks.build_trust_snapshots",
)
def build_trust_snapshots(day: Optional[str] = None) -> Dict:
    """Daily per-engine snapshot; defaults to yesterday"""
    target = _parse_day(day, date.today() - timedelta(days=1))
    try:
        count = run_async(_build_snapshots(target))
        return {"success": True, "day": target.isoformat(), "snapshots": count}
    except Exception as e:
        logger.exception(f"Error building trust snapshots for {target}: {e}")
        return {"error": str(e)}


async def _compute_trends(as_of: date) -> int:
    async with task_store() as store:
        return len(await TrustAggregator(store).calculate_trust_trends(as_of))


@celery_app.task(
    name="brandlens.workers.tasks.scheduled_tasks.compute_trust_trends",
)
def compute_trust_trends(as_of: Optional[str] = None) -> Dict:
    """Trends for every engine and window, as of yesterday by default"""
    target = _parse_day(as_of, date.today() - timedelta(days=1))
    try:
        count = run_async(_compute_trends(target))
        return {"success": True, "as_of": target.isoformat(), "trends": count}
    except Exception as e:
        logger.exception(f"Error computing trust trends: {e}")
        return {"error": str(e)}


async def _compute_correlations(start: date, end: date) -> int:
    async with task_store() as store:
        return len(await TrustAggregator(store).compute_correlations(start, end))


@celery_app.task(
    name="brandlens.workers.tasks.scheduled_tasks.compute_engine_correlations",
)
def compute_engine_correlations(period_end: Optional[str] = None) -> Dict:
    """Engine-pair agreement over the trailing 30 days"""
    end = _parse_day(period_end, date.today() - timedelta(days=1))
    start = end - timedelta(days=CORRELATION_PERIOD_DAYS - 1)
    try:
        count = run_async(_compute_correlations(start, end))
        return {
            "success": True,
            "period_start": start.isoformat(),
            "period_end": end.isoformat(),
            "pairs": count,
        }
    except Exception as e:
        logger.exception(f"Error computing engine correlations: {e}")
        return {"error": str(e)}


async def _verify_pending(limit: Optional[int]) -> Dict:
    async with task_store() as store:
        results = await CitationVerifier().verify_pending(store, limit)
        counts: Dict[str, int] = {}
        for result in results:
            counts[result.status.value] = counts.get(result.status.value, 0) + 1
        return {"checked": len(results), "by_status": counts}


@celery_app.task(
    name="brandlens.workers.tasks.scheduled_tasks.verify_pending_citations",
)
def verify_pending_citations(limit: Optional[int] = None) -> Dict:
    """
    Verify a batch of pending ledger citations.
    Runs every 6 hours.
    """
    try:
        outcome = run_async(_verify_pending(limit))
        return {"success": True, **outcome}
    except Exception as e:
        logger.exception(f"Error verifying citations: {e}")
        return {"error": str(e)}
