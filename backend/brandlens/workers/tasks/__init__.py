"""
Celery Tasks
"""

from .analysis_tasks import run_analysis_job, analyze_prompt
from .scheduled_tasks import (
    run_scheduled_analysis,
    build_trust_snapshots,
    compute_trust_trends,
    compute_engine_correlations,
    verify_pending_citations,
)

__all__ = [
    "run_analysis_job",
    "analyze_prompt",
    "run_scheduled_analysis",
    "build_trust_snapshots",
    "compute_trust_trends",
    "compute_engine_correlations",
    "verify_pending_citations",
]
