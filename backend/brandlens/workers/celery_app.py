"""
Celery Application Configuration
Queue-based analysis jobs and periodic trust aggregation
"""

from celery import Celery
from celery.schedules import crontab
from kombu import Queue, Exchange

from brandlens.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "brandlens",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "brandlens.workers.runtime",
        "brandlens.workers.tasks.analysis_tasks",
        "brandlens.workers.tasks.scheduled_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,
    task_time_limit=600,
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,  # Fair distribution
    worker_concurrency=4,

    # Rate limiting
    task_default_rate_limit="10/m",

    # Queue configuration
    task_queues=(
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("analysis", Exchange("analysis"), routing_key="analysis"),
        Queue("aggregation", Exchange("aggregation"), routing_key="aggregation"),
        Queue("verification", Exchange("verification"), routing_key="verification"),
    ),

    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",

    # Route tasks to appropriate queues
    task_routes={
        "brandlens.workers.tasks.analysis_tasks.*": {"queue": "analysis"},
        "brandlens.workers.tasks.scheduled_tasks.run_scheduled_analysis": {"queue": "analysis"},
        "brandlens.workers.tasks.scheduled_tasks.verify_pending_citations": {"queue": "verification"},
        "brandlens.workers.tasks.scheduled_tasks.*": {"queue": "aggregation"},
    },

    # Beat scheduler for periodic tasks
    beat_schedule={
        "run-scheduled-analysis": {
            "task": "brandlens.workers.tasks.scheduled_tasks.run_scheduled_analysis",
            "schedule": 3600.0,  # Every hour
        },
        "build-trust-snapshots": {
            "task": "brandlens.workers.tasks.scheduled_tasks.build_trust_snapshots",
            "schedule": crontab(hour=0, minute=15),
        },
        "compute-trust-trends": {
            "task": "brandlens.workers.tasks.scheduled_tasks.compute_trust_trends",
            "schedule": crontab(hour=0, minute=45),
        },
        "compute-engine-correlations": {
            "task": "brandlens.workers.tasks.scheduled_tasks.compute_engine_correlations",
            "schedule": crontab(hour=1, minute=15),
        },
        "verify-citations": {
            "task": "brandlens.workers.tasks.scheduled_tasks.verify_pending_citations",
            "schedule": 21600.0,  # Every 6 hours
        },
    },
)
