"""
Business Logic Services
"""

from .alert_evaluator import AlertEvent, AlertPolicy, VisibilityState, evaluate_alerts
from .alert_service import AlertService, LoggingNotifier, Notifier, WebhookNotifier, create_notifier
from .citation_verifier import CitationVerifier, VerificationResult, claim_similarity, hallucination_risk
from .event_bus import ChangeEvent, EventBus, LocalEventBus, LocalView, RedisEventBus, create_event_bus
from .heatmap_builder import build_heatmap, domains_by_engine, top_domains, verification_stats
from .job_engine import JobEngine, PhaseTransitionError, advance_phase, summarize_jobs
from .monitoring import MonitoringRun, RunSummary
from .page_fetcher import PageContentFetcher
from .scoring_engine import ScoringEngine, ScoringPolicy
from .serper_service import SerperService
from .store import Store
from .trust_aggregator import TrustAggregator, compute_visibility_trend

__all__ = [
    "AlertEvent",
    "AlertPolicy",
    "VisibilityState",
    "evaluate_alerts",
    "AlertService",
    "LoggingNotifier",
    "Notifier",
    "WebhookNotifier",
    "create_notifier",
    "CitationVerifier",
    "VerificationResult",
    "claim_similarity",
    "hallucination_risk",
    "ChangeEvent",
    "EventBus",
    "LocalEventBus",
    "LocalView",
    "RedisEventBus",
    "create_event_bus",
    "build_heatmap",
    "domains_by_engine",
    "top_domains",
    "verification_stats",
    "JobEngine",
    "PhaseTransitionError",
    "advance_phase",
    "summarize_jobs",
    "MonitoringRun",
    "RunSummary",
    "PageContentFetcher",
    "ScoringEngine",
    "ScoringPolicy",
    "SerperService",
    "Store",
    "TrustAggregator",
    "compute_visibility_trend",
]
