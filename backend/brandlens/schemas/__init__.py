"""
Pydantic Schemas for API Request/Response validation
"""

from .serp import (
    SearchResultItem,
    CompetitorPosition,
    SerpSnapshot,
)
from .analysis import (
    PromptCreate,
    PromptResponse,
    JobSubmit,
    AnalyzePromptRequest,
    JobResponse,
    JobStats,
    PromptResultResponse,
    VisibilityTrendResponse,
)
from .citation import (
    VerifyCitationRequest,
    VerificationResponse,
    URLCitationResponse,
    DomainHeatmapEntry,
    VerificationStats,
)
from .trust import (
    TrustSnapshotResponse,
    TrustTrendResponse,
    EngineCorrelationResponse,
    TrustSummary,
)
from .settings import (
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
)

__all__ = [
    # SERP
    "SearchResultItem",
    "CompetitorPosition",
    "SerpSnapshot",
    # Analysis
    "PromptCreate",
    "PromptResponse",
    "JobSubmit",
    "AnalyzePromptRequest",
    "JobResponse",
    "JobStats",
    "PromptResultResponse",
    "VisibilityTrendResponse",
    # Citations
    "VerifyCitationRequest",
    "VerificationResponse",
    "URLCitationResponse",
    "DomainHeatmapEntry",
    "VerificationStats",
    # Trust
    "TrustSnapshotResponse",
    "TrustTrendResponse",
    "EngineCorrelationResponse",
    "TrustSummary",
    # Settings
    "NotificationSettingsResponse",
    "NotificationSettingsUpdate",
]
