"""
brandlens Database Models
PostgreSQL with SQLAlchemy ORM (SQLite-compatible column types)
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Date,
    ForeignKey, Enum, JSON, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class JobPhase(str, PyEnum):
    PENDING = "pending"
    SCRAPING = "scraping"
    THINKING = "thinking"
    JUDGING = "judging"
    COMPLETE = "complete"
    FAILED = "failed"


class SentimentPolarity(str, PyEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class VerificationStatus(str, PyEnum):
    PENDING = "pending"
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    HALLUCINATED = "hallucinated"


class TrendDirection(str, PyEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class AlertType(str, PyEnum):
    VISIBILITY_DROP = "visibility_drop"
    COMPETITOR_OVERTAKE = "competitor_overtake"
    SENTIMENT_SHIFT = "sentiment_shift"


# ============================================================================
# PROMPTS & ANALYSIS
# ============================================================================

class Prompt(Base):
    """A tracked prompt and its last known visibility"""
    __tablename__ = "prompts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    text = Column(Text, nullable=False)
    brand_name = Column(String(255), nullable=False)
    brand_domain = Column(String(255))
    competitors = Column(JSONType, default=list)  # competitor names

    country = Column(String(10), default="us")
    category = Column(String(100))

    # Rolling snapshot, history lives in visibility_history
    visibility_score = Column(Float)
    competitor_scores = Column(JSONType, default=dict)  # {name: score}
    last_sentiment = Column(Enum(SentimentPolarity))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AnalysisJob(Base):
    """One prompt run against one engine and persona"""
    __tablename__ = "analysis_jobs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False)

    model = Column(String(50), nullable=False)  # engine display name, e.g. "ChatGPT"
    persona = Column(String(50), default="general")
    phase = Column(Enum(JobPhase), nullable=False, default=JobPhase.PENDING)

    brand_mentioned = Column(Boolean)
    sentiment = Column(Enum(SentimentPolarity))
    accuracy = Column(Float)
    reasoning = Column(Text)
    visibility_score = Column(Float)
    retry_count = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime)  # set iff phase is complete or failed

    __table_args__ = (
        Index('idx_job_user_phase', 'user_id', 'phase'),
        Index('idx_job_prompt', 'prompt_id'),
    )


class PromptResult(Base):
    """Immutable outcome of a completed analysis job"""
    __tablename__ = "prompt_results"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(Uuid, ForeignKey("analysis_jobs.id", ondelete="SET NULL"))

    model = Column(String(50), nullable=False)
    persona = Column(String(50))
    brand_mentioned = Column(Boolean, nullable=False)
    sentiment = Column(Enum(SentimentPolarity))
    rank = Column(Integer)  # brand position among mentioned entities
    visibility_score = Column(Float, nullable=False)

    response_snippet = Column(Text)
    citations = Column(JSONType, default=list)  # [{title, url, snippet, position}]
    competitors_mentioned = Column(JSONType, default=list)
    competitor_scores = Column(JSONType, default=dict)
    recommendations = Column(JSONType, default=list)
    score_breakdown = Column(JSONType, default=dict)
    serp_available = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_result_prompt_date', 'prompt_id', 'created_at'),
        Index('idx_result_model_date', 'model', 'created_at'),
    )


# ============================================================================
# CITATION LEDGER
# ============================================================================

class URLCitation(Base):
    """A URL cited by one or more engines, with its verification state"""
    __tablename__ = "url_citations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False)

    url = Column(Text, nullable=False)
    domain = Column(String(255), nullable=False, index=True)
    citation_count = Column(Integer, nullable=False, default=1)
    engines = Column(JSONType, default=list)
    prompt_ids = Column(JSONType, default=list)
    claim_text = Column(Text)  # latest answer text the URL was cited for

    verification_status = Column(
        Enum(VerificationStatus), nullable=False, default=VerificationStatus.PENDING
    )
    trust_score = Column(Float, default=0.0)
    verified_at = Column(DateTime)

    first_seen_at = Column(DateTime, default=datetime.utcnow)
    last_seen_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'url', name='uq_url_citation_user_url'),
        Index('idx_url_citation_status', 'verification_status'),
    )


# ============================================================================
# TIME SERIES
# ============================================================================

class VisibilityHistory(Base):
    """Append-only visibility score per analysis run"""
    __tablename__ = "visibility_history"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(Uuid)
    model = Column(String(50))
    visibility_score = Column(Float, nullable=False)
    recorded_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_visibility_prompt_date', 'prompt_id', 'recorded_at'),
    )


class SerpHistory(Base):
    """Append-only search results standing per analysis run"""
    __tablename__ = "serp_history"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False)
    prompt_id = Column(Uuid, ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False)
    job_id = Column(Uuid)

    brand_in_results = Column(Boolean, nullable=False, default=False)
    position = Column(Integer)
    ai_overview = Column(Text)
    top_results = Column(JSONType, default=list)  # [{title, url, snippet, position}]
    competitor_positions = Column(JSONType, default=list)  # [{name, position}]
    recorded_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_serp_prompt_date', 'prompt_id', 'recorded_at'),
    )


# ============================================================================
# TRUST AGGREGATES
# ============================================================================

class TrustSnapshot(Base):
    """Per-engine, per-day authority aggregate"""
    __tablename__ = "trust_snapshots"

    id = Column(Uuid, primary_key=True, default=uuid4)
    engine = Column(String(50), nullable=False)
    snapshot_date = Column(Date, nullable=False)

    reliability_score = Column(Float, nullable=False, default=0.0)
    citation_completeness = Column(Float, nullable=False, default=0.0)
    freshness_index = Column(Float, nullable=False, default=0.0)
    authority_weight = Column(Float, nullable=False, default=0.0)
    query_volume = Column(Integer, nullable=False, default=0)
    success_rate = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        UniqueConstraint('engine', 'snapshot_date', name='uq_trust_snapshot_engine_date'),
    )


class TrustTrend(Base):
    """Derived authority trend for an engine over a window"""
    __tablename__ = "trust_trends"

    id = Column(Uuid, primary_key=True, default=uuid4)
    engine = Column(String(50), nullable=False)
    window = Column(String(10), nullable=False)  # 7d, 30d, 90d
    as_of = Column(Date, nullable=False)

    authority_delta = Column(Float, nullable=False)
    direction = Column(Enum(TrendDirection), nullable=False)
    reliability_delta = Column(Float, nullable=False)
    volatility = Column(Float, nullable=False)
    outage_count = Column(Integer, nullable=False, default=0)
    outage_minutes = Column(Integer, nullable=False, default=0)
    current_authority = Column(Float, nullable=False)
    projected_authority = Column(Float)
    data_points = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('engine', 'window', 'as_of', name='uq_trust_trend_key'),
    )


class EngineCorrelation(Base):
    """Pairwise agreement between two engines over a period"""
    __tablename__ = "engine_correlations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    engine_a = Column(String(50), nullable=False)  # engine_a < engine_b
    engine_b = Column(String(50), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)

    correlation = Column(Float, nullable=False)
    shared_queries = Column(Integer, nullable=False)
    disagreement_rate = Column(Float, nullable=False)
    win_rate_a = Column(Float, nullable=False)
    win_rate_b = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint('engine_a', 'engine_b', 'period_start', 'period_end', name='uq_engine_correlation_key'),
    )


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationSetting(Base):
    """Per-user alert thresholds and toggles"""
    __tablename__ = "notification_settings"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False, unique=True)

    visibility_threshold = Column(Float, nullable=False, default=70)
    email_enabled = Column(Boolean, nullable=False, default=True)
    visibility_drop_alert = Column(Boolean, nullable=False, default=True)
    competitor_overtake_alert = Column(Boolean, nullable=False, default=True)
    sentiment_shift_alert = Column(Boolean, nullable=False, default=True)
    daily_summary_enabled = Column(Boolean, nullable=False, default=False)
    weekly_report_enabled = Column(Boolean, nullable=False, default=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Alert(Base):
    """An alert handed to the notification collaborator"""
    __tablename__ = "alerts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    prompt_id = Column(Uuid)
    alert_type = Column(Enum(AlertType), nullable=False)
    dedupe_key = Column(String(255), nullable=False, unique=True)
    payload = Column(JSONType, default=dict)
    delivered = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
