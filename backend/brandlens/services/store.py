"""
Persistence Store
Repository over one session: every entity, queryable by owner/time/status
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brandlens.config import get_settings
from brandlens.errors import PersistenceError
from brandlens.models import (
    Alert, AnalysisJob, EngineCorrelation, JobPhase, NotificationSetting, Prompt,
    PromptResult, SerpHistory, TrustSnapshot, TrustTrend, URLCitation,
    VerificationStatus, VisibilityHistory,
)
from brandlens.schemas import SerpSnapshot
from brandlens.adapters.parsing import normalize_domain
from .event_bus import ChangeEvent, EventBus, serialize_row

logger = logging.getLogger(__name__)

TERMINAL_PHASES = (JobPhase.COMPLETE, JobPhase.FAILED)


def row_to_dict(obj: Any) -> Dict[str, Any]:
    """Column values of an ORM row, JSON-safe"""
    return serialize_row({c.name: getattr(obj, c.name) for c in obj.__table__.columns})


def _union(existing: Optional[Iterable[str]], value: str) -> List[str]:
    items = list(existing or [])
    if value not in items:
        items.append(value)
    return items


class Store:
    """
    Persistence collaborator.

    Writes are staged on the session and become visible on commit(); change
    events for owner-scoped rows are published only after the commit
    succeeds. Database failures surface as PersistenceError.
    """

    def __init__(self, db: AsyncSession, events: Optional[EventBus] = None):
        self.db = db
        self.events = events
        self._pending_events: List[ChangeEvent] = []

    # ===== SESSION =====

    async def commit(self) -> None:
        """Commit staged writes, then publish their change events"""
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._pending_events.clear()
            raise PersistenceError(f"Commit failed: {e}") from e

        events, self._pending_events = self._pending_events, []
        if self.events is None:
            return
        for event in events:
            # Best effort: the commit stands even if the bus is down
            try:
                await self.events.publish(event)
            except Exception as e:
                logger.warning(f"Dropped {event.op} event for {event.entity}: {e}")

    async def discard(self, obj: Any = None) -> None:
        """Drop staged writes and reload obj from committed state"""
        try:
            await self.db.rollback()
            if obj is not None:
                await self.db.refresh(obj)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Rollback failed: {e}") from e
        finally:
            self._pending_events.clear()

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self._pending_events.clear()
            raise PersistenceError(f"Write failed: {e}") from e

    async def _scalars(self, stmt) -> list:
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Query failed: {e}") from e
        return list(result.scalars().all())

    async def _scalar(self, stmt):
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Query failed: {e}") from e
        return result.scalar_one_or_none()

    def _stage_event(self, obj: Any, op: str) -> None:
        owner_id = getattr(obj, "user_id", None)
        if owner_id is None:
            return
        self._pending_events.append(ChangeEvent(
            owner_id=str(owner_id),
            entity=obj.__tablename__,
            op=op,
            row=row_to_dict(obj),
        ))

    async def _add(self, obj: Any) -> Any:
        self.db.add(obj)
        await self._flush()
        self._stage_event(obj, "insert")
        return obj

    async def _touch(self, obj: Any) -> Any:
        await self._flush()
        self._stage_event(obj, "update")
        return obj

    # ===== PROMPTS =====

    async def create_prompt(self, owner_id: UUID, **fields) -> Prompt:
        return await self._add(Prompt(user_id=owner_id, **fields))

    async def get_prompt(self, prompt_id: UUID, owner_id: Optional[UUID] = None) -> Optional[Prompt]:
        stmt = select(Prompt).where(Prompt.id == prompt_id)
        if owner_id is not None:
            stmt = stmt.where(Prompt.user_id == owner_id)
        return await self._scalar(stmt)

    async def list_prompts(self, owner_id: Optional[UUID] = None, limit: Optional[int] = None) -> List[Prompt]:
        stmt = select(Prompt).order_by(Prompt.created_at, Prompt.id)
        if owner_id is not None:
            stmt = stmt.where(Prompt.user_id == owner_id)
        if limit:
            stmt = stmt.limit(limit)
        return await self._scalars(stmt)

    async def list_owner_ids(self) -> List[UUID]:
        return await self._scalars(select(Prompt.user_id).distinct().order_by(Prompt.user_id))

    async def delete_prompt(self, prompt_id: UUID, owner_id: UUID) -> bool:
        """Delete a prompt and everything recorded for it"""
        prompt = await self.get_prompt(prompt_id, owner_id)
        if prompt is None:
            return False

        try:
            for model in (PromptResult, VisibilityHistory, SerpHistory, AnalysisJob):
                await self.db.execute(delete(model).where(model.prompt_id == prompt_id))
            await self.db.delete(prompt)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(f"Delete failed: {e}") from e

        self._pending_events.append(ChangeEvent(
            owner_id=str(owner_id), entity=Prompt.__tablename__, op="delete", row={"id": str(prompt_id)},
        ))
        await self._flush()
        return True

    async def update_prompt_scores(
        self,
        prompt: Prompt,
        visibility_score: float,
        competitor_scores: Dict[str, float],
        sentiment=None,
    ) -> Prompt:
        """Overwrite the rolling snapshot; last writer wins"""
        prompt.visibility_score = visibility_score
        prompt.competitor_scores = dict(competitor_scores)
        prompt.last_sentiment = sentiment
        prompt.updated_at = datetime.utcnow()
        return await self._touch(prompt)

    # ===== ANALYSIS JOBS =====

    async def create_job(self, owner_id: UUID, prompt_id: UUID, model: str, persona: str) -> AnalysisJob:
        return await self._add(AnalysisJob(
            user_id=owner_id,
            prompt_id=prompt_id,
            model=model,
            persona=persona,
            phase=JobPhase.PENDING,
            retry_count=0,
        ))

    async def get_job(self, job_id: UUID, owner_id: Optional[UUID] = None) -> Optional[AnalysisJob]:
        stmt = select(AnalysisJob).where(AnalysisJob.id == job_id)
        if owner_id is not None:
            stmt = stmt.where(AnalysisJob.user_id == owner_id)
        return await self._scalar(stmt)

    async def list_jobs(
        self,
        owner_id: UUID,
        prompt_ids: Optional[List[UUID]] = None,
        phase: Optional[JobPhase] = None,
        limit: int = 100,
    ) -> List[AnalysisJob]:
        stmt = select(AnalysisJob).where(AnalysisJob.user_id == owner_id)
        if prompt_ids:
            stmt = stmt.where(AnalysisJob.prompt_id.in_(prompt_ids))
        if phase is not None:
            stmt = stmt.where(AnalysisJob.phase == phase)
        stmt = stmt.order_by(AnalysisJob.created_at.desc(), AnalysisJob.id).limit(limit)
        return await self._scalars(stmt)

    async def list_terminal_jobs(self, start: datetime, end: datetime) -> List[AnalysisJob]:
        """Jobs that reached complete/failed in [start, end)"""
        stmt = (
            select(AnalysisJob)
            .where(
                AnalysisJob.phase.in_(TERMINAL_PHASES),
                AnalysisJob.completed_at >= start,
                AnalysisJob.completed_at < end,
            )
            .order_by(AnalysisJob.completed_at, AnalysisJob.id)
        )
        return await self._scalars(stmt)

    async def save_job(self, job: AnalysisJob) -> AnalysisJob:
        job.updated_at = datetime.utcnow()
        return await self._touch(job)

    # ===== RESULTS & HISTORY =====

    async def add_result(self, owner_id: UUID, **fields) -> PromptResult:
        return await self._add(PromptResult(user_id=owner_id, **fields))

    async def list_results(
        self,
        start: datetime,
        end: datetime,
        owner_id: Optional[UUID] = None,
        prompt_id: Optional[UUID] = None,
    ) -> List[PromptResult]:
        stmt = select(PromptResult).where(
            PromptResult.created_at >= start,
            PromptResult.created_at < end,
        )
        if owner_id is not None:
            stmt = stmt.where(PromptResult.user_id == owner_id)
        if prompt_id is not None:
            stmt = stmt.where(PromptResult.prompt_id == prompt_id)
        return await self._scalars(stmt.order_by(PromptResult.created_at, PromptResult.id))

    async def list_results_for_jobs(self, job_ids: List[UUID]) -> List[PromptResult]:
        if not job_ids:
            return []
        stmt = select(PromptResult).where(PromptResult.job_id.in_(job_ids))
        return await self._scalars(stmt.order_by(PromptResult.created_at, PromptResult.id))

    async def add_visibility_history(
        self, owner_id: UUID, prompt_id: UUID, job_id: UUID, model: str, score: float
    ) -> VisibilityHistory:
        return await self._add(VisibilityHistory(
            user_id=owner_id,
            prompt_id=prompt_id,
            job_id=job_id,
            model=model,
            visibility_score=score,
        ))

    async def list_visibility_history(self, prompt_id: UUID, since: datetime) -> List[VisibilityHistory]:
        stmt = (
            select(VisibilityHistory)
            .where(VisibilityHistory.prompt_id == prompt_id, VisibilityHistory.recorded_at >= since)
            .order_by(VisibilityHistory.recorded_at, VisibilityHistory.id)
        )
        return await self._scalars(stmt)

    async def add_serp_history(
        self, owner_id: UUID, prompt_id: UUID, job_id: UUID, snapshot: SerpSnapshot
    ) -> SerpHistory:
        return await self._add(SerpHistory(
            user_id=owner_id,
            prompt_id=prompt_id,
            job_id=job_id,
            brand_in_results=snapshot.brand_in_results,
            position=snapshot.position,
            ai_overview=snapshot.ai_overview,
            top_results=[item.model_dump() for item in snapshot.top_results],
            competitor_positions=[item.model_dump() for item in snapshot.competitor_positions],
        ))

    # ===== CITATION LEDGER =====

    async def _get_citation(self, owner_id: UUID, url: str) -> Optional[URLCitation]:
        return await self._scalar(
            select(URLCitation).where(URLCitation.user_id == owner_id, URLCitation.url == url)
        )

    def _apply_sighting(self, citation: URLCitation, engine: str, prompt_id: UUID, claim_text: Optional[str]):
        citation.citation_count = (citation.citation_count or 0) + 1
        citation.engines = _union(citation.engines, engine)
        citation.prompt_ids = _union(citation.prompt_ids, str(prompt_id))
        citation.last_seen_at = datetime.utcnow()
        if claim_text:
            citation.claim_text = claim_text

    async def record_citation(
        self,
        owner_id: UUID,
        url: str,
        engine: str,
        prompt_id: UUID,
        claim_text: Optional[str] = None,
    ) -> URLCitation:
        """Upsert a sighting: bump the count and union engines and prompts"""
        citation = await self._get_citation(owner_id, url)
        if citation is not None:
            self._apply_sighting(citation, engine, prompt_id, claim_text)
            return await self._touch(citation)

        citation = URLCitation(
            user_id=owner_id,
            url=url,
            domain=normalize_domain(url),
            citation_count=1,
            engines=[engine],
            prompt_ids=[str(prompt_id)],
            claim_text=claim_text,
            verification_status=VerificationStatus.PENDING,
            trust_score=0.0,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(citation)
        except IntegrityError:
            # Another job recorded the URL first
            citation = await self._get_citation(owner_id, url)
            if citation is None:
                raise PersistenceError(f"Citation upsert failed for {url}")
            self._apply_sighting(citation, engine, prompt_id, claim_text)
            return await self._touch(citation)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Citation upsert failed: {e}") from e

        self._stage_event(citation, "insert")
        return citation

    async def list_citations(
        self,
        owner_id: UUID,
        domain: Optional[str] = None,
        status: Optional[VerificationStatus] = None,
        min_count: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[URLCitation]:
        stmt = select(URLCitation).where(URLCitation.user_id == owner_id)
        if domain:
            stmt = stmt.where(URLCitation.domain == domain.lower())
        if status is not None:
            stmt = stmt.where(URLCitation.verification_status == status)
        if min_count:
            stmt = stmt.where(URLCitation.citation_count >= min_count)
        stmt = stmt.order_by(URLCitation.citation_count.desc(), URLCitation.url)
        if limit:
            stmt = stmt.limit(limit)
        return await self._scalars(stmt)

    async def list_pending_citations(self, limit: int) -> List[URLCitation]:
        stmt = (
            select(URLCitation)
            .where(
                URLCitation.verification_status == VerificationStatus.PENDING,
                URLCitation.claim_text.is_not(None),
            )
            .order_by(URLCitation.first_seen_at, URLCitation.id)
            .limit(limit)
        )
        return await self._scalars(stmt)

    async def save_verification(
        self, citation: URLCitation, status: VerificationStatus, trust_score: float
    ) -> URLCitation:
        citation.verification_status = status
        citation.trust_score = trust_score
        citation.verified_at = datetime.utcnow()
        return await self._touch(citation)

    # ===== TRUST AGGREGATES =====

    async def upsert_trust_snapshot(self, engine: str, snapshot_date: date, **values) -> TrustSnapshot:
        """One row per (engine, day); recomputation overwrites"""
        snapshot = await self._scalar(
            select(TrustSnapshot).where(
                TrustSnapshot.engine == engine, TrustSnapshot.snapshot_date == snapshot_date
            )
        )
        if snapshot is None:
            snapshot = TrustSnapshot(engine=engine, snapshot_date=snapshot_date)
            self.db.add(snapshot)
        for key, value in values.items():
            setattr(snapshot, key, value)
        await self._flush()
        return snapshot

    async def list_trust_snapshots(
        self, engine: Optional[str] = None, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[TrustSnapshot]:
        stmt = select(TrustSnapshot)
        if engine:
            stmt = stmt.where(TrustSnapshot.engine == engine)
        if start:
            stmt = stmt.where(TrustSnapshot.snapshot_date >= start)
        if end:
            stmt = stmt.where(TrustSnapshot.snapshot_date <= end)
        return await self._scalars(stmt.order_by(TrustSnapshot.engine, TrustSnapshot.snapshot_date))

    async def has_snapshot_before(self, engine: str, day: date) -> bool:
        stmt = select(TrustSnapshot.id).where(
            TrustSnapshot.engine == engine, TrustSnapshot.snapshot_date < day
        ).limit(1)
        return await self._scalar(stmt) is not None

    async def list_snapshot_engines(self) -> List[str]:
        return await self._scalars(select(TrustSnapshot.engine).distinct().order_by(TrustSnapshot.engine))

    async def upsert_trust_trend(self, engine: str, window: str, as_of: date, **values) -> TrustTrend:
        """One row per (engine, window, as_of); recomputation overwrites"""
        trend = await self._scalar(
            select(TrustTrend).where(
                TrustTrend.engine == engine, TrustTrend.window == window, TrustTrend.as_of == as_of
            )
        )
        if trend is None:
            trend = TrustTrend(engine=engine, window=window, as_of=as_of)
            self.db.add(trend)
        for key, value in values.items():
            setattr(trend, key, value)
        await self._flush()
        return trend

    async def list_trust_trends(
        self, engine: Optional[str] = None, window: Optional[str] = None, as_of: Optional[date] = None
    ) -> List[TrustTrend]:
        """Trends as of a day, the latest computed day by default"""
        if as_of is None:
            as_of = await self._scalar(select(func.max(TrustTrend.as_of)))
            if as_of is None:
                return []
        stmt = select(TrustTrend).where(TrustTrend.as_of == as_of)
        if engine:
            stmt = stmt.where(TrustTrend.engine == engine)
        if window:
            stmt = stmt.where(TrustTrend.window == window)
        return await self._scalars(stmt.order_by(TrustTrend.engine, TrustTrend.window))

    async def upsert_engine_correlation(
        self, engine_a: str, engine_b: str, period_start: date, period_end: date, **values
    ) -> EngineCorrelation:
        """One row per (pair, period); recomputation overwrites"""
        correlation = await self._scalar(
            select(EngineCorrelation).where(
                EngineCorrelation.engine_a == engine_a,
                EngineCorrelation.engine_b == engine_b,
                EngineCorrelation.period_start == period_start,
                EngineCorrelation.period_end == period_end,
            )
        )
        if correlation is None:
            correlation = EngineCorrelation(
                engine_a=engine_a, engine_b=engine_b, period_start=period_start, period_end=period_end
            )
            self.db.add(correlation)
        for key, value in values.items():
            setattr(correlation, key, value)
        await self._flush()
        return correlation

    async def delete_engine_correlations(self, period_start: date, period_end: date, keep: Iterable[tuple]) -> None:
        """Drop pairs of a period that no longer share any query"""
        keep = set(keep)
        rows = await self._scalars(
            select(EngineCorrelation).where(
                EngineCorrelation.period_start == period_start,
                EngineCorrelation.period_end == period_end,
            )
        )
        for row in rows:
            if (row.engine_a, row.engine_b) not in keep:
                await self.db.delete(row)
        await self._flush()

    async def list_engine_correlations(
        self, period_start: Optional[date] = None, period_end: Optional[date] = None
    ) -> List[EngineCorrelation]:
        """Correlations of a period, the latest computed period by default"""
        if period_end is None:
            period_end = await self._scalar(select(func.max(EngineCorrelation.period_end)))
            if period_end is None:
                return []
        stmt = select(EngineCorrelation).where(EngineCorrelation.period_end == period_end)
        if period_start is not None:
            stmt = stmt.where(EngineCorrelation.period_start == period_start)
        return await self._scalars(stmt.order_by(EngineCorrelation.engine_a, EngineCorrelation.engine_b))

    # ===== NOTIFICATIONS =====

    async def get_notification_settings(self, owner_id: UUID) -> NotificationSetting:
        """Stored settings, or unsaved defaults"""
        settings = await self._scalar(
            select(NotificationSetting).where(NotificationSetting.user_id == owner_id)
        )
        if settings is None:
            settings = NotificationSetting(
                user_id=owner_id,
                visibility_threshold=get_settings().DEFAULT_VISIBILITY_THRESHOLD,
                email_enabled=True,
                visibility_drop_alert=True,
                competitor_overtake_alert=True,
                sentiment_shift_alert=True,
                daily_summary_enabled=False,
                weekly_report_enabled=True,
            )
        return settings

    async def update_notification_settings(self, owner_id: UUID, changes: Dict[str, Any]) -> NotificationSetting:
        settings = await self.get_notification_settings(owner_id)
        for key, value in changes.items():
            setattr(settings, key, value)
        if settings.id is None:
            return await self._add(settings)
        return await self._touch(settings)

    async def alert_exists(self, dedupe_key: str) -> bool:
        return await self._scalar(select(Alert.id).where(Alert.dedupe_key == dedupe_key)) is not None

    async def list_alerts(self, owner_id: UUID, prompt_id: Optional[UUID] = None) -> List[Alert]:
        stmt = select(Alert).where(Alert.user_id == owner_id)
        if prompt_id is not None:
            stmt = stmt.where(Alert.prompt_id == prompt_id)
        return await self._scalars(stmt.order_by(Alert.created_at, Alert.id))

    async def add_alert(self, owner_id: UUID, **fields) -> Alert:
        return await self._add(Alert(user_id=owner_id, **fields))

    async def mark_alert_delivered(self, alert: Alert) -> Alert:
        alert.delivered = True
        return await self._touch(alert)
