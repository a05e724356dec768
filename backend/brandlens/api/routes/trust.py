"""
Engine Trust Routes
Snapshots, authority trends and engine-pair correlations
"""

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from brandlens.api.dependencies import get_owner_id, get_store
from brandlens.config import TREND_WINDOWS
from brandlens.errors import ValidationError
from brandlens.schemas import (
    EngineCorrelationResponse, TrustSnapshotResponse, TrustSummary, TrustTrendResponse,
)
from brandlens.services.store import Store
from brandlens.services.trust_aggregator import TrustAggregator

router = APIRouter(dependencies=[Depends(get_owner_id)])


def _yesterday() -> date:
    return date.today() - timedelta(days=1)


def _check_window(window: Optional[str]) -> None:
    if window is not None and window not in TREND_WINDOWS:
        raise ValidationError(f"window must be one of {list(TREND_WINDOWS)}", field="window")


@router.get("/snapshots", response_model=List[TrustSnapshotResponse])
async def list_snapshots(
    engine: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    store: Store = Depends(get_store),
):
    return await store.list_trust_snapshots(engine, start, end)


@router.post("/snapshots/rebuild", response_model=List[TrustSnapshotResponse])
async def rebuild_snapshots(
    day: Optional[date] = Query(None),
    store: Store = Depends(get_store),
):
    """Recompute per-engine snapshots for a day (yesterday by default)"""
    return await TrustAggregator(store).build_daily_snapshots(day or _yesterday())


@router.get("/trends", response_model=List[TrustTrendResponse])
async def list_trends(
    engine: Optional[str] = Query(None),
    window: Optional[str] = Query(None),
    as_of: Optional[date] = Query(None),
    store: Store = Depends(get_store),
):
    """Trends as of a day, the latest computed day by default"""
    _check_window(window)
    return await store.list_trust_trends(engine, window, as_of)


@router.post("/trends/recompute", response_model=List[TrustTrendResponse])
async def recompute_trends(
    as_of: Optional[date] = Query(None),
    store: Store = Depends(get_store),
):
    return await TrustAggregator(store).calculate_trust_trends(as_of or _yesterday())


@router.get("/correlations", response_model=List[EngineCorrelationResponse])
async def list_correlations(
    period_start: Optional[date] = Query(None),
    period_end: Optional[date] = Query(None),
    store: Store = Depends(get_store),
):
    return await store.list_engine_correlations(period_start, period_end)


@router.post("/correlations/recompute", response_model=List[EngineCorrelationResponse])
async def recompute_correlations(
    period_end: Optional[date] = Query(None),
    days: int = Query(30, ge=1, le=365),
    store: Store = Depends(get_store),
):
    """Pairwise engine agreement over the trailing period"""
    end = period_end or _yesterday()
    return await TrustAggregator(store).compute_correlations(end - timedelta(days=days - 1), end)


@router.get("/summary", response_model=TrustSummary)
async def get_summary(
    window: str = Query("7d"),
    as_of: Optional[date] = Query(None),
    store: Store = Depends(get_store),
):
    """Improving, declining and stable engine counts"""
    _check_window(window)
    return await TrustAggregator(store).trust_summary(window, as_of)
