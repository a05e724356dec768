"""
Trust Aggregator
Daily engine snapshots, authority trends, engine-pair correlations and
prompt visibility trends, all recomputed from stored history
"""

import logging
import math
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from brandlens.config import Settings, TREND_WINDOWS, get_settings
from brandlens.errors import ValidationError, note_inconsistency
from brandlens.models import (
    EngineCorrelation, JobPhase, TrendDirection, TrustSnapshot, TrustTrend, VisibilityHistory,
)
from brandlens.schemas import TrustSummary, VisibilityTrendResponse
from .store import Store

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


# ===== PURE HELPERS =====

def classify_direction(delta: float, epsilon: float) -> TrendDirection:
    """Dead-band classification: |delta| < epsilon is stable"""
    if abs(delta) < epsilon:
        return TrendDirection.STABLE
    return TrendDirection.IMPROVING if delta > 0 else TrendDirection.DECLINING


def population_stddev(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))


def least_squares_slope(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Slope of the best-fit line, None when x has no spread"""
    n = len(xs)
    if n < 2:
        return None
    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    denominator = sum((x - mean_x) ** 2 for x in xs)
    if denominator == 0:
        return None
    return sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys)) / denominator


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation; 0.0 when either series is constant"""
    n = len(xs)
    if n < 2:
        return 0.0
    mean_x = sum(xs) / n
    mean_y = sum(ys) / n
    cov = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    var_x = sum((x - mean_x) ** 2 for x in xs)
    var_y = sum((y - mean_y) ** 2 for y in ys)
    if var_x == 0 or var_y == 0:
        return 0.0
    return cov / math.sqrt(var_x * var_y)


def detect_outages(
    observed: Sequence[date],
    as_of: date,
    grace_minutes: int,
    window_start: Optional[date] = None,
) -> Tuple[int, int]:
    """
    Gaps between observed snapshot days, and from the last one to as_of.
    With window_start, the days from it up to the first observed day are
    a gap too.

    Each run of missing days is one gap of missing_days * 1440 minutes; a
    gap longer than the grace period is an outage of (minutes - grace).
    """
    days = sorted(set(observed))
    if not days:
        return 0, 0

    gaps = []
    if window_start is not None and days[0] > window_start:
        gaps.append((days[0] - window_start).days)
    gaps += [(later - earlier).days - 1 for earlier, later in zip(days, days[1:])]
    gaps.append((as_of - days[-1]).days)

    outage_count = 0
    outage_minutes = 0
    for missing in gaps:
        minutes = missing * MINUTES_PER_DAY
        if minutes > grace_minutes:
            outage_count += 1
            outage_minutes += minutes - grace_minutes
    return outage_count, outage_minutes


def authority_weight(reliability: float, completeness: float, freshness: float) -> float:
    """0.8 base plus weighted fractions, capped at 1.5"""
    return round(min(1.5, 0.8 + 0.4 * reliability + 0.2 * completeness + 0.1 * freshness), 4)


@dataclass
class TrendValues:
    """A computed trend before it is written"""
    authority_delta: float
    direction: TrendDirection
    reliability_delta: float
    volatility: float
    outage_count: int
    outage_minutes: int
    current_authority: float
    projected_authority: Optional[float]
    data_points: int

    def as_columns(self) -> Dict:
        return asdict(self)


def compute_trend_values(
    snapshots: Sequence[TrustSnapshot],
    as_of: date,
    epsilon: float,
    grace_minutes: int,
    projection_days: int,
    window_start: Optional[date] = None,
) -> Optional[TrendValues]:
    """
    Trend over snapshots already restricted to the window.
    window_start is given when the engine was tracked before the window,
    so missing leading days count as an outage.
    """
    snapshots = sorted(snapshots, key=lambda s: s.snapshot_date)
    if not snapshots:
        return None

    authority = [s.authority_weight for s in snapshots]
    reliability = [s.reliability_score for s in snapshots]
    authority_delta = round(authority[-1] - authority[0], 4)

    outage_count, outage_minutes = detect_outages(
        [s.snapshot_date for s in snapshots], as_of, grace_minutes, window_start=window_start
    )

    projected = None
    origin = snapshots[0].snapshot_date
    slope = least_squares_slope([(s.snapshot_date - origin).days for s in snapshots], authority)
    if slope is not None:
        projected = round(authority[-1] + slope * projection_days, 4)

    return TrendValues(
        authority_delta=authority_delta,
        direction=classify_direction(authority_delta, epsilon),
        reliability_delta=round(reliability[-1] - reliability[0], 4),
        volatility=round(population_stddev(authority), 4),
        outage_count=outage_count,
        outage_minutes=outage_minutes,
        current_authority=round(authority[-1], 4),
        projected_authority=projected,
        data_points=len(snapshots),
    )


def compute_visibility_trend(
    prompt_id: UUID,
    history: Sequence[VisibilityHistory],
    window_days: int,
    deadband: float = 5.0,
) -> VisibilityTrendResponse:
    """Delta between the first and last recorded score in the window"""
    scores = [
        h.visibility_score
        for h in sorted(history, key=lambda h: (h.recorded_at, str(h.id)))
        if h.visibility_score is not None
    ]
    if len(scores) < 2:
        return VisibilityTrendResponse(
            prompt_id=prompt_id,
            window_days=window_days,
            data_points=len(scores),
            first_score=scores[0] if scores else None,
            current_score=scores[-1] if scores else None,
            delta=0.0,
            direction=TrendDirection.STABLE,
        )

    delta = round(scores[-1] - scores[0], 2)
    if delta > deadband:
        direction = TrendDirection.IMPROVING
    elif delta < -deadband:
        direction = TrendDirection.DECLINING
    else:
        direction = TrendDirection.STABLE

    return VisibilityTrendResponse(
        prompt_id=prompt_id,
        window_days=window_days,
        data_points=len(scores),
        first_score=scores[0],
        current_score=scores[-1],
        delta=delta,
        direction=direction,
    )


def _day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


# ===== AGGREGATOR =====

class TrustAggregator:
    """
    Recomputes derived trust rows from stored history.

    Every pass overwrites the rows for its key (engine+day, engine+window+day,
    or pair+period), so re-running with unchanged inputs writes identical rows.
    """

    def __init__(self, store: Store, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    async def build_daily_snapshots(self, day: date) -> List[TrustSnapshot]:
        """One snapshot per engine from the day's terminal jobs and results"""
        start, end = _day_bounds(day)
        jobs = await self.store.list_terminal_jobs(start, end)
        results = await self.store.list_results(start, end)

        jobs_by_engine = defaultdict(list)
        for job in jobs:
            jobs_by_engine[job.model].append(job)
        results_by_engine = defaultdict(list)
        for result in results:
            results_by_engine[result.model].append(result)

        snapshots = []
        for engine in sorted(jobs_by_engine):
            engine_jobs = jobs_by_engine[engine]
            engine_results = results_by_engine.get(engine, [])

            complete = sum(1 for j in engine_jobs if j.phase == JobPhase.COMPLETE)
            success = complete / len(engine_jobs)
            if engine_results:
                completeness = sum(1 for r in engine_results if r.citations) / len(engine_results)
                freshness = sum(1 for r in engine_results if r.serp_available) / len(engine_results)
            else:
                completeness = freshness = 0.0

            snapshots.append(await self.store.upsert_trust_snapshot(
                engine,
                day,
                reliability_score=round(success * 100, 2),
                citation_completeness=round(completeness * 100, 2),
                freshness_index=round(freshness * 100, 2),
                authority_weight=authority_weight(success, completeness, freshness),
                query_volume=len(engine_jobs),
                success_rate=round(success * 100, 2),
            ))

        await self.store.commit()
        logger.info(f"Built {len(snapshots)} trust snapshots for {day}")
        return snapshots

    async def compute_trust_trend(self, engine: str, window: str, as_of: date) -> Optional[TrustTrend]:
        """Authority trend of one engine over one window ending at as_of"""
        if window not in TREND_WINDOWS:
            raise ValidationError(f"Unknown window {window}", field="window")

        start = as_of - timedelta(days=TREND_WINDOWS[window] - 1)
        snapshots = await self.store.list_trust_snapshots(engine, start, as_of)
        tracked_before = await self.store.has_snapshot_before(engine, start)

        values = compute_trend_values(
            snapshots,
            as_of,
            epsilon=self.settings.TREND_EPSILON,
            grace_minutes=self.settings.OUTAGE_GRACE_MINUTES,
            projection_days=self.settings.TREND_PROJECTION_DAYS,
            window_start=start if tracked_before else None,
        )
        if values is None:
            return note_inconsistency(f"No trust snapshots for {engine} in {window} ending {as_of}", None)

        return await self.store.upsert_trust_trend(engine, window, as_of, **values.as_columns())

    async def calculate_trust_trends(self, as_of: Optional[date] = None) -> List[TrustTrend]:
        """Trends for every engine with snapshots, for every window"""
        as_of = as_of or date.today()
        trends = []
        for engine in await self.store.list_snapshot_engines():
            for window in TREND_WINDOWS:
                trend = await self.compute_trust_trend(engine, window, as_of)
                if trend is not None:
                    trends.append(trend)
        await self.store.commit()
        logger.info(f"Computed {len(trends)} trust trends as of {as_of}")
        return trends

    async def compute_correlations(self, period_start: date, period_end: date) -> List[EngineCorrelation]:
        """
        Pairwise agreement between engines over [period_start, period_end].

        Each engine contributes its latest result per prompt. Pairs with no
        shared prompt get no row, and any stale row for them is removed.
        """
        start, _ = _day_bounds(period_start)
        _, end = _day_bounds(period_end)
        results = await self.store.list_results(start, end)

        latest: Dict[str, Dict] = defaultdict(dict)
        for result in results:
            latest[result.model][result.prompt_id] = result

        rows = []
        for engine_a, engine_b in combinations(sorted(latest), 2):
            shared = sorted(set(latest[engine_a]) & set(latest[engine_b]), key=str)
            if not shared:
                continue

            a = [latest[engine_a][p] for p in shared]
            b = [latest[engine_b][p] for p in shared]

            disagreements = [(x, y) for x, y in zip(a, b) if bool(x.brand_mentioned) != bool(y.brand_mentioned)]
            if disagreements:
                win_a = sum(1 for x, _ in disagreements if x.brand_mentioned) / len(disagreements)
                win_b = sum(1 for _, y in disagreements if y.brand_mentioned) / len(disagreements)
            else:
                win_a = win_b = 0.5

            rows.append(await self.store.upsert_engine_correlation(
                engine_a,
                engine_b,
                period_start,
                period_end,
                correlation=round(pearson(
                    [x.visibility_score or 0.0 for x in a],
                    [y.visibility_score or 0.0 for y in b],
                ), 4),
                shared_queries=len(shared),
                disagreement_rate=round(len(disagreements) / len(shared), 4),
                win_rate_a=round(win_a, 4),
                win_rate_b=round(win_b, 4),
            ))

        await self.store.delete_engine_correlations(
            period_start, period_end, keep=[(r.engine_a, r.engine_b) for r in rows]
        )
        await self.store.commit()
        logger.info(f"Computed {len(rows)} engine correlations for {period_start}..{period_end}")
        return rows

    async def trust_summary(self, window: str = "7d", as_of: Optional[date] = None) -> TrustSummary:
        """Direction counts across engines with a one-line statement"""
        if window not in TREND_WINDOWS:
            raise ValidationError(f"Unknown window {window}", field="window")

        trends = await self.store.list_trust_trends(window=window, as_of=as_of)
        directions = {t.engine: TrendDirection(t.direction) for t in trends}
        improving = sorted(e for e, d in directions.items() if d == TrendDirection.IMPROVING)
        declining = sorted(e for e, d in directions.items() if d == TrendDirection.DECLINING)
        stable = len(directions) - len(improving) - len(declining)

        if not directions:
            statement = f"No engine trust data for the {window} window yet."
        elif not improving and not declining:
            statement = f"All {len(directions)} engines held steady over {window}."
        else:
            parts = []
            if improving:
                parts.append(f"{', '.join(improving)} gaining authority")
            if declining:
                parts.append(f"{', '.join(declining)} losing authority")
            statement = f"Over {window}: " + "; ".join(parts) + "."

        return TrustSummary(
            window=window,
            improving=len(improving),
            declining=len(declining),
            stable=stable,
            directions=directions,
            statement=statement,
        )

    async def visibility_trend(self, prompt_id: UUID, window_days: int = 7) -> VisibilityTrendResponse:
        since = datetime.utcnow() - timedelta(days=window_days)
        history = await self.store.list_visibility_history(prompt_id, since)
        return compute_visibility_trend(
            prompt_id, history, window_days, deadband=self.settings.VISIBILITY_TREND_DEADBAND
        )
