"""
Scheduled Monitoring Run
Re-analyzes every tracked prompt, records the new score and raises alerts
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from brandlens.models import JobPhase, Prompt, SentimentPolarity
from .alert_evaluator import AlertPolicy, VisibilityState, evaluate_alerts
from .alert_service import AlertService
from .job_engine import JobEngine
from .store import Store

logger = logging.getLogger(__name__)

# Tie-break for the run's sentiment: the more negative reading wins
SENTIMENT_SEVERITY = {
    SentimentPolarity.NEGATIVE: 0,
    SentimentPolarity.NEUTRAL: 1,
    SentimentPolarity.POSITIVE: 2,
}


@dataclass
class RunSummary:
    """Counts for one scheduled pass"""
    prompts: int = 0
    jobs: int = 0
    failed_jobs: int = 0
    alerts: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "prompts": self.prompts,
            "jobs": self.jobs,
            "failed_jobs": self.failed_jobs,
            "alerts": self.alerts,
            "errors": list(self.errors),
        }


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 2)


def dominant_sentiment(values: List[Optional[SentimentPolarity]]) -> Optional[SentimentPolarity]:
    counts = Counter(SentimentPolarity(v) for v in values if v is not None)
    if not counts:
        return None
    return max(counts, key=lambda s: (counts[s], -SENTIMENT_SEVERITY[s]))


class MonitoringRun:
    """
    The scheduler collaborator's unit of work.

    Each prompt is run against every requested engine. The prompt's score is
    then set to the mean over this run's completed jobs, compared with the
    score it replaced, and any alert events are dispatched. A prompt that
    fails is logged and skipped; the batch continues.
    """

    def __init__(
        self,
        store: Store,
        job_engine: JobEngine,
        alert_service: AlertService,
        engines: Optional[List[str]] = None,
    ):
        self.store = store
        self.job_engine = job_engine
        self.alert_service = alert_service
        self.engines = engines or job_engine.settings.default_engines_list

    async def run_prompt(self, prompt: Prompt, summary: Optional[RunSummary] = None):
        """Analyze one prompt and dispatch the alerts its new score triggers"""
        summary = summary or RunSummary()
        prompt_id, owner_id = prompt.id, prompt.user_id
        previous = VisibilityState(
            own_score=prompt.visibility_score,
            competitor_scores=dict(prompt.competitor_scores or {}),
            sentiment=prompt.last_sentiment,
        )

        # A failed job rolls the session back, so work from ids and reload
        job_ids = [j.id for j in await self.job_engine.submit_many(owner_id, prompt_id, self.engines)]
        for job_id in job_ids:
            await self.job_engine.run(job_id)
        jobs = [await self.store.get_job(job_id) for job_id in job_ids]
        prompt = await self.store.get_prompt(prompt_id)
        summary.jobs += len(jobs)
        summary.failed_jobs += sum(1 for j in jobs if j.phase == JobPhase.FAILED)

        complete = [j for j in jobs if j.phase == JobPhase.COMPLETE]
        if not complete:
            logger.warning(f"No engine completed for prompt {prompt_id}; keeping previous score")
            return []

        results = await self.store.list_results_for_jobs([j.id for j in complete])
        competitor_values = defaultdict(list)
        for result in results:
            for name, score in (result.competitor_scores or {}).items():
                competitor_values[name].append(score)

        current = VisibilityState(
            own_score=_mean([j.visibility_score for j in complete]),
            competitor_scores={name: _mean(values) for name, values in competitor_values.items()},
            sentiment=dominant_sentiment([j.sentiment for j in complete]),
        )
        await self.store.update_prompt_scores(
            prompt, current.own_score, current.competitor_scores, current.sentiment
        )
        await self.store.commit()

        setting = await self.store.get_notification_settings(prompt.user_id)
        events = evaluate_alerts(
            prompt.brand_name, prompt.text, previous, current, AlertPolicy.from_setting(setting)
        )
        alerts = await self.alert_service.dispatch(prompt.user_id, prompt.id, events, setting)
        summary.alerts += len(alerts)
        return alerts

    async def run_all(self) -> RunSummary:
        """Every owner, every tracked prompt"""
        summary = RunSummary()
        for owner_id in await self.store.list_owner_ids():
            prompt_ids = [p.id for p in await self.store.list_prompts(owner_id)]
            for prompt_id in prompt_ids:
                summary.prompts += 1
                try:
                    prompt = await self.store.get_prompt(prompt_id)
                    if prompt is None:
                        continue
                    await self.run_prompt(prompt, summary)
                except Exception as e:
                    logger.warning(f"Scheduled analysis failed for prompt {prompt_id}: {e}")
                    summary.errors.append(f"{prompt_id}: {e}")
                    await self.store.discard()
        logger.info(
            f"Scheduled analysis: {summary.prompts} prompts, {summary.jobs} jobs, "
            f"{summary.failed_jobs} failed, {summary.alerts} alerts"
        )
        return summary
