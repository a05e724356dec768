"""
Analysis Job Engine
Drives one prompt through pending -> scraping -> thinking -> judging -> complete
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from brandlens.adapters.llm import (
    LLMAuthenticationError,
    LLMInvalidRequestError,
    LLMResponse,
)
from brandlens.adapters.parsing import (
    BrandMatcher,
    CitationExtractor,
    ExtractedCitation,
    SentimentAnalyzer,
)
from brandlens.config import Settings, get_settings
from brandlens.errors import BrandLensError, PersistenceError, UpstreamError, ValidationError
from brandlens.models import AnalysisJob, JobPhase, Prompt, SentimentPolarity
from brandlens.schemas import JobStats, SerpSnapshot
from .scoring_engine import ScoreBreakdown, ScoreInput, ScoringEngine, build_recommendations
from .serper_service import SerperService
from .store import Store, TERMINAL_PHASES

logger = logging.getLogger(__name__)


# ===== PHASE STATE MACHINE =====

PHASE_ORDER = [
    JobPhase.PENDING,
    JobPhase.SCRAPING,
    JobPhase.THINKING,
    JobPhase.JUDGING,
    JobPhase.COMPLETE,
]

ALLOWED_TRANSITIONS = {
    JobPhase.PENDING: {JobPhase.SCRAPING, JobPhase.FAILED},
    JobPhase.SCRAPING: {JobPhase.THINKING, JobPhase.FAILED},
    JobPhase.THINKING: {JobPhase.JUDGING, JobPhase.FAILED},
    JobPhase.JUDGING: {JobPhase.COMPLETE, JobPhase.FAILED},
    JobPhase.COMPLETE: set(),
    JobPhase.FAILED: set(),
}

# Confidence when no judge score is available, by sentiment
FALLBACK_ACCURACY = {
    SentimentPolarity.POSITIVE: 75.0,
    SentimentPolarity.NEGATIVE: 60.0,
    SentimentPolarity.NEUTRAL: 65.0,
}
NOT_MENTIONED_ACCURACY = 50.0


class PhaseTransitionError(BrandLensError):
    """A job was asked to skip, reorder or leave a terminal phase"""
    pass


def advance_phase(job: AnalysisJob, target: JobPhase) -> AnalysisJob:
    """Move a job to the next phase; completed_at is set iff terminal"""
    current = JobPhase(job.phase)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise PhaseTransitionError(f"Cannot move job {job.id} from {current.value} to {target.value}")

    job.phase = target
    if target in TERMINAL_PHASES:
        job.completed_at = datetime.utcnow()
    return job


def summarize_jobs(jobs: Iterable[AnalysisJob]) -> JobStats:
    """Wins are complete with a mention, losses complete without one"""
    jobs = list(jobs)
    complete = [j for j in jobs if j.phase == JobPhase.COMPLETE]
    return JobStats(
        total=len(jobs),
        wins=sum(1 for j in complete if j.brand_mentioned),
        losses=sum(1 for j in complete if not j.brand_mentioned),
        in_progress=sum(1 for j in jobs if j.phase not in TERMINAL_PHASES),
        failed=sum(1 for j in jobs if j.phase == JobPhase.FAILED),
    )


# ===== COLLABORATORS =====

class Answerer(Protocol):
    """Answering collaborator"""
    async def answer(
        self, prompt_text: str, engine: str, persona: str = "general", context: Optional[str] = None
    ) -> LLMResponse:
        ...


@dataclass
class JudgedAnswer:
    """Signals extracted from one engine answer"""
    brand_mentioned: bool
    rank: Optional[int]
    sentiment: Optional[SentimentPolarity]
    accuracy: float
    competitors_mentioned: List[str]
    competitors_ahead: List[str]
    citations: List[ExtractedCitation]
    breakdown: ScoreBreakdown
    competitor_scores: Dict[str, float] = field(default_factory=dict)
    reasoning: str = ""
    snippet: str = ""

    @property
    def visibility_score(self) -> float:
        return self.breakdown.total


class JobEngine:
    """
    Runs analysis jobs. Each job is an independent state machine; its
    record is written only when it advances a phase.

    Search context is optional: a search failure or timeout is logged and
    the job continues without it. Answering failures, empty answers and
    exhausted retries move the job to failed with the reason recorded.
    """

    def __init__(
        self,
        store: Store,
        answerer: Answerer,
        search: Optional[SerperService] = None,
        settings: Optional[Settings] = None,
        scoring: Optional[ScoringEngine] = None,
    ):
        self.store = store
        self.answerer = answerer
        self.search = search
        self.settings = settings or get_settings()
        self.scoring = scoring or ScoringEngine()
        self.extractor = CitationExtractor()
        self.sentiment = SentimentAnalyzer()

    # ===== SUBMISSION =====

    async def submit(
        self,
        owner_id: UUID,
        prompt_id: Optional[UUID],
        model: str,
        persona: str = "general",
    ) -> AnalysisJob:
        """Validate input and create a pending job"""
        if prompt_id is None:
            raise ValidationError("prompt_id is required", field="prompt_id")
        if not model:
            raise ValidationError("model is required", field="model")

        prompt = await self.store.get_prompt(prompt_id, owner_id)
        if prompt is None:
            raise ValidationError(f"Prompt {prompt_id} not found", field="prompt_id")
        if not (prompt.text or "").strip():
            raise ValidationError("Prompt text is empty", field="text")
        if not (prompt.brand_name or "").strip():
            raise ValidationError("Prompt has no tracked brand", field="brand_name")

        job = await self.store.create_job(owner_id, prompt.id, model, persona or "general")
        await self.store.commit()
        logger.info(f"Job {job.id} submitted: prompt={prompt.id} model={model} persona={persona}")
        return job

    async def submit_many(
        self,
        owner_id: UUID,
        prompt_id: UUID,
        engines: Optional[List[str]] = None,
        persona: str = "general",
    ) -> List[AnalysisJob]:
        """One job per engine for the same prompt"""
        engines = engines or self.settings.default_engines_list
        return [await self.submit(owner_id, prompt_id, engine, persona) for engine in engines]

    # ===== EXECUTION =====

    async def run(self, job_id: UUID) -> AnalysisJob:
        """Drive a pending job to complete or failed"""
        job = await self.store.get_job(job_id)
        if job is None:
            raise ValidationError(f"Job {job_id} not found", field="job_id")

        if job.phase in TERMINAL_PHASES:
            return job
        if job.phase != JobPhase.PENDING:
            # Redelivered after its worker died mid-run
            await self._fail(job, f"Job interrupted during {JobPhase(job.phase).value} phase")
            return job

        try:
            prompt = await self.store.get_prompt(job.prompt_id)
            if prompt is None:
                raise ValidationError(f"Prompt {job.prompt_id} no longer exists")

            await self._transition(job, JobPhase.SCRAPING)
            serp = await self._gather_context(prompt)

            await self._transition(job, JobPhase.THINKING)
            response = await self._ask(job, prompt, serp)

            await self._transition(job, JobPhase.JUDGING)
            judged = self.judge(prompt, job.model, response, serp)
            await self._finalize(job, prompt, judged, serp)
        except PersistenceError:
            raise
        except (UpstreamError, ValidationError) as e:
            await self._fail(job, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in job {job.id}")
            await self._fail(job, f"{type(e).__name__}: {e}")

        return job

    async def _transition(self, job: AnalysisJob, target: JobPhase) -> None:
        advance_phase(job, target)
        await self.store.save_job(job)
        await self.store.commit()
        logger.info(f"Job {job.id} -> {target.value}")

    async def _fail(self, job: AnalysisJob, reasoning: str) -> None:
        retry_count = job.retry_count
        await self.store.discard(job)
        if job.phase in TERMINAL_PHASES:
            return

        job.retry_count = retry_count
        job.reasoning = reasoning
        advance_phase(job, JobPhase.FAILED)
        await self.store.save_job(job)
        await self.store.commit()
        logger.error(f"Job {job.id} failed: {reasoning}")

    async def _bounded(self, coro, what: str, collaborator: str):
        """Await an external call, failing after JOB_PHASE_TIMEOUT"""
        try:
            return await asyncio.wait_for(coro, timeout=self.settings.JOB_PHASE_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                f"{what} timed out after {self.settings.JOB_PHASE_TIMEOUT}s", collaborator
            ) from e

    async def _gather_context(self, prompt: Prompt) -> Optional[SerpSnapshot]:
        if self.search is None:
            return None
        try:
            return await self._bounded(
                self.search.get_serp_snapshot(
                    prompt.text,
                    brand_name=prompt.brand_name,
                    brand_domain=prompt.brand_domain,
                    competitors=list(prompt.competitors or []),
                    country=prompt.country,
                ),
                "Search",
                "serper",
            )
        except UpstreamError as e:
            logger.warning(f"Search context unavailable for prompt {prompt.id}: {e}")
            return None

    def _context_text(self, serp: Optional[SerpSnapshot]) -> Optional[str]:
        if serp is None:
            return None
        lines = []
        if serp.ai_overview:
            lines.append(f"AI overview: {serp.ai_overview}")
        for item in serp.top_results:
            lines.append(f"{item.position}. {item.title} - {item.url}")
        return "\n".join(lines) or None

    async def _ask(self, job: AnalysisJob, prompt: Prompt, serp: Optional[SerpSnapshot]) -> LLMResponse:
        """Get the engine's answer with bounded retries"""
        context = self._context_text(serp)
        max_attempts = max(1, self.settings.LLM_MAX_RETRIES)
        last_error: Optional[UpstreamError] = None

        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._bounded(
                    self.answerer.answer(prompt.text, job.model, job.persona or "general", context),
                    f"{job.model} answer",
                    f"llm:{job.model}",
                )
            except (LLMAuthenticationError, LLMInvalidRequestError):
                raise
            except UpstreamError as e:
                last_error = e
                job.retry_count = attempt
                logger.warning(f"Job {job.id} attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts and self.settings.LLM_RETRY_DELAY:
                    await asyncio.sleep(self.settings.LLM_RETRY_DELAY * attempt)
                continue

            if response is None or not (response.content or "").strip():
                raise UpstreamError(f"{job.model} returned an empty response", f"llm:{job.model}")
            return response

        raise UpstreamError(
            f"Exceeded {max_attempts} attempts: {last_error}",
            f"llm:{job.model}",
        )

    # ===== JUDGING =====

    def judge(
        self,
        prompt: Prompt,
        engine: str,
        response: LLMResponse,
        serp: Optional[SerpSnapshot] = None,
    ) -> JudgedAnswer:
        """Detect mention, rank, sentiment and citations, then score"""
        content = response.content
        matcher = BrandMatcher.for_prompt(prompt.brand_name, list(prompt.competitors or []))
        ranking = matcher.rank_entities(content)

        citations = self.extractor.extract_citations(content)
        if response.citations:
            citations = self.extractor.merge_provider_citations(content, response.citations, citations)

        def sentiment_of(name: str) -> Optional[SentimentPolarity]:
            mention = ranking.first_mentions.get(name)
            if mention is None:
                return None
            return self.sentiment.analyze_mention_context(
                content, mention.character_offset, mention.character_offset + len(mention.mentioned_text)
            ).polarity

        serp_positions = {c.name: c.position for c in serp.competitor_positions} if serp else {}

        sentiment = sentiment_of(prompt.brand_name) if ranking.brand_mentioned else None
        accuracy = FALLBACK_ACCURACY[sentiment] if sentiment else NOT_MENTIONED_ACCURACY

        breakdown = self.scoring.score(ScoreInput(
            mentioned=ranking.brand_mentioned,
            rank=ranking.brand_rank,
            sentiment=sentiment,
            citation_count=len(citations),
            in_search_results=bool(serp and serp.brand_in_results),
            search_position=serp.position if serp else None,
        ))

        competitor_scores = {}
        for name in prompt.competitors or []:
            rank = ranking.competitor_ranks.get(name)
            competitor_scores[name] = self.scoring.score(ScoreInput(
                mentioned=rank is not None,
                rank=rank,
                sentiment=sentiment_of(name) if rank is not None else None,
                citation_count=len(citations),
                in_search_results=name in serp_positions,
                search_position=serp_positions.get(name),
            )).total

        if ranking.brand_mentioned:
            reasoning = (
                f"{prompt.brand_name} mentioned at rank {ranking.brand_rank} of "
                f"{len(ranking.entities)} entities with {sentiment.value} sentiment"
            )
        else:
            reasoning = f"{prompt.brand_name} not mentioned by {engine}"
        reasoning += f"; {len(citations)} citation(s). {breakdown.explanation}."

        return JudgedAnswer(
            brand_mentioned=ranking.brand_mentioned,
            rank=ranking.brand_rank,
            sentiment=sentiment,
            accuracy=accuracy,
            competitors_mentioned=ranking.competitors_mentioned,
            competitors_ahead=ranking.competitors_before_brand(),
            citations=citations,
            breakdown=breakdown,
            competitor_scores=competitor_scores,
            reasoning=reasoning,
            snippet=content[:self.settings.RESPONSE_SNIPPET_LENGTH],
        )

    async def _finalize(
        self,
        job: AnalysisJob,
        prompt: Prompt,
        judged: JudgedAnswer,
        serp: Optional[SerpSnapshot],
    ) -> None:
        """Persist the result and complete the job in one commit"""
        recommendations = build_recommendations(
            brand=prompt.brand_name,
            prompt_text=prompt.text,
            engine=job.model,
            brand_mentioned=judged.brand_mentioned,
            sentiment=judged.sentiment,
            accuracy=judged.accuracy,
            competitors_ahead=judged.competitors_ahead,
        )

        await self.store.add_result(
            prompt.user_id,
            prompt_id=prompt.id,
            job_id=job.id,
            model=job.model,
            persona=job.persona,
            brand_mentioned=judged.brand_mentioned,
            sentiment=judged.sentiment,
            rank=judged.rank,
            visibility_score=judged.visibility_score,
            response_snippet=judged.snippet,
            citations=[c.to_search_result().model_dump() for c in judged.citations],
            competitors_mentioned=judged.competitors_mentioned,
            competitor_scores=judged.competitor_scores,
            recommendations=recommendations,
            score_breakdown=judged.breakdown.to_dict(),
            serp_available=serp is not None,
        )
        await self.store.add_visibility_history(
            prompt.user_id, prompt.id, job.id, job.model, judged.visibility_score
        )
        if serp is not None:
            await self.store.add_serp_history(prompt.user_id, prompt.id, job.id, serp)

        for citation in judged.citations:
            await self.store.record_citation(
                prompt.user_id,
                citation.url,
                engine=job.model,
                prompt_id=prompt.id,
                claim_text=citation.context_snippet or None,
            )

        await self.store.update_prompt_scores(
            prompt, judged.visibility_score, judged.competitor_scores, judged.sentiment
        )

        job.brand_mentioned = judged.brand_mentioned
        job.sentiment = judged.sentiment
        job.accuracy = judged.accuracy
        job.reasoning = judged.reasoning
        job.visibility_score = judged.visibility_score
        await self._transition(job, JobPhase.COMPLETE)
