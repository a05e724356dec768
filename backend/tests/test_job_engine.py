"""
Test Suite for the Analysis Job Engine

Covers:
- Submission validation
- Phase ordering and completed_at
- Judging and scoring of an engine answer
- Failure, retry and timeout handling
- Job stats
"""

import asyncio
from datetime import datetime
from uuid import uuid4

import pytest

from brandlens.adapters.llm import (
    LLMAuthenticationError,
    LLMProviderType,
    LLMRateLimitError,
    LLMTimeoutError,
)
from brandlens.config import Settings
from brandlens.errors import UpstreamError, ValidationError
from brandlens.models import AnalysisJob, JobPhase, SentimentPolarity
from brandlens.schemas import CompetitorPosition, SerpSnapshot
from brandlens.services.job_engine import (
    JobEngine,
    PhaseTransitionError,
    advance_phase,
    summarize_jobs,
)

from fakes import ABSENT_ANSWER, FakeAnswerer, FakeSearch, UnavailableBus


async def _run_and_record(engine, events, owner_id, prompt_id, model="ChatGPT"):
    """Submit and run a job, returning it with the phases observed on the bus"""
    async with events.subscribe(owner_id, "analysis_jobs") as subscription:
        job = await engine.submit(owner_id, prompt_id, model)
        job = await engine.run(job.id)
        phases = [event.row["phase"] for event in subscription.drain()]
    return job, phases


class TestSubmission:
    """Validation happens before any job record exists."""

    @pytest.mark.asyncio
    async def test_missing_prompt_id_rejected(self, make_engine, store, owner_id):
        engine = make_engine()
        with pytest.raises(ValidationError) as exc:
            await engine.submit(owner_id, None, "ChatGPT")
        assert exc.value.field == "prompt_id"
        assert await store.list_jobs(owner_id) == []

    @pytest.mark.asyncio
    async def test_unknown_prompt_rejected(self, make_engine, store, owner_id):
        with pytest.raises(ValidationError):
            await make_engine().submit(owner_id, uuid4(), "ChatGPT")
        assert await store.list_jobs(owner_id) == []

    @pytest.mark.asyncio
    async def test_prompt_of_another_owner_rejected(self, make_engine, prompt):
        with pytest.raises(ValidationError):
            await make_engine().submit(uuid4(), prompt.id, "ChatGPT")

    @pytest.mark.asyncio
    async def test_blank_brand_rejected(self, make_engine, store, owner_id):
        unbranded = await store.create_prompt(owner_id, text="best crm?", brand_name="  ", competitors=[])
        await store.commit()
        with pytest.raises(ValidationError) as exc:
            await make_engine().submit(owner_id, unbranded.id, "ChatGPT")
        assert exc.value.field == "brand_name"
        assert await store.list_jobs(owner_id) == []

    @pytest.mark.asyncio
    async def test_submit_creates_pending_job(self, make_engine, prompt, owner_id):
        job = await make_engine().submit(owner_id, prompt.id, "Gemini", persona="CTO")
        assert job.phase == JobPhase.PENDING
        assert job.persona == "CTO"
        assert job.completed_at is None

    @pytest.mark.asyncio
    async def test_submit_many_uses_default_engines(self, make_engine, prompt, owner_id):
        jobs = await make_engine().submit_many(owner_id, prompt.id)
        assert [j.model for j in jobs] == ["ChatGPT", "Perplexity"]


class TestSuccessfulRun:
    """A job driven through every phase to complete."""

    @pytest.mark.asyncio
    async def test_phases_in_order(self, make_engine, events, prompt, owner_id):
        job, phases = await _run_and_record(make_engine(), events, owner_id, prompt.id)

        assert phases == ["pending", "scraping", "thinking", "judging", "complete"]
        assert job.phase == JobPhase.COMPLETE
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_score_and_signals(self, make_engine, prompt, owner_id):
        engine = make_engine()
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        # mention 40 + rank #2 20 + positive 15 + one citation 5
        assert job.visibility_score == 80.0
        assert job.brand_mentioned is True
        assert job.sentiment == SentimentPolarity.POSITIVE
        assert job.accuracy == 75.0
        assert "rank 2" in job.reasoning

    @pytest.mark.asyncio
    async def test_result_history_and_prompt_snapshot(self, make_engine, store, prompt, owner_id):
        engine = make_engine()
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        results = await store.list_results_for_jobs([job.id])
        assert len(results) == 1
        result = results[0]
        assert result.rank == 2
        assert result.competitors_mentioned == ["Asana", "Trello"]
        assert result.competitor_scores == {"Asana": 85.0, "Trello": 75.0}
        assert result.citations[0]["url"] == "https://www.g2.com/products/acme/reviews"
        assert result.citations[0]["position"] == 1
        assert result.serp_available is False
        assert len(result.response_snippet) <= 500
        assert any("G2" in r for r in result.recommendations)
        assert any("Asana" in r for r in result.recommendations)

        history = await store.list_visibility_history(prompt.id, datetime(2000, 1, 1))
        assert [h.visibility_score for h in history] == [80.0]

        refreshed = await store.get_prompt(prompt.id)
        assert refreshed.visibility_score == 80.0
        assert refreshed.competitor_scores == {"Asana": 85.0, "Trello": 75.0}
        assert refreshed.last_sentiment == SentimentPolarity.POSITIVE

    @pytest.mark.asyncio
    async def test_citations_recorded_in_ledger(self, make_engine, store, prompt, owner_id):
        engine = make_engine()
        await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)
        await engine.run((await engine.submit(owner_id, prompt.id, "Perplexity")).id)

        ledger = await store.list_citations(owner_id)
        assert len(ledger) == 1
        assert ledger[0].domain == "g2.com"
        assert ledger[0].citation_count == 2
        assert ledger[0].engines == ["ChatGPT", "Perplexity"]
        assert "Acme" in ledger[0].claim_text

    @pytest.mark.asyncio
    async def test_provider_citations_merged(self, make_engine, store, prompt, owner_id):
        answerer = FakeAnswerer(
            content="Acme is a solid option [1].",
            citations=["https://acme.io/features"],
        )
        engine = make_engine(answerer)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "Perplexity")).id)

        result = (await store.list_results_for_jobs([job.id]))[0]
        assert [c["url"] for c in result.citations] == ["https://acme.io/features"]

    @pytest.mark.asyncio
    async def test_brand_not_mentioned(self, make_engine, prompt, owner_id):
        engine = make_engine(FakeAnswerer(content=ABSENT_ANSWER))
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        assert job.phase == JobPhase.COMPLETE
        assert job.brand_mentioned is False
        assert job.sentiment is None
        assert job.visibility_score == 0.0
        assert job.accuracy == 50.0

    @pytest.mark.asyncio
    async def test_search_context_adds_points(self, make_engine, store, prompt, owner_id):
        snapshot = SerpSnapshot(
            query=prompt.text,
            brand_in_results=True,
            position=2,
            competitor_positions=[CompetitorPosition(name="Asana", position=1)],
        )
        search = FakeSearch(snapshot=snapshot)
        answerer = FakeAnswerer()
        engine = make_engine(answerer, search)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        # 80 plus search position #2: 15 - 2*2
        assert job.visibility_score == 91.0
        assert search.calls == 1
        result = (await store.list_results_for_jobs([job.id]))[0]
        assert result.serp_available is True
        assert result.competitor_scores["Asana"] == 98.0

    @pytest.mark.asyncio
    async def test_search_failure_is_not_fatal(self, make_engine, store, prompt, owner_id):
        search = FakeSearch(error=UpstreamError("Serper API error: 500", "serper"))
        engine = make_engine(FakeAnswerer(), search)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        assert job.phase == JobPhase.COMPLETE
        assert job.visibility_score == 80.0


class TestFailures:
    """Upstream failures end the job in failed with the reason kept."""

    @pytest.mark.asyncio
    async def test_event_bus_outage_does_not_fail_job(self, make_engine, store, prompt, owner_id):
        bus = UnavailableBus()
        store.events = bus
        engine = make_engine()

        job = await engine.submit(owner_id, prompt.id, "ChatGPT")
        job = await engine.run(job.id)

        assert job.phase == JobPhase.COMPLETE
        assert job.visibility_score == 80.0
        assert bus.attempts > 0

    @pytest.mark.asyncio
    async def test_auth_error_fails_without_retry(self, make_engine, events, prompt, owner_id):
        answerer = FakeAnswerer(errors=[LLMAuthenticationError("Invalid API key", LLMProviderType.OPENAI)])
        job, phases = await _run_and_record(make_engine(answerer), events, owner_id, prompt.id)

        assert phases == ["pending", "scraping", "thinking", "failed"]
        assert job.phase == JobPhase.FAILED
        assert job.completed_at is not None
        assert "Invalid API key" in job.reasoning
        assert len(answerer.calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, make_engine, prompt, owner_id):
        answerer = FakeAnswerer(errors=[LLMRateLimitError("Rate limit exceeded", LLMProviderType.OPENAI)])
        engine = make_engine(answerer)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        assert job.phase == JobPhase.COMPLETE
        assert job.retry_count == 1
        assert len(answerer.calls) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, make_engine, store, prompt, owner_id):
        answerer = FakeAnswerer(errors=[
            LLMTimeoutError("Request timed out", LLMProviderType.OPENAI),
            LLMTimeoutError("Request timed out", LLMProviderType.OPENAI),
        ])
        engine = make_engine(answerer)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        assert job.phase == JobPhase.FAILED
        assert job.retry_count == 2
        assert "Exceeded 2 attempts" in job.reasoning
        assert await store.list_results_for_jobs([job.id]) == []

    @pytest.mark.asyncio
    async def test_empty_answer_fails(self, make_engine, prompt, owner_id):
        engine = make_engine(FakeAnswerer(content="   "))
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        assert job.phase == JobPhase.FAILED
        assert "empty response" in job.reasoning

    @pytest.mark.asyncio
    async def test_hanging_answer_times_out(self, store, prompt, owner_id):
        class HangingAnswerer:
            async def answer(self, prompt_text, engine, persona="general", context=None):
                await asyncio.sleep(5)

        settings = Settings(LLM_MAX_RETRIES=1, LLM_RETRY_DELAY=0, JOB_PHASE_TIMEOUT=0.05)
        engine = JobEngine(store, HangingAnswerer(), settings=settings)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)

        assert job.phase == JobPhase.FAILED
        assert "timed out" in job.reasoning

    @pytest.mark.asyncio
    async def test_unknown_job_rejected(self, make_engine):
        with pytest.raises(ValidationError):
            await make_engine().run(uuid4())


class TestRedelivery:
    """Running a job again never moves it backwards."""

    @pytest.mark.asyncio
    async def test_terminal_job_unchanged(self, make_engine, prompt, owner_id):
        answerer = FakeAnswerer()
        engine = make_engine(answerer)
        job = await engine.run((await engine.submit(owner_id, prompt.id, "ChatGPT")).id)
        completed_at = job.completed_at

        again = await engine.run(job.id)
        assert again.phase == JobPhase.COMPLETE
        assert again.completed_at == completed_at
        assert len(answerer.calls) == 1

    @pytest.mark.asyncio
    async def test_interrupted_job_failed(self, make_engine, store, prompt, owner_id):
        engine = make_engine()
        job = await engine.submit(owner_id, prompt.id, "ChatGPT")
        job.phase = JobPhase.THINKING
        await store.save_job(job)
        await store.commit()

        job = await engine.run(job.id)
        assert job.phase == JobPhase.FAILED
        assert "interrupted during thinking" in job.reasoning


class TestPhaseTransitions:
    """The transition table itself."""

    def _job(self, phase):
        return AnalysisJob(id=uuid4(), phase=phase)

    def test_forward_step_allowed(self):
        job = advance_phase(self._job(JobPhase.PENDING), JobPhase.SCRAPING)
        assert job.phase == JobPhase.SCRAPING
        assert job.completed_at is None

    def test_skipping_rejected(self):
        with pytest.raises(PhaseTransitionError):
            advance_phase(self._job(JobPhase.PENDING), JobPhase.JUDGING)

    def test_terminal_is_final(self):
        with pytest.raises(PhaseTransitionError):
            advance_phase(self._job(JobPhase.COMPLETE), JobPhase.FAILED)

    def test_fail_from_any_active_phase(self):
        for phase in (JobPhase.PENDING, JobPhase.SCRAPING, JobPhase.THINKING, JobPhase.JUDGING):
            job = advance_phase(self._job(phase), JobPhase.FAILED)
            assert job.completed_at is not None


class TestJobStats:
    """Win/loss summary."""

    def test_summarize(self):
        jobs = [
            AnalysisJob(phase=JobPhase.COMPLETE, brand_mentioned=True),
            AnalysisJob(phase=JobPhase.COMPLETE, brand_mentioned=True),
            AnalysisJob(phase=JobPhase.COMPLETE, brand_mentioned=False),
            AnalysisJob(phase=JobPhase.THINKING),
            AnalysisJob(phase=JobPhase.FAILED),
        ]
        stats = summarize_jobs(jobs)
        assert stats.total == 5
        assert stats.wins == 2
        assert stats.losses == 1
        assert stats.in_progress == 1
        assert stats.failed == 1
