"""
Test Suite for Alert Dispatch and the Scheduled Monitoring Run

Covers:
- Persisting, deduplicating and delivering alerts
- Notifier failures
- Webhook notifier payload
- Monitoring run end to end, with failure isolation
"""

import json
from uuid import uuid4

import httpx
import pytest

from brandlens.models import AlertType, SentimentPolarity
from brandlens.services.alert_evaluator import AlertEvent
from brandlens.services.alert_service import AlertService, WebhookNotifier, dedupe_key
from brandlens.services.monitoring import MonitoringRun, dominant_sentiment

from fakes import ABSENT_ANSWER, FakeAnswerer, RecordingNotifier


def _drop_event(previous=75.0, current=65.0):
    return AlertEvent(
        alert_type=AlertType.VISIBILITY_DROP,
        brand="Acme",
        prompt_text="best pm tool?",
        previous_score=previous,
        current_score=current,
        threshold=70,
    )


class TestDedupeKey:

    def test_same_transition_same_key(self, owner_id):
        prompt_id = uuid4()
        assert dedupe_key(owner_id, prompt_id, _drop_event()) == dedupe_key(owner_id, prompt_id, _drop_event())

    def test_different_scores_different_key(self, owner_id):
        prompt_id = uuid4()
        assert dedupe_key(owner_id, prompt_id, _drop_event()) != dedupe_key(owner_id, prompt_id, _drop_event(80.0))


class TestDispatch:
    """Alerts are stored once and delivered best-effort."""

    @pytest.mark.asyncio
    async def test_records_and_delivers(self, store, prompt, owner_id):
        notifier = RecordingNotifier()
        service = AlertService(store, notifier)
        setting = await store.get_notification_settings(owner_id)

        alerts = await service.dispatch(owner_id, prompt.id, [_drop_event()], setting)

        assert len(alerts) == 1
        assert len(notifier.sent) == 1
        stored = await store.list_alerts(owner_id)
        assert len(stored) == 1
        assert stored[0].delivered is True
        assert stored[0].alert_type == AlertType.VISIBILITY_DROP
        assert stored[0].payload["previous_score"] == 75.0

    @pytest.mark.asyncio
    async def test_duplicate_not_resent(self, store, prompt, owner_id):
        notifier = RecordingNotifier()
        service = AlertService(store, notifier)
        setting = await store.get_notification_settings(owner_id)

        await service.dispatch(owner_id, prompt.id, [_drop_event()], setting)
        again = await service.dispatch(owner_id, prompt.id, [_drop_event()], setting)

        assert again == []
        assert len(notifier.sent) == 1
        assert len(await store.list_alerts(owner_id)) == 1

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self, store, prompt, owner_id):
        service = AlertService(store, RecordingNotifier(fail=True))
        setting = await store.get_notification_settings(owner_id)

        alerts = await service.dispatch(owner_id, prompt.id, [_drop_event()], setting)

        assert len(alerts) == 1
        stored = await store.list_alerts(owner_id)
        assert stored[0].delivered is False

    @pytest.mark.asyncio
    async def test_email_disabled_records_only(self, store, prompt, owner_id):
        notifier = RecordingNotifier()
        await store.update_notification_settings(owner_id, {"email_enabled": False})
        await store.commit()
        setting = await store.get_notification_settings(owner_id)

        await AlertService(store, notifier).dispatch(owner_id, prompt.id, [_drop_event()], setting)

        assert notifier.sent == []
        assert len(await store.list_alerts(owner_id)) == 1


class TestWebhookNotifier:

    @pytest.mark.asyncio
    async def test_posts_payload(self, owner_id):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = WebhookNotifier("https://hooks.example.com/alerts", transport=httpx.MockTransport(handler))
        await notifier.send(owner_id, _drop_event())

        assert received[0]["owner_id"] == str(owner_id)
        assert received[0]["alert_type"] == "visibility_drop"
        assert "dropped from 75.0 to 65.0" in received[0]["message"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, owner_id):
        notifier = WebhookNotifier(
            "https://hooks.example.com/alerts",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await notifier.send(owner_id, _drop_event())


class TestMonitoringRun:
    """Scheduled pass over every tracked prompt."""

    @pytest.mark.asyncio
    async def test_drop_and_overtake(self, make_engine, store, prompt, owner_id):
        await store.update_prompt_scores(prompt, 80.0, {"Asana": 70.0}, SentimentPolarity.POSITIVE)
        await store.commit()

        notifier = RecordingNotifier()
        run = MonitoringRun(
            store,
            make_engine(FakeAnswerer(content=ABSENT_ANSWER)),
            AlertService(store, notifier),
        )
        summary = await run.run_all()

        assert summary.prompts == 1
        assert summary.jobs == 2
        assert summary.failed_jobs == 0
        assert summary.alerts == 2
        assert summary.errors == []
        assert sorted(e.alert_type.value for _, e in notifier.sent) == [
            "competitor_overtake",
            "visibility_drop",
        ]

        refreshed = await store.get_prompt(prompt.id)
        assert refreshed.visibility_score == 0.0
        assert refreshed.competitor_scores["Asana"] == 80.0

    @pytest.mark.asyncio
    async def test_rerun_does_not_refire(self, make_engine, store, prompt, owner_id):
        await store.update_prompt_scores(prompt, 80.0, {"Asana": 70.0})
        await store.commit()

        notifier = RecordingNotifier()
        run = MonitoringRun(
            store,
            make_engine(FakeAnswerer(content=ABSENT_ANSWER)),
            AlertService(store, notifier),
        )
        await run.run_all()
        second = await run.run_all()

        assert second.alerts == 0
        assert len(notifier.sent) == 2

    @pytest.mark.asyncio
    async def test_failed_prompt_does_not_stop_batch(self, make_engine, store, prompt, owner_id):
        await store.create_prompt(uuid4(), text="best crm?", brand_name=" ", competitors=[])
        await store.commit()

        run = MonitoringRun(store, make_engine(), AlertService(store, RecordingNotifier()))
        summary = await run.run_all()

        assert summary.prompts == 2
        assert len(summary.errors) == 1
        assert summary.jobs == 2
        refreshed = await store.get_prompt(prompt.id)
        assert refreshed.visibility_score == 80.0

    @pytest.mark.asyncio
    async def test_all_jobs_failed_keeps_previous_score(self, make_engine, store, prompt, owner_id):
        await store.update_prompt_scores(prompt, 80.0, {})
        await store.commit()

        run = MonitoringRun(store, make_engine(FakeAnswerer(content="")), AlertService(store, RecordingNotifier()))
        summary = await run.run_all()

        assert summary.failed_jobs == 2
        assert summary.alerts == 0
        assert (await store.get_prompt(prompt.id)).visibility_score == 80.0


class TestDominantSentiment:

    def test_majority_wins(self):
        values = [SentimentPolarity.POSITIVE, SentimentPolarity.POSITIVE, SentimentPolarity.NEUTRAL]
        assert dominant_sentiment(values) == SentimentPolarity.POSITIVE

    def test_tie_goes_negative(self):
        values = [SentimentPolarity.POSITIVE, SentimentPolarity.NEGATIVE]
        assert dominant_sentiment(values) == SentimentPolarity.NEGATIVE

    def test_nothing_mentioned(self):
        assert dominant_sentiment([None, None]) is None
