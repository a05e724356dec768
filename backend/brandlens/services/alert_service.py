"""
Alert Service
Persists evaluated alerts once and hands them to the notification collaborator
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

import httpx

from brandlens.config import Settings, get_settings
from brandlens.models import Alert, NotificationSetting
from .alert_evaluator import AlertEvent
from .store import Store

logger = logging.getLogger(__name__)


def dedupe_key(owner_id: UUID, prompt_id: Optional[UUID], event: AlertEvent) -> str:
    """Same owner, prompt and transition -> same key"""
    raw = "|".join(str(part) for part in (
        owner_id,
        prompt_id,
        event.alert_type.value,
        event.competitor,
        event.previous_score,
        event.current_score,
        event.previous_competitor_score,
        event.current_competitor_score,
        event.previous_sentiment,
        event.current_sentiment,
    ))
    return hashlib.sha256(raw.encode()).hexdigest()


class Notifier(ABC):
    """Notification collaborator: best-effort delivery of one alert"""

    @abstractmethod
    async def send(self, owner_id: UUID, event: AlertEvent) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes alerts to the log; used when no webhook is configured"""

    async def send(self, owner_id: UUID, event: AlertEvent) -> None:
        logger.info(f"[alert:{event.alert_type.value}] owner={owner_id} {event.message}")


class WebhookNotifier(Notifier):
    """POSTs the alert payload as JSON"""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def send(self, owner_id: UUID, event: AlertEvent) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json={"owner_id": str(owner_id), **event.to_payload()})
            response.raise_for_status()


def create_notifier(settings: Optional[Settings] = None) -> Notifier:
    settings = settings or get_settings()
    if settings.ALERT_WEBHOOK_URL:
        return WebhookNotifier(settings.ALERT_WEBHOOK_URL)
    return LoggingNotifier()


class AlertService:
    """
    Records alert events and dispatches them.

    An event whose dedupe key is already stored is skipped, so re-running a
    scheduled batch does not send twice. Delivery failures are logged and
    the alert stays undelivered; nothing is retried here.
    """

    def __init__(self, store: Store, notifier: Optional[Notifier] = None):
        self.store = store
        self.notifier = notifier or create_notifier()

    async def dispatch(
        self,
        owner_id: UUID,
        prompt_id: Optional[UUID],
        events: List[AlertEvent],
        setting: NotificationSetting,
    ) -> List[Alert]:
        """Persist new events, then deliver them if email is enabled"""
        recorded = []
        for event in events:
            key = dedupe_key(owner_id, prompt_id, event)
            if await self.store.alert_exists(key):
                logger.info(f"Skipping duplicate {event.alert_type.value} alert for prompt {prompt_id}")
                continue
            alert = await self.store.add_alert(
                owner_id,
                prompt_id=prompt_id,
                alert_type=event.alert_type,
                dedupe_key=key,
                payload=event.to_payload(),
                delivered=False,
            )
            recorded.append((alert, event))
        await self.store.commit()

        if not setting.email_enabled:
            return [alert for alert, _ in recorded]

        for alert, event in recorded:
            try:
                await self.notifier.send(owner_id, event)
            except Exception as e:
                logger.warning(f"Alert {alert.id} delivery failed: {e}")
                continue
            await self.store.mark_alert_delivered(alert)
        await self.store.commit()

        return [alert for alert, _ in recorded]
