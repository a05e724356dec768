"""
Change Event Bus
Publishes row inserts/updates/deletes to consumers keyed by owner and entity
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional, Set, Tuple
from uuid import UUID

import redis.asyncio as redis

from brandlens.config import Settings, get_settings

logger = logging.getLogger(__name__)


def serialize_row(obj: Any) -> Any:
    """Convert UUIDs, dates and enums to JSON-safe values"""
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: serialize_row(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize_row(item) for item in obj]
    return obj


@dataclass
class ChangeEvent:
    """A row change visible to one owner"""
    owner_id: str
    entity: str  # table name, e.g. "analysis_jobs"
    op: str      # insert, update, delete
    row: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_id, self.entity)

    def to_json(self) -> str:
        return json.dumps({"owner_id": self.owner_id, "entity": self.entity, "op": self.op, "row": self.row})

    @classmethod
    def from_json(cls, raw: str) -> "ChangeEvent":
        data = json.loads(raw)
        return cls(owner_id=data["owner_id"], entity=data["entity"], op=data["op"], row=data.get("row") or {})


class Subscription:
    """Async iterator over events delivered to one subscriber"""

    def __init__(self, queue: "asyncio.Queue[ChangeEvent]"):
        self.queue = queue

    async def get(self, timeout: Optional[float] = None) -> ChangeEvent:
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout)

    def drain(self) -> list:
        """Events already delivered, without waiting"""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.queue.get()


class EventBus(ABC):
    """Message-passing channel from the store to interested consumers"""

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        pass

    @abstractmethod
    def subscribe(self, owner_id: Any, entity: str):
        """Async context manager yielding a Subscription"""
        pass

    async def close(self) -> None:
        pass


class LocalEventBus(EventBus):
    """In-process bus on asyncio queues"""

    def __init__(self):
        self._subscribers: Dict[Tuple[str, str], Set[asyncio.Queue]] = {}

    async def publish(self, event: ChangeEvent) -> None:
        for queue in list(self._subscribers.get(event.key, ())):
            queue.put_nowait(event)

    @asynccontextmanager
    async def subscribe(self, owner_id: Any, entity: str) -> AsyncIterator[Subscription]:
        key = (str(owner_id), entity)
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(key, set()).add(queue)
        try:
            yield Subscription(queue)
        finally:
            self._subscribers[key].discard(queue)
            if not self._subscribers[key]:
                del self._subscribers[key]


class RedisEventBus(EventBus):
    """
    Cross-process bus on Redis pub/sub.

    Channel pattern: brandlens:{owner_id}:{entity}
    """

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self._client = client or redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

    @staticmethod
    def channel_name(owner_id: Any, entity: str) -> str:
        return f"brandlens:{owner_id}:{entity}"

    async def publish(self, event: ChangeEvent) -> None:
        await self._client.publish(self.channel_name(event.owner_id, event.entity), event.to_json())

    @asynccontextmanager
    async def subscribe(self, owner_id: Any, entity: str) -> AsyncIterator[Subscription]:
        channel = self.channel_name(owner_id, entity)
        pubsub = self._client.pubsub()
        await pubsub.subscribe(channel)
        queue: asyncio.Queue = asyncio.Queue()

        async def _pump():
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    queue.put_nowait(ChangeEvent.from_json(message["data"]))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Dropping malformed event on {channel}: {e}")

        pump = asyncio.create_task(_pump())
        try:
            yield Subscription(queue)
        finally:
            pump.cancel()
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def close(self) -> None:
        await self._client.aclose()


def create_event_bus(settings: Optional[Settings] = None) -> EventBus:
    """Bus selected by EVENT_BUS_BACKEND"""
    settings = settings or get_settings()
    if settings.EVENT_BUS_BACKEND == "redis":
        return RedisEventBus(settings.REDIS_URL)
    return LocalEventBus()


class LocalView:
    """
    Consumer-side mirror of one entity type.

    Events are applied as idempotent upserts keyed by row id; a row with an
    older updated_at never replaces a newer one, and deletes remove the row.
    """

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    def apply(self, event: ChangeEvent) -> None:
        row_id = event.row.get("id")
        if row_id is None:
            return

        if event.op == "delete":
            self.rows.pop(row_id, None)
            return

        current = self.rows.get(row_id)
        if current is not None:
            current_ts = current.get("updated_at")
            incoming_ts = event.row.get("updated_at")
            if current_ts and incoming_ts and incoming_ts < current_ts:
                return
        self.rows[row_id] = dict(event.row)

    def values(self) -> list:
        return list(self.rows.values())
