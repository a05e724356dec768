"""
Worker process runtime
One event loop and one database handle per worker process
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from celery.signals import worker_process_init, worker_process_shutdown
from celery.utils.log import get_task_logger

from brandlens.services.event_bus import EventBus, create_event_bus
from brandlens.services.store import Store
from brandlens.utils.database import Database

logger = get_task_logger(__name__)

_loop: Optional[asyncio.AbstractEventLoop] = None
_database: Optional[Database] = None
_events: Optional[EventBus] = None


def get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
    return _loop


def run_async(coro):
    """Run async function on the process loop"""
    return get_loop().run_until_complete(coro)


async def _open() -> None:
    global _database, _events
    if _database is None:
        _database = await Database.from_settings().open()
    if _events is None:
        _events = create_event_bus()


async def _close() -> None:
    global _database, _events
    if _events is not None:
        await _events.close()
        _events = None
    if _database is not None:
        await _database.close()
        _database = None


@worker_process_init.connect
def init_worker_process(**kwargs):
    run_async(_open())
    logger.info("Worker database handle opened")


@worker_process_shutdown.connect
def shutdown_worker_process(**kwargs):
    if _loop is None or _loop.is_closed():
        return
    run_async(_close())
    _loop.close()
    logger.info("Worker database handle closed")


@asynccontextmanager
async def task_store() -> AsyncIterator[Store]:
    """Store over a fresh session on the process handle"""
    # Tasks invoked outside a worker process (eager mode, shell) open lazily
    await _open()
    async with _database.session() as session:
        yield Store(session, _events)
