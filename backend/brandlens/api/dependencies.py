"""
Request-scoped dependencies
"""

from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from brandlens.services.citation_verifier import CitationVerifier
from brandlens.services.job_engine import JobEngine
from brandlens.services.store import Store
from brandlens.utils.database import get_db


async def get_owner_id(x_user_id: UUID = Header(..., alias="X-User-Id")) -> UUID:
    """Owner of the request; authentication happens upstream"""
    return x_user_id


async def get_store(request: Request, db: AsyncSession = Depends(get_db)) -> Store:
    return Store(db, request.app.state.events)


async def get_job_engine(request: Request, store: Store = Depends(get_store)) -> JobEngine:
    state = request.app.state
    return JobEngine(store, state.answerer, search=state.search, settings=state.settings)


async def get_verifier(request: Request) -> CitationVerifier:
    state = request.app.state
    return CitationVerifier(fetcher=state.fetcher, settings=state.settings)
