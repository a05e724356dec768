"""
Citation Ledger Routes
Heatmap, verification stats and claim verification
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from brandlens.api.dependencies import get_owner_id, get_store, get_verifier
from brandlens.models import VerificationStatus
from brandlens.schemas import (
    DomainHeatmapEntry, URLCitationResponse, VerificationResponse, VerificationStats, VerifyCitationRequest,
)
from brandlens.services.citation_verifier import CitationVerifier
from brandlens.services.heatmap_builder import build_heatmap, domains_by_engine, top_domains, verification_stats
from brandlens.services.store import Store

router = APIRouter()


@router.get("", response_model=List[URLCitationResponse])
async def list_citations(
    domain: Optional[str] = Query(None),
    verification_status: Optional[VerificationStatus] = Query(None),
    min_count: Optional[int] = Query(None, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Ledger entries, most cited first"""
    return await store.list_citations(owner_id, domain, verification_status, min_count, limit)


@router.get("/heatmap", response_model=List[DomainHeatmapEntry])
async def get_heatmap(
    domain: Optional[str] = Query(None),
    verification_status: Optional[VerificationStatus] = Query(None),
    min_count: Optional[int] = Query(None, ge=1),
    engine: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Citations grouped by domain"""
    citations = await store.list_citations(owner_id, domain, verification_status, min_count)
    return build_heatmap(citations, engine=engine, limit=limit)


@router.get("/top-domains", response_model=List[DomainHeatmapEntry])
async def get_top_domains(
    limit: int = Query(10, ge=1, le=100),
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    return top_domains(await store.list_citations(owner_id), limit=limit)


@router.get("/by-engine/{engine}", response_model=List[DomainHeatmapEntry])
async def get_domains_by_engine(
    engine: str,
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    """Domains cited by one engine"""
    return domains_by_engine(await store.list_citations(owner_id), engine)


@router.get("/stats", response_model=VerificationStats)
async def get_verification_stats(
    owner_id: UUID = Depends(get_owner_id),
    store: Store = Depends(get_store),
):
    return verification_stats(await store.list_citations(owner_id))


@router.post("/verify", response_model=VerificationResponse)
async def verify_citation(
    data: VerifyCitationRequest,
    owner_id: UUID = Depends(get_owner_id),
    verifier: CitationVerifier = Depends(get_verifier),
):
    """
    Check a claim against the page it cites.
    Uses the supplied content when given instead of fetching the page.
    """
    result = await verifier.verify(str(data.url), data.claim, data.content)
    return VerificationResponse(
        url=result.url,
        status=result.status,
        trust_score=result.trust_score,
        similarity=result.similarity,
        hallucination_risk=result.hallucination_risk,
        reason=result.reason,
    )
