"""
Citation Heatmap Builder
Groups the citation ledger by domain
"""

from collections import defaultdict
from typing import Iterable, List, Optional

from brandlens.errors import note_inconsistency
from brandlens.models import URLCitation, VerificationStatus
from brandlens.schemas import DomainHeatmapEntry, VerificationStats


def _status_value(status) -> str:
    return status.value if isinstance(status, VerificationStatus) else str(status)


def build_heatmap(
    citations: Iterable[URLCitation],
    engine: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[DomainHeatmapEntry]:
    """
    One entry per domain, busiest first.

    - citations: sum of citation_count across the domain's URLs
    - avg_trust_score: unweighted mean of the URLs' trust scores
    - engines: sorted union of citing engines
    - status_breakdown: URL count per verification status

    Ties on citations are broken by domain name so output is deterministic.
    """
    by_domain = defaultdict(list)
    for citation in citations:
        by_domain[citation.domain].append(citation)

    entries = []
    for domain, urls in by_domain.items():
        engines = sorted({e for c in urls for e in (c.engines or [])})
        if engine and engine not in engines:
            continue

        breakdown = {s.value: 0 for s in VerificationStatus}
        for c in urls:
            breakdown[_status_value(c.verification_status)] += 1

        entries.append(DomainHeatmapEntry(
            domain=domain,
            citations=sum(c.citation_count or 0 for c in urls),
            url_count=len(urls),
            avg_trust_score=round(sum(c.trust_score or 0.0 for c in urls) / len(urls), 4),
            engines=engines,
            status_breakdown=breakdown,
        ))

    entries.sort(key=lambda e: (-e.citations, e.domain))
    if limit:
        entries = entries[:limit]
    return entries


def top_domains(citations: Iterable[URLCitation], limit: int = 10) -> List[DomainHeatmapEntry]:
    return build_heatmap(citations, limit=limit)


def domains_by_engine(citations: Iterable[URLCitation], engine: str) -> List[DomainHeatmapEntry]:
    return build_heatmap(citations, engine=engine)


def verification_stats(citations: Iterable[URLCitation]) -> VerificationStats:
    """Counts per status and the mean trust of checked citations"""
    citations = list(citations)
    counts = {s: 0 for s in VerificationStatus}
    for c in citations:
        counts[VerificationStatus(_status_value(c.verification_status))] += 1

    checked = [c.trust_score or 0.0 for c in citations if c.verification_status != VerificationStatus.PENDING]
    if checked:
        avg_trust = round(sum(checked) / len(checked), 4)
    else:
        avg_trust = note_inconsistency("No verified citations to average trust over")

    return VerificationStats(
        total=len(citations),
        verified=counts[VerificationStatus.VERIFIED],
        unverified=counts[VerificationStatus.UNVERIFIED],
        hallucinated=counts[VerificationStatus.HALLUCINATED],
        pending=counts[VerificationStatus.PENDING],
        avg_trust_score=avg_trust,
    )
