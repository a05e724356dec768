"""
Citation Verifier
Checks whether a cited page actually supports the claim attributed to it
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Protocol

from rapidfuzz import fuzz

from brandlens.config import Settings, get_settings
from brandlens.errors import UpstreamError, ValidationError
from brandlens.models import URLCitation, VerificationStatus
from .page_fetcher import PageContentFetcher

logger = logging.getLogger(__name__)


STOPWORDS = {
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can", "had",
    "her", "was", "one", "our", "out", "has", "have", "its", "this", "that",
    "with", "from", "they", "will", "would", "there", "their", "what", "about",
    "which", "when", "were", "been", "into", "than", "then", "them", "these",
    "also", "more", "most", "such", "some", "very", "just", "over",
}

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

# Weight of exact token coverage vs. fuzzy phrase alignment
COVERAGE_WEIGHT = 0.7
FUZZY_WEIGHT = 0.3


def hallucination_risk(trust_score: float) -> str:
    """Reporting bucket for a trust score"""
    if trust_score >= 0.7:
        return "low"
    if trust_score >= 0.5:
        return "medium"
    if trust_score >= 0.3:
        return "high"
    return "very_high"


def _tokens(text: str) -> List[str]:
    return [t for t in TOKEN_PATTERN.findall(text.lower()) if len(t) >= 3 and t not in STOPWORDS]


def claim_similarity(claim: str, content: str) -> float:
    """
    Similarity in [0, 1] between a claim and page content.

    Combines the share of the claim's significant tokens present on the page
    with rapidfuzz partial_ratio alignment of the claim against the page.
    """
    claim_tokens = _tokens(claim)
    if not claim_tokens or not content:
        return 0.0

    content_tokens = set(_tokens(content))
    coverage = sum(1 for t in claim_tokens if t in content_tokens) / len(claim_tokens)
    alignment = fuzz.partial_ratio(claim.lower(), content.lower()) / 100.0

    return round(COVERAGE_WEIGHT * coverage + FUZZY_WEIGHT * alignment, 4)


@dataclass
class VerificationResult:
    """Outcome of verifying one citation"""
    url: str
    status: VerificationStatus
    trust_score: float
    similarity: float
    hallucination_risk: str
    reason: str


class ContentSource(Protocol):
    async def fetch(self, url: str) -> str:
        ...


class CitationVerifier:
    """
    Classifies citations as verified, unverified or hallucinated.

    The status depends only on (claim, content), so re-verifying against
    unchanged content yields the same status and trust score.
    """

    def __init__(
        self,
        fetcher: Optional[ContentSource] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.fetcher = fetcher or PageContentFetcher(settings=self.settings)
        self.high_threshold = self.settings.VERIFY_HIGH_THRESHOLD
        self.low_threshold = self.settings.VERIFY_LOW_THRESHOLD

    def classify(self, url: str, claim: str, content: Optional[str]) -> VerificationResult:
        """Status and trust score for a claim against already-fetched content"""
        if content is None:
            return VerificationResult(
                url=url,
                status=VerificationStatus.HALLUCINATED,
                trust_score=0.0,
                similarity=0.0,
                hallucination_risk=hallucination_risk(0.0),
                reason="Page content unreachable",
            )

        similarity = claim_similarity(claim, content)
        if similarity >= self.high_threshold:
            status = VerificationStatus.VERIFIED
            reason = "Page content supports the claim"
        elif similarity < self.low_threshold:
            status = VerificationStatus.HALLUCINATED
            reason = "Page content does not support the claim"
        else:
            status = VerificationStatus.UNVERIFIED
            reason = "Page content partially matches the claim"

        return VerificationResult(
            url=url,
            status=status,
            trust_score=similarity,
            similarity=similarity,
            hallucination_risk=hallucination_risk(similarity),
            reason=reason,
        )

    async def verify(self, url: str, claim: str, content: Optional[str] = None) -> VerificationResult:
        """Verify a claim, fetching the page unless content is provided"""
        if not (claim or "").strip():
            raise ValidationError("Claim text is required", field="claim")
        if not (url or "").strip():
            raise ValidationError("URL is required", field="url")

        if content is None:
            try:
                content = await self.fetcher.fetch(url)
            except UpstreamError as e:
                logger.info(f"Treating {url} as unreachable: {e}")
                content = None

        return self.classify(url, claim, content)

    async def verify_ledger_entry(self, store, citation: URLCitation) -> Optional[VerificationResult]:
        """Verify a ledger row against its stored claim and persist the outcome"""
        if not citation.claim_text:
            return None
        result = await self.verify(citation.url, citation.claim_text)
        await store.save_verification(citation, result.status, result.trust_score)
        return result

    async def verify_pending(self, store, limit: Optional[int] = None, max_concurrent: int = 5) -> List[VerificationResult]:
        """Verify a batch of pending ledger rows"""
        pending = await store.list_pending_citations(limit or self.settings.CITATION_VALIDATION_BATCH_SIZE)
        claimed = [c for c in pending if c.claim_text]
        semaphore = asyncio.Semaphore(max_concurrent)

        async def fetch_with_semaphore(citation: URLCitation):
            async with semaphore:
                try:
                    return await self.fetcher.fetch(citation.url)
                except UpstreamError as e:
                    logger.info(f"Treating {citation.url} as unreachable: {e}")
                    return None

        # Fetch concurrently; session writes stay sequential
        contents = await asyncio.gather(*(fetch_with_semaphore(c) for c in claimed))

        results = []
        for citation, content in zip(claimed, contents):
            result = self.classify(citation.url, citation.claim_text, content)
            await store.save_verification(citation, result.status, result.trust_score)
            results.append(result)

        await store.commit()
        logger.info(f"Verified {len(results)} of {len(pending)} pending citations")
        return results
