"""
Serper.dev API Service
Search-results collaborator: brand and competitor standing in Google results
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from brandlens.config import Settings, get_settings
from brandlens.errors import UpstreamError
from brandlens.schemas import CompetitorPosition, SearchResultItem, SerpSnapshot

logger = logging.getLogger(__name__)


class SerperService:
    """
    Service to interact with Serper.dev API for Google SERP data
    including AI Overviews.
    """

    BASE_URL = "https://google.serper.dev/search"

    # Organic results kept on a snapshot
    TOP_RESULTS = 5

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.api_key = api_key or settings.SERPER_API_KEY
        self.timeout = timeout or settings.SERP_REQUEST_TIMEOUT
        self.default_country = settings.SERP_DEFAULT_COUNTRY
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        country: Optional[str] = None,
        language: str = "en",
        num_results: int = 10
    ) -> Dict[str, Any]:
        """
        Perform a Google search and return the raw Serper payload

        Args:
            query: Search query
            country: Country code (e.g., 'us', 'in', 'uk')
            language: Language code (e.g., 'en')
            num_results: Number of organic results to return

        Returns:
            Dict containing search results, AI overview, and metadata
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.BASE_URL,
                    headers={
                        "X-API-KEY": self.api_key or "",
                        "Content-Type": "application/json"
                    },
                    json={
                        "q": query,
                        "gl": country or self.default_country,
                        "hl": language,
                        "num": num_results,
                        "autocorrect": True
                    }
                )
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Serper request timed out after {self.timeout}s", "serper") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Serper request failed: {e}", "serper") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"Serper API error: {response.status_code}",
                "serper",
                {"status_code": response.status_code, "response": response.text[:500]},
            )

        return response.json()

    async def get_serp_snapshot(
        self,
        query: str,
        brand_name: str,
        brand_domain: Optional[str] = None,
        competitors: Optional[List[str]] = None,
        country: Optional[str] = None,
    ) -> Optional[SerpSnapshot]:
        """
        Snapshot of where a brand and its competitors stand for a query.

        Returns None when no API key is configured, so callers can skip
        search context without treating it as a failure.
        """
        if not self.is_configured:
            logger.info("Serper not configured, skipping search context")
            return None

        payload = await self.search(query, country=country)
        return self.parse_snapshot(query, payload, brand_name, brand_domain, competitors or [])

    def parse_snapshot(
        self,
        query: str,
        payload: Dict[str, Any],
        brand_name: str,
        brand_domain: Optional[str],
        competitors: List[str],
    ) -> SerpSnapshot:
        """Reduce a raw Serper payload to a tagged snapshot"""
        organic = payload.get("organic") or []
        ai_overview = self._ai_overview_text(payload.get("aiOverview") or payload.get("answerBox"))

        brand_lower = brand_name.lower()
        domain_clean = (brand_domain or "").lower().replace("www.", "")

        brand_position = None
        competitor_positions: Dict[str, int] = {}
        top_results = []

        for i, item in enumerate(organic, 1):
            link = item.get("link", "") or ""
            title = item.get("title", "") or ""
            snippet = item.get("snippet", "") or ""
            haystack = f"{title} {snippet}".lower()

            if brand_position is None:
                if (domain_clean and domain_clean in link.lower()) or brand_lower in haystack:
                    brand_position = i

            for competitor in competitors:
                if competitor not in competitor_positions and competitor.lower() in haystack:
                    competitor_positions[competitor] = i

            if i <= self.TOP_RESULTS and link:
                top_results.append(SearchResultItem(
                    title=title,
                    url=link,
                    snippet=snippet or None,
                    position=i,
                ))

        brand_in_overview = bool(ai_overview) and brand_lower in ai_overview.lower()

        return SerpSnapshot(
            query=query,
            brand_in_results=brand_position is not None or brand_in_overview,
            position=brand_position,
            ai_overview=ai_overview,
            top_results=top_results,
            competitor_positions=[
                CompetitorPosition(name=name, position=position)
                for name, position in sorted(competitor_positions.items(), key=lambda kv: kv[1])
            ],
        )

    def _ai_overview_text(self, ai_overview: Any) -> Optional[str]:
        """Flatten the AI Overview formats Serper returns"""
        if not ai_overview:
            return None
        if isinstance(ai_overview, str):
            return ai_overview
        if isinstance(ai_overview, dict):
            for key in ("snippet", "answer", "text", "description"):
                if ai_overview.get(key):
                    text = str(ai_overview[key])
                    break
            else:
                text = ""
            items = ai_overview.get("items") or []
            if items:
                text = (text + " " + " ".join(str(item) for item in items)).strip()
            return text or None
        return None
