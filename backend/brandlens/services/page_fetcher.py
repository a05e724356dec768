"""
Page Content Fetcher
Page-content collaborator: URL in, readable text out
"""

from typing import Optional

import httpx
from bs4 import BeautifulSoup, Comment

from brandlens.config import Settings, get_settings
from brandlens.errors import UpstreamError


class PageContentFetcher:
    """Fetches a page and reduces it to plain text for claim matching"""

    USER_AGENT = "Mozilla/5.0 (compatible; brandlens Citation Verification Bot)"

    # Elements whose text is never part of the readable page
    HIDDEN_TAGS = ["script", "style", "noscript", "template", "title"]

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.timeout = timeout or settings.CITATION_FETCH_TIMEOUT
        self.max_chars = settings.CITATION_MAX_CONTENT_CHARS
        self.min_chars = settings.CITATION_MIN_CONTENT_CHARS
        self._transport = transport

    def to_text(self, html: str) -> str:
        """Visible page text with entities decoded, whitespace collapsed, truncated"""
        soup = BeautifulSoup(html, "html.parser")
        for element in soup(self.HIDDEN_TAGS):
            element.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

        text = " ".join(soup.get_text(" ", strip=True).split())
        return text[:self.max_chars]

    async def fetch(self, url: str) -> str:
        """
        Fetch readable page text.

        Raises:
            UpstreamError: on timeout, connection failure, an error status,
                or a page with too little text to judge a claim against
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.USER_AGENT},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timed out fetching {url}", "page") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Could not fetch {url}: {e}", "page") from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"HTTP {response.status_code} fetching {url}",
                "page",
                {"status_code": response.status_code},
            )

        text = self.to_text(response.text)
        if len(text) < self.min_chars:
            raise UpstreamError(f"Insufficient content at {url}", "page", {"chars": len(text)})
        return text
