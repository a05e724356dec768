"""
Citation Extractor
Extracts cited URLs from engine answers as tagged search-result items
"""

import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from brandlens.schemas import SearchResultItem

# Trailing punctuation that regex URL matches tend to swallow
_TRAILING_PUNCTUATION = re.compile(r'[.,;:!?\'")\]]+$')

MARKDOWN_LINK_PATTERN = re.compile(r'\[([^\]]+)\]\((https?://[^)\s]+)\)')
PLAIN_URL_PATTERN = re.compile(r'https?://[^\s<>"\')\]]+|(?<![/@\w.])www\.[^\s<>"\')\]]+')


def normalize_domain(url: str) -> str:
    """Lowercase host without www prefix or port"""
    try:
        domain = urlparse(url).netloc.lower()
    except ValueError:
        return ""

    if domain.startswith("www."):
        domain = domain[4:]
    if ":" in domain:
        domain = domain.split(":")[0]
    return domain


def clean_url(url: str) -> str:
    """Strip trailing punctuation and add a scheme to bare www links"""
    url = _TRAILING_PUNCTUATION.sub('', url.strip())
    if url.startswith("www."):
        url = "https://" + url
    return url


@dataclass
class ExtractedCitation:
    """An extracted citation from an engine answer"""
    url: str
    domain: str
    anchor_text: Optional[str]   # Link text when cited as markdown
    context_snippet: str         # Surrounding answer text, the claim it supports
    position: int                # Order in response (1-indexed)

    def to_search_result(self) -> SearchResultItem:
        return SearchResultItem(
            title=self.anchor_text or self.domain,
            url=self.url,
            snippet=self.context_snippet or None,
            position=self.position,
        )


class CitationExtractor:
    """
    Extracts URLs from engine answers.
    Handles markdown links, bare URLs and provider-supplied source lists.
    """

    # Context window for snippets
    CONTEXT_WINDOW = 150

    def _get_context(self, text: str, start: int, end: int) -> str:
        """Extract context around a citation"""
        context_start = max(0, start - self.CONTEXT_WINDOW)
        context_end = min(len(text), end + self.CONTEXT_WINDOW)
        return text[context_start:context_end].strip()

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL is syntactically valid"""
        try:
            result = urlparse(url)
        except ValueError:
            return False
        return result.scheme in ("http", "https") and bool(result.netloc)

    def extract_citations(self, text: str) -> List[ExtractedCitation]:
        """
        Extract all citations from text, deduplicated by URL.

        Args:
            text: Engine answer text

        Returns:
            List of ExtractedCitation objects in order of appearance
        """
        found = []  # (offset, end, url, anchor)

        for match in MARKDOWN_LINK_PATTERN.finditer(text):
            found.append((match.start(), match.end(), clean_url(match.group(2)), match.group(1)))

        markdown_spans = [(start, end) for start, end, _, _ in found]
        for match in PLAIN_URL_PATTERN.finditer(text):
            if any(start <= match.start() < end for start, end in markdown_spans):
                continue
            found.append((match.start(), match.end(), clean_url(match.group()), None))

        found.sort(key=lambda item: item[0])

        citations = []
        seen = set()
        for start, end, url, anchor in found:
            if url in seen or not self._is_valid_url(url):
                continue
            seen.add(url)
            citations.append(ExtractedCitation(
                url=url,
                domain=normalize_domain(url),
                anchor_text=anchor,
                context_snippet=self._get_context(text, start, end),
                position=len(citations) + 1,
            ))

        return citations

    def merge_provider_citations(
        self,
        text: str,
        citation_list: List[str],
        citations: Optional[List[ExtractedCitation]] = None,
    ) -> List[ExtractedCitation]:
        """
        Append citations a provider returned out of band (Perplexity).
        Such answers reference sources as [1], [2], ... in the text.

        Args:
            text: Response text
            citation_list: URLs from the provider, in reference order
            citations: Citations already extracted from the text

        Returns:
            Combined list, deduplicated by URL
        """
        merged = list(citations or [])
        seen = {c.url for c in merged}

        for i, raw_url in enumerate(citation_list, 1):
            url = clean_url(raw_url)
            if url in seen or not self._is_valid_url(url):
                continue
            seen.add(url)

            context = ""
            ref_match = re.search(rf'\[{i}\]', text)
            if ref_match:
                context = self._get_context(text, ref_match.start(), ref_match.end())

            merged.append(ExtractedCitation(
                url=url,
                domain=normalize_domain(url),
                anchor_text=None,
                context_snippet=context,
                position=len(merged) + 1,
            ))

        return merged
