"""
Brand Matching Engine
Detects brand and competitor mentions and ranks them by first appearance
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass
class BrandMatch:
    """A detected brand mention"""
    mentioned_text: str          # Exact text found in response
    normalized_name: str         # Configured brand name
    position: int                # Position in list of mentions (1-indexed)
    character_offset: int        # Character position in text
    context_snippet: str         # Surrounding context
    match_type: str              # "exact", "alias"
    is_own_brand: bool           # True if this is the tracked brand


@dataclass
class BrandConfig:
    """Configuration for a brand to match"""
    name: str
    aliases: List[str] = field(default_factory=list)
    is_own_brand: bool = True


@dataclass
class EntityRanking:
    """Distinct entities in order of first mention"""
    entities: List[str]
    brand_mentioned: bool
    brand_rank: Optional[int]                 # 1-indexed among entities
    competitor_ranks: Dict[str, int]
    first_mentions: Dict[str, BrandMatch] = field(default_factory=dict)

    @property
    def first_brand_match(self) -> Optional[BrandMatch]:
        return next((m for m in self.first_mentions.values() if m.is_own_brand), None)

    @property
    def competitors_mentioned(self) -> List[str]:
        return list(self.competitor_ranks.keys())

    def competitors_before_brand(self) -> List[str]:
        if self.brand_rank is None:
            return self.competitors_mentioned
        return [name for name, rank in self.competitor_ranks.items() if rank < self.brand_rank]


class BrandMatcher:
    """
    Matches brand names in text, case-insensitively, on word boundaries.
    When one name matches several times only the first mention counts
    toward its rank.
    """

    # Context window size (characters before/after match)
    CONTEXT_WINDOW = 100

    def __init__(
        self,
        own_brands: List[BrandConfig],
        competitor_brands: List[BrandConfig]
    ):
        self.own_brands = own_brands
        self.competitor_brands = competitor_brands
        self._build_match_index()

    @classmethod
    def for_prompt(cls, brand_name: str, competitors: Optional[List[str]] = None) -> "BrandMatcher":
        return cls(
            own_brands=[BrandConfig(name=brand_name)],
            competitor_brands=[
                BrandConfig(name=name, is_own_brand=False)
                for name in competitors or []
                if name and name.lower() != brand_name.lower()
            ],
        )

    def _build_match_index(self):
        """Build lowercase lookup of names and aliases"""
        self.exact_matches = {}  # lowercase -> BrandConfig

        # Own brand registered last so it wins a name collision
        for brand in self.competitor_brands + self.own_brands:
            self.exact_matches[brand.name.lower()] = brand
            for alias in brand.aliases:
                self.exact_matches[alias.lower()] = brand

    def _get_context(self, text: str, start: int, end: int) -> str:
        """Extract context around a match"""
        context_start = max(0, start - self.CONTEXT_WINDOW)
        context_end = min(len(text), end + self.CONTEXT_WINDOW)

        context = text[context_start:context_end]

        if context_start > 0:
            context = "..." + context
        if context_end < len(text):
            context = context + "..."

        return context.strip()

    def _find_exact_matches(self, text: str) -> List[Tuple[str, int, BrandConfig]]:
        """Find exact and alias matches"""
        matches = []
        text_lower = text.lower()

        for match_text, brand in self.exact_matches.items():
            if not match_text:
                continue
            start = 0
            while True:
                pos = text_lower.find(match_text, start)
                if pos == -1:
                    break

                # Check word boundaries
                before_ok = pos == 0 or not text_lower[pos - 1].isalnum()
                after_ok = (pos + len(match_text) >= len(text_lower) or
                           not text_lower[pos + len(match_text)].isalnum())

                if before_ok and after_ok:
                    actual_text = text[pos:pos + len(match_text)]
                    matches.append((actual_text, pos, brand))

                start = pos + 1

        return matches

    def find_mentions(self, text: str) -> List[BrandMatch]:
        """
        Find all brand mentions in text.

        Args:
            text: The LLM response text to analyze

        Returns:
            List of BrandMatch objects, ordered by position
        """
        mentions = []

        for match_text, pos, brand in self._find_exact_matches(text):
            if match_text.lower() == brand.name.lower():
                match_type = "exact"
            else:
                match_type = "alias"

            mentions.append(BrandMatch(
                mentioned_text=match_text,
                normalized_name=brand.name,
                position=0,  # Will be set after sorting
                character_offset=pos,
                context_snippet=self._get_context(text, pos, pos + len(match_text)),
                match_type=match_type,
                is_own_brand=brand.is_own_brand,
            ))

        # Longer names first at the same offset, so "Acme Cloud" beats "Acme"
        mentions.sort(key=lambda m: (m.character_offset, -len(m.mentioned_text)))
        deduped = []
        covered_until = -1
        for mention in mentions:
            if mention.character_offset < covered_until:
                continue
            deduped.append(mention)
            covered_until = mention.character_offset + len(mention.mentioned_text)

        for i, mention in enumerate(deduped):
            mention.position = i + 1

        return deduped

    def rank_entities(self, text: str) -> EntityRanking:
        """Order distinct entities by their first mention"""
        mentions = self.find_mentions(text)

        entities: List[str] = []
        first_mentions: Dict[str, BrandMatch] = {}
        for mention in mentions:
            if mention.normalized_name in first_mentions:
                continue
            entities.append(mention.normalized_name)
            first_mentions[mention.normalized_name] = mention

        brand_rank = None
        competitor_ranks = {}
        own_names = {b.name for b in self.own_brands}
        for rank, name in enumerate(entities, start=1):
            if name in own_names:
                if brand_rank is None:
                    brand_rank = rank
            else:
                competitor_ranks[name] = rank

        return EntityRanking(
            entities=entities,
            brand_mentioned=brand_rank is not None,
            brand_rank=brand_rank,
            competitor_ranks=competitor_ranks,
            first_mentions=first_mentions,
        )

