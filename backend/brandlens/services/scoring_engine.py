"""
Visibility Scoring Engine
Calculates transparent, explainable visibility scores from a configurable policy
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from brandlens.config import Settings, get_settings
from brandlens.models import SentimentPolarity


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Points awarded per component on a 0-100 scale.

    Defaults:
    - +40 points: Brand mentioned
    - up to +25 points: Rank, minus 5 per place after the first
    - +15 / +5 / -10 points: Positive / neutral / negative sentiment
    - +5 points per corroborating citation, at most +20
    - up to +15 points: Search results position, minus 2 per place
      (+5 when present without a position)
    """
    mention: float = 40
    rank_max: float = 25
    rank_step: float = 5
    sentiment_positive: float = 15
    sentiment_neutral: float = 5
    sentiment_negative: float = -10
    citation_each: float = 5
    citation_max: float = 20
    serp_max: float = 15
    serp_step: float = 2
    serp_unranked: float = 5

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ScoringPolicy":
        settings = settings or get_settings()
        return cls(
            mention=settings.SCORE_MENTION_WEIGHT,
            rank_max=settings.SCORE_RANK_MAX,
            rank_step=settings.SCORE_RANK_STEP,
            sentiment_positive=settings.SCORE_SENTIMENT_POSITIVE,
            sentiment_neutral=settings.SCORE_SENTIMENT_NEUTRAL,
            sentiment_negative=settings.SCORE_SENTIMENT_NEGATIVE,
            citation_each=settings.SCORE_CITATION_EACH,
            citation_max=settings.SCORE_CITATION_MAX,
            serp_max=settings.SCORE_SERP_MAX,
            serp_step=settings.SCORE_SERP_STEP,
            serp_unranked=settings.SCORE_SERP_UNRANKED,
        )


@dataclass
class ScoreComponent:
    """A component of the visibility score with explanation"""
    name: str
    points: float
    explanation: str


@dataclass
class ScoreBreakdown:
    """Complete breakdown of a visibility score"""
    components: List[ScoreComponent]
    total_raw: float
    total: float  # clamped to 0-100
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScoreInput:
    """What an answer says about one entity"""
    mentioned: bool
    rank: Optional[int] = None
    sentiment: Optional[SentimentPolarity] = None
    citation_count: int = 0
    in_search_results: bool = False
    search_position: Optional[int] = None


class ScoringEngine:
    """
    Turns parsed answer signals into a 0-100 visibility score.
    Citations and sentiment only count when the entity is mentioned.
    """

    def __init__(self, policy: Optional[ScoringPolicy] = None):
        self.policy = policy or ScoringPolicy.from_settings()

    def _mention_component(self, signal: ScoreInput) -> ScoreComponent:
        if not signal.mentioned:
            return ScoreComponent("mention", 0, "Not mentioned in the answer")
        return ScoreComponent("mention", self.policy.mention, "Mentioned in the answer")

    def _rank_component(self, signal: ScoreInput) -> ScoreComponent:
        if not signal.mentioned or signal.rank is None:
            return ScoreComponent("rank", 0, "No rank, not mentioned")
        points = max(0.0, self.policy.rank_max - (signal.rank - 1) * self.policy.rank_step)
        return ScoreComponent("rank", points, f"Ranked #{signal.rank} among mentioned entities")

    def _sentiment_component(self, signal: ScoreInput) -> ScoreComponent:
        if not signal.mentioned or signal.sentiment is None:
            return ScoreComponent("sentiment", 0, "No sentiment, not mentioned")
        points = {
            SentimentPolarity.POSITIVE: self.policy.sentiment_positive,
            SentimentPolarity.NEUTRAL: self.policy.sentiment_neutral,
            SentimentPolarity.NEGATIVE: self.policy.sentiment_negative,
        }[signal.sentiment]
        return ScoreComponent("sentiment", points, f"{signal.sentiment.value.capitalize()} sentiment")

    def _citation_component(self, signal: ScoreInput) -> ScoreComponent:
        if not signal.mentioned or signal.citation_count <= 0:
            return ScoreComponent("citations", 0, "No corroborating citations")
        points = min(self.policy.citation_max, signal.citation_count * self.policy.citation_each)
        return ScoreComponent("citations", points, f"{signal.citation_count} corroborating citation(s)")

    def _search_component(self, signal: ScoreInput) -> ScoreComponent:
        if not signal.in_search_results:
            return ScoreComponent("search", 0, "Not found in search results")
        if signal.search_position is None:
            return ScoreComponent("search", self.policy.serp_unranked, "Present in search results")
        points = max(0.0, self.policy.serp_max - signal.search_position * self.policy.serp_step)
        return ScoreComponent("search", points, f"Search results position #{signal.search_position}")

    def score(self, signal: ScoreInput) -> ScoreBreakdown:
        """Calculate the score and its breakdown"""
        components = [
            self._mention_component(signal),
            self._rank_component(signal),
            self._sentiment_component(signal),
            self._citation_component(signal),
            self._search_component(signal),
        ]
        total_raw = sum(c.points for c in components)
        total = round(max(0.0, min(100.0, total_raw)), 2)

        parts = [c.explanation for c in components if c.points != 0]
        explanation = ". ".join(parts) if parts else "No visibility signals"

        return ScoreBreakdown(
            components=components,
            total_raw=total_raw,
            total=total,
            explanation=explanation,
        )


def build_recommendations(
    brand: str,
    prompt_text: str,
    engine: str,
    brand_mentioned: bool,
    sentiment: Optional[SentimentPolarity],
    accuracy: float,
    competitors_ahead: List[str],
) -> List[str]:
    """Human-readable next steps for one engine's answer"""
    recommendations = []

    if not brand_mentioned:
        recommendations.append(
            f'{brand} is not appearing in {engine} answers for this query. '
            f'Focus on building authoritative content that addresses "{prompt_text}" directly.'
        )
        recommendations.append(
            "Create comprehensive guides, reviews, and comparison content to increase visibility."
        )

    if sentiment == SentimentPolarity.NEGATIVE:
        recommendations.append(
            f"{engine} mentions {brand} with negative sentiment. "
            "Review brand messaging and address common complaints."
        )

    if brand_mentioned and accuracy < 60:
        recommendations.append(
            f"Low confidence score ({round(accuracy)}%). "
            "Ensure your online presence has accurate, up-to-date information."
        )

    if competitors_ahead:
        recommendations.append(
            f"Competitors ({', '.join(competitors_ahead)}) are mentioned ahead of {brand}. "
            "Analyze their content strategy."
        )

    recommendations.append(
        "Encourage customer reviews on platforms like G2, Capterra, and Trustpilot - "
        "these are frequently referenced by AI models."
    )
    return recommendations
