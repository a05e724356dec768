"""
Sentiment Analyzer
Lexicon-based polarity of the text around a brand mention
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from brandlens.models import SentimentPolarity


@dataclass
class SentimentResult:
    """Result of sentiment analysis"""
    polarity: SentimentPolarity
    score: float  # -1.0 to 1.0
    confidence: float  # 0.0 to 1.0
    matched_indicators: List[str]


class SentimentAnalyzer:
    """
    Rule-based sentiment analyzer for brand mentions.
    Deterministic: the same text always yields the same result.
    """

    # Indicator -> weight. Unlisted lexicon entries weigh 0.5.
    POSITIVE_WEIGHTS = {
        "excellent": 1.5, "outstanding": 1.5, "best": 1.5, "exceptional": 1.5,
        "good": 1.0, "great": 1.0, "reliable": 1.0, "highly recommended": 1.0,
    }
    NEGATIVE_WEIGHTS = {
        "terrible": 1.5, "awful": 1.5, "worst": 1.5, "poor": 1.5,
        "bad": 1.0, "weak": 1.0, "unreliable": 1.0, "not recommended": 1.0,
    }

    POSITIVE_TERMS = [
        "excellent", "outstanding", "exceptional", "best", "leading",
        "innovative", "powerful", "impressive", "remarkable", "superior",
        "recommended", "top-rated", "highly rated", "popular", "trusted",
        "good", "great", "reliable", "effective", "efficient", "useful",
        "helpful", "solid", "strong", "robust", "comprehensive", "intuitive",
        "user-friendly", "easy to use", "affordable",
        "market leader", "industry standard", "widely used", "well-known",
        "highly recommended", "top choice", "go-to solution", "best-in-class",
        "stands out", "excels at", "trusted by",
    ]

    NEGATIVE_TERMS = [
        "terrible", "awful", "worst", "poor", "failing", "broken",
        "disappointing", "frustrating", "unreliable", "outdated",
        "bad", "weak", "limited", "lacking", "difficult", "complicated",
        "expensive", "overpriced", "slow", "buggy", "problematic",
        "mediocre", "inconsistent", "steep learning curve",
        "not recommended", "avoid", "stay away", "better alternatives",
        "falls short", "lacks", "struggles with", "fails to", "losing market share",
    ]

    NEGATION_WORDS = ["not", "no", "never", "hardly", "barely", "doesn't", "don't", "isn't", "aren't"]

    # Polarity cut-offs on the final score
    POLARITY_CUTOFF = 0.2

    def __init__(self):
        self._positive_pattern = self._build_pattern(self.POSITIVE_TERMS)
        self._negative_pattern = self._build_pattern(self.NEGATIVE_TERMS)
        self._negation_pattern = self._build_pattern(self.NEGATION_WORDS)

    def _build_pattern(self, words: List[str]) -> re.Pattern:
        """Longest terms first so phrases win over their words"""
        escaped = [re.escape(w) for w in sorted(set(words), key=len, reverse=True)]
        return re.compile(r'\b(' + '|'.join(escaped) + r')\b', re.IGNORECASE)

    def _is_negated(self, text: str, match_start: int, window: int = 30) -> bool:
        """Negation word shortly before the match, within the same clause"""
        context = text[max(0, match_start - window):match_start]
        context = re.split(r'[.;,!?]', context)[-1]
        return bool(self._negation_pattern.search(context))

    def analyze(self, text: Optional[str]) -> SentimentResult:
        """
        Analyze sentiment of text.

        Args:
            text: Text to analyze

        Returns:
            SentimentResult with polarity and score
        """
        if not text:
            return SentimentResult(SentimentPolarity.NEUTRAL, 0.0, 0.0, [])

        text_lower = text.lower()
        positive = 0.0
        negative = 0.0
        indicators = []

        for match in self._positive_pattern.finditer(text_lower):
            term = match.group()
            if term.startswith("not ") or not self._is_negated(text_lower, match.start()):
                positive += self.POSITIVE_WEIGHTS.get(term, 0.5)
                indicators.append(term)
            else:
                # Negated positive reads as mildly negative
                negative += 0.5
                indicators.append(f"NOT {term}")

        for match in self._negative_pattern.finditer(text_lower):
            term = match.group()
            if term.startswith("not ") or not self._is_negated(text_lower, match.start()):
                negative += self.NEGATIVE_WEIGHTS.get(term, 0.5)
                indicators.append(term)
            else:
                positive += 0.3
                indicators.append(f"NOT {term}")

        total = positive + negative
        if total == 0:
            return SentimentResult(SentimentPolarity.NEUTRAL, 0.0, 0.0, indicators)

        score = max(-1.0, min(1.0, (positive - negative) / total))
        confidence = min(1.0, len(indicators) / 5.0)

        if score > self.POLARITY_CUTOFF:
            polarity = SentimentPolarity.POSITIVE
        elif score < -self.POLARITY_CUTOFF:
            polarity = SentimentPolarity.NEGATIVE
        else:
            polarity = SentimentPolarity.NEUTRAL

        return SentimentResult(polarity, round(score, 4), confidence, indicators)

    def analyze_mention_context(
        self,
        full_text: str,
        mention_start: int,
        mention_end: int,
        context_window: int = 150
    ) -> SentimentResult:
        """
        Analyze sentiment specifically around a brand mention.

        Args:
            full_text: Full LLM response
            mention_start: Character offset of mention start
            mention_end: Character offset of mention end
            context_window: Characters to analyze around mention

        Returns:
            SentimentResult for the mention context
        """
        context_start = max(0, mention_start - context_window)
        context_end = min(len(full_text), mention_end + context_window)
        return self.analyze(full_text[context_start:context_end])
