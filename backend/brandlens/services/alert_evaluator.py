"""
Alert Evaluator
Pure comparison of two visibility states against the owner's thresholds
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from brandlens.models import AlertType, NotificationSetting, SentimentPolarity


@dataclass
class VisibilityState:
    """Own and competitor scores for one prompt at one point in time"""
    own_score: Optional[float]
    competitor_scores: Dict[str, float] = field(default_factory=dict)
    sentiment: Optional[SentimentPolarity] = None


@dataclass
class AlertPolicy:
    """Threshold and per-type toggles"""
    visibility_threshold: float = 70
    visibility_drop: bool = True
    competitor_overtake: bool = True
    sentiment_shift: bool = True

    @classmethod
    def from_setting(cls, setting: NotificationSetting) -> "AlertPolicy":
        return cls(
            visibility_threshold=setting.visibility_threshold,
            visibility_drop=bool(setting.visibility_drop_alert),
            competitor_overtake=bool(setting.competitor_overtake_alert),
            sentiment_shift=bool(setting.sentiment_shift_alert),
        )


@dataclass
class AlertEvent:
    """Everything a notifier needs to render one alert"""
    alert_type: AlertType
    brand: str
    prompt_text: str
    previous_score: Optional[float]
    current_score: Optional[float]
    competitor: Optional[str] = None
    previous_competitor_score: Optional[float] = None
    current_competitor_score: Optional[float] = None
    threshold: Optional[float] = None
    previous_sentiment: Optional[str] = None
    current_sentiment: Optional[str] = None

    @property
    def message(self) -> str:
        if self.alert_type == AlertType.VISIBILITY_DROP:
            return (
                f"{self.brand} visibility dropped from {self.previous_score:.1f} to "
                f"{self.current_score:.1f}, below your threshold of {self.threshold:.0f}, "
                f'for "{self.prompt_text}"'
            )
        if self.alert_type == AlertType.COMPETITOR_OVERTAKE:
            return (
                f"{self.competitor} ({self.current_competitor_score:.1f}) overtook "
                f'{self.brand} ({self.current_score:.1f}) for "{self.prompt_text}"'
            )
        return (
            f"Sentiment toward {self.brand} turned {self.current_sentiment} "
            f'(was {self.previous_sentiment}) for "{self.prompt_text}"'
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "alert_type": self.alert_type.value,
            "brand": self.brand,
            "prompt_text": self.prompt_text,
            "previous_score": self.previous_score,
            "current_score": self.current_score,
            "competitor": self.competitor,
            "previous_competitor_score": self.previous_competitor_score,
            "current_competitor_score": self.current_competitor_score,
            "threshold": self.threshold,
            "previous_sentiment": self.previous_sentiment,
            "current_sentiment": self.current_sentiment,
            "message": self.message,
        }


def visibility_dropped(previous: float, current: float, threshold: float) -> bool:
    """Strict crossing from at-or-above the threshold to below it"""
    return previous >= threshold and current < threshold


def competitor_overtook(prev_own: float, prev_comp: float, cur_own: float, cur_comp: float) -> bool:
    """Competitor was behind and is now strictly ahead"""
    return prev_comp < prev_own and cur_comp > cur_own


def sentiment_turned_negative(
    previous: Optional[SentimentPolarity], current: Optional[SentimentPolarity]
) -> bool:
    return (
        previous is not None
        and previous != SentimentPolarity.NEGATIVE
        and current == SentimentPolarity.NEGATIVE
    )


def evaluate_alerts(
    brand: str,
    prompt_text: str,
    previous: VisibilityState,
    current: VisibilityState,
    policy: AlertPolicy,
) -> List[AlertEvent]:
    """
    Alerts fired by moving from previous to current.

    A prompt with no previous score has nothing to cross, so it never fires.
    """
    events: List[AlertEvent] = []
    if previous.own_score is None or current.own_score is None:
        return events

    if policy.visibility_drop and visibility_dropped(
        previous.own_score, current.own_score, policy.visibility_threshold
    ):
        events.append(AlertEvent(
            alert_type=AlertType.VISIBILITY_DROP,
            brand=brand,
            prompt_text=prompt_text,
            previous_score=previous.own_score,
            current_score=current.own_score,
            threshold=policy.visibility_threshold,
        ))

    if policy.competitor_overtake:
        for competitor in sorted(current.competitor_scores):
            if competitor not in previous.competitor_scores:
                continue
            prev_comp = previous.competitor_scores[competitor]
            cur_comp = current.competitor_scores[competitor]
            if competitor_overtook(previous.own_score, prev_comp, current.own_score, cur_comp):
                events.append(AlertEvent(
                    alert_type=AlertType.COMPETITOR_OVERTAKE,
                    brand=brand,
                    prompt_text=prompt_text,
                    previous_score=previous.own_score,
                    current_score=current.own_score,
                    competitor=competitor,
                    previous_competitor_score=prev_comp,
                    current_competitor_score=cur_comp,
                ))

    if policy.sentiment_shift and sentiment_turned_negative(previous.sentiment, current.sentiment):
        events.append(AlertEvent(
            alert_type=AlertType.SENTIMENT_SHIFT,
            brand=brand,
            prompt_text=prompt_text,
            previous_score=previous.own_score,
            current_score=current.own_score,
            previous_sentiment=previous.sentiment.value,
            current_sentiment=current.sentiment.value,
        ))

    return events
