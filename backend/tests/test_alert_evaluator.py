"""
Test Suite for the Alert Evaluator

Covers:
- Visibility drop crossing
- Competitor overtake crossing
- Sentiment shift
- Policy toggles and message rendering
"""

from brandlens.models import AlertType, NotificationSetting, SentimentPolarity
from brandlens.services.alert_evaluator import (
    AlertPolicy,
    VisibilityState,
    competitor_overtook,
    evaluate_alerts,
    visibility_dropped,
)


def _evaluate(previous, current, policy=None):
    return evaluate_alerts("Acme", "best pm tool?", previous, current, policy or AlertPolicy())


class TestVisibilityDrop:
    """Fires only on a strict crossing below the threshold."""

    def test_crossing_fires(self):
        assert visibility_dropped(75, 65, 70) is True

    def test_staying_below_does_not_fire(self):
        assert visibility_dropped(65, 60, 70) is False

    def test_never_below_threshold_does_not_fire(self):
        assert visibility_dropped(75, 65, 60) is False

    def test_exactly_at_threshold_is_not_below(self):
        assert visibility_dropped(75, 70, 70) is False
        assert visibility_dropped(70, 69.9, 70) is True

    def test_event_carries_context(self):
        events = _evaluate(VisibilityState(75), VisibilityState(65))
        assert len(events) == 1
        event = events[0]
        assert event.alert_type == AlertType.VISIBILITY_DROP
        assert event.previous_score == 75
        assert event.current_score == 65
        assert event.threshold == 70
        assert "Acme" in event.message
        assert "best pm tool?" in event.message


class TestCompetitorOvertake:
    """Competitor behind before and strictly ahead after."""

    def test_crossing_fires(self):
        assert competitor_overtook(80, 70, 60, 75) is True

    def test_already_ahead_does_not_fire(self):
        assert competitor_overtook(80, 85, 60, 75) is False

    def test_still_behind_does_not_fire(self):
        assert competitor_overtook(80, 70, 76, 75) is False

    def test_tie_is_not_ahead(self):
        assert competitor_overtook(80, 70, 75, 75) is False

    def test_event_names_competitor(self):
        previous = VisibilityState(80, {"Asana": 70, "Trello": 50})
        current = VisibilityState(75, {"Asana": 78, "Trello": 55})
        events = _evaluate(previous, current)

        assert [e.alert_type for e in events] == [AlertType.COMPETITOR_OVERTAKE]
        assert events[0].competitor == "Asana"
        assert events[0].previous_competitor_score == 70
        assert events[0].current_competitor_score == 78
        assert events[0].to_payload()["competitor"] == "Asana"

    def test_new_competitor_has_nothing_to_cross(self):
        previous = VisibilityState(80, {})
        current = VisibilityState(75, {"Asana": 90})
        assert _evaluate(previous, current) == []

    def test_competitors_in_name_order(self):
        previous = VisibilityState(80, {"Trello": 70, "Asana": 70})
        current = VisibilityState(75, {"Trello": 90, "Asana": 90})
        events = _evaluate(previous, current)
        assert [e.competitor for e in events] == ["Asana", "Trello"]


class TestSentimentShift:
    """Fires when sentiment turns negative."""

    def test_positive_to_negative_fires(self):
        previous = VisibilityState(80, sentiment=SentimentPolarity.POSITIVE)
        current = VisibilityState(80, sentiment=SentimentPolarity.NEGATIVE)
        events = _evaluate(previous, current)
        assert [e.alert_type for e in events] == [AlertType.SENTIMENT_SHIFT]
        assert events[0].current_sentiment == "negative"

    def test_negative_to_negative_does_not_fire(self):
        previous = VisibilityState(80, sentiment=SentimentPolarity.NEGATIVE)
        current = VisibilityState(80, sentiment=SentimentPolarity.NEGATIVE)
        assert _evaluate(previous, current) == []

    def test_unknown_previous_does_not_fire(self):
        previous = VisibilityState(80, sentiment=None)
        current = VisibilityState(80, sentiment=SentimentPolarity.NEGATIVE)
        assert _evaluate(previous, current) == []


class TestPolicy:
    """Toggles and missing scores."""

    def test_no_previous_score(self):
        assert _evaluate(VisibilityState(None), VisibilityState(10)) == []

    def test_disabled_types_are_skipped(self):
        previous = VisibilityState(80, {"Asana": 70}, SentimentPolarity.POSITIVE)
        current = VisibilityState(60, {"Asana": 75}, SentimentPolarity.NEGATIVE)
        policy = AlertPolicy(visibility_drop=False, competitor_overtake=False, sentiment_shift=False)
        assert _evaluate(previous, current, policy) == []

    def test_all_types_together(self):
        previous = VisibilityState(80, {"Asana": 70}, SentimentPolarity.POSITIVE)
        current = VisibilityState(60, {"Asana": 75}, SentimentPolarity.NEGATIVE)
        events = _evaluate(previous, current)
        assert [e.alert_type for e in events] == [
            AlertType.VISIBILITY_DROP,
            AlertType.COMPETITOR_OVERTAKE,
            AlertType.SENTIMENT_SHIFT,
        ]

    def test_policy_from_setting(self):
        setting = NotificationSetting(
            visibility_threshold=50,
            visibility_drop_alert=True,
            competitor_overtake_alert=False,
            sentiment_shift_alert=True,
        )
        policy = AlertPolicy.from_setting(setting)
        assert policy.visibility_threshold == 50
        assert policy.competitor_overtake is False
        assert _evaluate(VisibilityState(75), VisibilityState(65), policy) == []
