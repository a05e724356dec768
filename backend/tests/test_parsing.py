"""
Test Suite for Answer Parsing

Covers:
- Brand and competitor matching and entity ranking
- Sentiment around a mention
- Citation extraction from answer text and provider source lists
"""

from brandlens.adapters.parsing import (
    BrandMatcher,
    CitationExtractor,
    SentimentAnalyzer,
    clean_url,
    normalize_domain,
)
from brandlens.models import SentimentPolarity

from fakes import RANKED_ANSWER


class TestBrandMatcher:
    """Mentions on word boundaries, ranked by first appearance."""

    def test_ranks_entities_in_order(self):
        matcher = BrandMatcher.for_prompt("Acme", ["Asana", "Trello"])
        ranking = matcher.rank_entities(RANKED_ANSWER)

        assert ranking.entities == ["Asana", "Acme", "Trello"]
        assert ranking.brand_mentioned is True
        assert ranking.brand_rank == 2
        assert ranking.competitor_ranks == {"Asana": 1, "Trello": 3}
        assert ranking.competitors_before_brand() == ["Asana"]

    def test_repeat_mentions_count_once(self):
        matcher = BrandMatcher.for_prompt("Acme", ["Asana"])
        ranking = matcher.rank_entities("Acme first. Then Asana. Acme again.")
        assert ranking.entities == ["Acme", "Asana"]
        assert ranking.brand_rank == 1

    def test_case_insensitive(self):
        ranking = BrandMatcher.for_prompt("Acme").rank_entities("I would pick ACME here.")
        assert ranking.brand_mentioned is True
        assert ranking.first_brand_match.mentioned_text == "ACME"

    def test_word_boundaries(self):
        ranking = BrandMatcher.for_prompt("Acme").rank_entities("Acmeworks and NotAcme are unrelated.")
        assert ranking.brand_mentioned is False
        assert ranking.brand_rank is None

    def test_longer_name_wins_at_same_offset(self):
        matcher = BrandMatcher.for_prompt("Acme", ["Acme Cloud"])
        ranking = matcher.rank_entities("Acme Cloud is the market leader.")
        assert ranking.entities == ["Acme Cloud"]
        assert ranking.brand_mentioned is False

    def test_brand_not_listed_as_competitor(self):
        matcher = BrandMatcher.for_prompt("Acme", ["acme", "Asana"])
        assert [b.name for b in matcher.competitor_brands] == ["Asana"]

    def test_not_mentioned_puts_all_competitors_ahead(self):
        ranking = BrandMatcher.for_prompt("Acme", ["Asana", "Trello"]).rank_entities("Trello or Asana.")
        assert ranking.competitors_before_brand() == ["Trello", "Asana"]


class TestSentimentAnalyzer:

    def setup_method(self):
        self.analyzer = SentimentAnalyzer()

    def test_positive(self):
        result = self.analyzer.analyze("Acme is excellent and reliable.")
        assert result.polarity == SentimentPolarity.POSITIVE
        assert "excellent" in result.matched_indicators

    def test_negative(self):
        result = self.analyzer.analyze("Acme is terrible and buggy.")
        assert result.polarity == SentimentPolarity.NEGATIVE

    def test_negated_positive(self):
        result = self.analyzer.analyze("Acme is not good for teams.")
        assert result.polarity == SentimentPolarity.NEGATIVE
        assert "NOT good" in result.matched_indicators

    def test_negative_phrase(self):
        result = self.analyzer.analyze("Acme is not recommended.")
        assert result.polarity == SentimentPolarity.NEGATIVE
        assert "not recommended" in result.matched_indicators

    def test_neutral(self):
        result = self.analyzer.analyze("Acme exists.")
        assert result.polarity == SentimentPolarity.NEUTRAL
        assert result.score == 0.0

    def test_empty(self):
        assert self.analyzer.analyze(None).polarity == SentimentPolarity.NEUTRAL

    def test_mention_context_window(self):
        text = "Acme is excellent." + " filler" * 60 + " Zed is terrible."
        zed = text.index("Zed")
        result = self.analyzer.analyze_mention_context(text, zed, zed + 3, context_window=50)
        assert result.polarity == SentimentPolarity.NEGATIVE


class TestCitationExtractor:

    def setup_method(self):
        self.extractor = CitationExtractor()

    def test_plain_url(self):
        citations = self.extractor.extract_citations(RANKED_ANSWER)
        assert len(citations) == 1
        assert citations[0].url == "https://www.g2.com/products/acme/reviews"
        assert citations[0].domain == "g2.com"
        assert citations[0].position == 1
        assert "Acme" in citations[0].context_snippet

    def test_markdown_link(self):
        citations = self.extractor.extract_citations("See [Acme docs](https://docs.acme.io/start).")
        assert len(citations) == 1
        assert citations[0].anchor_text == "Acme docs"
        assert citations[0].url == "https://docs.acme.io/start"

    def test_trailing_punctuation_and_www(self):
        citations = self.extractor.extract_citations("Read www.acme.io/blog, or https://acme.io/pricing.")
        assert [c.url for c in citations] == ["https://www.acme.io/blog", "https://acme.io/pricing"]

    def test_duplicates_collapse(self):
        text = "https://acme.io/a and again https://acme.io/a"
        assert len(self.extractor.extract_citations(text)) == 1

    def test_search_result_shape(self):
        item = self.extractor.extract_citations("Source: https://acme.io/a")[0].to_search_result()
        assert item.model_dump() == {
            "title": "acme.io",
            "url": "https://acme.io/a",
            "snippet": "Source: https://acme.io/a",
            "position": 1,
        }

    def test_provider_citations(self):
        text = "Acme leads [1]. Asana follows [2]. More at https://acme.io/a"
        extracted = self.extractor.extract_citations(text)
        merged = self.extractor.merge_provider_citations(
            text, ["https://acme.io/a", "https://asana.com/b"], extracted
        )

        assert [c.url for c in merged] == ["https://acme.io/a", "https://asana.com/b"]
        assert merged[1].position == 2
        assert "Asana follows" in merged[1].context_snippet

    def test_provider_citation_invalid_url_skipped(self):
        assert self.extractor.merge_provider_citations("text", ["not a url"]) == []


class TestUrlHelpers:

    def test_normalize_domain(self):
        assert normalize_domain("https://www.Example.com:8080/a") == "example.com"
        assert normalize_domain("https://blog.acme.io") == "blog.acme.io"

    def test_clean_url(self):
        assert clean_url("www.acme.io/a).") == "https://www.acme.io/a"
