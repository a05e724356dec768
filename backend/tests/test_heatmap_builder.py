"""
Test Suite for the Citation Heatmap Builder
"""

import pytest

from brandlens.errors import ConsistencyWarning
from brandlens.models import URLCitation, VerificationStatus
from brandlens.services.heatmap_builder import (
    build_heatmap,
    domains_by_engine,
    top_domains,
    verification_stats,
)


def _citation(url, domain, count, engines=("ChatGPT",), trust=0.0, status=VerificationStatus.PENDING):
    return URLCitation(
        url=url,
        domain=domain,
        citation_count=count,
        engines=list(engines),
        trust_score=trust,
        verification_status=status,
    )


@pytest.fixture
def ledger():
    return [
        _citation("https://example.com/a", "example.com", 5, ["ChatGPT"], 0.9, VerificationStatus.VERIFIED),
        _citation("https://example.com/b", "example.com", 3, ["Perplexity"], 0.1, VerificationStatus.HALLUCINATED),
        _citation("https://g2.com/acme", "g2.com", 4, ["Perplexity"], 0.5, VerificationStatus.UNVERIFIED),
        _citation("https://alpha.io/x", "alpha.io", 4, ["Gemini"]),
        _citation("https://zeta.io/x", "zeta.io", 1, ["ChatGPT"]),
    ]


class TestBuildHeatmap:
    """Per-domain aggregation."""

    def test_counts_summed_per_domain(self, ledger):
        entries = {e.domain: e for e in build_heatmap(ledger)}
        example = entries["example.com"]

        assert example.citations == 8
        assert example.url_count == 2
        assert example.engines == ["ChatGPT", "Perplexity"]

    def test_trust_is_unweighted_mean(self, ledger):
        example = next(e for e in build_heatmap(ledger) if e.domain == "example.com")
        # (0.9 + 0.1) / 2, not weighted by 5 and 3
        assert example.avg_trust_score == 0.5

    def test_status_breakdown(self, ledger):
        example = next(e for e in build_heatmap(ledger) if e.domain == "example.com")
        assert example.status_breakdown == {
            "pending": 0,
            "verified": 1,
            "unverified": 0,
            "hallucinated": 1,
        }

    def test_sorted_with_domain_tie_break(self, ledger):
        assert [e.domain for e in build_heatmap(ledger)] == [
            "example.com",
            "alpha.io",
            "g2.com",
            "zeta.io",
        ]

    def test_input_order_does_not_matter(self, ledger):
        forward = [e.model_dump() for e in build_heatmap(ledger)]
        backward = [e.model_dump() for e in build_heatmap(list(reversed(ledger)))]
        assert forward == backward

    def test_empty_ledger(self):
        assert build_heatmap([]) == []


class TestFilteredViews:

    def test_top_domains(self, ledger):
        assert [e.domain for e in top_domains(ledger, limit=2)] == ["example.com", "alpha.io"]

    def test_domains_by_engine(self, ledger):
        assert [e.domain for e in domains_by_engine(ledger, "Perplexity")] == ["example.com", "g2.com"]

    def test_unknown_engine(self, ledger):
        assert domains_by_engine(ledger, "Claude") == []


class TestVerificationStats:

    def test_counts_and_mean_of_checked(self, ledger):
        stats = verification_stats(ledger)
        assert stats.total == 5
        assert stats.verified == 1
        assert stats.unverified == 1
        assert stats.hallucinated == 1
        assert stats.pending == 2
        assert stats.avg_trust_score == 0.5

    def test_nothing_checked_is_neutral(self):
        with pytest.warns(ConsistencyWarning):
            stats = verification_stats([_citation("https://a.io", "a.io", 1)])
        assert stats.avg_trust_score == 0.0
