"""
Unit tests for numerical claim extraction and grounding comparison.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from insight_core.numerical_claims import (
    ClaimKind,
    ClaimVerdict,
    ScaleFactor,
    NumericalClaim,
    extract_numerical_claims,
    verify_claims_against_grounding,
    default_field_for_claim,
    relative_difference,
)


# ──────────────────────────────────────────────────────────────────────────────
# Extraction
# ──────────────────────────────────────────────────────────────────────────────

class TestExtractNumericalClaims:
    def test_currency_and_percentage(self):
        claims = extract_numerical_claims(
            {"market": "The market is worth $45 billion and growing 23% a year."}
        ).to_list()
        assert len(claims) == 2
        cur, pct = claims
        assert cur.kind == ClaimKind.CURRENCY
        assert cur.value == 45
        assert cur.scale == ScaleFactor.BILLION
        assert cur.normalized_value == 45_000_000_000
        assert cur.raw_text == "$45 billion"
        assert cur.field == "market"
        assert pct.kind == ClaimKind.PERCENTAGE
        assert pct.normalized_value == 23

    @pytest.mark.parametrize("text,expected", [
        ("Revenue hit $8.0B last year.", 8_000_000_000),
        ("Raised $1,200,000 in seed.", 1_200_000),
        ("TVL of $350M across chains.", 350_000_000),
        ("Burn is $40k a month.", 40_000),
        ("Fees total $2.5 million.", 2_500_000),
    ])
    def test_currency_scales(self, text, expected):
        claims = extract_numerical_claims({"t": text}).to_list()
        assert len(claims) == 1
        assert claims[0].normalized_value == pytest.approx(expected)

    def test_percent_word(self):
        claims = extract_numerical_claims({"t": "Retention is 18 percent."}).to_list()
        assert claims[0].kind == ClaimKind.PERCENTAGE
        assert claims[0].value == 18

    def test_count_claim(self):
        claims = extract_numerical_claims({"t": "There are 15 competitors in this niche."}).to_list()
        assert len(claims) == 1
        assert claims[0].kind == ClaimKind.COUNT
        assert claims[0].value == 15

    def test_bare_numbers_ignored(self):
        assert extract_numerical_claims({"t": "Launch in 2025 with 3 engineers."}).to_list() == []

    def test_order_is_field_then_position(self):
        claims = extract_numerical_claims({
            "b_field": "Users grew 40% while fees hit $5 million.",
            "a_field": "Market is $2 billion.",
        }).to_list()
        assert [c.field for c in claims] == ["b_field", "b_field", "a_field"]
        assert claims[0].position < claims[1].position

    def test_restartable(self):
        seq = extract_numerical_claims({"t": "$1 million and 5%."})
        first = [c.raw_text for c in seq]
        second = [c.raw_text for c in seq]
        assert first == second == ["$1 million", "5%"]
        assert len(seq) == 2
        assert bool(seq)

    def test_empty_sequence_is_falsy(self):
        seq = extract_numerical_claims({"t": "", "u": "no numbers here"})
        assert not seq
        assert len(seq) == 0

    def test_input_not_mutated_and_snapshotted(self):
        fields = {"t": "$3 billion market."}
        seq = extract_numerical_claims(fields)
        fields["t"] = "nothing"
        fields["u"] = "$9 billion"
        assert fields["t"] == "nothing"
        assert [c.normalized_value for c in seq] == [3_000_000_000]

    def test_context_sentence_keeps_decimals(self):
        claims = extract_numerical_claims({"t": "Revenue was $1.5 million. Growth hit 40%."}).to_list()
        assert claims[0].context_sentence == "Revenue was $1.5 million"
        assert claims[1].context_sentence == "Growth hit 40%"

    @pytest.mark.parametrize("text,expected", [
        ("Sector growth is -15% year over year.", -15),
        ("Sector growth is −15% year over year.", -15),
        ("Net flows were -$2.5 million last quarter.", -2_500_000),
        ("Net flows were $-2.5 million last quarter.", -2_500_000),
        ("Churn removed -40 users.", -40),
    ])
    def test_negative_figures_keep_sign(self, text, expected):
        claims = extract_numerical_claims({"t": text}).to_list()
        assert len(claims) == 1
        assert claims[0].normalized_value == pytest.approx(expected)

    @pytest.mark.parametrize("text", [
        "Margins of 10-15% are typical.",
        "- 15% of users churn.",
        "A pre-$5 million round.",
    ])
    def test_hyphens_are_not_signs(self, text):
        claims = extract_numerical_claims({"t": text}).to_list()
        assert claims[0].normalized_value > 0

    def test_to_dict_uses_plain_values(self):
        d = extract_numerical_claims({"t": "$2 billion"}).to_list()[0].to_dict()
        assert d["kind"] == "currency"
        assert d["scale"] == "billion"


# ──────────────────────────────────────────────────────────────────────────────
# Grounding comparison
# ──────────────────────────────────────────────────────────────────────────────

def _claims(text, field="market"):
    return extract_numerical_claims({field: text})


class TestVerifyClaimsAgainstGrounding:
    def test_fabricated_market_size_contradicted(self):
        result = verify_claims_against_grounding(
            _claims("The addressable market is $45 billion."),
            {"market_size_usd": 12_000_000_000},
        )
        assert result.total_claims >= 1
        assert result.contradicted_claims >= 1
        check = result.contradictions[0]
        assert check.grounding_field == "market_size_usd"
        assert check.grounding_value == 12_000_000_000
        assert check.relative_diff == pytest.approx(2.75)

    def test_rounded_figure_consistent(self):
        result = verify_claims_against_grounding(
            _claims("The market is about $13 billion."),
            {"market_size_usd": 12_000_000_000},
        )
        assert result.contradicted_claims == 0
        assert result.grounded_claims == 1
        assert result.details[0].verdict == ClaimVerdict.CONSISTENT
        assert result.grounding_rate == 1.0

    def test_negative_growth_matches_negative_grounding(self):
        result = verify_claims_against_grounding(
            _claims("Sector growth is -15% year over year."), {"growth_rate_pct": -15},
        )
        assert result.contradicted_claims == 0
        assert result.details[0].verdict == ClaimVerdict.CONSISTENT
        assert result.details[0].relative_diff == 0

    def test_sign_flip_is_contradicted(self):
        result = verify_claims_against_grounding(
            _claims("Sector growth is 15% year over year."), {"growth_rate_pct": -15},
        )
        assert result.contradicted_claims == 1

    def test_tolerance_is_configurable(self):
        result = verify_claims_against_grounding(
            _claims("The market is about $13 billion."),
            {"market_size_usd": 12_000_000_000},
            tolerance=0.05,
        )
        assert result.contradicted_claims == 1

    def test_missing_field_is_unverifiable(self):
        result = verify_claims_against_grounding(_claims("Growth is 300%."), {"market_size_usd": 1})
        assert result.contradicted_claims == 0
        assert result.unverifiable_claims == 1
        assert result.details[0].verdict == ClaimVerdict.UNVERIFIABLE

    def test_zero_grounding_value_is_unverifiable(self):
        result = verify_claims_against_grounding(_claims("Growth is 30%."), {"growth_rate_pct": 0})
        assert result.details[0].verdict == ClaimVerdict.UNVERIFIABLE

    def test_non_numeric_grounding_ignored(self):
        result = verify_claims_against_grounding(
            _claims("Growth is 30%."), {"growth_rate_pct": "n/a"},
        )
        assert result.unverifiable_claims == 1
        result = verify_claims_against_grounding(
            _claims("Growth is 30%."), {"growth_rate_pct": True},
        )
        assert result.unverifiable_claims == 1

    def test_no_grounding(self):
        result = verify_claims_against_grounding(_claims("$5 billion"), None)
        assert result.total_claims == 1
        assert result.unverifiable_claims == 1
        assert result.grounding_rate == 0.0

    def test_percentage_maps_to_growth(self):
        result = verify_claims_against_grounding(
            _claims("Sector growth of 80% a year."), {"growth_rate_pct": 20},
        )
        assert result.details[0].grounding_field == "growth_rate_pct"
        assert result.contradicted_claims == 1

    def test_tvl_context_maps_to_tvl(self):
        result = verify_claims_against_grounding(
            _claims("Its TVL is $2 billion."),
            {"tvl_usd": 2_100_000_000, "market_size_usd": 100},
        )
        assert result.details[0].grounding_field == "tvl_usd"
        assert result.contradicted_claims == 0

    def test_competitor_count(self):
        result = verify_claims_against_grounding(
            _claims("There are 40 competitors already."), {"competitor_count": 8},
        )
        assert result.details[0].grounding_field == "competitor_count"
        assert result.contradicted_claims == 1

    def test_field_map_override(self):
        result = verify_claims_against_grounding(
            _claims("Annual revenue is $10 million."),
            {"revenue_usd": 10_000_000, "market_size_usd": 1},
            field_map={ClaimKind.CURRENCY: "revenue_usd"},
        )
        assert result.details[0].grounding_field == "revenue_usd"
        assert result.contradicted_claims == 0

    def test_accepts_plain_list(self):
        claims = [NumericalClaim(field="x", raw_text="$1", value=1, kind=ClaimKind.CURRENCY)]
        result = verify_claims_against_grounding(claims, {"market_size_usd": 1})
        assert result.grounded_claims == 1

    def test_to_dict(self):
        d = verify_claims_against_grounding(
            _claims("$45 billion"), {"market_size_usd": 12_000_000_000},
        ).to_dict()
        assert d["contradicted_claims"] == 1
        assert d["contradictions"][0]["verdict"] == "contradicted"


class TestHelpers:
    def test_relative_difference(self):
        assert relative_difference(110, 100) == pytest.approx(0.1)
        assert relative_difference(90, -100) == pytest.approx(1.9)
        assert relative_difference(5, 0) is None

    def test_count_without_competitor_context_unmapped(self):
        claim = _claims("We already have 500 users.").to_list()[0]
        assert default_field_for_claim(claim) is None
