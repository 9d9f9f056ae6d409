"""Unit tests for the explainable partner scorer."""

from __future__ import annotations

import logging

import pytest

from parts_radar.domain.schemas import ScoringWeights
from parts_radar.services.partner_scorer import (
    DEFAULT_EXPLANATION,
    ETA_CEILING_MINUTES,
    NEUTRAL_SPEED,
    rank_partners,
    score_partner,
    validate_weights,
)

WEIGHTS = {"cost": 0.4, "speed": 0.3, "reliability": 0.3}


# ---------------------------------------------------------------------------
# Helpers to build minimal dicts
# ---------------------------------------------------------------------------

def _partner(partner_id="p1", price_index=50, reliability_index=50):
    return {
        "id": partner_id,
        "price_index": price_index,
        "reliability_index": reliability_index,
    }


def _quote(partner_id="p1", grand_total=100.0):
    return {
        "partner_id": partner_id,
        "totals": {"parts_total": grand_total, "delivery_fee": 0.0, "grand_total": grand_total},
    }


# ---------------------------------------------------------------------------
# score_partner
# ---------------------------------------------------------------------------


class TestScorePartner:
    def test_weighted_total_and_sub_scores(self):
        result = score_partner(_partner(price_index=20, reliability_index=90), eta_minutes=60, weights=WEIGHTS)

        assert result.partner_id == "p1"
        assert result.cost_score == 80
        assert result.speed_score == 50
        assert result.reliability_score == 90
        assert result.score == 74

    def test_explanation_lists_strong_factors(self):
        result = score_partner(_partner(price_index=20, reliability_index=90), eta_minutes=60, weights=WEIGHTS)
        assert result.explanation == "Best because: +low cost (20), +reliability 90"

    def test_fast_eta_is_explained(self):
        result = score_partner(_partner(), eta_minutes=12, weights=WEIGHTS)
        assert result.speed_score == 90
        assert "+ETA 12m" in result.explanation

    def test_standard_option_when_nothing_stands_out(self):
        result = score_partner(_partner(), weights=WEIGHTS)
        assert result.explanation == DEFAULT_EXPLANATION

    def test_unknown_eta_is_neutral(self):
        result = score_partner(_partner(), eta_minutes=None, weights=WEIGHTS)
        assert result.speed_score == int(NEUTRAL_SPEED * 100)

    def test_eta_beyond_ceiling_scores_zero_speed(self):
        result = score_partner(_partner(), eta_minutes=ETA_CEILING_MINUTES * 2, weights=WEIGHTS)
        assert result.speed_score == 0

    def test_quote_total_replaces_price_index(self):
        result = score_partner(_partner(price_index=90), quote=_quote(grand_total=30), weights=WEIGHTS)
        assert result.cost_score == 70
        # 0.7 is not strictly above the explanation threshold
        assert "low cost" not in result.explanation

    def test_cost_ceiling_normalises_quote_total(self):
        result = score_partner(
            _partner(), quote=_quote(grand_total=250), weights=WEIGHTS, cost_ceiling=1000,
        )
        assert result.cost_score == 75

    def test_weights_are_required(self):
        with pytest.raises(ValueError):
            score_partner(_partner(), weights=None)

    def test_accepts_weights_model(self):
        weights = ScoringWeights(cost=1.0, speed=0.0, reliability=0.0)
        result = score_partner(_partner(price_index=10), weights=weights)
        assert result.score == 90


class TestScoringBounds:
    @pytest.mark.parametrize("price_index", [0, 50, 100])
    @pytest.mark.parametrize("reliability_index", [0, 50, 100])
    @pytest.mark.parametrize("eta", [None, 0, 60, 500])
    def test_scores_stay_in_range(self, price_index, reliability_index, eta):
        result = score_partner(
            _partner(price_index=price_index, reliability_index=reliability_index),
            eta_minutes=eta,
            weights=WEIGHTS,
        )
        for value in (result.score, result.cost_score, result.speed_score, result.reliability_score):
            assert 0 <= value <= 100

    def test_overweighted_inputs_are_clamped(self):
        heavy = {"cost": 1.0, "speed": 1.0, "reliability": 1.0}
        result = score_partner(_partner(price_index=0, reliability_index=100), eta_minutes=0, weights=heavy)
        assert result.score == 100

    def test_quote_far_above_ceiling_floors_cost(self):
        result = score_partner(_partner(), quote=_quote(grand_total=5000), weights=WEIGHTS)
        assert result.cost_score == 0


class TestCostMonotonicity:
    def test_cheaper_partner_never_scores_lower(self):
        scores = [
            score_partner(_partner(price_index=p, reliability_index=70), eta_minutes=45, weights=WEIGHTS).score
            for p in range(100, -1, -10)
        ]
        assert scores == sorted(scores)

    def test_cheaper_quote_never_scores_lower(self):
        expensive = score_partner(_partner(), quote=_quote(grand_total=80), weights=WEIGHTS)
        cheap = score_partner(_partner(), quote=_quote(grand_total=40), weights=WEIGHTS)
        assert cheap.score >= expensive.score


# ---------------------------------------------------------------------------
# rank_partners
# ---------------------------------------------------------------------------


class TestRankPartners:
    def test_sorted_by_score_descending(self):
        partners = [
            _partner("slow", price_index=80, reliability_index=40),
            _partner("best", price_index=10, reliability_index=95),
            _partner("mid", price_index=50, reliability_index=60),
        ]
        ranked = rank_partners(partners, etas={"best": 10}, weights=WEIGHTS)

        assert [s.partner_id for s in ranked] == ["best", "mid", "slow"]

    def test_quotes_and_etas_matched_by_partner_id(self):
        partners = [_partner("a", price_index=90), _partner("b", price_index=90)]
        quotes = [_quote("b", grand_total=10)]
        ranked = rank_partners(partners, quotes=quotes, etas={"a": 200}, weights=WEIGHTS)

        by_id = {s.partner_id: s for s in ranked}
        assert by_id["b"].cost_score == 90
        assert by_id["a"].cost_score == 10
        assert by_id["a"].speed_score == 0
        assert ranked[0].partner_id == "b"

    def test_tie_returns_both_partners(self):
        partners = [_partner("x"), _partner("y")]
        ranked = rank_partners(partners, weights=WEIGHTS)

        assert [s.score for s in ranked] == [50, 50]
        assert {s.partner_id for s in ranked} == {"x", "y"}

    def test_empty_input(self):
        assert rank_partners([], weights=WEIGHTS) == []


class TestValidateWeights:
    def test_default_weights_are_valid(self):
        assert validate_weights(WEIGHTS) is True

    def test_bad_sum_only_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="parts_radar.services.partner_scorer"):
            assert validate_weights({"cost": 1.0, "speed": 1.0, "reliability": 0.0}) is False
        assert "sum to 2.00" in caplog.text
