"""Explainable partner scorer.

Pure-function module — NO database access.

Computes a 0-100 score from three weighted factors:
    - Cost         — quote grand total (or the partner's price index)
    - Speed        — ETA in minutes against a 120-minute reference ceiling
    - Reliability  — the partner's reliability index

Partners and quotes may be ORM rows, pydantic models or plain dicts, so the
scorer can be called from the catalog routes, from tests, or from offline
jobs alike.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from parts_radar.domain.schemas import PartnerScore, ScoringWeights

logger = logging.getLogger(__name__)

# Speed contributes zero beyond this ETA
ETA_CEILING_MINUTES = 120

# Speed factor used when no ETA is known
NEUTRAL_SPEED = 0.5

# A factor must exceed this to be named in the explanation
EXPLANATION_THRESHOLD = 0.7

DEFAULT_EXPLANATION = "Standard option"

# Tolerance before validate_weights() warns about a weight sum far from 1
_WEIGHT_SUM_TOLERANCE = 0.05


# ── Helpers ──────────────────────────────────────────────────────────────────

def _field(obj: Any, name: str, default=None):
    """Read *name* from a dict or an attribute-style object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _grand_total(quote: Any) -> Optional[float]:
    totals = _field(quote, "totals")
    value = _field(totals, "grand_total")
    return float(value) if value is not None else None


def _weights_tuple(weights) -> tuple[float, float, float]:
    return (
        float(_field(weights, "cost", 0.0)),
        float(_field(weights, "speed", 0.0)),
        float(_field(weights, "reliability", 0.0)),
    )


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def validate_weights(weights: ScoringWeights | dict) -> bool:
    """Return True when the weights sum to roughly 1.

    Advisory only: a warning is logged and the weights are still used as
    given. Callers are responsible for sane weights.
    """
    total = sum(_weights_tuple(weights))
    if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
        logger.warning("Scoring weights sum to %.2f, expected ~1.0", total)
        return False
    return True


# ── Main scorer ──────────────────────────────────────────────────────────────

def score_partner(
    partner: Any,
    quote: Any = None,
    eta_minutes: Optional[float] = None,
    weights: ScoringWeights | dict | None = None,
    cost_ceiling: Optional[float] = None,
) -> PartnerScore:
    """Score one partner.

    Parameters
    ----------
    partner
        Needs ``id``, ``price_index`` and ``reliability_index``.
    quote
        Optional quote; when present its ``totals.grand_total`` is the cost
        input instead of the partner's price index.
    eta_minutes
        Travel/turnaround ETA. ``None`` scores speed as neutral.
    weights
        ``cost`` / ``speed`` / ``reliability`` weights. Required; they are
        not normalised.
    cost_ceiling
        When given, a quote total is expressed as a percentage of this
        ceiling before scoring, so currency totals land on the same 0-100
        scale as the price index.

    Returns
    -------
    PartnerScore
        Integer total and sub-scores (0-100) and the explanation text.
    """
    if weights is None:
        raise ValueError("Scoring weights are required")
    w_cost, w_speed, w_reliability = _weights_tuple(weights)

    # ── Cost ─────────────────────────────────────────────────────────────
    grand_total = _grand_total(quote) if quote is not None else None
    if grand_total is not None:
        cost_value = grand_total
        if cost_ceiling and cost_ceiling > 0:
            cost_value = grand_total / cost_ceiling * 100
    else:
        cost_value = float(_field(partner, "price_index", 50))
    cost_factor = _clamp(1 - cost_value / 100)

    # ── Speed ────────────────────────────────────────────────────────────
    if eta_minutes is not None:
        speed_factor = _clamp(1 - eta_minutes / ETA_CEILING_MINUTES)
    else:
        speed_factor = NEUTRAL_SPEED

    # ── Reliability ──────────────────────────────────────────────────────
    reliability_index = _field(partner, "reliability_index", 0) or 0
    reliability_factor = _clamp(reliability_index / 100)

    # ── Composite ────────────────────────────────────────────────────────
    total = (
        cost_factor * w_cost
        + speed_factor * w_speed
        + reliability_factor * w_reliability
    ) * 100

    # ── Explanation ──────────────────────────────────────────────────────
    reasons: list[str] = []
    if cost_factor > EXPLANATION_THRESHOLD:
        reasons.append(f"+low cost ({cost_value:.0f})")
    if speed_factor > EXPLANATION_THRESHOLD and eta_minutes is not None:
        reasons.append(f"+ETA {eta_minutes:.0f}m")
    if reliability_factor > EXPLANATION_THRESHOLD:
        reasons.append(f"+reliability {reliability_index}")

    explanation = (
        f"Best because: {', '.join(reasons)}" if reasons else DEFAULT_EXPLANATION
    )

    return PartnerScore(
        partner_id=str(_field(partner, "id")),
        score=int(round(_clamp(total, 0.0, 100.0))),
        cost_score=int(round(cost_factor * 100)),
        speed_score=int(round(speed_factor * 100)),
        reliability_score=int(round(reliability_factor * 100)),
        explanation=explanation,
    )


# ── Ranking ─────────────────────────────────────────────────────────────────

def rank_partners(
    partners: list,
    quotes: list | None = None,
    etas: dict[str, float] | None = None,
    weights: ScoringWeights | dict | None = None,
    cost_ceiling: Optional[float] = None,
) -> list[PartnerScore]:
    """Score every partner and sort by score, highest first.

    Quotes and ETAs are matched to partners by partner id. Ties keep the
    input order (Python's sort is stable) but that order is not part of the
    contract.
    """
    quotes_by_partner: dict[str, Any] = {}
    for quote in quotes or []:
        # First quote per partner wins
        quotes_by_partner.setdefault(str(_field(quote, "partner_id")), quote)
    etas = etas or {}

    scores = [
        score_partner(
            partner,
            quotes_by_partner.get(str(_field(partner, "id"))),
            etas.get(str(_field(partner, "id"))),
            weights,
            cost_ceiling=cost_ceiling,
        )
        for partner in partners
    ]
    return sorted(scores, key=lambda s: s.score, reverse=True)
