"""Impact analysis over a batch of pending parts requests.

Pure-function module — NO database access.

Summarises how many vehicles a request batch touches, what it is likely to
cost and how long parts will take, and raises advisory flags.  The flags are
presentation hints only; nothing here blocks request creation.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from parts_radar.domain.enums import QuoteStatus, Urgency, VehicleStatus
from parts_radar.domain.schemas import ImpactSummary, Vehicle, VehicleStatusBreakdown

# Estimated hours until a part is in hand, by line urgency
URGENCY_HOURS: dict[Urgency, int] = {
    Urgency.CRITICAL: 2,
    Urgency.HIGH: 24,
    Urgency.MEDIUM: 72,
    Urgency.LOW: 168,
}
DEFAULT_LEAD_HOURS = URGENCY_HOURS[Urgency.MEDIUM]

EXPEDITE_URGENCIES = {Urgency.CRITICAL, Urgency.HIGH}

# Touching more vehicles than this suggests splitting the batch
SPLIT_VEHICLE_THRESHOLD = 10


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _urgency(line: Any) -> Optional[Urgency]:
    raw = _field(line, "urgency")
    try:
        return Urgency(raw)
    except ValueError:
        return None


def _line_hours(line: Any) -> int:
    urgency = _urgency(line)
    return URGENCY_HOURS.get(urgency, DEFAULT_LEAD_HOURS)


def _grand_total(quote: Any) -> float:
    totals = _field(quote, "totals") or {}
    return float(_field(totals, "grand_total", 0.0) or 0.0)


def _request_cost(request: Any, quotes: list[Any]) -> float:
    """Cost attributed to one request.

    Selected quote first, then an accepted one, then the cheapest open
    quote; zero when nothing has been quoted.
    """
    if not quotes:
        return 0.0
    selected_id = _field(request, "selected_quote_id")
    if selected_id:
        for quote in quotes:
            if _field(quote, "id") == selected_id:
                return _grand_total(quote)
    for quote in quotes:
        if _field(quote, "status") in (QuoteStatus.ACCEPTED, QuoteStatus.ACCEPTED.value):
            return _grand_total(quote)
    open_quotes = [
        q for q in quotes
        if _field(q, "status") not in (QuoteStatus.REJECTED, QuoteStatus.REJECTED.value)
    ]
    if not open_quotes:
        return 0.0
    return min(_grand_total(q) for q in open_quotes)


# ── Main analysis function ────────────────────────────────────────────────

def analyze_impact(
    requests: Iterable[Any],
    vehicles: Iterable[Vehicle],
    quotes: Optional[Iterable[Any]] = None,
) -> ImpactSummary:
    """Aggregate *requests* into an ImpactSummary.

    ``requests`` and ``quotes`` may be ORM rows, response models or plain
    dicts.  ``vehicles`` is the caller's fleet view; only vehicles touched by
    a request count toward the status breakdown.
    """
    requests = list(requests)
    quotes_by_request: dict[str, list[Any]] = {}
    for quote in quotes or []:
        quotes_by_request.setdefault(_field(quote, "request_id"), []).append(quote)

    touched: list[str] = []
    seen: set[str] = set()
    total_parts = 0
    estimated_cost = 0.0
    expedite = False
    per_request_hours: list[float] = []

    for request in requests:
        for vehicle_id in _field(request, "vehicle_ids") or []:
            if vehicle_id not in seen:
                seen.add(vehicle_id)
                touched.append(vehicle_id)

        lines = list(_field(request, "part_lines") or [])
        total_parts += len(lines)
        if any(_urgency(line) in EXPEDITE_URGENCIES for line in lines):
            expedite = True
        if lines:
            per_request_hours.append(sum(_line_hours(l) for l in lines) / len(lines))

        estimated_cost += _request_cost(request, quotes_by_request.get(_field(request, "id"), []))

    breakdown = VehicleStatusBreakdown()
    for vehicle in vehicles:
        if vehicle.id not in seen:
            continue
        if vehicle.status == VehicleStatus.AVAILABLE:
            breakdown.available += 1
        elif vehicle.status == VehicleStatus.RENTED:
            breakdown.rented += 1
        elif vehicle.status == VehicleStatus.MAINTENANCE:
            breakdown.maintenance += 1

    avg_lead = (
        round(sum(per_request_hours) / len(per_request_hours)) if per_request_hours else 0
    )
    consider_splitting = len(touched) > SPLIT_VEHICLE_THRESHOLD

    warnings: list[str] = []
    if expedite:
        warnings.append(
            "Critical or high urgency parts detected. These may require expedited processing."
        )
    if consider_splitting:
        warnings.append(
            f"Large bulk request: {len(touched)} vehicles affected. "
            "Consider splitting into smaller batches."
        )

    return ImpactSummary(
        requests_count=len(requests),
        total_vehicles=len(touched),
        total_parts=total_parts,
        estimated_total_cost=round(estimated_cost, 2),
        avg_lead_time_hours=avg_lead,
        status_breakdown=breakdown,
        expedite=expedite,
        consider_splitting=consider_splitting,
        warnings=warnings,
    )
