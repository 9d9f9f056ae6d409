"""Request notifier — prepares outbound partner messages for a parts request.

Delivery (email, chat, SMS) belongs to the host application, which injects
an async ``dispatcher``.  This module only shapes the content and hands it
off; a failing or missing dispatcher never fails the pipeline operation.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from parts_radar.domain.models import PartsRequest

logger = logging.getLogger(__name__)


@dataclass
class RequestNotification:
    """Structured message content for one outbound notification."""

    kind: str  # "request_sent" | "quote_accepted"
    request_id: str
    partner_ids: list[str]
    vehicle_ids: list[str]
    part_lines: list[dict]
    constraints: dict
    subject: str
    body: str
    quote_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)


Dispatcher = Callable[[RequestNotification], Awaitable[None]]


def _format_part_lines(part_lines: list[dict]) -> str:
    rows = []
    for line in part_lines:
        row = f"- {line.get('qty', 1)} x {line.get('part_key', '')}"
        if line.get("description"):
            row += f" ({line['description']})"
        row += f" [{line.get('urgency', 'medium')}]"
        rows.append(row)
    return "\n".join(rows)


def _format_constraints(constraints: dict) -> str:
    bits = [f"within {constraints.get('radius_km', 50):g} km"]
    if constraints.get("preferred_tier"):
        bits.append(f"tier {constraints['preferred_tier']}")
    if constraints.get("must_be_in_stock"):
        bits.append("in stock only")
    if constraints.get("max_total_cost") is not None:
        bits.append(f"max total {constraints['max_total_cost']:.2f}")
    if constraints.get("delivery_required"):
        bits.append("delivery required")
    return ", ".join(bits)


def build_request_sent(request: PartsRequest, partner_ids: list[str]) -> RequestNotification:
    vehicle_ids = list(request.vehicle_ids or [])
    part_lines = list(request.part_lines or [])
    constraints = dict(request.constraints or {})
    body = (
        f"Parts request {request.id} for {len(vehicle_ids)} vehicle"
        f"{'s' if len(vehicle_ids) != 1 else ''}: {', '.join(vehicle_ids)}\n\n"
        f"Parts:\n{_format_part_lines(part_lines)}\n\n"
        f"Constraints: {_format_constraints(constraints)}"
    )
    return RequestNotification(
        kind="request_sent",
        request_id=request.id,
        partner_ids=list(partner_ids),
        vehicle_ids=vehicle_ids,
        part_lines=part_lines,
        constraints=constraints,
        subject=f"Quote request: {len(part_lines)} part line{'s' if len(part_lines) != 1 else ''}",
        body=body,
    )


def build_quote_accepted(request: PartsRequest, partner_id: str, quote_id: str) -> RequestNotification:
    return RequestNotification(
        kind="quote_accepted",
        request_id=request.id,
        partner_ids=[partner_id],
        vehicle_ids=list(request.vehicle_ids or []),
        part_lines=list(request.part_lines or []),
        constraints=dict(request.constraints or {}),
        subject="Your quote was accepted",
        body=f"Quote {quote_id} for parts request {request.id} has been accepted.",
        quote_id=quote_id,
    )


class RequestNotifier:
    """Best-effort hand-off of request notifications."""

    def __init__(self, dispatcher: Optional[Dispatcher] = None):
        self._dispatcher = dispatcher

    async def send(self, notification: RequestNotification) -> bool:
        if self._dispatcher is None:
            logger.debug("No dispatcher configured; skipping %s for %s",
                         notification.kind, notification.request_id)
            return False
        try:
            await self._dispatcher(notification)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Notification dispatch failed (%s, request=%s): %s",
                notification.kind, notification.request_id, exc,
            )
            return False
        return True
