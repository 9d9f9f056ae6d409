"""Request pipeline — parts request / quote / acceptance workflow.

Creates requests (one per vehicle, or one per compatibility group in bulk
mode), moves them through the request state machine, attaches partner
quotes and accepts at most one quote per request.

Every status change is a conditional UPDATE on the current status, so two
callers racing on the same request cannot both succeed.  Transitions and
acceptance always read the authoritative row; only ``list_requests`` is
served from the short-lived cache.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parts_radar.domain.enums import (
    Availability,
    QuoteStatus,
    RequestMode,
    RequestStatus,
)
from parts_radar.domain.exceptions import NotFoundError, RequestValidationError
from parts_radar.domain.models import Partner, PartsRequest, Quote
from parts_radar.domain.schemas import (
    BulkRequestCreate,
    PartLine,
    PartsRequestCreate,
    PartsRequestResponse,
    PartsRequestUpdate,
    QuoteCreate,
    QuoteLine,
    QuoteRevise,
    QuoteTotals,
)
from parts_radar.infra.cache import TTLCache
from parts_radar.services.audit_trail import AuditTrail
from parts_radar.services.compatibility_grouper import group_vehicles
from parts_radar.services.request_notifier import (
    RequestNotifier,
    build_quote_accepted,
    build_request_sent,
)
from parts_radar.services.request_state_machine import (
    CALLER_DRIVEN_TARGETS,
    QUOTABLE_STATES,
    TERMINAL_STATES,
    InvalidTransitionError,
    RequestStateMachine,
)

logger = logging.getLogger(__name__)

S = RequestStatus

# Quote statuses that can still be accepted, revised or rejected
OPEN_QUOTE_STATUSES = (QuoteStatus.OFFERED.value, QuoteStatus.REVISED.value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # Naive values are UTC; SQLite stores and returns them without an offset
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_request_content(vehicle_ids: list[str], part_lines: list[PartLine]) -> None:
    """Reject empty vehicle sets, empty part lists and non-positive quantities."""
    if not vehicle_ids:
        raise RequestValidationError("at least one vehicle is required")
    if not part_lines:
        raise RequestValidationError("at least one part line is required")
    for index, line in enumerate(part_lines):
        if not line.part_key or not line.part_key.strip():
            raise RequestValidationError(f"part line {index + 1} has no part key")
        if line.qty < 1:
            raise RequestValidationError(
                f"part line {index + 1} ({line.part_key}) must have qty >= 1"
            )


def _dedupe(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def compute_quote_totals(
    lines: list[QuoteLine],
    delivery_fee: float = 0.0,
    tax: Optional[float] = None,
) -> QuoteTotals:
    """Sum quote lines and add delivery fee and tax into a grand total."""
    parts_total = round(sum(line.qty * line.unit_price for line in lines), 2)
    grand_total = round(parts_total + delivery_fee + (tax or 0.0), 2)
    return QuoteTotals(
        parts_total=parts_total,
        delivery_fee=round(delivery_fee, 2),
        tax=tax,
        grand_total=grand_total,
    )


def _validate_quote_lines(lines: list[QuoteLine]) -> None:
    if not lines:
        raise RequestValidationError("a quote needs at least one line")
    for line in lines:
        if line.qty < 1:
            raise RequestValidationError(f"quote line {line.part_key} must have qty >= 1")


def _check_quote_terms(lines: list[QuoteLine], valid_until: Optional[datetime], constraints: dict) -> None:
    """Line, expiry and in-stock checks shared by submission and revision."""
    _validate_quote_lines(lines)
    if valid_until is not None and _as_utc(valid_until) <= _utcnow():
        raise RequestValidationError("quote validity has already expired")
    if constraints.get("must_be_in_stock") and any(
        line.availability != Availability.IN_STOCK for line in lines
    ):
        raise RequestValidationError("request requires every line to be in stock")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class RequestPipeline:
    """Drives parts requests from draft through acceptance to closure."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditTrail,
        notifier: Optional[RequestNotifier] = None,
        state_machine: Optional[RequestStateMachine] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.db = db
        self.audit = audit
        self.notifier = notifier or RequestNotifier()
        self.state_machine = state_machine or RequestStateMachine()
        self.cache = cache

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_request(self, request_id: str) -> PartsRequest:
        """Read the authoritative record. Raises NotFoundError."""
        request = await self.db.get(PartsRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundError("Request", request_id)
        return request

    async def _get_quote(self, quote_id: str) -> Quote:
        quote = await self.db.get(Quote, quote_id, populate_existing=True)
        if quote is None:
            raise NotFoundError("Quote", quote_id)
        return quote

    async def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        created_by: Optional[str] = None,
    ) -> list[PartsRequestResponse]:
        cache_key = ("requests", status.value if status else None, created_by)
        if self.cache is not None:
            hit, cached = self.cache.get(cache_key)
            if hit:
                return cached

        stmt = (
            select(PartsRequest)
            .order_by(PartsRequest.created_at.desc(), PartsRequest.id)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(PartsRequest.status == status.value)
        if created_by:
            stmt = stmt.where(PartsRequest.created_by == created_by)
        result = await self.db.execute(stmt)
        requests = [PartsRequestResponse.model_validate(r) for r in result.scalars().all()]

        if self.cache is not None:
            self.cache.put(cache_key, requests)
        return requests

    async def list_quotes(self, request_id: str) -> list[Quote]:
        await self.get_request(request_id)
        result = await self.db.execute(
            select(Quote)
            .where(Quote.request_id == request_id)
            .order_by(Quote.created_at, Quote.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _new_request(
        self,
        mode: RequestMode,
        vehicle_ids: list[str],
        part_lines: list[PartLine],
        constraints,
        actor_id: str,
        branch_id: Optional[str] = None,
        group_name: Optional[str] = None,
    ) -> PartsRequest:
        now = _utcnow()
        return PartsRequest(
            id=str(uuid.uuid4()),
            created_at=now,
            created_by=actor_id,
            mode=mode.value,
            vehicle_ids=vehicle_ids,
            branch_id=branch_id,
            group_name=group_name,
            part_lines=[line.model_dump(mode="json") for line in part_lines],
            constraints=constraints.model_dump(mode="json"),
            status=S.DRAFT.value,
            updated_at=now,
            updated_by=actor_id,
        )

    async def create_request(self, draft: PartsRequestCreate, actor_id: str) -> PartsRequest:
        """Create one draft request for an explicit vehicle set (no grouping)."""
        vehicle_ids = _dedupe(draft.vehicle_ids)
        validate_request_content(vehicle_ids, draft.part_lines)
        if draft.mode == RequestMode.SINGLE and len(vehicle_ids) != 1:
            raise RequestValidationError("single mode takes exactly one vehicle")

        request = self._new_request(
            draft.mode, vehicle_ids, draft.part_lines, draft.constraints,
            actor_id, branch_id=draft.branch_id,
        )
        self.db.add(request)
        await self.db.commit()
        self._invalidate()

        logger.info("Created %s request %s for %d vehicle(s)",
                    request.mode, request.id, len(vehicle_ids))
        await self.audit.log_request_create(actor_id, request.id, draft.mode, vehicle_ids)
        return request

    async def create_bulk_requests(self, payload: BulkRequestCreate, actor_id: str) -> list[PartsRequest]:
        """Split the vehicles by compatibility and create one draft per group."""
        vehicle_ids = _dedupe([v.id for v in payload.vehicles])
        validate_request_content(vehicle_ids, payload.part_lines)

        seen: set[str] = set()
        vehicles = []
        for vehicle in payload.vehicles:
            if vehicle.id not in seen:
                seen.add(vehicle.id)
                vehicles.append(vehicle)

        groups = group_vehicles(vehicles, payload.rules)
        requests = [
            self._new_request(
                RequestMode.BULK,
                [v.id for v in group.vehicles],
                payload.part_lines,
                payload.constraints,
                actor_id,
                branch_id=payload.branch_id,
                group_name=group.name,
            )
            for group in groups
        ]
        self.db.add_all(requests)
        await self.db.commit()
        self._invalidate()

        logger.info("Created %d bulk request(s) for %d vehicles", len(requests), len(vehicle_ids))
        for request in requests:
            await self.audit.log_request_create(
                actor_id, request.id, RequestMode.BULK, list(request.vehicle_ids),
            )
        return requests

    async def update_request(self, request_id: str, patch: PartsRequestUpdate, actor_id: str) -> PartsRequest:
        """Edit part lines / constraints / branch while the request is a draft."""
        request = await self.get_request(request_id)
        current = RequestStatus(request.status)
        if current != S.DRAFT:
            raise InvalidTransitionError(current, current, "Only draft requests can be edited")

        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            return request

        before = {k: getattr(request, k) for k in changes}
        if patch.part_lines is not None:
            validate_request_content(list(request.vehicle_ids), patch.part_lines)
            request.part_lines = [line.model_dump(mode="json") for line in patch.part_lines]
        if patch.constraints is not None:
            request.constraints = patch.constraints.model_dump(mode="json")
        if "branch_id" in changes:
            request.branch_id = patch.branch_id
        request.updated_at = _utcnow()
        request.updated_by = actor_id
        await self.db.commit()
        self._invalidate()

        after = {k: getattr(request, k) for k in changes}
        await self.audit.log(
            "request_update",
            f"Updated request fields: {', '.join(sorted(changes))}",
            actor_id,
            request_id=request.id,
            vehicle_ids=list(request.vehicle_ids),
            before_snapshot=before,
            after_snapshot=after,
        )
        return request

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def _apply_status(
        self,
        request: PartsRequest,
        target: RequestStatus,
        actor_id: str,
        **extra_values,
    ) -> RequestStatus:
        """Conditionally move *request* to *target*; returns the old status.

        Does not commit.  Fails if the stored status no longer matches the
        one the transition was validated against.
        """
        current = RequestStatus(request.status)
        self.state_machine.validate_transition(current, target)

        result = await self.db.execute(
            update(PartsRequest)
            .where(PartsRequest.id == request.id, PartsRequest.status == current.value)
            .values(
                status=target.value,
                updated_at=_utcnow(),
                updated_by=actor_id,
                **extra_values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionError(
                current, target, "Request was modified by another operation; reload and retry",
            )
        return current

    async def _commit_transition(self, request: PartsRequest) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(request)
        self._invalidate()

    async def _log_transition(
        self, actor_id: str, request: PartsRequest, old: RequestStatus, new: RequestStatus,
    ) -> None:
        logger.info("Request %s: %s -> %s", request.id, old.value, new.value)
        await self.audit.log_request_status_change(
            actor_id, request.id, old.value, new.value, list(request.vehicle_ids or []),
        )

    async def dispatch_request(self, request_id: str, partner_ids: list[str], actor_id: str) -> PartsRequest:
        """Send a draft request out to partners (draft -> sent)."""
        partner_ids = _dedupe(partner_ids)
        if not partner_ids:
            raise RequestValidationError("at least one partner is required to send a request")

        request = await self.get_request(request_id)
        for partner_id in partner_ids:
            partner = await self.db.get(Partner, partner_id)
            if partner is None:
                raise NotFoundError("Partner", partner_id)
            if not partner.is_active:
                raise RequestValidationError(f"partner {partner.name} is inactive")

        try:
            old = await self._apply_status(request, S.SENT, actor_id)
        except Exception:
            await self.db.rollback()
            raise
        await self._commit_transition(request)
        await self._log_transition(actor_id, request, old, S.SENT)

        await self.notifier.send(build_request_sent(request, partner_ids))
        return request

    async def advance_request(self, request_id: str, target: RequestStatus, actor_id: str) -> PartsRequest:
        """Caller-driven forward move: approved -> ordered -> received -> closed."""
        target = RequestStatus(target)
        request = await self.get_request(request_id)
        if target not in CALLER_DRIVEN_TARGETS:
            raise InvalidTransitionError(
                RequestStatus(request.status), target,
                f"{target.value} is reached through its own operation",
            )
        try:
            old = await self._apply_status(request, target, actor_id)
        except Exception:
            await self.db.rollback()
            raise
        await self._commit_transition(request)
        await self._log_transition(actor_id, request, old, target)
        return request

    async def cancel_request(self, request_id: str, actor_id: str, reason: Optional[str] = None) -> PartsRequest:
        """Cancel from any non-terminal state."""
        request = await self.get_request(request_id)
        try:
            old = await self._apply_status(request, S.CANCELLED, actor_id)
        except Exception:
            await self.db.rollback()
            raise
        await self._commit_transition(request)
        await self._log_transition(actor_id, request, old, S.CANCELLED)
        if reason:
            logger.info("Request %s cancelled: %s", request.id, reason)
        return request

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def submit_quote(self, payload: QuoteCreate, actor_id: str) -> Quote:
        """Attach a partner quote. The first quote moves a sent request to quoted."""
        request = await self.get_request(payload.request_id)
        current = RequestStatus(request.status)
        if current not in QUOTABLE_STATES:
            raise InvalidTransitionError(current, S.QUOTED, "Request is not accepting quotes")

        partner = await self.db.get(Partner, payload.partner_id)
        if partner is None:
            raise NotFoundError("Partner", payload.partner_id)

        constraints = request.constraints or {}
        _check_quote_terms(payload.lines, payload.valid_until, constraints)

        delivery = partner.delivery or {}
        delivery_fee = 0.0
        if constraints.get("delivery_required") and delivery.get("delivery"):
            delivery_fee = float(delivery.get("delivery_fee_base") or 0.0)
        totals = compute_quote_totals(payload.lines, delivery_fee, payload.tax)

        now = _utcnow()
        quote = Quote(
            id=str(uuid.uuid4()),
            request_id=request.id,
            partner_id=partner.id,
            lines=[line.model_dump(mode="json") for line in payload.lines],
            totals=totals.model_dump(),
            eta_minutes=payload.eta_minutes,
            valid_until=_as_utc(payload.valid_until),
            status=QuoteStatus.OFFERED.value,
            created_at=now,
            updated_at=now,
        )

        moved_from: Optional[RequestStatus] = None
        try:
            self.db.add(quote)
            if current == S.SENT:
                moved_from = await self._apply_status(request, S.QUOTED, actor_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.refresh(request)
        self._invalidate()

        logger.info("Quote %s from partner %s on request %s: %.2f",
                    quote.id, partner.id, request.id, totals.grand_total)
        await self.audit.log_quote_create(actor_id, quote.id, request.id, partner.id, totals.grand_total)
        if moved_from is not None:
            await self._log_transition(actor_id, request, moved_from, S.QUOTED)
        return quote

    async def _open_quote(self, quote_id: str, action: str) -> tuple[Quote, PartsRequest]:
        quote = await self._get_quote(quote_id)
        request = await self.get_request(quote.request_id)
        if quote.status not in OPEN_QUOTE_STATUSES:
            raise InvalidTransitionError(
                RequestStatus(request.status), RequestStatus(request.status),
                f"Cannot {action} a quote that is {quote.status}",
            )
        return quote, request

    async def revise_quote(self, quote_id: str, payload: QuoteRevise, actor_id: str) -> Quote:
        quote, request = await self._open_quote(quote_id, "revise")
        current = RequestStatus(request.status)
        if current not in QUOTABLE_STATES:
            raise InvalidTransitionError(current, current, "Request is not accepting quote revisions")

        _check_quote_terms(payload.lines, payload.valid_until, request.constraints or {})
        previous_total = (quote.totals or {}).get("grand_total")
        delivery_fee = float((quote.totals or {}).get("delivery_fee") or 0.0)
        tax = payload.tax if payload.tax is not None else (quote.totals or {}).get("tax")
        totals = compute_quote_totals(payload.lines, delivery_fee, tax)

        quote.lines = [line.model_dump(mode="json") for line in payload.lines]
        quote.totals = totals.model_dump()
        if payload.eta_minutes is not None:
            quote.eta_minutes = payload.eta_minutes
        if payload.valid_until is not None:
            quote.valid_until = _as_utc(payload.valid_until)
        quote.status = QuoteStatus.REVISED.value
        quote.updated_at = _utcnow()
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.audit.log(
            "quote_update",
            f"Quote revised: {previous_total} → {totals.grand_total:.2f}",
            actor_id,
            quote_id=quote.id,
            request_id=request.id,
            partner_ids=[quote.partner_id],
        )
        return quote

    async def reject_quote(self, quote_id: str, actor_id: str) -> Quote:
        quote, request = await self._open_quote(quote_id, "reject")
        current = RequestStatus(request.status)
        if current in TERMINAL_STATES:
            raise InvalidTransitionError(current, current, f"Request is {current.value}; its quotes are closed")
        quote.status = QuoteStatus.REJECTED.value
        quote.updated_at = _utcnow()
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.audit.log_quote_reject(actor_id, quote.id, request.id, quote.partner_id)
        return quote

    async def accept_quote(self, quote_id: str, request_id: str, actor_id: str) -> PartsRequest:
        """Accept one quote and approve its request, all in one transaction.

        Sub-steps: quote -> accepted; sibling quotes untouched; selected
        quote/partner stamped on the request; request quoted -> approved.
        Fails with InvalidTransitionError unless the request is ``quoted``,
        which also makes a second acceptance on the same request fail.
        """
        quote = await self._get_quote(quote_id)
        if quote.request_id != request_id:
            raise RequestValidationError("quote does not belong to this request")

        request = await self.get_request(request_id)
        current = RequestStatus(request.status)
        self.state_machine.validate_transition(current, S.APPROVED)

        if quote.status not in OPEN_QUOTE_STATUSES:
            raise InvalidTransitionError(current, S.APPROVED, f"Quote is {quote.status}")
        if _as_utc(quote.valid_until) <= _utcnow():
            raise InvalidTransitionError(current, S.APPROVED, "Quote has expired")

        try:
            await self._apply_status(
                request, S.APPROVED, actor_id,
                selected_quote_id=quote.id,
                selected_partner_id=quote.partner_id,
            )
            result = await self.db.execute(
                update(Quote)
                .where(Quote.id == quote.id, Quote.status.in_(OPEN_QUOTE_STATUSES))
                .values(status=QuoteStatus.ACCEPTED.value, updated_at=_utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(
                    current, S.APPROVED, "Quote was modified by another operation",
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.warning("Accepting quote %s on request %s rolled back", quote_id, request_id)
            raise

        await self.db.refresh(request)
        await self.db.refresh(quote)
        self._invalidate()

        logger.info("Accepted quote %s (partner %s) for request %s",
                    quote.id, quote.partner_id, request.id)
        await self.audit.log_quote_accept(actor_id, quote.id, request.id, quote.partner_id)
        await self._log_transition(actor_id, request, current, S.APPROVED)
        await self.notifier.send(build_quote_accepted(request, quote.partner_id, quote.id))
        return request

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate()
