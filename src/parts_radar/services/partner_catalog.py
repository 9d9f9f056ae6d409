"""Partner catalog — filtered retrieval and admin CRUD for parts partners.

Partners are soft-deleted (``is_active=False``) so requests, quotes and
audit entries keep pointing at a real record.  Imported partners always
start unverified; only ``verify_partner`` can flip that flag.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parts_radar.domain.enums import PartnerAvailability, PartnerSource
from parts_radar.domain.exceptions import NotFoundError, RequestValidationError
from parts_radar.domain.models import Partner
from parts_radar.domain.schemas import (
    DeliveryOptions,
    PartnerCreate,
    PartnerFilters,
    PartnerResponse,
    PartnerUpdate,
    PaymentTerms,
    PlaceResult,
)
from parts_radar.infra.cache import TTLCache
from parts_radar.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)

# Defaults applied to partners imported from the places lookup
IMPORT_DEFAULT_PRICE_INDEX = 50
IMPORT_DEFAULT_RELIABILITY = 50
IMPORT_DEFAULT_SLA_MINUTES = 60

_CACHE_KEY_ACTIVE = "partners:active"
_CACHE_KEY_ALL = "partners:all"

# Columns a patch may not clear
_REQUIRED_FIELDS = frozenset(c.name for c in Partner.__table__.columns if not c.nullable)


def partner_matches(
    partner: PartnerResponse,
    filters: PartnerFilters,
    distance_km: Optional[float] = None,
    distances_supplied: bool = False,
) -> bool:
    """AND-combine every supplied filter against one partner.

    Radius is checked against a distance computed by the caller; when the
    caller supplied distances, partners without one are out of range.
    """
    if not filters.include_inactive and not partner.is_active:
        return False

    if filters.radius_km is not None and distances_supplied:
        if distance_km is None or distance_km > filters.radius_km:
            return False

    if filters.tier is not None and partner.tier != filters.tier:
        return False

    if filters.availability == PartnerAvailability.ONLINE and not partner.is_online:
        return False

    if filters.min_reliability is not None and partner.reliability_index < filters.min_reliability:
        return False

    if filters.max_sla_minutes is not None and partner.sla_minutes_typical > filters.max_sla_minutes:
        return False

    if filters.payment_method is not None:
        if not getattr(partner.payment_terms, filters.payment_method.value, False):
            return False

    if filters.delivery_required and not partner.delivery.delivery:
        return False

    if filters.types:
        if not set(filters.types) & set(partner.types or []):
            return False

    return True


def _snapshot(partner: Partner, fields) -> dict:
    snap = {}
    for field in fields:
        value = getattr(partner, field)
        snap[field] = value.isoformat() if isinstance(value, datetime) else value
    return snap


class PartnerCatalog:
    """Partner store access with audit logging and a short-lived list cache."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditTrail,
        cache: Optional[TTLCache] = None,
    ):
        self.db = db
        self.audit = audit
        self.cache = cache

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load_partners(self, include_inactive: bool) -> list[PartnerResponse]:
        cache_key = _CACHE_KEY_ALL if include_inactive else _CACHE_KEY_ACTIVE
        if self.cache is not None:
            hit, cached = self.cache.get(cache_key)
            if hit:
                return cached

        stmt = select(Partner).order_by(Partner.created_at, Partner.id)
        if not include_inactive:
            stmt = stmt.where(Partner.is_active == True)  # noqa: E712
        result = await self.db.execute(stmt)
        partners = [PartnerResponse.model_validate(p) for p in result.scalars().all()]

        if self.cache is not None:
            self.cache.put(cache_key, partners)
        return partners

    async def list_partners(
        self,
        filters: Optional[PartnerFilters] = None,
        distances: Optional[dict[str, float]] = None,
    ) -> list[PartnerResponse]:
        """Return partners passing every filter.

        ``distances`` maps partner id to km from the caller's search centre;
        the radius filter is applied only when it is supplied.
        """
        filters = filters or PartnerFilters()
        partners = await self._load_partners(filters.include_inactive)
        supplied = distances is not None
        distances = distances or {}
        return [
            p for p in partners
            if partner_matches(p, filters, distances.get(p.id), supplied)
        ]

    async def get_partner(self, partner_id: str) -> Partner:
        """Read the authoritative record. Raises NotFoundError."""
        partner = await self.db.get(Partner, partner_id)
        if partner is None:
            raise NotFoundError("Partner", partner_id)
        return partner

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_partner(self, draft: PartnerCreate, actor_id: str) -> Partner:
        """Create a partner. Imported partners are always stored unverified."""
        is_verified = draft.is_verified
        if draft.source == PartnerSource.IMPORTED:
            if draft.is_verified:
                logger.info("Ignoring is_verified=True for imported partner %s", draft.name)
            is_verified = False

            if draft.place_id:
                result = await self.db.execute(
                    select(Partner).where(
                        Partner.place_id == draft.place_id,
                        Partner.is_active == True,  # noqa: E712
                    )
                )
                if result.scalars().first() is not None:
                    raise RequestValidationError(f"place {draft.place_id} is already imported")

        now = datetime.now(timezone.utc)
        partner = Partner(
            id=str(uuid.uuid4()),
            source=draft.source.value,
            place_id=draft.place_id,
            name=draft.name,
            lat=draft.lat,
            lng=draft.lng,
            address=draft.address,
            phone=draft.phone,
            email=draft.email,
            website=draft.website,
            types=list(draft.types),
            tier=draft.tier.value,
            price_index=draft.price_index,
            reliability_index=draft.reliability_index,
            sla_minutes_typical=draft.sla_minutes_typical,
            delivery=draft.delivery.model_dump(),
            payment_terms=draft.payment_terms.model_dump(),
            coverage_branches=list(draft.coverage_branches),
            is_active=draft.is_active,
            is_verified=is_verified,
            is_online=draft.is_online,
            notes=draft.notes,
            created_at=now,
            created_by=actor_id,
            updated_at=now,
            updated_by=actor_id,
        )
        self.db.add(partner)
        await self.db.commit()
        self._invalidate()

        logger.info("Created partner %s (%s, source=%s)", partner.id, partner.name, partner.source)
        await self.audit.log_partner_create(actor_id, partner.id, partner.name)
        return partner

    async def import_place(self, place: PlaceResult, actor_id: str) -> Partner:
        """Create an unverified partner from a places lookup result."""
        reliability = (
            round(place.rating * 20) if place.rating else IMPORT_DEFAULT_RELIABILITY
        )
        draft = PartnerCreate(
            source=PartnerSource.IMPORTED,
            place_id=place.place_id,
            name=place.name,
            lat=place.lat,
            lng=place.lng,
            address=place.address,
            phone=place.phone,
            website=place.website,
            types=place.types or ([place.primary_type] if place.primary_type else []),
            price_index=IMPORT_DEFAULT_PRICE_INDEX,
            reliability_index=max(0, min(100, reliability)),
            sla_minutes_typical=IMPORT_DEFAULT_SLA_MINUTES,
            delivery=DeliveryOptions(pickup=True, delivery=False, delivery_fee_base=0),
            payment_terms=PaymentTerms(invoice=True, cash=True, card=True),
            is_verified=False,
            is_online=False,
        )
        return await self.create_partner(draft, actor_id)

    async def update_partner(self, partner_id: str, patch: PartnerUpdate, actor_id: str) -> Partner:
        partner = await self.get_partner(partner_id)
        changes = patch.model_dump(exclude_unset=True, mode="json")
        cleared = sorted(f for f, v in changes.items() if v is None and f in _REQUIRED_FIELDS)
        if cleared:
            raise RequestValidationError(f"{', '.join(cleared)} cannot be empty")
        changed_fields = [f for f, v in changes.items() if getattr(partner, f) != v]
        if not changed_fields:
            return partner

        before = _snapshot(partner, changed_fields)
        for field in changed_fields:
            setattr(partner, field, changes[field])
        partner.updated_at = datetime.now(timezone.utc)
        partner.updated_by = actor_id
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        self._invalidate()

        after = _snapshot(partner, changed_fields)
        summary = ", ".join(f"{f}: {before[f]} → {after[f]}" for f in changed_fields)
        logger.info("Updated partner %s: %s", partner.id, ", ".join(changed_fields))
        await self.audit.log_partner_update(
            actor_id, partner.id, partner.name, summary, before=before, after=after,
        )
        return partner

    async def verify_partner(self, partner_id: str, actor_id: str) -> Partner:
        """Admin confirmation of a partner (the only way to verify an import)."""
        partner = await self.get_partner(partner_id)
        if partner.is_verified:
            return partner
        partner.is_verified = True
        partner.updated_at = datetime.now(timezone.utc)
        partner.updated_by = actor_id
        await self.db.commit()
        self._invalidate()

        await self.audit.log_partner_update(
            actor_id, partner.id, partner.name, "is_verified: False → True",
            before={"is_verified": False}, after={"is_verified": True},
        )
        return partner

    async def delete_partner(self, partner_id: str, actor_id: str) -> bool:
        """Soft-delete: mark the partner inactive and keep the record."""
        partner = await self.get_partner(partner_id)
        if partner.is_active:
            partner.is_active = False
            partner.is_online = False
            partner.updated_at = datetime.now(timezone.utc)
            partner.updated_by = actor_id
            await self.db.commit()
            self._invalidate()
            logger.info("Deactivated partner %s", partner.id)

        await self.audit.log_partner_delete(actor_id, partner.id, partner.name)
        return True

    async def record_heartbeat(self, partner_id: str, is_online: bool, actor_id: str = "system") -> Partner:
        """Refresh liveness. Only a change of the online flag is audited."""
        partner = await self.get_partner(partner_id)
        was_online = bool(partner.is_online)
        partner.is_online = is_online
        partner.last_heartbeat_at = datetime.now(timezone.utc)
        await self.db.commit()
        self._invalidate()

        if was_online != is_online:
            await self.audit.log_partner_update(
                actor_id, partner.id, partner.name, f"is_online: {was_online} → {is_online}",
            )
        return partner

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate()
