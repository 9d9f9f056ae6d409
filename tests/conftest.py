"""Shared test infrastructure for the Parts Radar test suite.

Provides:
- session_factory: async SQLite database (file in tmp_path) with all tables
- db_session: session for the service under test
- audit: AuditTrail writing through its own sessions, like production
- catalog / pipeline: services wired to the above
- make_partner: factory for Partner rows
- make_vehicle: factory for Vehicle models
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parts_radar.infra.database import build_engine, prepare_schema

from parts_radar.domain.enums import PartnerSource, PartnerTier, VehicleStatus
from parts_radar.domain.models import Partner
from parts_radar.domain.schemas import QuoteCreate, QuoteLine, Vehicle
from parts_radar.infra.cache import TTLCache
from parts_radar.services.audit_trail import AuditTrail
from parts_radar.services.partner_catalog import PartnerCatalog
from parts_radar.services.request_notifier import RequestNotifier
from parts_radar.services.request_pipeline import RequestPipeline


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_factory(tmp_path):
    """Fresh on-disk SQLite database per test.

    A file (not ``:memory:``) so the audit trail's separate sessions see
    the same tables as the service session.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'parts_radar_test.db'}")
    await prepare_schema(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def audit(session_factory):
    return AuditTrail(session_factory)


@pytest.fixture
def partner_cache():
    return TTLCache(ttl_seconds=60)


@pytest.fixture
def request_cache():
    return TTLCache(ttl_seconds=30)


@pytest.fixture
def catalog(db_session, audit, partner_cache):
    return PartnerCatalog(db_session, audit, cache=partner_cache)


@pytest.fixture
def sent_notifications():
    return []


@pytest.fixture
def notifier(sent_notifications):
    async def _dispatch(notification):
        sent_notifications.append(notification)

    return RequestNotifier(dispatcher=_dispatch)


@pytest.fixture
def pipeline(db_session, audit, notifier, request_cache):
    return RequestPipeline(db_session, audit, notifier=notifier, cache=request_cache)


# ---------------------------------------------------------------------------
# Partner factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_partner(db_session):
    """Factory that inserts a Partner row directly.

    Usage:
        partner = await make_partner(name="Fast Parts", reliability_index=90)
    """
    async def _factory(
        name: str = "Test Garage",
        lat: float = 52.52,
        lng: float = 13.405,
        source: PartnerSource = PartnerSource.CUSTOM,
        tier: PartnerTier = PartnerTier.STANDARD,
        price_index: int = 50,
        reliability_index: int = 50,
        sla_minutes_typical: int = 60,
        delivery: bool = False,
        delivery_fee_base: float = 0.0,
        payment_terms: dict | None = None,
        types: list[str] | None = None,
        is_active: bool = True,
        is_verified: bool = True,
        is_online: bool = True,
    ) -> Partner:
        partner = Partner(
            id=str(uuid.uuid4()),
            source=source.value,
            name=name,
            lat=lat,
            lng=lng,
            address="1 Workshop Road",
            types=types if types is not None else ["car_repair"],
            tier=tier.value,
            price_index=price_index,
            reliability_index=reliability_index,
            sla_minutes_typical=sla_minutes_typical,
            delivery={
                "pickup": True,
                "delivery": delivery,
                "delivery_fee_base": delivery_fee_base,
            },
            payment_terms=payment_terms or {"invoice": True, "cash": True, "card": True},
            coverage_branches=[],
            is_active=is_active,
            is_verified=is_verified,
            is_online=is_online,
            created_at=datetime.now(timezone.utc),
            created_by="seed",
            updated_at=datetime.now(timezone.utc),
            updated_by="seed",
        )
        db_session.add(partner)
        await db_session.commit()
        return partner

    return _factory


# ---------------------------------------------------------------------------
# Vehicle / quote helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def make_vehicle():
    """Factory for fleet Vehicle models (not persisted)."""
    def _factory(
        vehicle_id: str | None = None,
        type: str = "sedan",
        make: str = "toyota",
        year: int = 2017,
        status: VehicleStatus = VehicleStatus.AVAILABLE,
    ) -> Vehicle:
        return Vehicle(
            id=vehicle_id or f"v-{uuid.uuid4().hex[:8]}",
            type=type,
            make=make,
            model="",
            year=year,
            status=status,
        )

    return _factory


@pytest.fixture
def quote_payload():
    """Factory for QuoteCreate payloads valid for one day."""
    def _factory(
        request_id: str,
        partner_id: str,
        unit_price: float = 100.0,
        qty: int = 1,
        eta_minutes: int | None = 30,
        valid_for: timedelta = timedelta(days=1),
        tax: float | None = None,
    ) -> QuoteCreate:
        return QuoteCreate(
            request_id=request_id,
            partner_id=partner_id,
            lines=[QuoteLine(part_key="brake_pads", qty=qty, unit_price=unit_price)],
            eta_minutes=eta_minutes,
            valid_until=datetime.now(timezone.utc) + valid_for,
            tax=tax,
        )

    return _factory
