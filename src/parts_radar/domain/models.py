"""SQLAlchemy ORM models for Parts Radar.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from parts_radar.infra.database import Base


# ---------------------------------------------------------------------------
# Partners
# ---------------------------------------------------------------------------


class Partner(Base):
    """Garage or supplier the fleet can request parts from.

    Never physically deleted: ``is_active=False`` marks a removed partner so
    that requests, quotes and audit entries keep a valid reference.
    """

    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    source = Column(String(20), nullable=False, default="custom")  # PartnerSource
    place_id = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    address = Column(String(500), nullable=False, default="")
    phone = Column(String(50))
    email = Column(String(255))
    website = Column(String(500))
    types = Column(JSON, default=list)  # e.g. car_repair, parts_store, tire_shop
    tier = Column(String(20), nullable=False, default="standard")  # PartnerTier
    price_index = Column(Integer, nullable=False, default=50)
    reliability_index = Column(Integer, nullable=False, default=50)
    sla_minutes_typical = Column(Integer, nullable=False, default=60)
    delivery = Column(JSON, default=dict)  # {pickup, delivery, delivery_fee_base}
    payment_terms = Column(JSON, default=dict)  # {invoice, cash, card}
    coverage_branches = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, index=True)
    is_verified = Column(Boolean, default=False)
    is_online = Column(Boolean, default=False)
    last_heartbeat_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    created_by = Column(String(36), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    updated_by = Column(String(36), nullable=False)

    # Relationships
    quotes = relationship("Quote", back_populates="partner")


# ---------------------------------------------------------------------------
# Requests & Quotes
# ---------------------------------------------------------------------------


class PartsRequest(Base):
    """One unit of sourcing work tying vehicles to the parts they need."""

    __tablename__ = "parts_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(DateTime, default=func.now())
    created_by = Column(String(36), nullable=False, index=True)
    mode = Column(String(10), nullable=False, default="single")  # RequestMode
    vehicle_ids = Column(JSON, nullable=False)
    branch_id = Column(String(36), nullable=True)
    group_name = Column(String(255), nullable=True)  # set for bulk compatibility groups
    part_lines = Column(JSON, nullable=False)
    constraints = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="draft", index=True)  # RequestStatus
    selected_partner_id = Column(String(36), ForeignKey("partners.id"), nullable=True)
    selected_quote_id = Column(String(36), nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    updated_by = Column(String(36), nullable=False)

    # Relationships
    quotes = relationship("Quote", back_populates="request")


class Quote(Base):
    """A partner's priced, time-bounded offer against a request."""

    __tablename__ = "quotes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String(36), ForeignKey("parts_requests.id"), nullable=False, index=True)
    partner_id = Column(String(36), ForeignKey("partners.id"), nullable=False, index=True)
    lines = Column(JSON, nullable=False)
    totals = Column(JSON, nullable=False)  # {parts_total, delivery_fee, tax, grand_total}
    eta_minutes = Column(Integer, nullable=True)
    valid_until = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="offered")  # QuoteStatus
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    request = relationship("PartsRequest", back_populates="quotes")
    partner = relationship("Partner", back_populates="quotes")


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditLog(Base):
    """Immutable audit trail entry for partner/request/quote mutations."""

    __tablename__ = "parts_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_id = Column(String(36), nullable=False, index=True)
    actor_name = Column(String(255), nullable=True)
    ts = Column(DateTime, default=func.now(), index=True)
    action_type = Column(String(50), nullable=False, index=True)  # AuditActionType
    mode = Column(String(10), nullable=True)
    vehicle_ids = Column(JSON, nullable=True)
    partner_ids = Column(JSON, nullable=True)
    request_id = Column(String(36), nullable=True, index=True)
    quote_id = Column(String(36), nullable=True)
    diff_summary = Column(Text, nullable=False)
    before_snapshot = Column(JSON, nullable=True)
    after_snapshot = Column(JSON, nullable=True)
