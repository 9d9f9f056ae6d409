"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from parts_radar.domain.enums import (
    Availability,
    AuditActionType,
    CompatibilityRule,
    PartnerAvailability,
    PartnerSource,
    PartnerTier,
    PaymentMethod,
    QuoteStatus,
    RequestMode,
    RequestStatus,
    Urgency,
    VehicleStatus,
)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


# ---------------------------------------------------------------------------
# Partner
# ---------------------------------------------------------------------------


class DeliveryOptions(BaseModel):
    pickup: bool = True
    delivery: bool = False
    delivery_fee_base: float = Field(default=0.0, ge=0)


class PaymentTerms(BaseModel):
    invoice: bool = True
    cash: bool = True
    card: bool = True


class PartnerBase(BaseModel):
    """Base partner fields shared across create and response."""

    name: str
    lat: float
    lng: float
    address: str = ""
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    types: list[str] = []
    tier: PartnerTier = PartnerTier.STANDARD
    price_index: int = Field(default=50, ge=0, le=100)
    reliability_index: int = Field(default=50, ge=0, le=100)
    sla_minutes_typical: int = Field(default=60, ge=0)
    delivery: DeliveryOptions = DeliveryOptions()
    payment_terms: PaymentTerms = PaymentTerms()
    coverage_branches: list[str] = []
    notes: str | None = None


class PartnerCreate(PartnerBase):
    """Schema for creating a partner (custom entry or places import)."""

    source: PartnerSource = PartnerSource.CUSTOM
    place_id: str | None = None
    is_active: bool = True
    is_verified: bool = False
    is_online: bool = False


class PartnerUpdate(BaseModel):
    """Partial update for a partner. Verification has its own admin operation."""

    name: str | None = None
    lat: float | None = None
    lng: float | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    types: list[str] | None = None
    tier: PartnerTier | None = None
    price_index: int | None = Field(default=None, ge=0, le=100)
    reliability_index: int | None = Field(default=None, ge=0, le=100)
    sla_minutes_typical: int | None = Field(default=None, ge=0)
    delivery: DeliveryOptions | None = None
    payment_terms: PaymentTerms | None = None
    coverage_branches: list[str] | None = None
    is_active: bool | None = None
    is_online: bool | None = None
    notes: str | None = None


class PartnerResponse(PartnerBase):
    """Schema for partner API responses."""

    id: str
    source: PartnerSource
    place_id: str | None = None
    is_active: bool
    is_verified: bool
    is_online: bool
    last_heartbeat_at: datetime | None = None
    created_at: datetime | None = None
    created_by: str
    updated_at: datetime | None = None
    updated_by: str

    model_config = ConfigDict(from_attributes=True)


class PartnerFilters(BaseModel):
    """AND-combined filters for catalog listing."""

    tier: PartnerTier | None = None
    radius_km: float | None = None
    types: list[str] | None = None
    availability: PartnerAvailability = PartnerAvailability.ALL
    max_sla_minutes: int | None = None
    payment_method: PaymentMethod | None = None
    delivery_required: bool = False
    min_reliability: int | None = None
    include_inactive: bool = False


class PlaceResult(BaseModel):
    """Candidate place returned by the places lookup."""

    place_id: str
    name: str
    lat: float
    lng: float
    address: str = ""
    primary_type: str | None = None
    types: list[str] = []
    rating: float | None = None
    user_rating_count: int | None = None
    phone: str | None = None
    website: str | None = None


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class ScoringWeights(BaseModel):
    cost: float = Field(ge=0)
    speed: float = Field(ge=0)
    reliability: float = Field(ge=0)


class PartnerScore(BaseModel):
    """Explainable score for one partner. Derived, never persisted."""

    partner_id: str
    score: int
    cost_score: int
    speed_score: int
    reliability_score: int
    explanation: str


class PartnerEta(BaseModel):
    partner_id: str
    eta_minutes: float


class RankPartnersRequest(BaseModel):
    """Ranking input: candidate partners plus optional quotes/ETAs context."""

    partner_ids: list[str] | None = None
    request_id: str | None = None
    etas: list[PartnerEta] = []
    weights: ScoringWeights | None = None


# ---------------------------------------------------------------------------
# Vehicles & compatibility
# ---------------------------------------------------------------------------


class Vehicle(BaseModel):
    """Vehicle record supplied by the fleet data source."""

    id: str
    type: str
    make: str
    model: str = ""
    year: int
    status: VehicleStatus = VehicleStatus.AVAILABLE


class YearRange(BaseModel):
    min: int
    max: int


class Compatibility(BaseModel):
    type: str | None = None
    make: str | None = None
    year_range: YearRange | None = None


class VehicleGroup(BaseModel):
    id: str
    name: str
    vehicles: list[Vehicle]
    compatibility: Compatibility


# ---------------------------------------------------------------------------
# Parts requests
# ---------------------------------------------------------------------------


class PartLine(BaseModel):
    part_key: str
    description: str = ""
    qty: int = 1
    urgency: Urgency = Urgency.MEDIUM
    required_by_date: datetime | None = None
    notes: str | None = None


class RequestConstraints(BaseModel):
    radius_km: float = 50.0
    preferred_tier: PartnerTier | None = None
    must_be_in_stock: bool = False
    max_total_cost: float | None = None
    delivery_required: bool = False


class PartsRequestCreate(BaseModel):
    """Schema for creating a single parts request."""

    mode: RequestMode = RequestMode.SINGLE
    vehicle_ids: list[str]
    branch_id: str | None = None
    part_lines: list[PartLine]
    constraints: RequestConstraints = RequestConstraints()


class BulkRequestCreate(BaseModel):
    """Schema for a bulk request split by compatibility rules."""

    vehicles: list[Vehicle]
    part_lines: list[PartLine]
    constraints: RequestConstraints = RequestConstraints()
    rules: list[CompatibilityRule] = [CompatibilityRule.TYPE, CompatibilityRule.YEAR]
    branch_id: str | None = None


class PartsRequestUpdate(BaseModel):
    """Edits allowed while a request is still a draft."""

    part_lines: list[PartLine] | None = None
    constraints: RequestConstraints | None = None
    branch_id: str | None = None


class PartsRequestResponse(BaseModel):
    """Schema for parts request API responses."""

    id: str
    created_at: datetime | None = None
    created_by: str
    mode: RequestMode
    vehicle_ids: list[str]
    branch_id: str | None = None
    group_name: str | None = None
    part_lines: list[PartLine]
    constraints: RequestConstraints
    status: RequestStatus
    selected_partner_id: str | None = None
    selected_quote_id: str | None = None
    updated_at: datetime | None = None
    updated_by: str

    model_config = ConfigDict(from_attributes=True)


class DispatchRequest(BaseModel):
    partner_ids: list[str]


class AdvanceRequest(BaseModel):
    status: RequestStatus


class CancelRequest(BaseModel):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class QuoteLine(BaseModel):
    part_key: str
    qty: int
    unit_price: float = Field(ge=0)
    availability: Availability = Availability.UNKNOWN
    lead_time_hours: float | None = None


class QuoteTotals(BaseModel):
    parts_total: float
    delivery_fee: float = 0.0
    tax: float | None = None
    grand_total: float


class QuoteCreate(BaseModel):
    """Schema for a partner submitting a quote."""

    request_id: str
    partner_id: str
    lines: list[QuoteLine]
    eta_minutes: int | None = None
    valid_until: datetime
    tax: float | None = None


class QuoteRevise(BaseModel):
    lines: list[QuoteLine]
    eta_minutes: int | None = None
    valid_until: datetime | None = None
    tax: float | None = None


class QuoteResponse(BaseModel):
    """Schema for quote API responses."""

    id: str
    request_id: str
    partner_id: str
    lines: list[QuoteLine]
    totals: QuoteTotals
    eta_minutes: int | None = None
    valid_until: datetime
    status: QuoteStatus
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AcceptQuoteRequest(BaseModel):
    request_id: str


# ---------------------------------------------------------------------------
# Impact
# ---------------------------------------------------------------------------


class VehicleStatusBreakdown(BaseModel):
    available: int = 0
    rented: int = 0
    maintenance: int = 0


class ImpactSummary(BaseModel):
    """Aggregate view over a batch of pending requests."""

    requests_count: int
    total_vehicles: int
    total_parts: int
    estimated_total_cost: float
    avg_lead_time_hours: int
    status_breakdown: VehicleStatusBreakdown
    expedite: bool
    consider_splitting: bool
    warnings: list[str] = []


class ImpactRequest(BaseModel):
    request_ids: list[str]
    vehicles: list[Vehicle]


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditLogResponse(BaseModel):
    """Schema for audit log API responses."""

    id: str
    actor_id: str
    actor_name: str | None = None
    ts: datetime | None = None
    action_type: AuditActionType
    mode: RequestMode | None = None
    vehicle_ids: list[str] | None = None
    partner_ids: list[str] | None = None
    request_id: str | None = None
    quote_id: str | None = None
    diff_summary: str
    before_snapshot: dict | None = None
    after_snapshot: dict | None = None

    model_config = ConfigDict(from_attributes=True)


class AuditQuery(BaseModel):
    action_type: AuditActionType | None = None
    actor_id: str | None = None
    request_id: str | None = None
    partner_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = 100
