"""Domain enumerations for Parts Radar.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class PartnerSource(str, Enum):
    """Where a partner record came from."""

    CUSTOM = "custom"
    IMPORTED = "imported"


class PartnerTier(str, Enum):
    """Pricing / quality bracket of a partner."""

    ECONOMY = "economy"
    STANDARD = "standard"
    PREMIUM = "premium"


class PaymentMethod(str, Enum):
    """Payment methods a partner may accept."""

    INVOICE = "invoice"
    CASH = "cash"
    CARD = "card"


class PartnerAvailability(str, Enum):
    """Liveness filter for partner listings."""

    ONLINE = "online"
    ALL = "all"


class RequestMode(str, Enum):
    """Whether a request was built for one vehicle or a bulk selection."""

    SINGLE = "single"
    BULK = "bulk"


class RequestStatus(str, Enum):
    """Lifecycle of a parts request."""

    DRAFT = "draft"
    SENT = "sent"
    QUOTED = "quoted"
    APPROVED = "approved"
    ORDERED = "ordered"
    RECEIVED = "received"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class QuoteStatus(str, Enum):
    """Status of a partner quote."""

    OFFERED = "offered"
    REVISED = "revised"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Urgency(str, Enum):
    """How urgently a part line is needed."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Availability(str, Enum):
    """Stock availability of a quoted line."""

    IN_STOCK = "in_stock"
    ORDERABLE = "orderable"
    UNKNOWN = "unknown"


class VehicleStatus(str, Enum):
    """Fleet status of a vehicle, as reported by the vehicle data source."""

    AVAILABLE = "available"
    RENTED = "rented"
    MAINTENANCE = "maintenance"


class CompatibilityRule(str, Enum):
    """Dimensions the compatibility grouper can split vehicles on."""

    TYPE = "type"
    MAKE = "make"
    YEAR = "year"


class AuditActionType(str, Enum):
    """Mutating actions recorded in the audit trail."""

    PARTNER_CREATE = "partner_create"
    PARTNER_UPDATE = "partner_update"
    PARTNER_DELETE = "partner_delete"
    REQUEST_CREATE = "request_create"
    REQUEST_UPDATE = "request_update"
    REQUEST_STATUS_CHANGE = "request_status_change"
    QUOTE_CREATE = "quote_create"
    QUOTE_UPDATE = "quote_update"
    QUOTE_ACCEPT = "quote_accept"
    QUOTE_REJECT = "quote_reject"
