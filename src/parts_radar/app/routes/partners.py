"""Partner catalog API endpoints.

Listing, admin CRUD, places import, liveness heartbeat and ranking of
partners for a parts request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from parts_radar.app.config import get_settings
from parts_radar.app.routes.deps import get_actor_id, get_catalog, get_pipeline, http_error
from parts_radar.domain.enums import (
    PartnerAvailability,
    PartnerTier,
    PaymentMethod,
    QuoteStatus,
)
from parts_radar.domain.exceptions import PartsRadarError
from parts_radar.domain.schemas import (
    PartnerCreate,
    PartnerFilters,
    PartnerResponse,
    PartnerScore,
    PartnerUpdate,
    PlaceResult,
    RankPartnersRequest,
)
from parts_radar.services.partner_catalog import PartnerCatalog
from parts_radar.services.partner_scorer import rank_partners, validate_weights
from parts_radar.services.places_service import partner_distances
from parts_radar.services.request_pipeline import RequestPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/parts/partners", tags=["partners"])


class HeartbeatRequest(BaseModel):
    is_online: bool


class DeleteResponse(BaseModel):
    id: str
    deleted: bool


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("", response_model=list[PartnerResponse])
async def list_partners(
    tier: Optional[PartnerTier] = None,
    types: Optional[list[str]] = Query(default=None),
    availability: PartnerAvailability = PartnerAvailability.ALL,
    max_sla_minutes: Optional[int] = None,
    payment_method: Optional[PaymentMethod] = None,
    delivery_required: bool = False,
    min_reliability: Optional[int] = None,
    include_inactive: bool = False,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_km: Optional[float] = None,
    catalog: PartnerCatalog = Depends(get_catalog),
):
    """List partners matching every supplied filter.

    ``radius_km`` only applies together with ``lat``/``lng``.
    """
    filters = PartnerFilters(
        tier=tier,
        types=types,
        availability=availability,
        max_sla_minutes=max_sla_minutes,
        payment_method=payment_method,
        delivery_required=delivery_required,
        min_reliability=min_reliability,
        include_inactive=include_inactive,
        radius_km=radius_km,
    )
    if radius_km is None or lat is None or lng is None:
        return await catalog.list_partners(filters)

    candidates = await catalog.list_partners(filters.model_copy(update={"radius_km": None}))
    distances = partner_distances(candidates, lat, lng)
    return await catalog.list_partners(filters, distances)


@router.post("/rank", response_model=list[PartnerScore])
async def rank(
    body: RankPartnersRequest,
    catalog: PartnerCatalog = Depends(get_catalog),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    """Score candidate partners, optionally against the quotes of a request."""
    try:
        if body.partner_ids:
            partners = [
                PartnerResponse.model_validate(await catalog.get_partner(pid))
                for pid in body.partner_ids
            ]
        else:
            partners = await catalog.list_partners()

        quotes = []
        cost_ceiling = None
        if body.request_id:
            request = await pipeline.get_request(body.request_id)
            cost_ceiling = (request.constraints or {}).get("max_total_cost")
            quotes = [
                q for q in await pipeline.list_quotes(body.request_id)
                if q.status != QuoteStatus.REJECTED.value
            ]
    except PartsRadarError as e:
        raise http_error(e)

    weights = body.weights or get_settings().default_weights
    validate_weights(weights)
    etas = {e.partner_id: e.eta_minutes for e in body.etas}
    for quote in quotes:
        if quote.eta_minutes is not None:
            etas.setdefault(quote.partner_id, quote.eta_minutes)

    return rank_partners(partners, quotes, etas, weights, cost_ceiling=cost_ceiling)


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------


@router.post("", response_model=PartnerResponse, status_code=201)
async def create_partner(
    body: PartnerCreate,
    actor_id: str = Depends(get_actor_id),
    catalog: PartnerCatalog = Depends(get_catalog),
):
    try:
        return await catalog.create_partner(body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/import", response_model=PartnerResponse, status_code=201)
async def import_place(
    body: PlaceResult,
    actor_id: str = Depends(get_actor_id),
    catalog: PartnerCatalog = Depends(get_catalog),
):
    """Import a places lookup result as an unverified partner."""
    try:
        return await catalog.import_place(body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.get("/{partner_id}", response_model=PartnerResponse)
async def get_partner(partner_id: str, catalog: PartnerCatalog = Depends(get_catalog)):
    try:
        return await catalog.get_partner(partner_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.patch("/{partner_id}", response_model=PartnerResponse)
async def update_partner(
    partner_id: str,
    body: PartnerUpdate,
    actor_id: str = Depends(get_actor_id),
    catalog: PartnerCatalog = Depends(get_catalog),
):
    try:
        return await catalog.update_partner(partner_id, body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.delete("/{partner_id}", response_model=DeleteResponse)
async def delete_partner(
    partner_id: str,
    actor_id: str = Depends(get_actor_id),
    catalog: PartnerCatalog = Depends(get_catalog),
):
    try:
        deleted = await catalog.delete_partner(partner_id, actor_id)
    except PartsRadarError as e:
        raise http_error(e)
    return DeleteResponse(id=partner_id, deleted=deleted)


@router.post("/{partner_id}/verify", response_model=PartnerResponse)
async def verify_partner(
    partner_id: str,
    actor_id: str = Depends(get_actor_id),
    catalog: PartnerCatalog = Depends(get_catalog),
):
    try:
        return await catalog.verify_partner(partner_id, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/{partner_id}/heartbeat", response_model=PartnerResponse)
async def heartbeat(
    partner_id: str,
    body: HeartbeatRequest,
    catalog: PartnerCatalog = Depends(get_catalog),
):
    try:
        return await catalog.record_heartbeat(partner_id, body.is_online)
    except PartsRadarError as e:
        raise http_error(e)
