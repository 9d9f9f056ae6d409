"""Parts request and quote API endpoints.

Every status change goes through the RequestPipeline, which validates it
against the request state machine and writes an audit entry.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from parts_radar.app.routes.deps import get_actor_id, get_pipeline, http_error
from parts_radar.domain.enums import RequestStatus
from parts_radar.domain.exceptions import PartsRadarError
from parts_radar.domain.schemas import (
    AcceptQuoteRequest,
    AdvanceRequest,
    BulkRequestCreate,
    CancelRequest,
    DispatchRequest,
    ImpactRequest,
    ImpactSummary,
    PartsRequestCreate,
    PartsRequestResponse,
    PartsRequestUpdate,
    QuoteCreate,
    QuoteResponse,
    QuoteRevise,
)
from parts_radar.services.impact_analyzer import analyze_impact
from parts_radar.services.request_pipeline import RequestPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/parts/requests", tags=["requests"])
quotes_router = APIRouter(prefix="/api/parts/quotes", tags=["quotes"])


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@router.get("", response_model=list[PartsRequestResponse])
async def list_requests(
    status: Optional[RequestStatus] = None,
    created_by: Optional[str] = None,
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    return await pipeline.list_requests(status=status, created_by=created_by)


@router.post("", response_model=PartsRequestResponse, status_code=201)
async def create_request(
    body: PartsRequestCreate,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.create_request(body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/bulk", response_model=list[PartsRequestResponse], status_code=201)
async def create_bulk_requests(
    body: BulkRequestCreate,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    """Split the vehicles into compatibility groups; one draft per group."""
    try:
        return await pipeline.create_bulk_requests(body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/impact", response_model=ImpactSummary)
async def impact(
    body: ImpactRequest,
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    """Summarise cost, vehicles and lead time across a batch of requests."""
    try:
        requests = [await pipeline.get_request(rid) for rid in body.request_ids]
        quotes = []
        for request in requests:
            quotes.extend(await pipeline.list_quotes(request.id))
    except PartsRadarError as e:
        raise http_error(e)
    return analyze_impact(requests, body.vehicles, quotes)


@router.get("/{request_id}", response_model=PartsRequestResponse)
async def get_request(request_id: str, pipeline: RequestPipeline = Depends(get_pipeline)):
    try:
        return await pipeline.get_request(request_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.patch("/{request_id}", response_model=PartsRequestResponse)
async def update_request(
    request_id: str,
    body: PartsRequestUpdate,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.update_request(request_id, body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/{request_id}/dispatch", response_model=PartsRequestResponse)
async def dispatch_request(
    request_id: str,
    body: DispatchRequest,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.dispatch_request(request_id, body.partner_ids, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/{request_id}/advance", response_model=PartsRequestResponse)
async def advance_request(
    request_id: str,
    body: AdvanceRequest,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.advance_request(request_id, body.status, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@router.post("/{request_id}/cancel", response_model=PartsRequestResponse)
async def cancel_request(
    request_id: str,
    body: CancelRequest,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.cancel_request(request_id, actor_id, reason=body.reason)
    except PartsRadarError as e:
        raise http_error(e)


@router.get("/{request_id}/quotes", response_model=list[QuoteResponse])
async def list_quotes(request_id: str, pipeline: RequestPipeline = Depends(get_pipeline)):
    try:
        return await pipeline.list_quotes(request_id)
    except PartsRadarError as e:
        raise http_error(e)


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


@quotes_router.post("", response_model=QuoteResponse, status_code=201)
async def submit_quote(
    body: QuoteCreate,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.submit_quote(body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@quotes_router.put("/{quote_id}", response_model=QuoteResponse)
async def revise_quote(
    quote_id: str,
    body: QuoteRevise,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.revise_quote(quote_id, body, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@quotes_router.post("/{quote_id}/accept", response_model=PartsRequestResponse)
async def accept_quote(
    quote_id: str,
    body: AcceptQuoteRequest,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    """Accept a quote; the request moves quoted -> approved."""
    try:
        return await pipeline.accept_quote(quote_id, body.request_id, actor_id)
    except PartsRadarError as e:
        raise http_error(e)


@quotes_router.post("/{quote_id}/reject", response_model=QuoteResponse)
async def reject_quote(
    quote_id: str,
    actor_id: str = Depends(get_actor_id),
    pipeline: RequestPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.reject_quote(quote_id, actor_id)
    except PartsRadarError as e:
        raise http_error(e)
