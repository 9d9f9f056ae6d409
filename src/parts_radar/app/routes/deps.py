"""Shared FastAPI dependencies for the parts routes.

Services are built per request around the request's AsyncSession.  The
list caches, notifier and places client live on ``app.state`` so they
outlive a single request.
"""

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parts_radar.app.config import get_settings
from parts_radar.domain.exceptions import NotFoundError, PartsRadarError, RequestValidationError
from parts_radar.infra.cache import TTLCache
from parts_radar.infra.database import async_session, get_db
from parts_radar.services.audit_trail import AuditTrail
from parts_radar.services.partner_catalog import PartnerCatalog
from parts_radar.services.places_service import PlacesService
from parts_radar.services.request_notifier import RequestNotifier
from parts_radar.services.request_pipeline import RequestPipeline
from parts_radar.services.request_state_machine import InvalidTransitionError


def init_app_state(state) -> None:
    """Attach long-lived collaborators to ``app.state``."""
    settings = get_settings()
    state.partner_cache = TTLCache(settings.partner_cache_ttl_seconds)
    state.request_cache = TTLCache(settings.request_cache_ttl_seconds)
    state.notifier = RequestNotifier()
    state.places = PlacesService(settings.google_maps_api_key, settings.places_max_results)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for writes that must not share the request transaction."""
    return async_session


def get_actor_id(x_actor_id: str = Header(default="anonymous")) -> str:
    actor_id = x_actor_id.strip()
    if not actor_id:
        raise HTTPException(status_code=400, detail="X-Actor-Id header must not be empty")
    return actor_id


def get_audit(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AuditTrail:
    return AuditTrail(session_factory)


def get_catalog(
    request: Request,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
) -> PartnerCatalog:
    return PartnerCatalog(db, audit, cache=request.app.state.partner_cache)


def get_pipeline(
    request: Request,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(get_audit),
) -> RequestPipeline:
    return RequestPipeline(
        db,
        audit,
        notifier=request.app.state.notifier,
        cache=request.app.state.request_cache,
    )


def get_places(request: Request) -> PlacesService:
    return request.app.state.places


def http_error(exc: PartsRadarError) -> HTTPException:
    """Translate a domain error into the matching HTTP status."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, RequestValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
