"""Places lookup endpoints used to discover partners to import."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from parts_radar.app.routes.deps import get_places
from parts_radar.domain.schemas import PlaceResult
from parts_radar.services.places_service import PlacesService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/maps", tags=["maps"])


class GeocodeResponse(BaseModel):
    lat: float
    lng: float
    formatted_address: str


@router.get("/places/search", response_model=list[PlaceResult])
async def search_places(
    query: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_km: float = Query(default=50.0, gt=0),
    types: Optional[list[str]] = Query(default=None),
    places: PlacesService = Depends(get_places),
):
    """Text search when ``query`` is given, otherwise nearby search around lat/lng."""
    if query:
        return await places.search_text(query, lat=lat, lng=lng, radius_km=radius_km)
    if lat is None or lng is None:
        raise HTTPException(status_code=422, detail="Provide a query or both lat and lng")
    return await places.search_nearby(lat, lng, radius_km=radius_km, included_types=types)


@router.get("/geocode", response_model=GeocodeResponse)
async def geocode(address: str, places: PlacesService = Depends(get_places)):
    point = await places.geocode(address)
    if point is None:
        raise HTTPException(status_code=404, detail="Address not found")
    return GeocodeResponse(
        lat=point.lat, lng=point.lng, formatted_address=point.formatted_address,
    )
