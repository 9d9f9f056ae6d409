"""Places lookup wrapping the Google Places API (New) and Geocoding API.

Finds candidate garages / parts stores near a location so they can be
imported as partners.  Results are kept in an in-memory LRU cache; every
HTTP or parse failure is logged and degrades to an empty result.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

import httpx

from parts_radar.domain.schemas import PlaceResult

logger = logging.getLogger(__name__)

PLACES_TEXT_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"
PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

PLACES_FIELD_MASK = ",".join([
    "places.id",
    "places.displayName",
    "places.formattedAddress",
    "places.location",
    "places.primaryType",
    "places.types",
    "places.rating",
    "places.userRatingCount",
    "places.nationalPhoneNumber",
    "places.websiteUri",
])

# Place types that make sense as parts partners
DEFAULT_INCLUDED_TYPES = ["car_repair", "car_dealer", "auto_parts_store"]

EARTH_RADIUS_KM = 6371.0
MAX_SEARCH_RADIUS_M = 50_000.0

_MAX_CACHE_SIZE = 1_000


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float
    formatted_address: str


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


class PlacesService:
    """Async places search backed by Google Places (New)."""

    def __init__(self, api_key: str, max_results: int = 20) -> None:
        self._api_key = api_key
        self._max_results = max(1, min(max_results, 20))
        self._cache: OrderedDict[str, object] = OrderedDict()

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _normalize_key(self, raw: str) -> str:
        return raw.strip().lower()

    def _cache_get(self, key: str) -> tuple[bool, object]:
        """Return (hit, value). Moves item to end on hit (LRU)."""
        if key in self._cache:
            self._cache.move_to_end(key)
            return True, self._cache[key]
        return False, None

    def _cache_put(self, key: str, value: object) -> None:
        self._cache[key] = value
        self._cache.move_to_end(key)
        if len(self._cache) > _MAX_CACHE_SIZE:
            self._cache.popitem(last=False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search_text(
        self,
        query: str,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius_km: float = 50.0,
    ) -> list[PlaceResult]:
        """Free-text search, biased towards (lat, lng) when given."""
        if not query.strip():
            return []
        cache_key = f"text:{self._normalize_key(query)}:{lat}:{lng}:{radius_km}"
        hit, cached = self._cache_get(cache_key)
        if hit:
            return cached

        body: dict = {"textQuery": query, "pageSize": self._max_results}
        if lat is not None and lng is not None:
            body["locationBias"] = {"circle": self._circle(lat, lng, radius_km)}

        data = await self._post(PLACES_TEXT_SEARCH_URL, body)
        if data is None:
            return []
        results = self._parse_places(data)
        self._cache_put(cache_key, results)
        return results

    async def search_nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float = 50.0,
        included_types: Optional[list[str]] = None,
    ) -> list[PlaceResult]:
        """Places of *included_types* within *radius_km* of (lat, lng)."""
        types = included_types or DEFAULT_INCLUDED_TYPES
        cache_key = self._normalize_key(
            f"nearby:{lat:.5f}:{lng:.5f}:{radius_km}:{','.join(sorted(types))}"
        )
        hit, cached = self._cache_get(cache_key)
        if hit:
            return cached

        body = {
            "includedTypes": types,
            "maxResultCount": self._max_results,
            "locationRestriction": {"circle": self._circle(lat, lng, radius_km)},
        }
        data = await self._post(PLACES_NEARBY_SEARCH_URL, body)
        if data is None:
            return []
        results = self._parse_places(data)
        self._cache_put(cache_key, results)
        return results

    async def geocode(self, address: str) -> GeoPoint | None:
        """Forward-geocode an address (e.g. a branch) into a GeoPoint."""
        if not address.strip():
            return None
        cache_key = self._normalize_key(f"geocode:{address}")
        hit, cached = self._cache_get(cache_key)
        if hit:
            return cached

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(
                    GOOGLE_GEOCODE_URL, params={"address": address, "key": self._api_key},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Google Geocoding API request failed: %s", exc)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error during geocoding request: %s", exc)
            return None

        result = self._parse_geocode(data)
        self._cache_put(cache_key, result)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _circle(lat: float, lng: float, radius_km: float) -> dict:
        radius_m = min(max(radius_km, 0.0) * 1000.0, MAX_SEARCH_RADIUS_M)
        return {"center": {"latitude": lat, "longitude": lng}, "radius": radius_m}

    async def _post(self, url: str, body: dict) -> dict | None:
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": PLACES_FIELD_MASK,
        }
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.post(url, json=body, headers=headers)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Google Places API HTTP error: %s", exc)
        except httpx.RequestError as exc:
            logger.warning("Google Places API request failed: %s", exc)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected error during places request: %s", exc)
        return None

    def _parse_places(self, data: dict) -> list[PlaceResult]:
        results: list[PlaceResult] = []
        for place in data.get("places") or []:
            location = place.get("location") or {}
            lat = location.get("latitude")
            lng = location.get("longitude")
            place_id = place.get("id")
            if lat is None or lng is None or not place_id:
                logger.debug("Skipping place without id/location: %s", place)
                continue
            results.append(PlaceResult(
                place_id=place_id,
                name=(place.get("displayName") or {}).get("text", ""),
                lat=lat,
                lng=lng,
                address=place.get("formattedAddress", ""),
                primary_type=place.get("primaryType"),
                types=place.get("types") or [],
                rating=place.get("rating"),
                user_rating_count=place.get("userRatingCount"),
                phone=place.get("nationalPhoneNumber"),
                website=place.get("websiteUri"),
            ))
        return results

    def _parse_geocode(self, data: dict) -> GeoPoint | None:
        status = data.get("status")
        if status != "OK":
            if status not in ("ZERO_RESULTS",):
                logger.warning("Google Geocoding API returned status: %s", status)
            return None

        results = data.get("results")
        if not results:
            return None
        top = results[0]
        location = (top.get("geometry") or {}).get("location") or {}
        if location.get("lat") is None or location.get("lng") is None:
            logger.warning("Missing lat/lng in geocoding response")
            return None
        return GeoPoint(
            lat=location["lat"],
            lng=location["lng"],
            formatted_address=top.get("formatted_address", ""),
        )


def partner_distances(partners, lat: float, lng: float) -> dict[str, float]:
    """Map partner id -> km from (lat, lng), for catalog radius filtering."""
    return {p.id: haversine_km(lat, lng, p.lat, p.lng) for p in partners}
