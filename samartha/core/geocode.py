# samartha/core/geocode.py
from __future__ import annotations

import logging
from typing import Optional

import httpx

from samartha.core.config import settings

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_COUNTRY = "India"

class GeocodeError(Exception):
    pass

class Geocoder:
    """
    Resolves an address / city / state triple into a GeoJSON-ready location.
    Returns {"coordinates": [lng, lat], "address", "city", "state"}.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float | None = None):
        self._client = client
        self._timeout = timeout or settings.geocode_timeout_seconds

    async def resolve(self, address: str | None, city: str | None, state: str | None) -> dict:
        parts = [p.strip() for p in (address, city, state) if p and p.strip()]
        if not parts:
            raise GeocodeError("Empty address")
        query = ", ".join(parts + [DEFAULT_COUNTRY])

        headers = {"User-Agent": f"SamarthaSetu/1.0 (+{settings.geocoder_contact})"}
        params = {"q": query, "format": "json", "limit": 1, "addressdetails": 1}
        try:
            if self._client is not None:
                r = await self._client.get(NOMINATIM_URL, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as c:
                    r = await c.get(NOMINATIM_URL, params=params, headers=headers)
            r.raise_for_status()
            js = r.json()
        except httpx.HTTPError as ex:
            logger.warning("Geocoding request failed for %r: %s", query, ex)
            raise GeocodeError(str(ex))

        if not js:
            logger.warning("Geocoding found nothing for %r", query)
            raise GeocodeError("No results")
        hit = js[0]
        addr = hit.get("address") or {}
        return {
            "coordinates": [float(hit["lon"]), float(hit["lat"])],
            "address": address or hit.get("display_name", ""),
            "city": city or addr.get("city") or addr.get("town") or "",
            "state": state or addr.get("state") or "",
        }
