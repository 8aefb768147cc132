# samartha/services/fallback.py
import logging
from typing import Dict, List, Optional, Tuple

import pydantic

from samartha.models.facility import FacilityHit
from samartha.models.listing import Listing

logger = logging.getLogger(__name__)

# Highest priority first. food-hub facilities exist but are not fallback targets.
FALLBACK_PRIORITY = ["animal-farm", "community-fridge", "compost-center"]

class FallbackRouter:
    """
    Picks a non-human consumer for food nobody claimed in time.

    Facility capacity is carried along for display only; the nearest facility
    of the best available type wins regardless of its load.
    """

    def __init__(self, geo, radius_km: float = 15.0, limit: int = 20, scan_cap: int = 20):
        self.geo = geo
        self.radius_km = radius_km
        self.limit = limit
        self.scan_cap = scan_cap

    async def find_routes(self, listing: Listing) -> Dict[str, List[FacilityHit]]:
        hits = await self.geo.nearest(
            "facilities",
            listing.location.coordinates,
            self.radius_km,
            {"is_active": True, "type": {"$in": FALLBACK_PRIORITY}},
            limit=self.limit,
            scan_cap=self.scan_cap,
        )
        grouped: Dict[str, List[FacilityHit]] = {t: [] for t in FALLBACK_PRIORITY}
        for doc, dist in hits:
            ftype = doc.get("type")
            if ftype not in grouped:
                continue
            try:
                grouped[ftype].append(FacilityHit(**doc, distance_km=round(dist, 1)))
            except pydantic.ValidationError as ex:
                logger.warning("Skipping malformed facility %s: %s", doc.get("_id"), ex.errors()[0]["msg"])
        return grouped

    @staticmethod
    def choose(grouped: Dict[str, List[FacilityHit]]) -> Tuple[str, Optional[FacilityHit]]:
        for ftype in FALLBACK_PRIORITY:
            options = grouped.get(ftype) or []
            if options:
                return ftype, options[0]
        return "none", None

    async def route(self, listing: Listing) -> Tuple[str, Optional[FacilityHit]]:
        return self.choose(await self.find_routes(listing))
