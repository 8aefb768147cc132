# samartha/services/geo_index.py
import logging
from typing import List, Optional, Sequence, Tuple

from samartha.core.errors import DependencyUnavailable, GeoIndexUnavailable, bounded
from samartha.services.distance import distance_between

logger = logging.getLogger(__name__)

DEFAULT_SCAN_CAP = 50

class GeoIndex:
    """
    "k nearest within radius" over any point-indexed collection
    (users, facilities, listings).

    The spatial index is tried first. If it is missing, or the query times
    out, a bounded scan of at most `scan_cap` documents is ranked with the
    haversine distance instead. Both paths return (doc, distance_km) pairs
    sorted by distance ascending, filtered and limited the same way.
    """

    def __init__(self, repo, timeout: float):
        self.repo = repo
        self.timeout = timeout

    async def nearest(
        self,
        collection: str,
        coordinates: Sequence[float],
        max_km: float,
        flt: Optional[dict] = None,
        limit: int = 10,
        scan_cap: int = DEFAULT_SCAN_CAP,
    ) -> List[Tuple[dict, float]]:
        try:
            return await bounded(
                self.repo.near(collection, list(coordinates), max_km, flt, limit),
                self.timeout, f"{collection} geo query",
            )
        except (GeoIndexUnavailable, DependencyUnavailable) as ex:
            logger.warning("Geospatial index not usable for %s, using fallback scan: %s", collection, ex)

        return await self.scan_nearest(collection, coordinates, max_km, flt, limit, scan_cap)

    async def scan_nearest(self, collection, coordinates, max_km, flt, limit, scan_cap):
        docs = await bounded(
            self.repo.scan(collection, flt, scan_cap),
            self.timeout, f"{collection} scan",
        )
        hits = []
        for d in docs:
            pt = (d.get("location") or {}).get("coordinates")
            if not pt:
                continue
            dist = distance_between(coordinates, pt)
            if dist <= max_km:
                hits.append((d, dist))
        hits.sort(key=lambda h: h[1])
        return hits[:limit]
