# samartha/services/matching.py
import logging
from typing import List, Tuple

import pydantic

from samartha.core.errors import DependencyUnavailable, InvalidState
from samartha.core.states import CLAIMABLE_STATES
from samartha.models.listing import Listing
from samartha.models.receiver import RECEIVER_ROLES, ReceiverCandidate
from samartha.services.fallback import FALLBACK_PRIORITY
from samartha.services.scoring import rank_receivers, recommended
from samartha.services.store import load_listing

logger = logging.getLogger(__name__)

RECEIVER_FILTER = {
    "role": {"$in": RECEIVER_ROLES},
    "is_active": True,
    "verification_status": "verified",
}

class Matcher:
    """
    Surfaces ranked receivers and fallback facilities for a listing.
    Read only: nothing here claims or reserves anything.
    """

    def __init__(self, repo, geo, router, radius_km: float = 10.0, limit: int = 10,
                 scan_cap: int = 50, timeout: float = 5.0):
        self.repo = repo
        self.geo = geo
        self.router = router
        self.radius_km = radius_km
        self.limit = limit
        self.scan_cap = scan_cap
        self.timeout = timeout

    async def nearest_receivers(self, listing: Listing) -> List[Tuple[ReceiverCandidate, float]]:
        flt = dict(RECEIVER_FILTER)
        flt["_id"] = {"$ne": listing.donor_id}
        hits = await self.geo.nearest(
            "users", listing.location.coordinates, self.radius_km, flt,
            limit=self.limit, scan_cap=self.scan_cap,
        )
        out = []
        for doc, dist in hits:
            try:
                out.append((ReceiverCandidate.model_validate(doc), dist))
            except pydantic.ValidationError as ex:
                # directory records are owned elsewhere; a bad one is skipped, not fatal
                logger.warning("Skipping malformed receiver %s: %s", doc.get("_id"), ex.errors()[0]["msg"])
        return out

    async def find_matches(self, listing: Listing) -> dict:
        # Best effort: an unavailable backend yields empty sections, not an error.
        degraded = False
        try:
            candidates = await self.nearest_receivers(listing)
        except DependencyUnavailable as ex:
            logger.warning("Receiver lookup failed for listing %s: %s", listing.id, ex)
            candidates, degraded = [], True

        try:
            routes = await self.router.find_routes(listing)
        except DependencyUnavailable as ex:
            logger.warning("Fallback lookup failed for listing %s: %s", listing.id, ex)
            routes, degraded = {t: [] for t in FALLBACK_PRIORITY}, True

        ranked = rank_receivers(listing, candidates)
        return {
            "listing_id": listing.id,
            "matches": ranked,
            "fallback_routes": routes,
            "recommended_match": recommended(ranked),
            "degraded": degraded,
        }

    async def find_matches_for(self, listing_id: str) -> dict:
        listing = await load_listing(self.repo, listing_id, self.timeout)
        if listing.status not in CLAIMABLE_STATES:
            raise InvalidState(f"Listing is {listing.status}; matching only runs on open listings")
        return await self.find_matches(listing)

    async def fallback_routes_for(self, listing_id: str) -> dict:
        listing = await load_listing(self.repo, listing_id, self.timeout)
        return await self.router.find_routes(listing)
