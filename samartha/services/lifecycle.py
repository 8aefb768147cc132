# samartha/services/lifecycle.py
from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Callable, Optional, Tuple

import pydantic

from samartha.core import errors
from samartha.core.errors import bounded
from samartha.core.geocode import GeocodeError
from samartha.core.states import can_transition
from samartha.models.actor import Actor
from samartha.models.facility import FacilityHit
from samartha.models.listing import GeoPoint, Listing, ListingCreate, LocationIn
from samartha.services.events import Outbox
from samartha.services.impact import co2_reduction
from samartha.services.store import load_listing, utcnow

logger = logging.getLogger(__name__)

Change = Callable[[Listing, Outbox], None]

CONFLICT_BACKOFF_SECONDS = 0.005

class ListingLifecycle:
    """
    Owns every status change of a listing.

    Each change runs against a fresh copy of the stored document and is
    written back with one compare-and-swap on `version`. A lost race re-reads
    and re-validates, so the loser sees the winner's state and fails with
    InvalidState instead of overwriting it. Writers that keep losing back off
    and give up with the retryable ConcurrentUpdate after `max_attempts`
    rounds. Notifications and broadcasts are collected while the change runs
    and published only after it commits.
    """

    def __init__(self, repo, events, ledger, matcher, geocoder=None,
                 clock: Callable = utcnow, timeout: float = 5.0,
                 max_attempts: int = 10, notify_top: int = 5):
        self.repo = repo
        self.events = events
        self.ledger = ledger
        self.matcher = matcher
        self.geocoder = geocoder
        self.clock = clock
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.notify_top = notify_top

    async def get(self, listing_id: str) -> Listing:
        return await load_listing(self.repo, listing_id, self.timeout)

    async def mutate(self, listing_id: str, change: Change) -> Tuple[Listing, Outbox]:
        for attempt in range(1, self.max_attempts + 1):
            current = await self.get(listing_id)
            draft = current.model_copy(deep=True)
            outbox = Outbox(now=self.clock())
            change(draft, outbox)          # raises to abort, nothing written yet
            draft.updated_at = outbox.now

            saved = await bounded(
                self.repo.replace_listing_if_version(draft.to_doc(), current.version),
                self.timeout, "listing store",
            )
            if saved is not None:
                await self.events.publish(outbox)
                return Listing.from_doc(saved), outbox
            logger.info("Version conflict on listing %s (attempt %d/%d)", listing_id, attempt, self.max_attempts)
            # jittered backoff before re-reading
            await asyncio.sleep(random.uniform(0, CONFLICT_BACKOFF_SECONDS * attempt))

        raise errors.ConcurrentUpdate("Listing changed concurrently. Refresh and retry.")

    # ------------------------------------------------------------------
    # CreateListing
    # ------------------------------------------------------------------
    async def create_listing(self, donor: Actor, data: ListingCreate) -> dict:
        now = self.clock()
        if not (data.title or "").strip():
            raise errors.ValidationError("Title is required")
        if not math.isfinite(data.quantity) or data.quantity <= 0:
            raise errors.ValidationError("Invalid quantity")
        if data.expiry_time <= now:
            raise errors.ValidationError("Expiry time must be after creation time")
        location = await self._resolve_location(data.location)

        listing = Listing(
            donor_id=donor.id,
            title=data.title.strip(),
            description=data.description,
            food_type=data.food_type,
            quantity=float(data.quantity),
            unit=data.unit,
            expiry_time=data.expiry_time,
            location=location,
            is_disaster_relief=data.is_disaster_relief,
            disaster_zone=data.disaster_zone,
            estimated_co2_reduction=co2_reduction(data.quantity),
            created_at=now,
            updated_at=now,
        )
        # The listings collection carries the 2dsphere index, so inserting registers it.
        await bounded(self.repo.insert_listing(listing.to_doc()), self.timeout, "listing store")

        rewards = {"points_earned": 0, "new_badges": []}
        try:
            rewards = await self.ledger.record_donation(
                donor.id, listing.quantity, listing.estimated_co2_reduction,
                listing.food_type, listing.is_disaster_relief, now,
            )
        except errors.CoreError:
            logger.exception("Ledger update failed for new listing %s", listing.id)

        result = await self.matcher.find_matches(listing)

        outbox = Outbox(now=now)
        for match in result["matches"][: self.notify_top]:
            outbox.notify(
                match.id, "match_found", "New Food Listing Near You!",
                f"{listing.quantity:g} {listing.unit} of {listing.title} listed nearby",
                related_id=listing.id, priority="high",
            )
        outbox.broadcast("new-listing", {
            "listing_id": listing.id,
            "title": listing.title,
            "location": listing.location.model_dump(),
            "match_ids": [m.id for m in result["matches"]],
        })
        await self.events.publish(outbox)

        return {
            "listing": listing,
            "points_earned": rewards["points_earned"],
            "new_badges": rewards["new_badges"],
            "matches": result["matches"],
            "recommended_match": result["recommended_match"],
            "fallback_routes": result["fallback_routes"],
        }

    async def _resolve_location(self, loc: Optional[LocationIn]) -> GeoPoint:
        if loc is None:
            raise errors.ValidationError("Location is required")
        if loc.coordinates:
            try:
                return GeoPoint(coordinates=loc.coordinates, address=loc.address,
                                city=loc.city, state=loc.state)
            except pydantic.ValidationError as ex:
                raise errors.ValidationError(f"Invalid location: {ex.errors()[0]['msg']}")
        if loc.city and self.geocoder is not None:
            try:
                return GeoPoint(**await self.geocoder.resolve(loc.address, loc.city, loc.state))
            except GeocodeError as ex:
                raise errors.ValidationError(f"Could not locate {loc.city}: {ex}")
        raise errors.ValidationError("Location is required")

    # ------------------------------------------------------------------
    # ConfirmCollection
    # ------------------------------------------------------------------
    async def confirm_collection(self, listing_id: str, receiver: Actor) -> Listing:
        def change(l: Listing, out: Outbox):
            if l.claimed_by is None or l.claimed_by != receiver.id:
                raise errors.Unauthorized("Only the approved receiver can confirm collection")
            if not can_transition(l.status, "collected", "claimant"):
                raise errors.InvalidState("Listing must be approved before collection")
            l.status = "collected"
            l.collected_at = out.now
            out.notify(
                l.donor_id, "collection_confirmed", "Food Collected!",
                f'The receiver has confirmed collection of "{l.title}". Please mark as done when ready.',
                related_id=l.id, priority="high",
            )
            out.broadcast("collection-confirmed", {"listing_id": l.id, "receiver_id": receiver.id}, room=l.donor_id)

        listing, outbox = await self.mutate(listing_id, change)
        try:
            await self.ledger.record_receipt(receiver.id, listing.quantity, outbox.now)
        except errors.CoreError:
            logger.exception("Ledger update failed for collection of listing %s", listing.id)
        return listing

    # ------------------------------------------------------------------
    # MarkDistributed
    # ------------------------------------------------------------------
    async def mark_distributed(self, listing_id: str, donor: Actor) -> Listing:
        def change(l: Listing, out: Outbox):
            if l.donor_id != donor.id:
                raise errors.Unauthorized("Only the donor can mark listing as done")
            if not can_transition(l.status, "distributed", "donor"):
                raise errors.InvalidState("Listing must be collected or approved before marking as done")
            l.status = "distributed"
            l.distributed_at = out.now
            if l.claimed_by:
                out.notify(
                    l.claimed_by, "listing_completed", "Transaction Completed!",
                    f'The transaction for "{l.title}" has been marked as complete. Thank you!',
                    related_id=l.id, priority="medium",
                )
            out.broadcast("listing-completed", {"listing_id": l.id})

        listing, _ = await self.mutate(listing_id, change)
        return listing

    # ------------------------------------------------------------------
    # Forced fallback (driven by the sweeper)
    # ------------------------------------------------------------------
    async def expire_to_fallback(self, listing_id: str, route: str,
                                 facility: Optional[FacilityHit] = None) -> Listing:
        def change(l: Listing, out: Outbox):
            if not can_transition(l.status, "fallback", "system"):
                raise errors.InvalidState(f"Listing is {l.status}; only open listings expire")
            if l.expiry_time >= out.now:
                raise errors.InvalidState("Listing has not expired yet")

            rejected = l.pending_requests()
            for req in rejected:
                req.status = "rejected"
            l.status = "fallback"
            l.fallback_route = route
            l.fallback_facility_id = facility.id if facility else None
            l.fallback_at = out.now

            if route == "none":
                where = "no fallback facility was in range"
            else:
                where = f"it has been automatically routed to {route.replace('-', ' ')}"
            out.notify(
                l.donor_id, "listing_expired", "Listing Expired - Routed to Fallback",
                f'Your listing "{l.title}" has expired and {where}.',
                related_id=l.id, priority="medium",
            )
            for req in rejected:
                out.notify(
                    req.receiver_id, "listing_expired", "Listing Expired",
                    f'The listing "{l.title}" you requested has expired and was routed to fallback.',
                    related_id=l.id, priority="low",
                )
            out.broadcast("listing-expired", {
                "listing_id": l.id,
                "fallback_type": route,
                "fallback_location": facility.model_dump(by_alias=True) if facility else None,
            })

        listing, _ = await self.mutate(listing_id, change)
        return listing

    # ------------------------------------------------------------------
    # Delete (out of band, not a transition)
    # ------------------------------------------------------------------
    async def delete_listing(self, listing_id: str, actor: Actor) -> None:
        listing = await self.get(listing_id)
        if listing.donor_id != actor.id and not actor.is_admin:
            raise errors.Unauthorized("Not authorized")
        deleted = await bounded(self.repo.delete_listing(listing_id), self.timeout, "listing store")
        if not deleted:
            raise errors.NotFound("Listing not found")
        logger.info("Listing %s deleted by %s", listing_id, actor.id)

