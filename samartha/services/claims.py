# samartha/services/claims.py
from samartha.core import errors
from samartha.core.states import CLAIMABLE_STATES, can_transition
from samartha.models.actor import Actor
from samartha.models.listing import ClaimRequest, Listing
from samartha.services.events import Outbox

class ClaimQueue:
    """
    Per-listing queue of claim requests, kept in arrival order.

    The donor may approve any pending request, not only the oldest one;
    arrival order is shown to the donor but never enforced.
    """

    def __init__(self, lifecycle):
        self.lifecycle = lifecycle

    async def submit(self, listing_id: str, receiver: Actor, message: str = "") -> ClaimRequest:
        created: dict = {}

        def change(l: Listing, out: Outbox):
            if l.status not in CLAIMABLE_STATES:
                raise errors.InvalidState("Listing is not available for claiming")
            if l.pending_for(receiver.id):
                raise errors.DuplicatePending("You already have a pending claim request")

            req = ClaimRequest(receiver_id=receiver.id, requested_at=out.now, message=message or "")
            l.claim_requests.append(req)
            if l.status == "active":
                l.status = "pending_approval"
            created["id"] = req.id

            out.notify(
                l.donor_id, "claim_requested", "New Claim Request!",
                f"A receiver has requested to claim your listing: {l.title}",
                related_id=l.id, priority="high",
            )
            out.notify(
                receiver.id, "claim_requested", "Claim Request Submitted",
                f'Your claim request for "{l.title}" has been sent to the donor. Waiting for approval.',
                related_id=l.id, priority="medium",
            )
            out.broadcast("new-claim-request", {
                "listing_id": l.id, "request_id": req.id, "receiver_id": receiver.id,
            }, room=l.donor_id)

        listing, _ = await self.lifecycle.mutate(listing_id, change)
        return listing.find_request(created["id"])

    async def approve(self, listing_id: str, request_id: str, donor: Actor) -> Listing:
        def change(l: Listing, out: Outbox):
            if l.donor_id != donor.id:
                raise errors.Unauthorized("Only the donor can approve claims")
            if not can_transition(l.status, "approved", "donor"):
                if l.status == "approved":
                    raise errors.AlreadyApproved("A claim on this listing is already approved")
                raise errors.InvalidState(f"Cannot approve a claim on a {l.status} listing")
            req = l.find_request(request_id)
            if req is None:
                raise errors.NotFound("Claim request not found")
            if req.status != "pending":
                raise errors.InvalidState(f"Claim request is already {req.status}")

            # approve one, reject every other pending request in the same write
            req.status = "approved"
            rejected = []
            for other in l.claim_requests:
                if other.id != req.id and other.status == "pending":
                    other.status = "rejected"
                    rejected.append(other)
            l.status = "approved"
            l.claimed_by = req.receiver_id
            l.claimed_at = out.now
            l.approved_at = out.now

            out.notify(
                req.receiver_id, "claim_approved", "Claim Approved!",
                f'The donor has approved your claim request for "{l.title}". Please collect it soon!',
                related_id=l.id, priority="high",
            )
            for other in rejected:
                out.notify(
                    other.receiver_id, "claim_rejected", "Claim Request Not Selected",
                    f'Another receiver was selected for "{l.title}". Keep trying!',
                    related_id=l.id, priority="low",
                )
            out.broadcast("claim-approved", {"listing_id": l.id, "request_id": req.id}, room=req.receiver_id)
            out.broadcast("listing-approved", {"listing_id": l.id, "claimed_by": req.receiver_id})

        listing, _ = await self.lifecycle.mutate(listing_id, change)
        return listing
