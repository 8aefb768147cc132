# samartha/routers/listings.py
from fastapi import APIRouter, Body, Depends, status

from samartha.core.security import get_current_actor
from samartha.deps import Services, get_services
from samartha.models.actor import Actor
from samartha.models.listing import Listing, ListingCreate

router = APIRouter(prefix="/api/listings", tags=["listings"])

def _serialize(listing: Listing) -> dict:
    return listing.model_dump(mode="json")

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingCreate,
    actor: Actor = Depends(get_current_actor),
    svc: Services = Depends(get_services),
):
    out = await svc.lifecycle.create_listing(actor, body)
    return {
        "listing": _serialize(out["listing"]),
        "points_earned": out["points_earned"],
        "new_badges": out["new_badges"],
        "matches": [m.model_dump(mode="json") for m in out["matches"]],
    }

@router.get("/{listing_id}")
async def get_listing(listing_id: str, svc: Services = Depends(get_services)):
    return _serialize(await svc.lifecycle.get(listing_id))

@router.put("/{listing_id}/claim")
async def claim_listing(
    listing_id: str,
    message: str = Body("", embed=True),
    actor: Actor = Depends(get_current_actor),
    svc: Services = Depends(get_services),
):
    req = await svc.claims.submit(listing_id, actor, message)
    return {
        "message": "Claim request submitted successfully. Waiting for donor approval.",
        "claim_request": req.model_dump(mode="json"),
    }

@router.put("/{listing_id}/approve-claim/{request_id}")
async def approve_claim(
    listing_id: str,
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: Services = Depends(get_services),
):
    listing = await svc.claims.approve(listing_id, request_id, actor)
    return {"message": "Claim approved successfully", "listing": _serialize(listing)}

@router.put("/{listing_id}/confirm-collection")
async def confirm_collection(
    listing_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: Services = Depends(get_services),
):
    listing = await svc.lifecycle.confirm_collection(listing_id, actor)
    return {"message": "Collection confirmed successfully", "listing": _serialize(listing)}

@router.put("/{listing_id}/complete")
async def complete_listing(
    listing_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: Services = Depends(get_services),
):
    listing = await svc.lifecycle.mark_distributed(listing_id, actor)
    return {"message": "Listing marked as completed successfully", "listing": _serialize(listing)}

@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: str,
    actor: Actor = Depends(get_current_actor),
    svc: Services = Depends(get_services),
):
    await svc.lifecycle.delete_listing(listing_id, actor)
    return {"message": "Listing deleted"}
