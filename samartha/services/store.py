from datetime import datetime, timezone

from samartha.core.errors import NotFound, bounded
from samartha.models.listing import Listing

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

async def load_listing(repo, listing_id: str, timeout: float) -> Listing:
    doc = await bounded(repo.get_listing(listing_id), timeout, "listing store")
    if not doc:
        raise NotFound("Listing not found")
    return Listing.from_doc(doc)
