# samartha/routers/matching.py
from fastapi import APIRouter, Depends

from samartha.core.security import get_current_actor
from samartha.deps import Services, get_services

router = APIRouter(prefix="/api/matching", tags=["matching"], dependencies=[Depends(get_current_actor)])

def _routes(grouped: dict) -> dict:
    return {ftype: [f.model_dump(mode="json") for f in hits] for ftype, hits in grouped.items()}

@router.post("/match/{listing_id}")
async def match_listing(listing_id: str, svc: Services = Depends(get_services)):
    res = await svc.matcher.find_matches_for(listing_id)
    best = res["recommended_match"]
    return {
        "listing_id": res["listing_id"],
        "matches": [m.model_dump(mode="json") for m in res["matches"]],
        "fallback_routes": _routes(res["fallback_routes"]),
        "recommended_match": best.model_dump(mode="json") if best else None,
        "degraded": res["degraded"],
    }

@router.get("/fallback/{listing_id}")
async def fallback_routes(listing_id: str, svc: Services = Depends(get_services)):
    return _routes(await svc.matcher.fallback_routes_for(listing_id))
