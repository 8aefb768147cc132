# samartha/routers/admin.py
from fastapi import APIRouter, Depends

from samartha.core.security import require_admin
from samartha.deps import Services, get_services

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])

@router.post("/sweep")
async def force_sweep(svc: Services = Depends(get_services)):
    return await svc.sweeper.run_once()
