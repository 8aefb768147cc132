# samartha/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from samartha.core.config import settings
from samartha.core.errors import CoreError, bounded
from samartha.deps import get_services
from samartha.routers import admin as admin_router
from samartha.routers import listings as listings_router
from samartha.routers import matching as matching_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # honour test overrides of the service container
    svc = app.dependency_overrides.get(get_services, get_services)()

    try:
        await bounded(svc.repo.ensure_indexes(), settings.query_timeout_seconds, "index build")
    except CoreError as ex:
        # geo queries fall back to bounded scans until the index exists
        logger.warning("Could not ensure indexes at startup: %s", ex)

    if settings.sweeper_enabled:
        svc.sweeper.start()

    yield

    await svc.sweeper.stop()
    if settings.use_mongo:
        from samartha.core.db import get_client
        get_client().close()


# --- Create app FIRST ---
app = FastAPI(lifespan=lifespan, title="Samartha Setu API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )

# ---------------- Include routers ----------------
app.include_router(listings_router.router)   # /api/listings
app.include_router(matching_router.router)   # /api/matching
app.include_router(admin_router.router)      # /api/admin

# Health
@app.get("/health")
def health():
    return {"ok": True}
