from dataclasses import dataclass
from typing import Callable, Optional

from samartha.core.config import Settings, settings
from samartha.core.geocode import Geocoder
from samartha.services.claims import ClaimQueue
from samartha.services.events import EventSink
from samartha.services.fallback import FallbackRouter
from samartha.services.gamification import GamificationLedger
from samartha.services.geo_index import GeoIndex
from samartha.services.lifecycle import ListingLifecycle
from samartha.services.matching import Matcher
from samartha.services.store import utcnow
from samartha.services.sweeper import ExpirySweeper

@dataclass
class Services:
    repo: object
    geo: GeoIndex
    router: FallbackRouter
    matcher: Matcher
    events: EventSink
    ledger: GamificationLedger
    lifecycle: ListingLifecycle
    claims: ClaimQueue
    sweeper: ExpirySweeper

def build_services(repo, cfg: Settings = settings, clock: Callable = utcnow,
                   geocoder: Optional[Geocoder] = None) -> Services:
    t = cfg.query_timeout_seconds
    geo = GeoIndex(repo, timeout=t)
    router = FallbackRouter(geo, radius_km=cfg.fallback_radius_km,
                            limit=cfg.fallback_limit, scan_cap=cfg.facility_scan_cap)
    matcher = Matcher(repo, geo, router, radius_km=cfg.match_radius_km,
                      limit=cfg.match_limit, scan_cap=cfg.receiver_scan_cap, timeout=t)
    events = EventSink(repo, timeout=t)
    ledger = GamificationLedger(repo, timeout=t)
    lifecycle = ListingLifecycle(repo, events, ledger, matcher, geocoder=geocoder,
                                 clock=clock, timeout=t, max_attempts=cfg.write_max_attempts,
                                 notify_top=cfg.match_notify_top)
    claims = ClaimQueue(lifecycle)
    sweeper = ExpirySweeper(repo, lifecycle, router, clock=clock, timeout=t,
                            interval=cfg.sweep_interval_seconds,
                            run_on_start=cfg.sweep_on_startup)
    return Services(repo, geo, router, matcher, events, ledger, lifecycle, claims, sweeper)

def _make_repo():
    if settings.use_mongo:
        from samartha.core.db import get_db
        from samartha.repos.mongo import MongoRepo
        return MongoRepo(get_db())
    from samartha.repos.inmemory import InMemoryRepo
    return InMemoryRepo()

_services: Optional[Services] = None

def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(_make_repo(), geocoder=Geocoder())
    return _services
