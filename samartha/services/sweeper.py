# samartha/services/sweeper.py
import asyncio
import logging
from typing import Callable, Optional

from samartha.core.errors import CoreError, InvalidState, bounded
from samartha.core.states import SWEEPABLE_STATES
from samartha.models.listing import Listing
from samartha.services.store import utcnow

logger = logging.getLogger(__name__)

class ExpirySweeper:
    """
    Moves listings nobody got approved before expiry onto the fallback path.

    One sweep selects every open listing whose expiry has passed and handles
    each on its own: a failure is logged and the listing keeps its status,
    so the next sweep picks it up again. Already routed listings fall out of
    the selection, which makes repeated sweeps no-ops.
    """

    def __init__(self, repo, lifecycle, router, clock: Callable = utcnow,
                 timeout: float = 5.0, interval: float = 300.0, run_on_start: bool = True):
        self.repo = repo
        self.lifecycle = lifecycle
        self.router = router
        self.clock = clock
        self.timeout = timeout
        self.interval = interval
        self.run_on_start = run_on_start
        self._task: Optional[asyncio.Task] = None
        self._stop: Optional[asyncio.Event] = None

    async def run_once(self) -> dict:
        now = self.clock()
        try:
            docs = await bounded(self.repo.find_listings({
                "status": {"$in": sorted(SWEEPABLE_STATES)},
                "expiry_time": {"$lt": now},
            }), self.timeout, "listing store")
        except CoreError as ex:
            logger.error("Expiry sweep could not select listings: %s", ex)
            return {"processed_count": 0, "failed_count": 0, "skipped_count": 0, "error": ex.detail}

        logger.info("Processing %d expired listings...", len(docs))
        processed = failed = skipped = 0
        for doc in docs:
            try:
                await self.expire_one(Listing.from_doc(doc))
                processed += 1
            except InvalidState as ex:
                # another transition (e.g. an approval) got there first
                skipped += 1
                logger.info("Skipping expired listing %s: %s", doc.get("_id"), ex.detail)
            except Exception:
                # isolate: the rest of the sweep continues, this one retries next interval
                failed += 1
                logger.exception("Error processing expired listing %s", doc.get("_id"))
        if docs:
            logger.info("Expiry sweep done: %d routed, %d skipped, %d failed", processed, skipped, failed)
        return {"processed_count": processed, "failed_count": failed, "skipped_count": skipped}

    async def expire_one(self, listing: Listing) -> Listing:
        route, facility = await self.router.route(listing)
        updated = await self.lifecycle.expire_to_fallback(listing.id, route, facility)
        logger.info("Processed expired listing: %s -> %s", listing.id, route)
        return updated

    # ---- periodic task
    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="expiry-sweeper")
        logger.info("Expiry job started - checking every %gs", self.interval)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _tick(self):
        try:
            await self.run_once()
        except Exception:
            # keep the schedule alive; the next tick retries
            logger.exception("Expiry sweep crashed")

    async def _loop(self):
        if self.run_on_start:
            await self._tick()
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self._tick()

    async def stop(self) -> None:
        # no cancel: an in-flight sweep completes its current listings first
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None
        logger.info("Expiry job stopped")
