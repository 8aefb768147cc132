import asyncio

import pytest

from samartha.core.errors import (
    AlreadyApproved, ConcurrentUpdate, DependencyUnavailable, DuplicatePending,
    InvalidState, NotFound, Unauthorized,
)
from samartha.deps import build_services
from samartha.repos.inmemory import InMemoryRepo
from tests.helpers import actor, create_listing

pytestmark = pytest.mark.anyio

DONOR = actor("donor-1")
R1 = actor("recv-1")
R2 = actor("recv-2")
R3 = actor("recv-3")

def _notes(repo, user_id, type_=None):
    return [n for n in repo.notifications
            if n["user_id"] == user_id and (type_ is None or n["type"] == type_)]

async def test_first_claim_moves_listing_to_pending(svc, repo, clock):
    listing = await create_listing(svc, clock)
    req = await svc.claims.submit(listing.id, R1, "Can pick up in 20 min")

    stored = await svc.lifecycle.get(listing.id)
    assert stored.status == "pending_approval"
    assert [r.id for r in stored.claim_requests] == [req.id]
    assert req.status == "pending"
    assert req.requested_at == clock()
    assert req.message == "Can pick up in 20 min"

    assert _notes(repo, "donor-1", "claim_requested")[0]["priority"] == "high"
    assert _notes(repo, "recv-1", "claim_requested")[0]["priority"] == "medium"
    b = repo.broadcasts[-1]
    assert (b["event"], b["room"]) == ("new-claim-request", "donor-1")

async def test_requests_keep_arrival_order(svc, clock):
    listing = await create_listing(svc, clock)
    ids = []
    for r in (R1, R2, R3):
        clock.advance(minutes=1)
        ids.append((await svc.claims.submit(listing.id, r)).id)
    stored = await svc.lifecycle.get(listing.id)
    assert [r.id for r in stored.claim_requests] == ids
    times = [r.requested_at for r in stored.claim_requests]
    assert times == sorted(times)

async def test_duplicate_pending_claim_rejected(svc, clock):
    listing = await create_listing(svc, clock)
    await svc.claims.submit(listing.id, R1)
    with pytest.raises(DuplicatePending):
        await svc.claims.submit(listing.id, R1)
    stored = await svc.lifecycle.get(listing.id)
    assert len(stored.claim_requests) == 1

async def test_donor_may_approve_any_pending_request(svc, repo, clock):
    listing = await create_listing(svc, clock)
    await svc.claims.submit(listing.id, R1)
    second = await svc.claims.submit(listing.id, R2)
    await svc.claims.submit(listing.id, R3)

    clock.advance(minutes=5)
    approved = await svc.claims.approve(listing.id, second.id, DONOR)

    assert approved.status == "approved"
    assert approved.claimed_by == "recv-2"
    assert approved.claimed_at == approved.approved_at == clock()
    assert {r.receiver_id: r.status for r in approved.claim_requests} == {
        "recv-1": "rejected", "recv-2": "approved", "recv-3": "rejected",
    }
    assert len([r for r in approved.claim_requests if r.status == "approved"]) == 1
    assert approved.pending_requests() == []
    assert approved.approved_request().receiver_id == "recv-2"

    assert _notes(repo, "recv-2", "claim_approved")
    assert _notes(repo, "recv-1", "claim_rejected")
    assert _notes(repo, "recv-3", "claim_rejected")
    events = [(b["event"], b["room"]) for b in repo.broadcasts]
    assert ("claim-approved", "recv-2") in events
    assert ("listing-approved", None) in events

async def test_claim_after_approval_is_invalid(svc, clock):
    listing = await create_listing(svc, clock)
    req = await svc.claims.submit(listing.id, R1)
    await svc.claims.approve(listing.id, req.id, DONOR)

    with pytest.raises(InvalidState):
        await svc.claims.submit(listing.id, R2)
    with pytest.raises(AlreadyApproved):
        await svc.claims.approve(listing.id, req.id, DONOR)

async def test_approve_on_distributed_listing_is_invalid(svc, clock):
    listing = await create_listing(svc, clock)
    first = await svc.claims.submit(listing.id, R1)
    await svc.claims.approve(listing.id, first.id, DONOR)
    done = await svc.lifecycle.mark_distributed(listing.id, DONOR)

    with pytest.raises(InvalidState):
        await svc.claims.approve(listing.id, first.id, DONOR)
    after = await svc.lifecycle.get(listing.id)
    assert after.model_dump() == done.model_dump()

async def test_only_donor_can_approve(svc, clock):
    listing = await create_listing(svc, clock)
    req = await svc.claims.submit(listing.id, R1)
    with pytest.raises(Unauthorized):
        await svc.claims.approve(listing.id, req.id, R2)
    with pytest.raises(Unauthorized):
        await svc.claims.approve(listing.id, req.id, actor("root", "admin"))
    assert (await svc.lifecycle.get(listing.id)).status == "pending_approval"

async def test_unknown_request_and_listing(svc, clock):
    listing = await create_listing(svc, clock)
    await svc.claims.submit(listing.id, R1)
    with pytest.raises(NotFound):
        await svc.claims.approve(listing.id, "nope", DONOR)
    with pytest.raises(NotFound):
        await svc.claims.submit("missing-listing", R1)

async def test_failed_claim_writes_nothing(svc, repo, clock):
    listing = await create_listing(svc, clock)
    await svc.claims.submit(listing.id, R1)
    before = await svc.lifecycle.get(listing.id)
    sent = len(repo.notifications)
    with pytest.raises(DuplicatePending):
        await svc.claims.submit(listing.id, R1)
    after = await svc.lifecycle.get(listing.id)
    assert after.version == before.version
    assert len(repo.notifications) == sent


class YieldingRepo(InMemoryRepo):
    """Hands control back to the loop on every read so concurrent writers interleave."""

    async def get_listing(self, listing_id):
        doc = await super().get_listing(listing_id)
        await asyncio.sleep(0)
        return doc

async def test_concurrent_approvals_one_winner(cfg, clock):
    repo = YieldingRepo()
    repo.build_geo_index()
    svc = build_services(repo, cfg=cfg, clock=clock)
    listing = await create_listing(svc, clock)
    a = await svc.claims.submit(listing.id, R1)
    b = await svc.claims.submit(listing.id, R2)

    results = await asyncio.gather(
        svc.claims.approve(listing.id, a.id, DONOR),
        svc.claims.approve(listing.id, b.id, DONOR),
        return_exceptions=True,
    )
    wins = [r for r in results if not isinstance(r, Exception)]
    losses = [r for r in results if isinstance(r, Exception)]
    assert len(wins) == 1
    assert len(losses) == 1
    assert isinstance(losses[0], InvalidState)

    stored = await svc.lifecycle.get(listing.id)
    assert stored.status == "approved"
    assert stored.claimed_by == wins[0].claimed_by
    assert [r.status for r in stored.claim_requests].count("approved") == 1

async def test_concurrent_claims_both_recorded(cfg, clock):
    repo = YieldingRepo()
    repo.build_geo_index()
    svc = build_services(repo, cfg=cfg, clock=clock)
    listing = await create_listing(svc, clock)

    await asyncio.gather(
        svc.claims.submit(listing.id, R1),
        svc.claims.submit(listing.id, R2),
    )
    stored = await svc.lifecycle.get(listing.id)
    assert sorted(r.receiver_id for r in stored.claim_requests) == ["recv-1", "recv-2"]
    assert stored.status == "pending_approval"

async def test_many_concurrent_claims_all_recorded(cfg, clock):
    repo = YieldingRepo()
    repo.build_geo_index()
    svc = build_services(repo, cfg=cfg, clock=clock)
    listing = await create_listing(svc, clock)
    receivers = [actor(f"recv-{i}") for i in range(8)]

    results = await asyncio.gather(
        *(svc.claims.submit(listing.id, r) for r in receivers),
        return_exceptions=True,
    )
    assert [r for r in results if isinstance(r, Exception)] == []

    stored = await svc.lifecycle.get(listing.id)
    assert sorted(r.receiver_id for r in stored.claim_requests) == sorted(r.id for r in receivers)
    assert stored.status == "pending_approval"
    assert stored.version == listing.version + len(receivers)


class ContendedRepo(InMemoryRepo):
    """Every compare-and-swap loses, as if another writer always got there first."""

    def __init__(self):
        super().__init__()
        self.write_attempts = 0

    async def replace_listing_if_version(self, doc, expected_version):
        self.write_attempts += 1
        return None

async def test_endless_contention_gives_up_with_retryable_error(cfg, clock):
    repo = ContendedRepo()
    repo.build_geo_index()
    cfg.write_max_attempts = 3
    svc = build_services(repo, cfg=cfg, clock=clock)
    listing = await create_listing(svc, clock)

    with pytest.raises(ConcurrentUpdate) as exc:
        await svc.claims.submit(listing.id, R1)
    assert isinstance(exc.value, DependencyUnavailable)
    assert not isinstance(exc.value, InvalidState)
    assert exc.value.retryable
    assert exc.value.status_code == 503
    assert repo.write_attempts == 3
    assert (await svc.lifecycle.get(listing.id)).claim_requests == []
    assert _notes(repo, "donor-1", "claim_requested") == []
