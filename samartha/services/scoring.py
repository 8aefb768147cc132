# samartha/services/scoring.py
from typing import List, Optional, Sequence, Tuple

from samartha.models.listing import Listing
from samartha.models.receiver import ReceiverCandidate, ScoredReceiver

BASE_SCORE = 100
RANK_STEP = 5
ROLE_BONUS = {"organization": 15, "volunteer": 10}
DISASTER_BONUS = 20

def score_candidate(listing: Listing, candidate: ReceiverCandidate, rank_index: int) -> int:
    score = BASE_SCORE - RANK_STEP * rank_index     # may go negative on long lists
    score += ROLE_BONUS.get(candidate.role, 0)
    if listing.is_disaster_relief and candidate.disaster_mode_enabled:
        score += DISASTER_BONUS
    return score

def rank_receivers(listing: Listing, candidates: Sequence[Tuple[ReceiverCandidate, float]]) -> List[ScoredReceiver]:
    """
    candidates: (receiver, distance_km) already sorted nearest first.

    Returns the receivers re-sorted by match score, highest first. sorted()
    is stable, so equal scores keep their distance order.
    """
    scored = []
    for idx, (cand, dist) in enumerate(candidates):
        scored.append(ScoredReceiver(
            **cand.model_dump(by_alias=True),
            distance_km=round(float(dist), 1),
            rank_index=idx,
            match_score=score_candidate(listing, cand, idx),
        ))
    return sorted(scored, key=lambda s: s.match_score, reverse=True)

def recommended(ranked: List[ScoredReceiver]) -> Optional[ScoredReceiver]:
    return ranked[0] if ranked else None
