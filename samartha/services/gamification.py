# samartha/services/gamification.py
import logging
from datetime import datetime
from math import floor, sqrt
from typing import List, Optional

from samartha.core.errors import bounded

logger = logging.getLogger(__name__)

POINTS_PER_KG_DONATED = 10
POINTS_PER_KG_RECEIVED = 5
POINTS_PER_CO2_KG = 2
POINTS_FIRST_DONATION = 50
POINTS_DISASTER_RELIEF = 25

FIRST_DONATION_EPSILON = 1e-9

def calculate_points(action: str, quantity: float = 0, co2_reduced: float = 0) -> int:
    if action == "donate":
        points = quantity * POINTS_PER_KG_DONATED
    elif action == "receive":
        points = quantity * POINTS_PER_KG_RECEIVED
    elif action == "co2_reduction":
        points = co2_reduced * POINTS_PER_CO2_KG
    elif action == "first_donation":
        points = POINTS_FIRST_DONATION
    elif action == "disaster_relief":
        points = POINTS_DISASTER_RELIEF
    else:
        points = 0
    return int(round(points))

def calculate_level(total_points: float) -> int:
    return floor(sqrt(max(0, total_points) / 100)) + 1

def earned_badges(user: dict) -> List[str]:
    """Badges the user qualifies for but does not hold yet."""
    have = set(user.get("badges") or [])
    donated = user.get("total_food_donated", 0) or 0
    rules = [
        ("first_donation", donated > 0),
        ("hero", donated >= 100),
        ("champion", donated >= 500),
        ("earth_saver", (user.get("total_co2_reduced", 0) or 0) >= 1000),
        ("disaster_hero", bool(user.get("disaster_mode_enabled"))),
        ("level_10", (user.get("level", 1) or 1) >= 10),
    ]
    return [name for name, ok in rules if ok and name not in have]


class GamificationLedger:
    """
    Point / level / badge bookkeeping hooked onto lifecycle transitions.

    Counters are only ever changed through the store's atomic increment, so
    concurrent donations by the same user cannot lose updates. The per
    category totals live in an explicit `donated_by_category` mapping.
    """

    def __init__(self, repo, timeout: float):
        self.repo = repo
        self.timeout = timeout

    async def record_donation(self, donor_id: str, quantity: float, co2: float,
                              food_type: str, disaster_relief: bool, now: datetime) -> dict:
        points = calculate_points("donate", quantity, co2)
        if disaster_relief:
            points += calculate_points("disaster_relief")

        user = await bounded(self.repo.increment_user(donor_id, {
            "total_food_donated": quantity,
            "total_co2_reduced": co2,
            "donations_count": 1,
            f"donated_by_category.{food_type}": quantity,
            "points": points,
        }), self.timeout, "user store")
        if user is None:
            logger.warning("Donor %s not in user directory; no points recorded", donor_id)
            return {"points_earned": 0, "new_badges": []}

        # increment returns the post-update doc; nothing donated before this one means first
        donated_before = (user.get("total_food_donated") or 0) - quantity
        if donated_before <= FIRST_DONATION_EPSILON:
            bonus = calculate_points("first_donation")
            user = await bounded(self.repo.increment_user(donor_id, {"points": bonus}),
                                 self.timeout, "user store")
            points += bonus

        new_badges = await self._settle(user, now)
        return {"points_earned": points, "new_badges": new_badges}

    async def record_receipt(self, receiver_id: str, quantity: float, now: datetime) -> dict:
        points = calculate_points("receive", quantity)
        user = await bounded(self.repo.increment_user(receiver_id, {
            "total_food_received": quantity,
            "points": points,
        }), self.timeout, "user store")
        if user is None:
            logger.warning("Receiver %s not in user directory; no points recorded", receiver_id)
            return {"points_earned": 0, "new_badges": []}
        new_badges = await self._settle(user, now)
        return {"points_earned": points, "new_badges": new_badges}

    async def _settle(self, user: dict, now: datetime) -> List[str]:
        uid = user["_id"]
        level = calculate_level(user.get("points", 0))
        user["level"] = level
        await bounded(self.repo.set_user_fields(uid, {"level": level}), self.timeout, "user store")

        new_badges = earned_badges(user)
        if new_badges:
            await bounded(self.repo.add_user_badges(uid, new_badges), self.timeout, "user store")

        await self.update_leaderboard(user, now)
        return new_badges

    async def update_leaderboard(self, user: dict, now: datetime) -> Optional[dict]:
        uid = user["_id"]
        loc = user.get("location") or {}
        city = loc.get("city") or "Unknown"
        state = loc.get("state") or "Unknown"
        points = user.get("points", 0) or 0

        await bounded(self.repo.upsert_leaderboard_entry(uid, {
            "points": points,
            "food_donated": user.get("total_food_donated", 0) or 0,
            "co2_reduced": user.get("total_co2_reduced", 0) or 0,
            "city": city,
            "state": state,
            "last_updated": now,
        }), self.timeout, "leaderboard")

        async def above(scope=None) -> int:
            return await bounded(self.repo.count_leaderboard_above(points, scope), self.timeout, "leaderboard")

        rank = {
            "city_rank": await above({"city": city}) + 1,
            "state_rank": await above({"state": state}) + 1,
            "national_rank": await above() + 1,
        }
        await bounded(self.repo.set_leaderboard_rank(uid, rank), self.timeout, "leaderboard")
        return rank
