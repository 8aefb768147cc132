# samartha/repos/inmemory.py
import copy
from typing import Any, Dict, List, Optional, Tuple

from samartha.core.errors import GeoIndexUnavailable
from samartha.services.distance import haversine_km

_OPS = {
    "$in":  lambda v, arg: v in arg,
    "$nin": lambda v, arg: v not in arg,
    "$ne":  lambda v, arg: v != arg,
    "$lt":  lambda v, arg: v is not None and v < arg,
    "$lte": lambda v, arg: v is not None and v <= arg,
    "$gt":  lambda v, arg: v is not None and v > arg,
    "$gte": lambda v, arg: v is not None and v >= arg,
}

def _get_path(doc: dict, path: str):
    cur: Any = doc
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur

def matches(doc: dict, flt: Optional[dict]) -> bool:
    """Evaluate the Mongo filter subset the engine uses against a plain dict."""
    for key, cond in (flt or {}).items():
        val = _get_path(doc, key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op not in _OPS:
                    raise ValueError(f"Unsupported operator {op}")
                if not _OPS[op](val, arg):
                    return False
        elif val != cond:
            return False
    return True

def _inc_path(doc: dict, path: str, amount: float) -> None:
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        cur = cur.setdefault(part, {})
    cur[parts[-1]] = (cur.get(parts[-1]) or 0) + amount


class InMemoryRepo:
    """
    Process-local document store with the same surface as MongoRepo.
    Every call copies documents in and out, so callers never share state
    with the store. A nearest query needs build_geo_index() first, the same
    way a 2dsphere index must exist in Mongo.
    """

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {
            "listings": {}, "users": {}, "facilities": {}, "leaderboard": {},
        }
        self.notifications: List[dict] = []
        self.broadcasts: List[dict] = []
        self.geo_indexed = False

    def _col(self, name: str) -> Dict[str, dict]:
        return self.collections.setdefault(name, {})

    # Indexes
    async def ensure_indexes(self):
        self.build_geo_index()

    def build_geo_index(self):
        self.geo_indexed = True

    def drop_geo_index(self):
        self.geo_indexed = False

    # Listings
    async def insert_listing(self, doc: dict) -> dict:
        if doc["_id"] in self._col("listings"):
            raise ValueError("Duplicate listing id")
        self._col("listings")[doc["_id"]] = copy.deepcopy(doc)
        return copy.deepcopy(doc)

    async def get_listing(self, listing_id: str) -> Optional[dict]:
        doc = self._col("listings").get(listing_id)
        return copy.deepcopy(doc) if doc else None

    async def replace_listing_if_version(self, doc: dict, expected_version: int) -> Optional[dict]:
        cur = self._col("listings").get(doc["_id"])
        if cur is None or cur.get("version") != expected_version:
            return None
        new_doc = copy.deepcopy(doc)
        new_doc["version"] = expected_version + 1
        self._col("listings")[doc["_id"]] = new_doc
        return copy.deepcopy(new_doc)

    async def delete_listing(self, listing_id: str) -> bool:
        return self._col("listings").pop(listing_id, None) is not None

    async def find_listings(self, flt: dict, limit: Optional[int] = None) -> List[dict]:
        out = [copy.deepcopy(d) for d in self._col("listings").values() if matches(d, flt)]
        out.sort(key=lambda d: d.get("expiry_time"))
        return out[:limit] if limit else out

    # Geo
    async def near(self, collection: str, coordinates: List[float], max_km: float,
                   flt: Optional[dict], limit: int) -> List[Tuple[dict, float]]:
        if not self.geo_indexed:
            raise GeoIndexUnavailable(f"no spatial index on {collection}")
        lng, lat = coordinates
        hits = []
        for d in self._col(collection).values():
            pt = (d.get("location") or {}).get("coordinates")
            if not pt or not matches(d, flt):
                continue
            dist = haversine_km(lat, lng, pt[1], pt[0])
            if dist <= max_km:
                hits.append((copy.deepcopy(d), dist))
        hits.sort(key=lambda h: h[1])
        return hits[:limit]

    async def scan(self, collection: str, flt: Optional[dict], limit: int) -> List[dict]:
        out = []
        for d in self._col(collection).values():
            if matches(d, flt):
                out.append(copy.deepcopy(d))
                if len(out) >= limit:
                    break
        return out

    # Users
    async def insert_user(self, doc: dict) -> dict:
        self._col("users")[doc["_id"]] = copy.deepcopy(doc)
        return copy.deepcopy(doc)

    async def get_user(self, user_id: str) -> Optional[dict]:
        doc = self._col("users").get(user_id)
        return copy.deepcopy(doc) if doc else None

    async def increment_user(self, user_id: str, inc: Dict[str, float]) -> Optional[dict]:
        doc = self._col("users").get(user_id)
        if doc is None:
            return None
        for path, amount in inc.items():
            _inc_path(doc, path, amount)
        return copy.deepcopy(doc)

    async def set_user_fields(self, user_id: str, fields: dict) -> None:
        if user_id in self._col("users"):
            self._col("users")[user_id].update(copy.deepcopy(fields))

    async def add_user_badges(self, user_id: str, badges: List[str]) -> None:
        doc = self._col("users").get(user_id)
        if doc is None:
            return
        have = doc.setdefault("badges", [])
        have.extend(b for b in badges if b not in have)

    # Facilities
    async def insert_facility(self, doc: dict) -> dict:
        self._col("facilities")[doc["_id"]] = copy.deepcopy(doc)
        return copy.deepcopy(doc)

    # Leaderboard
    async def upsert_leaderboard_entry(self, user_id: str, fields: dict) -> None:
        entry = self._col("leaderboard").setdefault(user_id, {"_id": user_id, "user_id": user_id})
        entry.update(copy.deepcopy(fields))

    async def get_leaderboard_entry(self, user_id: str) -> Optional[dict]:
        doc = self._col("leaderboard").get(user_id)
        return copy.deepcopy(doc) if doc else None

    async def count_leaderboard_above(self, points: float, scope: Optional[dict] = None) -> int:
        flt = dict(scope or {})
        flt["points"] = {"$gt": points}
        return sum(1 for d in self._col("leaderboard").values() if matches(d, flt))

    async def set_leaderboard_rank(self, user_id: str, rank: dict) -> None:
        if user_id in self._col("leaderboard"):
            self._col("leaderboard")[user_id]["rank"] = dict(rank)

    # Side channel
    async def insert_notifications(self, docs: List[dict]) -> int:
        self.notifications.extend(copy.deepcopy(d) for d in docs)
        return len(docs)

    async def insert_broadcasts(self, docs: List[dict]) -> int:
        self.broadcasts.extend(copy.deepcopy(d) for d in docs)
        return len(docs)
