# samartha/repos/mongo.py
from typing import Dict, List, Optional, Tuple

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import OperationFailure

from samartha.core.errors import GeoIndexUnavailable
from samartha.core.indexes import ensure_indexes

class MongoRepo:
    """Motor-backed store. Takes an AsyncIOMotorDatabase."""

    def __init__(self, db):
        self.db = db

    async def ensure_indexes(self):
        await ensure_indexes(self.db)

    # Listings
    async def insert_listing(self, doc: dict) -> dict:
        await self.db.listings.insert_one(dict(doc))
        return doc

    async def get_listing(self, listing_id: str) -> Optional[dict]:
        return await self.db.listings.find_one({"_id": listing_id})

    async def replace_listing_if_version(self, doc: dict, expected_version: int) -> Optional[dict]:
        new_doc = {**doc, "version": expected_version + 1}
        res = await self.db.listings.replace_one(
            {"_id": doc["_id"], "version": expected_version},
            new_doc,
        )
        if res.matched_count == 0:
            return None
        return new_doc

    async def delete_listing(self, listing_id: str) -> bool:
        res = await self.db.listings.delete_one({"_id": listing_id})
        return res.deleted_count > 0

    async def find_listings(self, flt: dict, limit: Optional[int] = None) -> List[dict]:
        cur = self.db.listings.find(flt).sort("expiry_time", ASCENDING)
        if limit:
            cur = cur.limit(limit)
        return [d async for d in cur]

    # Geo
    async def near(self, collection: str, coordinates: List[float], max_km: float,
                   flt: Optional[dict], limit: int) -> List[Tuple[dict, float]]:
        pipeline = [
            {"$geoNear": {
                "near": {"type": "Point", "coordinates": list(coordinates)},
                "key": "location",
                "distanceField": "_distance_m",
                "maxDistance": max_km * 1000.0,
                "query": flt or {},
                "spherical": True,
            }},
            {"$limit": limit},
        ]
        try:
            docs = [d async for d in self.db[collection].aggregate(pipeline)]
        except OperationFailure as ex:
            # missing / unusable 2dsphere index
            raise GeoIndexUnavailable(str(ex))
        return [(d, d.pop("_distance_m") / 1000.0) for d in docs]

    async def scan(self, collection: str, flt: Optional[dict], limit: int) -> List[dict]:
        q = dict(flt or {})
        q.setdefault("location.coordinates", {"$exists": True, "$ne": None})
        return [d async for d in self.db[collection].find(q).limit(limit)]

    # Users
    async def insert_user(self, doc: dict) -> dict:
        await self.db.users.insert_one(dict(doc))
        return doc

    async def get_user(self, user_id: str) -> Optional[dict]:
        return await self.db.users.find_one({"_id": user_id})

    async def increment_user(self, user_id: str, inc: Dict[str, float]) -> Optional[dict]:
        return await self.db.users.find_one_and_update(
            {"_id": user_id},
            {"$inc": inc},
            return_document=ReturnDocument.AFTER,
        )

    async def set_user_fields(self, user_id: str, fields: dict) -> None:
        await self.db.users.update_one({"_id": user_id}, {"$set": fields})

    async def add_user_badges(self, user_id: str, badges: List[str]) -> None:
        await self.db.users.update_one({"_id": user_id}, {"$addToSet": {"badges": {"$each": badges}}})

    # Facilities
    async def insert_facility(self, doc: dict) -> dict:
        await self.db.facilities.insert_one(dict(doc))
        return doc

    # Leaderboard
    async def upsert_leaderboard_entry(self, user_id: str, fields: dict) -> None:
        await self.db.leaderboard.update_one(
            {"user_id": user_id},
            {"$set": fields, "$setOnInsert": {"user_id": user_id}},
            upsert=True,
        )

    async def get_leaderboard_entry(self, user_id: str) -> Optional[dict]:
        return await self.db.leaderboard.find_one({"user_id": user_id})

    async def count_leaderboard_above(self, points: float, scope: Optional[dict] = None) -> int:
        q = dict(scope or {})
        q["points"] = {"$gt": points}
        return await self.db.leaderboard.count_documents(q)

    async def set_leaderboard_rank(self, user_id: str, rank: dict) -> None:
        await self.db.leaderboard.update_one({"user_id": user_id}, {"$set": {"rank": rank}})

    # Side channel
    async def insert_notifications(self, docs: List[dict]) -> int:
        if not docs:
            return 0
        res = await self.db.notifications.insert_many([dict(d) for d in docs])
        return len(res.inserted_ids)

    async def insert_broadcasts(self, docs: List[dict]) -> int:
        # outbox for the pub/sub relay
        if not docs:
            return 0
        res = await self.db.broadcasts.insert_many([dict(d) for d in docs])
        return len(res.inserted_ids)
