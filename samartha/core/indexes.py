# samartha/core/indexes.py
from pymongo import ASCENDING, DESCENDING, GEOSPHERE

async def ensure_indexes(db):
    async def ensure_index(col, keys, name: str, **kwargs):
        existing = [ix["name"] async for ix in col.list_indexes()]
        if name in existing:
            return
        await col.create_index(keys, name=name, **kwargs)

    # Listings
    await ensure_index(db.listings, [("location", GEOSPHERE)], "location_2dsphere")
    await ensure_index(db.listings, [("status", ASCENDING), ("expiry_time", ASCENDING)], "status_1_expiry_time_1")
    await ensure_index(db.listings, [("donor_id", ASCENDING), ("status", ASCENDING)], "donor_id_1_status_1")

    # Receivers and fallback facilities
    await ensure_index(db.users, [("location", GEOSPHERE)], "location_2dsphere")
    await ensure_index(db.facilities, [("location", GEOSPHERE)], "location_2dsphere")
    await ensure_index(db.facilities, [("type", ASCENDING), ("is_active", ASCENDING)], "type_1_is_active_1")

    # Side channel + leaderboard
    await ensure_index(db.notifications, [("user_id", ASCENDING), ("is_read", ASCENDING), ("created_at", DESCENDING)], "user_id_1_is_read_1_created_at_-1")
    await ensure_index(db.leaderboard, [("user_id", ASCENDING)], "user_id_1", unique=True)
    await ensure_index(db.leaderboard, [("points", DESCENDING)], "points_-1")
    await ensure_index(db.leaderboard, [("city", ASCENDING), ("points", DESCENDING)], "city_1_points_-1")
    await ensure_index(db.leaderboard, [("state", ASCENDING), ("points", DESCENDING)], "state_1_points_-1")
