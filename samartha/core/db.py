# samartha/core/db.py
from functools import lru_cache

from motor.motor_asyncio import AsyncIOMotorClient

from samartha.core.config import settings

@lru_cache
def get_client() -> AsyncIOMotorClient:
    # tz_aware so expiry comparisons stay in UTC
    return AsyncIOMotorClient(
        settings.mongo_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=int(settings.query_timeout_seconds * 1000),
    )

def get_db():
    return get_client()[settings.mongo_db]
