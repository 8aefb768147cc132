import asyncio

from samartha.core.db import get_client, get_db
from samartha.core.indexes import ensure_indexes

async def main():
    db = get_db()
    await ensure_indexes(db)
    for name in ("listings", "users", "facilities", "notifications", "leaderboard"):
        names = [ix["name"] async for ix in db[name].list_indexes()]
        print(f"{name}: {', '.join(names)}")
    get_client().close()

if __name__ == "__main__":
    asyncio.run(main())
