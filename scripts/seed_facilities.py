import asyncio
import random

from samartha.models.facility import Facility
from samartha.models.listing import GeoPoint

# [longitude, latitude]
CITIES = [
    ("Mumbai", [72.8777, 19.0760], "Maharashtra"),
    ("Delhi", [77.2090, 28.6139], "Delhi"),
    ("Bangalore", [77.5946, 12.9716], "Karnataka"),
    ("Hyderabad", [78.4867, 17.3850], "Telangana"),
    ("Chennai", [80.2707, 13.0827], "Tamil Nadu"),
    ("Kolkata", [88.3639, 22.5726], "West Bengal"),
    ("Pune", [73.8567, 18.5204], "Maharashtra"),
    ("Ahmedabad", [72.5714, 23.0225], "Gujarat"),
    ("Jaipur", [75.7873, 26.9124], "Rajasthan"),
    ("Surat", [72.8311, 21.1702], "Gujarat"),
]

NAMES = {
    "community-fridge": ["Community Fridge", "Sharing Point", "Neighborhood Fridge", "Community Pantry"],
    "animal-farm": ["Green Pastures Farm", "Happy Animals Farm", "Eco Farm", "Green Valley Farm"],
    "compost-center": ["Eco Compost Center", "Green Waste Hub", "Bio Waste Center", "Organic Recycling Center"],
}
CAPACITY = {"community-fridge": 200.0, "animal-farm": 1000.0, "compost-center": 2000.0}

JITTER_DEG = 0.05     # ~5 km

def build_facilities(per_type: int = 10, seed: int = 42):
    rng = random.Random(seed)
    out = []
    for ftype, names in NAMES.items():
        for i in range(per_type):
            city, (lng, lat), state = CITIES[i % len(CITIES)]
            out.append(Facility(
                _id=f"{ftype}-{i + 1}",
                name=f"{names[i % len(names)]} {i + 1} - {city}",
                type=ftype,
                location=GeoPoint(
                    coordinates=[
                        lng + (rng.random() - 0.5) * JITTER_DEG,
                        lat + (rng.random() - 0.5) * JITTER_DEG,
                    ],
                    city=city, state=state,
                ),
                capacity=CAPACITY[ftype],
                current_inventory=0.0,
                is_active=True,
            ))
    return out

async def seed(repo, per_type: int = 10, seed: int = 42) -> int:
    facilities = build_facilities(per_type, seed)
    for f in facilities:
        await repo.insert_facility(f.model_dump(by_alias=True))
    return len(facilities)

async def main():
    from samartha.core.db import get_client, get_db
    from samartha.repos.mongo import MongoRepo

    db = get_db()
    # wipe earlier seed rows
    await db.facilities.delete_many({"_id": {"$regex": "^(community-fridge|animal-farm|compost-center)-"}})
    n = await seed(MongoRepo(db))
    print(f"Seeded {n} facilities")
    get_client().close()

if __name__ == "__main__":
    asyncio.run(main())
