from datetime import timedelta
from math import cos, radians

from samartha.models.actor import Actor
from samartha.models.listing import ListingCreate, LocationIn

MUMBAI = [72.8777, 19.0760]
KM_PER_DEG_LAT = 111.19492664455873   # 2*pi*6371/360

def offset(point, north_km: float = 0.0, east_km: float = 0.0):
    lng, lat = point
    return [
        lng + east_km / (KM_PER_DEG_LAT * cos(radians(lat))),
        lat + north_km / KM_PER_DEG_LAT,
    ]

def actor(uid: str, role: str = "user") -> Actor:
    return Actor(id=uid, role=role)

async def add_user(repo, uid, coords=MUMBAI, role="user", verified=True, active=True,
                   disaster=False, city="Mumbai", state="Maharashtra"):
    return await repo.insert_user({
        "_id": uid,
        "name": uid.title(),
        "role": role,
        "verification_status": "verified" if verified else "pending",
        "is_active": active,
        "disaster_mode_enabled": disaster,
        "location": {"type": "Point", "coordinates": list(coords), "city": city, "state": state},
        "points": 0,
        "level": 1,
        "badges": [],
    })

async def add_facility(repo, fid, ftype, coords, active=True, capacity=100.0, inventory=0.0):
    return await repo.insert_facility({
        "_id": fid,
        "name": fid.replace("-", " ").title(),
        "type": ftype,
        "location": {"type": "Point", "coordinates": list(coords)},
        "capacity": capacity,
        "current_inventory": inventory,
        "is_active": active,
    })

def payload(clock, hours: float = 1.0, coords=MUMBAI, **overrides) -> ListingCreate:
    data = {
        "title": "Veg biryani",
        "description": "Leftover from a wedding",
        "food_type": "cooked",
        "quantity": 10,
        "unit": "kg",
        "expiry_time": clock() + timedelta(hours=hours),
        "location": LocationIn(coordinates=list(coords), city="Mumbai", state="Maharashtra"),
    }
    data.update(overrides)
    return ListingCreate(**data)

async def create_listing(svc, clock, donor_id="donor-1", **kw):
    out = await svc.lifecycle.create_listing(actor(donor_id), payload(clock, **kw))
    return out["listing"]
