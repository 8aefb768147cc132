from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

ListingStatus = Literal["active", "pending_approval", "approved", "collected", "distributed", "fallback"]
ClaimStatus = Literal["pending", "approved", "rejected"]
FallbackRoute = Literal["animal-farm", "community-fridge", "compost-center", "none"]
FoodType = Literal["cooked", "raw", "packaged", "beverages", "other"]
Unit = Literal["kg", "plates", "packets", "liters", "units"]

def new_id() -> str:
    return str(ObjectId())

def as_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)

# --------------------------
# Shared Submodels
# --------------------------
class GeoPoint(BaseModel):
    """GeoJSON point plus the human readable place it stands for."""
    type: Literal["Point"] = "Point"
    coordinates: List[float]            # [longitude, latitude]
    address: str = ""
    city: str = ""
    state: str = ""

    @field_validator("coordinates")
    @classmethod
    def _lng_lat(cls, v: List[float]) -> List[float]:
        if len(v) != 2:
            raise ValueError("coordinates must be [longitude, latitude]")
        lng, lat = float(v[0]), float(v[1])
        if not -180.0 <= lng <= 180.0:
            raise ValueError("longitude out of range")
        if not -90.0 <= lat <= 90.0:
            raise ValueError("latitude out of range")
        return [lng, lat]

class ClaimRequest(BaseModel):
    id: str = Field(default_factory=new_id)
    receiver_id: str
    requested_at: datetime
    status: ClaimStatus = "pending"
    message: str = ""

    @field_validator("requested_at")
    @classmethod
    def _requested_utc(cls, v):
        return as_utc(v)

# --------------------------
# Listings
# --------------------------
class LocationIn(BaseModel):
    coordinates: Optional[List[float]] = None
    address: str = ""
    city: str = ""
    state: str = ""

class ListingCreate(BaseModel):
    title: str
    description: str = ""
    food_type: FoodType = "other"
    quantity: float
    unit: Unit = "kg"
    expiry_time: datetime
    location: Optional[LocationIn] = None
    is_disaster_relief: bool = False
    disaster_zone: str = ""

    @field_validator("expiry_time")
    @classmethod
    def _expiry_utc(cls, v):
        return as_utc(v)

class Listing(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    donor_id: str
    title: str
    description: str = ""
    food_type: FoodType = "other"
    quantity: float
    unit: Unit = "kg"
    expiry_time: datetime
    location: GeoPoint

    status: ListingStatus = "active"
    claim_requests: List[ClaimRequest] = []
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    collected_at: Optional[datetime] = None
    distributed_at: Optional[datetime] = None

    fallback_route: Optional[FallbackRoute] = None
    fallback_facility_id: Optional[str] = None
    fallback_at: Optional[datetime] = None

    is_disaster_relief: bool = False
    disaster_zone: str = ""
    estimated_co2_reduction: float = 0.0

    created_at: datetime
    updated_at: datetime
    version: int = 1

    @field_validator(
        "expiry_time", "claimed_at", "approved_at", "collected_at",
        "distributed_at", "fallback_at", "created_at", "updated_at",
    )
    @classmethod
    def _timestamps_utc(cls, v):
        return as_utc(v)

    # ---- store mapping
    @classmethod
    def from_doc(cls, doc: dict) -> "Listing":
        return cls.model_validate(doc)

    def to_doc(self) -> dict:
        return self.model_dump(by_alias=True)

    # ---- claim queue views
    def pending_requests(self) -> List[ClaimRequest]:
        return [r for r in self.claim_requests if r.status == "pending"]

    def pending_for(self, receiver_id: str) -> Optional[ClaimRequest]:
        for r in self.claim_requests:
            if r.receiver_id == receiver_id and r.status == "pending":
                return r
        return None

    def find_request(self, request_id: str) -> Optional[ClaimRequest]:
        for r in self.claim_requests:
            if r.id == request_id:
                return r
        return None

    def approved_request(self) -> Optional[ClaimRequest]:
        for r in self.claim_requests:
            if r.status == "approved":
                return r
        return None
