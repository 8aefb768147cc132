from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from samartha.models.listing import GeoPoint

Role = Literal["user", "organization", "volunteer", "admin"]
RECEIVER_ROLES = ["user", "organization", "volunteer"]

class ReceiverCandidate(BaseModel):
    """Read model of a user directory entry, as seen by matching."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    name: str = ""
    role: Role = "user"
    organization_name: str = ""
    verification_status: Literal["pending", "verified", "rejected"] = "pending"
    is_active: bool = True
    disaster_mode_enabled: bool = False
    location: Optional[GeoPoint] = None

class ScoredReceiver(ReceiverCandidate):
    distance_km: float
    rank_index: int
    match_score: int
