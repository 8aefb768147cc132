from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from samartha.models.listing import GeoPoint, new_id

FacilityType = Literal["animal-farm", "community-fridge", "compost-center", "food-hub"]

class Facility(BaseModel):
    """Fallback target. Capacity is informational; routing never checks it."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    name: str
    type: FacilityType
    location: GeoPoint
    capacity: float = 0.0            # kg
    current_inventory: float = 0.0
    is_active: bool = True
    managed_by: Optional[str] = None

class FacilityHit(Facility):
    distance_km: float
