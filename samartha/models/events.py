from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

NotificationType = Literal[
    "claim_requested", "claim_approved", "claim_rejected",
    "collection_confirmed", "listing_completed", "listing_expired",
    "match_found",
]
Priority = Literal["low", "medium", "high", "urgent", "critical"]

class Notification(BaseModel):
    user_id: str
    type: NotificationType
    title: str
    message: str
    related_id: Optional[str] = None
    priority: Priority = "medium"
    is_read: bool = False
    created_at: datetime

class Broadcast(BaseModel):
    """Real-time event for the pub/sub collaborator. room=None means everyone."""
    event: str
    room: Optional[str] = None
    data: Dict[str, Any] = {}
    created_at: datetime
