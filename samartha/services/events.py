import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from samartha.core.errors import CoreError, bounded
from samartha.models.events import Broadcast, Notification

logger = logging.getLogger(__name__)

@dataclass
class Outbox:
    """Side-channel events produced by one transition, published after it commits."""
    now: datetime
    notifications: List[Notification] = field(default_factory=list)
    broadcasts: List[Broadcast] = field(default_factory=list)

    def notify(self, user_id: str, type_: str, title: str, message: str,
               related_id: Optional[str] = None, priority: str = "medium") -> None:
        self.notifications.append(Notification(
            user_id=user_id, type=type_, title=title, message=message,
            related_id=related_id, priority=priority, created_at=self.now,
        ))

    def broadcast(self, event: str, data: Dict[str, Any], room: Optional[str] = None) -> None:
        self.broadcasts.append(Broadcast(event=event, room=room, data=data, created_at=self.now))


class EventSink:
    def __init__(self, repo, timeout: float):
        self.repo = repo
        self.timeout = timeout

    async def publish(self, outbox: Outbox) -> None:
        # The transition is already committed; a lost event must not undo it.
        try:
            if outbox.notifications:
                await bounded(
                    self.repo.insert_notifications([n.model_dump() for n in outbox.notifications]),
                    self.timeout, "notification store",
                )
            if outbox.broadcasts:
                await bounded(
                    self.repo.insert_broadcasts([b.model_dump() for b in outbox.broadcasts]),
                    self.timeout, "broadcast outbox",
                )
        except CoreError:
            logger.exception(
                "Failed to publish %d notifications / %d broadcasts",
                len(outbox.notifications), len(outbox.broadcasts),
            )
