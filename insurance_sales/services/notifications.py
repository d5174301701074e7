"""Fire-and-forget user notifications"""

import logging
from typing import Optional

from insurance_sales.db.base import NotificationSink
from insurance_sales.models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Queues in-app notifications. A failing sink never breaks the caller."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    async def notify(
        self,
        user_id: Optional[str],
        title: str,
        message: str,
        category: str = "info",
        action_url: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> bool:
        """Send a notification. Returns False when it could not be queued."""
        if not user_id:
            logger.warning(f"Notification '{title}' dropped: no recipient")
            return False
        try:
            await self.sink.send(Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=category,
                action_url=action_url,
                metadata=metadata or {},
            ))
            return True
        except Exception as e:
            logger.warning(f"Failed to notify {user_id} ('{title}'): {e}")
            return False
