"""
Notification Deduplication Gate
Suppresses a notification when the same semantic event was already sent
within a caller-supplied window.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import Notification
from .store import MatchKey, NotificationStore

logger = logging.getLogger(__name__)


class DeduplicationGate:
    """
    Read-then-write existence check in front of ``insert_notification``.

    There is no transactional exclusion: two concurrent runs can both pass
    the check and both insert. A duplicate notification is a nuisance, not a
    correctness problem, so the race is accepted.
    """

    def __init__(self, store: NotificationStore):
        self.store = store

    async def is_duplicate(
        self,
        user_id: str,
        notification_type: str,
        match_key: MatchKey,
        since: datetime,
    ) -> bool:
        """
        Check for an existing notification

        Args:
            user_id: Owning profile id
            notification_type: Notification type to match
            match_key: ``(metadata_field, value)`` pair, or None to match on type only
            since: Start of the lookback window (inclusive)

        Returns:
            True if a matching notification exists in the window
        """
        return await self.store.find_existing_notification(user_id, notification_type, match_key, since)

    async def send_once(
        self,
        notification: Notification,
        match_key: MatchKey,
        since: datetime,
    ) -> Optional[Notification]:
        """Insert ``notification`` unless a duplicate exists; returns None when suppressed"""
        if await self.is_duplicate(notification.user_id, notification.type, match_key, since):
            logger.info(
                "Suppressed duplicate %s for user %s (key=%s, since=%s)",
                notification.type, notification.user_id, match_key, since.isoformat(),
            )
            return None
        return await self.store.insert_notification(notification)
