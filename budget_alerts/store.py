"""
Data Access Layer
Read/write contract the evaluators consume, plus an in-memory implementation
used by the test-suite and for local runs without a database.
"""

from __future__ import annotations

import abc
import logging
import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import (
    Category,
    Notification,
    NotificationPreferences,
    Profile,
    Transaction,
    validate_preference_changes,
)

logger = logging.getLogger(__name__)

# (metadata field, expected value); ``None`` matches on user and type only
MatchKey = Optional[Tuple[str, Any]]


class NotificationStore(abc.ABC):
    """Narrow async contract over profiles, categories, transactions and notifications"""

    # --- reads used by the evaluators -------------------------------------

    @abc.abstractmethod
    async def list_categories_with_budget(self) -> List[Category]:
        """Every category whose monthly budget is set and positive"""

    @abc.abstractmethod
    async def list_categories(self, user_id: str) -> List[Category]:
        """All categories owned by ``user_id``"""

    @abc.abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        ...

    @abc.abstractmethod
    async def sum_expenses(
        self,
        date_from: date,
        date_to: date,
        *,
        user_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> float:
        """Sum of expense amounts dated within ``[date_from, date_to]``"""

    @abc.abstractmethod
    async def list_expense_amounts(self, user_id: str, category_id: str, date_from: date) -> List[float]:
        """Expense amounts for a user/category dated on or after ``date_from``"""

    @abc.abstractmethod
    async def has_transaction_on(self, user_id: str, day: date) -> bool:
        """Whether any transaction (expense or income) is dated ``day``"""

    @abc.abstractmethod
    async def get_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        ...

    @abc.abstractmethod
    async def list_preferences(self, toggle: str) -> List[NotificationPreferences]:
        """Preference rows where ``toggle`` is enabled"""

    @abc.abstractmethod
    async def update_preferences(self, user_id: str, **changes: Any) -> NotificationPreferences:
        """
        Apply a partial update, creating the row with defaults if it is missing

        Raises:
            ValueError: Unknown field or malformed value
        """

    @abc.abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    @abc.abstractmethod
    async def list_profiles(self) -> List[Profile]:
        ...

    # --- notification sink ------------------------------------------------

    @abc.abstractmethod
    async def find_existing_notification(
        self, user_id: str, notification_type: str, match_key: MatchKey, since: datetime
    ) -> bool:
        """Whether a notification with the same user, type and key exists since ``since``"""

    @abc.abstractmethod
    async def insert_notification(self, notification: Notification) -> Notification:
        """Append a notification and return it with ``id``/``created_at`` filled in"""

    # --- inbox operations used by the UI ----------------------------------

    @abc.abstractmethod
    async def list_notifications(
        self, user_id: str, limit: int = 20, unread_only: bool = False
    ) -> List[Notification]:
        """Newest first"""

    @abc.abstractmethod
    async def unread_count(self, user_id: str) -> int:
        ...

    @abc.abstractmethod
    async def mark_read(self, notification_id: str) -> None:
        ...

    @abc.abstractmethod
    async def mark_all_read(self, user_id: str) -> int:
        ...

    @abc.abstractmethod
    async def delete_notification(self, notification_id: str) -> None:
        ...

    @abc.abstractmethod
    async def delete_all_notifications(self, user_id: str) -> int:
        ...


def metadata_matches(metadata: Dict[str, Any], match_key: MatchKey) -> bool:
    """Compare as text, the same way a JSONB ``metadata->>'field'`` lookup does"""
    if match_key is None:
        return True
    field_name, expected = match_key
    if field_name not in metadata or metadata[field_name] is None:
        return False
    return str(metadata[field_name]) == str(expected)


class InMemoryStore(NotificationStore):
    """Dictionary-backed store (tests and local runs)"""

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self.now = now or datetime.now
        self.profiles: Dict[str, Profile] = {}
        self.categories: Dict[str, Category] = {}
        self.transactions: List[Transaction] = []
        self.preferences: Dict[str, NotificationPreferences] = {}
        self.notifications: List[Notification] = []

    # Seeding helpers

    def add_profile(self, profile: Profile) -> Profile:
        self.profiles[profile.id] = profile
        return profile

    def add_category(self, category: Category) -> Category:
        self.categories[category.id] = category
        return category

    def add_transaction(self, transaction: Transaction) -> Transaction:
        self.transactions.append(transaction)
        return transaction

    def set_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
        self.preferences[preferences.user_id] = preferences
        return preferences

    def notifications_for(self, user_id: str, notification_type: Optional[str] = None) -> List[Notification]:
        return [
            n for n in self.notifications
            if n.user_id == user_id and (notification_type is None or n.type == notification_type)
        ]

    # Contract

    async def list_categories_with_budget(self) -> List[Category]:
        return [c for c in self.categories.values() if c.has_budget]

    async def list_categories(self, user_id: str) -> List[Category]:
        return [c for c in self.categories.values() if c.user_id == user_id]

    async def get_category(self, category_id: str) -> Optional[Category]:
        return self.categories.get(category_id)

    async def sum_expenses(
        self,
        date_from: date,
        date_to: date,
        *,
        user_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> float:
        if user_id is None and category_id is None:
            raise ValueError("sum_expenses needs a user_id or a category_id")
        total = 0.0
        for tx in self.transactions:
            if not tx.is_expense or not (date_from <= tx.date <= date_to):
                continue
            if user_id is not None and tx.user_id != user_id:
                continue
            if category_id is not None and tx.category_id != category_id:
                continue
            total += tx.amount
        return total

    async def list_expense_amounts(self, user_id: str, category_id: str, date_from: date) -> List[float]:
        return [
            tx.amount for tx in self.transactions
            if tx.is_expense
            and tx.user_id == user_id
            and tx.category_id == category_id
            and tx.date >= date_from
        ]

    async def has_transaction_on(self, user_id: str, day: date) -> bool:
        return any(tx.user_id == user_id and tx.date == day for tx in self.transactions)

    async def get_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        return self.preferences.get(user_id)

    async def list_preferences(self, toggle: str) -> List[NotificationPreferences]:
        return [p for p in self.preferences.values() if p.is_enabled(toggle)]

    async def update_preferences(self, user_id: str, **changes: Any) -> NotificationPreferences:
        cleaned = validate_preference_changes(changes)
        prefs = self.preferences.get(user_id)
        if prefs is None:
            prefs = self.set_preferences(NotificationPreferences.defaults(user_id))
        prefs.apply(cleaned)
        return prefs

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.profiles.get(user_id)

    async def list_profiles(self) -> List[Profile]:
        return list(self.profiles.values())

    async def find_existing_notification(
        self, user_id: str, notification_type: str, match_key: MatchKey, since: datetime
    ) -> bool:
        return any(
            n.user_id == user_id
            and n.type == notification_type
            and n.created_at is not None
            and n.created_at >= since
            and metadata_matches(n.metadata, match_key)
            for n in self.notifications
        )

    async def insert_notification(self, notification: Notification) -> Notification:
        notification.id = notification.id or str(uuid.uuid4())
        notification.created_at = notification.created_at or self.now()
        self.notifications.append(notification)
        logger.debug("Stored notification %s (%s) for %s", notification.id, notification.type, notification.user_id)
        return notification

    async def list_notifications(
        self, user_id: str, limit: int = 20, unread_only: bool = False
    ) -> List[Notification]:
        rows = [
            (index, n) for index, n in enumerate(self.notifications)
            if n.user_id == user_id and not (unread_only and n.read)
        ]
        rows.sort(key=lambda pair: (pair[1].created_at or datetime.min, pair[0]), reverse=True)
        return [n for _, n in rows[:limit]]

    async def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self.notifications if n.user_id == user_id and not n.read)

    async def mark_read(self, notification_id: str) -> None:
        for n in self.notifications:
            if n.id == notification_id:
                n.read = True

    async def mark_all_read(self, user_id: str) -> int:
        updated = 0
        for n in self.notifications:
            if n.user_id == user_id and not n.read:
                n.read = True
                updated += 1
        return updated

    async def delete_notification(self, notification_id: str) -> None:
        self.notifications = [n for n in self.notifications if n.id != notification_id]

    async def delete_all_notifications(self, user_id: str) -> int:
        before = len(self.notifications)
        self.notifications = [n for n in self.notifications if n.user_id != user_id]
        return before - len(self.notifications)
