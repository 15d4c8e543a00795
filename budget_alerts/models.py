"""
Domain records read from and written to the backing store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Optional


# Notification types
BUDGET_WARNING = "budget_warning"
BUDGET_CRITICAL = "budget_critical"
DAILY_SUMMARY = "daily_summary"
BILL_REMINDER = "bill_reminder"
STREAK_REWARD = "streak_reward"
MISSING_LOG = "missing_log"
ANOMALY_ALERT = "anomaly_alert"

NOTIFICATION_TYPES = (
    BUDGET_WARNING,
    BUDGET_CRITICAL,
    DAILY_SUMMARY,
    BILL_REMINDER,
    STREAK_REWARD,
    MISSING_LOG,
    ANOMALY_ALERT,
)

# Preference toggles, one per evaluator
PREF_BUDGET_ALERTS = "budget_alerts"
PREF_DAILY_SUMMARY = "daily_summary"
PREF_BILL_REMINDERS = "bill_reminders"
PREF_STREAK_REWARDS = "streak_rewards"
PREF_ANOMALY_ALERTS = "anomaly_alerts"
PREF_MISSING_LOG_ALERTS = "missing_log_alerts"

PREFERENCE_TOGGLES = (
    PREF_BUDGET_ALERTS,
    PREF_DAILY_SUMMARY,
    PREF_BILL_REMINDERS,
    PREF_STREAK_REWARDS,
    PREF_ANOMALY_ALERTS,
    PREF_MISSING_LOG_ALERTS,
)

EXPENSE = "expense"
INCOME = "income"

WEEKLY = "weekly"
MONTHLY = "monthly"


def _as_date(value: Any) -> Optional[date]:
    if value is None or (isinstance(value, date) and not isinstance(value, datetime)):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    # fromisoformat only accepts a "Z" suffix from Python 3.11
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _as_float(value: Any) -> float:
    return float(value) if value is not None else 0.0


@dataclass
class Profile:
    """One row per user; only the budget fields matter to the evaluators"""

    id: str
    display_name: Optional[str] = None
    total_budget: float = 0.0
    budget_period: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def has_budget(self) -> bool:
        return self.total_budget > 0

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            display_name=row.get("display_name") or row.get("username"),
            total_budget=_as_float(row.get("total_budget")),
            budget_period=row.get("budget_period"),
            created_at=_as_datetime(row.get("created_at")),
        )


@dataclass
class Category:
    """Spending category; ``monthly_budget`` of None or 0 means no limit"""

    id: str
    user_id: str
    name: str
    monthly_budget: Optional[float] = None
    color: Optional[str] = None
    icon: Optional[str] = None

    @property
    def has_budget(self) -> bool:
        return bool(self.monthly_budget) and self.monthly_budget > 0

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Category":
        budget = row.get("monthly_budget")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            monthly_budget=float(budget) if budget is not None else None,
            color=row.get("color"),
            icon=row.get("icon"),
        )


@dataclass
class Transaction:
    """A single expense or income entry dated on a user-local calendar day"""

    id: str
    user_id: str
    amount: float
    kind: str
    date: date
    category_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_expense(self) -> bool:
        return self.kind == EXPENSE

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Transaction":
        category_id = row.get("category_id")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            amount=_as_float(row.get("amount")),
            kind=row.get("type") or row.get("kind") or EXPENSE,
            date=_as_date(row["date"]),
            category_id=str(category_id) if category_id is not None else None,
            created_at=_as_datetime(row.get("created_at")),
        )


@dataclass
class NotificationPreferences:
    """Per-user notification toggles"""

    user_id: str
    budget_alerts: bool = False
    daily_summary: bool = False
    bill_reminders: bool = False
    streak_rewards: bool = False
    anomaly_alerts: bool = False
    missing_log_alerts: bool = False
    summary_time: time = time(20, 0)

    def is_enabled(self, toggle: str) -> bool:
        if toggle not in PREFERENCE_TOGGLES:
            raise ValueError(f"Unknown preference toggle: {toggle}")
        return bool(getattr(self, toggle))

    @classmethod
    def defaults(cls, user_id: str) -> "NotificationPreferences":
        """A lazily created row: every toggle on, like the table's column defaults"""
        return cls(user_id=user_id, **{toggle: True for toggle in PREFERENCE_TOGGLES})

    def apply(self, changes: Dict[str, Any]) -> None:
        for name, value in changes.items():
            setattr(self, name, value)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"user_id": self.user_id}
        payload.update({toggle: getattr(self, toggle) for toggle in PREFERENCE_TOGGLES})
        payload["summary_time"] = self.summary_time.strftime("%H:%M:%S")
        return payload

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "NotificationPreferences":
        summary_time = row.get("summary_time") or time(20, 0)
        if not isinstance(summary_time, time):
            summary_time = time.fromisoformat(str(summary_time))
        return cls(
            user_id=str(row["user_id"]),
            summary_time=summary_time,
            **{toggle: bool(row.get(toggle)) for toggle in PREFERENCE_TOGGLES},
        )


@dataclass
class Notification:
    """
    Write-once notification record.

    Only ``read`` ever changes after insert; everything else is fixed at
    creation time.
    """

    user_id: str
    type: str
    title: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    read: bool = False
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {self.type}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "metadata": dict(self.metadata),
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Notification":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            user_id=str(row["user_id"]),
            type=row["type"],
            title=row["title"],
            message=row["message"],
            metadata=dict(row.get("metadata") or {}),
            read=bool(row.get("read", False)),
            created_at=_as_datetime(row.get("created_at")),
        )


def validate_preference_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a partial preferences update

    Args:
        changes: Toggle names mapped to booleans, and optionally ``summary_time``
            as a ``time`` or an ``HH:MM[:SS]`` string

    Returns:
        The changes with ``summary_time`` parsed

    Raises:
        ValueError: Unknown field, non-boolean toggle or unparseable time
    """
    cleaned: Dict[str, Any] = {}
    for name, value in changes.items():
        if name in PREFERENCE_TOGGLES:
            if not isinstance(value, bool):
                raise ValueError(f"{name} must be true or false")
            cleaned[name] = value
        elif name == "summary_time":
            if not isinstance(value, time):
                try:
                    value = time.fromisoformat(str(value))
                except ValueError as exc:
                    raise ValueError(f"summary_time must be HH:MM or HH:MM:SS, got {value!r}") from exc
            cleaned[name] = value
        else:
            raise ValueError(f"Unknown preference field: {name}")
    return cleaned
