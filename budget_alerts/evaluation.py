"""
Shared plumbing for the rule evaluators: run summaries, calendar windows and
the base class every evaluator derives from.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import RulePolicy
from .dedup import DeduplicationGate
from .models import Notification
from .store import MatchKey, NotificationStore

Clock = Callable[[], datetime]


@dataclass
class EvaluationSummary:
    """Outcome of one evaluator run, for logging and the HTTP envelope"""

    count_key: str = "notifications_sent"
    details: List[Dict[str, Any]] = field(default_factory=list)
    processed: int = 0
    suppressed: int = 0
    errors: int = 0

    @property
    def sent(self) -> int:
        return len(self.details)

    def record(self, **detail: Any) -> None:
        self.details.append(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            self.count_key: self.sent,
            "details": list(self.details),
        }


def month_bounds(day: date) -> Tuple[date, date]:
    """First and last calendar day of the month containing ``day``"""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(moment: datetime) -> datetime:
    return start_of_day(moment).replace(day=1)


class Evaluator:
    """
    Base class for the notification rule evaluators.

    Subclasses get the store, the policy constants, an injectable clock and
    the dedup gate. ``notify`` inserts a fully built notification and
    isolates insert failures so sibling units keep running.
    """

    preference: str = ""
    count_key: str = "notifications_sent"

    def __init__(
        self,
        store: NotificationStore,
        policy: Optional[RulePolicy] = None,
        now: Optional[Clock] = None,
    ):
        self.store = store
        self.policy = policy or RulePolicy()
        self.now = now or datetime.now
        self.gate = DeduplicationGate(store)
        self.logger = logging.getLogger(f"budget_alerts.{type(self).__name__}")

    def new_summary(self) -> EvaluationSummary:
        return EvaluationSummary(count_key=self.count_key)

    async def notify(
        self,
        notification: Notification,
        summary: EvaluationSummary,
        *,
        match_key: MatchKey = None,
        since: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Insert ``notification``, gated by the dedup window when ``since`` is given.

        Returns the stored notification, or None when it was suppressed or
        the insert failed.
        """
        try:
            if since is not None:
                stored = await self.gate.send_once(notification, match_key, since)
            else:
                stored = await self.store.insert_notification(notification)
        except Exception as e:
            self.logger.error(f"Failed to insert {notification.type} for user {notification.user_id}: {e}")
            summary.errors += 1
            return None

        if stored is None:
            summary.suppressed += 1
        return stored

    async def run(self) -> EvaluationSummary:
        raise NotImplementedError


def days_back(today: date, count: int) -> List[date]:
    """``today`` followed by the ``count - 1`` preceding days, newest first"""
    return [today - timedelta(days=offset) for offset in range(count)]
