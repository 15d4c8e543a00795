"""
Anomaly Evaluator
Flags a newly created transaction that is far above the user's recent
average for the same category. Runs synchronously on the transaction-creation
path, not on the schedule.
"""

import statistics
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from .evaluation import Evaluator
from .models import ANOMALY_ALERT, PREF_ANOMALY_ALERTS, Notification


ALERTS_DISABLED = "Anomaly alerts disabled for user"
INSUFFICIENT_DATA = "Insufficient data for anomaly detection"


@dataclass
class AnomalyResult:
    """What the evaluator decided for one transaction"""

    anomaly_detected: bool = False
    amount: Optional[float] = None
    average: Optional[float] = None
    threshold: Optional[float] = None
    message: Optional[str] = None
    notification: Optional[Notification] = None

    @property
    def insufficient_data(self) -> bool:
        return self.message == INSUFFICIENT_DATA

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": True}
        if self.message:
            payload["message"] = self.message
        if self.average is not None:
            payload.update(
                anomaly_detected=self.anomaly_detected,
                amount=self.amount,
                average=self.average,
                threshold=self.threshold,
            )
        return payload


class AnomalyEvaluator(Evaluator):
    """
    Compares one amount with the trailing category average.

    Rule: anomaly when ``amount > average * anomaly_multiplier`` (strictly
    greater), with at least ``anomaly_min_history`` prior expenses in the
    lookback window. Every qualifying transaction produces a notification;
    there is no dedup gate because each call is one-shot.
    """

    preference = PREF_ANOMALY_ALERTS

    async def evaluate(self, user_id: str, category_id: str, amount: float) -> AnomalyResult:
        """
        Evaluate a single transaction

        Args:
            user_id: Owner of the transaction
            category_id: Category the transaction was filed under
            amount: Transaction amount

        Returns:
            AnomalyResult; store failures propagate to the caller
        """
        prefs = await self.store.get_preferences(user_id)
        if prefs is None or not prefs.is_enabled(self.preference):
            return AnomalyResult(amount=amount, message=ALERTS_DISABLED)

        since = self.now().date() - timedelta(days=self.policy.anomaly_lookback_days)
        history = await self.store.list_expense_amounts(user_id, category_id, since)

        if len(history) < self.policy.anomaly_min_history:
            self.logger.info(
                f"Only {len(history)} prior expenses for user {user_id} in category {category_id}; skipping"
            )
            return AnomalyResult(amount=amount, message=INSUFFICIENT_DATA)

        average = statistics.mean(history)
        threshold = average * self.policy.anomaly_multiplier

        if not amount > threshold:
            return AnomalyResult(anomaly_detected=False, amount=amount, average=average, threshold=threshold)

        category = await self.store.get_category(category_id)
        category_name = category.name if category else None
        notification = Notification(
            user_id=user_id,
            type=ANOMALY_ALERT,
            title="Unusual Spending Detected",
            message=(
                f"We noticed an unusually large transaction in {category_name or 'this category'}. "
                "Was this a planned expense?"
            ),
            metadata={
                "category_name": category_name or "Unknown",
                "category_id": category_id,
                "amount": amount,
                "average": round(average, 2),
                "deep_link": "/dashboard",
            },
        )
        stored = await self.store.insert_notification(notification)
        self.logger.info(
            f"Anomaly for user {user_id}: {amount:.2f} > {threshold:.2f} (avg {average:.2f})"
        )
        return AnomalyResult(
            anomaly_detected=True,
            amount=amount,
            average=average,
            threshold=threshold,
            notification=stored,
        )
