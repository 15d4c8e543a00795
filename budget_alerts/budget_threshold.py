"""
Budget Threshold Evaluator
Warns when a category's month-to-date spend crosses 80% and 100% of its budget
"""

from typing import Dict, Optional

from .evaluation import EvaluationSummary, Evaluator, month_bounds, start_of_month
from .models import (
    BUDGET_CRITICAL,
    BUDGET_WARNING,
    PREF_BUDGET_ALERTS,
    Category,
    Notification,
)


class BudgetThresholdEvaluator(Evaluator):
    """Compares current-month expenses per category against its monthly budget"""

    preference = PREF_BUDGET_ALERTS
    count_key = "notifications_sent"

    def spend_percentage(self, spend: float, budget: float) -> float:
        return spend / budget * 100

    def classify(self, percentage: float) -> Optional[str]:
        """
        Pick the notification type for a spend percentage

        The critical threshold is checked first so only the tightest one fires.

        Returns:
            ``budget_critical``, ``budget_warning`` or None
        """
        if percentage >= self.policy.critical_percent:
            return BUDGET_CRITICAL
        if percentage >= self.policy.warning_percent:
            return BUDGET_WARNING
        return None

    def build_notification(
        self, category: Category, spend: float, percentage: float, notification_type: str
    ) -> Notification:
        if notification_type == BUDGET_CRITICAL:
            title = "Budget Limit Reached!"
            message = (
                f"You've hit your limit for {category.name}. "
                "Time to review your spending for today."
            )
        else:
            title = "Budget Warning"
            message = (
                f"Heads up! You've used {percentage:.0f}% of your {category.name} budget. "
                "Maybe slow down a bit to stay safe until month-end?"
            )

        return Notification(
            user_id=category.user_id,
            type=notification_type,
            title=title,
            message=message,
            metadata={
                "category_name": category.name,
                "category_id": category.id,
                "amount": round(spend, 2),
                "percentage": round(percentage, 1),
                "deep_link": "/budget",
            },
        )

    async def run(self) -> EvaluationSummary:
        """
        Sweep every budgeted category once.

        Failing to list categories aborts the run; any later failure only
        skips the category it happened on.
        """
        now = self.now()
        month_start, month_end = month_bounds(now.date())
        window_start = start_of_month(now)

        categories = await self.store.list_categories_with_budget()
        summary = self.new_summary()
        enabled_cache: Dict[str, bool] = {}

        for category in categories:
            summary.processed += 1
            try:
                spend = await self.store.sum_expenses(
                    month_start, month_end, user_id=category.user_id, category_id=category.id
                )
            except Exception as e:
                self.logger.error(f"Spend query failed for category {category.id}: {e}")
                summary.errors += 1
                continue

            percentage = self.spend_percentage(spend, category.monthly_budget)
            notification_type = self.classify(percentage)
            if notification_type is None:
                continue

            if category.user_id not in enabled_cache:
                try:
                    prefs = await self.store.get_preferences(category.user_id)
                except Exception as e:
                    self.logger.error(f"Preference lookup failed for user {category.user_id}: {e}")
                    summary.errors += 1
                    continue
                enabled_cache[category.user_id] = bool(prefs and prefs.is_enabled(self.preference))
            if not enabled_cache[category.user_id]:
                continue

            notification = self.build_notification(category, spend, percentage, notification_type)
            stored = await self.notify(
                notification,
                summary,
                match_key=("category_name", category.name),
                since=window_start,
            )
            if stored is not None:
                summary.record(
                    user_id=category.user_id,
                    category=category.name,
                    type=notification_type,
                    percentage=round(percentage, 1),
                )

        self.logger.info(
            f"Budget threshold check completed: {summary.sent} sent, "
            f"{summary.suppressed} suppressed, {summary.errors} errors"
        )
        return summary
