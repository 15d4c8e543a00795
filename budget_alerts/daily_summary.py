"""
Daily Summary Evaluator
Reports today's expenses against yesterday's for every opted-in user.

Invocation cadence is the caller's job: the evaluator does not compare the
clock with ``summary_time`` and inserts one summary per user per call, so it
must be invoked once per day (see ``budget_alerts.scheduler.JobCadence``).
"""

from dataclasses import dataclass
from datetime import timedelta

from .config import RulePolicy
from .evaluation import EvaluationSummary, Evaluator
from .models import DAILY_SUMMARY, PREF_DAILY_SUMMARY, Notification


@dataclass
class DailyComparison:
    today_expenses: float
    yesterday_expenses: float
    diff_percentage: float
    is_positive_trend: bool


def compare_days(today_expenses: float, yesterday_expenses: float, policy: RulePolicy) -> DailyComparison:
    """
    Compare two daily expense totals

    Args:
        today_expenses: Sum of today's expenses
        yesterday_expenses: Sum of yesterday's expenses
        policy: Supplies the zero-spend diff convention

    Returns:
        DailyComparison; a positive diff means less was spent today
    """
    if today_expenses == 0:
        diff_percentage = policy.zero_spend_diff_percent
        is_positive = True
    elif yesterday_expenses > 0:
        diff_percentage = (yesterday_expenses - today_expenses) / yesterday_expenses * 100
        is_positive = diff_percentage > 0
    else:
        diff_percentage = 0.0
        is_positive = False

    return DailyComparison(
        today_expenses=today_expenses,
        yesterday_expenses=yesterday_expenses,
        diff_percentage=diff_percentage,
        is_positive_trend=is_positive,
    )


class DailySummaryEvaluator(Evaluator):
    """Inserts exactly one ``daily_summary`` per eligible user per run"""

    preference = PREF_DAILY_SUMMARY
    count_key = "summaries_sent"

    def build_notification(self, user_id: str, comparison: DailyComparison) -> Notification:
        today = comparison.today_expenses
        change = abs(comparison.diff_percentage)

        if today == 0:
            message = "Great job! You didn't spend anything today. Your Financial Health is looking excellent!"
        elif comparison.is_positive_trend:
            message = (
                f"You spent {today:,.0f} today. That's {change:.0f}% less than yesterday! "
                "Your Health Score just went up. Great job!"
            )
        else:
            message = (
                f"You spent {today:,.0f} today. That's {change:.0f}% more than yesterday. "
                "Keep an eye on your spending to stay on track."
            )

        # Health score is a fixed heuristic, not a model output
        health_score = (
            self.policy.positive_health_score
            if comparison.is_positive_trend
            else self.policy.negative_health_score
        )

        return Notification(
            user_id=user_id,
            type=DAILY_SUMMARY,
            title="Your Daily Summary",
            message=message,
            metadata={
                "amount": round(today, 2),
                "diff_percentage": round(comparison.diff_percentage, 1),
                "health_score": health_score,
                "deep_link": "/report",
            },
        )

    async def run(self) -> EvaluationSummary:
        today = self.now().date()
        yesterday = today - timedelta(days=1)

        users = await self.store.list_preferences(self.preference)
        summary = self.new_summary()

        for prefs in users:
            summary.processed += 1
            try:
                today_expenses = await self.store.sum_expenses(today, today, user_id=prefs.user_id)
                yesterday_expenses = await self.store.sum_expenses(yesterday, yesterday, user_id=prefs.user_id)
            except Exception as e:
                self.logger.error(f"Expense totals failed for user {prefs.user_id}: {e}")
                summary.errors += 1
                continue

            comparison = compare_days(today_expenses, yesterday_expenses, self.policy)
            notification = self.build_notification(prefs.user_id, comparison)
            stored = await self.notify(notification, summary)
            if stored is not None:
                summary.record(user_id=prefs.user_id, amount=round(today_expenses, 2))

        self.logger.info(f"Daily summaries completed: {summary.sent} sent, {summary.errors} errors")
        return summary
