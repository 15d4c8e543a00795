"""
Missing-Log Evaluator
Reminds opted-in users who have not recorded any transaction today.
Safe to re-run the same day: the reminder is deduplicated since midnight.
"""

from .evaluation import EvaluationSummary, Evaluator, start_of_day
from .models import MISSING_LOG, PREF_MISSING_LOG_ALERTS, Notification


class MissingLogEvaluator(Evaluator):
    """At most one ``missing_log`` reminder per user per calendar day"""

    preference = PREF_MISSING_LOG_ALERTS
    count_key = "reminders_sent"

    def build_notification(self, user_id: str) -> Notification:
        return Notification(
            user_id=user_id,
            type=MISSING_LOG,
            title="Daily Log Reminder",
            message="You haven't recorded today's expenses yet. Take 1 minute to keep your data accurate!",
            metadata={"deep_link": "/dashboard"},
        )

    async def run(self) -> EvaluationSummary:
        now = self.now()
        today = now.date()
        window_start = start_of_day(now)

        users = await self.store.list_preferences(self.preference)
        summary = self.new_summary()

        for prefs in users:
            summary.processed += 1
            try:
                logged_today = await self.store.has_transaction_on(prefs.user_id, today)
            except Exception as e:
                self.logger.error(f"Transaction lookup failed for user {prefs.user_id}: {e}")
                summary.errors += 1
                continue

            if logged_today:
                continue

            stored = await self.notify(
                self.build_notification(prefs.user_id),
                summary,
                match_key=None,
                since=window_start,
            )
            if stored is not None:
                summary.record(user_id=prefs.user_id)

        self.logger.info(f"Missing-log check completed: {summary.sent} reminders sent")
        return summary
