"""
Streak Evaluator
Rewards consecutive days spent under the daily budget implied by the profile
"""

from datetime import date, timedelta
from typing import Optional

from .config import RulePolicy
from .evaluation import EvaluationSummary, Evaluator, days_back
from .models import PREF_STREAK_REWARDS, STREAK_REWARD, WEEKLY, Notification, Profile


MILESTONE_MESSAGES = {
    3: "Impressive! You've stayed under budget for 3 days straight. Your Financial Health is now {score}/100!",
    7: "Amazing! A full week of staying under budget! Your Financial Health is {score}/100. Keep it up!",
    14: "Incredible! Two weeks of financial discipline! Your Health Score is {score}/100. You're a budgeting pro!",
    30: "Outstanding! A full month of staying under budget! Your Financial Health Score is {score}/100. You're a financial champion!",
}
DEFAULT_MILESTONE_MESSAGE = "{days} days in a row under budget! Your Financial Health is {score}/100."


def daily_budget_limit(profile: Profile, policy: RulePolicy) -> float:
    """Weekly budgets divide by 7, everything else by a fixed 30-day month"""
    if profile.budget_period == WEEKLY:
        return profile.total_budget / policy.weekly_divisor
    return profile.total_budget / policy.monthly_divisor


def health_score(milestone: int, policy: RulePolicy) -> int:
    return min(policy.health_score_cap, policy.health_score_base + milestone * policy.health_score_step)


class StreakEvaluator(Evaluator):
    """
    Scans one day past the longest milestone once per user and fires on exact
    milestone hits.

    A streak longer than the last milestone reads as milestone + 1, so the
    final reward fires only on the day it is reached, not on every later run.
    """

    preference = PREF_STREAK_REWARDS
    count_key = "streak_rewards_sent"

    def scan_days(self, profile: Profile, today: date) -> int:
        """Days to walk back; never reaches past the day the profile was created"""
        days = self.policy.streak_scan_days
        if profile.created_at is not None:
            age = (today - profile.created_at.date()).days + 1
            days = max(0, min(days, age))
        return days

    async def current_streak(self, profile: Profile, today: date) -> int:
        limit = daily_budget_limit(profile, self.policy)
        streak = 0
        # Stop querying at the first over-budget day; older days never count
        for day in days_back(today, self.scan_days(profile, today)):
            spend = await self.store.sum_expenses(day, day, user_id=profile.id)
            if spend > limit:
                break
            streak += 1
        return streak

    def milestone_for(self, streak: int) -> Optional[int]:
        return streak if streak in self.policy.streak_milestones else None

    def build_notification(self, user_id: str, milestone: int) -> Notification:
        score = health_score(milestone, self.policy)
        template = MILESTONE_MESSAGES.get(milestone, DEFAULT_MILESTONE_MESSAGE)
        return Notification(
            user_id=user_id,
            type=STREAK_REWARD,
            title=f"{milestone}-Day Streak!",
            message=template.format(days=milestone, score=score),
            metadata={
                "streak_days": milestone,
                "health_score": score,
                "deep_link": "/dashboard",
            },
        )

    async def run(self) -> EvaluationSummary:
        now = self.now()
        today = now.date()
        window_start = now - timedelta(hours=self.policy.streak_dedup_hours)

        users = await self.store.list_preferences(self.preference)
        summary = self.new_summary()

        for prefs in users:
            summary.processed += 1
            try:
                profile = await self.store.get_profile(prefs.user_id)
                if profile is None or not profile.has_budget:
                    continue
                streak = await self.current_streak(profile, today)
            except Exception as e:
                self.logger.error(f"Streak scan failed for user {prefs.user_id}: {e}")
                summary.errors += 1
                continue

            milestone = self.milestone_for(streak)
            if milestone is None:
                continue

            notification = self.build_notification(prefs.user_id, milestone)
            stored = await self.notify(
                notification,
                summary,
                match_key=("streak_days", milestone),
                since=window_start,
            )
            if stored is not None:
                summary.record(user_id=prefs.user_id, streak_days=milestone)

        self.logger.info(f"Streak check completed: {summary.sent} rewards sent, {summary.errors} errors")
        return summary
