"""
Allocation Nudge Evaluator
Nudges users whose spending limit is unset or not fully allocated to
category budgets.
"""

from dataclasses import dataclass
from typing import List, Optional

from .evaluation import EvaluationSummary, Evaluator
from .models import BUDGET_WARNING, PREF_BUDGET_ALERTS, Category, Notification, Profile


@dataclass
class AllocationNudge:
    title: str
    message: str
    deep_link: str
    remaining: float


def plan_nudge(profile: Profile, categories: List[Category]) -> Optional[AllocationNudge]:
    """
    Decide which planning nudge, if any, applies to a profile

    Args:
        profile: Profile carrying the total spending limit
        categories: The profile's categories

    Returns:
        AllocationNudge, or None once every unit of the limit is allocated
    """
    spending_limit = profile.total_budget or 0.0
    allocated = sum(c.monthly_budget or 0.0 for c in categories)
    remaining = spending_limit - allocated
    name = profile.display_name or "Friend"

    if spending_limit == 0:
        return AllocationNudge(
            title="Set Your Spending Limit!",
            message="You haven't set a total budget yet. Tap here to set it and start tracking effectively.",
            deep_link="/budget?action=edit_limit",
            remaining=remaining,
        )
    if allocated <= 0:
        return AllocationNudge(
            title=f"Start Planning, {name}!",
            message="You have a spending limit but no category budgets. Give every unit of it a job!",
            deep_link="/budget?action=add_category",
            remaining=remaining,
        )
    if remaining > 0:
        return AllocationNudge(
            title=f"Almost there, {name}!",
            message=f"Let's give every unit a job. You still have {remaining:,.2f} left to plan!",
            deep_link="/budget?action=add_category",
            remaining=remaining,
        )
    return None


class AllocationNudgeEvaluator(Evaluator):
    """
    Sends at most one planning nudge per profile per run.

    A nudge is suppressed while an unread notification with the same title
    sits among the user's most recent ones.
    """

    preference = PREF_BUDGET_ALERTS
    count_key = "nudges_sent"

    async def already_nudged(self, user_id: str, title: str) -> bool:
        unread = await self.store.list_notifications(
            user_id, limit=self.policy.nudge_recent_window, unread_only=True
        )
        return any(n.title == title for n in unread)

    async def run(self) -> EvaluationSummary:
        profiles = await self.store.list_profiles()
        summary = self.new_summary()

        for profile in profiles:
            summary.processed += 1
            try:
                prefs = await self.store.get_preferences(profile.id)
                if prefs is None or not prefs.is_enabled(self.preference):
                    continue
                nudge = plan_nudge(profile, await self.store.list_categories(profile.id))
                if nudge is None:
                    continue
                if await self.already_nudged(profile.id, nudge.title):
                    summary.suppressed += 1
                    continue
            except Exception as e:
                self.logger.error(f"Allocation check failed for user {profile.id}: {e}")
                summary.errors += 1
                continue

            notification = Notification(
                user_id=profile.id,
                type=BUDGET_WARNING,
                title=nudge.title,
                message=nudge.message,
                metadata={"deep_link": nudge.deep_link, "remaining": round(nudge.remaining, 2)},
            )
            stored = await self.notify(notification, summary)
            if stored is not None:
                summary.record(user_id=profile.id, title=nudge.title)

        self.logger.info(f"Allocation nudges completed: {summary.sent} sent")
        return summary
