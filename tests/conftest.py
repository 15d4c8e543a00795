"""Shared pytest configuration for the project test suite."""
from __future__ import annotations

import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import pytest


# Ensure the repository root (which contains the ``budget_alerts`` package) is importable.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from budget_alerts.models import (  # noqa: E402
    EXPENSE,
    Category,
    NotificationPreferences,
    Profile,
    Transaction,
)
from budget_alerts.store import InMemoryStore  # noqa: E402


# Friday evening in the middle of March; yesterday is still in the same month
NOW = datetime(2024, 3, 15, 20, 30, 0)
TODAY = NOW.date()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(now=clock)


class Seeder:
    """Small builder that keeps test setup readable"""

    def __init__(self, store: InMemoryStore):
        self.store = store
        self._tx_counter = 0

    def user(
        self,
        user_id: str = "user-1",
        total_budget: float = 0.0,
        budget_period: Optional[str] = "monthly",
        created_at: Optional[datetime] = None,
        display_name: str = "Dana",
        **toggles: bool,
    ) -> Profile:
        profile = self.store.add_profile(
            Profile(
                id=user_id,
                display_name=display_name,
                total_budget=total_budget,
                budget_period=budget_period,
                created_at=created_at,
            )
        )
        if toggles:
            self.store.set_preferences(NotificationPreferences(user_id=user_id, **toggles))
        return profile

    def category(
        self,
        category_id: str = "cat-food",
        user_id: str = "user-1",
        name: str = "Food",
        monthly_budget: Optional[float] = None,
    ) -> Category:
        return self.store.add_category(
            Category(id=category_id, user_id=user_id, name=name, monthly_budget=monthly_budget)
        )

    def expense(
        self,
        amount: float,
        day: date = TODAY,
        user_id: str = "user-1",
        category_id: Optional[str] = "cat-food",
        kind: str = EXPENSE,
    ) -> Transaction:
        self._tx_counter += 1
        return self.store.add_transaction(
            Transaction(
                id=f"tx-{self._tx_counter}",
                user_id=user_id,
                amount=amount,
                kind=kind,
                date=day,
                category_id=category_id,
            )
        )

    def days_ago(self, days: int) -> date:
        return TODAY - timedelta(days=days)


@pytest.fixture
def seed(store) -> Seeder:
    return Seeder(store)
