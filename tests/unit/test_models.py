"""
Domain records
"""

from datetime import date, datetime, time, timezone

import pytest

from budget_alerts.models import (
    PREFERENCE_TOGGLES,
    Notification,
    NotificationPreferences,
    Profile,
    Transaction,
    validate_preference_changes,
)


def test_notification_rejects_unknown_type():
    with pytest.raises(ValueError):
        Notification(user_id="u", type="push_blast", title="t", message="m")


def test_notification_to_dict():
    notification = Notification(
        user_id="u",
        type="missing_log",
        title="Daily Log Reminder",
        message="m",
        metadata={"deep_link": "/dashboard"},
        id="n-1",
        created_at=datetime(2024, 3, 15, 19, 0),
    )
    assert notification.to_dict() == {
        "id": "n-1",
        "user_id": "u",
        "type": "missing_log",
        "title": "Daily Log Reminder",
        "message": "m",
        "metadata": {"deep_link": "/dashboard"},
        "read": False,
        "created_at": "2024-03-15T19:00:00",
    }


def test_profile_from_row():
    profile = Profile.from_dict(
        {"id": "u", "username": "dana", "total_budget": "3000.00", "budget_period": "monthly",
         "created_at": "2024-03-01T08:00:00"}
    )
    assert profile.display_name == "dana"
    assert profile.total_budget == 3000
    assert profile.has_budget
    assert profile.created_at == datetime(2024, 3, 1, 8, 0)


def test_transaction_from_row_reads_type_column():
    tx = Transaction.from_dict(
        {"id": 1, "user_id": "u", "amount": "12.50", "type": "income", "date": "2024-03-15", "category_id": None}
    )
    assert tx.kind == "income"
    assert not tx.is_expense
    assert tx.date == date(2024, 3, 15)
    assert tx.category_id is None


def test_preferences_from_row():
    prefs = NotificationPreferences.from_dict(
        {"user_id": "u", "daily_summary": True, "streak_rewards": None, "summary_time": "21:30:00"}
    )
    assert prefs.is_enabled("daily_summary")
    assert not prefs.is_enabled("streak_rewards")
    assert prefs.summary_time == time(21, 30)
    with pytest.raises(ValueError):
        prefs.is_enabled("sms")


def test_utc_suffix_parsed():
    profile = Profile.from_dict({"id": "u", "total_budget": 0, "created_at": "2024-01-01T00:00:00Z"})
    assert profile.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_preferences_to_dict_round_trips_summary_time():
    prefs = NotificationPreferences.defaults("u")
    payload = prefs.to_dict()
    assert payload["summary_time"] == "20:00:00"
    assert all(payload[toggle] is True for toggle in PREFERENCE_TOGGLES)


class TestValidatePreferenceChanges:

    def test_parses_summary_time(self):
        assert validate_preference_changes({"summary_time": "21:15", "daily_summary": False}) == {
            "summary_time": time(21, 15),
            "daily_summary": False,
        }

    @pytest.mark.parametrize(
        "changes",
        [
            {"user_id": "someone-else"},
            {"daily_summary": 1},
            {"summary_time": "25:00"},
        ],
    )
    def test_rejects_bad_changes(self, changes):
        with pytest.raises(ValueError):
            validate_preference_changes(changes)
