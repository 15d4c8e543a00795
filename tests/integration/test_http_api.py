"""
HTTP entrypoints served by aiohttp, exercised over a real test server
"""

import contextlib

import pytest
from aiohttp.test_utils import TestClient, TestServer

from budget_alerts.errors import StoreError
from budget_alerts.models import ANOMALY_ALERT, BUDGET_CRITICAL
from budget_alerts.server import AlertsApplication, create_app


@contextlib.asynccontextmanager
async def api_client(store, clock):
    app = AlertsApplication(store, now=clock).app
    async with TestClient(TestServer(app)) as client:
        yield client


class TestEvaluatorEndpoints:

    @pytest.mark.asyncio
    async def test_budget_alerts_envelope(self, store, seed, clock):
        seed.user(budget_alerts=True)
        seed.category(monthly_budget=100)
        seed.expense(120)

        async with api_client(store, clock) as client:
            response = await client.post("/functions/check-budget-alerts")
            body = await response.json()

        assert response.status == 200
        assert body["success"] is True
        assert body["notifications_sent"] == 1
        assert body["details"][0]["type"] == BUDGET_CRITICAL
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name,count_key",
        [
            ("daily-summary", "summaries_sent"),
            ("check-streaks", "streak_rewards_sent"),
            ("check-missing-logs", "reminders_sent"),
            ("allocation-nudges", "nudges_sent"),
        ],
    )
    async def test_count_keys(self, store, clock, name, count_key):
        async with api_client(store, clock) as client:
            response = await client.post(f"/functions/{name}")
            body = await response.json()

        assert response.status == 200
        assert body == {"success": True, count_key: 0, "details": []}

    @pytest.mark.asyncio
    async def test_run_failure_returns_500(self, store, clock, monkeypatch):
        async def broken(toggle):
            raise RuntimeError("database down")

        monkeypatch.setattr(store, "list_preferences", broken)

        async with api_client(store, clock) as client:
            response = await client.post("/functions/daily-summary")
            body = await response.json()

        assert response.status == 500
        assert body == {"error": "database down"}

    @pytest.mark.asyncio
    async def test_preflight(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.options("/functions/daily-summary")
            text = await response.text()

        assert response.status == 200
        assert text == "ok"
        assert "content-type" in response.headers["Access-Control-Allow-Headers"]

    @pytest.mark.asyncio
    async def test_health(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.get("/health")
            assert await response.json() == {"status": "ok"}


class TestAnomalyEndpoint:

    @pytest.mark.asyncio
    async def test_detects_anomaly(self, store, seed, clock):
        seed.user(anomaly_alerts=True)
        seed.category()
        for offset in (1, 2, 3):
            seed.expense(10, day=seed.days_ago(offset))

        async with api_client(store, clock) as client:
            response = await client.post(
                "/functions/anomaly-detection",
                json={"user_id": "user-1", "category_id": "cat-food", "amount": 35},
            )
            body = await response.json()

        assert response.status == 200
        assert body["anomaly_detected"] is True
        assert body["average"] == 10
        assert body["threshold"] == 30
        assert len(store.notifications_for("user-1", ANOMALY_ALERT)) == 1

    @pytest.mark.asyncio
    async def test_insufficient_data_message(self, store, seed, clock):
        seed.user(anomaly_alerts=True)

        async with api_client(store, clock) as client:
            response = await client.post(
                "/functions/anomaly-detection",
                json={"user_id": "user-1", "category_id": "cat-food", "amount": 35},
            )
            body = await response.json()

        assert body == {"success": True, "message": "Insufficient data for anomaly detection"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"category_id": "cat-food", "amount": 35},
            {"user_id": "user-1", "amount": 35},
            {"user_id": "user-1", "category_id": "cat-food"},
        ],
    )
    async def test_missing_fields(self, store, clock, payload):
        async with api_client(store, clock) as client:
            response = await client.post("/functions/anomaly-detection", json=payload)
            body = await response.json()

        assert response.status == 400
        assert body == {"error": "Missing required fields"}

    @pytest.mark.asyncio
    async def test_invalid_json(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.post(
                "/functions/anomaly-detection",
                data="{not json",
                headers={"Content-Type": "application/json"},
            )

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_non_numeric_amount(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.post(
                "/functions/anomaly-detection",
                json={"user_id": "user-1", "category_id": "cat-food", "amount": "lots"},
            )

        assert response.status == 400


class TestInboxEndpoints:

    async def _seed_inbox(self, store, seed, clock):
        seed.user(budget_alerts=True, missing_log_alerts=True)
        seed.category(monthly_budget=100)
        seed.expense(120, day=seed.days_ago(1))
        async with api_client(store, clock) as client:
            await client.post("/functions/check-budget-alerts")
            await client.post("/functions/check-missing-logs")

    @pytest.mark.asyncio
    async def test_list_and_counts(self, store, seed, clock):
        await self._seed_inbox(store, seed, clock)

        async with api_client(store, clock) as client:
            listing = await (await client.get("/notifications", params={"user_id": "user-1"})).json()
            unread = await (await client.get("/notifications/unread-count", params={"user_id": "user-1"})).json()

        assert len(listing["notifications"]) == 2
        assert {n["type"] for n in listing["notifications"]} == {"budget_critical", "missing_log"}
        assert unread == {"unread": 2}

    @pytest.mark.asyncio
    async def test_mark_read_and_delete(self, store, seed, clock):
        await self._seed_inbox(store, seed, clock)
        first, second = store.notifications

        async with api_client(store, clock) as client:
            await client.post(f"/notifications/{first.id}/read")
            unread = await (
                await client.get("/notifications", params={"user_id": "user-1", "unread_only": "true"})
            ).json()
            assert [n["id"] for n in unread["notifications"]] == [second.id]

            marked = await (await client.post("/notifications/read-all", params={"user_id": "user-1"})).json()
            assert marked == {"success": True, "updated": 1}

            await client.delete(f"/notifications/{first.id}")
            deleted = await (await client.delete("/notifications", params={"user_id": "user-1"})).json()
            assert deleted == {"success": True, "deleted": 1}

        assert store.notifications == []

    @pytest.mark.asyncio
    async def test_user_id_required(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.get("/notifications")

        assert response.status == 400


def test_create_app_with_explicit_store(store):
    app = create_app(store)
    paths = {resource.canonical for resource in app.router.resources()}
    assert "/functions/check-streaks" in paths
    assert "/notifications/{notification_id}/read" in paths


class TestInputHandling:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["inf", "-inf", "nan", "Infinity"])
    async def test_non_finite_amount_rejected(self, store, seed, clock, amount):
        seed.user(anomaly_alerts=True)
        seed.category()
        for offset in (1, 2, 3):
            seed.expense(10, day=seed.days_ago(offset))

        async with api_client(store, clock) as client:
            response = await client.post(
                "/functions/anomaly-detection",
                json={"user_id": "user-1", "category_id": "cat-food", "amount": amount},
            )
            body = await response.json()

        assert response.status == 400
        assert body == {"error": "amount must be numeric"}
        assert store.notifications == []

    @pytest.mark.asyncio
    async def test_body_that_is_not_utf8(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.post(
                "/functions/anomaly-detection",
                data=b'{"user_id": "\xff"}',
                headers={"Content-Type": "application/json; charset=utf-8"},
            )
            body = await response.json()

        assert response.status == 400
        assert body == {"error": "Invalid JSON payload"}
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    @pytest.mark.asyncio
    async def test_inbox_store_failure_returns_envelope(self, store, clock, monkeypatch):
        async def broken(user_id):
            raise StoreError("connection refused")

        monkeypatch.setattr(store, "unread_count", broken)

        async with api_client(store, clock) as client:
            response = await client.get("/notifications/unread-count", params={"user_id": "user-1"})
            body = await response.json()

        assert response.status == 500
        assert body == {"error": "connection refused"}
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestPreferencesEndpoints:

    @pytest.mark.asyncio
    async def test_missing_row_is_404(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.get("/preferences", params={"user_id": "user-1"})

        assert response.status == 404

    @pytest.mark.asyncio
    async def test_patch_creates_row_with_defaults(self, store, seed, clock):
        seed.user()

        async with api_client(store, clock) as client:
            response = await client.patch(
                "/preferences",
                params={"user_id": "user-1"},
                json={"streak_rewards": False, "summary_time": "21:30"},
            )
            body = await response.json()
            fetched = await (await client.get("/preferences", params={"user_id": "user-1"})).json()

        assert response.status == 200
        assert body == {
            "user_id": "user-1",
            "budget_alerts": True,
            "daily_summary": True,
            "bill_reminders": True,
            "streak_rewards": False,
            "anomaly_alerts": True,
            "missing_log_alerts": True,
            "summary_time": "21:30:00",
        }
        assert fetched == body

    @pytest.mark.asyncio
    async def test_toggle_gates_evaluator(self, store, seed, clock):
        seed.user(daily_summary=False, budget_alerts=True)

        async with api_client(store, clock) as client:
            before = await (await client.post("/functions/daily-summary")).json()
            await client.patch("/preferences", params={"user_id": "user-1"}, json={"daily_summary": True})
            after = await (await client.post("/functions/daily-summary")).json()

        assert before["summaries_sent"] == 0
        assert after["summaries_sent"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"push_everything": True},
            {"daily_summary": "yes"},
            {"summary_time": "late"},
            {},
            ["daily_summary"],
        ],
    )
    async def test_invalid_updates_rejected(self, store, seed, clock, payload):
        seed.user()

        async with api_client(store, clock) as client:
            response = await client.patch("/preferences", params={"user_id": "user-1"}, json=payload)
            body = await response.json()

        assert response.status == 400
        assert "error" in body
        assert store.preferences == {}

    @pytest.mark.asyncio
    async def test_user_id_required(self, store, clock):
        async with api_client(store, clock) as client:
            response = await client.patch("/preferences", json={"daily_summary": True})

        assert response.status == 400
