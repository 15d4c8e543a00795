"""HTTP entrypoints for the notification evaluators.

Each scheduled evaluator is exposed as ``POST /functions/<name>`` so an
external cron (or the bundled worker) can trigger it. The endpoints take no
body and answer with a JSON envelope::

    {"success": true, "<count key>": n, "details": [...]}   # 200
    {"error": "<message>"}                                   # 500

The anomaly entrypoint is called from the transaction-creation path with a
``{"user_id", "category_id", "amount"}`` body and answers 400 when any of them
is missing. A small notification inbox API for the UI lives under
``/notifications`` and the per-user toggles under ``/preferences``.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Awaitable, Callable, Optional, Type

from aiohttp import web

from .anomaly import AnomalyEvaluator
from .config import RulePolicy, configure_logging
from .errors import StoreError
from .evaluation import Clock, Evaluator
from .store import NotificationStore
from .worker import PERIODIC_EVALUATORS

LOGGER = logging.getLogger("budget_alerts.server")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
}


def apply_cors_headers(response: web.StreamResponse) -> None:
    for header, value in CORS_HEADERS.items():
        response.headers[header] = value


@web.middleware
async def cors_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    if request.method == "OPTIONS":
        response = web.Response(text="ok")
        apply_cors_headers(response)
        return response

    response = await handler(request)
    if not response.prepared:
        apply_cors_headers(response)
    return response


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def store_error_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    try:
        return await handler(request)
    except StoreError as exc:
        LOGGER.error("Store failure on %s %s: %s", request.method, request.path, exc)
        return _error(str(exc), 500)


class AlertsApplication:
    """Wires the evaluators, the inbox and the preferences API into an aiohttp application."""

    def __init__(
        self,
        store: NotificationStore,
        policy: Optional[RulePolicy] = None,
        now: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.policy = policy or RulePolicy()
        self.now = now
        self.app = web.Application(middlewares=[cors_middleware, store_error_middleware])

        for name in PERIODIC_EVALUATORS:
            self.app.router.add_post(f"/functions/{name}", self.handle_periodic)
        self.app.router.add_post("/functions/anomaly-detection", self.handle_anomaly)
        self.app.router.add_get("/health", self.handle_health)

        self.app.router.add_get("/notifications", self.list_notifications)
        self.app.router.add_delete("/notifications", self.delete_all_notifications)
        self.app.router.add_get("/notifications/unread-count", self.unread_count)
        self.app.router.add_post("/notifications/read-all", self.mark_all_read)
        self.app.router.add_post("/notifications/{notification_id}/read", self.mark_read)
        self.app.router.add_delete("/notifications/{notification_id}", self.delete_notification)

        self.app.router.add_get("/preferences", self.get_preferences)
        self.app.router.add_patch("/preferences", self.update_preferences)

    def evaluator(self, evaluator_cls: Type[Evaluator]) -> Evaluator:
        return evaluator_cls(self.store, policy=self.policy, now=self.now)

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def handle_periodic(self, request: web.Request) -> web.Response:
        name = request.path.rsplit("/", 1)[-1]
        evaluator = self.evaluator(PERIODIC_EVALUATORS[name])
        try:
            summary = await evaluator.run()
        except Exception as exc:
            LOGGER.exception("Evaluator %s failed", name)
            return _error(str(exc), 500)
        LOGGER.info("Evaluator %s finished: %s", name, summary.to_dict())
        return web.json_response(summary.to_dict())

    async def handle_anomaly(self, request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return _error("Invalid JSON payload", 400)
        if not isinstance(payload, dict):
            return _error("Invalid JSON payload", 400)

        user_id = payload.get("user_id")
        category_id = payload.get("category_id")
        amount = payload.get("amount")
        if not user_id or not category_id or not amount:
            return _error("Missing required fields", 400)
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            return _error("amount must be numeric", 400)
        if not math.isfinite(amount):
            return _error("amount must be numeric", 400)

        evaluator = self.evaluator(AnomalyEvaluator)
        try:
            result = await evaluator.evaluate(str(user_id), str(category_id), amount)
        except Exception as exc:
            LOGGER.exception("Anomaly detection failed for user %s", user_id)
            return _error(str(exc), 500)
        return web.json_response(result.to_dict())

    # --- inbox -----------------------------------------------------------

    def _user_id(self, request: web.Request) -> str:
        user_id = request.query.get("user_id")
        if not user_id:
            raise web.HTTPBadRequest(text="Missing user_id")
        return user_id

    async def list_notifications(self, request: web.Request) -> web.Response:
        user_id = self._user_id(request)
        try:
            limit = int(request.query.get("limit", "20"))
        except ValueError:
            raise web.HTTPBadRequest(text="limit must be an integer")
        unread_only = request.query.get("unread_only", "false").lower() in ("1", "true", "yes")
        notifications = await self.store.list_notifications(user_id, limit=limit, unread_only=unread_only)
        return web.json_response({"notifications": [n.to_dict() for n in notifications]})

    async def unread_count(self, request: web.Request) -> web.Response:
        count = await self.store.unread_count(self._user_id(request))
        return web.json_response({"unread": count})

    async def mark_read(self, request: web.Request) -> web.Response:
        await self.store.mark_read(request.match_info["notification_id"])
        return web.json_response({"success": True})

    async def mark_all_read(self, request: web.Request) -> web.Response:
        updated = await self.store.mark_all_read(self._user_id(request))
        return web.json_response({"success": True, "updated": updated})

    async def delete_notification(self, request: web.Request) -> web.Response:
        await self.store.delete_notification(request.match_info["notification_id"])
        return web.json_response({"success": True})

    async def delete_all_notifications(self, request: web.Request) -> web.Response:
        deleted = await self.store.delete_all_notifications(self._user_id(request))
        return web.json_response({"success": True, "deleted": deleted})

    # --- preferences -----------------------------------------------------

    async def get_preferences(self, request: web.Request) -> web.Response:
        user_id = self._user_id(request)
        prefs = await self.store.get_preferences(user_id)
        if prefs is None:
            return _error("No notification preferences for user", 404)
        return web.json_response(prefs.to_dict())

    async def update_preferences(self, request: web.Request) -> web.Response:
        """Partial update; the row is created with every toggle on if missing"""
        user_id = self._user_id(request)
        try:
            changes = await request.json()
        except ValueError:
            return _error("Invalid JSON payload", 400)
        if not isinstance(changes, dict) or not changes:
            return _error("Expected a JSON object of preference fields", 400)

        try:
            prefs = await self.store.update_preferences(user_id, **changes)
        except ValueError as exc:
            return _error(str(exc), 400)
        LOGGER.info("Updated notification preferences for user %s: %s", user_id, sorted(changes))
        return web.json_response(prefs.to_dict())


def create_app(store: Optional[NotificationStore] = None, policy: Optional[RulePolicy] = None) -> web.Application:
    if store is None:
        from .pg_store import PostgresStore

        store = PostgresStore.from_environment()
    server = AlertsApplication(store, policy=policy or RulePolicy.from_environment())
    return server.app


def main() -> None:
    configure_logging()
    app = create_app()
    host = os.getenv("ALERTS_HOST", "127.0.0.1")
    port = int(os.getenv("ALERTS_PORT", "8000"))
    web.run_app(app, host=host, port=port)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
