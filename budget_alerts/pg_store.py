"""
Postgres-backed notification store
Implements the data-access contract against the application's Postgres schema
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor

from .config import DatabaseConfig
from .errors import StoreError
from .models import (
    EXPENSE,
    PREFERENCE_TOGGLES,
    Category,
    Notification,
    NotificationPreferences,
    Profile,
    validate_preference_changes,
)
from .store import MatchKey, NotificationStore

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id UUID PRIMARY KEY,
        display_name VARCHAR(255),
        total_budget DECIMAL(12,2) DEFAULT 0,
        budget_period VARCHAR(16),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id UUID PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
        name VARCHAR(100) NOT NULL,
        monthly_budget DECIMAL(12,2),
        color VARCHAR(16),
        icon VARCHAR(64),
        UNIQUE (user_id, name)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id UUID PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
        category_id UUID REFERENCES categories(id) ON DELETE SET NULL,
        type VARCHAR(16) NOT NULL,
        amount DECIMAL(12,2) NOT NULL CHECK (amount >= 0),
        date DATE NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_preferences (
        user_id UUID PRIMARY KEY REFERENCES profiles(id) ON DELETE CASCADE,
        budget_alerts BOOLEAN DEFAULT TRUE,
        daily_summary BOOLEAN DEFAULT TRUE,
        bill_reminders BOOLEAN DEFAULT TRUE,
        streak_rewards BOOLEAN DEFAULT TRUE,
        anomaly_alerts BOOLEAN DEFAULT TRUE,
        missing_log_alerts BOOLEAN DEFAULT TRUE,
        summary_time TIME DEFAULT '20:00:00',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
        type VARCHAR(32) NOT NULL,
        title VARCHAR(255) NOT NULL,
        message TEXT NOT NULL,
        metadata JSONB DEFAULT '{}'::jsonb,
        read BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_transactions_user_date
    ON transactions(user_id, date);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_notifications_user_type_created
    ON notifications(user_id, type, created_at);
    """,
)


class PostgresStore(NotificationStore):
    """
    psycopg2 implementation of ``NotificationStore``.

    Every call opens a short-lived connection and runs in a worker thread so
    the evaluators' event loop never blocks on the database.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, now: Optional[Callable[[], datetime]] = None):
        self.config = config or DatabaseConfig.from_environment()
        self.now = now or datetime.now

    @classmethod
    def from_environment(cls) -> "PostgresStore":
        return cls(DatabaseConfig.from_environment())

    def _get_connection(self):
        return psycopg2.connect(**self.config.connect_kwargs())

    # --- blocking helpers -------------------------------------------------

    def _fetchall(self, query: Any, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        try:
            with self._get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    cursor.execute(query, params)
                    return [dict(row) for row in cursor.fetchall()]
        except psycopg2.Error as e:
            logger.error(f"Store query failed: {e}")
            raise StoreError(str(e)) from e

    def _fetchone(self, query: Any, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        rows = self._fetchall(query, params)
        return rows[0] if rows else None

    def _write(self, query: Any, params: Sequence[Any] = (), returning: bool = False):
        try:
            with self._get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    cursor.execute(query, params)
                    result = dict(cursor.fetchone()) if returning else cursor.rowcount
                    conn.commit()
                    return result
        except psycopg2.Error as e:
            logger.error(f"Store write failed: {e}")
            raise StoreError(str(e)) from e

    def ensure_schema(self) -> None:
        """Create tables and indexes if they don't exist"""
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    for statement in SCHEMA_STATEMENTS:
                        cursor.execute(statement)
                    conn.commit()
            logger.info("Database schema ensured")
        except psycopg2.Error as e:
            logger.error(f"Database initialization error: {e}")
            raise StoreError(str(e)) from e

    async def _run(self, func, *args, **kwargs):
        return await asyncio.to_thread(func, *args, **kwargs)

    # --- reads ------------------------------------------------------------

    async def list_categories_with_budget(self) -> List[Category]:
        rows = await self._run(
            self._fetchall,
            """
            SELECT id, user_id, name, monthly_budget, color, icon
            FROM categories
            WHERE monthly_budget IS NOT NULL AND monthly_budget > 0
            """,
        )
        return [Category.from_dict(row) for row in rows]

    async def list_categories(self, user_id: str) -> List[Category]:
        rows = await self._run(
            self._fetchall,
            "SELECT id, user_id, name, monthly_budget, color, icon FROM categories WHERE user_id = %s",
            (user_id,),
        )
        return [Category.from_dict(row) for row in rows]

    async def get_category(self, category_id: str) -> Optional[Category]:
        row = await self._run(
            self._fetchone,
            "SELECT id, user_id, name, monthly_budget, color, icon FROM categories WHERE id = %s",
            (category_id,),
        )
        return Category.from_dict(row) if row else None

    async def sum_expenses(
        self,
        date_from: date,
        date_to: date,
        *,
        user_id: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> float:
        if user_id is None and category_id is None:
            raise ValueError("sum_expenses needs a user_id or a category_id")

        clauses = ["type = %s", "date >= %s", "date <= %s"]
        params: List[Any] = [EXPENSE, date_from, date_to]
        if user_id is not None:
            clauses.append("user_id = %s")
            params.append(user_id)
        if category_id is not None:
            clauses.append("category_id = %s")
            params.append(category_id)

        query = "SELECT COALESCE(SUM(amount), 0) AS total FROM transactions WHERE " + " AND ".join(clauses)
        row = await self._run(self._fetchone, query, params)
        return float(row["total"]) if row else 0.0

    async def list_expense_amounts(self, user_id: str, category_id: str, date_from: date) -> List[float]:
        rows = await self._run(
            self._fetchall,
            """
            SELECT amount FROM transactions
            WHERE user_id = %s AND category_id = %s AND type = %s AND date >= %s
            """,
            (user_id, category_id, EXPENSE, date_from),
        )
        return [float(row["amount"]) for row in rows]

    async def has_transaction_on(self, user_id: str, day: date) -> bool:
        row = await self._run(
            self._fetchone,
            "SELECT id FROM transactions WHERE user_id = %s AND date = %s LIMIT 1",
            (user_id, day),
        )
        return row is not None

    async def get_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        row = await self._run(
            self._fetchone,
            "SELECT * FROM notification_preferences WHERE user_id = %s",
            (user_id,),
        )
        return NotificationPreferences.from_dict(row) if row else None

    async def list_preferences(self, toggle: str) -> List[NotificationPreferences]:
        if toggle not in PREFERENCE_TOGGLES:
            raise ValueError(f"Unknown preference toggle: {toggle}")
        query = sql.SQL("SELECT * FROM notification_preferences WHERE {} = TRUE").format(
            sql.Identifier(toggle)
        )
        rows = await self._run(self._fetchall, query)
        return [NotificationPreferences.from_dict(row) for row in rows]

    async def update_preferences(self, user_id: str, **changes: Any) -> NotificationPreferences:
        cleaned = validate_preference_changes(changes)
        columns = ["user_id", *cleaned]
        # Always DO UPDATE so RETURNING yields the row on insert and on conflict
        assignments = [
            sql.SQL("{0} = EXCLUDED.{0}").format(sql.Identifier(column)) for column in cleaned
        ]
        assignments.append(sql.SQL("updated_at = CURRENT_TIMESTAMP"))
        query = sql.SQL(
            "INSERT INTO notification_preferences ({}) VALUES ({}) "
            "ON CONFLICT (user_id) DO UPDATE SET {} RETURNING *"
        ).format(
            sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            sql.SQL(", ").join(assignments),
        )
        row = await self._run(self._write, query, [user_id, *cleaned.values()], returning=True)
        return NotificationPreferences.from_dict(row)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self._run(
            self._fetchone,
            "SELECT id, display_name, total_budget, budget_period, created_at FROM profiles WHERE id = %s",
            (user_id,),
        )
        return Profile.from_dict(row) if row else None

    async def list_profiles(self) -> List[Profile]:
        rows = await self._run(
            self._fetchall,
            "SELECT id, display_name, total_budget, budget_period, created_at FROM profiles",
        )
        return [Profile.from_dict(row) for row in rows]

    # --- notification sink ------------------------------------------------

    async def find_existing_notification(
        self, user_id: str, notification_type: str, match_key: MatchKey, since: datetime
    ) -> bool:
        query = "SELECT id FROM notifications WHERE user_id = %s AND type = %s AND created_at >= %s"
        params: List[Any] = [user_id, notification_type, since]
        if match_key is not None:
            field_name, expected = match_key
            query += " AND metadata->>%s = %s"
            params.extend([field_name, str(expected)])
        query += " LIMIT 1"
        row = await self._run(self._fetchone, query, params)
        return row is not None

    async def insert_notification(self, notification: Notification) -> Notification:
        row = await self._run(
            self._write,
            """
            INSERT INTO notifications (user_id, type, title, message, metadata, read, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id, user_id, type, title, message, metadata, read, created_at
            """,
            (
                notification.user_id,
                notification.type,
                notification.title,
                notification.message,
                Json(notification.metadata),
                notification.read,
                notification.created_at or self.now(),
            ),
            returning=True,
        )
        return Notification.from_dict(row)

    # --- inbox ------------------------------------------------------------

    async def list_notifications(
        self, user_id: str, limit: int = 20, unread_only: bool = False
    ) -> List[Notification]:
        query = "SELECT * FROM notifications WHERE user_id = %s"
        if unread_only:
            query += " AND read = FALSE"
        query += " ORDER BY created_at DESC LIMIT %s"
        rows = await self._run(self._fetchall, query, (user_id, limit))
        return [Notification.from_dict(row) for row in rows]

    async def unread_count(self, user_id: str) -> int:
        row = await self._run(
            self._fetchone,
            "SELECT COUNT(*) AS unread FROM notifications WHERE user_id = %s AND read = FALSE",
            (user_id,),
        )
        return int(row["unread"]) if row else 0

    async def mark_read(self, notification_id: str) -> None:
        await self._run(self._write, "UPDATE notifications SET read = TRUE WHERE id = %s", (notification_id,))

    async def mark_all_read(self, user_id: str) -> int:
        return await self._run(
            self._write,
            "UPDATE notifications SET read = TRUE WHERE user_id = %s AND read = FALSE",
            (user_id,),
        )

    async def delete_notification(self, notification_id: str) -> None:
        await self._run(self._write, "DELETE FROM notifications WHERE id = %s", (notification_id,))

    async def delete_all_notifications(self, user_id: str) -> int:
        return await self._run(self._write, "DELETE FROM notifications WHERE user_id = %s", (user_id,))
