"""
Configuration Module
Environment-driven settings for the store, the rule policy and logging
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be numeric, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class DatabaseConfig:
    """Connection parameters passed straight to ``psycopg2.connect``"""

    host: str = "localhost"
    port: int = 5432
    database: str = "budget"
    user: str = "budget_user"
    password: str = ""

    @classmethod
    def from_environment(cls) -> "DatabaseConfig":
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=_env_int("DB_PORT", 5432),
            database=os.getenv("DB_NAME", "budget"),
            user=os.getenv("DB_USER", "budget_user"),
            password=os.getenv("DB_PASSWORD", ""),
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
        }


@dataclass(frozen=True)
class RulePolicy:
    """Product-policy constants used by the evaluators (heuristics, not statistics)"""

    # Budget threshold evaluator
    warning_percent: float = 80.0
    critical_percent: float = 100.0

    # Daily summary evaluator
    positive_health_score: int = 98
    negative_health_score: int = 85
    zero_spend_diff_percent: float = 100.0

    # Streak evaluator
    streak_milestones: Tuple[int, ...] = (3, 7, 14, 30)
    weekly_divisor: int = 7
    monthly_divisor: int = 30
    health_score_base: int = 70
    health_score_step: int = 2
    health_score_cap: int = 100
    streak_dedup_hours: int = 24

    # Anomaly evaluator
    anomaly_multiplier: float = 3.0
    anomaly_min_history: int = 3
    anomaly_lookback_days: int = 30

    # Allocation nudge evaluator
    nudge_recent_window: int = 20

    @property
    def streak_scan_days(self) -> int:
        # One day past the longest milestone so a streak that keeps going stops matching it
        return max(self.streak_milestones) + 1 if self.streak_milestones else 0

    @classmethod
    def from_environment(cls) -> "RulePolicy":
        """Build a policy, letting ``BUDGET_*`` / ``ANOMALY_*`` variables override defaults"""
        base = cls()
        policy = replace(
            base,
            warning_percent=_env_float("BUDGET_WARNING_PERCENT", base.warning_percent),
            critical_percent=_env_float("BUDGET_CRITICAL_PERCENT", base.critical_percent),
            anomaly_multiplier=_env_float("ANOMALY_MULTIPLIER", base.anomaly_multiplier),
            anomaly_min_history=_env_int("ANOMALY_MIN_HISTORY", base.anomaly_min_history),
            anomaly_lookback_days=_env_int("ANOMALY_LOOKBACK_DAYS", base.anomaly_lookback_days),
        )
        if policy.warning_percent > policy.critical_percent:
            raise ConfigurationError(
                "BUDGET_WARNING_PERCENT must not exceed BUDGET_CRITICAL_PERCENT"
            )
        return policy


@dataclass
class ScheduleConfig:
    """Daily wall-clock times (HH:MM) at which the worker fires each job"""

    budget_check_time: str = "20:00"
    summary_time: str = "21:00"
    streak_check_time: str = "21:30"
    missing_log_time: str = "19:00"
    allocation_nudge_time: str = "09:00"

    @classmethod
    def from_environment(cls) -> "ScheduleConfig":
        return cls(
            budget_check_time=os.getenv("BUDGET_CHECK_TIME", "20:00"),
            summary_time=os.getenv("SUMMARY_TIME", "21:00"),
            streak_check_time=os.getenv("STREAK_CHECK_TIME", "21:30"),
            missing_log_time=os.getenv("MISSING_LOG_TIME", "19:00"),
            allocation_nudge_time=os.getenv("ALLOCATION_NUDGE_TIME", "09:00"),
        )


def configure_logging(log_dir: Optional[str] = None, level: Optional[str] = None) -> None:
    """
    Configure root logging to the console and, when possible, a log file.

    File logging is dropped (console only) if the log directory cannot be
    created or written.
    """
    log_dir = log_dir or os.getenv("LOG_DIR", "/var/log/budget-alerts")
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = os.path.join(log_dir, "budget-alerts.log")

    handlers = [logging.StreamHandler()]
    try:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a"))
        file_logging_status = f"SUCCESS: Logging to {log_file}"
    except PermissionError as e:
        file_logging_status = f"WARNING: File logging disabled - Permission denied for {log_dir}: {e}"
    except OSError as e:
        file_logging_status = f"WARNING: File logging disabled - OS error for {log_dir}: {e}"

    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    LOGGER.info("File logging configuration: %s", file_logging_status)
