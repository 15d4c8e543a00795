"""
Job Cadence Module
Once-per-day guard for the periodic evaluators.

Daily Summary and Missing-Log rely on being invoked once per day; this guard
makes that precondition explicit instead of trusting the trigger.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


def parse_time(value: str) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS``"""
    return time.fromisoformat(value)


class JobCadence:
    """Tracks when a daily job last ran and whether it may run now"""

    def __init__(self, name: str, scheduled_time: time, now: Optional[Callable[[], datetime]] = None):
        self.name = name
        self.scheduled_time = scheduled_time
        self.now = now or datetime.now
        self.last_run: Optional[datetime] = None
        self.is_running = False

    def should_run_now(self, current_time: Optional[datetime] = None) -> bool:
        """
        Check if the job should run now

        Args:
            current_time: Optional datetime for testing

        Returns:
            True once the scheduled time has passed today and the job has not
            run yet today
        """
        if current_time is None:
            current_time = self.now()

        if current_time.time() < self.scheduled_time:
            return False

        if self.last_run and self.last_run.date() == current_time.date():
            return False

        return True

    async def run(self, job: Callable[[], Awaitable[Any]]) -> Dict[str, Any]:
        """
        Execute ``job`` if allowed

        Returns:
            Job result with status ``success``, ``skipped`` or ``error``
        """
        if self.is_running:
            return {"status": "error", "job": self.name, "message": "Job already running"}

        if not self.should_run_now():
            return {
                "status": "skipped",
                "job": self.name,
                "message": "Before scheduled time or already ran today",
            }

        self.is_running = True
        try:
            outcome = await job()
            self.last_run = self.now()
            result = {
                "status": "success",
                "job": self.name,
                "result": outcome,
                "completed_at": self.last_run.isoformat(),
            }
        except Exception as e:
            logger.error(f"Job {self.name} failed: {e}")
            result = {"status": "error", "job": self.name, "message": str(e)}
        finally:
            self.is_running = False

        return result

    def get_next_run_time(self) -> datetime:
        """Next time the job becomes eligible"""
        now = self.now()
        today_slot = datetime.combine(now.date(), self.scheduled_time)
        if self.last_run is not None and self.last_run.date() == now.date():
            return today_slot + timedelta(days=1)
        # Overdue jobs are eligible immediately
        return max(today_slot, now)
