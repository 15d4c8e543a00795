#!/usr/bin/env python3
"""
Worker Service for the periodic notification evaluators
Fires each evaluator once a day at its configured time
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Type

import schedule

from .allocation import AllocationNudgeEvaluator
from .budget_threshold import BudgetThresholdEvaluator
from .config import RulePolicy, ScheduleConfig, configure_logging
from .daily_summary import DailySummaryEvaluator
from .evaluation import Evaluator
from .missing_logs import MissingLogEvaluator
from .scheduler import JobCadence, parse_time
from .store import NotificationStore
from .streaks import StreakEvaluator

logger = logging.getLogger(__name__)

PERIODIC_EVALUATORS: Dict[str, Type[Evaluator]] = {
    "check-budget-alerts": BudgetThresholdEvaluator,
    "daily-summary": DailySummaryEvaluator,
    "check-streaks": StreakEvaluator,
    "check-missing-logs": MissingLogEvaluator,
    "allocation-nudges": AllocationNudgeEvaluator,
}


class WorkerService:
    """Runs the periodic evaluators against a store on a daily schedule"""

    def __init__(
        self,
        store: NotificationStore,
        policy: Optional[RulePolicy] = None,
        schedule_config: Optional[ScheduleConfig] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.policy = policy or RulePolicy()
        self.schedule_config = schedule_config or ScheduleConfig()
        self.now = now or datetime.now

        config = self.schedule_config
        self.jobs = dict(PERIODIC_EVALUATORS)
        times = {
            "check-budget-alerts": config.budget_check_time,
            "daily-summary": config.summary_time,
            "check-streaks": config.streak_check_time,
            "check-missing-logs": config.missing_log_time,
            "allocation-nudges": config.allocation_nudge_time,
        }
        self.cadences: Dict[str, JobCadence] = {
            name: JobCadence(name, parse_time(times[name]), now=self.now) for name in self.jobs
        }

        logger.info("Worker service initialized")

    async def run_job(self, name: str) -> Dict[str, Any]:
        """Run one evaluator through its once-per-day guard"""
        evaluator = self.jobs[name](self.store, policy=self.policy, now=self.now)

        async def _evaluate() -> Dict[str, Any]:
            summary = await evaluator.run()
            return summary.to_dict()

        result = await self.cadences[name].run(_evaluate)
        if result["status"] == "error":
            logger.error(f"Job {name} failed: {result.get('message')}")
        else:
            logger.info(f"Job {name} {result['status']}")
        return result

    def run_job_sync(self, name: str) -> Dict[str, Any]:
        """Entry point for ``schedule`` callbacks, which are synchronous"""
        return asyncio.run(self.run_job(name))

    def register(self, scheduler: schedule.Scheduler) -> None:
        for name, cadence in self.cadences.items():
            at = cadence.scheduled_time.strftime("%H:%M")
            scheduler.every().day.at(at).do(self.run_job_sync, name)
            logger.info(f"Job {name} scheduled daily at {at}")

    def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "jobs": {
                name: {
                    "last_run": cadence.last_run.isoformat() if cadence.last_run else None,
                    "next_run": cadence.get_next_run_time().isoformat(),
                    "running": cadence.is_running,
                }
                for name, cadence in self.cadences.items()
            },
            "timestamp": self.now().isoformat(),
        }


def main():
    """Main worker loop"""
    configure_logging()
    logger.info("Starting budget alerts worker")

    from .pg_store import PostgresStore

    store = PostgresStore.from_environment()
    store.ensure_schema()
    worker = WorkerService(
        store,
        policy=RulePolicy.from_environment(),
        schedule_config=ScheduleConfig.from_environment(),
    )

    scheduler = schedule.Scheduler()
    worker.register(scheduler)

    while True:
        try:
            scheduler.run_pending()
            time.sleep(60)

        except KeyboardInterrupt:
            logger.info("Worker service shutting down...")
            break
        except Exception as e:
            logger.error(f"Worker loop error: {str(e)}")
            time.sleep(60)


if __name__ == "__main__":
    main()
