"""
Budget Alerts - notification rule engine
"""

from .allocation import AllocationNudgeEvaluator
from .anomaly import AnomalyEvaluator, AnomalyResult
from .budget_threshold import BudgetThresholdEvaluator
from .config import DatabaseConfig, RulePolicy, ScheduleConfig
from .daily_summary import DailySummaryEvaluator
from .dedup import DeduplicationGate
from .errors import BudgetAlertsError, ConfigurationError, StoreError
from .evaluation import EvaluationSummary
from .missing_logs import MissingLogEvaluator
from .store import InMemoryStore, NotificationStore
from .streaks import StreakEvaluator

__all__ = [
    'AllocationNudgeEvaluator',
    'AnomalyEvaluator',
    'AnomalyResult',
    'BudgetThresholdEvaluator',
    'DailySummaryEvaluator',
    'MissingLogEvaluator',
    'StreakEvaluator',
    'DeduplicationGate',
    'EvaluationSummary',
    'NotificationStore',
    'InMemoryStore',
    'DatabaseConfig',
    'RulePolicy',
    'ScheduleConfig',
    'BudgetAlertsError',
    'ConfigurationError',
    'StoreError',
]

__version__ = '0.1.0'
