"""Exception hierarchy shared by the store, evaluators and HTTP layer."""


class BudgetAlertsError(Exception):
    """Base class for all budget alert failures"""


class StoreError(BudgetAlertsError):
    """Raised when the backing store cannot answer a query or accept a write"""


class ConfigurationError(BudgetAlertsError):
    """Raised when environment configuration is malformed"""
