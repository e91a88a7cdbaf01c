class BudgetError(Exception):
    """Base class for errors raised by the ledger package."""


class InvalidCycleError(BudgetError, ValueError):
    pass


class StoreError(BudgetError):
    """A store operation failed; the unit of work has been rolled back."""


class TransactionNotFound(BudgetError, LookupError):
    pass


class ProfileNotFound(BudgetError, LookupError):
    pass


class RolloverConflictError(BudgetError):
    """The profile's cycle changed while a rollover was running."""


class InvalidEditError(BudgetError, ValueError):
    pass
