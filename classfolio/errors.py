"""
Exception hierarchy for the settlement core

Provides:
- ClassfolioError: base class for every error raised by this package
- SettlementError: family raised out of order settlement
- InsufficientFunds / InsufficientShares: business rule violations
- ValidationFailure: a record failed its integrity rules
- PersistenceFailure: the storage layer failed mid-transaction
"""


class ClassfolioError(Exception):
    """Base class for all classfolio errors"""


class SettlementError(ClassfolioError):
    """Raised when an order could not be settled

    The order is left pending and nothing the attempt wrote is persisted.
    """


class ValidationFailure(SettlementError):
    """A record failed its integrity rules"""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InsufficientFunds(SettlementError):
    """Available cash does not cover the trade notional"""

    def __init__(self, required_cents: int, available_cents: int):
        super().__init__(
            f"Insufficient funds: need {required_cents} cents, "
            f"have {available_cents} cents"
        )
        self.required_cents = required_cents
        self.available_cents = available_cents


class InsufficientShares(SettlementError):
    """Net position is smaller than the sell order (only when oversell is disabled)"""

    def __init__(self, requested: int, held: int):
        super().__init__(f"Insufficient shares: selling {requested}, holding {held}")
        self.requested = requested
        self.held = held


class PersistenceFailure(SettlementError):
    """The database rejected or lost part of the settlement transaction"""
