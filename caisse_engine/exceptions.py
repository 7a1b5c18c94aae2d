"""Custom exception hierarchy for caisse-engine."""

from decimal import Decimal
from typing import Any


class CaisseEngineError(Exception):
    """Base exception for all caisse-engine errors."""


class ConfigurationError(CaisseEngineError):
    """Raised when configuration is invalid or missing."""


class InvalidContractParametersError(CaisseEngineError, ValueError):
    """Raised when contract or schedule inputs are out of range."""


class EntityNotFoundError(CaisseEngineError):
    """Raised when a referenced entity does not exist."""


class InvalidContractStateError(CaisseEngineError):
    """Raised when a contract is in an invalid state for the operation."""


class DuplicateInstallmentError(CaisseEngineError):
    """Raised when a payment already exists for an installment."""

    def __init__(self, contract_id: str, due_month_index: int) -> None:
        super().__init__(
            f"Installment {due_month_index} of contract {contract_id} is already recorded"
        )
        self.contract_id = contract_id
        self.due_month_index = due_month_index


class InstallmentDefaultedError(CaisseEngineError):
    """Raised when an installment is more than 12 days late.

    Penalties no longer apply past that point: the contract is in default
    and awaits administrative rescission.
    """

    def __init__(self, days_late: int) -> None:
        super().__init__(f"Installment is {days_late} days late (default after J+12)")
        self.days_late = days_late


class RefundNotAvailableError(CaisseEngineError):
    """Raised when a refund cannot be computed for the contract's ledger."""


class UnboundedAmortizationError(CaisseEngineError):
    """Raised when an amortization schedule does not settle within its bound.

    Carries the partial schedule and the unrounded balance still owed so the
    caller can report the shortfall.
    """

    def __init__(self, max_duration: int, remaining: Decimal, items: list[Any]) -> None:
        super().__init__(
            f"Balance {remaining:.2f} still owed after {max_duration} periods"
        )
        self.max_duration = max_duration
        self.remaining = remaining
        self.items = items


class SinkError(CaisseEngineError):
    """Raised when a notification sink operation fails."""
