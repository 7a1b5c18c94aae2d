"""Savings schedule and credit amortization models."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from caisse_engine.exceptions import InvalidContractParametersError
from caisse_engine.models.enums import CreditType


@dataclass(frozen=True)
class ScheduleRow:
    """One projected savings installment."""

    month_index: int
    due_at: date
    amount: int
    bonus_rate_percent: Decimal
    bonus_amount: int
    bonus_effective_label: str  # "—" before M4, then "M4", "M5", ...


@dataclass(frozen=True)
class SavingsSchedule:
    """Projected repayment table for a savings contract."""

    rows: tuple[ScheduleRow, ...]
    total_amount: int
    total_bonus: int
    no_active_settings: bool = False

    @property
    def total_with_bonus(self) -> int:
        return self.total_amount + self.total_bonus

    def to_rows(self) -> list[dict]:
        """Export rows as plain dicts for sinks and reports."""
        return [
            {
                "month": row.month_index + 1,
                "due_at": row.due_at,
                "amount": row.amount,
                "bonus_rate_percent": row.bonus_rate_percent,
                "bonus_amount": row.bonus_amount,
                "bonus_effective": row.bonus_effective_label,
            }
            for row in self.rows
        ]


@dataclass(frozen=True)
class CreditContract:
    """Credit contract terms (amortization product)."""

    amount: Decimal  # Principal
    interest_rate_percent: Decimal  # Monthly, simple on declining balance
    monthly_payment: Decimal
    first_payment_date: date
    max_duration: int | None = None
    credit_type: CreditType = CreditType.FIXE
    contract_id: str | None = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise InvalidContractParametersError(f"amount must be positive, got {self.amount}")
        if self.monthly_payment <= 0:
            raise InvalidContractParametersError(
                f"monthly_payment must be positive, got {self.monthly_payment}"
            )
        if self.interest_rate_percent < 0:
            raise InvalidContractParametersError("interest_rate_percent cannot be negative")


@dataclass(frozen=True)
class ScheduleItem:
    """One period of an amortization schedule (rounded for output)."""

    month: int  # 1-based
    date: date
    payment: int
    interest: int
    principal: int  # Balance plus interest before the payment
    remaining: int  # Balance after the payment


@dataclass(frozen=True)
class CreditSimulation:
    """Result of a credit simulation."""

    credit_type: CreditType
    amount: Decimal
    interest_rate_percent: Decimal
    monthly_payment: Decimal
    first_payment_date: date
    schedule: tuple[ScheduleItem, ...]
    duration: int
    total_amount: int
    is_valid: bool
    remaining_at_max_duration: Decimal = Decimal("0")
    suggested_monthly_payment: int | None = None


@dataclass(frozen=True)
class ReferenceRow:
    """Equal-installment reference plan row (SPECIALE credit)."""

    month: int
    date: date
    payment: int


@dataclass(frozen=True)
class GuarantorRow:
    """Guarantor remuneration for one month."""

    month: int
    date: date
    monthly_payment: int
    remaining_at_start: int
    guarantor_amount: int


@dataclass(frozen=True)
class PlannedPayment:
    """A planned installment for custom credit simulations."""

    month: int  # 1-based
    amount: Decimal
