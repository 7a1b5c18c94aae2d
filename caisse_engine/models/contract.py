"""Savings contract, payment ledger and refund models."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from caisse_engine.exceptions import InvalidContractParametersError
from caisse_engine.models.enums import (
    CaisseType,
    ContractStatus,
    PaymentMode,
    RefundStatus,
    RefundType,
)


@dataclass(frozen=True)
class Contract:
    """Savings contract entity.

    ``status`` is a cached projection of the ledger; the state machine in
    :mod:`caisse_engine.engine.state` is the authority.
    """

    contract_id: str
    member_id: str
    caisse_type: CaisseType
    monthly_amount: Decimal  # Monthly target (JOURNALIERE sums daily contributions into it)
    duration_months: int
    start_date: date
    status: ContractStatus = ContractStatus.DRAFT
    settings_id_used_at_creation: str | None = None
    early_withdraw_requested_at: date | None = None
    rescinded_at: date | None = None
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.monthly_amount <= 0:
            raise InvalidContractParametersError(
                f"monthly_amount must be positive, got {self.monthly_amount}"
            )
        if self.duration_months <= 0:
            raise InvalidContractParametersError(
                f"duration_months must be positive, got {self.duration_months}"
            )

    @property
    def end_date(self) -> date:
        """Date the last installment period ends."""
        return self.start_date + relativedelta(months=self.duration_months)


@dataclass(frozen=True)
class Payment:
    """Ledger entry for one installment (versement).

    ``paid_at`` and ``penalty_applied`` are written once, when the
    payment is recorded.
    """

    contract_id: str
    due_month_index: int  # 0-based
    due_at: date
    paid_at: date | None
    amount: Decimal
    penalty_applied: Decimal | None = None
    mode: PaymentMode = PaymentMode.CASH
    recorded_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None


@dataclass(frozen=True)
class Installment:
    """A scheduled installment joined with its ledger entry, if any."""

    month_index: int
    due_at: date
    payment: Payment | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment is not None and self.payment.is_paid


@dataclass(frozen=True)
class Refund:
    """Early or final withdrawal payout. Amounts never change after creation."""

    refund_id: str
    contract_id: str
    refund_type: RefundType
    amount_nominal: int
    amount_bonus: int
    status: RefundStatus = RefundStatus.PENDING
    deadline_at: date | None = None
    created_at: datetime | None = None

    @property
    def total(self) -> int:
        return self.amount_nominal + self.amount_bonus

    @property
    def is_live(self) -> bool:
        return self.status != RefundStatus.ARCHIVED


@dataclass(frozen=True)
class RefundAmounts:
    """Computed payout for a withdrawal request."""

    refund_type: RefundType
    amount_nominal: int
    amount_bonus: int
    installments_counted: tuple[int, ...]

    @property
    def total(self) -> int:
        return self.amount_nominal + self.amount_bonus
