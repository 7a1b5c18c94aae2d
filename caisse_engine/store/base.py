"""Boundary ports the contract service depends on."""

from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from caisse_engine.models import (
    BonusSettings,
    CaisseType,
    Contract,
    Payment,
    PaymentMode,
    Refund,
    RefundStatus,
    RefundType,
)


class SettingsReader(Protocol):
    def get_active_settings(self, caisse_type: CaisseType) -> BonusSettings | None: ...

    def get_settings(self, settings_id: str) -> BonusSettings: ...


class PaymentLedger(Protocol):
    def get_payments(self, contract_id: str) -> list[Payment]: ...

    def record_payment(
        self,
        contract_id: str,
        due_month_index: int,
        paid_at: date,
        amount: Decimal,
        penalty_applied: Decimal | None = None,
        *,
        due_at: date | None = None,
        mode: PaymentMode = PaymentMode.CASH,
        recorded_at: datetime | None = None,
    ) -> Payment: ...


class RefundStore(Protocol):
    def save_refund(
        self,
        contract_id: str,
        refund_type: RefundType,
        amount_nominal: int,
        amount_bonus: int,
        *,
        deadline_at: date | None = None,
        created_at: datetime | None = None,
    ) -> str: ...

    def get_refunds(self, contract_id: str) -> list[Refund]: ...

    def update_refund_status(self, contract_id: str, refund_id: str, status: RefundStatus) -> Refund: ...


class ContractRepository(SettingsReader, PaymentLedger, RefundStore, Protocol):
    """Everything the contract service reads and writes."""

    def add_contract(self, contract: Contract) -> None: ...

    def get_contract(self, contract_id: str) -> Contract: ...

    def update_contract(self, contract: Contract) -> None: ...
