"""In-memory contract store with ledger and settings invariants."""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from caisse_engine.exceptions import (
    DuplicateInstallmentError,
    EntityNotFoundError,
    InvalidContractParametersError,
)
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


@dataclass
class InMemoryContractStore:
    """Dict-backed store for settings, contracts, payments and refunds.

    Writes that must be all-or-nothing (settings activation, payment
    recording) run under a single lock.
    """

    settings: dict[str, BonusSettings] = field(default_factory=dict)
    contracts: dict[str, Contract] = field(default_factory=dict)

    # contract_id -> due_month_index -> payment
    _payments: dict[str, dict[int, Payment]] = field(default_factory=dict)
    _refunds: dict[str, dict[str, Refund]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    # Settings

    def save_settings(self, settings: BonusSettings) -> None:
        """Add a settings version. New versions start inactive unless activated."""
        with self._lock:
            if settings.settings_id in self.settings:
                raise InvalidContractParametersError(
                    f"Settings {settings.settings_id} already exist"
                )
            self.settings[settings.settings_id] = replace(settings, is_active=False)
        if settings.is_active:
            self.activate_settings(settings.settings_id)

    def get_settings(self, settings_id: str) -> BonusSettings:
        if settings_id not in self.settings:
            raise EntityNotFoundError(f"Settings {settings_id} not found")
        return self.settings[settings_id]

    def list_settings(self, caisse_type: CaisseType) -> list[BonusSettings]:
        with self._lock:
            versions = list(self.settings.values())
        return [s for s in versions if s.caisse_type == caisse_type]

    def get_active_settings(self, caisse_type: CaisseType) -> BonusSettings | None:
        with self._lock:
            versions = list(self.settings.values())
        for settings in versions:
            if settings.caisse_type == caisse_type and settings.is_active:
                return settings
        return None

    def activate_settings(self, settings_id: str) -> BonusSettings:
        """Make one version active and deactivate its siblings in one step."""
        with self._lock:
            target = self.get_settings(settings_id)
            updated = {
                sid: replace(s, is_active=(sid == settings_id))
                for sid, s in self.settings.items()
                if s.caisse_type == target.caisse_type
            }
            self.settings.update(updated)
            return updated[settings_id]

    # Contracts

    def add_contract(self, contract: Contract) -> None:
        with self._lock:
            if contract.contract_id in self.contracts:
                raise InvalidContractParametersError(f"Contract {contract.contract_id} already exists")
            self.contracts[contract.contract_id] = contract
            self._payments[contract.contract_id] = {}
            self._refunds[contract.contract_id] = {}

    def get_contract(self, contract_id: str) -> Contract:
        if contract_id not in self.contracts:
            raise EntityNotFoundError(f"Contract {contract_id} not found")
        return self.contracts[contract_id]

    def update_contract(self, contract: Contract) -> None:
        """Replace a contract's mutable fields. The start date never changes."""
        with self._lock:
            current = self.get_contract(contract.contract_id)
            if contract.start_date != current.start_date:
                raise InvalidContractParametersError(
                    f"start_date of contract {contract.contract_id} is immutable"
                )
            self.contracts[contract.contract_id] = contract

    def list_contracts(self, member_id: str | None = None) -> list[Contract]:
        with self._lock:
            contracts = list(self.contracts.values())
        return [c for c in contracts if member_id is None or c.member_id == member_id]

    # Payment ledger

    def get_payments(self, contract_id: str) -> list[Payment]:
        self.get_contract(contract_id)
        ledger = self._payments[contract_id]
        return [ledger[i] for i in sorted(ledger)]

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
    ) -> Payment:
        """Append a payment for an installment; never overwrites."""
        with self._lock:
            contract = self.get_contract(contract_id)
            if not 0 <= due_month_index < contract.duration_months:
                raise InvalidContractParametersError(
                    f"Installment {due_month_index} outside contract {contract_id}"
                )
            ledger = self._payments[contract_id]
            if due_month_index in ledger:
                raise DuplicateInstallmentError(contract_id, due_month_index)

            payment = Payment(
                contract_id=contract_id,
                due_month_index=due_month_index,
                due_at=due_at or contract.start_date + relativedelta(months=due_month_index),
                paid_at=paid_at,
                amount=amount,
                penalty_applied=penalty_applied,
                mode=mode,
                recorded_at=recorded_at or datetime.now(),
            )
            ledger[due_month_index] = payment
            return payment

    # Refunds

    def save_refund(
        self,
        contract_id: str,
        refund_type: RefundType,
        amount_nominal: int,
        amount_bonus: int,
        *,
        deadline_at: date | None = None,
        created_at: datetime | None = None,
    ) -> str:
        with self._lock:
            self.get_contract(contract_id)
            refund = Refund(
                refund_id=str(uuid.uuid4()),
                contract_id=contract_id,
                refund_type=refund_type,
                amount_nominal=amount_nominal,
                amount_bonus=amount_bonus,
                deadline_at=deadline_at,
                created_at=created_at or datetime.now(),
            )
            self._refunds[contract_id][refund.refund_id] = refund
            return refund.refund_id

    def get_refunds(self, contract_id: str) -> list[Refund]:
        self.get_contract(contract_id)
        return list(self._refunds[contract_id].values())

    def get_refund(self, contract_id: str, refund_id: str) -> Refund:
        refunds = self._refunds.get(contract_id, {})
        if refund_id not in refunds:
            raise EntityNotFoundError(f"Refund {refund_id} not found for contract {contract_id}")
        return refunds[refund_id]

    def update_refund_status(self, contract_id: str, refund_id: str, status: RefundStatus) -> Refund:
        with self._lock:
            refund = replace(self.get_refund(contract_id, refund_id), status=status)
            self._refunds[contract_id][refund_id] = refund
            return refund
