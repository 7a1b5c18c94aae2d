"""Contract service: the engine's boundary operations.

The engine modules are pure; this service reads settings and ledgers from
the store, evaluates them against the injected clock, persists the results
and publishes notifications. Every state it writes is re-derived from the
ledger, so the stored ``status`` never leads the ledger.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from caisse_engine.clock import Clock, SystemClock
from caisse_engine.config import EngineConfig, PolicyConfig
from caisse_engine.engine.bonus import bonus_base, compute_bonus_amount, resolve_bonus_rate
from caisse_engine.engine.penalty import compute_penalty
from caisse_engine.engine.refund import compute_refund, refund_deadline
from caisse_engine.engine.rounding import to_decimal
from caisse_engine.engine.schedule import build_schedule, simulate_schedule
from caisse_engine.engine.state import can_transition, derive_state, installment_due_dates, recompute_state
from caisse_engine.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    InstallmentDefaultedError,
    InvalidContractParametersError,
    InvalidContractStateError,
)
from caisse_engine.models import (
    BonusSettings,
    CaisseType,
    Contract,
    ContractStatus,
    Payment,
    PaymentMode,
    Refund,
    RefundStatus,
    RefundType,
    SavingsSchedule,
)
from caisse_engine.sinks.base import NotificationSink
from caisse_engine.store.base import ContractRepository

logger = logging.getLogger(__name__)

# States from which a member may ask to leave early
RUNNING_STATES = frozenset(
    {
        ContractStatus.ACTIVE,
        ContractStatus.LATE_NO_PENALTY,
        ContractStatus.LATE_WITH_PENALTY,
    }
)

# States in which no payment may be recorded
PAYMENT_BLOCKED_STATES = frozenset(
    {
        ContractStatus.DEFAULTED_AFTER_J12,
        ContractStatus.EARLY_REFUND_PENDING,
        ContractStatus.FINAL_REFUND_PENDING,
        ContractStatus.RESCINDED,
        ContractStatus.CLOSED,
    }
)


@dataclass(frozen=True)
class PaymentReceipt:
    """Outcome of recording one installment payment."""

    payment: Payment
    status: ContractStatus
    penalty: int
    bonus: int


class ContractService:
    """Orchestrates simulations, subscriptions, payments and refunds.

    Parameters
    ----------
    store : ContractRepository
        Settings, contracts, payment ledger and refunds.
    clock : Clock | None
        Source of "today" (default: system date).
    notifier : NotificationSink | None
        Receives ``payment.recorded``, ``refund.*`` and ``contract.<status>``
        notifications.
    config : EngineConfig | None
        Policy values (refund windows, LIBRE minimum).
    """

    def __init__(
        self,
        store: ContractRepository,
        clock: Clock | None = None,
        notifier: NotificationSink | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.config = config or EngineConfig()

    @property
    def policy(self) -> PolicyConfig:
        return self.config.policy

    def _notify(self, event_type: str, subject: str, payload: dict[str, Any]) -> None:
        if self.notifier is not None:
            self.notifier.notify(event_type, subject, payload)

    def _settings_for(self, contract: Contract) -> BonusSettings | None:
        """Settings version a contract is priced with: its pinned one, else the active one."""
        if contract.settings_id_used_at_creation is not None:
            return self.store.get_settings(contract.settings_id_used_at_creation)
        return self.store.get_active_settings(contract.caisse_type)

    def _current_state(self, contract: Contract) -> ContractStatus:
        return derive_state(
            contract,
            self.store.get_payments(contract.contract_id),
            self.clock.now(),
            self.store.get_refunds(contract.contract_id),
        )

    def _refresh(self, contract: Contract, dirty: bool = False) -> Contract:
        """Recompute the contract's status and persist it.

        ``dirty`` marks a contract whose administrative markers were edited
        and must be written even when its status is unchanged.
        """
        updated = recompute_state(
            contract,
            self.store.get_payments(contract.contract_id),
            self.clock.now(),
            self.store.get_refunds(contract.contract_id),
        )
        if dirty or updated.status != contract.status:
            self.store.update_contract(updated)
        if updated.status != contract.status:
            logger.info(
                "Contract %s: %s -> %s",
                contract.contract_id,
                contract.status.value,
                updated.status.value,
                extra={"extra": {"contract_id": contract.contract_id, "status": updated.status.value}},
            )
            self._notify(
                f"contract.{updated.status.value.lower()}",
                updated.contract_id,
                {"previous_status": contract.status, "status": updated.status},
            )
        return updated

    def _get_refund(self, contract_id: str, refund_id: str) -> Refund:
        for refund in self.store.get_refunds(contract_id):
            if refund.refund_id == refund_id:
                return refund
        raise EntityNotFoundError(f"Refund {refund_id} not found for contract {contract_id}")

    def _check_libre_minimum(self, caisse_type: CaisseType, amount: Decimal) -> None:
        if caisse_type == CaisseType.LIBRE and amount < self.policy.libre_minimum_amount:
            raise InvalidContractParametersError(
                f"LIBRE amount must be at least {self.policy.libre_minimum_amount}, got {amount}"
            )

    # Simulation and subscription

    def simulate(
        self,
        caisse_type: CaisseType,
        monthly_amount: Decimal | int,
        duration_months: int,
        start_date: date,
    ) -> SavingsSchedule:
        """Price a hypothetical contract against the active settings.

        Missing settings never fail a simulation; the schedule is flagged
        instead.
        """
        settings = self.store.get_active_settings(caisse_type)
        return simulate_schedule(caisse_type, monthly_amount, duration_months, start_date, settings)

    def subscribe(
        self,
        member_id: str,
        caisse_type: CaisseType,
        monthly_amount: Decimal | int,
        duration_months: int,
        start_date: date,
    ) -> Contract:
        """Create a DRAFT contract pinned to the active settings version.

        Raises
        ------
        ConfigurationError
            When no settings version is active for the caisse type.
        """
        amount = to_decimal(monthly_amount)
        self._check_libre_minimum(caisse_type, amount)

        settings = self.store.get_active_settings(caisse_type)
        if settings is None:
            raise ConfigurationError(
                f"No active settings for {caisse_type.value}; subscription blocked"
            )

        contract = Contract(
            contract_id=str(uuid.uuid4()),
            member_id=member_id,
            caisse_type=caisse_type,
            monthly_amount=amount,
            duration_months=duration_months,
            start_date=start_date,
            status=ContractStatus.DRAFT,
            settings_id_used_at_creation=settings.settings_id,
            created_at=self.clock.timestamp(),
        )
        self.store.add_contract(contract)
        logger.info(
            "Subscribed member %s to %s contract %s (%s x %d months, settings %s)",
            member_id,
            caisse_type.value,
            contract.contract_id,
            amount,
            duration_months,
            settings.settings_id,
        )
        self._notify(
            "contract.draft",
            contract.contract_id,
            {
                "member_id": member_id,
                "caisse_type": caisse_type,
                "monthly_amount": amount,
                "duration_months": duration_months,
                "start_date": start_date,
                "settings_id": settings.settings_id,
            },
        )
        return contract

    def schedule_for(self, contract_id: str) -> SavingsSchedule:
        """Authoritative schedule of a persisted contract."""
        contract = self.store.get_contract(contract_id)
        return build_schedule(contract, self._settings_for(contract))

    # Payments

    def record_payment(
        self,
        contract_id: str,
        due_month_index: int,
        paid_at: date,
        amount: Decimal | int | None = None,
        mode: PaymentMode = PaymentMode.CASH,
    ) -> PaymentReceipt:
        """Record the payment of one installment.

        The penalty is fixed at recording time from the pinned settings.
        Nothing is written when the installment is past its default date.

        Raises
        ------
        InvalidContractParametersError
            Payment date before the contract start, index out of range, or
            a LIBRE amount below the minimum.
        InvalidContractStateError
            Contract defaulted, rescinded, closed or awaiting a refund.
        InstallmentDefaultedError
            Payment more than 12 days after the due date.
        DuplicateInstallmentError
            Installment already paid.
        """
        contract = self.store.get_contract(contract_id)

        state = self._current_state(contract)
        if state in PAYMENT_BLOCKED_STATES:
            raise InvalidContractStateError(
                f"Contract {contract_id} is {state.value}; payments are closed"
            )
        if paid_at < contract.start_date:
            raise InvalidContractParametersError(
                f"Payment date {paid_at} precedes contract start {contract.start_date}"
            )
        if not 0 <= due_month_index < contract.duration_months:
            raise InvalidContractParametersError(
                f"Installment {due_month_index} outside contract {contract_id}"
            )

        value = contract.monthly_amount if amount is None else to_decimal(amount)
        if value <= 0:
            raise InvalidContractParametersError(f"Payment amount must be positive, got {value}")
        self._check_libre_minimum(contract.caisse_type, value)

        due_at = installment_due_dates(contract)[due_month_index]
        settings = self._settings_for(contract)
        rules = settings.penalty_rules if settings is not None else None
        try:
            penalty = compute_penalty(due_at, paid_at, contract.monthly_amount, rules)
        except InstallmentDefaultedError:
            logger.warning(
                "Refused payment of installment %d of %s: paid %s, due %s",
                due_month_index,
                contract_id,
                paid_at,
                due_at,
            )
            raise

        payment = self.store.record_payment(
            contract_id,
            due_month_index,
            paid_at,
            value,
            Decimal(penalty) if penalty else None,
            due_at=due_at,
            mode=mode,
            recorded_at=self.clock.timestamp(),
        )

        rate = resolve_bonus_rate(contract.caisse_type, due_month_index, settings)
        bonus = compute_bonus_amount(rate.rate_percent, bonus_base(contract, value))

        contract = self._refresh(contract)
        logger.info(
            "Recorded installment %d of %s: amount=%s penalty=%d bonus=%d",
            due_month_index,
            contract_id,
            value,
            penalty,
            bonus,
            extra={"extra": {"contract_id": contract_id, "due_month_index": due_month_index}},
        )
        self._notify(
            "payment.recorded",
            contract_id,
            {
                "due_month_index": due_month_index,
                "due_at": due_at,
                "paid_at": paid_at,
                "amount": value,
                "penalty": penalty,
                "bonus": bonus,
                "mode": mode,
                "status": contract.status,
            },
        )
        return PaymentReceipt(payment=payment, status=contract.status, penalty=penalty, bonus=bonus)

    # Administrative moves

    def rescind(self, contract_id: str) -> Contract:
        """Administratively terminate a contract."""
        contract = self.store.get_contract(contract_id)
        state = self._current_state(contract)
        if state == ContractStatus.RESCINDED or not can_transition(state, ContractStatus.RESCINDED):
            raise InvalidContractStateError(f"Contract {contract_id} is {state.value}; cannot rescind")
        return self._refresh(replace(contract, rescinded_at=self.clock.now()), dirty=True)

    def request_early_withdrawal(self, contract_id: str) -> Contract:
        """Register a member's request to leave before term."""
        contract = self.store.get_contract(contract_id)
        state = self._current_state(contract)
        if state not in RUNNING_STATES:
            raise InvalidContractStateError(
                f"Contract {contract_id} is {state.value}; early withdrawal unavailable"
            )
        return self._refresh(replace(contract, early_withdraw_requested_at=self.clock.now()), dirty=True)

    # Refunds

    def _issue_refund(self, contract: Contract, refund_type: RefundType, requested_at: date) -> Refund:
        amounts = compute_refund(
            contract,
            self.store.get_payments(contract.contract_id),
            refund_type,
            self._settings_for(contract),
            requested_at=requested_at if refund_type == RefundType.EARLY else None,
        )
        deadline = refund_deadline(
            contract,
            refund_type,
            requested_at,
            final_window_days=self.policy.final_refund_window_days,
            early_window_days=self.policy.early_refund_window_days,
        )
        refund_id = self.store.save_refund(
            contract.contract_id,
            refund_type,
            amounts.amount_nominal,
            amounts.amount_bonus,
            deadline_at=deadline,
            created_at=self.clock.timestamp(),
        )
        refund = self._get_refund(contract.contract_id, refund_id)
        logger.info(
            "%s refund %s for %s: nominal=%d bonus=%d deadline=%s",
            refund_type.value,
            refund_id,
            contract.contract_id,
            refund.amount_nominal,
            refund.amount_bonus,
            deadline,
        )
        self._notify(
            "refund.created",
            contract.contract_id,
            {
                "refund_id": refund_id,
                "refund_type": refund_type,
                "amount_nominal": refund.amount_nominal,
                "amount_bonus": refund.amount_bonus,
                "deadline_at": deadline,
            },
        )
        self._refresh(contract)
        return refund

    def issue_early_refund(self, contract_id: str) -> Refund:
        """Compute and save the EARLY refund of a withdrawal request."""
        contract = self.store.get_contract(contract_id)
        state = self._current_state(contract)
        if state != ContractStatus.EARLY_WITHDRAW_REQUESTED:
            raise InvalidContractStateError(
                f"Contract {contract_id} is {state.value}; no early withdrawal to refund"
            )
        return self._issue_refund(contract, RefundType.EARLY, contract.early_withdraw_requested_at)

    def request_final_refund(self, contract_id: str) -> Refund:
        """Compute and save the FINAL refund of a fully paid contract.

        Raises
        ------
        InvalidContractStateError
            A refund is already live, or the contract is rescinded.
        RefundNotAvailableError
            Some installments are still unpaid.
        """
        contract = self.store.get_contract(contract_id)
        if any(r.is_live for r in self.store.get_refunds(contract_id)):
            raise InvalidContractStateError(f"Contract {contract_id} already has a live refund")
        state = self._current_state(contract)
        if state in (ContractStatus.RESCINDED, ContractStatus.CLOSED):
            raise InvalidContractStateError(
                f"Contract {contract_id} is {state.value}; final refund unavailable"
            )
        return self._issue_refund(contract, RefundType.FINAL, self.clock.now())

    def _move_refund(
        self,
        contract_id: str,
        refund_id: str,
        allowed_from: tuple[RefundStatus, ...],
        target: RefundStatus,
        refresh: bool = True,
    ) -> Refund:
        refund = self._get_refund(contract_id, refund_id)
        if refund.status not in allowed_from:
            raise InvalidContractStateError(
                f"Refund {refund_id} is {refund.status.value}; cannot move to {target.value}"
            )
        refund = self.store.update_refund_status(contract_id, refund_id, target)
        logger.info("Refund %s of %s is now %s", refund_id, contract_id, target.value)
        self._notify(
            f"refund.{target.value.lower()}",
            contract_id,
            {"refund_id": refund_id, "refund_type": refund.refund_type, "total": refund.total},
        )
        if refresh:
            self._refresh(self.store.get_contract(contract_id))
        return refund

    def approve_refund(self, contract_id: str, refund_id: str) -> Refund:
        return self._move_refund(contract_id, refund_id, (RefundStatus.PENDING,), RefundStatus.APPROVED)

    def mark_refund_paid(self, contract_id: str, refund_id: str) -> Refund:
        """Record the payout; the contract closes."""
        return self._move_refund(
            contract_id,
            refund_id,
            (RefundStatus.PENDING, RefundStatus.APPROVED),
            RefundStatus.PAID,
        )

    def cancel_early_refund(self, contract_id: str, refund_id: str) -> Refund:
        """Withdraw a pending EARLY refund; the contract resumes running."""
        refund = self._get_refund(contract_id, refund_id)
        if refund.refund_type != RefundType.EARLY:
            raise InvalidContractStateError(f"Refund {refund_id} is not an early refund")
        refund = self._move_refund(
            contract_id, refund_id, (RefundStatus.PENDING,), RefundStatus.ARCHIVED, refresh=False
        )
        contract = self.store.get_contract(contract_id)
        self._refresh(replace(contract, early_withdraw_requested_at=None), dirty=True)
        return refund

    def refresh_state(self, contract_id: str) -> Contract:
        """Re-derive and persist the status of a contract as of today."""
        return self._refresh(self.store.get_contract(contract_id))

