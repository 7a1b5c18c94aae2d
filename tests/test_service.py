"""Tests for the contract service against the in-memory store."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from caisse_engine.clock import FixedClock
from caisse_engine.config import EngineConfig, PolicyConfig
from caisse_engine.engine.state import installment_due_dates
from caisse_engine.exceptions import (
    ConfigurationError,
    DuplicateInstallmentError,
    InstallmentDefaultedError,
    InvalidContractParametersError,
    InvalidContractStateError,
    RefundNotAvailableError,
)
from caisse_engine.models import (
    BonusSettings,
    CaisseType,
    Contract,
    ContractStatus,
    PaymentMode,
    RefundStatus,
    RefundType,
)
from caisse_engine.services import ContractService
from caisse_engine.sinks import ConsoleSink
from caisse_engine.store import InMemoryContractStore


@pytest.fixture
def contract(service: ContractService, start_date: date) -> Contract:
    """Six-month STANDARD contract subscribed through the service."""
    return service.subscribe("mbr-001", CaisseType.STANDARD, 50000, 6, start_date)


def pay_on_time(service: ContractService, clock: FixedClock, contract: Contract, count: int) -> None:
    """Pay the first ``count`` installments on their due dates."""
    for index, due_at in enumerate(installment_due_dates(contract)[:count]):
        clock.set(due_at)
        service.record_payment(contract.contract_id, index, due_at)


def event_types(notifier: ConsoleSink) -> list[str]:
    return [event.event_type for event in notifier.events]


class TestSimulateAndSubscribe:
    """Tests for simulate and subscribe."""

    def test_simulate_with_active_settings(self, service: ContractService, start_date: date) -> None:
        """Test a simulation uses the active settings."""
        schedule = service.simulate(CaisseType.STANDARD, 50000, 6, start_date)

        assert schedule.total_bonus == 3000
        assert schedule.no_active_settings is False

    def test_simulate_without_settings_is_flagged(self, service: ContractService, start_date: date) -> None:
        """Test a simulation never fails for missing settings."""
        schedule = service.simulate(CaisseType.LIBRE, 150000, 6, start_date)

        assert schedule.no_active_settings is True
        assert schedule.total_bonus == 0

    def test_subscribe_pins_settings(
        self, service: ContractService, contract: Contract, notifier: ConsoleSink
    ) -> None:
        """Test a new contract is DRAFT and pinned to the active version."""
        assert contract.status == ContractStatus.DRAFT
        assert contract.settings_id_used_at_creation == "std-v1"
        assert service.store.get_contract(contract.contract_id) == contract
        assert event_types(notifier) == ["contract.draft"]

    def test_subscribe_without_settings_blocked(self, service: ContractService, start_date: date) -> None:
        """Test subscription requires an active settings version."""
        with pytest.raises(ConfigurationError, match="LIBRE"):
            service.subscribe("mbr-001", CaisseType.LIBRE, 150000, 6, start_date)

    def test_libre_minimum(self, service: ContractService, start_date: date) -> None:
        """Test LIBRE contracts require at least 100 000 per month."""
        with pytest.raises(InvalidContractParametersError, match="at least"):
            service.subscribe("mbr-001", CaisseType.LIBRE, 50000, 6, start_date)

    def test_schedule_uses_pinned_version(
        self, service: ContractService, store: InMemoryContractStore, contract: Contract
    ) -> None:
        """Test activating a new version does not reprice existing contracts."""
        store.save_settings(
            BonusSettings("std-v2", CaisseType.STANDARD, {3: Decimal("10")}, is_active=True)
        )

        assert service.schedule_for(contract.contract_id).total_bonus == 3000
        assert service.simulate(CaisseType.STANDARD, 50000, 6, contract.start_date).total_bonus == 5000


class TestRecordPayment:
    """Tests for record_payment."""

    def test_first_payment_activates(
        self, service: ContractService, contract: Contract, notifier: ConsoleSink
    ) -> None:
        """Test the first payment moves DRAFT to ACTIVE."""
        receipt = service.record_payment(contract.contract_id, 0, date(2024, 1, 1), mode=PaymentMode.AIRTEL_MONEY)

        assert receipt.status == ContractStatus.ACTIVE
        assert receipt.penalty == 0
        assert receipt.bonus == 0
        assert receipt.payment.mode == PaymentMode.AIRTEL_MONEY
        assert service.store.get_contract(contract.contract_id).status == ContractStatus.ACTIVE
        assert event_types(notifier)[-2:] == ["contract.active", "payment.recorded"]

    def test_penalty_fixed_at_recording(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a J+5 payment carries 1% x 5 days of penalty."""
        pay_on_time(service, clock, contract, 1)
        clock.set(date(2024, 2, 6))

        receipt = service.record_payment(contract.contract_id, 1, date(2024, 2, 6))

        assert receipt.penalty == 2500
        assert receipt.payment.penalty_applied == Decimal("2500")
        assert receipt.status == ContractStatus.ACTIVE

    def test_grace_payment_has_no_penalty(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a J+3 payment is not penalised."""
        pay_on_time(service, clock, contract, 1)
        receipt = service.record_payment(contract.contract_id, 1, date(2024, 2, 4))

        assert receipt.penalty == 0
        assert receipt.payment.penalty_applied is None

    def test_bonus_from_fourth_month(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test the receipt reports the installment's bonus."""
        pay_on_time(service, clock, contract, 3)
        receipt = service.record_payment(contract.contract_id, 3, date(2024, 4, 1))
        assert receipt.bonus == 750

    def test_defaulted_installment_not_recorded(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a J+13 payment is refused and nothing is written."""
        pay_on_time(service, clock, contract, 1)

        with pytest.raises(InstallmentDefaultedError):
            service.record_payment(contract.contract_id, 1, date(2024, 2, 14))
        assert len(service.store.get_payments(contract.contract_id)) == 1

    def test_payment_before_start(self, service: ContractService, contract: Contract) -> None:
        """Test a payment dated before the contract start is rejected."""
        with pytest.raises(InvalidContractParametersError, match="precedes"):
            service.record_payment(contract.contract_id, 0, date(2023, 12, 31))

    def test_duplicate_payment(self, service: ContractService, contract: Contract) -> None:
        """Test an installment cannot be paid twice."""
        service.record_payment(contract.contract_id, 0, date(2024, 1, 1))
        with pytest.raises(DuplicateInstallmentError):
            service.record_payment(contract.contract_id, 0, date(2024, 1, 1))

    def test_index_out_of_range(self, service: ContractService, contract: Contract) -> None:
        """Test installment indices are bounded by the duration."""
        with pytest.raises(InvalidContractParametersError):
            service.record_payment(contract.contract_id, 6, date(2024, 7, 1))

    def test_blocked_after_default(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a defaulted contract takes no more payments."""
        pay_on_time(service, clock, contract, 1)
        clock.set(date(2024, 2, 20))

        assert service.refresh_state(contract.contract_id).status == ContractStatus.DEFAULTED_AFTER_J12
        with pytest.raises(InvalidContractStateError, match="DEFAULTED_AFTER_J12"):
            service.record_payment(contract.contract_id, 2, date(2024, 3, 1))


class TestLifecycle:
    """Tests for administrative moves and refunds."""

    def test_refresh_state_tracks_lateness(
        self, service: ContractService, clock: FixedClock, contract: Contract, notifier: ConsoleSink
    ) -> None:
        """Test refresh persists the derived status."""
        pay_on_time(service, clock, contract, 1)
        clock.set(date(2024, 2, 3))
        assert service.refresh_state(contract.contract_id).status == ContractStatus.LATE_NO_PENALTY

        clock.set(date(2024, 2, 8))
        assert service.refresh_state(contract.contract_id).status == ContractStatus.LATE_WITH_PENALTY
        assert "contract.late_with_penalty" in event_types(notifier)

    def test_rescind(self, service: ContractService, clock: FixedClock, contract: Contract) -> None:
        """Test a defaulted contract can be rescinded."""
        pay_on_time(service, clock, contract, 1)
        clock.set(date(2024, 3, 1))

        rescinded = service.rescind(contract.contract_id)

        assert rescinded.status == ContractStatus.RESCINDED
        assert rescinded.rescinded_at == date(2024, 3, 1)
        with pytest.raises(InvalidContractStateError):
            service.rescind(contract.contract_id)

    def test_early_withdrawal_needs_payments(self, service: ContractService, contract: Contract) -> None:
        """Test a DRAFT contract cannot request an early withdrawal."""
        with pytest.raises(InvalidContractStateError):
            service.request_early_withdrawal(contract.contract_id)

    def test_early_refund_flow(
        self, service: ContractService, clock: FixedClock, contract: Contract, notifier: ConsoleSink
    ) -> None:
        """Test request, refund and payout of an early withdrawal."""
        pay_on_time(service, clock, contract, 3)
        clock.set(date(2024, 3, 10))

        requested = service.request_early_withdrawal(contract.contract_id)
        assert requested.status == ContractStatus.EARLY_WITHDRAW_REQUESTED

        refund = service.issue_early_refund(contract.contract_id)
        assert refund.refund_type == RefundType.EARLY
        assert refund.amount_nominal == 150000
        assert refund.amount_bonus == 0
        assert refund.deadline_at == date(2024, 4, 24)
        assert service.store.get_contract(contract.contract_id).status == ContractStatus.EARLY_REFUND_PENDING

        with pytest.raises(InvalidContractStateError):
            service.record_payment(contract.contract_id, 3, date(2024, 4, 1))

        paid = service.mark_refund_paid(contract.contract_id, refund.refund_id)
        assert paid.status == RefundStatus.PAID
        assert service.store.get_contract(contract.contract_id).status == ContractStatus.CLOSED
        assert event_types(notifier)[-2:] == ["refund.paid", "contract.closed"]

    def test_issue_early_refund_requires_request(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test no early refund without a withdrawal request."""
        pay_on_time(service, clock, contract, 2)
        with pytest.raises(InvalidContractStateError):
            service.issue_early_refund(contract.contract_id)

    def test_cancel_early_refund(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a cancelled early refund returns the contract to running."""
        pay_on_time(service, clock, contract, 3)
        clock.set(date(2024, 3, 10))
        service.request_early_withdrawal(contract.contract_id)
        refund = service.issue_early_refund(contract.contract_id)

        archived = service.cancel_early_refund(contract.contract_id, refund.refund_id)

        stored = service.store.get_contract(contract.contract_id)
        assert archived.status == RefundStatus.ARCHIVED
        assert stored.status == ContractStatus.ACTIVE
        assert stored.early_withdraw_requested_at is None

    def test_early_refund_window_from_config(
        self, store: InMemoryContractStore, clock: FixedClock, start_date: date
    ) -> None:
        """Test the early refund deadline follows the configured window."""
        config = EngineConfig(policy=PolicyConfig(early_refund_window_days=10))
        service = ContractService(store, clock, config=config)
        contract = service.subscribe("mbr-002", CaisseType.STANDARD, 50000, 6, start_date)
        pay_on_time(service, clock, contract, 1)
        clock.set(date(2024, 1, 20))
        service.request_early_withdrawal(contract.contract_id)

        assert service.issue_early_refund(contract.contract_id).deadline_at == date(2024, 1, 30)

    def test_final_refund_flow(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a fully paid contract is refunded and closed."""
        pay_on_time(service, clock, contract, 6)
        assert service.store.get_contract(contract.contract_id).status == ContractStatus.FINAL_REFUND_PENDING

        clock.set(date(2024, 6, 15))
        refund = service.request_final_refund(contract.contract_id)
        assert refund.total == 303000
        assert refund.deadline_at == date(2024, 7, 31)

        with pytest.raises(InvalidContractStateError, match="live refund"):
            service.request_final_refund(contract.contract_id)

        approved = service.approve_refund(contract.contract_id, refund.refund_id)
        assert approved.status == RefundStatus.APPROVED
        with pytest.raises(InvalidContractStateError):
            service.approve_refund(contract.contract_id, refund.refund_id)

        service.mark_refund_paid(contract.contract_id, refund.refund_id)
        assert service.store.get_contract(contract.contract_id).status == ContractStatus.CLOSED

    def test_final_refund_needs_full_ledger(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a final refund before the last installment is refused."""
        pay_on_time(service, clock, contract, 5)
        with pytest.raises(RefundNotAvailableError):
            service.request_final_refund(contract.contract_id)

    def test_cancel_final_refund_refused(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test only early refunds can be cancelled."""
        pay_on_time(service, clock, contract, 6)
        refund = service.request_final_refund(contract.contract_id)
        with pytest.raises(InvalidContractStateError, match="not an early refund"):
            service.cancel_early_refund(contract.contract_id, refund.refund_id)


class TestClockTimestamps:
    """Tests for timestamps taken from the injected clock."""

    def test_fixed_clock_timestamp(self) -> None:
        """Test a pinned clock stamps midnight of its date."""
        clock = FixedClock(date(2024, 3, 5))
        assert clock.timestamp() == datetime(2024, 3, 5)

        clock.set(date(2024, 4, 1))
        assert clock.timestamp() == datetime(2024, 4, 1)

    def test_contract_created_at(self, contract: Contract) -> None:
        """Test subscription stamps the contract with the clock's time."""
        assert contract.created_at == datetime(2024, 1, 1)

    def test_payment_recorded_at(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a payment is stamped when the clock says it was recorded."""
        clock.set(date(2024, 1, 3))

        receipt = service.record_payment(contract.contract_id, 0, date(2024, 1, 2))

        assert receipt.payment.recorded_at == datetime(2024, 1, 3)

    def test_refund_created_at(
        self, service: ContractService, clock: FixedClock, contract: Contract
    ) -> None:
        """Test a refund is stamped with the clock's time on issue."""
        pay_on_time(service, clock, contract, 6)
        clock.set(date(2024, 6, 15))

        refund = service.request_final_refund(contract.contract_id)

        assert refund.created_at == datetime(2024, 6, 15)
