"""Contract lifecycle state machine.

The state of a savings contract is derived from its payment ledger, its
refunds and the injected "today"; the ``status`` stored on the contract
is only a cached projection of :func:`derive_state`.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Iterable, Sequence

from dateutil.relativedelta import relativedelta

from caisse_engine.engine.penalty import classify_lateness, days_late
from caisse_engine.models import (
    Contract,
    ContractStatus,
    Installment,
    LatenessTier,
    Payment,
    Refund,
    RefundStatus,
    RefundType,
)

logger = logging.getLogger(__name__)

_LATE_STATES = (
    ContractStatus.LATE_NO_PENALTY,
    ContractStatus.LATE_WITH_PENALTY,
)
_RUNNING_STATES = (ContractStatus.ACTIVE, *_LATE_STATES)

ALLOWED_TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    ContractStatus.DRAFT: frozenset({ContractStatus.ACTIVE, ContractStatus.RESCINDED}),
    ContractStatus.ACTIVE: frozenset(
        {
            ContractStatus.ACTIVE,
            *_LATE_STATES,
            ContractStatus.EARLY_WITHDRAW_REQUESTED,
            ContractStatus.FINAL_REFUND_PENDING,
            ContractStatus.RESCINDED,
        }
    ),
    ContractStatus.LATE_NO_PENALTY: frozenset(
        {
            ContractStatus.ACTIVE,
            ContractStatus.LATE_WITH_PENALTY,
            ContractStatus.EARLY_WITHDRAW_REQUESTED,
            ContractStatus.FINAL_REFUND_PENDING,
            ContractStatus.RESCINDED,
        }
    ),
    ContractStatus.LATE_WITH_PENALTY: frozenset(
        {
            ContractStatus.ACTIVE,
            ContractStatus.DEFAULTED_AFTER_J12,
            ContractStatus.EARLY_WITHDRAW_REQUESTED,
            ContractStatus.FINAL_REFUND_PENDING,
            ContractStatus.RESCINDED,
        }
    ),
    ContractStatus.DEFAULTED_AFTER_J12: frozenset({ContractStatus.RESCINDED}),
    ContractStatus.EARLY_WITHDRAW_REQUESTED: frozenset(
        {ContractStatus.EARLY_REFUND_PENDING, *_RUNNING_STATES, ContractStatus.RESCINDED}
    ),
    ContractStatus.EARLY_REFUND_PENDING: frozenset({ContractStatus.CLOSED, *_RUNNING_STATES}),
    ContractStatus.FINAL_REFUND_PENDING: frozenset({ContractStatus.CLOSED}),
    ContractStatus.RESCINDED: frozenset(),
    ContractStatus.CLOSED: frozenset(),
}


def can_transition(source: ContractStatus, target: ContractStatus) -> bool:
    """Check whether ``source -> target`` is a legal lifecycle move."""
    return source == target or target in ALLOWED_TRANSITIONS[source]


def installment_due_dates(contract: Contract) -> list[date]:
    """Due date of every installment, in calendar months from the start date."""
    return [
        contract.start_date + relativedelta(months=i)
        for i in range(contract.duration_months)
    ]


def build_installments(contract: Contract, payments: Iterable[Payment]) -> list[Installment]:
    """Join the contract's installment calendar with its ledger entries."""
    by_index = {p.due_month_index: p for p in payments if p.contract_id == contract.contract_id}
    return [
        Installment(month_index=i, due_at=due_at, payment=by_index.get(i))
        for i, due_at in enumerate(installment_due_dates(contract))
    ]


def current_due_installment(
    contract: Contract,
    payments: Iterable[Payment],
    today: date,
) -> Installment | None:
    """Earliest unpaid installment whose due date has passed."""
    for installment in build_installments(contract, payments):
        if not installment.is_paid and installment.due_at < today:
            return installment
    return None


def _live_refund(refunds: Sequence[Refund], refund_type: RefundType) -> Refund | None:
    for refund in refunds:
        if refund.refund_type == refund_type and refund.is_live:
            return refund
    return None


def derive_state(
    contract: Contract,
    payments: Sequence[Payment],
    today: date,
    refunds: Sequence[Refund] = (),
) -> ContractStatus:
    """Compute the lifecycle state of a contract.

    Parameters
    ----------
    contract : Contract
        Contract terms plus its administrative markers (rescission date,
        early-withdrawal request date).
    payments : Sequence[Payment]
        Ledger entries for the contract.
    today : date
        Evaluation date, injected by the caller's clock.
    refunds : Sequence[Refund]
        Refund records for the contract.

    Returns
    -------
    ContractStatus
        The same inputs always yield the same state.
    """
    if contract.rescinded_at is not None:
        return ContractStatus.RESCINDED

    live_refunds = [r for r in refunds if r.contract_id == contract.contract_id and r.is_live]
    if any(r.status == RefundStatus.PAID for r in live_refunds):
        return ContractStatus.CLOSED
    if _live_refund(live_refunds, RefundType.EARLY) is not None:
        return ContractStatus.EARLY_REFUND_PENDING
    if _live_refund(live_refunds, RefundType.FINAL) is not None:
        return ContractStatus.FINAL_REFUND_PENDING

    if contract.early_withdraw_requested_at is not None:
        return ContractStatus.EARLY_WITHDRAW_REQUESTED

    installments = build_installments(contract, payments)
    paid = sum(1 for i in installments if i.is_paid)
    if paid == 0:
        return ContractStatus.DRAFT
    if paid == contract.duration_months:
        return ContractStatus.FINAL_REFUND_PENDING

    current = next(
        (i for i in installments if not i.is_paid and i.due_at < today),
        None,
    )
    if current is None:
        return ContractStatus.ACTIVE

    tier = classify_lateness(days_late(current.due_at, today))
    if tier == LatenessTier.GRACE:
        return ContractStatus.LATE_NO_PENALTY
    if tier == LatenessTier.PENALTY:
        return ContractStatus.LATE_WITH_PENALTY
    return ContractStatus.DEFAULTED_AFTER_J12


def recompute_state(
    contract: Contract,
    payments: Sequence[Payment],
    today: date,
    refunds: Sequence[Refund] = (),
) -> Contract:
    """Return the contract with its cached status refreshed from the ledger."""
    status = derive_state(contract, payments, today, refunds)
    if status != contract.status:
        if not can_transition(contract.status, status):
            logger.warning(
                "Contract %s stored status %s drifted from ledger state %s",
                contract.contract_id,
                contract.status.value,
                status.value,
            )
        else:
            logger.debug(
                "Contract %s: %s -> %s", contract.contract_id, contract.status.value, status.value
            )
        return replace(contract, status=status)
    return contract
