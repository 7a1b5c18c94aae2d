"""Early and final withdrawal payouts."""

import logging
from datetime import date, timedelta
from typing import Sequence

from caisse_engine.engine.bonus import bonus_base, compute_bonus_amount, resolve_bonus_rate
from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.exceptions import RefundNotAvailableError
from caisse_engine.models import BonusSettings, Contract, Payment, RefundAmounts, RefundType

logger = logging.getLogger(__name__)

FINAL_REFUND_WINDOW_DAYS = 30
EARLY_REFUND_WINDOW_DAYS = 45


def _paid_payments(contract: Contract, payments: Sequence[Payment]) -> list[Payment]:
    paid = [
        p
        for p in payments
        if p.contract_id == contract.contract_id
        and p.is_paid
        and 0 <= p.due_month_index < contract.duration_months
    ]
    return sorted(paid, key=lambda p: p.due_month_index)


def compute_refund(
    contract: Contract,
    payments: Sequence[Payment],
    refund_type: RefundType,
    settings: BonusSettings | None,
    requested_at: date | None = None,
) -> RefundAmounts:
    """Compute the payout for a withdrawal request.

    Bonus is earned installment by installment at that month's rate, never
    at a single blended rate. The ledger is not modified.

    Parameters
    ----------
    contract : Contract
        Contract terms.
    payments : Sequence[Payment]
        Ledger entries for the contract.
    refund_type : RefundType
        ``EARLY`` counts installments paid on or before ``requested_at``;
        ``FINAL`` requires every installment paid.
    settings : BonusSettings | None
        Settings version the contract is priced with.
    requested_at : date | None
        Early-withdrawal request date (``None`` counts every paid
        installment).

    Returns
    -------
    RefundAmounts
        Nominal and bonus amounts, rounded.

    Raises
    ------
    RefundNotAvailableError
        When the ledger does not allow this refund type.
    """
    paid = _paid_payments(contract, payments)

    if refund_type == RefundType.FINAL:
        if len(paid) < contract.duration_months:
            raise RefundNotAvailableError(
                f"Final refund unavailable for {contract.contract_id}: "
                f"{len(paid)}/{contract.duration_months} installments paid"
            )
        counted = paid
    else:
        if len(paid) == contract.duration_months:
            raise RefundNotAvailableError(
                f"All installments of {contract.contract_id} are paid; request a final refund"
            )
        counted = [p for p in paid if requested_at is None or p.paid_at <= requested_at]
        if not counted:
            raise RefundNotAvailableError(
                f"Early withdrawal unavailable for {contract.contract_id}: no installment paid"
            )

    nominal = sum((to_decimal(p.amount) for p in counted), to_decimal(0))
    bonus = 0
    for payment in counted:
        rate = resolve_bonus_rate(contract.caisse_type, payment.due_month_index, settings)
        bonus += compute_bonus_amount(rate.rate_percent, bonus_base(contract, payment.amount))

    result = RefundAmounts(
        refund_type=refund_type,
        amount_nominal=custom_round(nominal),
        amount_bonus=bonus,
        installments_counted=tuple(p.due_month_index for p in counted),
    )
    logger.debug(
        "%s refund for %s: nominal=%d bonus=%d over %d installments",
        refund_type.value,
        contract.contract_id,
        result.amount_nominal,
        result.amount_bonus,
        len(counted),
    )
    return result


def refund_deadline(
    contract: Contract,
    refund_type: RefundType,
    requested_at: date,
    final_window_days: int = FINAL_REFUND_WINDOW_DAYS,
    early_window_days: int = EARLY_REFUND_WINDOW_DAYS,
) -> date:
    """Date by which the association must pay the refund out."""
    if refund_type == RefundType.FINAL:
        return contract.end_date + timedelta(days=final_window_days)
    return requested_at + timedelta(days=early_window_days)
