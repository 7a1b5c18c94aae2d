"""Savings schedule and bonus projection."""

import logging
from datetime import date
from decimal import Decimal

from caisse_engine.engine.bonus import BONUS_GRACE_MONTHS, compute_bonus_amount, resolve_bonus_rate
from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.engine.state import installment_due_dates
from caisse_engine.models import (
    BonusSettings,
    CaisseType,
    Contract,
    SavingsSchedule,
    ScheduleRow,
)

logger = logging.getLogger(__name__)

NO_BONUS_LABEL = "—"

SIMULATION_CONTRACT_ID = "simulation"


def bonus_effective_label(month_index: int) -> str:
    """Human-facing marker of when the bonus starts applying."""
    if month_index < BONUS_GRACE_MONTHS:
        return NO_BONUS_LABEL
    return f"M{month_index + 1}"


def build_schedule(contract: Contract, settings: BonusSettings | None) -> SavingsSchedule:
    """Project every installment of a savings contract with its bonus.

    Pure: the same contract and settings snapshot always produce the same
    table, whether the contract is persisted or a simulation input.

    Parameters
    ----------
    contract : Contract
        Contract terms.
    settings : BonusSettings | None
        Settings version to price the bonus with.

    Returns
    -------
    SavingsSchedule
        Rows plus exact totals; ``no_active_settings`` is set when the bonus
        could not be priced for some month.
    """
    amount = custom_round(contract.monthly_amount)
    rows = []
    missing = settings is None

    for month_index, due_at in enumerate(installment_due_dates(contract)):
        rate = resolve_bonus_rate(contract.caisse_type, month_index, settings)
        missing = missing or rate.no_active_settings
        rows.append(
            ScheduleRow(
                month_index=month_index,
                due_at=due_at,
                amount=amount,
                bonus_rate_percent=rate.rate_percent,
                bonus_amount=compute_bonus_amount(rate.rate_percent, Decimal(amount)),
                bonus_effective_label=bonus_effective_label(month_index),
            )
        )

    if missing:
        logger.warning(
            "No bonus configuration for some months of %s contract %s; bonus shown as 0",
            contract.caisse_type.value,
            contract.contract_id,
        )

    return SavingsSchedule(
        rows=tuple(rows),
        total_amount=sum(row.amount for row in rows),
        total_bonus=sum(row.bonus_amount for row in rows),
        no_active_settings=missing,
    )


def simulate_schedule(
    caisse_type: CaisseType,
    monthly_amount: Decimal | int,
    duration_months: int,
    start_date: date,
    settings: BonusSettings | None,
) -> SavingsSchedule:
    """Pre-contract simulation: price a hypothetical contract."""
    contract = Contract(
        contract_id=SIMULATION_CONTRACT_ID,
        member_id="",
        caisse_type=caisse_type,
        monthly_amount=to_decimal(monthly_amount),
        duration_months=duration_months,
        start_date=start_date,
    )
    return build_schedule(contract, settings)
