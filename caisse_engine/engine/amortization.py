"""Declining-balance amortization for credit contracts.

Interest is charged monthly on the balance still owed. Balances are carried
at full precision from one period to the next; only the values written
into a :class:`ScheduleItem` are rounded.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Sequence

from dateutil.relativedelta import relativedelta

from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.exceptions import InvalidContractParametersError, UnboundedAmortizationError
from caisse_engine.models import CreditContract, PlannedPayment, ScheduleItem

logger = logging.getLogger(__name__)

# Floating residue below one centime counts as settled
EPSILON = Decimal("0.01")
DEFAULT_MAX_DURATION = 120

ZERO = Decimal("0")


def _validate(amount: Decimal, rate: Decimal, max_duration: int) -> None:
    if amount <= 0:
        raise InvalidContractParametersError(f"amount must be positive, got {amount}")
    if rate < 0:
        raise InvalidContractParametersError(f"interest rate cannot be negative, got {rate}")
    if max_duration <= 0:
        raise InvalidContractParametersError(f"max_duration must be positive, got {max_duration}")


def _item(month: int, first_payment_date: date, payment: Decimal, interest: Decimal,
          balance_with_interest: Decimal, remaining: Decimal) -> ScheduleItem:
    return ScheduleItem(
        month=month,
        date=first_payment_date + relativedelta(months=month - 1),
        payment=custom_round(payment),
        interest=custom_round(interest),
        principal=custom_round(balance_with_interest),
        remaining=custom_round(remaining),
    )


def amortize(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    monthly_payment: Decimal | int,
    first_payment_date: date,
    max_duration: int | None = None,
) -> tuple[list[ScheduleItem], Decimal, Decimal]:
    """Run the amortization loop without judging the outcome.

    Returns
    -------
    tuple[list[ScheduleItem], Decimal, Decimal]
        Rounded schedule, unrounded balance left when the loop stopped and
        unrounded total paid.
    """
    principal = to_decimal(amount)
    rate = to_decimal(interest_rate_percent) / 100
    installment = to_decimal(monthly_payment)
    bound = DEFAULT_MAX_DURATION if max_duration is None else max_duration

    _validate(principal, rate, bound)
    if installment <= 0:
        raise InvalidContractParametersError(f"monthly_payment must be positive, got {installment}")

    items: list[ScheduleItem] = []
    remaining = principal
    total_paid = ZERO

    while remaining > EPSILON and len(items) < bound:
        interest = remaining * rate
        balance_with_interest = remaining + interest

        if balance_with_interest <= installment:
            payment = balance_with_interest
            remaining = ZERO
        else:
            payment = installment
            remaining = balance_with_interest - payment

        total_paid += payment
        items.append(
            _item(len(items) + 1, first_payment_date, payment, interest,
                  balance_with_interest, remaining)
        )

    return items, remaining, total_paid


def build_amortization_schedule(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    monthly_payment: Decimal | int,
    first_payment_date: date,
    max_duration: int | None = None,
) -> list[ScheduleItem]:
    """Build the repayment schedule of a credit.

    Parameters
    ----------
    amount : Decimal | int
        Principal disbursed.
    interest_rate_percent : Decimal | int | float
        Monthly interest rate in percent.
    monthly_payment : Decimal | int
        Target installment; the last one may be smaller.
    first_payment_date : date
        Due date of the first installment.
    max_duration : int | None
        Safety bound on the number of periods (default 120).

    Returns
    -------
    list[ScheduleItem]
        One item per period until the balance is settled.

    Raises
    ------
    UnboundedAmortizationError
        When the balance is still above 0.01 after ``max_duration``
        periods, typically because the installment barely covers interest.
    """
    bound = DEFAULT_MAX_DURATION if max_duration is None else max_duration
    items, remaining, _ = amortize(
        amount, interest_rate_percent, monthly_payment, first_payment_date, bound
    )
    if remaining > EPSILON:
        logger.warning(
            "Amortization of %s at %s%% with installment %s not settled after %d periods",
            amount,
            interest_rate_percent,
            monthly_payment,
            bound,
        )
        raise UnboundedAmortizationError(bound, remaining, items)
    return items


def schedule_for_contract(contract: CreditContract) -> list[ScheduleItem]:
    """Recompute a credit contract's schedule from its terms."""
    return build_amortization_schedule(
        contract.amount,
        contract.interest_rate_percent,
        contract.monthly_payment,
        contract.first_payment_date,
        contract.max_duration,
    )


def amortize_custom(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    planned_payments: Sequence[PlannedPayment],
    first_payment_date: date,
) -> tuple[list[ScheduleItem], Decimal, Decimal]:
    """Amortize with a planned amount per month instead of a fixed installment.

    A planned amount larger than what is owed settles the balance. Returns
    the same triple as :func:`amortize`.
    """
    principal = to_decimal(amount)
    rate = to_decimal(interest_rate_percent) / 100
    _validate(principal, rate, max(1, len(planned_payments)))

    items: list[ScheduleItem] = []
    remaining = principal
    total_paid = ZERO

    for planned in sorted(planned_payments, key=lambda p: p.month):
        if remaining <= EPSILON:
            break
        interest = remaining * rate
        balance_with_interest = remaining + interest
        payment = min(max(to_decimal(planned.amount), ZERO), balance_with_interest)
        remaining = balance_with_interest - payment

        total_paid += payment
        items.append(
            _item(len(items) + 1, first_payment_date, payment, interest,
                  balance_with_interest, remaining)
        )

    return items, remaining, total_paid


def build_custom_schedule(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    planned_payments: Sequence[PlannedPayment],
    first_payment_date: date,
) -> list[ScheduleItem]:
    """Schedule for a custom plan; an unsettled balance is reported as an error."""
    items, remaining, _ = amortize_custom(
        amount, interest_rate_percent, planned_payments, first_payment_date
    )
    if remaining > EPSILON:
        raise UnboundedAmortizationError(len(planned_payments), remaining, items)
    return items
