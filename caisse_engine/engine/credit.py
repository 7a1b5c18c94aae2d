"""Credit product simulations built on the amortization engine."""

import logging
import math
from datetime import date
from decimal import Decimal
from typing import Sequence

from dateutil.relativedelta import relativedelta

from caisse_engine.engine.amortization import (
    DEFAULT_MAX_DURATION,
    EPSILON,
    amortize,
    amortize_custom,
)
from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.exceptions import InvalidContractParametersError
from caisse_engine.models import (
    CreditSimulation,
    CreditType,
    GuarantorRow,
    PlannedPayment,
    ReferenceRow,
    ScheduleItem,
)

logger = logging.getLogger(__name__)

MAX_DURATION_BY_TYPE: dict[CreditType, int | None] = {
    CreditType.SPECIALE: 7,
    CreditType.AIDE: 3,
    CreditType.FIXE: None,
}

REFERENCE_MONTHS = 7
GUARANTOR_MONTHS = 7
DEFAULT_GUARANTOR_PERCENTAGE = Decimal("2")
MAX_GUARANTOR_PERCENTAGE = Decimal("5")


def duration_cap(credit_type: CreditType, max_duration: int | None = None) -> int:
    """Maximum number of installments a credit product allows.

    ``max_duration`` is the global amortization bound (120 by default); a
    product cap never exceeds it.
    """
    bound = DEFAULT_MAX_DURATION if max_duration is None else max_duration
    cap = MAX_DURATION_BY_TYPE[credit_type]
    return bound if cap is None else min(cap, bound)


def _settles(amount: Decimal, rate: Decimal, payment: int, months: int) -> bool:
    _, remaining, _ = amortize(amount, rate, payment, date.min, months)
    return remaining <= EPSILON


def minimum_monthly_payment(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    months: int,
) -> int:
    """Smallest whole installment that repays ``amount`` within ``months``.

    Binary search between one unit and a payment that settles in the first
    month.
    """
    principal = to_decimal(amount)
    rate = to_decimal(interest_rate_percent)
    if months <= 0:
        raise InvalidContractParametersError(f"months must be positive, got {months}")

    low = max(1, math.ceil(principal / months))
    high = max(low, math.ceil(principal * (1 + rate / 100)))
    while low < high:
        middle = (low + high) // 2
        if _settles(principal, rate, middle, months):
            high = middle
        else:
            low = middle + 1
    return low


def simulate_standard(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    monthly_payment: Decimal | int,
    first_payment_date: date,
    credit_type: CreditType = CreditType.FIXE,
    max_duration: int | None = None,
) -> CreditSimulation:
    """Simulate a credit repaid with a fixed installment.

    The simulation is invalid when the product's duration cap is reached
    with a balance left; the balance and the smallest installment that
    would fit the cap are then reported.
    """
    cap = duration_cap(credit_type, max_duration)
    items, remaining, total_paid = amortize(
        amount, interest_rate_percent, monthly_payment, first_payment_date, cap
    )
    settled = remaining <= EPSILON

    suggested = None
    if not settled:
        suggested = minimum_monthly_payment(amount, interest_rate_percent, cap)
        logger.info(
            "%s credit of %s not repaid in %d months; suggested installment %d",
            credit_type.value,
            amount,
            cap,
            suggested,
        )

    return CreditSimulation(
        credit_type=credit_type,
        amount=to_decimal(amount),
        interest_rate_percent=to_decimal(interest_rate_percent),
        monthly_payment=to_decimal(monthly_payment),
        first_payment_date=first_payment_date,
        schedule=tuple(items),
        duration=len(items),
        total_amount=custom_round(total_paid),
        is_valid=settled,
        remaining_at_max_duration=Decimal("0") if settled else remaining,
        suggested_monthly_payment=suggested,
    )


def simulate_proposed(
    amount: Decimal | int,
    duration: int,
    interest_rate_percent: Decimal | int | float,
    first_payment_date: date,
    credit_type: CreditType = CreditType.FIXE,
    max_duration: int | None = None,
) -> CreditSimulation:
    """Simulate a credit repaid in exactly ``duration`` months."""
    cap = duration_cap(credit_type, max_duration)
    if duration > cap:
        raise InvalidContractParametersError(
            f"Maximum duration for a {credit_type.value} credit is {cap} months"
        )

    payment = minimum_monthly_payment(amount, interest_rate_percent, duration)
    items, remaining, total_paid = amortize(
        amount, interest_rate_percent, payment, first_payment_date, duration
    )
    return CreditSimulation(
        credit_type=credit_type,
        amount=to_decimal(amount),
        interest_rate_percent=to_decimal(interest_rate_percent),
        monthly_payment=Decimal(payment),
        first_payment_date=first_payment_date,
        schedule=tuple(items),
        duration=len(items),
        total_amount=custom_round(total_paid),
        is_valid=remaining <= EPSILON,
    )


def simulate_custom(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    planned_payments: Sequence[PlannedPayment],
    first_payment_date: date,
    credit_type: CreditType = CreditType.FIXE,
    max_duration: int | None = None,
) -> CreditSimulation:
    """Simulate a credit repaid with a different amount each month."""
    if not planned_payments:
        raise InvalidContractParametersError("At least one planned payment is required")

    items, remaining, total_paid = amortize_custom(
        amount, interest_rate_percent, planned_payments, first_payment_date
    )
    settled = remaining <= EPSILON
    within_cap = len(planned_payments) <= duration_cap(credit_type, max_duration)

    return CreditSimulation(
        credit_type=credit_type,
        amount=to_decimal(amount),
        interest_rate_percent=to_decimal(interest_rate_percent),
        monthly_payment=Decimal(custom_round(total_paid / len(items))) if items else Decimal("0"),
        first_payment_date=first_payment_date,
        schedule=tuple(items),
        duration=len(planned_payments),
        total_amount=custom_round(total_paid),
        is_valid=settled and within_cap,
        remaining_at_max_duration=Decimal("0") if settled else remaining,
    )


def build_reference_schedule(
    amount: Decimal | int,
    interest_rate_percent: Decimal | int | float,
    first_payment_date: date,
    months: int = REFERENCE_MONTHS,
) -> list[ReferenceRow]:
    """Equal-installment reference plan for a SPECIALE credit.

    The principal is compounded monthly over ``months`` and divided into
    equal rounded installments.
    """
    balance = to_decimal(amount)
    rate = to_decimal(interest_rate_percent) / 100
    for _ in range(months):
        balance += balance * rate

    payment = custom_round(balance / months)
    return [
        ReferenceRow(
            month=i + 1,
            date=first_payment_date + relativedelta(months=i),
            payment=payment,
        )
        for i in range(months)
    ]


def build_guarantor_remuneration(
    schedule: Sequence[ScheduleItem],
    amount: Decimal | int,
    percentage: Decimal | int | float = DEFAULT_GUARANTOR_PERCENTAGE,
) -> list[GuarantorRow]:
    """Monthly remuneration of a member guarantor.

    The guarantor earns ``percentage`` of the balance owed at the start of
    each month, for at most seven months.
    """
    rate = to_decimal(percentage)
    if rate < 0 or rate > MAX_GUARANTOR_PERCENTAGE:
        raise InvalidContractParametersError(
            f"Guarantor percentage must be between 0 and {MAX_GUARANTOR_PERCENTAGE}, got {rate}"
        )

    rows = []
    for index, item in enumerate(schedule[:GUARANTOR_MONTHS]):
        if index == 0:
            remaining_at_start = custom_round(amount)
        else:
            remaining_at_start = schedule[index - 1].remaining
        rows.append(
            GuarantorRow(
                month=item.month,
                date=item.date,
                monthly_payment=item.payment,
                remaining_at_start=remaining_at_start,
                guarantor_amount=custom_round(Decimal(remaining_at_start) * rate / 100),
            )
        )
    return rows
