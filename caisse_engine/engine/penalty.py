"""Late-payment classification and penalty computation."""

from datetime import date
from decimal import Decimal

from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.exceptions import InstallmentDefaultedError
from caisse_engine.models import LatenessTier, PenaltyRules

# Fixed policy: J+1..J+3 tolerated, J+4..J+12 penalised, default after J+12
GRACE_DAYS = 3
DEFAULT_AFTER_DAYS = 12

# Credit penalties accrue per day over a 30-day month
CREDIT_PENALTY_DAYS_BASIS = 30


def days_late(due_at: date, evaluation_date: date) -> int:
    """Whole days elapsed past the due date (0 when not late)."""
    return max(0, (evaluation_date - due_at).days)


def classify_lateness(days: int) -> LatenessTier:
    """Map a number of late days to its tier."""
    if days <= 0:
        return LatenessTier.ON_TIME
    if days <= GRACE_DAYS:
        return LatenessTier.GRACE
    if days <= DEFAULT_AFTER_DAYS:
        return LatenessTier.PENALTY
    return LatenessTier.DEFAULT


def tier_amount(rules: PenaltyRules, days: int, monthly_amount: Decimal) -> Decimal:
    """Unrounded penalty for ``days`` late under ``rules``.

    Only meaningful in the penalty tier; callers check the tier first.
    """
    if rules.steps:
        total = Decimal("0")
        for day in range(GRACE_DAYS + 1, days + 1):
            offset = day - GRACE_DAYS
            for step in rules.steps:
                if step.from_day <= offset <= step.to_day:
                    total += to_decimal(step.amount_per_day)
                    break
        return total

    if rules.per_day_percent is not None:
        return to_decimal(monthly_amount) * to_decimal(rules.per_day_percent) / 100 * days

    return Decimal("0")


def compute_penalty(
    due_at: date,
    evaluation_date: date,
    monthly_amount: Decimal,
    rules: PenaltyRules | None,
) -> int:
    """Penalty owed on an installment evaluated at ``evaluation_date``.

    Parameters
    ----------
    due_at : date
        Installment due date.
    evaluation_date : date
        Payment date (or "today" for an unpaid installment).
    monthly_amount : Decimal
        Contract monthly amount the rate applies to.
    rules : PenaltyRules | None
        Tier-rate lookup from the settings version; ``None`` charges nothing.

    Returns
    -------
    int
        Rounded penalty, 0 on time and within the grace window.

    Raises
    ------
    InstallmentDefaultedError
        When the installment is more than 12 days late.
    """
    days = days_late(due_at, evaluation_date)
    tier = classify_lateness(days)

    if tier == LatenessTier.DEFAULT:
        raise InstallmentDefaultedError(days)
    if tier != LatenessTier.PENALTY or rules is None:
        return 0

    return custom_round(tier_amount(rules, days, monthly_amount))


def compute_credit_penalty(days: int, installment_amount: Decimal) -> int:
    """Late penalty on a credit installment: ``days * installment / 30``."""
    if days <= 0:
        return 0
    return custom_round(Decimal(days) * to_decimal(installment_amount) / CREDIT_PENALTY_DAYS_BASIS)
