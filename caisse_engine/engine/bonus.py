"""Bonus rate resolution against a versioned settings snapshot."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from caisse_engine.engine.rounding import custom_round, to_decimal
from caisse_engine.exceptions import ConfigurationError
from caisse_engine.models import BonusSettings, CaisseType, Contract

logger = logging.getLogger(__name__)

# M1-M3 never earn a bonus
BONUS_GRACE_MONTHS = 3

ZERO = Decimal("0")


@dataclass(frozen=True)
class BonusRate:
    """Resolved bonus percentage for one month index."""

    rate_percent: Decimal
    no_active_settings: bool = False


def resolve_bonus_rate(
    caisse_type: CaisseType,
    month_index: int,
    settings: BonusSettings | None,
) -> BonusRate:
    """Return the bonus percentage for a month of a contract.

    Parameters
    ----------
    caisse_type : CaisseType
        Product variant of the contract.
    month_index : int
        0-based installment index.
    settings : BonusSettings | None
        Settings snapshot to read from. Superseded versions are accepted so
        historical contracts replay against the version they were created
        with.

    Returns
    -------
    BonusRate
        Zero with ``no_active_settings`` set when there is no settings
        record or its table has no entry for the month.
    """
    if month_index < BONUS_GRACE_MONTHS:
        return BonusRate(ZERO)

    if settings is None:
        return BonusRate(ZERO, no_active_settings=True)

    if settings.caisse_type != caisse_type:
        raise ConfigurationError(
            f"Settings {settings.settings_id} are for {settings.caisse_type.value}, "
            f"not {caisse_type.value}"
        )

    rate = settings.bonus_table.get(month_index)
    if rate is None:
        logger.debug(
            "No bonus entry for M%d in settings %s", month_index + 1, settings.settings_id
        )
        return BonusRate(ZERO, no_active_settings=True)

    return BonusRate(to_decimal(rate))


def bonus_base(contract: Contract, paid_amount: Decimal) -> Decimal:
    """Amount the bonus rate applies to for one paid installment.

    Daily savings earn on what was collected up to the monthly target;
    free savings earn on everything collected.
    """
    monthly = to_decimal(contract.monthly_amount)
    paid = to_decimal(paid_amount)
    if contract.caisse_type == CaisseType.JOURNALIERE:
        return min(paid, monthly)
    if contract.caisse_type == CaisseType.LIBRE:
        return paid
    return monthly


def compute_bonus_amount(rate_percent: Decimal, base: Decimal) -> int:
    """Bonus credited for one installment, rounded."""
    return custom_round(to_decimal(base) * to_decimal(rate_percent) / 100)
