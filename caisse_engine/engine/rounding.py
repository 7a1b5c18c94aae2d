"""Money rounding rule shared by every engine output.

Half-up on the fractional part measured from the floor:
``f = value - floor(value)``; ``f < 0.5`` rounds down, anything else up.
Because ``f`` is taken from the floor it lies in ``[0, 1)`` for negative
values too, so ``-0.1`` rounds to ``0`` and ``-0.6`` to ``-1``.
"""

from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal

HALF = Decimal("0.5")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a numeric input to Decimal (floats go through ``str``)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def custom_round(value: Decimal | int | float | str) -> int:
    """Round a money amount to an integer with the caisse rule."""
    amount = to_decimal(value)
    floor = amount.to_integral_value(rounding=ROUND_FLOOR)
    if amount - floor < HALF:
        return int(floor)
    return int(amount.to_integral_value(rounding=ROUND_CEILING))
