"""
Money helpers -- precision and rounding for fines and payments.

Responsibility:
    Centralizes cent precision and half-up rounding so every fine amount is
    computed, validated and stored the same way.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Monetary amounts are Decimal with two decimal places.
    - ``round_money()`` is the ONLY sanctioned rounding function for money.
    - No floats anywhere on the money path; ``to_money()`` rejects them.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal("0.01")
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")


def round_money(amount: Decimal) -> Decimal:
    """Round a Decimal to cents using ROUND_HALF_UP."""
    return amount.quantize(MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal into a Decimal.

    Raises:
        TypeError: if ``value`` is a float (binary floats are never money).
        ValueError: if ``value`` is not a finite number.
    """
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats; pass Decimal or str")
    if isinstance(value, bool):
        raise TypeError("Monetary values must not be booleans")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return result


def has_sub_cent_precision(amount: Decimal) -> bool:
    """True when ``amount`` carries digits below one cent."""
    return amount != amount.quantize(MONEY_QUANTUM)
