"""
Cent-exact money helpers.

Amounts travel as integer cents. Decimal is only used when converting from
or to major currency units at the edges.
"""

from decimal import Decimal, ROUND_HALF_UP

from core.exceptions import InvalidAmountError

_CENT = Decimal("0.01")


def to_cents(amount: Decimal | int | str) -> int:
    """Convert a major-unit amount to integer cents, rounding half up."""
    value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a major-unit Decimal with two places."""
    return (Decimal(cents) / 100).quantize(_CENT)


def split_cents(total_cents: int, count: int) -> list[int]:
    """
    Split a cent total into ``count`` integer parts that sum exactly to it.

    The remainder is front-loaded: the first ``total_cents % count`` parts get
    one extra cent.

    Raises:
        InvalidAmountError: If count < 1 or total_cents <= 0
    """
    if count < 1:
        raise InvalidAmountError(f"Installment count must be at least 1, got {count}")
    if total_cents <= 0:
        raise InvalidAmountError(f"Amount to finance must be positive, got {total_cents} cents")

    base, remainder = divmod(total_cents, count)
    return [base + 1 if i < remainder else base for i in range(count)]


def split_into_installments(total_amount: Decimal | int | str, count: int) -> list[int]:
    """
    Split a major-unit total into ``count`` installment amounts in cents.

    Example:
        split_into_installments(Decimal("100.00"), 3) -> [3334, 3333, 3333]
    """
    return split_cents(to_cents(total_amount), count)
