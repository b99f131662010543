"""Installment schedule generation."""

import calendar
from datetime import date

from core.models import Installment, InstallmentStatus
from core.money import split_cents


def add_months(start: date, months: int) -> date:
    """
    Advance a date by calendar months, clamping to the last valid day.

    Jan 31 + 1 month is Feb 28 (or Feb 29 in a leap year), never Mar 3.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def build_schedule(
    financed_cents: int,
    count: int,
    first_due_date: date,
    start_number: int = 1,
) -> list[Installment]:
    """
    Build ``count`` pending installments covering ``financed_cents``.

    Installment k (0-based) is due ``first_due_date`` + k months and is
    numbered ``start_number + k``. Amounts come from split_cents, so they
    sum exactly to the financed total.

    Raises:
        InvalidAmountError: If count < 1 or financed_cents <= 0
    """
    amounts = split_cents(financed_cents, count)
    return [
        Installment(
            installment_number=start_number + index,
            amount_cents=amount,
            due_date=add_months(first_due_date, index),
            status=InstallmentStatus.PENDING,
            paid_amount_cents=0,
            payments=[],
        )
        for index, amount in enumerate(amounts)
    ]
