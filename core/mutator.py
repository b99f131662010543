"""
Financial edits on an existing order.

Each transition takes an Order and returns a new Order; nothing is written
here. Schedule-affecting transitions keep the sum of installment amounts
equal to total - down payment. Installments that already carry payments are
frozen: their amounts, due dates and payments are kept and only the
pending ones are regenerated.
"""

import logging
from datetime import date
from typing import Mapping

from core.config import CrediarioSettings
from core.exceptions import (
    InstallmentLimitExceededError,
    InvalidAmountError,
    InvalidStatusTransitionError,
)
from core.ledger import find_installment, refresh_installment, replace_installment
from core.models import Installment, Order, OrderItem, OrderStatus, Product
from core.schedule import add_months, build_schedule

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = {
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELED,
}


def max_installments_for(
    items: list[OrderItem],
    products: Mapping[str, Product],
    settings: CrediarioSettings,
) -> int:
    """Smallest installment cap among the order's products."""
    caps = []
    for item in items:
        product = products.get(item.product_id)
        if product is not None and product.max_installments is not None:
            caps.append(product.max_installments)
        else:
            caps.append(settings.default_max_installments)
    return min(caps) if caps else settings.default_max_installments


def change_discount(order: Order, discount_cents: int) -> Order:
    """
    Set a new discount. The schedule is not touched; regenerate explicitly.

    Raises:
        InvalidAmountError: If discount is negative, above the subtotal, or
            would leave the total below the down payment
    """
    if discount_cents < 0 or discount_cents > order.subtotal_cents:
        raise InvalidAmountError(
            f"Discount must be between 0 and {order.subtotal_cents} cents, got {discount_cents}"
        )

    total = order.subtotal_cents - discount_cents
    if total < order.down_payment_cents:
        raise InvalidAmountError("Discount would leave the total below the down payment")

    return order.model_copy(update={"discount_cents": discount_cents, "total_cents": total})


def register_down_payment(order: Order, down_payment_cents: int) -> Order:
    """
    Register a down payment (entrada). Regenerate the schedule afterwards.

    Raises:
        InvalidAmountError: If not positive or larger than the order total
    """
    if down_payment_cents <= 0:
        raise InvalidAmountError(f"Down payment must be positive, got {down_payment_cents} cents")
    if down_payment_cents > order.total_cents:
        raise InvalidAmountError("Down payment cannot exceed the order total")

    return order.model_copy(update={"down_payment_cents": down_payment_cents})


def reset_down_payment(order: Order) -> Order:
    return order.model_copy(update={"down_payment_cents": 0})


def _with_schedule(order: Order, details: list[Installment]) -> Order:
    return order.model_copy(update={
        "installment_details": details,
        "installments": len(details),
        "installment_value_cents": details[0].amount_cents if details else 0,
    })


def _first_open_due_date(
    frozen: list[Installment],
    pending: list[Installment],
    order: Order,
    fallback: date,
) -> date:
    if pending:
        return min(i.due_date for i in pending)
    if frozen:
        return add_months(max(i.due_date for i in frozen), 1)
    return order.first_due_date or fallback


def change_installment_count(
    order: Order,
    new_count: int,
    limit: int,
    fallback_first_due_date: date,
) -> Order:
    """
    Re-split the unpaid remainder into ``new_count`` pending installments.

    Installments with recorded payments keep their amount, due date and
    ledger. The remainder (financed total minus frozen amounts) is split
    over ``new_count`` new installments starting at the earliest pending
    due date. Numbering is rebuilt to stay contiguous and follow due dates,
    so a frozen installment due after the new ones is numbered after them.

    Raises:
        InvalidAmountError: If new_count < 1 or nothing is left to finance
        InstallmentLimitExceededError: If new_count exceeds ``limit``
    """
    if new_count < 1:
        raise InvalidAmountError(f"Installment count must be at least 1, got {new_count}")
    if new_count > limit:
        raise InstallmentLimitExceededError(new_count, limit)

    ordered = sorted(order.installment_details, key=lambda i: i.installment_number)
    frozen = [i for i in ordered if i.has_payments]
    pending = [i for i in ordered if not i.has_payments]

    remaining_cents = order.financed_cents - sum(i.amount_cents for i in frozen)
    if remaining_cents <= 0:
        raise InvalidAmountError(
            f"Order {order.id} has no unpaid balance left to split into installments"
        )

    start = _first_open_due_date(frozen, pending, order, fallback_first_due_date)
    regenerated = build_schedule(remaining_cents, new_count, start)

    # Carnê numbers follow due dates; stable sort keeps frozen first on a tie
    renumbered = [
        i.model_copy(update={"installment_number": n})
        for n, i in enumerate(sorted(frozen + regenerated, key=lambda i: i.due_date), start=1)
    ]

    logger.info(
        "Order %s: regenerated %d pending installments over %d cents (%d frozen)",
        order.id, new_count, remaining_cents, len(frozen),
    )

    updated = _with_schedule(order, renumbered)
    if not frozen:
        updated = updated.model_copy(update={"first_due_date": start})
    return updated


def regenerate_schedule(order: Order, limit: int, fallback_first_due_date: date) -> Order:
    """Rebuild pending installments after a discount or down payment change, keeping their count."""
    pending_count = sum(1 for i in order.installment_details if not i.has_payments)
    return change_installment_count(order, pending_count or 1, limit, fallback_first_due_date)


def change_installment_amount(order: Order, installment_number: int, amount_cents: int) -> Order:
    """
    Override one installment's amount (manual correction).

    The whole-order sum is not rebalanced; the caller keeps the order coherent.

    Raises:
        InvalidAmountError: If amount is negative
        NotFoundError: If the installment does not exist
    """
    if amount_cents < 0:
        raise InvalidAmountError(f"Installment amount cannot be negative, got {amount_cents} cents")

    installment = find_installment(order, installment_number)
    return replace_installment(order, refresh_installment(installment, amount_cents=amount_cents))


def shift_due_date(order: Order, installment_number: int, due_date: date) -> Order:
    installment = find_installment(order, installment_number)
    return replace_installment(order, installment.model_copy(update={"due_date": due_date}))


def update_payment_method(order: Order, payment_method: str) -> Order:
    """Change the payment method label. The schedule is left as is."""
    return order.model_copy(update={"payment_method": payment_method})


def update_status(order: Order, status: OrderStatus) -> Order:
    """
    Move an order among the active statuses.

    Raises:
        InvalidStatusTransitionError: If the order is in the trash, or the
            target is the trash (use move_to_trash)
    """
    if status not in ACTIVE_STATUSES:
        raise InvalidStatusTransitionError(f"Cannot set status {status.value} directly")
    if order.is_trashed:
        raise InvalidStatusTransitionError(f"Order {order.id} is in the trash; restore it first")
    return order.model_copy(update={"status": status})


def move_to_trash(order: Order) -> Order:
    """Soft delete. Installment data is kept so the order can be restored."""
    if order.is_trashed:
        raise InvalidStatusTransitionError(f"Order {order.id} is already in the trash")
    return order.model_copy(update={"status": OrderStatus.DELETED})


def restore(order: Order) -> Order:
    if not order.is_trashed:
        raise InvalidStatusTransitionError(f"Order {order.id} is not in the trash")
    return order.model_copy(update={"status": OrderStatus.PROCESSING})
