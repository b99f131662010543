"""
Per-installment payment ledger.

Payments are append-only events. paid_amount, status and payment_date are
always derived from the list of payments against the installment amount.
All functions return new objects; inputs are never mutated.
"""

import logging

from core.exceptions import InvalidAmountError, NotFoundError
from core.models import Installment, InstallmentStatus, Order, Payment

logger = logging.getLogger(__name__)


def derive_status(amount_cents: int, paid_cents: int) -> InstallmentStatus:
    """Paid once the paid sum covers the amount, Partial while in between."""
    if paid_cents >= amount_cents:
        return InstallmentStatus.PAID
    if paid_cents > 0:
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING


def find_installment(order: Order, installment_number: int) -> Installment:
    """
    Locate an installment by number.

    Raises:
        NotFoundError: If the order has no such installment
    """
    for installment in order.installment_details:
        if installment.installment_number == installment_number:
            return installment
    raise NotFoundError(f"Installment {installment_number} not found on order {order.id}")


def replace_installment(order: Order, updated: Installment) -> Order:
    """Return a copy of the order with one installment swapped in by number."""
    details = [
        updated if i.installment_number == updated.installment_number else i
        for i in order.installment_details
    ]
    return order.model_copy(update={"installment_details": details})


def refresh_installment(installment: Installment, amount_cents: int | None = None) -> Installment:
    """
    Recompute derived fields after the amount or payment list changed.

    payment_date is stamped from the latest payment the first time the
    installment becomes Paid, and cleared whenever it stops being Paid.
    """
    amount = installment.amount_cents if amount_cents is None else amount_cents
    paid = sum(p.amount_cents for p in installment.payments)
    status = derive_status(amount, paid)

    payment_date = installment.payment_date
    if status != InstallmentStatus.PAID:
        payment_date = None
    elif payment_date is None and installment.payments:
        payment_date = installment.payments[-1].paid_at

    return installment.model_copy(update={
        "amount_cents": amount,
        "paid_amount_cents": paid,
        "status": status,
        "payment_date": payment_date,
    })


def apply_payment(installment: Installment, payment: Payment) -> Installment:
    """
    Append a payment to an installment's ledger.

    Recording a payment id that is already on the ledger is a no-op.
    Overpayment is accepted; the surplus is not tracked as credit.

    Raises:
        InvalidAmountError: If the payment amount is not positive
    """
    if payment.amount_cents <= 0:
        raise InvalidAmountError(f"Payment amount must be positive, got {payment.amount_cents} cents")

    if any(p.id == payment.id for p in installment.payments):
        logger.info(
            "Payment %s already recorded on installment %s, skipping",
            payment.id, installment.installment_number,
        )
        return installment

    appended = installment.model_copy(update={"payments": [*installment.payments, payment]})
    return refresh_installment(appended)


def remove_payment(installment: Installment, payment_id: str) -> Installment:
    """
    Remove a payment from an installment's ledger and recompute its state.

    Raises:
        NotFoundError: If the payment id is not on this installment
    """
    remaining = [p for p in installment.payments if p.id != payment_id]
    if len(remaining) == len(installment.payments):
        raise NotFoundError(
            f"Payment {payment_id} not found on installment {installment.installment_number}"
        )

    return refresh_installment(installment.model_copy(update={"payments": remaining}))


def record_payment(order: Order, installment_number: int, payment: Payment) -> Order:
    """Record a payment against one installment of an order."""
    installment = find_installment(order, installment_number)
    return replace_installment(order, apply_payment(installment, payment))


def reverse_payment(order: Order, installment_number: int, payment_id: str) -> Order:
    """Reverse one recorded payment on an installment of an order."""
    installment = find_installment(order, installment_number)
    return replace_installment(order, remove_payment(installment, payment_id))
