"""Aggregates over orders for the financial dashboard and commission screens."""

from collections import defaultdict

from pydantic import BaseModel

from core.config import CrediarioSettings
from core.models import Order, OrderStatus, SellerCommissionSummary

_EXCLUDED_FROM_SALES = {OrderStatus.CANCELED, OrderStatus.DELETED}


class FinancialSummary(BaseModel):
    """Totals in cents across live orders."""

    total_sold_cents: int = 0
    total_received_cents: int = 0
    total_pending_cents: int = 0
    order_count: int = 0


def financial_summary(orders: list[Order], settings: CrediarioSettings) -> FinancialSummary:
    """
    Sum sold, received and pending amounts.

    Credit sales count the down payment plus recorded installment payments as
    received, and installment balances as pending. Any other payment method
    is treated as received in full. Canceled and trashed orders are skipped.
    """
    summary = FinancialSummary()
    for order in orders:
        if order.status in _EXCLUDED_FROM_SALES:
            continue

        summary.order_count += 1
        summary.total_sold_cents += order.total_cents

        if settings.is_credit_sale(order.payment_method) and order.installment_details:
            summary.total_received_cents += order.down_payment_cents + order.paid_cents
            summary.total_pending_cents += sum(i.balance_cents for i in order.installment_details)
        else:
            summary.total_received_cents += order.total_cents

    return summary


def pending_commissions_by_seller(orders: list[Order]) -> list[SellerCommissionSummary]:
    """Group unpaid commissions on delivered orders per seller, largest first."""
    grouped: dict[str, list[Order]] = defaultdict(list)
    for order in orders:
        if (
            order.status == OrderStatus.DELIVERED
            and not order.commission_paid
            and order.commission_cents > 0
            and order.seller_id
        ):
            grouped[order.seller_id].append(order)

    summaries = [
        SellerCommissionSummary(
            seller_id=seller_id,
            seller_name=seller_orders[0].seller_name,
            total_cents=sum(o.commission_cents for o in seller_orders),
            count=len(seller_orders),
            order_ids=[o.id for o in seller_orders],
        )
        for seller_id, seller_orders in grouped.items()
    ]
    return sorted(summaries, key=lambda s: s.total_cents, reverse=True)
