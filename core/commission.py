"""Seller commission calculation from line items and product rules."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping

from core.config import CrediarioSettings
from core.models import CommissionType, Order, Product


def item_commission(
    price_cents: int,
    quantity: int,
    product: Product | None,
    settings: CrediarioSettings,
) -> Decimal:
    """
    Commission for one line item, in (fractional) cents.

    Products without an explicit commission value fall back to the default
    percentage. A fixed value is in currency units per unit sold.
    """
    if product is not None and product.has_explicit_commission:
        commission_type = product.commission_type or CommissionType.PERCENTAGE
        value = product.commission_value
    else:
        commission_type = CommissionType.PERCENTAGE
        value = settings.default_commission_percentage

    if commission_type == CommissionType.FIXED:
        return value * 100 * quantity

    return Decimal(price_cents * quantity) * value / 100


def calculate_commission(
    order: Order,
    products: Mapping[str, Product],
    settings: CrediarioSettings,
) -> int:
    """
    Commission owed for an order, in cents.

    A manual commission always wins. Orders without a seller earn nothing.
    """
    if order.is_commission_manual:
        return order.commission_cents

    if not order.seller_id:
        return 0

    total = sum(
        (
            item_commission(item.price_cents, item.quantity, products.get(item.product_id), settings)
            for item in order.items
        ),
        Decimal(0),
    )
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
