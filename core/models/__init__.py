"""Core domain models."""

from core.models.actor import Actor
from core.models.installment import Installment, InstallmentStatus, Payment
from core.models.order import Order, OrderCreate, OrderItem, OrderStatus
from core.models.product import Product, CommissionType
from core.models.commission import CommissionPayment, CommissionPaymentCreate, SellerCommissionSummary

__all__ = [
    # Actor
    "Actor",
    # Installment
    "Installment", "InstallmentStatus", "Payment",
    # Order
    "Order", "OrderCreate", "OrderItem", "OrderStatus",
    # Product
    "Product", "CommissionType",
    # Commission
    "CommissionPayment", "CommissionPaymentCreate", "SellerCommissionSummary",
]
