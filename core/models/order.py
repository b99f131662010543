"""Order domain models.

Items and the installment schedule are stored as nested JSONB on the order row.
All amounts are in cents.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from core.models.installment import Installment


class OrderStatus(str, Enum):
    """Order lifecycle status. DELETED means the order sits in the trash."""

    PROCESSING = "Processando"
    SHIPPED = "Enviado"
    DELIVERED = "Entregue"
    CANCELED = "Cancelado"
    DELETED = "Excluído"


class OrderItem(BaseModel):
    """One line item as captured at purchase time."""

    product_id: str
    name: str = Field(..., max_length=200)
    price_cents: int = Field(..., ge=0)
    quantity: int = Field(1, ge=1)

    @property
    def total_cents(self) -> int:
        return self.price_cents * self.quantity


class OrderCreate(BaseModel):
    """Data required to create an order (checkout or manual admin order)."""

    items: list[OrderItem] = Field(..., min_length=1)
    payment_method: str = Field(..., max_length=50)
    discount_cents: int = Field(0, ge=0)
    down_payment_cents: int = Field(0, ge=0)
    installments: int = Field(0, ge=0)
    first_due_date: date | None = None
    customer_id: str | None = None
    customer_name: str | None = Field(None, max_length=200)
    seller_id: str | None = None
    seller_name: str | None = None
    commission_cents: int | None = Field(None, ge=0)  # Set only for a manual override


class Order(BaseModel):
    """Full order entity as stored."""

    id: str
    customer_id: str | None = None
    customer_name: str | None = None
    items: list[OrderItem]
    subtotal_cents: int
    discount_cents: int = 0
    down_payment_cents: int = 0
    total_cents: int
    payment_method: str
    installments: int = 0
    installment_value_cents: int = 0
    installment_details: list[Installment] = Field(default_factory=list)
    first_due_date: date | None = None
    status: OrderStatus = OrderStatus.PROCESSING
    seller_id: str | None = None
    seller_name: str | None = None
    commission_cents: int = 0
    commission_paid: bool = False
    is_commission_manual: bool = False
    commission_date: datetime | None = None
    gateway_payment_id: str | None = None
    gateway_status: str | None = None
    gateway_payload: dict[str, Any] | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def financed_cents(self) -> int:
        """Amount that the installment schedule must cover."""
        return self.total_cents - self.down_payment_cents

    @property
    def scheduled_cents(self) -> int:
        """Sum of all installment amounts currently on the schedule."""
        return sum(i.amount_cents for i in self.installment_details)

    @property
    def paid_cents(self) -> int:
        """Sum of all recorded installment payments."""
        return sum(i.paid_amount_cents for i in self.installment_details)

    @property
    def is_trashed(self) -> bool:
        return self.status == OrderStatus.DELETED
