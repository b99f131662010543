"""Commission settlement models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class CommissionPaymentCreate(BaseModel):
    """Data required to settle a seller's commissions."""

    seller_id: str
    seller_name: str = Field(..., max_length=200)
    order_ids: list[str] = Field(..., min_length=1)
    period: str = Field(..., max_length=100)
    amount_cents: int | None = Field(None, ge=0)  # Must match the orders' sum when given


class CommissionPayment(BaseModel):
    """One settlement batch covering a set of orders."""

    id: UUID
    seller_id: str
    seller_name: str
    amount_cents: int
    period: str
    payment_date: datetime
    order_ids: list[str]
    created_by: str | None = None

    model_config = {"from_attributes": True}


class SellerCommissionSummary(BaseModel):
    """Unpaid commission owed to one seller."""

    seller_id: str
    seller_name: str | None
    total_cents: int
    count: int
    order_ids: list[str]
