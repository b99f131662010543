"""Product catalog models, as far as the installment core needs them."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class CommissionType(str, Enum):
    """How a product's commission value is applied to a line item."""

    FIXED = "fixed"  # Currency units per unit sold
    PERCENTAGE = "percentage"  # Percent of price * quantity


class Product(BaseModel):
    """Catalog product with its installment cap and commission rule."""

    id: str
    name: str
    price_cents: int = Field(0, ge=0)
    max_installments: int | None = Field(None, ge=1)
    commission_type: CommissionType | None = None
    commission_value: Decimal | None = Field(None, ge=0)

    model_config = {"from_attributes": True}

    @property
    def has_explicit_commission(self) -> bool:
        return self.commission_value is not None
