"""Installment (parcela) domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
R$ 10,00 = 1000 cents.
"""

from datetime import date, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


class InstallmentStatus(str, Enum):
    """Installment payment status, derived from paid vs owed amount."""

    PENDING = "Pendente"
    PARTIAL = "Parcial"
    PAID = "Pago"


class Payment(BaseModel):
    """One recorded payment event against an installment. Immutable."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    amount_cents: int
    paid_at: datetime
    method: str = Field("Dinheiro", max_length=50)
    received_by: str | None = None

    model_config = {"frozen": True}


class Installment(BaseModel):
    """One scheduled due within an order's credit plan."""

    installment_number: int = Field(..., ge=1)
    amount_cents: int = Field(..., ge=0)
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_amount_cents: int = 0
    payments: list[Payment] = Field(default_factory=list)
    payment_date: datetime | None = None

    @property
    def balance_cents(self) -> int:
        """Amount still owed. Never negative; overpayment is not surfaced."""
        return max(self.amount_cents - self.paid_amount_cents, 0)

    @property
    def has_payments(self) -> bool:
        return bool(self.payments)

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID
