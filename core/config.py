"""Crediário configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field


class CrediarioSettings(BaseModel):
    """
    Store-level settings for the installment core.

    Passed explicitly to services and to the pure functions that need them;
    nothing reads settings from global state.
    """

    credit_payment_method: str = Field(
        default="Crediário",
        description="Payment method label that marks an installment credit sale",
    )
    default_commission_percentage: Decimal = Field(
        default=Decimal("5"),
        description="Commission rate for products without an explicit commission value",
        ge=0,
        le=100,
    )
    default_max_installments: int = Field(
        default=10,
        description="Installment cap for products that do not define one",
        ge=1,
        le=48,
    )
    timezone: str = Field(
        default="America/Sao_Paulo",
        description="Store timezone, used to pick default due dates",
    )
    order_number_prefix: str = Field(
        default="PED",
        description="Prefix for generated order ids",
    )

    # Database
    db_connect_timeout_seconds: int = Field(
        default=10,
        description="Upper bound on establishing a database connection",
        ge=1,
        le=60,
    )
    db_statement_timeout_ms: int = Field(
        default=5000,
        description="Upper bound on any single statement",
        ge=100,
    )

    def is_credit_sale(self, payment_method: str | None) -> bool:
        return payment_method == self.credit_payment_method
