"""Shared test fixtures for the crediário test suite."""

from datetime import date, datetime, timezone
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from core.config import CrediarioSettings
from core.models import Actor, Order, OrderItem, OrderStatus, Payment, Product
from core.schedule import build_schedule


# =============================================================================
# TEST CONSTANTS
# =============================================================================

CREATED_AT = datetime(2024, 2, 15, 13, 0, tzinfo=timezone.utc)
CREDIT = "Crediário"


# =============================================================================
# BUILDERS
# =============================================================================


def _make_order(
    total_cents: int = 100000,
    installments: int = 10,
    first_due_date: date = date(2024, 3, 15),
    down_payment_cents: int = 0,
    order_id: str = "PED-20240215-0001",
    **overrides,
) -> Order:
    """A credit-sale order for one product, schedule already built."""
    schedule = build_schedule(total_cents - down_payment_cents, installments, first_due_date)
    fields = dict(
        id=order_id,
        customer_id="cust-1",
        customer_name="Maria Souza",
        items=[OrderItem(product_id="prod-1", name="Sofá Retrátil", price_cents=total_cents, quantity=1)],
        subtotal_cents=total_cents,
        discount_cents=0,
        down_payment_cents=down_payment_cents,
        total_cents=total_cents,
        payment_method=CREDIT,
        installments=len(schedule),
        installment_value_cents=schedule[0].amount_cents,
        installment_details=schedule,
        first_due_date=first_due_date,
        status=OrderStatus.PROCESSING,
        seller_id="seller-1",
        seller_name="João Vendedor",
        created_at=CREATED_AT,
        updated_at=CREATED_AT,
    )
    fields.update(overrides)
    return Order(**fields)


def _make_payment(amount_cents: int, payment_id: str | None = None, day: int = 1) -> Payment:
    data = {
        "amount_cents": amount_cents,
        "paid_at": datetime(2024, 4, day, 15, 0, tzinfo=timezone.utc),
        "received_by": "Caixa",
    }
    if payment_id is not None:
        data["id"] = payment_id
    return Payment(**data)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> CrediarioSettings:
    return CrediarioSettings()


@pytest.fixture
def actor() -> Actor:
    return Actor(id="user-1", name="Ana Gerente", role="admin")


@pytest.fixture
def order() -> Order:
    """R$ 1.000,00 financed over 10 monthly installments from 2024-03-15."""
    return _make_order()


@pytest.fixture
def product() -> Product:
    return Product(id="prod-1", name="Sofá Retrátil", price_cents=100000)


@pytest.fixture
def make_order():
    """Factory for credit-sale orders; keyword overrides go straight to Order."""
    return _make_order


@pytest.fixture
def make_payment():
    """Factory for payments dated April 2024."""
    return _make_payment
