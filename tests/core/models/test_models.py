"""Tests for core domain models - constraints and derived properties."""

import pytest
from pydantic import ValidationError


class TestOrderCreate:

    def test_requires_at_least_one_item(self):
        from core.models import OrderCreate

        with pytest.raises(ValidationError, match="items"):
            OrderCreate(items=[], payment_method="Crediário")

    def test_rejects_negative_discount(self):
        from core.models import OrderCreate, OrderItem

        with pytest.raises(ValidationError, match="discount_cents"):
            OrderCreate(
                items=[OrderItem(product_id="p", name="Mesa", price_cents=1000)],
                payment_method="Pix",
                discount_cents=-1,
            )

    def test_commission_absent_unless_overridden(self):
        from core.models import OrderCreate, OrderItem

        data = OrderCreate(items=[OrderItem(product_id="p", name="Mesa", price_cents=1000)], payment_method="Pix")
        assert data.commission_cents is None


class TestInstallment:

    def test_number_starts_at_one(self):
        from core.models import Installment

        with pytest.raises(ValidationError):
            Installment(installment_number=0, amount_cents=1000, due_date="2024-03-15")

    def test_balance_never_negative(self):
        from core.models import Installment

        inst = Installment(installment_number=1, amount_cents=1000, due_date="2024-03-15", paid_amount_cents=1500)
        assert inst.balance_cents == 0

    def test_payment_is_frozen(self, make_payment):
        payment = make_payment(1000)
        with pytest.raises(ValidationError):
            payment.amount_cents = 2000

    def test_payment_gets_generated_id(self, make_payment):
        assert make_payment(1000).id != make_payment(1000).id


class TestOrder:

    def test_validates_from_jsonb_row(self, order):
        """Rows come back with nested JSON for items and the schedule."""
        from core.models import Order

        row = order.model_dump(mode="json")
        restored = Order.model_validate(row)

        assert restored == order

    def test_financial_properties(self, make_order):
        order = make_order(down_payment_cents=20000)

        assert order.financed_cents == 80000
        assert order.scheduled_cents == 80000
        assert order.paid_cents == 0
        assert not order.is_trashed

    def test_item_total(self):
        from core.models import OrderItem

        assert OrderItem(product_id="p", name="Cadeira", price_cents=2500, quantity=4).total_cents == 10000
