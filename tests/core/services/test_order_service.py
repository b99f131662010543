"""Tests for OrderService."""

from datetime import date, datetime, timezone

import pytest

from core.exceptions import (
    InstallmentLimitExceededError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    NotFoundError,
    TransactionFailedError,
)
from core.models import (
    CommissionType,
    InstallmentStatus,
    OrderCreate,
    OrderItem,
    OrderStatus,
    Payment,
    Product,
)
from core.schedule import add_months
from utils.timezone import now_utc, today_in


def _order_data(**overrides) -> OrderCreate:
    data = dict(
        items=[OrderItem(product_id="prod-1", name="Sofá Retrátil", price_cents=100000)],
        payment_method="Crediário",
        installments=10,
        first_due_date=date(2024, 3, 15),
        customer_id="cust-1",
        customer_name="Maria Souza",
    )
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def stored_order(db, order, product):
    db.put_product(product)
    db.put_order(order)
    return order


# =============================================================================
# CREATE
# =============================================================================


class TestCreate:

    def test_credit_sale_gets_schedule(self, order_service, db, actor, product, published_events):
        db.put_product(product)

        order = order_service.create(actor, _order_data())

        assert order.id.startswith("PED-")
        assert order.id.endswith("-0001")
        assert order.total_cents == 100000
        assert order.installments == 10
        assert [i.amount_cents for i in order.installment_details] == [10000] * 10
        assert order.installment_details[-1].due_date == date(2024, 12, 15)
        assert order.version == 1
        assert published_events() == ["OrderCreated"]
        assert db.audit_actions("order") == ["create"]

    def test_order_without_seller_earns_no_commission(self, order_service, db, actor, product):
        db.put_product(product)

        order = order_service.create(actor, _order_data(installments=2))

        assert order.seller_id is None
        assert order.seller_name is None
        assert order.commission_cents == 0
        assert db.orders[order.id]["seller_id"] is None
        assert db.orders[order.id]["commission_cents"] == 0

    def test_seller_earns_default_commission(self, order_service, db, actor, product):
        db.put_product(product)

        order = order_service.create(
            actor, _order_data(seller_id="seller-1", seller_name="João Vendedor")
        )

        assert order.seller_id == "seller-1"
        assert order.seller_name == "João Vendedor"
        assert order.commission_cents == 5000
        assert not order.is_commission_manual

    def test_manual_commission_kept(self, order_service, actor):
        order = order_service.create(actor, _order_data(commission_cents=777))

        assert order.commission_cents == 777
        assert order.is_commission_manual

    def test_discount_and_down_payment(self, order_service, actor):
        order = order_service.create(actor, _order_data(discount_cents=10000, down_payment_cents=30000, installments=3))

        assert order.total_cents == 90000
        assert order.financed_cents == 60000
        assert [i.amount_cents for i in order.installment_details] == [20000] * 3

    def test_order_ids_follow_daily_sequence(self, order_service, actor):
        first = order_service.create(actor, _order_data())
        second = order_service.create(actor, _order_data())

        assert first.id.endswith("-0001")
        assert second.id.endswith("-0002")
        assert first.id[:-4] == second.id[:-4]

    def test_order_id_uses_store_date(self, order_service, actor, monkeypatch):
        # 23:30 on Feb 29 in São Paulo is already Mar 1 in UTC
        monkeypatch.setattr(
            "utils.timezone.now_utc", lambda: datetime(2024, 3, 1, 2, 30, tzinfo=timezone.utc)
        )

        order = order_service.create(actor, _order_data())

        assert order.id == "PED-20240229-0001"

    def test_other_payment_methods_have_no_schedule(self, order_service, actor):
        order = order_service.create(actor, _order_data(payment_method="Pix", installments=0))

        assert order.installment_details == []
        assert order.installments == 0
        assert order.first_due_date is None

    def test_default_first_due_date_is_next_month(self, order_service, actor, settings):
        order = order_service.create(actor, _order_data(first_due_date=None, installments=2))

        assert order.first_due_date == add_months(today_in(settings.timezone), 1)

    def test_installment_cap_from_product(self, order_service, db, actor):
        db.put_product(Product(id="prod-1", name="Sofá Retrátil", max_installments=6))

        with pytest.raises(InstallmentLimitExceededError):
            order_service.create(actor, _order_data())

        assert db.orders == {}

    def test_discount_above_subtotal(self, order_service, actor):
        with pytest.raises(InvalidAmountError):
            order_service.create(actor, _order_data(discount_cents=100001))


# =============================================================================
# PAYMENTS
# =============================================================================


class TestRecordPayment:

    def test_full_payment_marks_paid_and_publishes(self, order_service, stored_order, actor, make_payment, published_events):
        updated = order_service.record_payment(actor, stored_order.id, 1, make_payment(10000))

        inst = updated.installment_details[0]
        assert inst.status == InstallmentStatus.PAID
        assert updated.version == stored_order.version + 1
        assert published_events() == ["InstallmentPaymentRecorded", "InstallmentPaid"]

    def test_partial_payment_publishes_only_recorded(self, order_service, stored_order, actor, make_payment, published_events):
        updated = order_service.record_payment(actor, stored_order.id, 1, make_payment(4000))

        assert updated.installment_details[0].status == InstallmentStatus.PARTIAL
        assert published_events() == ["InstallmentPaymentRecorded"]

    def test_receiver_defaults_to_actor(self, order_service, stored_order, actor):
        payment = Payment(amount_cents=10000, paid_at=now_utc())

        updated = order_service.record_payment(actor, stored_order.id, 1, payment)

        assert updated.installment_details[0].payments[0].received_by == actor.name

    def test_resending_same_payment_changes_nothing(self, order_service, db, stored_order, actor, make_payment, published_events):
        payment = make_payment(5000, "pay-1")
        first = order_service.record_payment(actor, stored_order.id, 1, payment)
        again = order_service.record_payment(actor, stored_order.id, 1, payment)

        assert again == first
        assert db.orders[stored_order.id]["version"] == first.version
        assert published_events() == ["InstallmentPaymentRecorded"]

    def test_every_write_is_audited(self, order_service, db, stored_order, actor, make_payment):
        order_service.record_payment(actor, stored_order.id, 1, make_payment(10000))

        entry = db.audit_log[-1]
        assert entry["action"] == "update"
        assert entry["user_id"] == actor.id
        assert "installment_details" in entry["changes"]

    def test_reverse_payment(self, order_service, stored_order, actor, make_payment):
        order_service.record_payment(actor, stored_order.id, 1, make_payment(10000, "pay-1"))

        updated = order_service.reverse_payment(actor, stored_order.id, 1, "pay-1")

        inst = updated.installment_details[0]
        assert inst.status == InstallmentStatus.PENDING
        assert inst.payment_date is None

    def test_unknown_order(self, order_service, actor, make_payment):
        with pytest.raises(NotFoundError):
            order_service.record_payment(actor, "PED-00000000-9999", 1, make_payment(1000))

    def test_concurrent_change_rejected(self, order_service, db, stored_order, actor, make_payment, monkeypatch):
        order_service.record_payment(actor, stored_order.id, 1, make_payment(10000))
        monkeypatch.setattr(order_service, "get_by_id", lambda order_id: stored_order)

        with pytest.raises(TransactionFailedError):
            order_service.record_payment(actor, stored_order.id, 2, make_payment(10000))

        assert db.orders[stored_order.id]["installment_details"][1]["payments"] == []


# =============================================================================
# FINANCIAL EDITS
# =============================================================================


class TestFinancialEdits:

    def test_change_installment_count_keeps_paid_installment(self, order_service, stored_order, actor, make_payment):
        order_service.record_payment(actor, stored_order.id, 1, make_payment(10000))

        updated = order_service.change_installment_count(actor, stored_order.id, 5)

        assert updated.installments == 6
        assert [i.amount_cents for i in updated.installment_details] == [10000] + [18000] * 5
        assert updated.installment_details[1].due_date == date(2024, 4, 15)
        assert updated.scheduled_cents == updated.financed_cents

    def test_change_installment_count_respects_product_cap(self, order_service, db, stored_order, actor):
        db.put_product(Product(id="prod-1", name="Sofá Retrátil", max_installments=6))

        with pytest.raises(InstallmentLimitExceededError):
            order_service.change_installment_count(actor, stored_order.id, 8)

    def test_discount_then_regenerate(self, order_service, stored_order, actor):
        order_service.change_discount(actor, stored_order.id, 10000)

        updated = order_service.regenerate_schedule(actor, stored_order.id)

        assert updated.total_cents == 90000
        assert [i.amount_cents for i in updated.installment_details] == [9000] * 10

    def test_down_payment_round_trip(self, order_service, stored_order, actor):
        with_entry = order_service.register_down_payment(actor, stored_order.id, 20000)
        assert with_entry.financed_cents == 80000

        reset = order_service.reset_down_payment(actor, stored_order.id)
        assert reset.down_payment_cents == 0

    def test_single_installment_edits(self, order_service, stored_order, actor):
        order_service.change_installment_amount(actor, stored_order.id, 2, 12000)
        updated = order_service.shift_due_date(actor, stored_order.id, 2, date(2024, 4, 20))

        inst = updated.installment_details[1]
        assert inst.amount_cents == 12000
        assert inst.due_date == date(2024, 4, 20)

    def test_payment_method(self, order_service, stored_order, actor):
        assert order_service.update_payment_method(actor, stored_order.id, "Pix").payment_method == "Pix"

    def test_trashed_order_cannot_be_edited(self, order_service, stored_order, actor, make_payment):
        order_service.move_to_trash(actor, stored_order.id)

        with pytest.raises(InvalidStatusTransitionError):
            order_service.record_payment(actor, stored_order.id, 1, make_payment(1000))
        with pytest.raises(InvalidStatusTransitionError):
            order_service.change_discount(actor, stored_order.id, 100)


# =============================================================================
# STATUS AND TRASH
# =============================================================================


class TestStatusAndTrash:

    def test_update_status(self, order_service, stored_order, actor):
        updated = order_service.update_status(actor, stored_order.id, OrderStatus.DELIVERED)
        assert updated.status == OrderStatus.DELIVERED

    def test_trash_and_restore(self, order_service, stored_order, actor):
        trashed = order_service.move_to_trash(actor, stored_order.id)
        assert trashed.is_trashed
        assert order_service.list_orders() == []
        assert [o.id for o in order_service.list_orders(status=OrderStatus.DELETED)] == [stored_order.id]

        restored = order_service.restore(actor, stored_order.id)
        assert restored.status == OrderStatus.PROCESSING
        assert restored.installment_details == stored_order.installment_details

    def test_permanent_delete_requires_trash(self, order_service, stored_order, actor):
        with pytest.raises(InvalidStatusTransitionError):
            order_service.permanently_delete(actor, stored_order.id)

    def test_permanent_delete(self, order_service, db, stored_order, actor):
        order_service.move_to_trash(actor, stored_order.id)

        assert order_service.permanently_delete(actor, stored_order.id) is True

        assert order_service.get_by_id(stored_order.id) is None
        assert db.audit_actions("order")[-1] == "delete"

    def test_list_orders_by_seller(self, order_service, db, make_order):
        db.put_order(make_order(order_id="PED-1"))
        db.put_order(make_order(order_id="PED-2", seller_id="seller-2"))

        assert [o.id for o in order_service.list_orders(seller_id="seller-2")] == ["PED-2"]

    def test_storage_failure_surfaces_as_transaction_failed(self, order_service, db, stored_order):
        db.fail_on = "FROM orders"

        with pytest.raises(TransactionFailedError):
            order_service.get_by_id(stored_order.id)


# =============================================================================
# COMMISSION
# =============================================================================


class TestCommission:

    def test_recalculate_uses_current_catalog(self, order_service, db, stored_order, actor):
        db.put_product(Product(
            id="prod-1", name="Sofá Retrátil",
            commission_type=CommissionType.FIXED, commission_value=30,
        ))

        updated = order_service.recalculate_commission(actor, stored_order.id)

        assert updated.commission_cents == 3000

    def test_manual_override_survives_recalculation(self, order_service, stored_order, actor):
        order_service.set_manual_commission(actor, stored_order.id, 4321)

        updated = order_service.recalculate_commission(actor, stored_order.id)

        assert updated.commission_cents == 4321
        assert updated.is_commission_manual

    def test_negative_manual_commission(self, order_service, stored_order, actor):
        with pytest.raises(InvalidAmountError):
            order_service.set_manual_commission(actor, stored_order.id, -1)

    def test_paid_commission_is_locked(self, order_service, db, make_order, actor):
        db.put_order(make_order(commission_paid=True, commission_cents=5000))

        with pytest.raises(InvalidStatusTransitionError):
            order_service.recalculate_commission(actor, "PED-20240215-0001")


# =============================================================================
# PAYMENT GATEWAY
# =============================================================================


class TestGateway:

    def test_status_resolved_through_linked_payment(self, order_service, db, stored_order, actor):
        order_service.link_gateway_payment(actor, stored_order.id, "pay_abc")

        updated = order_service.apply_gateway_status("pay_abc", "RECEIVED", {"event": "PAYMENT_RECEIVED"})

        assert updated.gateway_payment_id == "pay_abc"
        assert updated.gateway_status == "RECEIVED"
        assert updated.gateway_payload == {"event": "PAYMENT_RECEIVED"}
        assert db.audit_log[-1]["user_id"] == "gateway"

    def test_link_writes_map_and_order_together(self, order_service, db, stored_order, actor):
        linked = order_service.link_gateway_payment(actor, stored_order.id, "pay_123")

        assert db.gateway_map == {"pay_123": stored_order.id}
        assert db.orders[stored_order.id]["gateway_payment_id"] == "pay_123"
        assert linked.version == stored_order.version + 1
        assert db.audit_actions("order") == ["update"]

    def test_link_storage_failure_leaves_map_empty(self, order_service, db, stored_order, actor):
        db.fail_on = "UPDATE orders SET discount_cents"

        with pytest.raises(TransactionFailedError):
            order_service.link_gateway_payment(actor, stored_order.id, "pay_123")

        assert db.gateway_map == {}
        assert db.orders[stored_order.id]["gateway_payment_id"] is None
        assert db.audit_log == []

    def test_link_on_stale_order_leaves_map_empty(self, order_service, db, stored_order, actor, make_payment, monkeypatch):
        order_service.record_payment(actor, stored_order.id, 1, make_payment(10000))
        monkeypatch.setattr(order_service, "get_by_id", lambda order_id: stored_order)

        with pytest.raises(TransactionFailedError):
            order_service.link_gateway_payment(actor, stored_order.id, "pay_123")

        assert db.gateway_map == {}
        assert db.orders[stored_order.id]["gateway_payment_id"] is None

    def test_external_reference_wins(self, order_service, stored_order):
        updated = order_service.apply_gateway_status(
            "pay_xyz", "CONFIRMED", {}, external_reference=stored_order.id
        )
        assert updated.gateway_status == "CONFIRMED"

    def test_unknown_gateway_payment(self, order_service):
        with pytest.raises(NotFoundError):
            order_service.apply_gateway_status("pay_missing", "RECEIVED", {})
