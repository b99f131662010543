"""
Order service for credit sales and their installment schedules.

Orders keep items and the installment schedule as nested JSONB on one row,
so almost every mutation is a single-row write; linking a gateway charge
also writes the payment map, in the same transaction. Writes are guarded by the order's
version: an UPDATE that matches no row means someone else changed the order
since it was read, and the operation fails without applying anything.
"""

import logging
from contextlib import contextmanager
from datetime import date

import psycopg2
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core import ledger, mutator
from core.audit import AuditLogger, AuditAction, compute_changes
from core.commission import calculate_commission
from core.config import CrediarioSettings
from core.event_bus import EventBus
from core.events import OrderCreated, InstallmentPaymentRecorded, InstallmentPaid
from core.exceptions import (
    InstallmentLimitExceededError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    NotFoundError,
    TransactionFailedError,
)
from core.models import Actor, Order, OrderCreate, OrderStatus, Payment
from core.schedule import add_months, build_schedule
from core.services.catalog_service import CatalogService
from utils.timezone import now_utc, today_in

logger = logging.getLogger(__name__)

GATEWAY_ACTOR = Actor(id="gateway", name="Asaas webhook", role="system")


@contextmanager
def _storage_errors(action: str):
    """Surface psycopg2 failures as a retryable TransactionFailedError."""
    try:
        yield
    except psycopg2.Error as e:
        logger.exception("Storage failure while trying to %s", action)
        raise TransactionFailedError(f"Could not {action}", cause=e)


class OrderService:
    """Service for order and installment operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        catalog: CatalogService,
        settings: CrediarioSettings,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.catalog = catalog
        self.settings = settings

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_by_id(self, order_id: str) -> Order | None:
        """
        Get order by ID, including orders in the trash.

        Returns:
            Order if found, None otherwise.
        """
        with _storage_errors(f"load order {order_id}"):
            row = self.postgres.execute_single(
                "SELECT * FROM orders WHERE id = %s",
                (order_id,)
            )

        if row is None:
            return None

        return Order.model_validate(row)

    def list_orders(
        self,
        status: OrderStatus | None = None,
        seller_id: str | None = None,
        limit: int = 100,
    ) -> list[Order]:
        """
        List orders, newest first. Trashed orders appear only when asked for.

        Args:
            status: Only orders in this status
            seller_id: Only orders closed by this seller
            limit: Maximum results
        """
        conditions = []
        params: list = []

        if status is None:
            conditions.append("status <> %s")
            params.append(OrderStatus.DELETED.value)
        else:
            conditions.append("status = %s")
            params.append(status.value)

        if seller_id is not None:
            conditions.append("seller_id = %s")
            params.append(seller_id)

        params.append(limit)

        with _storage_errors("list orders"):
            rows = self.postgres.execute(
                f"""
                SELECT * FROM orders
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at DESC
                LIMIT %s
                """,
                tuple(params)
            )

        return [Order.model_validate(row) for row in rows]

    def _require(self, order_id: str) -> Order:
        order = self.get_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def _require_editable(self, order_id: str) -> Order:
        order = self._require(order_id)
        if order.is_trashed:
            raise InvalidStatusTransitionError(f"Order {order_id} is in the trash; restore it first")
        return order

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _generate_order_id(self) -> str:
        """
        Generate a unique order id.

        Format: PED-YYYYMMDD-XXXX where XXXX is a daily sequence number.
        """
        today = today_in(self.settings.timezone).strftime("%Y%m%d")
        prefix = f"{self.settings.order_number_prefix}-{today}-"

        result = self.postgres.execute_single(
            """
            SELECT id FROM orders
            WHERE id LIKE %s
            ORDER BY id DESC
            LIMIT 1
            """,
            (f"{prefix}%",)
        )

        if result is None:
            sequence = 1
        else:
            try:
                sequence = int(result["id"].split("-")[-1]) + 1
            except (ValueError, IndexError):
                sequence = 1

        return f"{prefix}{sequence:04d}"

    def _default_first_due_date(self) -> date:
        return add_months(today_in(self.settings.timezone), 1)

    def create(self, actor: Actor, data: OrderCreate) -> Order:
        """
        Create an order. Credit sales get their installment schedule here.

        The financed amount (total - down payment) is split into
        ``data.installments`` monthly dues starting at ``data.first_due_date``
        (one month from today when omitted). Commission is computed from the
        catalog unless a manual value is given.

        Raises:
            InvalidAmountError: If discount or down payment are out of range,
                or a credit sale has nothing to finance
            InstallmentLimitExceededError: If the count exceeds the product cap
        """
        products = self.catalog.get_many([item.product_id for item in data.items])

        subtotal = sum(item.total_cents for item in data.items)
        if data.discount_cents > subtotal:
            raise InvalidAmountError(
                f"Discount must be between 0 and {subtotal} cents, got {data.discount_cents}"
            )
        total = subtotal - data.discount_cents
        if data.down_payment_cents > total:
            raise InvalidAmountError("Down payment cannot exceed the order total")

        installments = []
        first_due_date = None
        if self.settings.is_credit_sale(data.payment_method):
            limit = mutator.max_installments_for(data.items, products, self.settings)
            count = data.installments or 1
            if count > limit:
                raise InstallmentLimitExceededError(count, limit)
            first_due_date = data.first_due_date or self._default_first_due_date()
            installments = build_schedule(total - data.down_payment_cents, count, first_due_date)

        now = now_utc()
        with _storage_errors("create order"):
            order_id = self._generate_order_id()

        draft = Order(
            id=order_id,
            customer_id=data.customer_id,
            customer_name=data.customer_name,
            items=data.items,
            subtotal_cents=subtotal,
            discount_cents=data.discount_cents,
            down_payment_cents=data.down_payment_cents,
            total_cents=total,
            payment_method=data.payment_method,
            installments=len(installments),
            installment_value_cents=installments[0].amount_cents if installments else 0,
            installment_details=installments,
            first_due_date=first_due_date,
            status=OrderStatus.PROCESSING,
            seller_id=data.seller_id,
            seller_name=data.seller_name,
            commission_cents=data.commission_cents or 0,
            is_commission_manual=data.commission_cents is not None,
            created_at=now,
            updated_at=now,
        )
        draft = draft.model_copy(update={
            "commission_cents": calculate_commission(draft, products, self.settings)
        })

        with _storage_errors(f"create order {order_id}"):
            row = self.postgres.execute_returning(
                """
                INSERT INTO orders (
                    id, customer_id, customer_name, items,
                    subtotal_cents, discount_cents, down_payment_cents, total_cents,
                    payment_method, installments, installment_value_cents,
                    installment_details, first_due_date, status,
                    seller_id, seller_name, commission_cents, commission_paid,
                    is_commission_manual, version, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s
                )
                RETURNING *
                """,
                (
                    draft.id, draft.customer_id, draft.customer_name, _items_json(draft),
                    draft.subtotal_cents, draft.discount_cents, draft.down_payment_cents, draft.total_cents,
                    draft.payment_method, draft.installments, draft.installment_value_cents,
                    _schedule_json(draft), draft.first_due_date, draft.status.value,
                    draft.seller_id, draft.seller_name, draft.commission_cents, False,
                    draft.is_commission_manual, 1, now, now
                )
            )[0]

        order = Order.model_validate(row)

        self.audit.log_change(
            actor=actor,
            entity_type="order",
            entity_id=order.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        logger.info(
            "Order %s created: total=%d financed=%d installments=%d",
            order.id, order.total_cents, order.financed_cents, order.installments,
        )
        self.event_bus.publish(OrderCreated.create(order=order))

        return order

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _save(self, actor: Actor, current: Order, updated: Order) -> Order:
        """
        Write the financial shape of ``updated`` if ``current`` is still the stored version.

        Raises:
            TransactionFailedError: If the order changed since it was read,
                or the write failed
        """
        with _storage_errors(f"save order {current.id}"):
            saved = self._write_order(self.postgres, current, updated)

        self._log_update(actor, current, saved)
        return saved

    def _write_order(self, db, current: Order, updated: Order) -> Order:
        """Version-checked UPDATE through ``db``: the client itself or an open transaction."""
        rows = db.execute(
            """
            UPDATE orders
            SET discount_cents = %s, down_payment_cents = %s, total_cents = %s,
                payment_method = %s, installments = %s, installment_value_cents = %s,
                installment_details = %s, first_due_date = %s, status = %s,
                commission_cents = %s, is_commission_manual = %s,
                gateway_payment_id = %s, gateway_status = %s, gateway_payload = %s,
                version = version + 1, updated_at = %s
            WHERE id = %s AND version = %s
            RETURNING *
            """,
            (
                updated.discount_cents, updated.down_payment_cents, updated.total_cents,
                updated.payment_method, updated.installments, updated.installment_value_cents,
                _schedule_json(updated), updated.first_due_date, updated.status.value,
                updated.commission_cents, updated.is_commission_manual,
                updated.gateway_payment_id, updated.gateway_status,
                Json(updated.gateway_payload) if updated.gateway_payload is not None else None,
                now_utc(),
                current.id, current.version
            )
        )

        if not rows:
            logger.warning("Order %s changed since version %d; write rejected", current.id, current.version)
            raise TransactionFailedError(
                f"Order {current.id} was modified by someone else; reload and try again"
            )

        return Order.model_validate(rows[0])

    def _log_update(self, actor: Actor, current: Order, saved: Order) -> None:
        changes = compute_changes(current.model_dump(mode="json"), saved.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                actor=actor,
                entity_type="order",
                entity_id=saved.id,
                action=AuditAction.UPDATE,
                changes=changes
            )

    def _limit_for(self, order: Order) -> int:
        products = self.catalog.get_many([item.product_id for item in order.items])
        return mutator.max_installments_for(order.items, products, self.settings)

    # -------------------------------------------------------------------------
    # Payment ledger
    # -------------------------------------------------------------------------

    def record_payment(self, actor: Actor, order_id: str, installment_number: int, payment: Payment) -> Order:
        """
        Record a payment against one installment.

        Re-sending a payment with an id already on the ledger changes nothing.

        Returns:
            Updated order (the installment may become Parcial or Pago)

        Raises:
            NotFoundError: If the order or installment does not exist
            InvalidAmountError: If the payment amount is not positive
            TransactionFailedError: On concurrent modification or storage failure
        """
        current = self._require_editable(order_id)

        if payment.received_by is None:
            payment = payment.model_copy(update={"received_by": actor.name})

        updated = ledger.record_payment(current, installment_number, payment)
        if updated == current:
            return current

        saved = self._save(actor, current, updated)

        before = ledger.find_installment(current, installment_number)
        after = ledger.find_installment(saved, installment_number)
        logger.info(
            "Order %s installment %d: payment %s of %d cents, status %s",
            order_id, installment_number, payment.id, payment.amount_cents, after.status.value,
        )

        self.event_bus.publish(InstallmentPaymentRecorded.create(order=saved, installment=after, payment=payment))
        if after.is_paid and not before.is_paid:
            self.event_bus.publish(InstallmentPaid.create(order=saved, installment=after))

        return saved

    def reverse_payment(self, actor: Actor, order_id: str, installment_number: int, payment_id: str) -> Order:
        """
        Remove a recorded payment and recompute the installment.

        Raises:
            NotFoundError: If the order, installment or payment does not exist
            TransactionFailedError: On concurrent modification or storage failure
        """
        current = self._require_editable(order_id)
        updated = ledger.reverse_payment(current, installment_number, payment_id)
        saved = self._save(actor, current, updated)

        logger.info("Order %s installment %d: payment %s reversed", order_id, installment_number, payment_id)
        return saved

    # -------------------------------------------------------------------------
    # Financial edits
    # -------------------------------------------------------------------------

    def change_discount(self, actor: Actor, order_id: str, discount_cents: int) -> Order:
        current = self._require_editable(order_id)
        return self._save(actor, current, mutator.change_discount(current, discount_cents))

    def register_down_payment(self, actor: Actor, order_id: str, down_payment_cents: int) -> Order:
        current = self._require_editable(order_id)
        return self._save(actor, current, mutator.register_down_payment(current, down_payment_cents))

    def reset_down_payment(self, actor: Actor, order_id: str) -> Order:
        current = self._require_editable(order_id)
        return self._save(actor, current, mutator.reset_down_payment(current))

    def change_installment_count(self, actor: Actor, order_id: str, new_count: int) -> Order:
        """
        Re-split the unpaid balance into ``new_count`` pending installments.

        Installments with payments are kept as they are.

        Raises:
            InstallmentLimitExceededError: If new_count exceeds the product cap
            InvalidAmountError: If new_count < 1 or nothing is left to finance
        """
        current = self._require_editable(order_id)
        updated = mutator.change_installment_count(
            current, new_count, self._limit_for(current), self._default_first_due_date()
        )
        return self._save(actor, current, updated)

    def regenerate_schedule(self, actor: Actor, order_id: str) -> Order:
        """Rebuild pending installments to match the current total and down payment."""
        current = self._require_editable(order_id)
        updated = mutator.regenerate_schedule(
            current, self._limit_for(current), self._default_first_due_date()
        )
        return self._save(actor, current, updated)

    def change_installment_amount(self, actor: Actor, order_id: str, installment_number: int, amount_cents: int) -> Order:
        current = self._require_editable(order_id)
        updated = mutator.change_installment_amount(current, installment_number, amount_cents)
        return self._save(actor, current, updated)

    def shift_due_date(self, actor: Actor, order_id: str, installment_number: int, due_date: date) -> Order:
        current = self._require_editable(order_id)
        updated = mutator.shift_due_date(current, installment_number, due_date)
        return self._save(actor, current, updated)

    def update_payment_method(self, actor: Actor, order_id: str, payment_method: str) -> Order:
        current = self._require_editable(order_id)
        return self._save(actor, current, mutator.update_payment_method(current, payment_method))

    # -------------------------------------------------------------------------
    # Status and trash
    # -------------------------------------------------------------------------

    def update_status(self, actor: Actor, order_id: str, status: OrderStatus) -> Order:
        current = self._require(order_id)
        saved = self._save(actor, current, mutator.update_status(current, status))
        logger.info("Order %s status %s -> %s", order_id, current.status.value, status.value)
        return saved

    def move_to_trash(self, actor: Actor, order_id: str) -> Order:
        current = self._require(order_id)
        return self._save(actor, current, mutator.move_to_trash(current))

    def restore(self, actor: Actor, order_id: str) -> Order:
        current = self._require(order_id)
        return self._save(actor, current, mutator.restore(current))

    def permanently_delete(self, actor: Actor, order_id: str) -> bool:
        """
        Hard delete an order. Only orders already in the trash can be deleted.

        Raises:
            NotFoundError: If the order does not exist
            InvalidStatusTransitionError: If the order is not in the trash
            TransactionFailedError: On concurrent modification or storage failure
        """
        current = self._require(order_id)
        if not current.is_trashed:
            raise InvalidStatusTransitionError(f"Order {order_id} must be in the trash before deletion")

        with _storage_errors(f"delete order {order_id}"):
            rows = self.postgres.execute_returning(
                "DELETE FROM orders WHERE id = %s AND version = %s RETURNING id",
                (order_id, current.version)
            )
        if not rows:
            raise TransactionFailedError(
                f"Order {order_id} was modified by someone else; reload and try again"
            )

        self.audit.log_change(
            actor=actor,
            entity_type="order",
            entity_id=order_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )
        logger.info("Order %s permanently deleted", order_id)
        return True

    # -------------------------------------------------------------------------
    # Commission
    # -------------------------------------------------------------------------

    def recalculate_commission(self, actor: Actor, order_id: str) -> Order:
        """
        Recompute the commission from the catalog. A manual value is kept.

        Raises:
            InvalidStatusTransitionError: If the commission was already paid
        """
        current = self._require_editable(order_id)
        if current.commission_paid:
            raise InvalidStatusTransitionError(f"Commission for order {order_id} was already paid")

        products = self.catalog.get_many([item.product_id for item in current.items])
        commission = calculate_commission(current, products, self.settings)
        return self._save(actor, current, current.model_copy(update={"commission_cents": commission}))

    def set_manual_commission(self, actor: Actor, order_id: str, commission_cents: int) -> Order:
        """
        Override the commission; later recalculations keep this value.

        Raises:
            InvalidAmountError: If the value is negative
            InvalidStatusTransitionError: If the commission was already paid
        """
        if commission_cents < 0:
            raise InvalidAmountError(f"Commission cannot be negative, got {commission_cents} cents")

        current = self._require_editable(order_id)
        if current.commission_paid:
            raise InvalidStatusTransitionError(f"Commission for order {order_id} was already paid")

        return self._save(actor, current, current.model_copy(update={
            "commission_cents": commission_cents,
            "is_commission_manual": True,
        }))

    # -------------------------------------------------------------------------
    # Payment gateway
    # -------------------------------------------------------------------------

    def link_gateway_payment(self, actor: Actor, order_id: str, gateway_payment_id: str) -> Order:
        """
        Remember which gateway charge belongs to this order, for webhook lookups.

        The payment map row and the order's ``gateway_payment_id`` are written
        in one transaction.

        Raises:
            TransactionFailedError: If the order changed since it was read,
                or the write failed. Nothing is applied in that case.
        """
        current = self._require_editable(order_id)
        updated = current.model_copy(update={"gateway_payment_id": gateway_payment_id})

        with _storage_errors(f"link gateway payment {gateway_payment_id}"):
            with self.postgres.transaction() as tx:
                tx.execute(
                    """
                    INSERT INTO gateway_payment_map (payment_id, order_id, created_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (payment_id) DO UPDATE SET order_id = EXCLUDED.order_id
                    """,
                    (gateway_payment_id, order_id, now_utc())
                )
                saved = self._write_order(tx, current, updated)

        self._log_update(actor, current, saved)
        logger.info("Order %s linked to gateway payment %s", order_id, gateway_payment_id)
        return saved

    def resolve_gateway_order_id(self, gateway_payment_id: str, external_reference: str | None = None) -> str:
        """
        Find the order a gateway charge belongs to.

        The charge's external reference wins; otherwise the payment map is used.

        Raises:
            NotFoundError: If no order can be resolved
        """
        if external_reference:
            return external_reference

        with _storage_errors(f"resolve gateway payment {gateway_payment_id}"):
            row = self.postgres.execute_single(
                "SELECT order_id FROM gateway_payment_map WHERE payment_id = %s",
                (gateway_payment_id,)
            )

        if row is None:
            raise NotFoundError(f"No order linked to gateway payment {gateway_payment_id}")
        return row["order_id"]

    def apply_gateway_status(
        self,
        gateway_payment_id: str,
        status: str,
        payload: dict,
        external_reference: str | None = None,
    ) -> Order:
        """
        Stash a gateway payment status on its order.

        Gateway semantics are not interpreted; the status and raw payload are
        stored for the admin screens.
        """
        order_id = self.resolve_gateway_order_id(gateway_payment_id, external_reference)
        current = self._require(order_id)

        updated = current.model_copy(update={
            "gateway_payment_id": gateway_payment_id,
            "gateway_status": status,
            "gateway_payload": payload,
        })
        saved = self._save(GATEWAY_ACTOR, current, updated)

        logger.info("Order %s gateway payment %s status %s", order_id, gateway_payment_id, status)
        return saved


def _items_json(order: Order) -> Json:
    return Json([item.model_dump(mode="json") for item in order.items])


def _schedule_json(order: Order) -> Json:
    return Json([i.model_dump(mode="json") for i in order.installment_details])
