"""
Commission settlement service.

Paying commissions creates one settlement batch and flags every covered
order as paid, inside a single database transaction. Reversing a batch
reopens its orders and deletes it, also atomically.
"""

import logging
from uuid import UUID, uuid4

import psycopg2

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.event_bus import EventBus
from core.events import CommissionsPaid, CommissionPaymentReversed
from core.exceptions import InvalidAmountError, NotFoundError, TransactionFailedError
from core.models import (
    Actor,
    CommissionPayment,
    CommissionPaymentCreate,
    Order,
    OrderStatus,
    SellerCommissionSummary,
)
from core.reports import pending_commissions_by_seller
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CommissionService:
    """Service for commission settlement batches."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, event_bus: EventBus):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus

    def pay_commissions(self, actor: Actor, data: CommissionPaymentCreate) -> CommissionPayment:
        """
        Settle a seller's commissions on a set of orders.

        Every listed order must exist, belong to the seller, be out of the
        trash and have an unpaid commission. The batch amount is the sum of
        their commissions; when ``data.amount_cents`` is given it must match.

        Returns:
            The created settlement batch

        Raises:
            InvalidAmountError: If the given amount does not match the orders
            TransactionFailedError: If any order cannot be settled, or the
                write failed. Nothing is applied in that case.
        """
        order_ids = list(dict.fromkeys(data.order_ids))
        now = now_utc()

        try:
            with self.postgres.transaction() as tx:
                settled = tx.execute(
                    """
                    UPDATE orders
                    SET commission_paid = true, commission_date = %s,
                        version = version + 1, updated_at = %s
                    WHERE id = ANY(%s)
                      AND seller_id = %s
                      AND commission_paid = false
                      AND status <> %s
                    RETURNING id, commission_cents
                    """,
                    (now, now, order_ids, data.seller_id, OrderStatus.DELETED.value)
                )

                missing = set(order_ids) - {row["id"] for row in settled}
                if missing:
                    raise TransactionFailedError(
                        f"Orders cannot be settled for seller {data.seller_id}: {', '.join(sorted(missing))}"
                    )

                amount_cents = sum(row["commission_cents"] for row in settled)
                if data.amount_cents is not None and data.amount_cents != amount_cents:
                    raise InvalidAmountError(
                        f"Settlement amount {data.amount_cents} does not match the orders' commission {amount_cents}"
                    )

                row = tx.execute_single(
                    """
                    INSERT INTO commission_payments (
                        id, seller_id, seller_name, amount_cents, period,
                        payment_date, order_ids, created_by
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        uuid4(), data.seller_id, data.seller_name, amount_cents, data.period,
                        now, order_ids, actor.id
                    )
                )
        except psycopg2.Error as e:
            logger.exception("Commission settlement failed for seller %s", data.seller_id)
            raise TransactionFailedError("Could not settle commissions", cause=e)

        payment = CommissionPayment.model_validate(row)

        self.audit.log_change(
            actor=actor,
            entity_type="commission_payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")}
        )

        logger.info(
            "Commission batch %s: %d cents to %s over %d orders",
            payment.id, payment.amount_cents, payment.seller_name, len(order_ids),
        )
        self.event_bus.publish(CommissionsPaid.create(commission_payment=payment))

        return payment

    def reverse_commission_payment(self, actor: Actor, payment_id: UUID) -> CommissionPayment:
        """
        Reverse a settlement batch: reopen its orders and delete it.

        Returns:
            The batch as it was before deletion

        Raises:
            NotFoundError: If the batch does not exist
            TransactionFailedError: If the write failed. Nothing is applied.
        """
        now = now_utc()

        try:
            with self.postgres.transaction() as tx:
                row = tx.execute_single(
                    "SELECT * FROM commission_payments WHERE id = %s FOR UPDATE",
                    (payment_id,)
                )
                if row is None:
                    raise NotFoundError(f"Commission payment {payment_id} not found")

                payment = CommissionPayment.model_validate(row)

                if payment.order_ids:
                    tx.execute(
                        """
                        UPDATE orders
                        SET commission_paid = false, commission_date = NULL,
                            version = version + 1, updated_at = %s
                        WHERE id = ANY(%s)
                        """,
                        (now, payment.order_ids)
                    )

                tx.execute("DELETE FROM commission_payments WHERE id = %s", (payment_id,))
        except psycopg2.Error as e:
            logger.exception("Reversal of commission payment %s failed", payment_id)
            raise TransactionFailedError("Could not reverse commission payment", cause=e)

        self.audit.log_change(
            actor=actor,
            entity_type="commission_payment",
            entity_id=payment.id,
            action=AuditAction.DELETE,
            changes={"deleted": payment.model_dump(mode="json")}
        )

        logger.info("Commission batch %s reversed, %d orders reopened", payment.id, len(payment.order_ids))
        self.event_bus.publish(CommissionPaymentReversed.create(commission_payment=payment))

        return payment

    def get_by_id(self, payment_id: UUID) -> CommissionPayment | None:
        row = self.postgres.execute_single(
            "SELECT * FROM commission_payments WHERE id = %s",
            (payment_id,)
        )

        if row is None:
            return None

        return CommissionPayment.model_validate(row)

    def list_payments(self, seller_id: str | None = None, limit: int = 100) -> list[CommissionPayment]:
        """
        List settlement batches, newest first.

        Args:
            seller_id: Only batches for this seller
            limit: Maximum results
        """
        if seller_id is None:
            rows = self.postgres.execute(
                "SELECT * FROM commission_payments ORDER BY payment_date DESC LIMIT %s",
                (limit,)
            )
        else:
            rows = self.postgres.execute(
                """
                SELECT * FROM commission_payments
                WHERE seller_id = %s
                ORDER BY payment_date DESC
                LIMIT %s
                """,
                (seller_id, limit)
            )

        return [CommissionPayment.model_validate(row) for row in rows]

    def list_pending_by_seller(self) -> list[SellerCommissionSummary]:
        """Unpaid commissions on delivered orders, grouped per seller."""
        rows = self.postgres.execute(
            """
            SELECT * FROM orders
            WHERE status = %s AND commission_paid = false AND commission_cents > 0
            ORDER BY created_at ASC
            """,
            (OrderStatus.DELIVERED.value,)
        )

        return pending_commissions_by_seller([Order.model_validate(row) for row in rows])
