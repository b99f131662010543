"""Service test fixtures: services wired to an in-memory stand-in for Postgres."""

import copy
from contextlib import contextmanager
from unittest.mock import Mock
from uuid import UUID

import psycopg2
import pytest
from psycopg2.extras import Json

from core.audit import AuditLogger
from core.event_bus import EventBus
from core.services.catalog_service import CatalogService
from core.services.commission_service import CommissionService
from core.services.order_service import OrderService


# Column order of the parameters OrderService writes
INSERT_COLUMNS = [
    "id", "customer_id", "customer_name", "items",
    "subtotal_cents", "discount_cents", "down_payment_cents", "total_cents",
    "payment_method", "installments", "installment_value_cents",
    "installment_details", "first_due_date", "status",
    "seller_id", "seller_name", "commission_cents", "commission_paid",
    "is_commission_manual", "version", "created_at", "updated_at",
]
SAVE_COLUMNS = [
    "discount_cents", "down_payment_cents", "total_cents",
    "payment_method", "installments", "installment_value_cents",
    "installment_details", "first_due_date", "status",
    "commission_cents", "is_commission_manual",
    "gateway_payment_id", "gateway_status", "gateway_payload",
    "updated_at",
]
ORDER_DEFAULTS = {
    "commission_date": None,
    "gateway_payment_id": None,
    "gateway_status": None,
    "gateway_payload": None,
}


def _plain(value):
    """Mimic what the driver stores: JSON adapters unwrapped, UUIDs as text."""
    if isinstance(value, Json):
        return copy.deepcopy(value.adapted)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class FakePostgres:
    """
    Just enough of PostgresClient for the queries the services issue.

    Statements are matched on their normalized text. ``fail_on`` makes any
    statement containing that text raise a psycopg2 error, which is how the
    tests simulate a failure halfway through a transaction.
    """

    def __init__(self):
        self.orders: dict[str, dict] = {}
        self.products: dict[str, dict] = {}
        self.commission_payments: dict[str, dict] = {}
        self.gateway_map: dict[str, str] = {}
        self.audit_log: list[dict] = []
        self.fail_on: str | None = None

    # -- PostgresClient surface ----------------------------------------------

    def execute(self, query, params=None):
        return self._run(query, params)

    def execute_single(self, query, params=None):
        rows = self._run(query, params)
        return rows[0] if rows else None

    def execute_returning(self, query, params=None):
        return self._run(query, params)

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy((self.orders, self.commission_payments, self.gateway_map))
        try:
            yield self
        except Exception:
            self.orders, self.commission_payments, self.gateway_map = snapshot
            raise

    # -- Helpers for tests ---------------------------------------------------

    def put_order(self, order):
        self.orders[order.id] = order.model_dump(mode="json")

    def put_product(self, product):
        self.products[product.id] = product.model_dump()

    def audit_actions(self, entity_type=None):
        return [
            entry["action"] for entry in self.audit_log
            if entity_type is None or entry["entity_type"] == entity_type
        ]

    # -- Dispatch ------------------------------------------------------------

    def _run(self, query, params):
        q = " ".join(query.split())
        p = [_plain(v) for v in (params or ())]

        if self.fail_on and self.fail_on in q:
            raise psycopg2.OperationalError(f"simulated failure on: {self.fail_on}")

        if q.startswith("INSERT INTO audit_log"):
            keys = ["id", "user_id", "user_name", "user_role", "entity_type", "entity_id", "action", "changes", "created_at"]
            self.audit_log.append(dict(zip(keys, p)))
            return []

        if "FROM products" in q:
            return [copy.deepcopy(self.products[i]) for i in p[0] if i in self.products]

        if q.startswith("SELECT id FROM orders WHERE id LIKE"):
            prefix = p[0].rstrip("%")
            ids = sorted((i for i in self.orders if i.startswith(prefix)), reverse=True)
            return [{"id": i} for i in ids[:1]]

        if q.startswith("SELECT * FROM orders WHERE id = %s"):
            row = self.orders.get(p[0])
            return [copy.deepcopy(row)] if row else []

        if q.startswith("SELECT * FROM orders WHERE status = %s AND commission_paid = false"):
            rows = [
                r for r in self.orders.values()
                if r["status"] == p[0] and not r["commission_paid"] and r["commission_cents"] > 0
            ]
            return copy.deepcopy(sorted(rows, key=lambda r: str(r["created_at"])))

        if q.startswith("SELECT * FROM orders WHERE"):
            return self._list_orders(q, p)

        if q.startswith("INSERT INTO orders"):
            row = {**ORDER_DEFAULTS, **dict(zip(INSERT_COLUMNS, p))}
            self.orders[row["id"]] = row
            return [copy.deepcopy(row)]

        if q.startswith("UPDATE orders SET discount_cents"):
            *values, order_id, version = p
            row = self.orders.get(order_id)
            if row is None or row["version"] != version:
                return []
            row.update(zip(SAVE_COLUMNS, values))
            row["version"] += 1
            return [copy.deepcopy(row)]

        if q.startswith("UPDATE orders SET commission_paid = true"):
            when, _, order_ids, seller_id, deleted = p
            settled = []
            for order_id in order_ids:
                row = self.orders.get(order_id)
                if (
                    row is not None and row["seller_id"] == seller_id
                    and not row["commission_paid"] and row["status"] != deleted
                ):
                    row.update(commission_paid=True, commission_date=when, version=row["version"] + 1)
                    settled.append({"id": order_id, "commission_cents": row["commission_cents"]})
            return settled

        if q.startswith("UPDATE orders SET commission_paid = false"):
            _, order_ids = p
            for order_id in order_ids:
                row = self.orders.get(order_id)
                if row is not None:
                    row.update(commission_paid=False, commission_date=None, version=row["version"] + 1)
            return []

        if q.startswith("DELETE FROM orders"):
            order_id, version = p
            row = self.orders.get(order_id)
            if row is None or row["version"] != version:
                return []
            del self.orders[order_id]
            return [{"id": order_id}]

        if q.startswith("INSERT INTO gateway_payment_map"):
            self.gateway_map[p[0]] = p[1]
            return []

        if q.startswith("SELECT order_id FROM gateway_payment_map"):
            order_id = self.gateway_map.get(p[0])
            return [{"order_id": order_id}] if order_id else []

        if q.startswith("INSERT INTO commission_payments"):
            keys = ["id", "seller_id", "seller_name", "amount_cents", "period", "payment_date", "order_ids", "created_by"]
            row = dict(zip(keys, p))
            self.commission_payments[row["id"]] = row
            return [copy.deepcopy(row)]

        if q.startswith("SELECT * FROM commission_payments WHERE id = %s"):
            row = self.commission_payments.get(p[0])
            return [copy.deepcopy(row)] if row else []

        if q.startswith("SELECT * FROM commission_payments"):
            rows = list(self.commission_payments.values())
            if "seller_id = %s" in q:
                rows = [r for r in rows if r["seller_id"] == p[0]]
            rows.sort(key=lambda r: r["payment_date"], reverse=True)
            return copy.deepcopy(rows[:p[-1]])

        if q.startswith("DELETE FROM commission_payments"):
            self.commission_payments.pop(p[0], None)
            return []

        raise AssertionError(f"Unexpected query: {q}")

    def _list_orders(self, q, p):
        params = iter(p)
        status = next(params)
        if "status <> %s" in q:
            rows = [r for r in self.orders.values() if r["status"] != status]
        else:
            rows = [r for r in self.orders.values() if r["status"] == status]
        if "seller_id = %s" in q:
            seller_id = next(params)
            rows = [r for r in rows if r["seller_id"] == seller_id]
        limit = next(params)
        rows.sort(key=lambda r: str(r["created_at"]), reverse=True)
        return copy.deepcopy(rows[:limit])


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def db():
    return FakePostgres()


@pytest.fixture
def audit(db):
    return AuditLogger(db)


@pytest.fixture
def event_bus():
    return Mock(spec=EventBus)


@pytest.fixture
def catalog_service(db):
    return CatalogService(db)


@pytest.fixture
def order_service(db, audit, event_bus, catalog_service, settings):
    return OrderService(db, audit, event_bus, catalog_service, settings)


@pytest.fixture
def commission_service(db, audit, event_bus):
    return CommissionService(db, audit, event_bus)


@pytest.fixture
def published_events(event_bus):
    """Names of the events published on the mocked bus so far, in order."""
    return lambda: [call.args[0].__class__.__name__ for call in event_bus.publish.call_args_list]
