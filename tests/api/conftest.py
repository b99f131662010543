"""API test fixtures: TestClient over the real routers with mocked services."""

from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from core.config import CrediarioSettings
from core.services.commission_service import CommissionService
from core.services.order_service import OrderService

WEBHOOK_TOKEN = "whk_test_token"


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def order_service(order):
    svc = Mock(spec=OrderService)
    for name in (
        "create", "record_payment", "reverse_payment", "change_discount",
        "register_down_payment", "reset_down_payment", "change_installment_count",
        "regenerate_schedule", "change_installment_amount", "shift_due_date",
        "update_payment_method", "update_status", "move_to_trash", "restore",
        "recalculate_commission", "set_manual_commission", "link_gateway_payment",
        "apply_gateway_status", "get_by_id",
    ):
        getattr(svc, name).return_value = order
    svc.list_orders.return_value = [order]
    svc.permanently_delete.return_value = True
    return svc


@pytest.fixture
def commission_service():
    svc = Mock(spec=CommissionService)
    svc.list_payments.return_value = []
    svc.list_pending_by_seller.return_value = []
    return svc


@pytest.fixture
def services(order_service, commission_service):
    return {
        "settings": CrediarioSettings(),
        "order": order_service,
        "commission": commission_service,
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    return create_app(services, WEBHOOK_TOKEN)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def actor_json(actor):
    return actor.model_dump()


@pytest.fixture
def webhook_headers():
    return {"asaas-access-token": WEBHOOK_TOKEN}
