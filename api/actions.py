"""POST /api/actions: unified mutation endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from core.models import (
    Actor,
    CommissionPaymentCreate,
    OrderCreate,
    OrderStatus,
    Payment,
)
from utils.timezone import now_utc


class ActionRequest(BaseModel):
    domain: str
    action: str
    actor: Actor
    data: dict


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "order": OrderHandler(services["order"]),
        "installment": InstallmentHandler(services["order"]),
        "commission": CommissionHandler(services["commission"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(body.actor, dict(body.data))
        return success_response(result).model_dump(mode="json")

    return router


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class OrderHandler:
    ALLOWED_ACTIONS = {
        "create", "change_discount", "register_down_payment", "reset_down_payment",
        "change_installment_count", "regenerate_schedule", "update_payment_method",
        "update_status", "trash", "restore", "delete",
        "recalculate_commission", "set_manual_commission", "link_gateway_payment",
    }

    def __init__(self, service):
        self.service = service

    def _handle_create(self, actor: Actor, data: dict):
        order = self.service.create(actor, OrderCreate(**data))
        return order.model_dump(mode="json")

    def _handle_change_discount(self, actor: Actor, data: dict):
        order = self.service.change_discount(actor, data["id"], int(data["discount_cents"]))
        return order.model_dump(mode="json")

    def _handle_register_down_payment(self, actor: Actor, data: dict):
        order = self.service.register_down_payment(actor, data["id"], int(data["down_payment_cents"]))
        return order.model_dump(mode="json")

    def _handle_reset_down_payment(self, actor: Actor, data: dict):
        order = self.service.reset_down_payment(actor, data["id"])
        return order.model_dump(mode="json")

    def _handle_change_installment_count(self, actor: Actor, data: dict):
        order = self.service.change_installment_count(actor, data["id"], int(data["installments"]))
        return order.model_dump(mode="json")

    def _handle_regenerate_schedule(self, actor: Actor, data: dict):
        order = self.service.regenerate_schedule(actor, data["id"])
        return order.model_dump(mode="json")

    def _handle_update_payment_method(self, actor: Actor, data: dict):
        order = self.service.update_payment_method(actor, data["id"], data["payment_method"])
        return order.model_dump(mode="json")

    def _handle_update_status(self, actor: Actor, data: dict):
        order = self.service.update_status(actor, data["id"], OrderStatus(data["status"]))
        return order.model_dump(mode="json")

    def _handle_trash(self, actor: Actor, data: dict):
        order = self.service.move_to_trash(actor, data["id"])
        return order.model_dump(mode="json")

    def _handle_restore(self, actor: Actor, data: dict):
        order = self.service.restore(actor, data["id"])
        return order.model_dump(mode="json")

    def _handle_delete(self, actor: Actor, data: dict):
        self.service.permanently_delete(actor, data["id"])
        return {"deleted": True}

    def _handle_recalculate_commission(self, actor: Actor, data: dict):
        order = self.service.recalculate_commission(actor, data["id"])
        return order.model_dump(mode="json")

    def _handle_set_manual_commission(self, actor: Actor, data: dict):
        order = self.service.set_manual_commission(actor, data["id"], int(data["commission_cents"]))
        return order.model_dump(mode="json")

    def _handle_link_gateway_payment(self, actor: Actor, data: dict):
        order = self.service.link_gateway_payment(actor, data["id"], data["gateway_payment_id"])
        return order.model_dump(mode="json")


class InstallmentHandler:
    ALLOWED_ACTIONS = {"record_payment", "reverse_payment", "change_amount", "shift_due_date"}

    def __init__(self, service):
        self.service = service

    def _handle_record_payment(self, actor: Actor, data: dict):
        order_id = data.pop("order_id")
        installment_number = int(data.pop("installment_number"))
        data.setdefault("paid_at", now_utc())
        order = self.service.record_payment(actor, order_id, installment_number, Payment(**data))
        return order.model_dump(mode="json")

    def _handle_reverse_payment(self, actor: Actor, data: dict):
        order = self.service.reverse_payment(
            actor, data["order_id"], int(data["installment_number"]), data["payment_id"]
        )
        return order.model_dump(mode="json")

    def _handle_change_amount(self, actor: Actor, data: dict):
        order = self.service.change_installment_amount(
            actor, data["order_id"], int(data["installment_number"]), int(data["amount_cents"])
        )
        return order.model_dump(mode="json")

    def _handle_shift_due_date(self, actor: Actor, data: dict):
        order = self.service.shift_due_date(
            actor, data["order_id"], int(data["installment_number"]), date.fromisoformat(data["due_date"])
        )
        return order.model_dump(mode="json")


class CommissionHandler:
    ALLOWED_ACTIONS = {"pay", "reverse"}

    def __init__(self, service):
        self.service = service

    def _handle_pay(self, actor: Actor, data: dict):
        payment = self.service.pay_commissions(actor, CommissionPaymentCreate(**data))
        return payment.model_dump(mode="json")

    def _handle_reverse(self, actor: Actor, data: dict):
        payment = self.service.reverse_commission_payment(actor, UUID(data["id"]))
        return payment.model_dump(mode="json")
