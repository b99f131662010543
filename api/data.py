"""GET /api/data: unified read endpoint."""

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import NotFoundError
from core.models import OrderStatus
from core.reports import financial_summary


VALID_TYPES = {"orders", "commission_payments", "pending_commissions", "financial_summary"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    order_svc = services["order"]
    commission_svc = services["commission"]
    settings = services["settings"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        status: str | None = Query(None),
        seller_id: str | None = Query(None),
        limit: int = Query(100, ge=1, le=500),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        if type == "orders":
            return _handle_orders(order_svc, id, status, seller_id, limit)

        if type == "commission_payments":
            payments = commission_svc.list_payments(seller_id, limit)
            return success_response(
                [p.model_dump(mode="json") for p in payments]
            ).model_dump(mode="json")

        if type == "pending_commissions":
            summaries = commission_svc.list_pending_by_seller()
            return success_response(
                [s.model_dump(mode="json") for s in summaries]
            ).model_dump(mode="json")

        if type == "financial_summary":
            orders = order_svc.list_orders(seller_id=seller_id, limit=limit)
            return success_response(
                financial_summary(orders, settings).model_dump(mode="json")
            ).model_dump(mode="json")

    return router


def _handle_orders(order_svc, id, status, seller_id, limit):
    if id:
        order = order_svc.get_by_id(id)
        if order is None:
            raise NotFoundError(f"Order {id} not found")
        return success_response(order.model_dump(mode="json")).model_dump(mode="json")

    orders = order_svc.list_orders(
        status=OrderStatus(status) if status else None,
        seller_id=seller_id,
        limit=limit,
    )
    return success_response(
        [o.model_dump(mode="json") for o in orders]
    ).model_dump(mode="json")
