"""POST /api/gateway/webhook: payment gateway status callbacks."""

import logging
import secrets

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict
from starlette.responses import JSONResponse

from api.base import success_response, error_response, ErrorCodes

logger = logging.getLogger(__name__)

TOKEN_HEADER = "asaas-access-token"


class GatewayPayment(BaseModel):
    id: str
    status: str | None = None
    externalReference: str | None = None

    model_config = ConfigDict(extra="allow")


class GatewayEvent(BaseModel):
    event: str
    payment: GatewayPayment

    model_config = ConfigDict(extra="allow")


def create_webhook_router(services: dict, webhook_token: str) -> APIRouter:
    router = APIRouter()
    order_svc = services["order"]

    @router.post("/gateway/webhook")
    async def gateway_webhook(request: Request, body: GatewayEvent):
        provided = request.headers.get(TOKEN_HEADER, "").strip()
        if not webhook_token or not secrets.compare_digest(provided, webhook_token):
            logger.warning("Gateway webhook rejected: bad token")
            return JSONResponse(
                status_code=401,
                content=error_response(ErrorCodes.NOT_AUTHENTICATED, "Unauthorized").model_dump(mode="json"),
            )

        payment = body.payment
        status = payment.status or body.event
        order = order_svc.apply_gateway_status(
            payment.id,
            status,
            body.model_dump(mode="json"),
            external_reference=(payment.externalReference or "").strip() or None,
        )
        return success_response({"order_id": order.id, "gateway_status": status}).model_dump(mode="json")

    return router
