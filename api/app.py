"""Application wiring: services, routers and middleware."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.webhooks import create_webhook_router
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.config import CrediarioSettings
from core.event_bus import EventBus
from core.services.catalog_service import CatalogService
from core.services.commission_service import CommissionService
from core.services.order_service import OrderService

logger = logging.getLogger(__name__)


def build_services(
    postgres: PostgresClient,
    settings: CrediarioSettings,
    event_bus: EventBus | None = None,
) -> dict:
    """Construct the service graph around one database client."""
    audit = AuditLogger(postgres)
    event_bus = event_bus or EventBus()
    catalog = CatalogService(postgres)

    return {
        "settings": settings,
        "event_bus": event_bus,
        "catalog": catalog,
        "order": OrderService(postgres, audit, event_bus, catalog, settings),
        "commission": CommissionService(postgres, audit, event_bus),
    }


def create_app(services: dict, webhook_token: str) -> FastAPI:
    """FastAPI app with error handlers, data/actions routes and the gateway webhook."""
    app = FastAPI(title="ADC PRO Crediário")
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_webhook_router(services, webhook_token), prefix="/api")

    return app


def create_app_from_vault(settings: CrediarioSettings | None = None) -> FastAPI:
    """Production entry point: secrets from Vault, services on a pooled client."""
    from clients.vault_client import get_database_url, get_gateway_config

    settings = settings or CrediarioSettings()
    postgres = PostgresClient(
        get_database_url(),
        connect_timeout=settings.db_connect_timeout_seconds,
        statement_timeout_ms=settings.db_statement_timeout_ms,
    )
    services = build_services(postgres, settings)
    logger.info("Services initialised")
    return create_app(services, get_gateway_config()["webhook_token"])
