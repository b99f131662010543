"""
Catalog lookups for the installment core.

Products are maintained elsewhere; this service only reads the fields the
core needs: installment caps and commission rules.
"""

import logging

import psycopg2

from clients.postgres_client import PostgresClient
from core.exceptions import TransactionFailedError
from core.models import Product

logger = logging.getLogger(__name__)


class CatalogService:
    """Read-only product lookup."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def get_by_id(self, product_id: str) -> Product | None:
        """
        Get product by ID.

        Returns:
            Product if found and not deleted, None otherwise.
        """
        return self.get_many([product_id]).get(product_id)

    def get_many(self, product_ids: list[str]) -> dict[str, Product]:
        """
        Get products keyed by id. Unknown or deleted ids are simply absent.

        Raises:
            TransactionFailedError: If the lookup fails at the storage layer
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}

        try:
            rows = self.postgres.execute(
                """
                SELECT id, name, price_cents, max_installments, commission_type, commission_value
                FROM products
                WHERE id = ANY(%s) AND deleted_at IS NULL
                """,
                (ids,)
            )
        except psycopg2.Error as e:
            logger.exception("Product lookup failed")
            raise TransactionFailedError("Could not load products", cause=e)

        products = [Product.model_validate(row) for row in rows]
        return {p.id: p for p in products}
