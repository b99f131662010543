"""
Handler for InstallmentPaymentRecorded events.

Hands the updated installment to the receipt renderer (proof-of-payment
PDF, WhatsApp message composer). Rendering itself lives outside this repo.
"""

import logging
from typing import Callable

from core.events import InstallmentPaymentRecorded

logger = logging.getLogger(__name__)


def handle_payment_recorded(render_receipt: Callable) -> Callable:
    """
    Factory that returns an InstallmentPaymentRecorded handler.

    Args:
        render_receipt: Collaborator called as
            render_receipt(order=..., installment=..., payment=...)

    Returns:
        Handler callable that forwards the receipt data
    """

    def handler(event: InstallmentPaymentRecorded):
        installment = event.installment

        logger.info(
            "Receipt for order %s installment %d (%s)",
            event.order.id, installment.installment_number, installment.status.value,
        )
        render_receipt(order=event.order, installment=installment, payment=event.payment)

    return handler
