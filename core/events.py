"""
Domain events for the crediário core.

Immutable event objects that represent state changes. A service publishes
what happened; collaborators such as the receipt renderer or the WhatsApp
composer react without the publisher knowing who's listening.

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class CrediarioEvent:
    """Base class for all domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# ORDER EVENTS
# =============================================================================


@dataclass(frozen=True)
class OrderCreated(CrediarioEvent):
    """A new order was created, with its schedule if it is a credit sale."""
    order: Any = None

    @classmethod
    def create(cls, order: Any) -> "OrderCreated":
        return cls(order=order)


@dataclass(frozen=True)
class InstallmentPaymentRecorded(CrediarioEvent):
    """A payment was appended to an installment's ledger."""
    order: Any = None
    installment: Any = None
    payment: Any = None

    @classmethod
    def create(cls, order: Any, installment: Any, payment: Any) -> "InstallmentPaymentRecorded":
        return cls(order=order, installment=installment, payment=payment)


@dataclass(frozen=True)
class InstallmentPaid(CrediarioEvent):
    """An installment became fully paid."""
    order: Any = None
    installment: Any = None

    @classmethod
    def create(cls, order: Any, installment: Any) -> "InstallmentPaid":
        return cls(order=order, installment=installment)


# =============================================================================
# COMMISSION EVENTS
# =============================================================================


@dataclass(frozen=True)
class CommissionsPaid(CrediarioEvent):
    """A commission settlement batch was created."""
    commission_payment: Any = None

    @classmethod
    def create(cls, commission_payment: Any) -> "CommissionsPaid":
        return cls(commission_payment=commission_payment)


@dataclass(frozen=True)
class CommissionPaymentReversed(CrediarioEvent):
    """A settlement batch was reversed and its orders reopened."""
    commission_payment: Any = None

    @classmethod
    def create(cls, commission_payment: Any) -> "CommissionPaymentReversed":
        return cls(commission_payment=commission_payment)
