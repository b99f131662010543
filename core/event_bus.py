"""
Event bus for crediário domain events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher. Handler errors are logged but never propagate:
the primary operation (DB write + audit) has already committed.
"""

import logging
from typing import Callable, Dict, List

from core.events import CrediarioEvent

logger = logging.getLogger(__name__)


def _event_name(event_type: str | type) -> str:
    return event_type if isinstance(event_type, str) else event_type.__name__


class EventBus:
    """
    In-process event bus.

    Subscribers register under an event class or its name; publishing
    dispatches on the instance's class name, in subscription order.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str | type, callback: Callable) -> Callable:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event class or its name (e.g. InstallmentPaid)
            callback: Function to call when event is published

        Returns:
            The callback, so it can be passed to unsubscribe later
        """
        self._subscribers.setdefault(_event_name(event_type), []).append(callback)
        return callback

    def unsubscribe(self, event_type: str | type, callback: Callable) -> bool:
        """Remove a subscription. Returns False when it was not registered."""
        callbacks = self._subscribers.get(_event_name(event_type), [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def publish(self, event: CrediarioEvent):
        """Publish an event to all subscribers of that type."""
        event_type = event.__class__.__name__

        # Copy so a handler may unsubscribe itself mid-dispatch
        for callback in list(self._subscribers.get(event_type, [])):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )
