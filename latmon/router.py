"""Demultiplexing of the shared probe event stream by endpoint id."""

import logging
from collections.abc import Callable

from PySide6.QtCore import QObject, Slot

from latmon.models import ProbeEvent

logger = logging.getLogger(__name__)

Handler = Callable[[ProbeEvent], None]


class Subscription:
    """Handle returned by EventRouter.subscribe()."""

    def __init__(self, router: "EventRouter", endpoint_id: str, handler: Handler):
        self._router = router
        self.endpoint_id = endpoint_id
        self.handler = handler
        self.active = True

    def unsubscribe(self):
        """Stop delivery to this handler. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._router._remove(self)


class EventRouter(QObject):
    """Routes probe events to the handlers subscribed to their endpoint.

    Key guarantees:
    - Per-endpoint delivery order equals arrival order
    - Events for one endpoint never reach another endpoint's handlers
    - Events without a subscriber are dropped, never raised
    - Unsubscribing one handler does not affect any other handler

    Thread-safe: All dispatch happens on the Qt main thread via signals/slots.
    """

    def __init__(self, parent=None):
        super().__init__(parent)
        self._subscriptions: dict[str, list[Subscription]] = {}
        self.dropped_count = 0

    def subscribe(self, endpoint_id: str, handler: Handler) -> Subscription:
        """Subscribe a handler to events for one endpoint.

        Args:
            endpoint_id: Endpoint whose events should be delivered
            handler: Callable receiving each ProbeEvent

        Returns:
            Subscription handle used to unsubscribe
        """
        subscription = Subscription(self, endpoint_id, handler)
        self._subscriptions.setdefault(endpoint_id, []).append(subscription)
        logger.debug(
            "Subscribed: endpoint=%s (handlers: %d)",
            endpoint_id,
            len(self._subscriptions[endpoint_id]),
        )
        return subscription

    def subscriber_count(self, endpoint_id: str) -> int:
        return len(self._subscriptions.get(endpoint_id, ()))

    @Slot(object)
    def dispatch(self, event: ProbeEvent):
        """Deliver an event to every active subscriber of its endpoint.

        Args:
            event: ProbeEvent from the shared stream
        """
        subscriptions = self._subscriptions.get(event.endpoint_id)
        if not subscriptions:
            self.dropped_count += 1
            logger.debug(
                "Dropping unroutable event: endpoint=%s, kind=%s",
                event.endpoint_id,
                event.kind.value,
            )
            return

        # Iterate over a copy so handlers may unsubscribe during delivery
        for subscription in tuple(subscriptions):
            if not subscription.active:
                continue
            try:
                subscription.handler(event)
            except Exception:
                logger.exception(
                    "Event handler failed: endpoint=%s, kind=%s",
                    event.endpoint_id,
                    event.kind.value,
                )

    def _remove(self, subscription: Subscription):
        subscriptions = self._subscriptions.get(subscription.endpoint_id)
        if not subscriptions:
            return

        try:
            subscriptions.remove(subscription)
        except ValueError:
            return

        if not subscriptions:
            del self._subscriptions[subscription.endpoint_id]
        logger.debug("Unsubscribed: endpoint=%s", subscription.endpoint_id)
