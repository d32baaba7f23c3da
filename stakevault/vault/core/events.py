"""
Event system for ledger notifications.

Provides a simple pub/sub mechanism for Stake / Unstake / Redeem and token
Transfer / Approval events.
"""
from typing import Dict, List, Callable, Any, Tuple
import logging

from ...protocol.types.events import Event

logger = logging.getLogger(__name__)

WILDCARD = "*"


class EventBus:
    """
    Simple event bus for ledger events.

    Events are delivered synchronously, in emission order, in the same thread.
    Subscribers to WILDCARD receive every event with an extra `event_type`
    keyword argument.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., 'Stake', 'Redeem') or '*'
            callback: Function to call when event is emitted
        """
        if event_type not in self.listeners:
            self.listeners[event_type] = []

        self.listeners[event_type].append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        """
        Emit an event to all subscribers.

        Args:
            event_type: Event name
            **data: Event data as keyword arguments
        """
        listeners = self.listeners.get(event_type, [])
        wildcard = self.listeners.get(WILDCARD, [])

        if not listeners and not wildcard:
            logger.debug(f"No listeners for event: {event_type}")
            return

        logger.debug(f"Emitting event: {event_type} to {len(listeners) + len(wildcard)} listener(s)")

        for callback in listeners:
            self._deliver(event_type, callback, data)
        for callback in wildcard:
            self._deliver(event_type, callback, dict(data, event_type=event_type))

    def publish(self, event: Event) -> None:
        """Emit a typed notification."""
        self.emit(event.name, **event.model_dump())

    def _deliver(self, event_type: str, callback: Callable, data: Dict[str, Any]) -> None:
        try:
            callback(**data)
        except Exception as e:
            logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def clear(self, event_type: str = None) -> None:
        """
        Clear all listeners for an event type, or all listeners if no type specified.
        """
        if event_type:
            self.listeners.pop(event_type, None)
            logger.debug(f"Cleared listeners for event: {event_type}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")


class EventBuffer(EventBus):
    """
    Holds events emitted while a call is being simulated.

    Nothing is delivered until flush(); a failed call just drops the buffer.
    """

    def __init__(self):
        super().__init__()
        self.pending: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event_type: str, **data: Any) -> None:
        self.pending.append((event_type, data))

    def flush(self, bus: EventBus) -> List[Tuple[str, Dict[str, Any]]]:
        flushed, self.pending = self.pending, []
        for event_type, data in flushed:
            bus.emit(event_type, **data)
        return flushed
