"""Event Bus: in-process publish/subscribe channel for business events."""

from fulfillment.events.bus import EventBus
from fulfillment.events.models import Event
from fulfillment.events.topics import EventTypes, PaymentStates

__all__ = ["Event", "EventBus", "EventTypes", "PaymentStates"]
