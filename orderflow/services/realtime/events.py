"""Realtime channels, event types and routing."""
from enum import Enum
from typing import Any, Dict, Tuple

from pydantic import BaseModel


class Channel(str, Enum):
    """Broadcast groups observers can subscribe to."""

    KITCHEN = "kitchen"
    SERVING = "serving"
    PAYMENT_DESK = "payment-desk"

    def __str__(self) -> str:
        return self.value


class EventType(str, Enum):
    """Delta events emitted after a committed transition."""

    ORDER_SUBMITTED = "order_submitted"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ITEM_ACCEPTED = "item_accepted"
    ITEM_READY = "item_ready"
    ITEM_SERVED = "item_served"
    ORDER_COMPLETED = "order_completed"

    def __str__(self) -> str:
        return self.value


ROUTING: Dict[EventType, Tuple[Channel, ...]] = {
    EventType.ORDER_SUBMITTED: (Channel.PAYMENT_DESK,),
    EventType.PAYMENT_CONFIRMED: (Channel.PAYMENT_DESK, Channel.KITCHEN),
    EventType.ITEM_ACCEPTED: (Channel.KITCHEN,),
    EventType.ITEM_READY: (Channel.KITCHEN, Channel.SERVING),
    EventType.ITEM_SERVED: (Channel.SERVING,),
    EventType.ORDER_COMPLETED: (Channel.PAYMENT_DESK,),
}

SNAPSHOT = "snapshot"


class Event(BaseModel):
    """A delta event with a denormalized payload."""

    type: EventType
    data: Dict[str, Any]
    sequence: int = 0

    @property
    def channels(self) -> Tuple[Channel, ...]:
        return ROUTING[self.type]

    def envelope(self, channel: Channel) -> Dict[str, Any]:
        """Wire frame for one channel."""
        return {
            "type": self.type.value,
            "channel": Channel(channel).value,
            "sequence": self.sequence,
            "data": self.data,
        }


def snapshot_envelope(channel: Channel, data: Dict[str, Any], sequence: int) -> Dict[str, Any]:
    """Wire frame carrying a full channel snapshot."""
    return {
        "type": SNAPSHOT,
        "channel": Channel(channel).value,
        "sequence": sequence,
        "data": data,
    }
