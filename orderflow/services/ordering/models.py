"""Order command and view models."""
from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from orderflow.db.models import Order, OrderItem
from orderflow.services.ordering.states import PaymentStatus


class OrderLine(BaseModel):
    """Requested line of a new order."""

    menu_id: int
    quantity: int = Field(gt=0)
    unit_price: Optional[int] = None  # price the terminal displayed, checked against the menu


class SubmitOrder(BaseModel):
    """Order submission from a booth terminal."""

    booth_id: str = Field(min_length=1)
    items: List[OrderLine] = Field(min_length=1)
    note: Optional[str] = None
    total_price: Optional[int] = None


class OrderItemView(BaseModel):
    """Denormalized item projection sent to boards."""

    item_id: int
    order_id: int
    menu_id: int
    name: str
    quantity: int
    unit_price: int
    item_status: str
    booth_id: Optional[str] = None
    order_time: Optional[str] = None

    @classmethod
    def from_item(cls, item: OrderItem, order: Optional[Order] = None) -> "OrderItemView":
        order = order if order is not None else item.order
        return cls(
            item_id=item.item_id,
            order_id=item.order_id,
            menu_id=item.menu_id,
            name=item.menu_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            item_status=item.item_status,
            booth_id=order.booth_id if order is not None else None,
            order_time=order.order_time.isoformat() if order is not None and order.order_time else None,
        )


class OrderView(BaseModel):
    """Order projection with its items."""

    order_id: int
    booth_id: str
    total_price: int
    note: Optional[str] = None
    order_time: str
    status: str
    payment_status: str
    is_paid: bool
    items: List[OrderItemView] = []

    @classmethod
    def from_order(cls, order: Order) -> "OrderView":
        return cls(
            order_id=order.order_id,
            booth_id=order.booth_id,
            total_price=order.total_price,
            note=order.note,
            order_time=order.order_time.isoformat() if order.order_time else "",
            status=order.status,
            payment_status=order.payment_status,
            is_paid=order.payment_status == PaymentStatus.PAID.value,
            items=[OrderItemView.from_item(item, order) for item in order.items],
        )


class CommandOutcome(str, Enum):
    """Result kinds of a staff or customer command."""

    APPLIED = "applied"
    ALREADY_PROCESSED = "already_processed"  # entity is past the required status
    NOT_READY = "not_ready"  # entity has not reached the required status yet
    NOT_FOUND = "not_found"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


class CommandResult(BaseModel):
    """Typed response of a command handler."""

    command: str
    outcome: CommandOutcome
    message: str
    order_id: Optional[int] = None
    item_id: Optional[int] = None
    order: Optional[OrderView] = None
    item: Optional[OrderItemView] = None

    @property
    def applied(self) -> bool:
        return self.outcome is CommandOutcome.APPLIED

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["success"] = self.applied
        return payload
