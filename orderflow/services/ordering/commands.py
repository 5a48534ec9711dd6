"""Order command handlers.

Each command follows the same steps: validate input, apply one conditional
change through the store, schedule the resulting delta once the change is
committed, and answer with a typed ``CommandResult`` without waiting for
delivery. Event payloads carry the status the command committed, not
whatever a later read happens to see. Handlers never touch observer
projections directly; boards only change through published events.
"""
import logging
from typing import Any, Awaitable, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from orderflow.services.ordering.errors import PreconditionFailed, ValidationError
from orderflow.services.ordering.models import (
    CommandOutcome,
    CommandResult,
    OrderItemView,
    OrderLine,
    OrderView,
    SubmitOrder,
)
from orderflow.services.ordering.states import (
    ITEM_PIPELINE,
    ItemCommand,
    ItemStatus,
    OrderStateMachine,
    OrderStatus,
    PaymentStatus,
)
from orderflow.services.persistence.orders import OrderStore
from orderflow.services.realtime.broadcaster import Broadcaster
from orderflow.services.realtime.events import Event, EventType

logger = logging.getLogger(__name__)

_PRECONDITION_OUTCOMES = {
    PreconditionFailed.NOT_FOUND: CommandOutcome.NOT_FOUND,
    PreconditionFailed.ALREADY_PROCESSED: CommandOutcome.ALREADY_PROCESSED,
    PreconditionFailed.NOT_READY: CommandOutcome.NOT_READY,
}

_ITEM_EVENTS = {
    ItemCommand.ACCEPT: EventType.ITEM_ACCEPTED,
    ItemCommand.COMPLETE: EventType.ITEM_READY,
    ItemCommand.SERVE: EventType.ITEM_SERVED,
}


def describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten a pydantic error into one readable reason."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ()))
        parts.append(f"{location}: {detail.get('msg')}" if location else detail.get("msg", ""))
    return "; ".join(parts)


class OrderCommandHandler:
    """Executes the customer and staff commands."""

    def __init__(self, store: OrderStore, broadcaster: Broadcaster):
        self.store = store
        self.broadcaster = broadcaster

    async def submit_order(
        self,
        booth_id: str,
        lines: Iterable[Union[OrderLine, dict]],
        note: Optional[str] = None,
        total_price: Optional[int] = None,
    ) -> CommandResult:
        """Create an unpaid order and notify the payment desk."""
        return await self._handle("submit_order", self._submit_order(booth_id, lines, note, total_price))

    async def confirm_payment(self, order_id: int) -> CommandResult:
        """Mark an order paid and release its items to the kitchen."""
        return await self._handle("confirm_payment", self._confirm_payment(order_id))

    async def accept_item(self, item_id: int) -> CommandResult:
        """Kitchen accepts a queued item: processing -> cooking."""
        return await self._handle("accept_item", self._advance_item(ItemCommand.ACCEPT, item_id))

    async def complete_item(self, item_id: int) -> CommandResult:
        """Kitchen finished an item: cooking -> ready_to_serve."""
        return await self._handle("complete_item", self._advance_item(ItemCommand.COMPLETE, item_id))

    async def serve_item(self, item_id: int) -> CommandResult:
        """Server delivered an item: ready_to_serve -> served, then close the order if done."""
        return await self._handle("serve_item", self._advance_item(ItemCommand.SERVE, item_id))

    # ------------------------------------------------------------------

    async def _handle(self, command: str, operation: Awaitable[CommandResult]) -> CommandResult:
        """Convert validation and precondition failures into typed results."""
        try:
            return await operation
        except ValidationError as e:
            logger.info(f"[COMMAND] {command} rejected - {e.reason}")
            return CommandResult(command=command, outcome=CommandOutcome.REJECTED, message=e.reason)
        except PreconditionFailed as e:
            logger.info(f"[COMMAND] {command} not applied - {e.detail}")
            result = CommandResult(
                command=command,
                outcome=_PRECONDITION_OUTCOMES[e.reason],
                message=e.detail,
            )
            if e.entity == "order":
                result.order_id = e.entity_id
            else:
                result.item_id = e.entity_id
            return result

    async def _submit_order(
        self,
        booth_id: Any,
        lines: Iterable[Union[OrderLine, dict]],
        note: Optional[str],
        total_price: Optional[int],
    ) -> CommandResult:
        try:
            request = SubmitOrder(
                booth_id=str(booth_id) if booth_id is not None else "",
                items=[line if isinstance(line, OrderLine) else OrderLine(**line) for line in lines],
                note=note,
                total_price=total_price,
            )
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e
        except TypeError as e:
            raise ValidationError(f"Malformed order items: {e}") from e

        order = await self.store.create_order(
            request.booth_id, request.items, note=request.note, total_price=request.total_price
        )
        view = OrderView.from_order(order)
        self.broadcaster.schedule(Event(type=EventType.ORDER_SUBMITTED, data=view.model_dump()))

        logger.info(f"[COMMAND] submit_order applied - order {view.order_id}, booth {view.booth_id}")
        return CommandResult(
            command="submit_order",
            outcome=CommandOutcome.APPLIED,
            message=f"Order {view.order_id} submitted",
            order_id=view.order_id,
            order=view,
        )

    async def _confirm_payment(self, order_id: int) -> CommandResult:
        affected = await self.store.set_payment_confirmed(order_id)
        if not affected:
            order = await self.store.get_order(order_id)
            if order is None:
                raise PreconditionFailed("order", order_id, PreconditionFailed.NOT_FOUND)
            raise PreconditionFailed(
                "order",
                order_id,
                PreconditionFailed.ALREADY_PROCESSED,
                f"Order {order_id} payment already confirmed",
            )

        order = await self.store.get_order(order_id)
        view = OrderView.from_order(order).model_copy(
            update={
                "payment_status": PaymentStatus.PAID.value,
                "status": OrderStatus.PROCESSING.value,
                "is_paid": True,
            }
        )
        self.broadcaster.schedule(Event(type=EventType.PAYMENT_CONFIRMED, data=view.model_dump()))

        logger.info(f"[COMMAND] confirm_payment applied - order {order_id}, {len(view.items)} items queued")
        return CommandResult(
            command="confirm_payment",
            outcome=CommandOutcome.APPLIED,
            message=f"Order {order_id} paid and sent to the kitchen",
            order_id=order_id,
            order=view,
        )

    async def _advance_item(self, command: ItemCommand, item_id: int) -> CommandResult:
        name = f"{command.value}_item"
        from_status, to_status = OrderStateMachine.item_transition(command)
        affected = await self.store.advance_item_status(item_id, from_status, to_status)
        if not affected:
            raise await self._item_precondition(item_id, from_status)

        item = await self.store.get_item(item_id)
        view = OrderItemView.from_item(item).model_copy(update={"item_status": to_status.value})
        self.broadcaster.schedule(Event(type=_ITEM_EVENTS[command], data=view.model_dump()))
        logger.info(f"[COMMAND] {name} applied - item {item_id} now {to_status.value}")

        result = CommandResult(
            command=name,
            outcome=CommandOutcome.APPLIED,
            message=f"Item {item_id} is now {to_status.value}",
            order_id=view.order_id,
            item_id=item_id,
            item=view,
        )
        if to_status is ItemStatus.SERVED:
            result.order = await self._close_order(view.order_id)
        return result

    async def _close_order(self, order_id: int) -> Optional[OrderView]:
        """
        Complete the order when its last item was served.

        The engine rule filters out orders that still have work left; the
        guarded update decides, so two final serves close the order once.
        """
        order = await self.store.get_order(order_id)
        statuses = [item.item_status for item in order.items]
        if not OrderStateMachine.order_is_complete(order.payment_status, statuses):
            return None
        if not await self.store.close_order_if_complete(order_id):
            return None
        view = OrderView.from_order(order).model_copy(update={"status": OrderStatus.COMPLETED.value})
        self.broadcaster.schedule(Event(type=EventType.ORDER_COMPLETED, data=view.model_dump()))
        logger.info(f"[COMMAND] order {order_id} completed")
        return view

    async def _item_precondition(self, item_id: int, expected: ItemStatus) -> PreconditionFailed:
        """Explain why a guarded item update matched no row."""
        item = await self.store.get_item(item_id)
        if item is None:
            return PreconditionFailed("item", item_id, PreconditionFailed.NOT_FOUND)
        if item.order.payment_status != PaymentStatus.PAID.value:
            return PreconditionFailed(
                "item", item_id, PreconditionFailed.NOT_READY, f"Order {item.order_id} is not paid yet"
            )
        current = ItemStatus(item.item_status)
        if ITEM_PIPELINE.index(current) > ITEM_PIPELINE.index(expected):
            return PreconditionFailed(
                "item",
                item_id,
                PreconditionFailed.ALREADY_PROCESSED,
                f"Item {item_id} already {current.value}",
            )
        return PreconditionFailed(
            "item",
            item_id,
            PreconditionFailed.NOT_READY,
            f"Item {item_id} is {current.value}, expected {expected.value}",
        )
