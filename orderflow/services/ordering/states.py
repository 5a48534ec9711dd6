"""Order and item state machines.

Two parallel machines:

* orders: ``payment_status`` (unpaid -> paid) and ``status``
  (pending -> processing -> completed). Payment confirmation moves both at
  once; ``completed`` is derived from the items and never set directly.
* items: ``processing -> cooking -> ready_to_serve -> served``, one named
  command per step, forward only.
"""
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from orderflow.services.ordering.errors import IllegalTransition


class PaymentStatus(str, Enum):
    """Payment status of an order."""

    UNPAID = "unpaid"
    PAID = "paid"

    def __str__(self) -> str:
        return self.value


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"  # waiting for payment
    PROCESSING = "processing"  # released to the kitchen
    COMPLETED = "completed"  # every item served

    def __str__(self) -> str:
        return self.value


class ItemStatus(str, Enum):
    """Kitchen pipeline status of an order item."""

    PROCESSING = "processing"  # queued for kitchen acceptance
    COOKING = "cooking"
    READY_TO_SERVE = "ready_to_serve"
    SERVED = "served"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self is ItemStatus.SERVED

    def next(self) -> Optional["ItemStatus"]:
        """Return the single legal successor, or None for the terminal status."""
        return _ITEM_SUCCESSORS.get(self)


class ItemCommand(str, Enum):
    """Staff commands that advance an item."""

    ACCEPT = "accept"  # kitchen accepts and starts cooking
    COMPLETE = "complete"  # kitchen finished cooking
    SERVE = "serve"  # server delivered the item

    def __str__(self) -> str:
        return self.value


ITEM_PIPELINE: Tuple[ItemStatus, ...] = (
    ItemStatus.PROCESSING,
    ItemStatus.COOKING,
    ItemStatus.READY_TO_SERVE,
    ItemStatus.SERVED,
)

_ITEM_SUCCESSORS: Dict[ItemStatus, ItemStatus] = {
    current: following for current, following in zip(ITEM_PIPELINE, ITEM_PIPELINE[1:])
}

ITEM_COMMANDS: Dict[ItemCommand, Tuple[ItemStatus, ItemStatus]] = {
    ItemCommand.ACCEPT: (ItemStatus.PROCESSING, ItemStatus.COOKING),
    ItemCommand.COMPLETE: (ItemStatus.COOKING, ItemStatus.READY_TO_SERVE),
    ItemCommand.SERVE: (ItemStatus.READY_TO_SERVE, ItemStatus.SERVED),
}

TERMINAL_ITEM_STATUSES: Tuple[ItemStatus, ...] = tuple(
    status for status in ItemStatus if status.is_terminal
)

# Items shown on each staff board
KITCHEN_BOARD_STATUSES = (ItemStatus.PROCESSING, ItemStatus.COOKING)
SERVING_BOARD_STATUSES = (ItemStatus.READY_TO_SERVE,)


class OrderStateMachine:
    """Transition rules for orders and their items."""

    @staticmethod
    def item_transition(command: ItemCommand) -> Tuple[ItemStatus, ItemStatus]:
        """Return the (from, to) pair a command applies."""
        return ITEM_COMMANDS[ItemCommand(command)]

    @staticmethod
    def check_item_transition(from_status: str, to_status: str) -> Tuple[ItemStatus, ItemStatus]:
        """
        Validate a single forward step of the item pipeline.

        Raises:
            IllegalTransition: for unknown statuses, skips, repeats or regressions
        """
        try:
            current = ItemStatus(from_status)
            target = ItemStatus(to_status)
        except ValueError as e:
            raise IllegalTransition(f"Unknown item status: {e}") from e

        if current.next() is not target:
            raise IllegalTransition(
                f"Item cannot move from '{current.value}' to '{target.value}'"
            )
        return current, target

    @staticmethod
    def item_status_for_new_order() -> ItemStatus:
        return ItemStatus.PROCESSING

    @staticmethod
    def order_is_complete(payment_status: str, item_statuses: Iterable[str]) -> bool:
        """
        Check the derived completion rule.

        An order is complete when it is paid and every one of its items is
        served. An order without items never completes. The store's
        ``close_order_if_complete`` applies the same rule in its guard.
        """
        if PaymentStatus(payment_status) is not PaymentStatus.PAID:
            return False
        statuses = [ItemStatus(status) for status in item_statuses]
        return bool(statuses) and all(status.is_terminal for status in statuses)
