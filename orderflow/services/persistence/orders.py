"""Order persistence service.

Every mutation here is a single conditional statement scoped to one order or
one item, so concurrent commands interleaving at await points cannot race a
read-then-write. The only multi-row write is order creation, which inserts
the order and all of its items in one transaction.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, selectinload

from orderflow.db.models import Menu, Order, OrderItem
from orderflow.services.ordering.errors import StoreError, ValidationError
from orderflow.services.ordering.models import OrderLine
from orderflow.services.ordering.states import (
    TERMINAL_ITEM_STATUSES,
    ItemStatus,
    OrderStateMachine,
    OrderStatus,
    PaymentStatus,
)

logger = logging.getLogger(__name__)


class OrderStore:
    """Durable store for orders and order items."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        booth_id: str,
        lines: Iterable[OrderLine],
        note: Optional[str] = None,
        total_price: Optional[int] = None,
    ) -> Order:
        """
        Create an order and all of its items atomically.

        Args:
            booth_id: Table/booth the order comes from
            lines: Requested menu lines
            note: Optional free-text note
            total_price: Total the terminal computed; checked when given

        Returns:
            The committed order with its items

        Raises:
            ValidationError: unknown menu id, bad quantity, stale price or total mismatch
            StoreError: persistence fault, nothing was written
        """
        lines = list(lines)
        if not str(booth_id or "").strip():
            raise ValidationError("booth_id is required")
        if not lines:
            raise ValidationError("Order must contain at least one item")

        menu_ids = {line.menu_id for line in lines}
        result = await self._execute(
            select(Menu).where(Menu.menu_id.in_(menu_ids)), "load menu"
        )
        menus = {menu.menu_id: menu for menu in result.scalars().all()}

        try:
            computed_total, items = self._price_lines(lines, menus)
            if total_price is not None and total_price != computed_total:
                raise ValidationError(
                    f"Submitted total {total_price} does not match computed total {computed_total}"
                )
        except ValidationError:
            await self.db.rollback()
            raise

        order = Order(
            booth_id=str(booth_id).strip(),
            total_price=computed_total,
            note=note or None,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
            items=items,
        )
        self.db.add(order)
        try:
            await self.db.flush()
            order_id = order.order_id
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"[ORDER STORE] Failed to create order for booth {booth_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            raise StoreError(f"Could not create order: {e}") from e

        logger.info(
            f"[ORDER STORE] Created order {order_id} for booth {booth_id} - "
            f"{len(items)} items, total {computed_total}"
        )
        return await self.get_order(order_id)

    @staticmethod
    def _price_lines(
        lines: Sequence[OrderLine], menus: Dict[int, Menu]
    ) -> Tuple[int, List[OrderItem]]:
        """Build item rows from the current menu and compute the order total."""
        total = 0
        items = []
        for line in lines:
            if not isinstance(line.quantity, int) or line.quantity <= 0:
                raise ValidationError(f"Quantity for menu {line.menu_id} must be a positive integer")
            menu = menus.get(line.menu_id)
            if menu is None:
                raise ValidationError(f"Menu item {line.menu_id} does not exist")
            if line.unit_price is not None and line.unit_price != menu.price:
                raise ValidationError(
                    f"Price of '{menu.name}' changed from {line.unit_price} to {menu.price}"
                )
            total += menu.price * line.quantity
            items.append(
                OrderItem(
                    menu_id=menu.menu_id,
                    menu_name=menu.name,
                    quantity=line.quantity,
                    unit_price=menu.price,
                    item_status=OrderStateMachine.item_status_for_new_order().value,
                )
            )
        return total, items

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _orders_query():
        return (
            select(Order)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _items_query():
        return (
            select(OrderItem)
            .join(Order, OrderItem.order_id == Order.order_id)
            .options(contains_eager(OrderItem.order))
            .execution_options(populate_existing=True)
        )

    async def get_order(self, order_id: int) -> Optional[Order]:
        """Get order by id with items."""
        result = await self._execute(
            self._orders_query().where(Order.order_id == order_id), "get order"
        )
        return result.scalar_one_or_none()

    async def get_item(self, item_id: int) -> Optional[OrderItem]:
        """Get item by id with its parent order."""
        result = await self._execute(
            self._items_query().where(OrderItem.item_id == item_id), "get item"
        )
        return result.scalar_one_or_none()

    async def list_orders_by_booth(self, booth_id: str) -> List[Order]:
        """Order history of one booth, newest first."""
        result = await self._execute(
            self._orders_query()
            .where(Order.booth_id == str(booth_id))
            .order_by(Order.order_time.desc(), Order.order_id.desc()),
            "list orders by booth",
        )
        return list(result.scalars().all())

    async def list_all_orders(self) -> List[Order]:
        """All orders, newest first."""
        return await self.list_orders()

    async def list_orders(
        self,
        payment_status: Optional[PaymentStatus] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        """Orders filtered by payment and/or lifecycle status, newest first."""
        query = self._orders_query()
        if payment_status is not None:
            query = query.where(Order.payment_status == PaymentStatus(payment_status).value)
        if status is not None:
            query = query.where(Order.status == OrderStatus(status).value)
        result = await self._execute(
            query.order_by(Order.order_time.desc(), Order.order_id.desc()), "list orders"
        )
        return list(result.scalars().all())

    async def list_items_by_status(
        self, *statuses: ItemStatus, paid_only: bool = False
    ) -> List[OrderItem]:
        """Items in any of the given statuses, oldest order first."""
        values = [ItemStatus(status).value for status in statuses]
        query = self._items_query().where(OrderItem.item_status.in_(values))
        if paid_only:
            query = query.where(Order.payment_status == PaymentStatus.PAID.value)
        result = await self._execute(
            query.order_by(Order.order_time, OrderItem.item_id), "list items by status"
        )
        return list(result.scalars().unique().all())

    async def list_active_items(self) -> List[OrderItem]:
        """Items of paid orders that have not been served yet."""
        active = [status for status in ItemStatus if not status.is_terminal]
        return await self.list_items_by_status(*active, paid_only=True)

    # ------------------------------------------------------------------
    # Conditional transitions
    # ------------------------------------------------------------------

    async def set_payment_confirmed(self, order_id: int) -> int:
        """
        Mark an unpaid order paid and release it to the kitchen.

        Returns:
            Affected rows; 0 means unknown id or already paid
        """
        statement = (
            update(Order)
            .where(
                Order.order_id == order_id,
                Order.payment_status == PaymentStatus.UNPAID.value,
                Order.status == OrderStatus.PENDING.value,
            )
            .values(
                payment_status=PaymentStatus.PAID.value,
                status=OrderStatus.PROCESSING.value,
            )
            .execution_options(synchronize_session=False)
        )
        affected = await self._execute_update(statement, f"confirm payment of order {order_id}")
        logger.info(f"[ORDER STORE] Payment confirmation for order {order_id} - affected rows: {affected}")
        return affected

    async def advance_item_status(self, item_id: int, from_status: str, to_status: str) -> int:
        """
        Move an item one step forward, guarded by its expected current status.

        The parent order must be paid; unpaid orders never reach the kitchen.

        Returns:
            Affected rows; 0 means unknown id, wrong current status or unpaid order

        Raises:
            IllegalTransition: the pair is not a single forward step
        """
        current, target = OrderStateMachine.check_item_transition(from_status, to_status)
        paid_orders = select(Order.order_id).where(
            Order.payment_status == PaymentStatus.PAID.value
        )
        statement = (
            update(OrderItem)
            .where(
                OrderItem.item_id == item_id,
                OrderItem.item_status == current.value,
                OrderItem.order_id.in_(paid_orders),
            )
            .values(item_status=target.value)
            .execution_options(synchronize_session=False)
        )
        affected = await self._execute_update(
            statement, f"advance item {item_id} {current.value} -> {target.value}"
        )
        logger.info(
            f"[ORDER STORE] Item {item_id} {current.value} -> {target.value} - affected rows: {affected}"
        )
        return affected

    async def close_order_if_complete(self, order_id: int) -> int:
        """
        Complete a paid order once every one of its items is served.

        Idempotent: returns 1 only for the call that closed the order.
        """
        unserved = select(OrderItem.item_id).where(
            OrderItem.order_id == order_id,
            OrderItem.item_status.notin_([status.value for status in TERMINAL_ITEM_STATUSES]),
        )
        any_item = select(OrderItem.item_id).where(OrderItem.order_id == order_id)
        statement = (
            update(Order)
            .where(
                Order.order_id == order_id,
                Order.payment_status == PaymentStatus.PAID.value,
                Order.status == OrderStatus.PROCESSING.value,
                any_item.exists(),
                ~unserved.exists(),
            )
            .values(status=OrderStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        affected = await self._execute_update(statement, f"close order {order_id}")
        if affected:
            logger.info(f"[ORDER STORE] Order {order_id} completed")
        return affected

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _execute(self, statement, action: str):
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"[ORDER STORE] Failed to {action}: {type(e).__name__}: {e}", exc_info=True
            )
            raise StoreError(f"Could not {action}: {e}") from e

    async def _execute_update(self, statement, action: str) -> int:
        try:
            result = await self.db.execute(statement)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"[ORDER STORE] Failed to {action}: {type(e).__name__}: {e}", exc_info=True
            )
            raise StoreError(f"Could not {action}: {e}") from e
        return result.rowcount
