"""Payment desk and serving endpoints."""
import logging
from typing import List
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from orderflow.api.auth import require_auth
from orderflow.api.responses import command_response
from orderflow.core.dependencies import get_command_handler, get_order_store
from orderflow.services.ordering.commands import OrderCommandHandler
from orderflow.services.ordering.models import OrderItemView, OrderView
from orderflow.services.ordering.states import (
    SERVING_BOARD_STATUSES,
    OrderStatus,
    PaymentStatus,
)
from orderflow.services.persistence.orders import OrderStore

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


class OrderRef(BaseModel):
    """Body referencing an order."""
    order_id: int


class ItemRef(BaseModel):
    """Body referencing an order item."""
    item_id: int


@router.get("/orders", response_model=List[OrderView])
async def list_orders(store: OrderStore = Depends(get_order_store)):
    """All orders regardless of payment status, newest first."""
    orders = await store.list_all_orders()
    logger.info(f"[ADMIN] Listing {len(orders)} orders")
    return [OrderView.from_order(order) for order in orders]


@router.get("/unpaid-orders", response_model=List[OrderView])
async def list_unpaid_orders(store: OrderStore = Depends(get_order_store)):
    """Orders waiting for payment confirmation."""
    orders = await store.list_orders(payment_status=PaymentStatus.UNPAID)
    return [OrderView.from_order(order) for order in orders]


@router.get("/completed-orders", response_model=List[OrderView])
async def list_completed_orders(store: OrderStore = Depends(get_order_store)):
    """Orders whose items have all been served."""
    orders = await store.list_orders(status=OrderStatus.COMPLETED)
    return [OrderView.from_order(order) for order in orders]


@router.get("/active-items", response_model=List[OrderItemView])
async def list_active_items(store: OrderStore = Depends(get_order_store)):
    """Paid items not yet served, across kitchen and serving."""
    items = await store.list_active_items()
    return [OrderItemView.from_item(item) for item in items]


@router.get("/serving-items", response_model=List[OrderItemView])
async def list_serving_items(store: OrderStore = Depends(get_order_store)):
    """Items ready to be carried to their booth."""
    items = await store.list_items_by_status(*SERVING_BOARD_STATUSES, paid_only=True)
    return [OrderItemView.from_item(item) for item in items]


@router.post("/confirm-payment")
async def confirm_payment(
    body: OrderRef,
    handler: OrderCommandHandler = Depends(get_command_handler),
):
    """Confirm payment of an order and send it to the kitchen."""
    logger.info(f"[ADMIN] Payment confirmation requested - order: {body.order_id}")
    return command_response(await handler.confirm_payment(body.order_id))


@router.post("/complete-serving")
async def complete_serving(
    body: ItemRef,
    handler: OrderCommandHandler = Depends(get_command_handler),
):
    """Mark an item as delivered to its booth."""
    logger.info(f"[ADMIN] Serving completion requested - item: {body.item_id}")
    return command_response(await handler.serve_item(body.item_id))
