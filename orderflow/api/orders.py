"""Customer order endpoints."""
import logging
from typing import List
from fastapi import APIRouter, Depends, Request

from orderflow.api.responses import command_response
from orderflow.core.dependencies import get_command_handler, get_order_store
from orderflow.services.ordering.commands import OrderCommandHandler
from orderflow.services.ordering.models import OrderView, SubmitOrder
from orderflow.services.persistence.orders import OrderStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/api/orders")
async def submit_order(
    order: SubmitOrder,
    request: Request,
    handler: OrderCommandHandler = Depends(get_command_handler),
):
    """Submit a new order from a booth terminal."""
    logger.info(
        f"[ORDERS] Submission received - booth: {order.booth_id}, lines: {len(order.items)}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )
    result = await handler.submit_order(
        order.booth_id, order.items, note=order.note, total_price=order.total_price
    )
    return command_response(result)


@router.get("/api/orders/{booth_id}", response_model=List[OrderView])
async def get_order_history(
    booth_id: str,
    store: OrderStore = Depends(get_order_store),
):
    """Get the order history of a booth, newest first."""
    logger.info(f"[ORDERS HISTORY] Request received - booth: {booth_id}")
    orders = await store.list_orders_by_booth(booth_id)
    logger.info(f"[ORDERS HISTORY] Found {len(orders)} orders for booth {booth_id}")
    return [OrderView.from_order(order) for order in orders]
