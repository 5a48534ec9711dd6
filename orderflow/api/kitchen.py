"""Kitchen endpoints."""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from orderflow.api.auth import require_auth
from orderflow.api.responses import command_response
from orderflow.core.dependencies import get_command_handler, get_order_store
from orderflow.services.ordering.commands import OrderCommandHandler
from orderflow.services.ordering.models import OrderItemView
from orderflow.services.ordering.states import KITCHEN_BOARD_STATUSES, ItemStatus
from orderflow.services.persistence.orders import OrderStore

router = APIRouter(prefix="/api/kitchen", dependencies=[Depends(require_auth)])
logger = logging.getLogger(__name__)


class ItemRef(BaseModel):
    """Body referencing an order item."""
    item_id: int


class StatusChange(BaseModel):
    """Kitchen board status change."""
    item_id: int
    new_status: str


@router.get("/items", response_model=List[OrderItemView])
async def list_kitchen_items(store: OrderStore = Depends(get_order_store)):
    """Paid items waiting for or being cooked, oldest order first."""
    items = await store.list_items_by_status(*KITCHEN_BOARD_STATUSES, paid_only=True)
    return [OrderItemView.from_item(item) for item in items]


@router.post("/accept")
async def accept_item(
    body: ItemRef,
    handler: OrderCommandHandler = Depends(get_command_handler),
):
    """Start cooking a queued item."""
    logger.info(f"[KITCHEN] Accept requested - item: {body.item_id}")
    return command_response(await handler.accept_item(body.item_id))


@router.post("/complete")
async def complete_item(
    body: ItemRef,
    handler: OrderCommandHandler = Depends(get_command_handler),
):
    """Finish cooking an item and hand it to serving."""
    logger.info(f"[KITCHEN] Complete requested - item: {body.item_id}")
    return command_response(await handler.complete_item(body.item_id))


@router.post("/change-status")
async def change_status(
    body: StatusChange,
    handler: OrderCommandHandler = Depends(get_command_handler),
):
    """Board-style status change, mapped onto accept/complete."""
    if body.new_status == ItemStatus.COOKING.value:
        result = await handler.accept_item(body.item_id)
    elif body.new_status == ItemStatus.READY_TO_SERVE.value:
        result = await handler.complete_item(body.item_id)
    else:
        raise HTTPException(status_code=400, detail=f"Unsupported kitchen status: {body.new_status}")
    return command_response(result)
