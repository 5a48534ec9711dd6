"""Menu API endpoints."""
import logging
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from orderflow.core.dependencies import get_menu_repository
from orderflow.db.database import get_db
from orderflow.services.menu.base import MenuItem
from orderflow.services.menu.repository import MenuRepository

router = APIRouter()
logger = logging.getLogger(__name__)


class MenuResponse(BaseModel):
    """Menu response model."""
    items: List[MenuItem]
    categories: List[str] = []


@router.get("/api/menus", response_model=MenuResponse)
async def get_menu(
    request: Request,
    db: AsyncSession = Depends(get_db),
    menu_repository: MenuRepository = Depends(get_menu_repository),
):
    """Get the catalog booth terminals order from, with the prices orders are checked against."""
    logger.info(
        f"[MENU] Request received - Client: {request.client.host if request.client else 'unknown'}"
    )
    menu = await menu_repository.get_menu(db)
    logger.info(f"[MENU] Menu loaded - {len(menu.items)} items, {len(menu.categories)} categories")
    return MenuResponse(items=menu.items, categories=menu.categories)
