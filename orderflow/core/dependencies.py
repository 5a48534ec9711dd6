"""FastAPI dependencies."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.core.config import settings
from orderflow.db.database import get_db
from orderflow.services.menu.repository import MenuRepository
from orderflow.services.menu.in_memory_menu import InMemoryMenuProvider
from orderflow.services.ordering.commands import OrderCommandHandler
from orderflow.services.persistence.orders import OrderStore
from orderflow.services.realtime.broadcaster import Broadcaster
from orderflow.services.realtime.registry import SessionRegistry

# Process-wide realtime state, rebuilt empty on every start
registry = SessionRegistry()
broadcaster = Broadcaster(registry, send_timeout=settings.broadcast_send_timeout)


def get_menu_repository() -> MenuRepository:
    """Get menu repository instance."""
    return MenuRepository(provider=InMemoryMenuProvider(menu_file=settings.menu_file))


def get_registry() -> SessionRegistry:
    """Get the live session registry."""
    return registry


def get_broadcaster() -> Broadcaster:
    """Get the synchronization broadcaster."""
    return broadcaster


def get_order_store(db: AsyncSession = Depends(get_db)) -> OrderStore:
    """Get an order store bound to the request session."""
    return OrderStore(db)


def get_command_handler(
    store: OrderStore = Depends(get_order_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> OrderCommandHandler:
    """Get the order command handler for this request."""
    return OrderCommandHandler(store, broadcaster)
