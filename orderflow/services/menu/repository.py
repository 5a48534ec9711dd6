"""Menu repository."""
import logging
from typing import List
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.db.models import Menu as MenuRow
from orderflow.services.menu.base import Menu, MenuItem, MenuProvider
from orderflow.services.ordering.errors import StoreError

logger = logging.getLogger(__name__)


class MenuRepository:
    """
    Repository for menu operations.

    The menus table is the catalog: terminals are shown what orders are
    priced against. The provider only seeds an empty table.
    """

    def __init__(self, provider: MenuProvider):
        self.provider = provider

    async def get_menu(self, db: AsyncSession) -> Menu:
        """
        Get the full menu from the menus table, by menu id.

        Raises:
            StoreError: the table could not be read
        """
        try:
            result = await db.execute(select(MenuRow).order_by(MenuRow.menu_id))
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[MENU] Failed to read catalog: {type(e).__name__}: {e}")
            raise StoreError(f"Could not read menu: {e}") from e
        items = [MenuItem.model_validate(row) for row in result.scalars().all()]

        # Display order is the order categories first appear in
        categories: List[str] = []
        for item in items:
            if item.category and item.category not in categories:
                categories.append(item.category)
        return Menu(items=items, categories=categories)

    async def sync_to_database(self, db: AsyncSession) -> int:
        """
        Seed the menus table from the provider when it is empty.

        The ordering core prices orders from the menus table, so the table
        has to exist before the first submission. Existing rows are never
        touched here; catalog editing lives outside this service.

        Returns:
            Number of rows inserted
        """
        existing = await db.scalar(select(func.count()).select_from(MenuRow))
        if existing:
            logger.info(f"[MENU] Catalog already present ({existing} rows), skipping seed")
            return 0

        menu = await self.provider.get_menu()
        for item in menu.items:
            db.add(
                MenuRow(
                    menu_id=item.menu_id,
                    name=item.name,
                    price=item.price,
                    category=item.category,
                    description=item.description,
                    image_ref=item.image_ref,
                )
            )
        await db.commit()
        logger.info(f"[MENU] Seeded catalog with {len(menu.items)} items")
        return len(menu.items)
