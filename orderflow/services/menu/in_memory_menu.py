"""YAML-backed menu provider."""
import logging
import yaml
from pathlib import Path
from typing import Optional
from orderflow.services.menu.base import Menu, MenuItem, MenuProvider

logger = logging.getLogger(__name__)

BUNDLED_MENU = Path(__file__).parent / "data" / "menu.yaml"

# Served when the configured file is missing, so a fresh install can still take orders
FALLBACK_MENU = Menu(
    items=[
        MenuItem(menu_id=1, name="fried chicken", price=15000, category="mains"),
        MenuItem(menu_id=2, name="tteokbokki", price=9000, category="mains"),
        MenuItem(menu_id=3, name="soda", price=2000, category="drinks"),
    ],
    categories=["mains", "drinks"],
)


class InMemoryMenuProvider(MenuProvider):
    """Loads the catalog from a YAML file once and keeps it in memory."""

    def __init__(self, menu_file: Optional[str] = None):
        self.menu_file = Path(menu_file) if menu_file else BUNDLED_MENU
        self._menu: Optional[Menu] = None

    async def _load_menu(self) -> Menu:
        if self._menu is None:
            self._menu = self._read() if self.menu_file.exists() else FALLBACK_MENU
        return self._menu

    def _read(self) -> Menu:
        """
        Parse the YAML catalog.

        Categories keep the file's display order; without a list they are
        collected from the items.

        Raises:
            ValueError: two entries share a menu_id
        """
        with open(self.menu_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        items = [MenuItem(**entry) for entry in data.get("items", [])]
        seen = set()
        for item in items:
            if item.menu_id in seen:
                raise ValueError(f"Duplicate menu_id {item.menu_id} in {self.menu_file}")
            seen.add(item.menu_id)

        categories = data.get("categories") or sorted(
            {item.category for item in items if item.category}
        )
        logger.info(f"[MENU] Loaded {len(items)} items from {self.menu_file}")
        return Menu(items=items, categories=categories)

    async def get_menu(self) -> Menu:
        return await self._load_menu()
