"""Menu catalog models and provider interface."""
from abc import ABC, abstractmethod
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class MenuItem(BaseModel):
    """Catalog entry shown on booth terminals."""

    model_config = ConfigDict(from_attributes=True)

    menu_id: int
    name: str
    price: int = Field(ge=0)  # minor currency units, no floats
    category: Optional[str] = None
    description: Optional[str] = None
    image_ref: Optional[str] = None


class Menu(BaseModel):
    """Full catalog with display category order."""

    items: List[MenuItem]
    categories: List[str] = []


class MenuProvider(ABC):
    """Source of the catalog that seeds the menus table."""

    @abstractmethod
    async def get_menu(self) -> Menu:
        ...
