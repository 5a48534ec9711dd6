"""Database models."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import declarative_base, relationship

from orderflow.services.ordering.states import ItemStatus, OrderStatus, PaymentStatus

Base = declarative_base()


class Menu(Base):
    """Menu catalog row. Read-only to the ordering core."""

    __tablename__ = "menus"

    menu_id = Column(Integer, primary_key=True, index=True, autoincrement=False)
    name = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    category = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    image_ref = Column(String, nullable=True)


class Order(Base):
    """Order model."""

    __tablename__ = "orders"

    order_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booth_id = Column(String, index=True, nullable=False)
    total_price = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    order_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    status = Column(String, default=OrderStatus.PENDING.value, nullable=False)  # pending, processing, completed
    payment_status = Column(String, default=PaymentStatus.UNPAID.value, nullable=False)  # unpaid, paid

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.item_id",
    )


class OrderItem(Base):
    """Order line item with the menu name and price captured at order time."""

    __tablename__ = "order_items"

    item_id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.order_id"), index=True, nullable=False)
    menu_id = Column(Integer, ForeignKey("menus.menu_id"), nullable=False)
    menu_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    item_status = Column(String, default=ItemStatus.PROCESSING.value, index=True, nullable=False)

    # Relationships
    order = relationship("Order", back_populates="items")
