# models.py
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Float, DateTime, Text, Table
from sqlalchemy.orm import relationship

from database import Base
from domain import utc_now

user_kitchen_access = Table(
    "user_kitchen_access",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("kitchen_id", String(50), ForeignKey("kitchens.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    last_login = Column(DateTime, nullable=True)

    kitchens = relationship("Kitchen", secondary=user_kitchen_access)

    @property
    def kitchen_access(self):
        return [kitchen.id for kitchen in self.kitchens]


class Kitchen(Base):
    __tablename__ = "kitchens"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    location = Column(String(255), nullable=False, default="")
    is_active = Column(Boolean, default=True, nullable=False)

    sections = relationship("KitchenSection", back_populates="kitchen")


class KitchenSection(Base):
    __tablename__ = "kitchen_sections"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#888888")
    kitchen_id = Column(String(50), ForeignKey("kitchens.id"), nullable=False)
    printer_ip = Column(String(45), nullable=True)

    kitchen = relationship("Kitchen", back_populates="sections")


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    section = Column(String(20), nullable=False, index=True)
    kitchen_id = Column(String(50), ForeignKey("kitchens.id"), nullable=False, index=True)
    cooking_time = Column(Integer, nullable=False, default=0)
    price = Column(Float, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    table_number = Column(Integer, nullable=False)
    status = Column(String(20), default="active", nullable=False, index=True)
    order_time = Column(DateTime, nullable=False, default=utc_now)
    total = Column(Float, nullable=False, default=0)
    customer_name = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(String(50), ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(Integer, nullable=False, default=50)
    special_instructions = Column(Text, nullable=True)
    order_time = Column(DateTime, nullable=False, default=utc_now)
    cooking_start_time = Column(DateTime, nullable=True)
    ready_time = Column(DateTime, nullable=True)
    served_time = Column(DateTime, nullable=True)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")
