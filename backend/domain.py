"""
Типы предметной области, общие для хранилища, движка приоритетов и API.

ItemSnapshot - неизменяемая копия позиции заказа на момент чтения:
движок работает только с ними и никогда не трогает ORM-объекты.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    # В базе храним наивное UTC-время
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ItemStatus(str, Enum):
    PENDING = "pending"
    COOKING = "cooking"
    READY = "ready"
    SERVED = "served"


class OrderStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    CAPTAIN = "captain"
    KITCHEN = "kitchen"


class Section(str, Enum):
    GRILL = "grill"
    SALAD = "salad"
    BEVERAGE = "beverage"
    DESSERT = "dessert"
    APPETIZER = "appetizer"
    MAIN = "main"
    SOUP = "soup"


class Urgency(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Единственный допустимый следующий статус для каждой позиции
NEXT_ITEM_STATUS = {
    ItemStatus.PENDING: ItemStatus.COOKING,
    ItemStatus.COOKING: ItemStatus.READY,
    ItemStatus.READY: ItemStatus.SERVED,
}

# Поле с отметкой времени, которое ставится при входе в статус
STATUS_TIMESTAMP_FIELD = {
    ItemStatus.COOKING: "cooking_start_time",
    ItemStatus.READY: "ready_time",
    ItemStatus.SERVED: "served_time",
}


@dataclass(frozen=True)
class MenuItemRef:
    id: str
    name: str
    section: str
    kitchen_id: str
    cooking_time: int
    price: float


@dataclass(frozen=True)
class ItemSnapshot:
    id: int
    order_id: int
    menu_item: MenuItemRef
    quantity: int
    table_number: int
    status: ItemStatus
    order_time: datetime
    priority: int
    cooking_start_time: Optional[datetime] = None
    ready_time: Optional[datetime] = None
    served_time: Optional[datetime] = None
    special_instructions: Optional[str] = None
    customer_name: Optional[str] = None

    @property
    def menu_item_id(self) -> str:
        return self.menu_item.id

    @property
    def kitchen_id(self) -> str:
        return self.menu_item.kitchen_id

    @property
    def section(self) -> str:
        return self.menu_item.section
