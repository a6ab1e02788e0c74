"""
Хранилище заказов: единственное место, где меняется состояние позиций.

Статусы позиции двигаются только вперед: pending -> cooking -> ready -> served.
Время берется из внедренных часов (clock), а не из datetime.now(),
чтобы логику отметок времени можно было проверять в тестах.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, joinedload

import config
import models
from domain import (
    ItemSnapshot,
    ItemStatus,
    MenuItemRef,
    NEXT_ITEM_STATUS,
    OrderStatus,
    STATUS_TIMESTAMP_FIELD,
    utc_now,
)
from errors import (
    InvalidTransitionError,
    KitchenError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Порядок этапов: каждая отметка не раньше предыдущих
TIMESTAMP_ORDER = ["order_time", "cooking_start_time", "ready_time", "served_time"]


@dataclass
class ItemStatusResult:
    item_id: int
    success: bool
    status: Optional[str] = None
    error_code: Optional[str] = None
    message: str = ""


@dataclass
class BatchStatusResult:
    status: str
    results: List[ItemStatusResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def succeeded_ids(self) -> List[int]:
        return [result.item_id for result in self.results if result.success]

    @property
    def failed(self) -> List[ItemStatusResult]:
        return [result for result in self.results if not result.success]

    def summary(self) -> str:
        text = f"{len(self.succeeded_ids)} of {len(self.results)} items set to {self.status}"
        if self.failed:
            text += "; failed: " + ", ".join(str(result.item_id) for result in self.failed)
        return text


@dataclass(frozen=True)
class StoreEvent:
    kind: str
    item_ids: Tuple[int, ...] = ()
    order_id: Optional[int] = None
    status: Optional[str] = None


def parse_item_status(value) -> ItemStatus:
    try:
        return ItemStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown item status: {value!r}")


def snapshot_item(item: models.OrderItem) -> ItemSnapshot:
    menu_item = item.menu_item
    return ItemSnapshot(
        id=item.id,
        order_id=item.order_id,
        menu_item=MenuItemRef(
            id=menu_item.id,
            name=menu_item.name,
            section=menu_item.section,
            kitchen_id=menu_item.kitchen_id,
            cooking_time=menu_item.cooking_time,
            price=float(menu_item.price),
        ),
        quantity=item.quantity,
        table_number=item.order.table_number,
        status=ItemStatus(item.status),
        order_time=item.order_time,
        priority=item.priority,
        cooking_start_time=item.cooking_start_time,
        ready_time=item.ready_time,
        served_time=item.served_time,
        special_instructions=item.special_instructions,
        customer_name=item.order.customer_name,
    )


class OrderStore:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now,
                 listeners: Iterable[Callable[[StoreEvent], None]] = ()):
        self.db = db
        self.clock = clock
        self._listeners = list(listeners)

    # ========== Подписка на изменения ==========

    def subscribe(self, listener: Callable[[StoreEvent], None]) -> None:
        self._listeners.append(listener)

    def _notify(self, event: StoreEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Store listener failed on {event.kind}: {e}")

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Order store commit failed: {e}")
            raise StoreUnavailableError("Order store is unavailable, try again")

    # ========== Заказы ==========

    def create_order(self, table_number: int, items: Iterable[Dict],
                     customer_name: Optional[str] = None, notes: Optional[str] = None) -> models.Order:
        if table_number is None or table_number < 1:
            raise ValidationError("Table number must be a positive integer")
        lines = list(items)
        if not lines:
            raise ValidationError("Order must contain at least one item")

        now = self.clock()
        order = models.Order(
            table_number=table_number,
            status=OrderStatus.ACTIVE.value,
            order_time=now,
            customer_name=customer_name,
            notes=notes,
        )
        total = 0.0
        for line in lines:
            quantity = line.get("quantity")
            if not isinstance(quantity, int) or quantity < 1:
                raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")
            priority = line.get("priority")
            if priority is None:
                priority = config.DEFAULT_ITEM_PRIORITY
            self._check_priority(priority)

            menu_item = self.db.query(models.MenuItem).filter(models.MenuItem.id == line.get("menu_item_id")).first()
            if not menu_item:
                raise NotFoundError(f"Menu item {line.get('menu_item_id')} not found")

            order.items.append(models.OrderItem(
                menu_item_id=menu_item.id,
                quantity=quantity,
                status=ItemStatus.PENDING.value,
                priority=priority,
                special_instructions=line.get("special_instructions"),
                order_time=now,
            ))
            total += float(menu_item.price) * quantity

        order.total = round(total, 2)
        self.db.add(order)
        self._commit()
        self.db.refresh(order)

        logger.info(f"Order {order.id} created for table {table_number} with {len(order.items)} items")
        self._notify(StoreEvent("order.created", tuple(item.id for item in order.items), order.id,
                                OrderStatus.ACTIVE.value))
        return order

    def get_order(self, order_id: int) -> models.Order:
        order = self.db.query(models.Order).options(
            joinedload(models.Order.items).joinedload(models.OrderItem.menu_item)
        ).filter(models.Order.id == order_id).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def list_active_orders(self, search: Optional[str] = None,
                           table_number: Optional[int] = None) -> List[models.Order]:
        query = self.db.query(models.Order).options(
            joinedload(models.Order.items).joinedload(models.OrderItem.menu_item)
        ).filter(models.Order.status == OrderStatus.ACTIVE.value)
        if table_number is not None:
            query = query.filter(models.Order.table_number == table_number)
        orders = query.order_by(models.Order.order_time, models.Order.id).all()

        if search:
            term = search.strip().lower()
            orders = [
                order for order in orders
                if term in (order.customer_name or "").lower() or term in str(order.table_number)
            ]
        return orders

    def update_order_status(self, order_id: int, status) -> models.Order:
        try:
            new_status = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {status!r}")

        order = self.get_order(order_id)
        if order.status != OrderStatus.ACTIVE.value or new_status == OrderStatus.ACTIVE:
            raise InvalidTransitionError(f"Order {order_id} cannot move from {order.status} to {new_status.value}")

        order.status = new_status.value
        self._commit()
        logger.info(f"Order {order_id} marked {new_status.value}")
        self._notify(StoreEvent("order.status", order_id=order_id, status=new_status.value))
        return order

    def order_progress(self, order: models.Order) -> Dict:
        counts = {status.value: 0 for status in ItemStatus}
        for item in order.items:
            counts[item.status] = counts.get(item.status, 0) + 1
        elapsed = max(0, int((self.clock() - order.order_time).total_seconds() // 60))
        return {
            "total": len(order.items),
            **counts,
            "elapsed_minutes": elapsed,
            "delayed": elapsed > config.URGENT_AFTER_MINUTES,
        }

    # ========== Позиции ==========

    def list_active_items(self, kitchen_id: Optional[str] = None,
                          section_id: Optional[str] = None) -> List[ItemSnapshot]:
        """Снимок всех позиций активных заказов (копия, не ORM-объекты)"""
        query = self.db.query(models.OrderItem).join(models.OrderItem.order).join(models.OrderItem.menu_item).options(
            contains_eager(models.OrderItem.order), contains_eager(models.OrderItem.menu_item)
        ).filter(models.Order.status == OrderStatus.ACTIVE.value)
        if kitchen_id is not None:
            query = query.filter(models.MenuItem.kitchen_id == kitchen_id)
        if section_id is not None:
            query = query.filter(models.MenuItem.section == section_id)

        try:
            items = query.order_by(models.OrderItem.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load active items: {e}")
            raise StoreUnavailableError("Order store is unavailable, try again")
        return [snapshot_item(item) for item in items]

    def _get_item(self, item_id: int) -> models.OrderItem:
        item = self.db.query(models.OrderItem).filter(models.OrderItem.id == item_id).first()
        if not item:
            raise NotFoundError(f"Order item {item_id} not found")
        return item

    def item_kitchen(self, item_id: int) -> str:
        return self._get_item(item_id).menu_item.kitchen_id

    def _require_active_order(self, item: models.OrderItem) -> None:
        if item.order.status != OrderStatus.ACTIVE.value:
            raise InvalidTransitionError(f"Order {item.order_id} is {item.order.status}, item {item.id} is frozen")

    def transition_item(self, item_id: int, new_status) -> models.OrderItem:
        """Переводит позицию в следующий статус без коммита; ошибки бросает"""
        target = parse_item_status(new_status)
        item = self._get_item(item_id)
        current = ItemStatus(item.status)

        self._require_active_order(item)
        if NEXT_ITEM_STATUS.get(current) != target:
            raise InvalidTransitionError(f"Item {item_id} cannot move from {current.value} to {target.value}")

        item.status = target.value
        stamp_field = STATUS_TIMESTAMP_FIELD[target]
        if getattr(item, stamp_field) is None:
            earlier = TIMESTAMP_ORDER[:TIMESTAMP_ORDER.index(stamp_field)]
            floor = max(getattr(item, name) for name in earlier if getattr(item, name) is not None)
            setattr(item, stamp_field, max(self.clock(), floor))

        logger.info(f"Item {item_id}: {current.value} -> {target.value}")
        return item

    def _apply_status(self, item_id: int, new_status) -> ItemStatusResult:
        try:
            item = self.transition_item(item_id, new_status)
            self._commit()
            return ItemStatusResult(item_id=item_id, success=True, status=item.status,
                                    message=f"Item marked as {item.status}")
        except KitchenError as e:
            self.db.rollback()
            logger.warning(f"Status change for item {item_id} rejected: {e.detail}")
            return ItemStatusResult(item_id=item_id, success=False, error_code=e.error_code, message=e.detail)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Status change for item {item_id} failed in store: {e}")
            return ItemStatusResult(item_id=item_id, success=False, error_code=StoreUnavailableError.error_code,
                                    message="Order store is unavailable, try again")

    def set_item_status(self, item_id: int, new_status) -> ItemStatusResult:
        result = self._apply_status(item_id, new_status)
        if result.success:
            self._notify(StoreEvent("item.status", (item_id,), status=result.status))
        return result

    def set_items_status_batch(self, item_ids: Iterable[int], new_status) -> BatchStatusResult:
        """Применяет set_item_status к каждой позиции; ошибка одной не мешает остальным"""
        status_value = getattr(new_status, "value", new_status)
        batch = BatchStatusResult(status=str(status_value))
        seen = set()
        for item_id in item_ids:
            if item_id in seen:
                continue
            seen.add(item_id)
            batch.results.append(self._apply_status(item_id, new_status))

        if batch.failed:
            logger.warning(f"Batch status change partially failed: {batch.summary()}")
        if batch.succeeded_ids:
            self._notify(StoreEvent("item.status", tuple(batch.succeeded_ids), status=batch.status))
        return batch

    def _check_priority(self, priority) -> None:
        if not isinstance(priority, int) or not 0 <= priority <= config.MAX_ITEM_PRIORITY:
            raise ValidationError(f"Priority must be between 0 and {config.MAX_ITEM_PRIORITY}")

    def set_item_priority(self, item_id: int, priority: int) -> models.OrderItem:
        self._check_priority(priority)
        item = self._get_item(item_id)
        self._require_active_order(item)
        item.priority = priority
        self._commit()
        logger.info(f"Item {item_id} priority set to {priority}")
        self._notify(StoreEvent("item.priority", (item_id,)))
        return item

    # ========== Сводка для менеджера ==========

    def dashboard_stats(self) -> Dict[str, int]:
        items = self.list_active_items()
        stats = {
            "active_orders": self.db.query(models.Order).filter(
                models.Order.status == OrderStatus.ACTIVE.value
            ).count(),
            "total_items": len(items),
        }
        for status in ItemStatus:
            stats[f"{status.value}_items"] = sum(1 for item in items if item.status == status)
        return stats
