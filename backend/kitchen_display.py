"""
Сервис кухонного дисплея: связывает хранилище заказов и движок приоритетов.

Доска не обновляется инкрементально: каждый запрос берет свежий снимок
из хранилища и пересчитывает тикеты и партии. Устаревший результат
обновления (если за ним уже начато более новое) отбрасывается.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

from domain import ItemStatus, utc_now
from errors import NotFoundError
from order_store import BatchStatusResult, OrderStore
from priority_engine import (
    BatchCookingSuggestion,
    KitchenTicket,
    build_tickets,
    filter_items,
    generate_batch_suggestions,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotRefresher(Generic[T]):
    """
    Каждое обновление получает номер поколения. Опубликовать результат
    может только самое новое из начатых обновлений.
    """

    def __init__(self, load: Optional[Callable[[], T]] = None, on_publish: Optional[Callable[[T], None]] = None):
        self._load = load
        self._on_publish = on_publish
        self._lock = threading.Lock()
        self._generation = 0
        self.latest: Optional[T] = None

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def publish(self, token: int, snapshot: T) -> bool:
        with self._lock:
            if token != self._generation:
                logger.debug(f"Refresh {token} superseded by {self._generation}, result discarded")
                return False
            self.latest = snapshot
        if self._on_publish:
            self._on_publish(snapshot)
        return True

    def refresh(self, load: Optional[Callable[[], T]] = None) -> Tuple[T, bool]:
        """Возвращает свежий снимок и признак, был ли он опубликован"""
        token = self.begin()
        snapshot = (load or self._load)()
        return snapshot, self.publish(token, snapshot)


class KitchenDisplayService:
    def __init__(self, store: OrderStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    def list_active_items(self, kitchen_id: Optional[str] = None,
                          section_id: Optional[str] = None) -> List[KitchenTicket]:
        items = self.store.list_active_items(kitchen_id=kitchen_id, section_id=section_id)
        return build_tickets(items, self.clock())

    def list_batch_suggestions(self, kitchen_id: Optional[str] = None) -> List[BatchCookingSuggestion]:
        items = self.store.list_active_items(kitchen_id=kitchen_id)
        return generate_batch_suggestions(items, self.clock())

    def apply_batch(self, suggestion: BatchCookingSuggestion) -> BatchStatusResult:
        logger.info(f"Starting batch of {suggestion.menu_item_id}: items {list(suggestion.order_ids)}")
        return self.store.set_items_status_batch(suggestion.order_ids, ItemStatus.COOKING)

    def find_suggestion(self, menu_item_id: str) -> BatchCookingSuggestion:
        for suggestion in self.list_batch_suggestions():
            if suggestion.menu_item_id == menu_item_id:
                return suggestion
        raise NotFoundError(f"No batch suggestion for menu item {menu_item_id}")

    def start_batch(self, menu_item_id: str) -> BatchStatusResult:
        return self.apply_batch(self.find_suggestion(menu_item_id))

    def board(self, kitchen_id: Optional[str] = None, section_id: Optional[str] = None) -> dict:
        """Тикеты и партии из одного снимка, чтобы они не расходились между собой"""
        items = self.store.list_active_items()
        now = self.clock()
        return {
            "generated_at": now,
            "tickets": build_tickets(filter_items(items, kitchen_id=kitchen_id, section_id=section_id), now),
            "batch_suggestions": generate_batch_suggestions(filter_items(items, kitchen_id=kitchen_id), now),
        }
