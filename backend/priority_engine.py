"""
Приоритеты и партии для кухонного дисплея.

Все функции чистые: на вход снимок позиций (ItemSnapshot) и момент времени
now, на выход новые значения. Ничего не кешируется и не сохраняется,
каждое обновление доски пересчитывает результат с нуля.
"""
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import config
from domain import ItemSnapshot, ItemStatus, Urgency


@dataclass(frozen=True)
class KitchenTicket:
    item: ItemSnapshot
    elapsed_minutes: int
    urgency: Urgency


@dataclass(frozen=True)
class BatchCookingSuggestion:
    menu_item_id: str
    menu_item_name: str
    total_quantity: int
    order_ids: Tuple[int, ...]
    table_numbers: Tuple[int, ...]
    avg_wait_time: float
    can_batch: bool
    kitchen_id: str


def elapsed_minutes(item: ItemSnapshot, now: datetime) -> int:
    """Целые минуты с момента заказа (не меньше нуля)"""
    seconds = (now - item.order_time).total_seconds()
    return max(0, int(seconds // 60))


def classify_urgency(item: ItemSnapshot, now: datetime) -> Urgency:
    # Только для подсветки: на порядок тикетов не влияет
    if elapsed_minutes(item, now) > config.URGENT_AFTER_MINUTES:
        return Urgency.URGENT
    if item.priority > config.HIGH_PRIORITY_THRESHOLD:
        return Urgency.HIGH
    if item.priority > config.MEDIUM_PRIORITY_THRESHOLD:
        return Urgency.MEDIUM
    return Urgency.LOW


def display_sort_key(item: ItemSnapshot):
    return (-item.priority, item.order_time, item.id)


def order_for_display(items: Iterable[ItemSnapshot]) -> List[ItemSnapshot]:
    """Сначала больший приоритет, при равенстве - более ранний заказ"""
    return sorted(items, key=display_sort_key)


def filter_items(items: Iterable[ItemSnapshot], kitchen_id: Optional[str] = None,
                 section_id: Optional[str] = None) -> List[ItemSnapshot]:
    return [
        item for item in items
        if (kitchen_id is None or item.kitchen_id == kitchen_id)
        and (section_id is None or item.section == section_id)
    ]


def build_tickets(items: Iterable[ItemSnapshot], now: datetime) -> List[KitchenTicket]:
    return [
        KitchenTicket(item=item, elapsed_minutes=elapsed_minutes(item, now), urgency=classify_urgency(item, now))
        for item in order_for_display(items)
    ]


def generate_batch_suggestions(items: Iterable[ItemSnapshot], now: datetime) -> List[BatchCookingSuggestion]:
    """
    Группирует ожидающие позиции по блюду меню и предлагает готовить их
    одной партией. Группа из одной позиции предложения не дает.
    """
    groups = OrderedDict()
    for item in items:
        if item.status != ItemStatus.PENDING:
            continue
        groups.setdefault(item.menu_item_id, []).append(item)

    suggestions = []
    for menu_item_id, group in groups.items():
        if len(group) < 2:
            continue

        total_quantity = sum(item.quantity for item in group)
        wait_seconds = sum((now - item.order_time).total_seconds() for item in group)
        avg_wait_time = wait_seconds / len(group) / 60

        suggestions.append(BatchCookingSuggestion(
            menu_item_id=menu_item_id,
            menu_item_name=group[0].menu_item.name,
            total_quantity=total_quantity,
            order_ids=tuple(item.id for item in group),
            table_numbers=tuple(sorted({item.table_number for item in group})),
            avg_wait_time=avg_wait_time,
            can_batch=total_quantity <= config.BATCH_SIZE_LIMIT,
            kitchen_id=group[0].kitchen_id,
        ))

    return suggestions
