from datetime import datetime, timedelta

import pytest

import config
from domain import ItemSnapshot, ItemStatus, MenuItemRef, Urgency
from priority_engine import (
    build_tickets,
    classify_urgency,
    elapsed_minutes,
    filter_items,
    generate_batch_suggestions,
    order_for_display,
)

NOW = datetime(2024, 5, 1, 12, 0, 0)

GRILL = MenuItemRef(id="grill-1", name="Grilled Chicken Breast", section="grill", kitchen_id="k1",
                    cooking_time=15, price=24.99)
STEAK = MenuItemRef(id="grill-2", name="Beef Steak", section="grill", kitchen_id="k1",
                    cooking_time=20, price=34.99)
JUICE = MenuItemRef(id="beverage-1", name="Fresh Orange Juice", section="beverage", kitchen_id="k2",
                    cooking_time=2, price=6.99)


def make_item(item_id, menu_item=GRILL, quantity=1, table=1, status=ItemStatus.PENDING,
              minutes_ago=0, priority=50):
    return ItemSnapshot(
        id=item_id,
        order_id=item_id,
        menu_item=menu_item,
        quantity=quantity,
        table_number=table,
        status=status,
        order_time=NOW - timedelta(minutes=minutes_ago),
        priority=priority,
    )


class TestDisplayOrdering:
    def test_higher_priority_first(self):
        items = [make_item(1, priority=60), make_item(2, priority=95), make_item(3, priority=75)]

        assert [item.id for item in order_for_display(items)] == [2, 3, 1]

    def test_equal_priority_earlier_order_first(self):
        items = [make_item(1, minutes_ago=5), make_item(2, minutes_ago=20), make_item(3, minutes_ago=10)]

        assert [item.id for item in order_for_display(items)] == [2, 3, 1]

    def test_urgent_item_does_not_jump_the_queue(self):
        """Срочность только подсвечивает тикет, порядок остается по приоритету"""
        old_low = make_item(1, priority=10, minutes_ago=45)
        fresh_high = make_item(2, priority=95, minutes_ago=1)

        tickets = build_tickets([old_low, fresh_high], NOW)

        assert [ticket.item.id for ticket in tickets] == [2, 1]
        assert tickets[1].urgency == Urgency.URGENT
        assert tickets[1].elapsed_minutes == 45

    def test_filter_by_kitchen_and_section(self):
        items = [make_item(1, GRILL), make_item(2, JUICE), make_item(3, STEAK)]

        assert [i.id for i in filter_items(items, kitchen_id="k1")] == [1, 3]
        assert [i.id for i in filter_items(items, section_id="beverage")] == [2]
        assert filter_items(items, kitchen_id="k2", section_id="grill") == []
        assert len(filter_items(items)) == 3


class TestUrgency:
    @pytest.mark.parametrize("minutes_ago,priority,expected", [
        (31, 10, Urgency.URGENT),
        (30, 95, Urgency.HIGH),
        (5, 91, Urgency.HIGH),
        (5, 90, Urgency.MEDIUM),
        (5, 71, Urgency.MEDIUM),
        (5, 70, Urgency.LOW),
        (0, 0, Urgency.LOW),
    ])
    def test_bands(self, minutes_ago, priority, expected):
        item = make_item(1, minutes_ago=minutes_ago, priority=priority)
        assert classify_urgency(item, NOW) == expected

    def test_elapsed_minutes_never_negative(self):
        item = make_item(1, minutes_ago=-3)
        assert elapsed_minutes(item, NOW) == 0

    def test_thresholds_come_from_config(self, monkeypatch):
        monkeypatch.setattr(config, "URGENT_AFTER_MINUTES", 10)
        assert classify_urgency(make_item(1, minutes_ago=11), NOW) == Urgency.URGENT


class TestBatchSuggestions:
    def test_three_grill_items_from_two_tables(self):
        items = [
            make_item(1, quantity=2, table=3, minutes_ago=10),
            make_item(2, quantity=1, table=5, minutes_ago=6),
            make_item(3, quantity=1, table=5, minutes_ago=2),
        ]

        suggestions = generate_batch_suggestions(items, NOW)

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion.menu_item_id == "grill-1"
        assert suggestion.total_quantity == 4
        assert suggestion.table_numbers == (3, 5)
        assert suggestion.order_ids == (1, 2, 3)
        assert suggestion.can_batch is True
        assert suggestion.kitchen_id == "k1"
        assert suggestion.avg_wait_time == pytest.approx(6.0)

    def test_single_item_groups_are_skipped(self):
        items = [make_item(1, GRILL), make_item(2, STEAK), make_item(3, JUICE)]
        assert generate_batch_suggestions(items, NOW) == []

    def test_only_pending_items_are_grouped(self):
        items = [
            make_item(1, status=ItemStatus.PENDING),
            make_item(2, status=ItemStatus.COOKING),
            make_item(3, status=ItemStatus.READY),
        ]
        assert generate_batch_suggestions(items, NOW) == []

    @pytest.mark.parametrize("quantities,expected", [((3, 3), True), ((4, 3), False)])
    def test_batch_size_limit_boundary(self, quantities, expected):
        items = [make_item(i, quantity=q) for i, q in enumerate(quantities, start=1)]

        suggestion, = generate_batch_suggestions(items, NOW)

        assert suggestion.total_quantity == sum(quantities)
        assert suggestion.can_batch is expected

    def test_one_suggestion_per_menu_item(self):
        items = [
            make_item(1, GRILL, table=1),
            make_item(2, JUICE, table=1),
            make_item(3, GRILL, table=2),
            make_item(4, JUICE, table=4),
            make_item(5, JUICE, table=4),
        ]

        suggestions = generate_batch_suggestions(items, NOW)

        assert [s.menu_item_id for s in suggestions] == ["grill-1", "beverage-1"]
        assert suggestions[1].order_ids == (2, 4, 5)
        assert suggestions[1].table_numbers == (1, 4)
        assert suggestions[1].kitchen_id == "k2"
