"""Сквозные проверки HTTP API на in-memory SQLite."""

from config import REFRESH_INTERVAL_SECONDS
from redis_client import redis_client


def create_order(client, headers, table=3, lines=None, **extra):
    payload = {"table_number": table, "items": lines or [{"menu_item_id": "grill-1", "quantity": 1}], **extra}
    response = client.post("/orders", json=payload, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestSession:
    def test_login_returns_token_and_landing_route(self, client, make_user):
        make_user("chef", "kitchen", kitchens=["k1"])

        response = client.post("/login", json={"username": "chef", "password": "password"})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["kitchen_access"] == ["k1"]
        assert body["landing_route"] == "/kitchen"

    def test_login_wrong_password(self, client, make_user):
        make_user("chef", "kitchen")

        response = client.post("/login", json={"username": "chef", "password": "wrong"})

        assert response.status_code == 401

    def test_requests_without_token_are_rejected(self, client):
        assert client.get("/kitchen/items").status_code == 401
        assert client.get("/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_my_dashboards(self, client, login):
        headers = login("boss", "manager")

        response = client.get("/me/dashboards", headers=headers)

        assert response.json() == {
            "dashboards": ["dashboard", "captain", "kitchen", "users"],
            "landing_route": "/dashboard",
        }

    def test_manager_creates_kitchen_user(self, client, login):
        headers = login("boss", "manager")

        response = client.post("/users", headers=headers, json={
            "username": "barista", "password": "secret", "role": "kitchen", "kitchen_access": ["k2"],
        })

        assert response.status_code == 200, response.text
        assert response.json()["kitchen_access"] == ["k2"]
        assert client.post("/users", headers=headers, json={
            "username": "root2", "password": "secret", "role": "admin",
        }).status_code == 403

    def test_captain_cannot_list_users(self, client, login):
        headers = login("cap", "captain")

        response = client.get("/users", headers=headers)

        assert response.status_code == 403
        assert response.json()["error_code"] == "ACCESS_DENIED"


class TestOrders:
    def test_captain_creates_and_lists_orders(self, client, login):
        headers = login("cap", "captain")

        order = create_order(client, headers, table=12, customer_name="Johnson Family", lines=[
            {"menu_item_id": "grill-1", "quantity": 2},
            {"menu_item_id": "salad-1", "quantity": 1, "special_instructions": "no croutons"},
        ])

        assert order["status"] == "active"
        assert order["total"] == round(2 * 24.99 + 12.99, 2)
        assert order["progress"]["pending"] == 2
        assert [i["status"] for i in order["items"]] == ["pending", "pending"]

        listed = client.get("/orders", params={"search": "johnson"}, headers=headers).json()
        assert [o["id"] for o in listed] == [order["id"]]

    def test_invalid_quantity_rejected(self, client, login):
        headers = login("cap", "captain")

        response = client.post("/orders", headers=headers, json={
            "table_number": 2, "items": [{"menu_item_id": "grill-1", "quantity": 0}],
        })

        assert response.status_code == 422

    def test_unknown_menu_item(self, client, login):
        headers = login("cap", "captain")

        response = client.post("/orders", headers=headers, json={
            "table_number": 2, "items": [{"menu_item_id": "nope", "quantity": 1}],
        })

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_kitchen_staff_cannot_create_orders(self, client, login):
        headers = login("chef", "kitchen", kitchens=["k1"])

        response = client.post("/orders", headers=headers, json={
            "table_number": 2, "items": [{"menu_item_id": "grill-1", "quantity": 1}],
        })

        assert response.status_code == 403

    def test_complete_order_hides_its_items(self, client, login):
        captain = login("cap", "captain")
        manager = login("boss", "manager")
        order = create_order(client, captain)

        response = client.put(f"/orders/{order['id']}/status", json={"status": "completed"}, headers=captain)

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert client.get("/kitchen/items", headers=manager).json() == []
        again = client.put(f"/orders/{order['id']}/status", json={"status": "cancelled"}, headers=captain)
        assert again.status_code == 409

    def test_print_kot(self, client, login):
        headers = login("cap", "captain")
        order = create_order(client, headers, lines=[
            {"menu_item_id": "grill-1", "quantity": 1},
            {"menu_item_id": "beverage-1", "quantity": 1},
        ])

        response = client.post(f"/orders/{order['id']}/kot", params={"section": "beverage"}, headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["printer_ip"] == "192.168.1.51"
        assert [line["name"] for line in body["lines"]] == ["Fresh Orange Juice"]


class TestKitchen:
    def test_kitchen_items_scoped_to_granted_kitchens(self, client, login):
        captain = login("cap", "captain")
        create_order(client, captain, lines=[
            {"menu_item_id": "grill-1", "quantity": 1},
            {"menu_item_id": "beverage-1", "quantity": 1},
        ])
        chef = login("chef", "kitchen", kitchens=["k1"])

        items = client.get("/kitchen/items", headers=chef).json()

        assert [t["item"]["menu_item_id"] for t in items] == ["grill-1"]
        assert items[0]["urgency"] == "low"
        assert client.get("/kitchen/items", params={"kitchen_id": "k2"}, headers=chef).status_code == 403

    def test_urgent_ticket_after_thirty_minutes(self, client, login, clock):
        captain = login("cap", "captain")
        create_order(client, captain)
        clock.advance(minutes=31)
        chef = login("chef", "kitchen", kitchens=["k1"])

        ticket, = client.get("/kitchen/items", headers=chef).json()

        assert ticket["urgency"] == "urgent"
        assert ticket["elapsed_minutes"] == 31

    def test_batch_suggestion_and_start(self, client, login):
        captain = login("cap", "captain")
        create_order(client, captain, table=3, lines=[{"menu_item_id": "grill-1", "quantity": 2}])
        create_order(client, captain, table=5, lines=[
            {"menu_item_id": "grill-1", "quantity": 1},
            {"menu_item_id": "grill-1", "quantity": 1},
        ])
        chef = login("chef", "kitchen", kitchens=["k1"])

        suggestions = client.get("/kitchen/batch-suggestions", headers=chef).json()

        assert len(suggestions) == 1
        assert suggestions[0]["total_quantity"] == 4
        assert suggestions[0]["table_numbers"] == [3, 5]
        assert suggestions[0]["can_batch"] is True

        response = client.post("/kitchen/batches/grill-1/start", headers=chef)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert sorted(body["succeeded_ids"]) == sorted(suggestions[0]["order_ids"])
        assert client.get("/kitchen/batch-suggestions", headers=chef).json() == []
        assert client.post("/kitchen/batches/grill-1/start", headers=chef).status_code == 404

    def test_batch_start_requires_kitchen_access(self, client, login):
        captain = login("cap", "captain")
        create_order(client, captain, lines=[{"menu_item_id": "beverage-2", "quantity": 1}] * 2)
        chef = login("chef", "kitchen", kitchens=["k1"])

        assert client.post("/kitchen/batches/beverage-2/start", headers=chef).status_code == 403

    def test_board(self, client, login):
        captain = login("cap", "captain")
        create_order(client, captain, lines=[{"menu_item_id": "grill-1", "quantity": 1}] * 2)
        manager = login("boss", "manager")

        board = client.get("/kitchen/board", params={"kitchen_id": "k1"}, headers=manager).json()

        assert len(board["tickets"]) == 2
        assert board["batch_suggestions"][0]["menu_item_id"] == "grill-1"
        assert board["refresh_interval_seconds"] > 0

    def test_board_served_from_cache_until_orders_change(self, client, login, monkeypatch):
        boards = {}
        monkeypatch.setattr(redis_client, "cache_kitchen_board",
                            lambda key, board, ttl: boards.__setitem__(key, (board, ttl)))
        monkeypatch.setattr(redis_client, "get_cached_kitchen_board", lambda key: boards.get(key, (None, None))[0])
        monkeypatch.setattr(redis_client, "invalidate_kitchen_boards", boards.clear)
        manager = login("boss", "manager")

        assert client.get("/kitchen/board", headers=manager).json()["tickets"] == []
        (cached, ttl), = boards.values()
        assert ttl == REFRESH_INTERVAL_SECONDS

        cached["refresh_interval_seconds"] = 999
        assert client.get("/kitchen/board", headers=manager).json()["refresh_interval_seconds"] == 999

        create_order(client, login("cap", "captain"))

        board = client.get("/kitchen/board", headers=manager).json()
        assert len(board["tickets"]) == 1
        assert board["refresh_interval_seconds"] == REFRESH_INTERVAL_SECONDS


class TestItemStatus:
    def test_kitchen_cooks_and_captain_serves(self, client, login):
        captain = login("cap", "captain")
        item_id = create_order(client, captain)["items"][0]["id"]
        chef = login("chef", "kitchen", kitchens=["k1"])

        assert client.put(f"/items/{item_id}/status", json={"status": "cooking"}, headers=chef).status_code == 200
        assert client.put(f"/items/{item_id}/status", json={"status": "ready"}, headers=chef).status_code == 200
        assert client.put(f"/items/{item_id}/status", json={"status": "served"}, headers=chef).status_code == 403

        response = client.put(f"/items/{item_id}/status", json={"status": "served"}, headers=captain)

        assert response.status_code == 200
        assert response.json()["status"] == "served"

    def test_skipped_transition_returns_inline_error(self, client, login):
        captain = login("cap", "captain")
        item_id = create_order(client, captain)["items"][0]["id"]
        chef = login("chef", "kitchen", kitchens=["k1"])

        response = client.put(f"/items/{item_id}/status", json={"status": "ready"}, headers=chef)

        assert response.status_code == 409
        assert response.json()["success"] is False
        assert response.json()["error_code"] == "INVALID_TRANSITION"

    def test_unknown_item(self, client, login):
        chef = login("chef", "kitchen", kitchens=["k1"])

        response = client.put("/items/9999/status", json={"status": "cooking"}, headers=chef)

        assert response.status_code == 404

    def test_batch_status_reports_failed_ids(self, client, login):
        captain = login("cap", "captain")
        order = create_order(client, captain, lines=[
            {"menu_item_id": "grill-1", "quantity": 1},
            {"menu_item_id": "beverage-1", "quantity": 1},
        ])
        grill_id, juice_id = [item["id"] for item in order["items"]]
        chef = login("chef", "kitchen", kitchens=["k1"])

        response = client.put("/items/status", headers=chef, json={
            "item_ids": [grill_id, juice_id, 9999], "status": "cooking",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["succeeded_ids"] == [grill_id]
        assert {f["item_id"]: f["error_code"] for f in body["failed"]} == {
            juice_id: "ACCESS_DENIED",
            9999: "NOT_FOUND",
        }

    def test_batch_status_repeated_denied_id_reported_once_in_request_order(self, client, login):
        captain = login("cap", "captain")
        order = create_order(client, captain, lines=[
            {"menu_item_id": "grill-1", "quantity": 1},
            {"menu_item_id": "beverage-1", "quantity": 1},
        ])
        grill_id, juice_id = [item["id"] for item in order["items"]]
        chef = login("chef", "kitchen", kitchens=["k1"])

        response = client.put("/items/status", headers=chef, json={
            "item_ids": [juice_id, grill_id, juice_id], "status": "cooking",
        })

        body = response.json()
        assert [(r["item_id"], r["error_code"]) for r in body["results"]] == [
            (juice_id, "ACCESS_DENIED"),
            (grill_id, None),
        ]
        assert body["summary"] == f"1 of 2 items set to cooking; failed: {juice_id}"

    def test_priority_update_reorders_board(self, client, login):
        captain = login("cap", "captain")
        first = create_order(client, captain, table=1)["items"][0]["id"]
        second = create_order(client, captain, table=2)["items"][0]["id"]

        response = client.put(f"/items/{second}/priority", json={"priority": 99}, headers=captain)

        assert response.status_code == 200
        manager = login("boss", "manager")
        tickets = client.get("/kitchen/items", headers=manager).json()
        assert [t["item"]["id"] for t in tickets] == [second, first]
        assert tickets[0]["urgency"] == "high"


def test_dashboard_stats(client, login):
    captain = login("cap", "captain")
    create_order(client, captain, lines=[{"menu_item_id": "grill-1", "quantity": 1}] * 3)
    manager = login("boss", "manager")

    stats = client.get("/dashboard/stats", headers=manager).json()

    assert stats["active_orders"] == 1
    assert stats["pending_items"] == 3
    assert client.get("/dashboard/stats", headers=captain).status_code == 403


def test_menu_and_kitchens(client, login):
    chef = login("chef", "kitchen", kitchens=["k2"])

    menu = client.get("/menu", headers=chef).json()
    kitchens = client.get("/kitchens", headers=chef).json()
    sections = client.get("/kitchens/sections", headers=chef).json()

    assert len(menu) == 12
    assert [k["id"] for k in kitchens] == ["k2"]
    assert {s["id"] for s in sections} == {"beverage", "dessert"}
