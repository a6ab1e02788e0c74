from types import SimpleNamespace

import pytest

from access import (
    get_user_dashboards,
    has_kitchen_access,
    landing_route,
    require_dashboard,
    require_kitchen_access,
)
from errors import AccessDeniedError


def user(role, kitchen_access=None):
    return SimpleNamespace(role=role, kitchen_access=kitchen_access)


def test_kitchen_user_limited_to_granted_kitchens():
    cook = user("kitchen", ["k1"])

    assert has_kitchen_access(cook, "k1") is True
    assert has_kitchen_access(cook, "k2") is False


@pytest.mark.parametrize("role", ["admin", "manager"])
def test_admin_and_manager_see_every_kitchen(role):
    assert has_kitchen_access(user(role), "k1") is True
    assert has_kitchen_access(user(role), "anything") is True


def test_no_grants_and_no_user():
    assert has_kitchen_access(user("captain"), "k1") is False
    assert has_kitchen_access(None, "k1") is False


@pytest.mark.parametrize("role,expected", [
    ("admin", ["dashboard", "captain", "kitchen", "users"]),
    ("manager", ["dashboard", "captain", "kitchen", "users"]),
    ("captain", ["captain"]),
    ("kitchen", ["kitchen"]),
    ("waiter", []),
])
def test_dashboards_by_role(role, expected):
    assert get_user_dashboards(user(role)) == expected


def test_dashboards_copy_is_not_shared():
    get_user_dashboards(user("captain")).append("users")
    assert get_user_dashboards(user("captain")) == ["captain"]


@pytest.mark.parametrize("role,route", [
    ("captain", "/captain"),
    ("kitchen", "/kitchen"),
    ("manager", "/dashboard"),
    ("admin", "/dashboard"),
])
def test_landing_route(role, route):
    assert landing_route(user(role)) == route


def test_landing_route_without_user():
    assert get_user_dashboards(None) == []
    assert landing_route(None) == "/login"


def test_require_dashboard():
    require_dashboard(user("manager"), "kitchen")
    require_dashboard(user("kitchen"), "kitchen")

    with pytest.raises(AccessDeniedError):
        require_dashboard(user("captain"), "kitchen")
    with pytest.raises(AccessDeniedError):
        require_dashboard(user("kitchen"), "users")
    with pytest.raises(AccessDeniedError):
        require_dashboard(None, "captain")


def test_require_kitchen_access():
    require_kitchen_access(user("kitchen", ["k2"]), "k2")
    with pytest.raises(AccessDeniedError):
        require_kitchen_access(user("kitchen", ["k2"]), "k1")
