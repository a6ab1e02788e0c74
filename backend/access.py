"""
Доступ по ролям: какие дисплеи видит пользователь и с какими кухнями работает.

Вместо switch по роли в каждом экране - одна таблица роль -> дисплеи.
"""
from typing import Dict, FrozenSet, List, Optional

from domain import UserRole
from errors import AccessDeniedError

FULL_ACCESS_ROLES = frozenset({UserRole.ADMIN.value, UserRole.MANAGER.value})

ROLE_DASHBOARDS: Dict[str, List[str]] = {
    UserRole.ADMIN.value: ["dashboard", "captain", "kitchen", "users"],
    UserRole.MANAGER.value: ["dashboard", "captain", "kitchen", "users"],
    UserRole.CAPTAIN.value: ["captain"],
    UserRole.KITCHEN.value: ["kitchen"],
}

# Какие роли пускаются на каждый дисплей
DASHBOARD_ROLES: Dict[str, FrozenSet[str]] = {}
for _role, _dashboards in ROLE_DASHBOARDS.items():
    for _dashboard in _dashboards:
        DASHBOARD_ROLES.setdefault(_dashboard, frozenset())
        DASHBOARD_ROLES[_dashboard] = DASHBOARD_ROLES[_dashboard] | {_role}


def _role(user) -> Optional[str]:
    role = getattr(user, "role", None)
    return getattr(role, "value", role)


def has_kitchen_access(user, kitchen_id: str) -> bool:
    if user is None:
        return False
    if _role(user) in FULL_ACCESS_ROLES:
        return True
    return kitchen_id in (getattr(user, "kitchen_access", None) or [])


def get_user_dashboards(user) -> List[str]:
    if user is None:
        return []
    return list(ROLE_DASHBOARDS.get(_role(user), []))


def landing_route(user) -> str:
    """Куда отправить пользователя со стартовой страницы"""
    dashboards = get_user_dashboards(user)
    if len(dashboards) == 1:
        return f"/{dashboards[0]}"
    if len(dashboards) > 1:
        return "/dashboard"
    return "/login"


def require_dashboard(user, dashboard: str) -> None:
    if _role(user) not in DASHBOARD_ROLES.get(dashboard, frozenset()):
        raise AccessDeniedError(f"Role {_role(user)!r} has no access to the {dashboard} display")


def require_kitchen_access(user, kitchen_id: str) -> None:
    if not has_kitchen_access(user, kitchen_id):
        raise AccessDeniedError(f"No access to kitchen {kitchen_id}")
