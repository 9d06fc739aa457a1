"""Sidebar items, badges and route resolution per role."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from smartshelf.models.inventory import Role
from smartshelf.session import Session

AUTH_PATH = "/auth"
DEFAULT_PATH = "/dashboard"

_ALL = frozenset(Role)
_STAFF = frozenset({Role.ADMIN, Role.WAREHOUSE_MANAGER})
_ADMIN = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class NavItem:
    label: str
    path: str
    roles: frozenset


NAV_ITEMS: tuple[NavItem, ...] = (
    NavItem("Dashboard", "/dashboard", _ALL),
    NavItem("Products", "/products", _ALL),
    NavItem("Transactions", "/transactions", _STAFF),
    NavItem("Forecasting", "/forecasting", _ALL),
    NavItem("Auto-Restock", "/auto-restock", _STAFF),
    NavItem("Purchase Orders", "/purchase-orders", _ALL),
    NavItem("Stock Requests", "/stock-requests", _ALL),
    NavItem("Reports", "/reports", _ALL),
    NavItem("Alerts", "/alerts", _ALL),
    NavItem("Vendors", "/vendors", _ADMIN),
    NavItem("User Management", "/users", _ADMIN),
    NavItem("Audit Logs", "/audit-logs", _ADMIN),
    NavItem("Settings", "/settings", _ADMIN),
)

KNOWN_PATHS = frozenset(item.path for item in NAV_ITEMS) | {AUTH_PATH}


def visible_nav_items(session: Optional[Session]) -> list[NavItem]:
    if session is None:
        return []
    return [item for item in NAV_ITEMS if session.role in item.roles]


def resolve_route(path: str, session: Optional[Session]) -> str:
    """Returns the path that should actually be shown for a requested path."""
    path = path.rstrip("/") or "/"
    if path == "/login":
        path = AUTH_PATH
    if session is None:
        return AUTH_PATH
    if path in ("/", AUTH_PATH) or path not in KNOWN_PATHS:
        return DEFAULT_PATH
    # Known page outside the role's sidebar
    if path not in {item.path for item in visible_nav_items(session)}:
        return DEFAULT_PATH
    return path


def nav_badge(
    path: str,
    session: Session,
    pending_requests: int = 0,
    pending_orders: int = 0,
    unread_alerts: int = 0,
) -> Optional[Union[int, str]]:
    count = 0
    if path == "/stock-requests" and session.is_vendor:
        count = pending_requests
    elif path == "/purchase-orders" and session.is_vendor:
        count = pending_orders
    elif path == "/alerts":
        count = unread_alerts
    if count <= 0:
        return None
    return "9+" if count > 9 else count
