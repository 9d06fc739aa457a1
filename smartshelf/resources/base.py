"""Base class for live, role-scoped views over one store table.

A resource fetches once on mount, then keeps its list current from change
events. Failures never clear the list: reads keep the last good state, writes
leave it untouched.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from smartshelf.models.inventory import Alert, AlertSeverity, AuditLog
from smartshelf.notifications import NotificationDispatcher
from smartshelf.realtime import ChangeBus, ChangeEvent, ChangeType, Subscription
from smartshelf.session import Permission, Session
from smartshelf.store import BackingStore, StoreError
from smartshelf.toasts import ToastCenter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncMode(str, Enum):
    # Re-read the changed row with its joined fields
    ROW_REFETCH = "row_refetch"
    # Re-run the whole mount query
    FULL_REFETCH = "full_refetch"
    # Trust the event payload
    PAYLOAD_PATCH = "payload_patch"


def create_alert(
    store: BackingStore,
    alert_type: str,
    title: str,
    message: str,
    severity: AlertSeverity = AlertSeverity.INFO,
    user_id: Optional[str] = None,
    product_id: Optional[str] = None,
) -> Alert:
    row = store.insert("alerts", {
        "type": alert_type,
        "title": title,
        "message": message,
        "severity": severity.value,
        "is_read": False,
        "user_id": user_id,
        "product_id": product_id,
    })
    return Alert.from_row(row)


def record_audit_log(
    store: BackingStore,
    session: Session,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[str] = None,
) -> AuditLog:
    row = store.insert("audit_logs", {
        "user_id": session.user_id,
        "user_name": session.profile.full_name or session.profile.email,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "details": details,
    })
    return AuditLog.from_row(row)


def vendor_user_ids(store: BackingStore, vendor_id: str) -> list[str]:
    rows = store.select("profiles", filters={"vendor_id": vendor_id, "role": "vendor"})
    return [row["user_id"] for row in rows if row.get("user_id")]


class RealtimeResource(Generic[T]):
    table: str = ""
    model: Any = None
    label: str = "items"
    sync_mode: SyncMode = SyncMode.ROW_REFETCH
    order_by: Optional[str] = "created_at"
    descending: bool = True
    limit: Optional[int] = None
    # Column holding the vendor id for vendor-scoped rows; None means unscoped
    vendor_column: Optional[str] = None
    # Change types this resource reacts to; None means all
    events: Optional[tuple] = None
    # Permission needed to open this view at all
    required_permission: Optional[Permission] = None

    def __init__(
        self,
        store: BackingStore,
        bus: ChangeBus,
        session: Session,
        toasts: Optional[ToastCenter] = None,
        notifier: Optional[NotificationDispatcher] = None,
        limit: Optional[int] = None,
    ):
        if limit is not None:
            self.limit = limit
        self.store = store
        self.bus = bus
        self.session = session
        self.toasts = toasts or ToastCenter()
        self.notifier = notifier
        self._items: list[T] = []
        self._is_loading = True
        self._mounted = False
        self._unmounted = False
        self._subscriptions: list[Subscription] = []
        self._listeners: list[Callable[[RealtimeResource], None]] = []
        self._lock = threading.RLock()

    # --- State ---

    @property
    def items(self) -> list[T]:
        with self._lock:
            return list(self._items)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def mounted(self) -> bool:
        return self._mounted

    def find(self, item_id: str) -> Optional[T]:
        with self._lock:
            return next((item for item in self._items if item.id == item_id), None)

    def lookup(self, item_id: str) -> Optional[T]:
        """Cached item, or a fresh read when the cache does not hold it."""
        item = self.find(item_id)
        if item is not None:
            return item
        try:
            row = self.store.get_with_relations(self.table, item_id)
        except StoreError as e:
            logger.error("Error loading %s/%s: %s", self.table, item_id, e)
            return None
        if row is None or not self.in_scope(row):
            return None
        return self.to_item(row)

    def add_listener(self, listener: Callable[[RealtimeResource], None]) -> None:
        self._listeners.append(listener)

    def _notify_listeners(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.warning("%s listener failed: %s", type(self).__name__, e)

    # --- Lifecycle ---

    def mount(self) -> RealtimeResource:
        if self._mounted:
            return self
        if self.required_permission is not None:
            self.session.require(self.required_permission)
        self._mounted = True
        self._unmounted = False
        self.refetch()
        for table in self.subscribed_tables():
            self._subscriptions.append(self.bus.subscribe(table, self._on_change, self.events))
        return self

    def unmount(self) -> None:
        self._mounted = False
        self._unmounted = True
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()

    def __enter__(self) -> RealtimeResource:
        return self.mount()

    def __exit__(self, *exc_info: Any) -> None:
        self.unmount()

    def subscribed_tables(self) -> tuple[str, ...]:
        return (self.table,)

    # --- Scope and fetch ---

    def scope_filters(self) -> dict:
        if self.vendor_column and self.session.is_vendor:
            return {self.vendor_column: self.session.vendor_id}
        return {}

    def in_scope(self, row: dict) -> bool:
        return all(row.get(column) == value for column, value in self.scope_filters().items())

    def fetch_rows(self) -> list[dict]:
        return self.store.select_with_relations(
            self.table,
            filters=self.scope_filters() or None,
            order_by=self.order_by,
            descending=self.descending,
            limit=self.limit,
        )

    def to_item(self, row: dict) -> T:
        return self.model.from_row(row)

    def refetch(self) -> bool:
        try:
            items = [self.to_item(row) for row in self.fetch_rows()]
        except StoreError as e:
            logger.error("Error fetching %s: %s", self.label, e)
            self.toasts.error(f"Failed to load {self.label}")
            self._is_loading = False
            return False

        with self._lock:
            if self._unmounted:
                self._is_loading = False
                return False
            self._items = items
            self._is_loading = False
        self._notify_listeners()
        return True

    # --- Change handling ---

    def _on_change(self, event: ChangeEvent) -> None:
        if self._unmounted:
            return
        if self.sync_mode == SyncMode.FULL_REFETCH:
            self.refetch()
            self.after_change(event, None)
            return

        if event.change_type == ChangeType.DELETE:
            item = self._remove(event.row_id)
            self._notify_listeners()
            self.after_change(event, item)
            return

        if self.sync_mode == SyncMode.PAYLOAD_PATCH:
            row = event.new
        else:
            try:
                row = self.store.get_with_relations(self.table, event.row_id)
            except StoreError as e:
                logger.error("Error refreshing %s/%s: %s", self.table, event.row_id, e)
                self.toasts.error(f"Failed to refresh {self.label}")
                return
        if row is None:
            return
        if not self.in_scope(row):
            # A row moved out of this session's scope
            if self._remove(row["id"]) is not None:
                self._notify_listeners()
            return

        item = self.to_item(row)
        with self._lock:
            if self._unmounted:
                return
            index = next((i for i, x in enumerate(self._items) if x.id == item.id), None)
            if index is not None:
                self._items[index] = item
            elif event.change_type == ChangeType.INSERT or self.sync_mode != SyncMode.PAYLOAD_PATCH:
                self._items.insert(0, item)
            if self.limit is not None:
                del self._items[self.limit:]
        self._notify_listeners()
        self.after_change(event, item)

    def _remove(self, item_id: Optional[str]) -> Optional[T]:
        with self._lock:
            for i, item in enumerate(self._items):
                if item.id == item_id:
                    return self._items.pop(i)
        return None

    def after_change(self, event: ChangeEvent, item: Optional[T]) -> None:
        """Hook for per-resource toasts after local state has been updated."""

    # --- Writes ---

    def _write(self, failure_title: str, action: Callable[[], Any]) -> Any:
        """Runs a primary mutation; a store failure is logged, toasted and yields None."""
        try:
            return action()
        except StoreError as e:
            logger.error("%s: %s", failure_title, e)
            self.toasts.error(failure_title, str(e))
            return None

    def _best_effort(self, description: str, action: Callable[[], Any]) -> Any:
        """Runs a follow-on write (alert, audit log) that must never undo the primary one."""
        try:
            return action()
        except StoreError as e:
            logger.warning("%s failed: %s", description, e)
            return None

    def _audit(self, action: str, entity_type: str, entity_id: Optional[str], details: str) -> None:
        self._best_effort(
            "Audit log",
            lambda: record_audit_log(self.store, self.session, action, entity_type, entity_id, details),
        )

    def _alert(self, alert_type: str, title: str, message: str, **kwargs: Any) -> None:
        self._best_effort(
            f"Alert '{title}'",
            lambda: create_alert(self.store, alert_type, title, message, **kwargs),
        )

    def _notify(self, fn_name: str, *args: Any, **kwargs: Any) -> None:
        if self.notifier is None:
            return
        self.notifier.submit(getattr(self.notifier, fn_name), *args, **kwargs)
