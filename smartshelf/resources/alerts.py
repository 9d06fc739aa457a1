from __future__ import annotations

import logging
from typing import Optional

from smartshelf.models.inventory import Alert
from smartshelf.realtime import ChangeEvent, ChangeType
from smartshelf.resources.base import RealtimeResource, SyncMode
from smartshelf.toasts import ToastLevel

logger = logging.getLogger(__name__)


class AlertsResource(RealtimeResource[Alert]):
    """Latest alerts addressed to the session user or broadcast to everyone."""

    table = "alerts"
    model = Alert
    label = "alerts"
    sync_mode = SyncMode.PAYLOAD_PATCH
    limit = 50

    def in_scope(self, row: dict) -> bool:
        return not row.get("user_id") or row.get("user_id") == self.session.user_id

    def fetch_rows(self) -> list[dict]:
        rows = self.store.select("alerts", order_by="created_at", descending=True)
        return [row for row in rows if self.in_scope(row)][: self.limit]

    def after_change(self, event: ChangeEvent, item: Optional[Alert]) -> None:
        if event.change_type == ChangeType.INSERT and item is not None:
            self.toasts.show(ToastLevel.for_severity(item.severity), item.title, item.message)

    @property
    def unread_count(self) -> int:
        return sum(1 for a in self.items if not a.is_read)

    def mark_as_read(self, alert_id: str) -> bool:
        row = self._write(
            "Failed to mark alert as read",
            lambda: self.store.update("alerts", alert_id, {"is_read": True}),
        )
        return row is not None

    def mark_all_as_read(self) -> int:
        marked = 0
        for alert in self.items:
            if not alert.is_read and self.mark_as_read(alert.id):
                marked += 1
        return marked

    def dismiss(self, alert_id: str) -> bool:
        done = self._write(
            "Failed to dismiss alert",
            lambda: self.store.delete("alerts", alert_id) or True,
        )
        return bool(done)
