from __future__ import annotations

from smartshelf.models.inventory import AuditLog
from smartshelf.realtime import ChangeType
from smartshelf.resources.base import RealtimeResource, SyncMode, record_audit_log
from smartshelf.session import Permission

__all__ = ["AuditLogsResource", "record_audit_log"]


class AuditLogsResource(RealtimeResource[AuditLog]):
    """Insert-only feed of the latest 100 audit entries (admins only)."""

    table = "audit_logs"
    model = AuditLog
    label = "audit logs"
    sync_mode = SyncMode.PAYLOAD_PATCH
    limit = 100
    events = (ChangeType.INSERT,)
    required_permission = Permission.VIEW_AUDIT_LOGS

    def search(self, text: str = "", action: str = "") -> list[AuditLog]:
        text = text.lower()
        return [
            log for log in self.items
            if (not action or log.action == action)
            and (
                not text
                or text in (log.details or "").lower()
                or text in (log.user_name or "").lower()
                or text in log.entity_type.lower()
            )
        ]
