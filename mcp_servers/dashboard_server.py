"""
SmartShelfX Dashboard MCP Server

Exposes the dashboard views (stats, forecasts, restock suggestions, alerts,
purchase orders, stock requests, exports) as tools for the user given by
SMARTSHELF_USER_ID.
"""

import json
import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from botocore.exceptions import BotoCoreError, ClientError
from mcp.server import Server
from mcp.types import TextContent, Tool

from smartshelf.config import configure_logging, load_settings
from smartshelf.export import (
    export_report as render_report,
    forecast_rows,
    inventory_rows,
    save_report,
    transaction_rows,
    vendor_rows,
)
from smartshelf.forecasting import (
    AutoRestockPlanner,
    build_forecasts,
    build_restock_suggestions,
    demand_trend,
    forecast_summary,
    restock_stats,
)
from smartshelf.models.inventory import Product, Transaction, TransactionType, Vendor, utc_now
from smartshelf.notifications import NotificationDispatcher
from smartshelf.realtime import ChangeBus, StreamListener
from smartshelf.resources import (
    AlertsResource,
    AuditLogsResource,
    DashboardStatsResource,
    PurchaseOrdersResource,
    StockRequestsResource,
    TransactionsResource,
)
from smartshelf.session import AuthError, AuthService
from smartshelf.store import TABLES, BackingStore, StoreError
from smartshelf.toasts import ToastCenter
from smartshelf.validation import ValidationError

logger = logging.getLogger(__name__)

app = Server("smartshelf-dashboard")

HANDLED_ERRORS = (ValidationError, StoreError, AuthError, ClientError, BotoCoreError, ValueError)
# Vendors have no transactions view; their export covers their own products only
TRANSACTION_EXPORT_DAYS = 365

# Settings field capping each resource list
RESOURCE_LIMITS = {
    AlertsResource: "alerts_limit",
    TransactionsResource: "transactions_limit",
    AuditLogsResource: "audit_logs_limit",
}


class DashboardContext:
    """Store, session and mounted resources for one signed-in user.

    Mounted resources are kept current by a StreamListener feeding `bus`; tool
    calls that write refresh them right away so the next read sees the write.
    """

    def __init__(self, user_id: str, settings=None, store: Optional[BackingStore] = None,
                 notifier: Optional[NotificationDispatcher] = None, bus: Optional[ChangeBus] = None,
                 listener: Optional[StreamListener] = None, start_listener: bool = True):
        self.settings = settings or load_settings()
        self.store = store or BackingStore.from_settings(self.settings)
        self.toasts = ToastCenter()
        self.bus = bus or ChangeBus()
        self.session = AuthService(
            self.store, self.settings.user_pool_client_id, region_name=self.settings.region
        ).load_session(user_id)
        self.notifier = notifier or NotificationDispatcher(
            self.store, self.toasts,
            region_name=self.settings.region,
            email_function=self.settings.email_function,
            sms_function=self.settings.sms_function,
        )
        self._resources: Dict[str, object] = {}
        self.listener = listener or StreamListener(
            self.bus, TABLES,
            table_prefix=self.settings.table_prefix,
            poll_interval=self.settings.stream_poll_interval,
            region_name=self.settings.region,
        )
        if start_listener:
            self.listener.start()

    def resource(self, cls, **kwargs):
        key = cls.__name__
        if key not in self._resources:
            if cls in RESOURCE_LIMITS:
                kwargs.setdefault("limit", getattr(self.settings, RESOURCE_LIMITS[cls]))
            self._resources[key] = cls(
                self.store, self.bus, self.session, self.toasts, self.notifier, **kwargs
            ).mount()
        return self._resources[key]

    def refresh(self) -> None:
        """Re-reads every mounted resource after a write made through this context."""
        for resource in self._resources.values():
            resource.refetch()

    def close(self) -> None:
        self.listener.stop()
        for resource in self._resources.values():
            resource.unmount()
        self._resources.clear()

    def products(self) -> List[Product]:
        scope = {"vendor_id": self.session.vendor_id} if self.session.is_vendor else None
        return [Product.from_row(r) for r in self.store.select_with_relations("products", filters=scope)]

    def transactions_since(self, days: int) -> List[Transaction]:
        since = (utc_now() - timedelta(days=days)).isoformat()
        rows = self.store.select_with_relations("transactions", order_by="created_at", descending=True)
        rows = [r for r in rows if (r.get("created_at") or "") >= since]
        if self.session.is_vendor:
            own = {p.id for p in self.products()}
            rows = [r for r in rows if r.get("product_id") in own]
        return [Transaction.from_row(r) for r in rows]


_context: Optional[DashboardContext] = None


def _ctx() -> DashboardContext:
    global _context
    if _context is None:
        user_id = os.environ.get("SMARTSHELF_USER_ID")
        if not user_id:
            raise AuthError("SMARTSHELF_USER_ID is not set")
        _context = DashboardContext(user_id)
    return _context


def _to_json(obj):
    """Makes Decimal, Enum and dataclass values JSON serializable."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return _to_json(asdict(obj))
    if isinstance(obj, dict):
        return {k: _to_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_json(i) for i in obj]
    return obj


def _result(data):
    return [TextContent(type="text", text=json.dumps(_to_json(data), indent=2, ensure_ascii=False))]


def _enum_schema(*values: str) -> dict:
    return {"type": "string", "enum": list(values)}


@app.list_tools()
async def list_tools() -> List[Tool]:
    return [
        Tool(name="get_dashboard_stats", description="Stock health, activity and 7-day trend",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="get_forecasts", description="Days until stockout and reorder advice per product",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="get_restock_suggestions", description="Suggested reorder quantities for low-stock products",
             inputSchema={"type": "object", "properties": {}}),
        Tool(name="generate_restock_order", description="Create an auto-restock purchase order for one vendor",
             inputSchema={"type": "object", "properties": {
                 "vendor_id": {"type": "string"},
                 "quantities": {"type": "object", "additionalProperties": {"type": "integer"}},
                 "notes": {"type": "string"}}, "required": ["vendor_id"]}),
        Tool(name="list_alerts", description="Alerts addressed to the current user or broadcast",
             inputSchema={"type": "object", "properties": {"unread_only": {"type": "boolean"}}}),
        Tool(name="mark_alerts_read", description="Mark one alert, or all alerts, as read",
             inputSchema={"type": "object", "properties": {"alert_id": {"type": "string"}}}),
        Tool(name="list_purchase_orders", description="Purchase orders visible to the current user",
             inputSchema={"type": "object", "properties": {
                 "status": _enum_schema("pending", "approved", "rejected", "completed")}}),
        Tool(name="update_purchase_order", description="Approve, reject or complete a purchase order",
             inputSchema={"type": "object", "properties": {
                 "po_id": {"type": "string"},
                 "status": _enum_schema("approved", "rejected", "completed"),
                 "reason": {"type": "string"}}, "required": ["po_id", "status"]}),
        Tool(name="list_stock_requests", description="Stock requests visible to the current user",
             inputSchema={"type": "object", "properties": {
                 "status": _enum_schema("pending", "approved", "rejected")}}),
        Tool(name="list_audit_logs", description="Latest audit entries, filtered by text or action (admins only)",
             inputSchema={"type": "object", "properties": {
                 "search": {"type": "string"},
                 "action": {"type": "string"}}}),
        Tool(name="record_transaction", description="Record a stock in or stock out movement",
             inputSchema={"type": "object", "properties": {
                 "product_id": {"type": "string"},
                 "type": _enum_schema("stock_in", "stock_out"),
                 "quantity": {"type": "integer"},
                 "reference": {"type": "string"},
                 "notes": {"type": "string"}}, "required": ["product_id", "type", "quantity"]}),
        Tool(name="export_report", description="Export a report as CSV, Excel or PDF",
             inputSchema={"type": "object", "properties": {
                 "kind": _enum_schema("inventory", "transactions", "vendors", "forecast"),
                 "format": _enum_schema("csv", "excel", "pdf")}, "required": ["kind", "format"]}),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> List[TextContent]:
    handlers = {
        "get_dashboard_stats": lambda a: get_dashboard_stats(),
        "get_forecasts": lambda a: get_forecasts(),
        "get_restock_suggestions": lambda a: get_restock_suggestions(),
        "generate_restock_order": lambda a: generate_restock_order(
            a["vendor_id"], a.get("quantities"), a.get("notes")),
        "list_alerts": lambda a: list_alerts(a.get("unread_only", False)),
        "mark_alerts_read": lambda a: mark_alerts_read(a.get("alert_id")),
        "list_purchase_orders": lambda a: list_purchase_orders(a.get("status")),
        "update_purchase_order": lambda a: update_purchase_order(a["po_id"], a["status"], a.get("reason")),
        "list_stock_requests": lambda a: list_stock_requests(a.get("status")),
        "list_audit_logs": lambda a: list_audit_logs(a.get("search"), a.get("action")),
        "record_transaction": lambda a: record_transaction(
            a["product_id"], a["type"], a["quantity"], a.get("reference"), a.get("notes")),
        "export_report": lambda a: export_report(a["kind"], a["format"]),
    }
    handler = handlers.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")
    return _result(handler(arguments))


def _failure(e: Exception) -> Dict:
    logger.warning("Tool call failed: %s", e)
    return {"success": False, "error": str(e)}


def get_dashboard_stats() -> Dict:
    try:
        stats = _ctx().resource(DashboardStatsResource).stats
        return {"success": True, "data": stats}
    except HANDLED_ERRORS as e:
        return _failure(e)


def get_forecasts() -> Dict:
    try:
        ctx = _ctx()
        forecasts = build_forecasts(ctx.products(), ctx.transactions_since(30))
        return {
            "success": True,
            "summary": forecast_summary(forecasts),
            "demand_trend": demand_trend(ctx.transactions_since(7)),
            "data": forecast_rows(forecasts),
        }
    except HANDLED_ERRORS as e:
        return _failure(e)


def get_restock_suggestions() -> Dict:
    try:
        ctx = _ctx()
        suggestions = build_restock_suggestions(ctx.products(), ctx.session)
        return {"success": True, "stats": restock_stats(suggestions),
                "count": len(suggestions), "data": suggestions}
    except HANDLED_ERRORS as e:
        return _failure(e)


def generate_restock_order(vendor_id: str, quantities: Optional[Dict] = None, notes: Optional[str] = None) -> Dict:
    try:
        ctx = _ctx()
        suggestions = build_restock_suggestions(ctx.products(), ctx.session)
        planner = AutoRestockPlanner(ctx.resource(PurchaseOrdersResource))
        order = planner.generate_purchase_order(vendor_id, suggestions, quantities, notes)
        if order is None:
            return {"success": False, "error": "Failed to create purchase order"}
        ctx.refresh()
        return {"success": True, "data": order}
    except HANDLED_ERRORS as e:
        return _failure(e)


def list_alerts(unread_only: bool = False) -> Dict:
    try:
        alerts = _ctx().resource(AlertsResource)
        items = [a for a in alerts.items if not (unread_only and a.is_read)]
        return {"success": True, "unread": alerts.unread_count, "count": len(items), "data": items}
    except HANDLED_ERRORS as e:
        return _failure(e)


def mark_alerts_read(alert_id: Optional[str] = None) -> Dict:
    try:
        ctx = _ctx()
        alerts = ctx.resource(AlertsResource)
        if alert_id:
            result = {"success": alerts.mark_as_read(alert_id)}
        else:
            result = {"success": True, "count": alerts.mark_all_as_read()}
        ctx.refresh()
        return result
    except HANDLED_ERRORS as e:
        return _failure(e)


def list_purchase_orders(status: Optional[str] = None) -> Dict:
    try:
        orders = _ctx().resource(PurchaseOrdersResource).items
        if status:
            orders = [o for o in orders if o.status.value == status]
        return {"success": True, "count": len(orders), "data": orders}
    except HANDLED_ERRORS as e:
        return _failure(e)


def update_purchase_order(po_id: str, status: str, reason: Optional[str] = None) -> Dict:
    try:
        ctx = _ctx()
        updated = ctx.resource(PurchaseOrdersResource).transition(po_id, status, reason)
        if updated:
            ctx.refresh()
        return {"success": updated}
    except HANDLED_ERRORS as e:
        return _failure(e)


def list_stock_requests(status: Optional[str] = None) -> Dict:
    try:
        requests = _ctx().resource(StockRequestsResource).items
        if status:
            requests = [r for r in requests if r.status.value == status]
        return {"success": True, "count": len(requests), "data": requests}
    except HANDLED_ERRORS as e:
        return _failure(e)


def list_audit_logs(search: Optional[str] = None, action: Optional[str] = None) -> Dict:
    try:
        logs = _ctx().resource(AuditLogsResource).search(search or "", action or "")
        return {"success": True, "count": len(logs), "data": logs}
    except HANDLED_ERRORS as e:
        return _failure(e)


def record_transaction(product_id: str, transaction_type: str, quantity: int,
                       reference: Optional[str] = None, notes: Optional[str] = None) -> Dict:
    try:
        ctx = _ctx()
        txn = ctx.resource(TransactionsResource).record(
            product_id, TransactionType(transaction_type), quantity, reference, notes
        )
        if txn is not None:
            ctx.refresh()
        return {"success": txn is not None, "data": txn}
    except HANDLED_ERRORS as e:
        return _failure(e)


def export_report(kind: str, fmt: str) -> Dict:
    try:
        ctx = _ctx()
        if kind == "inventory":
            rows = inventory_rows(ctx.products())
        elif kind == "transactions":
            if ctx.session.is_vendor:
                rows = transaction_rows(ctx.transactions_since(TRANSACTION_EXPORT_DAYS))
            else:
                rows = transaction_rows(ctx.resource(TransactionsResource).items)
        elif kind == "vendors":
            scope = {"id": ctx.session.vendor_id} if ctx.session.is_vendor else None
            vendors = [Vendor.from_row(r) for r in ctx.store.select("vendors", filters=scope, order_by="name")]
            rows = vendor_rows(vendors, ctx.products())
        elif kind == "forecast":
            rows = forecast_rows(build_forecasts(ctx.products(), ctx.transactions_since(30)))
        else:
            raise ValueError(f"Unknown report: {kind}")
        filename, content = render_report(kind, rows, fmt)
        saved = save_report(filename, content, ctx.settings)
        return {"success": True, "rows": len(rows), **saved}
    except HANDLED_ERRORS as e:
        return _failure(e)


if __name__ == "__main__":
    import asyncio
    from mcp.server.stdio import stdio_server

    configure_logging(load_settings().log_level)

    async def run():
        async with stdio_server() as (read, write):
            await app.run(read, write, app.create_initialization_options())

    try:
        asyncio.run(run())
    finally:
        if _context is not None:
            _context.close()
