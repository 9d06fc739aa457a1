from smartshelf.resources.alerts import AlertsResource
from smartshelf.resources.audit_logs import AuditLogsResource, record_audit_log
from smartshelf.resources.base import RealtimeResource, SyncMode, create_alert
from smartshelf.resources.categories import CategoriesResource
from smartshelf.resources.dashboard import DashboardStatsResource
from smartshelf.resources.products import ProductsResource
from smartshelf.resources.profiles import ProfilesResource
from smartshelf.resources.purchase_orders import PurchaseOrdersResource
from smartshelf.resources.stock_requests import StockRequestsResource
from smartshelf.resources.transactions import TransactionsResource
from smartshelf.resources.vendors import VendorsResource

__all__ = [
    "AlertsResource",
    "AuditLogsResource",
    "CategoriesResource",
    "DashboardStatsResource",
    "ProductsResource",
    "ProfilesResource",
    "PurchaseOrdersResource",
    "RealtimeResource",
    "StockRequestsResource",
    "SyncMode",
    "TransactionsResource",
    "VendorsResource",
    "create_alert",
    "record_audit_log",
]
