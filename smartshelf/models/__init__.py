from smartshelf.models.inventory import (
    Alert,
    AlertSeverity,
    AuditLog,
    Category,
    ForecastAction,
    OrderStatus,
    Product,
    Profile,
    PurchaseOrder,
    PurchaseOrderItem,
    RequestStatus,
    RestockUrgency,
    Role,
    StockRequest,
    Transaction,
    TransactionType,
    Vendor,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "AuditLog",
    "Category",
    "ForecastAction",
    "OrderStatus",
    "Product",
    "Profile",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "RequestStatus",
    "RestockUrgency",
    "Role",
    "StockRequest",
    "Transaction",
    "TransactionType",
    "Vendor",
]
