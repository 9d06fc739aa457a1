"""Inventory data models: catalog, stock movements, orders, requests, alerts, audit."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def format_amount(amount: float) -> str:
    return f"₹{amount:,.2f}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parses an ISO 8601 timestamp; naive values are treated as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Role(str, Enum):
    ADMIN = "admin"
    WAREHOUSE_MANAGER = "warehouse_manager"
    VENDOR = "vendor"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class TransactionType(str, Enum):
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"

    @property
    def label(self) -> str:
        return "Stock In" if self is TransactionType.STOCK_IN else "Stock Out"


class OrderStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ForecastAction(str, Enum):
    REORDER_NOW = "reorder_now"
    REORDER_SOON = "reorder_soon"
    SUFFICIENT = "sufficient"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").upper()


class RestockUrgency(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"

    @property
    def rank(self) -> int:
        return {RestockUrgency.CRITICAL: 0, RestockUrgency.HIGH: 1, RestockUrgency.MEDIUM: 2}[self]


def _int(value: Any, default: int = 0) -> int:
    return int(value) if value is not None and value != "" else default


def _float(value: Any, default: float = 0.0) -> float:
    return float(value) if value is not None and value != "" else default


@dataclass
class Category:
    id: str
    name: str
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> Category:
        return cls(id=row["id"], name=row.get("name", ""), created_at=row.get("created_at", ""))


@dataclass
class Vendor:
    id: str
    name: str
    email: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None
    # Assigned externally, never computed here
    performance: Optional[float] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> Vendor:
        performance = row.get("performance")
        return cls(
            id=row["id"],
            name=row.get("name", ""),
            email=row.get("email", "") or "",
            phone=row.get("phone"),
            address=row.get("address"),
            performance=float(performance) if performance is not None else None,
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
        )


@dataclass
class Profile:
    id: str
    user_id: str
    email: str
    role: Role
    full_name: Optional[str] = None
    vendor_id: Optional[str] = None
    warehouse_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> Profile:
        return cls(
            id=row["id"],
            user_id=row.get("user_id", ""),
            email=row.get("email", "") or "",
            role=Role(row.get("role", Role.WAREHOUSE_MANAGER.value)),
            full_name=row.get("full_name"),
            vendor_id=row.get("vendor_id"),
            warehouse_id=row.get("warehouse_id"),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
        )


@dataclass
class Product:
    id: str
    sku: str
    name: str
    current_stock: int = 0
    reorder_level: int = 0
    price: float = 0.0
    description: Optional[str] = None
    category_id: Optional[str] = None
    vendor_id: Optional[str] = None
    image_url: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    category_name: Optional[str] = None
    vendor_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> Product:
        return cls(
            id=row["id"],
            sku=row.get("sku", ""),
            name=row.get("name", ""),
            current_stock=_int(row.get("current_stock")),
            reorder_level=_int(row.get("reorder_level")),
            price=_float(row.get("price")),
            description=row.get("description"),
            category_id=row.get("category_id"),
            vendor_id=row.get("vendor_id"),
            image_url=row.get("image_url"),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
            category_name=row.get("category_name"),
            vendor_name=row.get("vendor_name"),
        )

    @property
    def is_out_of_stock(self) -> bool:
        return self.current_stock == 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.current_stock <= self.reorder_level

    @property
    def stock_status(self) -> str:
        if self.current_stock <= self.reorder_level:
            return "Out of Stock" if self.current_stock == 0 else "Low Stock"
        return "In Stock"


@dataclass
class Transaction:
    id: str
    type: TransactionType
    product_id: str
    quantity: int
    handler_id: Optional[str] = None
    handler_name: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""
    product_name: Optional[str] = None
    product_sku: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> Transaction:
        return cls(
            id=row["id"],
            type=TransactionType(row["type"]),
            product_id=row.get("product_id", ""),
            quantity=_int(row.get("quantity")),
            handler_id=row.get("handler_id"),
            handler_name=row.get("handler_name"),
            reference=row.get("reference"),
            notes=row.get("notes"),
            created_at=row.get("created_at", ""),
            product_name=row.get("product_name"),
            product_sku=row.get("product_sku"),
        )


@dataclass
class PurchaseOrderItem:
    product_id: str
    quantity: int
    unit_price: float
    id: Optional[str] = None
    purchase_order_id: Optional[str] = None
    product_name: Optional[str] = None
    product_sku: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> PurchaseOrderItem:
        return cls(
            id=row.get("id"),
            purchase_order_id=row.get("purchase_order_id"),
            product_id=row.get("product_id", ""),
            quantity=_int(row.get("quantity")),
            unit_price=_float(row.get("unit_price")),
            product_name=row.get("product_name"),
            product_sku=row.get("product_sku"),
        )

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price


@dataclass
class PurchaseOrder:
    id: str
    vendor_id: str
    status: OrderStatus = OrderStatus.PENDING
    total_amount: float = 0.0
    created_by: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    vendor_name: Optional[str] = None
    vendor_email: Optional[str] = None
    items: list[PurchaseOrderItem] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict, items: Optional[list[PurchaseOrderItem]] = None) -> PurchaseOrder:
        return cls(
            id=row["id"],
            vendor_id=row.get("vendor_id", ""),
            status=OrderStatus(row.get("status", OrderStatus.PENDING.value)),
            total_amount=_float(row.get("total_amount")),
            created_by=row.get("created_by"),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
            vendor_name=row.get("vendor_name"),
            vendor_email=row.get("vendor_email"),
            items=list(items or []),
        )

    @property
    def short_id(self) -> str:
        return self.id[:8]

    @property
    def product_names(self) -> str:
        return ", ".join(item.product_name or "Unknown" for item in self.items)


@dataclass
class StockRequest:
    id: str
    vendor_id: str
    quantity: int
    status: RequestStatus = RequestStatus.PENDING
    product_id: Optional[str] = None
    requested_by: Optional[str] = None
    requested_by_name: Optional[str] = None
    requested_by_role: str = ""
    notes: Optional[str] = None
    response_notes: Optional[str] = None
    responded_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    vendor_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> StockRequest:
        return cls(
            id=row["id"],
            vendor_id=row.get("vendor_id", ""),
            quantity=_int(row.get("quantity")),
            status=RequestStatus(row.get("status", RequestStatus.PENDING.value)),
            product_id=row.get("product_id"),
            requested_by=row.get("requested_by"),
            requested_by_name=row.get("requested_by_name"),
            requested_by_role=row.get("requested_by_role", "") or "",
            notes=row.get("notes"),
            response_notes=row.get("response_notes"),
            responded_at=row.get("responded_at"),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
            product_name=row.get("product_name"),
            product_sku=row.get("product_sku"),
            vendor_name=row.get("vendor_name"),
        )


@dataclass
class Alert:
    id: str
    type: str
    title: str
    message: str
    severity: AlertSeverity = AlertSeverity.INFO
    is_read: bool = False
    user_id: Optional[str] = None
    product_id: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> Alert:
        return cls(
            id=row["id"],
            type=row.get("type", ""),
            title=row.get("title", ""),
            message=row.get("message", ""),
            severity=AlertSeverity(row.get("severity", AlertSeverity.INFO.value)),
            is_read=bool(row.get("is_read", False)),
            user_id=row.get("user_id"),
            product_id=row.get("product_id"),
            created_at=row.get("created_at", ""),
        )


@dataclass
class AuditLog:
    id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    details: Optional[str] = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> AuditLog:
        return cls(
            id=row["id"],
            action=row.get("action", ""),
            entity_type=row.get("entity_type", ""),
            entity_id=row.get("entity_id"),
            user_id=row.get("user_id"),
            user_name=row.get("user_name"),
            details=row.get("details"),
            created_at=row.get("created_at", ""),
        )
