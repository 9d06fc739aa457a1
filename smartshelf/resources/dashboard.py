"""Dashboard summary: stock health, activity and trends, recomputed on any related change."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from smartshelf.models.inventory import (
    Category,
    OrderStatus,
    Product,
    Transaction,
    TransactionType,
    parse_timestamp,
    utc_now,
)
from smartshelf.resources.base import RealtimeResource, SyncMode
from smartshelf.store import StoreError

logger = logging.getLogger(__name__)

TREND_DAYS = 7


@dataclass
class CategoryStock:
    name: str
    stock: int


@dataclass
class TransactionTrend:
    date: str
    stock_in: int = 0
    stock_out: int = 0


@dataclass
class DashboardStats:
    total_products: int = 0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    today_transactions: int = 0
    pending_orders: int = 0
    total_vendors: int = 0
    health_score: int = 0
    category_stock: list[CategoryStock] = field(default_factory=list)
    transaction_trend: list[TransactionTrend] = field(default_factory=list)


def health_score(total: int, low: int, out: int) -> int:
    if total == 0:
        return 100
    return round((total - low - out) / total * 100)


def category_stock(products: list[Product], categories: Iterable[Category]) -> list[CategoryStock]:
    result = []
    for category in categories:
        stock = sum(p.current_stock for p in products if p.category_id == category.id)
        if stock > 0:
            result.append(CategoryStock(name=category.name, stock=stock))
    return result


def transaction_trend(
    transactions: Iterable[Transaction], now: Optional[datetime] = None, days: int = TREND_DAYS
) -> list[TransactionTrend]:
    """Stock in/out totals per weekday over the trailing window, oldest first."""
    now = now or utc_now()
    since = now - timedelta(days=days)
    dated = []
    for txn in transactions:
        created = parse_timestamp(txn.created_at)
        if created is not None and created >= since:
            dated.append((created, txn))
    dated.sort(key=lambda pair: pair[0])

    trend: dict[str, TransactionTrend] = {}
    for created, txn in dated:
        label = created.strftime("%a")
        entry = trend.setdefault(label, TransactionTrend(date=label))
        if txn.type == TransactionType.STOCK_IN:
            entry.stock_in += txn.quantity
        else:
            entry.stock_out += txn.quantity
    return list(trend.values())


def compute_dashboard_stats(
    products: list[Product],
    transactions: list[Transaction],
    pending_orders: int,
    vendor_count: int,
    categories: Iterable[Category] = (),
    now: Optional[datetime] = None,
) -> DashboardStats:
    now = now or utc_now()
    low = sum(1 for p in products if p.is_low_stock)
    out = sum(1 for p in products if p.is_out_of_stock)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    today = sum(
        1 for t in transactions
        if (parse_timestamp(t.created_at) or midnight - timedelta(days=1)) >= midnight
    )
    return DashboardStats(
        total_products=len(products),
        low_stock_count=low,
        out_of_stock_count=out,
        today_transactions=today,
        pending_orders=pending_orders,
        total_vendors=vendor_count,
        health_score=health_score(len(products), low, out),
        category_stock=category_stock(products, categories),
        transaction_trend=transaction_trend(transactions, now),
    )


class DashboardStatsResource(RealtimeResource[DashboardStats]):
    table = "products"
    label = "dashboard stats"
    sync_mode = SyncMode.FULL_REFETCH

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._stats = DashboardStats(health_score=100)

    @property
    def stats(self) -> DashboardStats:
        return self._stats

    def subscribed_tables(self) -> tuple[str, ...]:
        return ("products", "transactions", "purchase_orders", "vendors")

    def refetch(self) -> bool:
        scope = {"vendor_id": self.session.vendor_id} if self.session.is_vendor else None
        since = (utc_now() - timedelta(days=TREND_DAYS)).isoformat()
        try:
            products = [Product.from_row(r) for r in self.store.select("products", filters=scope)]
            own = {p.id for p in products}
            transactions = [
                Transaction.from_row(r)
                for r in self.store.select("transactions", order_by="created_at")
                if (r.get("created_at") or "") >= since
                and (scope is None or r.get("product_id") in own)
            ]
            order_filters = {"status": OrderStatus.PENDING.value, **(scope or {})}
            pending = self.store.count("purchase_orders", filters=order_filters)
            vendors = self.store.count("vendors")
            categories = [Category.from_row(r) for r in self.store.select("categories")]
        except StoreError as e:
            logger.error("Error fetching dashboard stats: %s", e)
            self.toasts.error("Failed to load dashboard stats")
            self._is_loading = False
            return False

        stats = compute_dashboard_stats(products, transactions, pending, vendors, categories)
        with self._lock:
            if self._unmounted:
                self._is_loading = False
                return False
            self._stats = stats
            self._is_loading = False
        self._notify_listeners()
        return True
