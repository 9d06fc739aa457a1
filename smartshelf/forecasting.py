"""Demand forecasting and auto-restock suggestions.

Everything here is derived from the in-memory product and transaction lists;
nothing is persisted and no external model is called.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Optional

from smartshelf.models.inventory import (
    ForecastAction,
    Product,
    PurchaseOrder,
    RestockUrgency,
    Transaction,
    TransactionType,
    parse_timestamp,
    utc_now,
)
from smartshelf.session import Permission, Session
from smartshelf.validation import ValidationError

if TYPE_CHECKING:
    from smartshelf.resources.purchase_orders import PurchaseOrdersResource

logger = logging.getLogger(__name__)

USAGE_WINDOW_DAYS = 30
NO_STOCKOUT_DAYS = 999
REORDER_NOW_DAYS = 7
REORDER_SOON_DAYS = 14
BASE_CONFIDENCE = 60
CONFIDENCE_PER_TRANSACTION = 5
MAX_CONFIDENCE = 95
SAFETY_STOCK_RATIO = 0.5
BUFFER_RATIO = 0.3
HIGH_URGENCY_RATIO = 0.3
TREND_DAYS = 7
OPTIMAL_BUFFER = 1.1

RESTOCK_REASONS = {
    RestockUrgency.CRITICAL: "Out of stock - immediate reorder required",
    RestockUrgency.HIGH: "Critical low stock - reorder urgently",
    RestockUrgency.MEDIUM: "Approaching reorder threshold",
}


# --- Depletion forecast ---

@dataclass
class ProductForecast:
    product_id: str
    sku: str
    name: str
    current_stock: int
    reorder_level: int
    avg_daily_usage: float
    days_until_stockout: int
    recommended_action: ForecastAction
    confidence: int

    @property
    def avg_daily_usage_display(self) -> float:
        return round(self.avg_daily_usage, 1)

    @property
    def days_until_stockout_display(self) -> str:
        return "N/A" if self.days_until_stockout == NO_STOCKOUT_DAYS else str(self.days_until_stockout)


def days_until_stockout(current_stock: int, avg_daily_usage: float) -> int:
    if avg_daily_usage > 0:
        return math.floor(current_stock / avg_daily_usage)
    return NO_STOCKOUT_DAYS if current_stock > 0 else 0


def recommended_action(current_stock: int, reorder_level: int, days: int) -> ForecastAction:
    if current_stock == 0 or days <= REORDER_NOW_DAYS:
        return ForecastAction.REORDER_NOW
    if days <= REORDER_SOON_DAYS or current_stock <= reorder_level:
        return ForecastAction.REORDER_SOON
    return ForecastAction.SUFFICIENT


def confidence_score(transaction_count: int) -> int:
    return min(MAX_CONFIDENCE, BASE_CONFIDENCE + CONFIDENCE_PER_TRANSACTION * transaction_count)


def _recent_stock_outs(
    transactions: Iterable[Transaction], now: datetime, days: int
) -> dict[str, list[Transaction]]:
    since = now - timedelta(days=days)
    by_product: dict[str, list[Transaction]] = {}
    for txn in transactions:
        if txn.type != TransactionType.STOCK_OUT:
            continue
        created = parse_timestamp(txn.created_at)
        if created is None or created < since:
            continue
        by_product.setdefault(txn.product_id, []).append(txn)
    return by_product


def forecast_product(product: Product, stock_outs: list[Transaction]) -> ProductForecast:
    avg = sum(t.quantity for t in stock_outs) / USAGE_WINDOW_DAYS
    days = days_until_stockout(product.current_stock, avg)
    return ProductForecast(
        product_id=product.id,
        sku=product.sku,
        name=product.name,
        current_stock=product.current_stock,
        reorder_level=product.reorder_level,
        avg_daily_usage=avg,
        days_until_stockout=days,
        recommended_action=recommended_action(product.current_stock, product.reorder_level, days),
        confidence=confidence_score(len(stock_outs)),
    )


def build_forecasts(
    products: Iterable[Product],
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
) -> list[ProductForecast]:
    """One forecast per product, soonest stockout first."""
    stock_outs = _recent_stock_outs(transactions, now or utc_now(), USAGE_WINDOW_DAYS)
    forecasts = [forecast_product(p, stock_outs.get(p.id, [])) for p in products]
    forecasts.sort(key=lambda f: f.days_until_stockout)
    return forecasts


def forecast_summary(forecasts: list[ProductForecast]) -> dict:
    counts = {action.value: 0 for action in ForecastAction}
    for forecast in forecasts:
        counts[forecast.recommended_action.value] += 1
    avg_confidence = (
        round(sum(f.confidence for f in forecasts) / len(forecasts)) if forecasts else 0
    )
    return {
        "total_products": len(forecasts),
        "reorder_now": counts[ForecastAction.REORDER_NOW.value],
        "reorder_soon": counts[ForecastAction.REORDER_SOON.value],
        "sufficient": counts[ForecastAction.SUFFICIENT.value],
        "avg_confidence": avg_confidence,
    }


def demand_trend(
    transactions: Iterable[Transaction], now: Optional[datetime] = None, days: int = TREND_DAYS
) -> list[dict]:
    """Stock-out demand per weekday over the trailing window, with a 10% optimal buffer."""
    now = now or utc_now()
    since = now - timedelta(days=days)
    dated = sorted(
        (
            (created, txn) for txn in transactions
            for created in [parse_timestamp(txn.created_at)]
            if created is not None and created >= since
        ),
        key=lambda pair: pair[0],
    )
    demand: dict[str, int] = {}
    for created, txn in dated:
        day = created.strftime("%a")
        demand.setdefault(day, 0)
        if txn.type == TransactionType.STOCK_OUT:
            demand[day] += txn.quantity
    return [
        {"day": day, "demand": value, "optimal": round(value * OPTIMAL_BUFFER)}
        for day, value in demand.items()
    ]


# --- Auto-restock ---

@dataclass
class RestockSuggestion:
    product_id: str
    product_name: str
    sku: str
    vendor_id: Optional[str]
    vendor_name: str
    current_stock: int
    reorder_level: int
    suggested_quantity: int
    urgency: RestockUrgency
    reason: str


def suggested_quantity(current_stock: int, reorder_level: int) -> int:
    """deficit + safety stock (50% of reorder level) + buffer (30% of reorder level)."""
    deficit = max(0, reorder_level - current_stock)
    safety_stock = math.ceil(reorder_level * SAFETY_STOCK_RATIO)
    buffer = math.ceil(reorder_level * BUFFER_RATIO)
    return deficit + safety_stock + buffer


def restock_urgency(current_stock: int, reorder_level: int) -> RestockUrgency:
    if current_stock == 0:
        return RestockUrgency.CRITICAL
    if current_stock <= reorder_level * HIGH_URGENCY_RATIO:
        return RestockUrgency.HIGH
    return RestockUrgency.MEDIUM


def build_restock_suggestions(
    products: Iterable[Product], session: Optional[Session] = None
) -> list[RestockSuggestion]:
    """Suggestions for every product at or below its reorder level, most urgent first."""
    suggestions = []
    for product in products:
        if session is not None and session.is_vendor and product.vendor_id != session.vendor_id:
            continue
        if product.current_stock > product.reorder_level:
            continue
        urgency = restock_urgency(product.current_stock, product.reorder_level)
        suggestions.append(RestockSuggestion(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            vendor_id=product.vendor_id,
            vendor_name=product.vendor_name or "No vendor",
            current_stock=product.current_stock,
            reorder_level=product.reorder_level,
            suggested_quantity=suggested_quantity(product.current_stock, product.reorder_level),
            urgency=urgency,
            reason=RESTOCK_REASONS[urgency],
        ))
    suggestions.sort(key=lambda s: s.urgency.rank)
    return suggestions


def restock_stats(suggestions: list[RestockSuggestion]) -> dict:
    return {urgency.value: sum(1 for s in suggestions if s.urgency == urgency) for urgency in RestockUrgency}


class AutoRestockPlanner:
    """Turns selected restock suggestions into one purchase order per vendor."""

    def __init__(self, purchase_orders: PurchaseOrdersResource):
        self.purchase_orders = purchase_orders

    def group_by_vendor(self, suggestions: Iterable[RestockSuggestion]) -> dict[str, list[RestockSuggestion]]:
        groups: dict[str, list[RestockSuggestion]] = {}
        for suggestion in suggestions:
            if suggestion.vendor_id:
                groups.setdefault(suggestion.vendor_id, []).append(suggestion)
        return groups

    def generate_purchase_order(
        self,
        vendor_id: Optional[str],
        suggestions: Iterable[RestockSuggestion],
        quantities: Optional[dict[str, int]] = None,
        notes: Optional[str] = None,
    ) -> Optional[PurchaseOrder]:
        """Creates a pending PO for the suggestions that belong to `vendor_id`.

        `quantities` overrides suggested quantities per product id. Prices come
        from the products themselves.
        """
        self.purchase_orders.session.require(Permission.CREATE_PURCHASE_ORDER)
        if not vendor_id:
            raise ValidationError("Please select a vendor")
        selected = [s for s in suggestions if s.vendor_id == vendor_id]
        if not selected:
            raise ValidationError("No items selected for this vendor")

        quantities = quantities or {}
        items = []
        for s in selected:
            quantity = quantities.get(s.product_id)
            if quantity is None:
                quantity = s.suggested_quantity
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationError(f"Quantity for {s.product_name} must be a whole number above zero")
            items.append({"product_id": s.product_id, "quantity": quantity})
        order = self.purchase_orders.create(vendor_id, items, notes=notes, auto_restock=True)
        if order is not None:
            logger.info("Auto-restock PO %s created for %s with %d items", order.short_id, vendor_id, len(items))
            self.purchase_orders.toasts.success(
                "Purchase Order Generated!",
                f"PO #{order.short_id} created for {order.vendor_name} with {len(items)} items",
            )
        return order
