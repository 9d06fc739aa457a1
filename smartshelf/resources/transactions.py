from __future__ import annotations

import logging
from typing import Optional

from smartshelf.models.inventory import AlertSeverity, Product, Transaction, TransactionType
from smartshelf.realtime import ChangeEvent, ChangeType
from smartshelf.resources.base import RealtimeResource
from smartshelf.session import Permission
from smartshelf.store import ConditionFailedError, StoreError
from smartshelf.validation import ValidationError, require_stock_movement

logger = logging.getLogger(__name__)


class TransactionsResource(RealtimeResource[Transaction]):
    """Append-only stock movement feed (latest 100)."""

    table = "transactions"
    model = Transaction
    label = "transactions"
    limit = 100
    events = (ChangeType.INSERT,)

    def after_change(self, event: ChangeEvent, item: Optional[Transaction]) -> None:
        if item is not None:
            self.toasts.success(
                f"{item.type.label} Recorded",
                f"{item.quantity} units of {item.product_name or 'product'}",
            )

    def record(
        self,
        product_id: Optional[str],
        transaction_type: TransactionType,
        quantity: int,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        product: Optional[Product] = None,
    ) -> Optional[Transaction]:
        """Records a stock movement against the last-known stock of the product.

        `product` may be passed from an already-loaded catalog; otherwise it is
        read from the store. The stock update itself is conditional in the store,
        so a stale product never drives stock below zero.
        """
        self.session.require(Permission.RECORD_TRANSACTIONS)
        transaction_type = TransactionType(transaction_type)
        if not product_id:
            raise ValidationError("Please select a product")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("Please enter a valid quantity")

        if product is None or product.id != product_id:
            try:
                row = self.store.get_with_relations("products", product_id)
            except StoreError as e:
                logger.error("Error loading product %s: %s", product_id, e)
                self.toasts.error("Failed to record transaction", "Product could not be loaded")
                return None
            product = Product.from_row(row) if row else None
        require_stock_movement(product, transaction_type, quantity)

        delta = quantity if transaction_type == TransactionType.STOCK_IN else -quantity
        values = {
            "type": transaction_type.value,
            "product_id": product.id,
            "quantity": quantity,
            "handler_id": self.session.user_id,
            "handler_name": self.session.display_name,
            "reference": reference or None,
            "notes": notes or None,
        }
        try:
            row = self.store.record_stock_movement(values, product.id, delta)
        except ConditionFailedError as e:
            logger.error("Stock movement refused for %s: %s", product.sku, e)
            self.toasts.error("Failed to record transaction", "Insufficient stock for this stock-out")
            return None
        except StoreError as e:
            logger.error("Error adding transaction: %s", e)
            self.toasts.error("Failed to record transaction")
            return None

        verb = "Added" if transaction_type == TransactionType.STOCK_IN else "Removed"
        self._audit(
            transaction_type.value.upper(), "Transaction", row["id"],
            f"{verb} {quantity} units of {product.name}",
        )
        self.toasts.success(
            f"{transaction_type.label} recorded", f"{quantity} units of {product.name}"
        )

        if transaction_type == TransactionType.STOCK_OUT:
            self._check_stock_level(product, product.current_stock - quantity)

        row.update({"product_name": product.name, "product_sku": product.sku})
        return Transaction.from_row(row)

    def _check_stock_level(self, product: Product, new_stock: int) -> None:
        """Raises a stock alert and texts the vendor once stock reaches the reorder level."""
        if new_stock > product.reorder_level:
            return
        if new_stock <= 0:
            self._alert(
                "out_of_stock", "Out of Stock", f"{product.name} is out of stock",
                severity=AlertSeverity.CRITICAL, product_id=product.id,
            )
        else:
            self._alert(
                "low_stock", "Low Stock Alert",
                f"{product.name} is running low ({new_stock} units left, reorder level {product.reorder_level})",
                severity=AlertSeverity.WARNING, product_id=product.id,
            )
        if product.vendor_id:
            self._notify(
                "notify_critical_stock", product.vendor_id, product.name,
                max(new_stock, 0), product.reorder_level,
            )
