from __future__ import annotations

import logging
from typing import Optional

from smartshelf.models.inventory import (
    AlertSeverity,
    OrderStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    format_amount,
)
from smartshelf.realtime import ChangeEvent, ChangeType
from smartshelf.resources.base import (
    RealtimeResource,
    SyncMode,
    vendor_user_ids,
)
from smartshelf.session import Permission
from smartshelf.store import StoreError
from smartshelf.validation import ValidationError, raise_if_invalid, validate_purchase_order
from smartshelf.workflow import WorkflowKind, check_transition, write_status

logger = logging.getLogger(__name__)


class PurchaseOrdersResource(RealtimeResource[PurchaseOrder]):
    """Purchase orders with their line items; vendors see only orders addressed to them."""

    table = "purchase_orders"
    model = PurchaseOrder
    label = "purchase orders"
    sync_mode = SyncMode.FULL_REFETCH
    vendor_column = "vendor_id"

    def to_item(self, row: dict) -> PurchaseOrder:
        items = [PurchaseOrderItem.from_row(item) for item in row.get("items", [])]
        return PurchaseOrder.from_row(row, items=items)

    def after_change(self, event: ChangeEvent, item: Optional[PurchaseOrder]) -> None:
        if event.change_type == ChangeType.INSERT and self.session.is_vendor:
            self.toasts.info("New Purchase Order", "You have a new purchase order to review")
        elif event.change_type == ChangeType.UPDATE:
            status = (event.new or {}).get("status")
            if status == OrderStatus.APPROVED.value:
                self.toasts.success("Purchase Order Approved")
            elif status == OrderStatus.REJECTED.value:
                self.toasts.warning("Purchase Order Rejected")

    @property
    def pending_count(self) -> int:
        return sum(1 for po in self.items if po.status == OrderStatus.PENDING)

    # --- Creation ---

    def create(
        self,
        vendor_id: Optional[str],
        items: list[dict],
        notes: Optional[str] = None,
        auto_restock: bool = False,
    ) -> Optional[PurchaseOrder]:
        """Creates a pending order for one vendor.

        `items` are dicts with product_id, quantity and optionally unit_price
        (defaults to the product's price). Items with quantity 0 are dropped.
        """
        self.session.require(Permission.CREATE_PURCHASE_ORDER)
        raise_if_invalid(validate_purchase_order(vendor_id, items))
        items = [item for item in items if item.get("product_id") and (item.get("quantity") or 0) > 0]

        try:
            vendor = self.store.get("vendors", vendor_id)
            products = {item["product_id"]: self.store.get("products", item["product_id"]) for item in items}
        except StoreError as e:
            logger.error("Error loading order details: %s", e)
            self.toasts.error("Failed to create purchase order")
            return None
        if vendor is None:
            raise ValidationError("Selected vendor not found")
        missing = [pid for pid, product in products.items() if product is None]
        if missing:
            raise ValidationError(f"Selected product not found: {missing[0]}")

        lines = [
            PurchaseOrderItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price=float(
                    item["unit_price"] if item.get("unit_price") is not None
                    else products[item["product_id"]].get("price", 0)
                ),
                product_name=products[item["product_id"]].get("name"),
                product_sku=products[item["product_id"]].get("sku"),
            )
            for item in items
        ]
        total_amount = round(sum(line.line_total for line in lines), 2)

        header = self._write("Failed to create purchase order", lambda: self.store.insert("purchase_orders", {
            "vendor_id": vendor_id,
            "status": OrderStatus.PENDING.value,
            "total_amount": total_amount,
            "created_by": self.session.user_id,
        }))
        if header is None:
            return None
        order = PurchaseOrder.from_row(
            {**header, "vendor_name": vendor.get("name"), "vendor_email": vendor.get("email")},
            items=lines,
        )

        try:
            item_rows = self.store.insert_many("purchase_order_items", [
                {
                    "purchase_order_id": order.id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                }
                for line in lines
            ])
            for line, row in zip(lines, item_rows):
                line.id = row["id"]
                line.purchase_order_id = order.id
        except StoreError as e:
            logger.error("Error creating PO items for %s: %s", order.id, e)

        self._announce_new_order(order, vendor, notes, auto_restock)
        self._notify(
            "notify_vendor_of_po", vendor_id, order.id, order.product_names,
            total_amount, self.session.display_name,
        )
        self.toasts.success("Purchase order created and vendor notified")
        return order

    def _announce_new_order(
        self, order: PurchaseOrder, vendor: dict, notes: Optional[str], auto_restock: bool
    ) -> None:
        names = order.product_names
        amount = format_amount(order.total_amount)
        notes_suffix = f". Notes: {notes}" if notes else ""
        if auto_restock:
            vendor_message = (
                f"Auto-restock PO #{order.short_id} received with {len(order.items)} items. "
                f"Total: {amount}{notes_suffix}"
            )
            broadcast_message = vendor_message
            details = (
                f"Auto-generated PO for {vendor.get('name', 'vendor')} with {len(order.items)} items. "
                f"Total: {amount}"
            )
        else:
            vendor_message = (
                f"New PO #{order.short_id} from {self.session.display_name}: {names}. "
                f"Total: {amount}{notes_suffix}"
            )
            broadcast_message = (
                f"New PO #{order.short_id} for {vendor.get('name', 'vendor')}: {names}. "
                f"Total: {amount}{notes_suffix}"
            )
            details = f"Created PO for {vendor.get('name')}: {names}"

        recipients = self._best_effort(
            "Vendor user lookup", lambda: vendor_user_ids(self.store, order.vendor_id)
        ) or []
        if recipients:
            for user_id in recipients:
                self._alert("purchase_order", "New Purchase Order", vendor_message, user_id=user_id)
        else:
            self._alert("purchase_order", "New Purchase Order", broadcast_message)
        self._audit("CREATE", "PurchaseOrder", order.id, details)

    # --- Status changes ---

    def transition(self, po_id: str, status: OrderStatus, reason: Optional[str] = None) -> bool:
        order = self.lookup(po_id)
        if order is None:
            raise ValidationError("Purchase order not found")
        status = OrderStatus(status)
        check_transition(WorkflowKind.PURCHASE_ORDER, order.status, status, self.session, order.vendor_id)

        row = self._write(
            "Failed to update order",
            lambda: write_status(self.store, WorkflowKind.PURCHASE_ORDER, po_id, order.status, status),
        )
        if row is None:
            return False

        if status == OrderStatus.COMPLETED:
            self._announce_completion(order)
            self.toasts.success("Purchase order marked as completed")
        else:
            self._announce_vendor_response(order, status, reason)
            self.toasts.success(f"Purchase order {status.value}")
        return True

    def respond(self, po_id: str, status: OrderStatus, reason: Optional[str] = None) -> bool:
        """Vendor approval or rejection of a pending order."""
        status = OrderStatus(status)
        if status not in (OrderStatus.APPROVED, OrderStatus.REJECTED):
            raise ValidationError("A response must approve or reject the order")
        return self.transition(po_id, status, reason)

    def complete(self, po_id: str) -> bool:
        return self.transition(po_id, OrderStatus.COMPLETED)

    def _announce_vendor_response(
        self, order: PurchaseOrder, status: OrderStatus, reason: Optional[str]
    ) -> None:
        names = order.product_names
        if status == OrderStatus.APPROVED:
            title, severity = "PO Approved", AlertSeverity.INFO
            message = (
                f"Your PO #{order.short_id} for {names} ({format_amount(order.total_amount)}) "
                f"has been approved by {self.session.display_name}."
            )
        else:
            title, severity = "PO Rejected", AlertSeverity.WARNING
            message = f"Your PO #{order.short_id} for {names} was rejected."
            if reason:
                message += f" Reason: {reason}"
        if order.created_by:
            self._alert("order_update", title, message, severity=severity, user_id=order.created_by)

        details = f"Vendor {status.value} PO"
        if reason:
            details += f". Notes: {reason}"
        self._audit("UPDATE", "PurchaseOrder", order.id, details)

    def _announce_completion(self, order: PurchaseOrder) -> None:
        message = f"PO #{order.short_id} has been completed. Total: {format_amount(order.total_amount)}"
        recipients = self._best_effort(
            "Vendor user lookup", lambda: vendor_user_ids(self.store, order.vendor_id)
        ) or [None]
        for user_id in recipients:
            self._alert("order_update", "Purchase Order Completed", message, user_id=user_id)
        self._audit("UPDATE", "PurchaseOrder", order.id, "Changed PO status to completed")
        self._notify("notify_order_update", order.vendor_id, order.id, OrderStatus.COMPLETED.value)
