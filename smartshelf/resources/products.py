from __future__ import annotations

import logging
from typing import Any, Optional

from smartshelf.export import parse_csv
from smartshelf.models.inventory import Product
from smartshelf.realtime import ChangeEvent, ChangeType
from smartshelf.resources.base import RealtimeResource
from smartshelf.session import Permission
from smartshelf.store import StoreError
from smartshelf.validation import (
    DuplicateSkuError,
    PermissionDenied,
    ValidationError,
    raise_if_invalid,
    validate_product_fields,
)

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = frozenset({
    "sku", "name", "description", "category_id", "vendor_id",
    "price", "current_stock", "reorder_level", "image_url",
})
DEFAULT_IMPORT_REORDER_LEVEL = 10


def _first(row: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = row.get(key)
        if isinstance(value, str):
            value = value.strip()
        if value not in (None, ""):
            return value
    return None


class ProductsResource(RealtimeResource[Product]):
    """Live product catalog. Vendors see and edit (name, description, price) only their own products."""

    table = "products"
    model = Product
    label = "products"
    vendor_column = "vendor_id"

    def after_change(self, event: ChangeEvent, item: Optional[Product]) -> None:
        if event.change_type == ChangeType.INSERT and item:
            self.toasts.success("New product added", item.name)
        elif event.change_type == ChangeType.UPDATE and item:
            old_stock = (event.old or {}).get("current_stock")
            if old_stock is not None and old_stock > item.reorder_level >= item.current_stock:
                self.toasts.warning(
                    "Low Stock Alert", f"{item.name} is running low ({item.current_stock} units)"
                )
        elif event.change_type == ChangeType.DELETE:
            self.toasts.info("Product deleted")

    # --- Queries ---

    def low_stock(self) -> list[Product]:
        return [p for p in self.items if p.current_stock <= p.reorder_level]

    def search(self, text: str = "", stock_filter: str = "all") -> list[Product]:
        """Filters by name/SKU substring and stock state: all, low, out or in."""
        text = text.lower().strip()
        results = [
            p for p in self.items
            if not text or text in p.name.lower() or text in p.sku.lower()
        ]
        if stock_filter == "low":
            results = [p for p in results if p.is_low_stock]
        elif stock_filter == "out":
            results = [p for p in results if p.is_out_of_stock]
        elif stock_filter == "in":
            results = [p for p in results if p.current_stock > p.reorder_level]
        return results

    # --- Mutations ---

    def _ensure_unique_sku(self, sku: str, exclude_id: Optional[str] = None) -> None:
        if any(p.sku == sku and p.id != exclude_id for p in self.items):
            raise DuplicateSkuError(f"SKU {sku} already exists")
        try:
            existing = self.store.select("products", filters={"sku": sku})
        except StoreError as e:
            logger.warning("SKU uniqueness check failed: %s", e)
            return
        if any(row["id"] != exclude_id for row in existing):
            raise DuplicateSkuError(f"SKU {sku} already exists")

    def add(self, values: dict) -> Optional[Product]:
        self.session.require(Permission.CREATE_PRODUCT)
        values = {k: v for k, v in values.items() if k in PRODUCT_FIELDS}
        values.setdefault("current_stock", 0)
        values.setdefault("reorder_level", DEFAULT_IMPORT_REORDER_LEVEL)
        values.setdefault("price", 0)
        raise_if_invalid(validate_product_fields(values))
        values["sku"] = values["sku"].strip()
        self._ensure_unique_sku(values["sku"])

        row = self._write("Failed to add product", lambda: self.store.insert("products", values))
        if row is None:
            return None
        self._audit("CREATE", "Product", row["id"], f"Created product {values['name']} ({values['sku']})")
        self.toasts.success("Product added successfully")
        return Product.from_row(row)

    def update(self, product_id: str, values: dict) -> Optional[Product]:
        product = self.lookup(product_id)
        if product is None:
            raise ValidationError("Selected product not found")
        values = {k: v for k, v in values.items() if k in PRODUCT_FIELDS}

        if self.session.is_vendor and product.vendor_id != self.session.vendor_id:
            raise PermissionDenied("Vendors can only edit their own products")
        allowed = self.session.editable_product_fields(set(values))
        if allowed != set(values):
            denied = ", ".join(sorted(set(values) - allowed))
            raise PermissionDenied(f"Not allowed to change: {denied}")

        raise_if_invalid(validate_product_fields(values, partial=True))
        if "sku" in values and values["sku"] != product.sku:
            self._ensure_unique_sku(values["sku"], exclude_id=product_id)

        row = self._write(
            "Failed to update product", lambda: self.store.update("products", product_id, values)
        )
        if row is None:
            return None
        self._audit("UPDATE", "Product", product_id, f"Updated product {row.get('name', product.name)}")
        self.toasts.success("Product updated successfully")
        return Product.from_row(row)

    def delete(self, product_id: str) -> bool:
        self.session.require(Permission.DELETE_PRODUCT)
        product = self.find(product_id)
        done = self._write("Failed to delete product", lambda: self.store.delete("products", product_id) or True)
        if not done:
            return False
        name = product.name if product else product_id
        self._audit("DELETE", "Product", product_id, f"Deleted product {name}")
        self.toasts.success("Product deleted successfully")
        return True

    def import_csv(self, content: str, default_vendor_id: Optional[str] = None) -> int:
        """Inserts one product per CSV row having a SKU and a name; returns how many were stored."""
        self.session.require(Permission.CREATE_PRODUCT)
        try:
            rows = parse_csv(content)
        except ValueError as e:
            logger.error("CSV import failed: %s", e)
            self.toasts.error("Failed to parse CSV file")
            return 0

        imported = 0
        for row in rows:
            sku = _first(row, "SKU", "sku")
            name = _first(row, "Name", "name")
            if not sku or not name:
                continue
            try:
                values: dict[str, Any] = {
                    "sku": sku.strip(),
                    "name": name.strip(),
                    "description": _first(row, "Description", "description"),
                    "price": float(_first(row, "Price", "price") or 0),
                    "current_stock": int(_first(row, "CurrentStock", "currentStock", "Stock") or 0),
                    "reorder_level": int(
                        _first(row, "ReorderLevel", "reorderLevel") or DEFAULT_IMPORT_REORDER_LEVEL
                    ),
                    "vendor_id": default_vendor_id,
                }
            except ValueError:
                logger.warning("Skipping CSV row with bad numbers: %s", sku)
                continue
            if not validate_product_fields(values).is_valid:
                logger.warning("Skipping invalid CSV row: %s", sku)
                continue
            try:
                self.store.insert("products", values)
                imported += 1
            except StoreError as e:
                logger.warning("CSV row %s not imported: %s", sku, e)

        self._audit("CREATE", "Product", None, f"Imported {imported} products from CSV")
        self.toasts.success(f"Imported {imported} products")
        self.refetch()
        return imported
