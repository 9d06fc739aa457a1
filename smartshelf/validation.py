"""Input validation and integrity checks.

Every check here runs before any network call. Checks return a ValidationResult;
`raise_if_invalid` turns a failed result into the matching ValidationError subclass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from smartshelf.models.inventory import Product, TransactionType

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Rejected input; nothing has been written."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class InsufficientStockError(ValidationError):
    pass


class TransitionError(ValidationError):
    pass


class PermissionDenied(ValidationError):
    pass


class DuplicateSkuError(ValidationError):
    pass


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _result(errors: list[str], warnings: Optional[list[str]] = None) -> ValidationResult:
    return ValidationResult(is_valid=len(errors) == 0, errors=errors, warnings=warnings or [])


def raise_if_invalid(result: ValidationResult, exc_type: type = ValidationError) -> None:
    if not result.is_valid:
        raise exc_type(result.errors[0], result.errors)


def _is_non_negative_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


# --- Stock movements ---

def validate_stock_movement(
    product: Optional[Product], transaction_type: TransactionType, quantity: Any
) -> ValidationResult:
    """Checks a stock movement against the last-known stock of the product."""
    errors = []
    if product is None:
        errors.append("Please select a product")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        errors.append("Please enter a valid quantity")
    if errors:
        return _result(errors)

    if transaction_type == TransactionType.STOCK_OUT and quantity > product.current_stock:
        errors.append(f"Insufficient stock. Available: {product.current_stock}")
    return _result(errors)


def require_stock_movement(
    product: Optional[Product], transaction_type: TransactionType, quantity: Any
) -> Product:
    result = validate_stock_movement(product, transaction_type, quantity)
    if not result.is_valid:
        exc_type = (
            InsufficientStockError
            if result.errors[0].startswith("Insufficient stock")
            else ValidationError
        )
        raise exc_type(result.errors[0], result.errors)
    return product


def check_no_negative_stock(products: Iterable[Product]) -> ValidationResult:
    """Invariant: stock and reorder levels are never negative."""
    errors = []
    for product in products:
        if product.current_stock < 0:
            errors.append(f"Negative stock detected: {product.sku} = {product.current_stock}")
        if product.reorder_level < 0:
            errors.append(f"Negative reorder level: {product.sku} = {product.reorder_level}")
    return _result(errors)


# --- Catalog ---

def validate_product_fields(values: dict, partial: bool = False) -> ValidationResult:
    errors = []
    if not partial or "sku" in values:
        if not str(values.get("sku") or "").strip():
            errors.append("SKU is required")
    if not partial or "name" in values:
        if not str(values.get("name") or "").strip():
            errors.append("Name is required")
    if "price" in values:
        price = values["price"]
        if not isinstance(price, (int, float)) or isinstance(price, bool) or price < 0:
            errors.append("Price must be a non-negative number")
    for key in ("current_stock", "reorder_level"):
        if key in values and not _is_non_negative_int(values[key]):
            errors.append(f"{key.replace('_', ' ').capitalize()} must be a non-negative integer")
    return _result(errors)


def validate_vendor_fields(values: dict, partial: bool = False) -> ValidationResult:
    errors = []
    if not partial or "name" in values:
        if not str(values.get("name") or "").strip():
            errors.append("Vendor name is required")
    if not partial or "email" in values:
        email = str(values.get("email") or "").strip()
        if not email or "@" not in email:
            errors.append("A valid vendor email is required")
    return _result(errors)


# --- Orders and requests ---

def validate_purchase_order(vendor_id: Optional[str], items: list[dict]) -> ValidationResult:
    errors = []
    if not vendor_id:
        errors.append("Please select a vendor")

    valid_items = [item for item in items if item.get("product_id") and (item.get("quantity") or 0) > 0]
    if not valid_items:
        errors.append("Please add at least one item")
    for item in valid_items:
        if not isinstance(item["quantity"], int) or isinstance(item["quantity"], bool):
            errors.append(f"Quantity must be a whole number for product {item['product_id']}")
        price = item.get("unit_price")
        if price is not None and price < 0:
            errors.append(f"Unit price must be non-negative for product {item['product_id']}")
    return _result(errors)


def validate_stock_request(vendor_id: Optional[str], quantity: Any) -> ValidationResult:
    """A request may name no product (general stock), but always a vendor."""
    errors = []
    if not vendor_id:
        errors.append("Please select a vendor")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        errors.append("Please enter a valid quantity")
    return _result(errors)
