from __future__ import annotations

from typing import Optional

from smartshelf.models.inventory import Category
from smartshelf.resources.base import RealtimeResource, SyncMode
from smartshelf.session import Permission
from smartshelf.validation import ValidationError


class CategoriesResource(RealtimeResource[Category]):
    table = "categories"
    model = Category
    label = "categories"
    sync_mode = SyncMode.FULL_REFETCH
    order_by = "name"
    descending = False

    def add(self, name: str) -> Optional[Category]:
        self.session.require(Permission.EDIT_PRODUCT_CORE_FIELDS)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required")
        if any(c.name.lower() == name.lower() for c in self.items):
            raise ValidationError(f"Category {name} already exists")

        row = self._write("Failed to create category", lambda: self.store.insert("categories", {"name": name}))
        if row is None:
            return None
        category = Category.from_row(row)
        with self._lock:
            self._items = sorted(self._items + [category], key=lambda c: c.name.lower())
        self._notify_listeners()
        return category
