from __future__ import annotations

import logging
from typing import Optional

from smartshelf.models.inventory import Vendor
from smartshelf.resources.base import RealtimeResource, SyncMode
from smartshelf.session import Permission
from smartshelf.validation import raise_if_invalid, validate_vendor_fields

logger = logging.getLogger(__name__)

VENDOR_FIELDS = frozenset({"name", "email", "phone", "address", "performance"})


class VendorsResource(RealtimeResource[Vendor]):
    """Vendors by name; a vendor session sees only its own vendor row."""

    table = "vendors"
    model = Vendor
    label = "vendors"
    sync_mode = SyncMode.FULL_REFETCH
    order_by = "name"
    descending = False
    vendor_column = "id"

    def add(self, values: dict) -> Optional[Vendor]:
        self.session.require(Permission.MANAGE_VENDORS)
        values = {k: v for k, v in values.items() if k in VENDOR_FIELDS}
        raise_if_invalid(validate_vendor_fields(values))
        row = self._write("Failed to add vendor", lambda: self.store.insert("vendors", values))
        if row is None:
            return None
        self._audit("CREATE", "Vendor", row["id"], f"Created vendor {values['name']}")
        self.toasts.success("Vendor created successfully")
        return Vendor.from_row(row)

    def update(self, vendor_id: str, values: dict) -> bool:
        self.session.require(Permission.MANAGE_VENDORS)
        values = {k: v for k, v in values.items() if k in VENDOR_FIELDS}
        raise_if_invalid(validate_vendor_fields(values, partial=True))
        row = self._write(
            "Failed to update vendor", lambda: self.store.update("vendors", vendor_id, values)
        )
        if row is None:
            return False
        self._audit("UPDATE", "Vendor", vendor_id, f"Updated vendor {row.get('name', vendor_id)}")
        return True

    def delete(self, vendor_id: str) -> bool:
        self.session.require(Permission.MANAGE_VENDORS)
        vendor = self.find(vendor_id)
        done = self._write(
            "Failed to delete vendor", lambda: self.store.delete("vendors", vendor_id) or True
        )
        if not done:
            return False
        self._audit("DELETE", "Vendor", vendor_id, f"Deleted vendor {vendor.name if vendor else vendor_id}")
        return True
