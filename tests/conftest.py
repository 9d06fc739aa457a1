"""Shared fixtures: an in-memory store with the BackingStore API and one session per role."""

import copy
import uuid

import pytest

from smartshelf.models.inventory import Profile, Role, utc_now_iso
from smartshelf.realtime import ChangeBus
from smartshelf.session import Session
from smartshelf.store import (
    CHILDREN,
    RELATIONS,
    TABLES,
    UNTIMESTAMPED_TABLES,
    UPDATABLE_TABLES,
    ConditionFailedError,
    StoreError,
)
from smartshelf.toasts import ToastCenter

VENDOR_ID = "vendor-1"
OTHER_VENDOR_ID = "vendor-2"


class FakeStore:
    """Dict-backed stand-in for BackingStore. `fail_on` makes writes to a table raise StoreError."""

    def __init__(self):
        self.tables = {table: {} for table in TABLES}
        self.fail_on = set()
        self.calls = []

    # --- Reads ---

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        self._check(table, "select")
        rows = []
        for row in self.tables[table].values():
            match = True
            for column, value in (filters or {}).items():
                if isinstance(value, (list, tuple, set)):
                    match = match and row.get(column) in value
                else:
                    match = match and row.get(column) == value
            if match:
                rows.append(copy.deepcopy(row))
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def get(self, table, row_id):
        self._check(table, "get")
        row = self.tables[table].get(row_id)
        return copy.deepcopy(row) if row else None

    def count(self, table, filters=None):
        return len(self.select(table, filters=filters))

    def get_with_relations(self, table, row_id):
        row = self.get(table, row_id)
        return self.attach_relations(table, [row])[0] if row else None

    def select_with_relations(self, table, **kwargs):
        return self.attach_relations(table, self.select(table, **kwargs))

    def attach_relations(self, table, rows):
        for relation in RELATIONS.get(table, []):
            for row in rows:
                target = self.tables[relation.table].get(row.get(relation.column) or "")
                for source_field, output_field in relation.fields.items():
                    row[output_field] = target.get(source_field) if target else None
        if table in CHILDREN:
            child_table, foreign_key, output_field = CHILDREN[table]
            for row in rows:
                children = self.select(child_table, filters={foreign_key: row["id"]})
                row[output_field] = self.attach_relations(child_table, children)
        return rows

    # --- Writes ---

    def _check(self, table, operation):
        self.calls.append((operation, table))
        if (operation, table) in self.fail_on or table in self.fail_on:
            raise StoreError(f"{operation} on {table} failed")

    def _new_row(self, table, values):
        row = dict(values)
        row.setdefault("id", str(uuid.uuid4()))
        if table not in UNTIMESTAMPED_TABLES:
            row.setdefault("created_at", utc_now_iso())
            if table in UPDATABLE_TABLES:
                row.setdefault("updated_at", row["created_at"])
        return row

    def seed(self, table, row):
        """Puts a row directly, bypassing call tracking and failures."""
        row = self._new_row(table, row)
        self.tables[table][row["id"]] = row
        return copy.deepcopy(row)

    def insert(self, table, values):
        self._check(table, "insert")
        row = self._new_row(table, values)
        self.tables[table][row["id"]] = row
        return copy.deepcopy(row)

    def insert_many(self, table, rows):
        return [self.insert(table, values) for values in rows]

    def update(self, table, row_id, values, expected=None):
        self._check(table, "update")
        row = self.tables[table].get(row_id)
        if row is None or any(row.get(k) != v for k, v in (expected or {}).items()):
            raise ConditionFailedError(f"{table}/{row_id} is missing or was changed by someone else")
        row.update({k: v for k, v in values.items() if k != "id"})
        return copy.deepcopy(row)

    def delete(self, table, row_id):
        self._check(table, "delete")
        self.tables[table].pop(row_id, None)

    def record_stock_movement(self, transaction_row, product_id, delta):
        self._check("transactions", "record_stock_movement")
        product = self.tables["products"].get(product_id)
        if product is None or product["current_stock"] + delta < 0:
            raise ConditionFailedError(f"Stock movement of {delta} on {product_id} would make stock negative")
        row = self._new_row("transactions", transaction_row)
        self.tables["transactions"][row["id"]] = row
        product["current_stock"] += delta
        return copy.deepcopy(row)

    def rows(self, table):
        return list(self.tables[table].values())


def make_session(role, user_id=None, vendor_id=None, full_name=None):
    user_id = user_id or f"{role.value}-user"
    profile = Profile(
        id=f"profile-{user_id}",
        user_id=user_id,
        email=f"{user_id}@example.com",
        role=role,
        full_name=full_name,
        vendor_id=vendor_id,
    )
    return Session(user_id=user_id, profile=profile)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def bus():
    return ChangeBus()


@pytest.fixture
def toasts():
    return ToastCenter()


@pytest.fixture
def admin():
    return make_session(Role.ADMIN, full_name="Asha Admin")


@pytest.fixture
def manager():
    return make_session(Role.WAREHOUSE_MANAGER, full_name="Manoj Manager")


@pytest.fixture
def vendor():
    return make_session(Role.VENDOR, vendor_id=VENDOR_ID, full_name="Vera Vendor")


@pytest.fixture
def other_vendor():
    return make_session(Role.VENDOR, user_id="other-vendor-user", vendor_id=OTHER_VENDOR_ID)


@pytest.fixture
def catalog(store):
    """Two vendors, a category and three products with varied stock."""
    store.seed("vendors", {"id": VENDOR_ID, "name": "Acme Components", "email": "orders@acme.example.com",
                           "phone": "+15550100001"})
    store.seed("vendors", {"id": OTHER_VENDOR_ID, "name": "O'Brien, Inc.", "email": "sales@obrien.example.com"})
    store.seed("categories", {"id": "cat-1", "name": "Electronics"})
    store.seed("profiles", {"id": "profile-vendor-user", "user_id": "vendor-user", "email": "v@example.com",
                            "role": "vendor", "vendor_id": VENDOR_ID, "full_name": "Vera Vendor"})
    products = {
        "cable": store.seed("products", {"id": "p-cable", "sku": "SKU-0001", "name": "USB-C Cable",
                                         "current_stock": 5, "reorder_level": 20, "price": 199.0,
                                         "category_id": "cat-1", "vendor_id": VENDOR_ID}),
        "mouse": store.seed("products", {"id": "p-mouse", "sku": "SKU-0002", "name": "Wireless Mouse",
                                         "current_stock": 100, "reorder_level": 10, "price": 499.5,
                                         "category_id": "cat-1", "vendor_id": VENDOR_ID}),
        "tape": store.seed("products", {"id": "p-tape", "sku": "SKU-0003", "name": "Packing Tape",
                                        "current_stock": 0, "reorder_level": 15, "price": 45.0,
                                        "vendor_id": OTHER_VENDOR_ID}),
    }
    return products
