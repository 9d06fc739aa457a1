"""Catalog, vendor, user, audit and dashboard resource tests."""

from datetime import datetime, timezone

import pytest

from smartshelf.models.inventory import Category, Product, Role, Transaction, TransactionType
from smartshelf.resources import (
    AuditLogsResource,
    CategoriesResource,
    DashboardStatsResource,
    ProductsResource,
    ProfilesResource,
    VendorsResource,
)
from smartshelf.resources.dashboard import compute_dashboard_stats, health_score, transaction_trend
from smartshelf.validation import DuplicateSkuError, PermissionDenied, ValidationError


class TestProducts:
    """Product CRUD with role-limited edits."""

    def test_admin_adds_product(self, store, bus, admin, toasts, catalog):
        products = ProductsResource(store, bus, admin, toasts=toasts).mount()
        product = products.add({"sku": " SKU-0100 ", "name": "Stapler", "price": 99.0, "bogus": 1})
        assert product.sku == "SKU-0100"
        assert product.reorder_level == 10
        assert "bogus" not in store.tables["products"][product.id]
        [log] = store.rows("audit_logs")
        assert log["details"] == "Created product Stapler (SKU-0100)"

    def test_duplicate_sku(self, store, bus, admin, toasts, catalog):
        products = ProductsResource(store, bus, admin, toasts=toasts).mount()
        with pytest.raises(DuplicateSkuError):
            products.add({"sku": "SKU-0001", "name": "Another cable"})

    def test_manager_cannot_add_or_delete(self, store, bus, manager, toasts, catalog):
        products = ProductsResource(store, bus, manager, toasts=toasts).mount()
        with pytest.raises(PermissionDenied):
            products.add({"sku": "X", "name": "Y"})
        with pytest.raises(PermissionDenied):
            products.delete("p-cable")

    def test_manager_edits_core_fields(self, store, bus, manager, toasts, catalog):
        products = ProductsResource(store, bus, manager, toasts=toasts).mount()
        assert products.update("p-cable", {"reorder_level": 30, "current_stock": 6}) is not None
        assert store.tables["products"]["p-cable"]["reorder_level"] == 30

    def test_vendor_edits_own_display_fields(self, store, bus, vendor, toasts, catalog):
        products = ProductsResource(store, bus, vendor, toasts=toasts).mount()
        products.update("p-cable", {"price": 210.0, "description": "Braided"})
        assert store.tables["products"]["p-cable"]["price"] == 210.0

    def test_vendor_cannot_edit_stock(self, store, bus, vendor, toasts, catalog):
        products = ProductsResource(store, bus, vendor, toasts=toasts).mount()
        with pytest.raises(PermissionDenied, match="current_stock"):
            products.update("p-cable", {"current_stock": 500})
        assert store.tables["products"]["p-cable"]["current_stock"] == 5

    def test_vendor_cannot_see_other_products(self, store, bus, vendor, toasts, catalog):
        products = ProductsResource(store, bus, vendor, toasts=toasts).mount()
        with pytest.raises(ValidationError, match="not found"):
            products.update("p-tape", {"price": 1.0})

    def test_admin_deletes(self, store, bus, admin, toasts, catalog):
        products = ProductsResource(store, bus, admin, toasts=toasts).mount()
        assert products.delete("p-tape") is True
        assert "p-tape" not in store.tables["products"]

    def test_search_and_low_stock(self, store, bus, admin, toasts, catalog):
        products = ProductsResource(store, bus, admin, toasts=toasts).mount()
        assert [p.id for p in products.search("sku-0002")] == ["p-mouse"]
        assert [p.id for p in products.search(stock_filter="out")] == ["p-tape"]
        assert [p.id for p in products.search(stock_filter="low")] == ["p-cable"]
        assert {p.id for p in products.low_stock()} == {"p-cable", "p-tape"}

    def test_import_csv(self, store, bus, admin, toasts, catalog):
        products = ProductsResource(store, bus, admin, toasts=toasts).mount()
        content = (
            "SKU,Name,Description,Price,CurrentStock,ReorderLevel\n"
            'IMP-1,"Glue, strong",Adhesive,12.5,40,\n'
            "IMP-2,Tape,,3,x,5\n"
            ",Nameless,,1,1,1\n"
            "IMP-3,Scissors,,25,7,2\n"
        )
        assert products.import_csv(content, default_vendor_id="vendor-1") == 2
        imported = {p.sku: p for p in products.items if p.sku.startswith("IMP")}
        assert imported["IMP-1"].name == "Glue, strong"
        assert imported["IMP-1"].reorder_level == 10
        assert imported["IMP-3"].vendor_id == "vendor-1"
        assert toasts.history[-1].title == "Imported 2 products"

    def test_import_trims_padded_values(self, store, bus, admin, toasts, catalog):
        products = ProductsResource(store, bus, admin, toasts=toasts).mount()
        content = "SKU,Name,Price,CurrentStock\n  IMP-9 , Ruler ,  12 , 4 \n"
        assert products.import_csv(content) == 1
        [ruler] = [p for p in products.items if p.sku == "IMP-9"]
        assert (ruler.name, ruler.price, ruler.current_stock) == ("Ruler", 12.0, 4)


class TestVendors:
    """Vendor management is admin-only; vendors see their own row."""

    def test_add_vendor(self, store, bus, admin, toasts, catalog):
        vendors = VendorsResource(store, bus, admin, toasts=toasts).mount()
        vendor = vendors.add({"name": "New Co", "email": "hi@new.co"})
        assert vendor.name == "New Co"

    def test_invalid_email(self, store, bus, admin, toasts, catalog):
        vendors = VendorsResource(store, bus, admin, toasts=toasts).mount()
        with pytest.raises(ValidationError):
            vendors.add({"name": "New Co", "email": "nope"})

    def test_manager_cannot_manage(self, store, bus, manager, toasts, catalog):
        vendors = VendorsResource(store, bus, manager, toasts=toasts).mount()
        with pytest.raises(PermissionDenied):
            vendors.update("vendor-1", {"phone": "+1"})

    def test_sorted_and_scoped(self, store, bus, admin, vendor, toasts, catalog):
        assert [v.name for v in VendorsResource(store, bus, admin, toasts=toasts).mount().items] == [
            "Acme Components", "O'Brien, Inc.",
        ]
        assert [v.id for v in VendorsResource(store, bus, vendor, toasts=toasts).mount().items] == ["vendor-1"]


class TestCategories:
    """Categories are unique by name."""

    def test_add_keeps_sorted(self, store, bus, manager, toasts, catalog):
        categories = CategoriesResource(store, bus, manager, toasts=toasts).mount()
        categories.add("Cleaning")
        assert [c.name for c in categories.items] == ["Cleaning", "Electronics"]

    def test_duplicate_name(self, store, bus, manager, toasts, catalog):
        categories = CategoriesResource(store, bus, manager, toasts=toasts).mount()
        with pytest.raises(ValidationError):
            categories.add("electronics")


class TestProfiles:
    """User management for admins only."""

    def test_non_admin_cannot_open(self, store, bus, manager, toasts, catalog):
        with pytest.raises(PermissionDenied):
            ProfilesResource(store, bus, manager, toasts=toasts).mount()

    def test_change_role(self, store, bus, admin, toasts, catalog):
        profiles = ProfilesResource(store, bus, admin, toasts=toasts).mount()
        assert profiles.change_role("vendor-user", Role.WAREHOUSE_MANAGER) is True
        assert store.tables["profiles"]["profile-vendor-user"]["role"] == "warehouse_manager"

    def test_cannot_change_own_role(self, store, bus, admin, toasts, catalog):
        profiles = ProfilesResource(store, bus, admin, toasts=toasts).mount()
        with pytest.raises(PermissionDenied):
            profiles.change_role(admin.user_id, Role.VENDOR)


class TestAuditLogs:
    """Admin-only audit feed."""

    def test_vendor_cannot_open(self, store, bus, vendor, toasts):
        with pytest.raises(PermissionDenied):
            AuditLogsResource(store, bus, vendor, toasts=toasts).mount()

    def test_search(self, store, bus, admin, toasts):
        store.seed("audit_logs", {"action": "CREATE", "entity_type": "Product", "details": "Created Cable",
                                  "user_name": "Asha"})
        store.seed("audit_logs", {"action": "STOCK_OUT", "entity_type": "Transaction",
                                  "details": "Removed 3 units", "user_name": "Manoj"})
        logs = AuditLogsResource(store, bus, admin, toasts=toasts).mount()
        assert [log.action for log in logs.search("manoj")] == ["STOCK_OUT"]
        assert [log.action for log in logs.search(action="CREATE")] == ["CREATE"]


class TestDashboardStats:
    """Stock health, activity and trend."""

    NOW = datetime(2026, 3, 16, 15, 0, tzinfo=timezone.utc)

    def test_health_score(self):
        assert health_score(0, 0, 0) == 100
        assert health_score(10, 2, 1) == 70

    def test_compute(self):
        products = [
            Product(id="a", sku="a", name="a", current_stock=0, reorder_level=5, category_id="c1"),
            Product(id="b", sku="b", name="b", current_stock=3, reorder_level=5, category_id="c1"),
            Product(id="c", sku="c", name="c", current_stock=50, reorder_level=5, category_id="c2"),
        ]
        transactions = [
            Transaction(id="t1", type=TransactionType.STOCK_IN, product_id="a", quantity=5,
                        created_at="2026-03-16T09:00:00+00:00"),
            Transaction(id="t2", type=TransactionType.STOCK_OUT, product_id="a", quantity=2,
                        created_at="2026-03-14T09:00:00+00:00"),
        ]
        categories = [Category(id="c1", name="Electronics"), Category(id="c2", name="Tools"),
                      Category(id="c3", name="Empty")]
        stats = compute_dashboard_stats(products, transactions, 4, 2, categories, now=self.NOW)

        assert (stats.total_products, stats.low_stock_count, stats.out_of_stock_count) == (3, 1, 1)
        assert stats.today_transactions == 1
        assert stats.health_score == 33
        assert [(c.name, c.stock) for c in stats.category_stock] == [("Electronics", 3), ("Tools", 50)]
        assert [(t.date, t.stock_in, t.stock_out) for t in stats.transaction_trend] == [
            ("Sat", 0, 2), ("Mon", 5, 0),
        ]

    def test_trend_ignores_old_transactions(self):
        old = Transaction(id="t", type=TransactionType.STOCK_OUT, product_id="a", quantity=1,
                          created_at="2026-02-01T00:00:00+00:00")
        assert transaction_trend([old], now=self.NOW) == []

    def test_resource_vendor_scope(self, store, bus, vendor, toasts, catalog):
        store.seed("purchase_orders", {"vendor_id": "vendor-1", "status": "pending", "total_amount": 1.0})
        store.seed("purchase_orders", {"vendor_id": "vendor-2", "status": "pending", "total_amount": 1.0})
        dashboard = DashboardStatsResource(store, bus, vendor, toasts=toasts).mount()
        stats = dashboard.stats
        assert stats.total_products == 2
        assert stats.pending_orders == 1
        assert stats.low_stock_count == 1

    def test_vendor_trend_counts_only_own_products(self, store, bus, vendor, toasts, catalog):
        store.seed("transactions", {"type": "stock_in", "product_id": "p-tape", "quantity": 9})
        store.seed("transactions", {"type": "stock_out", "product_id": "p-cable", "quantity": 2})
        stats = DashboardStatsResource(store, bus, vendor, toasts=toasts).mount().stats
        assert stats.today_transactions == 1
        assert [(t.stock_in, t.stock_out) for t in stats.transaction_trend] == [(0, 2)]

    def test_staff_trend_counts_everything(self, store, bus, manager, toasts, catalog):
        store.seed("transactions", {"type": "stock_in", "product_id": "p-tape", "quantity": 9})
        store.seed("transactions", {"type": "stock_out", "product_id": "p-cable", "quantity": 2})
        stats = DashboardStatsResource(store, bus, manager, toasts=toasts).mount().stats
        assert stats.today_transactions == 2
