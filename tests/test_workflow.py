"""Purchase order and stock request workflow tests."""

from unittest.mock import MagicMock

import pytest

from smartshelf.models.inventory import OrderStatus, RequestStatus
from smartshelf.resources.purchase_orders import PurchaseOrdersResource
from smartshelf.resources.stock_requests import StockRequestsResource
from smartshelf.validation import PermissionDenied, TransitionError, ValidationError
from smartshelf.workflow import (
    Actor,
    WorkflowKind,
    allowed_targets,
    check_transition,
    is_terminal,
    write_status,
)


class TestTransitionTable:
    """Allowed moves and who may make them."""

    def test_pending_targets(self):
        assert allowed_targets(WorkflowKind.PURCHASE_ORDER, "pending") == ["approved", "rejected"]

    def test_terminal_states(self):
        assert is_terminal(WorkflowKind.PURCHASE_ORDER, OrderStatus.REJECTED)
        assert is_terminal(WorkflowKind.PURCHASE_ORDER, OrderStatus.COMPLETED)
        assert not is_terminal(WorkflowKind.PURCHASE_ORDER, OrderStatus.APPROVED)
        assert is_terminal(WorkflowKind.STOCK_REQUEST, RequestStatus.APPROVED)

    def test_rejected_order_cannot_move(self, vendor, manager):
        for session in (vendor, manager):
            for target in OrderStatus:
                with pytest.raises(TransitionError):
                    check_transition(WorkflowKind.PURCHASE_ORDER, "rejected", target, session, "vendor-1")

    def test_counterparty_vendor_approves(self, vendor):
        actor = check_transition(WorkflowKind.PURCHASE_ORDER, "pending", "approved", vendor, "vendor-1")
        assert actor == Actor.COUNTERPARTY

    def test_other_vendor_cannot_approve(self, other_vendor):
        with pytest.raises(PermissionDenied):
            check_transition(WorkflowKind.PURCHASE_ORDER, "pending", "approved", other_vendor, "vendor-1")

    def test_staff_cannot_approve(self, admin):
        with pytest.raises(PermissionDenied):
            check_transition(WorkflowKind.STOCK_REQUEST, "pending", "approved", admin, "vendor-1")

    def test_vendor_cannot_complete(self, vendor):
        with pytest.raises(PermissionDenied):
            check_transition(WorkflowKind.PURCHASE_ORDER, "approved", "completed", vendor, "vendor-1")

    def test_pending_cannot_complete(self, manager):
        with pytest.raises(TransitionError, match="from pending to completed"):
            check_transition(WorkflowKind.PURCHASE_ORDER, "pending", "completed", manager, "vendor-1")

    def test_write_status_is_conditional(self):
        store = MagicMock()
        write_status(store, WorkflowKind.STOCK_REQUEST, "r1", RequestStatus.PENDING, "approved",
                     extra={"response_notes": "ok"})
        store.update.assert_called_once_with(
            "stock_requests", "r1", {"status": "approved", "response_notes": "ok"},
            expected={"status": "pending"},
        )


class TestPurchaseOrderCreate:
    """Creating orders: header, items, alerts and notifications."""

    def test_create_order(self, store, bus, manager, toasts, catalog):
        notifier = MagicMock()
        resource = PurchaseOrdersResource(store, bus, manager, toasts=toasts, notifier=notifier).mount()
        order = resource.create("vendor-1", [
            {"product_id": "p-cable", "quantity": 10},
            {"product_id": "p-mouse", "quantity": 2, "unit_price": 450.0},
            {"product_id": "p-cable", "quantity": 0},
        ], notes="Urgent")

        assert order.status == OrderStatus.PENDING
        assert order.total_amount == 2890.0
        assert len(store.rows("purchase_order_items")) == 2
        assert {i["purchase_order_id"] for i in store.rows("purchase_order_items")} == {order.id}

        [alert] = store.rows("alerts")
        assert alert["user_id"] == "vendor-user"
        assert alert["message"] == (
            f"New PO #{order.id[:8]} from Manoj Manager: USB-C Cable, Wireless Mouse. "
            "Total: ₹2,890.00. Notes: Urgent"
        )
        notifier.submit.assert_called_once_with(
            notifier.notify_vendor_of_po, "vendor-1", order.id, "USB-C Cable, Wireless Mouse",
            2890.0, "Manoj Manager",
        )
        assert toasts.history[-1].title == "Purchase order created and vendor notified"

    def test_broadcast_when_vendor_has_no_users(self, store, bus, manager, toasts, catalog):
        resource = PurchaseOrdersResource(store, bus, manager, toasts=toasts).mount()
        resource.create("vendor-2", [{"product_id": "p-tape", "quantity": 4}])
        [alert] = store.rows("alerts")
        assert alert["user_id"] is None
        assert "for O'Brien, Inc.: Packing Tape" in alert["message"]

    def test_auto_restock_message(self, store, bus, manager, toasts, catalog):
        resource = PurchaseOrdersResource(store, bus, manager, toasts=toasts).mount()
        order = resource.create("vendor-1", [{"product_id": "p-cable", "quantity": 31}], auto_restock=True)
        [alert] = store.rows("alerts")
        assert alert["message"] == f"Auto-restock PO #{order.id[:8]} received with 1 items. Total: ₹6,169.00"

    def test_requires_vendor_and_items(self, store, bus, manager, toasts, catalog):
        resource = PurchaseOrdersResource(store, bus, manager, toasts=toasts)
        with pytest.raises(ValidationError, match="Please select a vendor"):
            resource.create(None, [{"product_id": "p-cable", "quantity": 1}])
        assert store.rows("purchase_orders") == []

    def test_vendor_cannot_create(self, store, bus, vendor, toasts, catalog):
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts)
        with pytest.raises(PermissionDenied):
            resource.create("vendor-1", [{"product_id": "p-cable", "quantity": 1}])

    def test_header_failure_writes_nothing_else(self, store, bus, manager, toasts, catalog):
        store.fail_on.add(("insert", "purchase_orders"))
        resource = PurchaseOrdersResource(store, bus, manager, toasts=toasts).mount()
        assert resource.create("vendor-1", [{"product_id": "p-cable", "quantity": 1}]) is None
        assert store.rows("purchase_order_items") == []
        assert store.rows("alerts") == []


class TestPurchaseOrderTransitions:
    """Vendor responses and completion by staff."""

    def _order(self, store, status="pending"):
        store.seed("purchase_orders", {"id": "po-12345678", "vendor_id": "vendor-1", "status": status,
                                       "total_amount": 995.0, "created_by": "warehouse_manager-user"})
        store.seed("purchase_order_items", {"id": "item-1", "purchase_order_id": "po-12345678",
                                            "product_id": "p-cable", "quantity": 5, "unit_price": 199.0})

    def test_vendor_approves(self, store, bus, vendor, toasts, catalog):
        self._order(store)
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts).mount()
        assert resource.respond("po-12345678", OrderStatus.APPROVED) is True

        assert store.tables["purchase_orders"]["po-12345678"]["status"] == "approved"
        [alert] = store.rows("alerts")
        assert alert["user_id"] == "warehouse_manager-user"
        assert alert["title"] == "PO Approved"
        assert "(₹995.00)" in alert["message"]

    def test_vendor_rejects_with_reason(self, store, bus, vendor, toasts, catalog):
        self._order(store)
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts).mount()
        resource.respond("po-12345678", OrderStatus.REJECTED, reason="Discontinued")
        [alert] = store.rows("alerts")
        assert alert["severity"] == "warning"
        assert alert["message"].endswith("Reason: Discontinued")
        [log] = store.rows("audit_logs")
        assert log["details"] == "Vendor rejected PO. Notes: Discontinued"

    def test_rejected_order_is_final(self, store, bus, vendor, toasts, catalog):
        self._order(store, status="rejected")
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts).mount()
        with pytest.raises(TransitionError):
            resource.respond("po-12345678", OrderStatus.APPROVED)
        assert store.tables["purchase_orders"]["po-12345678"]["status"] == "rejected"

    def test_respond_rejects_completion(self, store, bus, vendor, toasts, catalog):
        self._order(store)
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts).mount()
        with pytest.raises(ValidationError):
            resource.respond("po-12345678", OrderStatus.COMPLETED)

    def test_concurrent_change_refused(self, store, bus, vendor, toasts, catalog):
        self._order(store)
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts).mount()
        # Someone else answered after this view loaded
        store.tables["purchase_orders"]["po-12345678"]["status"] = "rejected"
        assert resource.respond("po-12345678", OrderStatus.APPROVED) is False
        assert store.tables["purchase_orders"]["po-12345678"]["status"] == "rejected"

    def test_staff_completes(self, store, bus, manager, toasts, catalog):
        self._order(store, status="approved")
        notifier = MagicMock()
        resource = PurchaseOrdersResource(store, bus, manager, toasts=toasts, notifier=notifier).mount()
        assert resource.complete("po-12345678") is True

        [alert] = store.rows("alerts")
        assert alert["title"] == "Purchase Order Completed"
        assert alert["user_id"] == "vendor-user"
        notifier.submit.assert_called_once_with(
            notifier.notify_order_update, "vendor-1", "po-12345678", "completed"
        )

    def test_pending_count(self, store, bus, vendor, toasts, catalog):
        self._order(store)
        resource = PurchaseOrdersResource(store, bus, vendor, toasts=toasts).mount()
        assert resource.pending_count == 1
        assert resource.items[0].items[0].product_name == "USB-C Cable"


class TestStockRequests:
    """Stock requests from staff and vendor responses."""

    def test_create_request(self, store, bus, manager, toasts, catalog):
        notifier = MagicMock()
        resource = StockRequestsResource(store, bus, manager, toasts=toasts, notifier=notifier).mount()
        request = resource.create("vendor-1", 40, product_id="p-cable", notes="Month end")

        assert request.status == RequestStatus.PENDING
        assert request.product_name == "USB-C Cable"
        assert request.requested_by_role == "warehouse_manager"
        [alert] = store.rows("alerts")
        assert alert["message"] == "Manoj Manager requested 40 units of USB-C Cable. Notes: Month end"
        notifier.submit.assert_called_once_with(
            notifier.notify_vendor_of_stock_request, "vendor-1", "USB-C Cable", 40, "Manoj Manager", "Month end"
        )

    def test_general_stock_request(self, store, bus, manager, toasts, catalog):
        resource = StockRequestsResource(store, bus, manager, toasts=toasts).mount()
        request = resource.create("vendor-1", 10)
        assert request.product_id is None
        [log] = store.rows("audit_logs")
        assert log["details"] == "Stock request for General Stock (qty: 10)"

    def test_vendor_cannot_request(self, store, bus, vendor, toasts, catalog):
        resource = StockRequestsResource(store, bus, vendor, toasts=toasts)
        with pytest.raises(PermissionDenied):
            resource.create("vendor-1", 10)

    def _request(self, store, vendor_id="vendor-1"):
        store.seed("stock_requests", {"id": "sr-1", "vendor_id": vendor_id, "product_id": "p-cable",
                                      "quantity": 40, "status": "pending",
                                      "requested_by": "warehouse_manager-user"})

    def test_vendor_approves(self, store, bus, vendor, toasts, catalog):
        self._request(store)
        resource = StockRequestsResource(store, bus, vendor, toasts=toasts).mount()
        assert resource.respond("sr-1", RequestStatus.APPROVED, "On its way") is True

        row = store.tables["stock_requests"]["sr-1"]
        assert row["status"] == "approved"
        assert row["response_notes"] == "On its way"
        assert row["responded_at"]
        [alert] = store.rows("alerts")
        assert alert["title"] == "Request Approved"
        assert alert["user_id"] == "warehouse_manager-user"

    def test_rejection_reason_in_alert(self, store, bus, vendor, toasts, catalog):
        self._request(store)
        resource = StockRequestsResource(store, bus, vendor, toasts=toasts).mount()
        resource.respond("sr-1", RequestStatus.REJECTED, "No capacity")
        [alert] = store.rows("alerts")
        assert alert["message"].endswith("has been rejected. Reason: No capacity")

    def test_answered_request_is_final(self, store, bus, vendor, toasts, catalog):
        self._request(store)
        store.tables["stock_requests"]["sr-1"]["status"] = "approved"
        resource = StockRequestsResource(store, bus, vendor, toasts=toasts).mount()
        with pytest.raises(TransitionError):
            resource.respond("sr-1", RequestStatus.REJECTED)

    def test_other_vendor_cannot_see_or_answer(self, store, bus, other_vendor, toasts, catalog):
        self._request(store)
        resource = StockRequestsResource(store, bus, other_vendor, toasts=toasts).mount()
        assert resource.items == []
        with pytest.raises(ValidationError, match="not found"):
            resource.respond("sr-1", RequestStatus.APPROVED)
