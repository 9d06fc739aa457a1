from __future__ import annotations

import logging
from typing import Optional

from smartshelf.models.inventory import AlertSeverity, RequestStatus, StockRequest, utc_now_iso
from smartshelf.realtime import ChangeEvent, ChangeType
from smartshelf.resources.base import RealtimeResource, vendor_user_ids
from smartshelf.session import Permission
from smartshelf.validation import ValidationError, raise_if_invalid, validate_stock_request
from smartshelf.workflow import WorkflowKind, check_transition, write_status

logger = logging.getLogger(__name__)

GENERAL_STOCK = "General Stock"


class StockRequestsResource(RealtimeResource[StockRequest]):
    table = "stock_requests"
    model = StockRequest
    label = "stock requests"
    vendor_column = "vendor_id"

    def after_change(self, event: ChangeEvent, item: Optional[StockRequest]) -> None:
        if item is None:
            return
        if event.change_type == ChangeType.INSERT and self.session.is_vendor:
            self.toasts.info("New Request", f"New stock request for {item.product_name or 'product'}")
        elif (
            event.change_type == ChangeType.UPDATE
            and item.status != RequestStatus.PENDING
            and not self.session.is_vendor
        ):
            self.toasts.info("Request Updated", f"Request {item.status.value} by vendor")

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.items if r.status == RequestStatus.PENDING)

    def create(
        self,
        vendor_id: Optional[str],
        quantity: int,
        product_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[StockRequest]:
        self.session.require(Permission.REQUEST_STOCK)
        raise_if_invalid(validate_stock_request(vendor_id, quantity))

        row = self._write("Failed to create stock request", lambda: self.store.insert("stock_requests", {
            "product_id": product_id or None,
            "vendor_id": vendor_id,
            "quantity": quantity,
            "status": RequestStatus.PENDING.value,
            "notes": notes or None,
            "requested_by": self.session.user_id,
            "requested_by_name": self.session.profile.full_name or "Unknown",
            "requested_by_role": self.session.role.value,
        }))
        if row is None:
            return None
        row = self._best_effort(
            "Stock request reload", lambda: self.store.attach_relations("stock_requests", [row])[0]
        ) or row
        request = StockRequest.from_row(row)
        product_name = request.product_name or GENERAL_STOCK
        requester = self.session.profile.full_name or "Warehouse Manager"

        message = f"{requester} requested {quantity} units of {product_name}."
        if notes:
            message += f" Notes: {notes}"
        recipients = self._best_effort(
            "Vendor user lookup", lambda: vendor_user_ids(self.store, vendor_id)
        ) or []
        for user_id in recipients:
            self._alert("stock_request", "New Stock Request", message, user_id=user_id)

        self._notify("notify_vendor_of_stock_request", vendor_id, product_name, quantity, requester, notes)
        self._audit(
            "CREATE", "StockRequest", request.id, f"Stock request for {product_name} (qty: {quantity})"
        )
        self.toasts.success("Stock request sent to vendor")
        return request

    def respond(
        self, request_id: str, status: RequestStatus, response_notes: Optional[str] = None
    ) -> bool:
        """Vendor approval or rejection; only pending requests can be answered."""
        request = self.lookup(request_id)
        if request is None:
            raise ValidationError("Stock request not found")
        status = RequestStatus(status)
        check_transition(WorkflowKind.STOCK_REQUEST, request.status, status, self.session, request.vendor_id)

        row = self._write("Failed to respond to request", lambda: write_status(
            self.store, WorkflowKind.STOCK_REQUEST, request_id, request.status, status,
            extra={"response_notes": response_notes or None, "responded_at": utc_now_iso()},
        ))
        if row is None:
            return False

        product_name = request.product_name or "product"
        if status == RequestStatus.APPROVED:
            title, severity = "Request Approved", AlertSeverity.INFO
            message = (
                f"Your stock request for {product_name} (qty: {request.quantity}) "
                f"has been approved by the vendor."
            )
        else:
            title, severity = "Request Rejected", AlertSeverity.WARNING
            message = f"Your stock request for {product_name} (qty: {request.quantity}) has been rejected."
            if response_notes:
                message += f" Reason: {response_notes}"
        if request.requested_by:
            self._alert("vendor_response", title, message, severity=severity, user_id=request.requested_by)

        verb = "Approved" if status == RequestStatus.APPROVED else "Rejected"
        self._audit("UPDATE", "StockRequest", request_id, f"{verb} stock request for {product_name}")
        self.toasts.success(f"Request {status.value}")
        return True
