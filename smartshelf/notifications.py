"""Vendor email and SMS dispatch through the notification Lambda functions.

Delivery is best-effort: every method returns True/False and never raises, so a
failed notification can never undo or block the action that triggered it.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from smartshelf.store import BackingStore, StoreError
from smartshelf.toasts import ToastCenter

logger = logging.getLogger(__name__)


class VendorEmailType(str, Enum):
    PURCHASE_ORDER = "purchase_order"
    STOCK_REQUEST = "stock_request"
    ORDER_UPDATE = "order_update"


class SmsAlertType(str, Enum):
    CRITICAL_STOCK = "critical_stock"
    OUT_OF_STOCK = "out_of_stock"
    URGENT_ORDER = "urgent_order"


def _compact(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class VendorEmail:
    vendor_email: str
    vendor_name: str
    type: VendorEmailType
    order_id: Optional[str] = None
    product_name: Optional[str] = None
    quantity: Optional[int] = None
    total_amount: Optional[float] = None
    requester_name: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "vendorEmail": self.vendor_email,
            "vendorName": self.vendor_name,
            "type": self.type.value,
            "data": _compact({
                "orderId": self.order_id,
                "productName": self.product_name,
                "quantity": self.quantity,
                "totalAmount": self.total_amount,
                "requesterName": self.requester_name,
                "status": self.status,
                "notes": self.notes,
            }),
        }


@dataclass
class SmsAlert:
    phone_number: str
    type: SmsAlertType
    data: dict = field(default_factory=dict)

    @classmethod
    def for_stock(
        cls, phone_number: str, product_name: str, current_stock: int, reorder_level: int, vendor_name: str
    ) -> SmsAlert:
        return cls(
            phone_number=phone_number,
            type=SmsAlertType.OUT_OF_STOCK if current_stock == 0 else SmsAlertType.CRITICAL_STOCK,
            data={
                "productName": product_name,
                "currentStock": current_stock,
                "reorderLevel": reorder_level,
                "vendorName": vendor_name,
            },
        )

    def to_payload(self) -> dict:
        return {"phoneNumber": self.phone_number, "type": self.type.value, "data": _compact(self.data)}


class NotificationDispatcher:
    def __init__(
        self,
        store: BackingStore,
        toasts: Optional[ToastCenter] = None,
        lambda_client: Optional[Any] = None,
        region_name: str = "us-west-2",
        email_function: str = "send-vendor-email",
        sms_function: str = "send-sms-alert",
        executor: Optional[Executor] = None,
    ):
        self.store = store
        self.toasts = toasts
        self.lambda_client = lambda_client or boto3.client("lambda", region_name=region_name)
        self.email_function = email_function
        self.sms_function = sms_function
        self.executor = executor

    def submit(self, fn: Callable[..., bool], *args: Any, **kwargs: Any) -> Any:
        """Runs a notification in the background when an executor is configured."""
        if self.executor is None:
            return fn(*args, **kwargs)
        future: Future = self.executor.submit(fn, *args, **kwargs)
        future.add_done_callback(self._log_background_failure)
        return future

    @staticmethod
    def _log_background_failure(future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.warning("Background notification failed: %s", error)

    # --- Raw function calls ---

    def _invoke(self, function_name: str, payload: dict) -> bool:
        try:
            response = self.lambda_client.invoke(
                FunctionName=function_name,
                InvocationType="RequestResponse",
                Payload=json.dumps(payload).encode("utf-8"),
            )
            body = response["Payload"].read() if response.get("Payload") else b"{}"
            result = json.loads(body or b"{}")
        except (ClientError, BotoCoreError, ValueError) as e:
            logger.warning("%s invocation failed: %s", function_name, e)
            return False

        if response.get("FunctionError") or result.get("statusCode", 200) >= 400:
            logger.warning("%s returned an error: %s", function_name, result)
            return False
        logger.info("%s delivered (%s)", function_name, payload.get("type"))
        return True

    def send_vendor_email(self, email: VendorEmail) -> bool:
        logger.info("Sending %s email to %s", email.type.value, email.vendor_email)
        return self._invoke(self.email_function, email.to_payload())

    def send_sms_alert(self, alert: SmsAlert) -> bool:
        logger.info("Sending %s SMS to %s", alert.type.value, alert.phone_number)
        return self._invoke(self.sms_function, alert.to_payload())

    # --- Domain notifications ---

    def _vendor(self, vendor_id: str) -> Optional[dict]:
        try:
            vendor = self.store.get("vendors", vendor_id)
        except StoreError as e:
            logger.warning("Vendor lookup failed for %s: %s", vendor_id, e)
            return None
        if vendor is None:
            logger.error("Vendor not found: %s", vendor_id)
        return vendor

    def notify_vendor_of_po(
        self,
        vendor_id: str,
        order_id: str,
        product_names: str,
        total_amount: float,
        requester_name: str,
    ) -> bool:
        vendor = self._vendor(vendor_id)
        if vendor is None or not vendor.get("email"):
            return False
        sent = self.send_vendor_email(VendorEmail(
            vendor_email=vendor["email"],
            vendor_name=vendor.get("name", ""),
            type=VendorEmailType.PURCHASE_ORDER,
            order_id=order_id,
            product_name=product_names,
            total_amount=total_amount,
            requester_name=requester_name,
        ))
        if sent and self.toasts:
            self.toasts.success("Email notification sent to vendor")
        return sent

    def notify_vendor_of_stock_request(
        self,
        vendor_id: str,
        product_name: str,
        quantity: int,
        requester_name: str,
        notes: Optional[str] = None,
    ) -> bool:
        vendor = self._vendor(vendor_id)
        if vendor is None or not vendor.get("email"):
            return False
        return self.send_vendor_email(VendorEmail(
            vendor_email=vendor["email"],
            vendor_name=vendor.get("name", ""),
            type=VendorEmailType.STOCK_REQUEST,
            product_name=product_name,
            quantity=quantity,
            requester_name=requester_name,
            notes=notes,
        ))

    def notify_order_update(
        self, vendor_id: str, order_id: str, status: str, notes: Optional[str] = None
    ) -> bool:
        vendor = self._vendor(vendor_id)
        if vendor is None or not vendor.get("email"):
            return False
        return self.send_vendor_email(VendorEmail(
            vendor_email=vendor["email"],
            vendor_name=vendor.get("name", ""),
            type=VendorEmailType.ORDER_UPDATE,
            order_id=order_id,
            status=status,
            notes=notes,
        ))

    def notify_critical_stock(
        self, vendor_id: str, product_name: str, current_stock: int, reorder_level: int
    ) -> bool:
        """SMS the vendor about low or exhausted stock; skipped when it has no phone."""
        vendor = self._vendor(vendor_id)
        if vendor is None:
            return False
        if not vendor.get("phone"):
            logger.info("Vendor %s has no phone, skipping SMS", vendor_id)
            return False
        return self.send_sms_alert(SmsAlert.for_stock(
            vendor["phone"], product_name, current_stock, reorder_level, vendor.get("name", "")
        ))
