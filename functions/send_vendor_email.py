"""send-vendor-email Lambda: renders a vendor notification and sends it through SES.

Event: {"vendorEmail", "vendorName", "type": purchase_order|stock_request|order_update, "data": {...}}
"""

from __future__ import annotations

import json
import logging
import os
from html import escape
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

DEFAULT_SITE_URL = "https://smartshelfx.example.com"
DEFAULT_SENDER = "SmartShelfX <notifications@smartshelfx.example.com>"
FOOTER = "SmartShelfX - Inventory Management System"

STATUS_STYLE = {
    "approved": ("#22c55e", "✅"),
    "rejected": ("#ef4444", "❌"),
}

_ses_client = None


def _ses():
    global _ses_client
    if _ses_client is None:
        _ses_client = boto3.client("ses")
    return _ses_client


def _short(order_id: Optional[str]) -> str:
    return (order_id or "")[:8]


def _row(label: str, value: Any) -> str:
    return (
        '<div class="detail-row">'
        f"<span><strong>{escape(label)}:</strong></span><span>{escape(str(value))}</span>"
        "</div>"
    )


def _page(header_color: str, heading: str, body: str, footer_note: str = "") -> str:
    note = f"<p>{escape(footer_note)}</p>" if footer_note else ""
    return (
        "<!DOCTYPE html><html><head><style>"
        "body { font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; background: #f5f5f5; padding: 20px; }"
        ".container { max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; }"
        f".header {{ background: {header_color}; color: white; padding: 30px; text-align: center; }}"
        ".content { padding: 30px; }"
        ".detail-row { display: flex; justify-content: space-between; padding: 8px 0; }"
        ".footer { text-align: center; padding: 20px; color: #64748b; font-size: 12px; }"
        "</style></head><body><div class=\"container\">"
        f'<div class="header"><h1>{heading}</h1></div>'
        f'<div class="content">{body}</div>'
        f'<div class="footer"><p>{FOOTER}</p>{note}</div>'
        "</div></body></html>"
    )


def render_purchase_order(vendor_name: str, data: dict, site_url: str) -> tuple[str, str]:
    order_id = _short(data.get("orderId"))
    rows = [_row("Order ID", f"#{order_id}"), _row("From", data.get("requesterName") or "Warehouse Manager")]
    if data.get("productName"):
        rows.append(_row("Product", data["productName"]))
    if data.get("quantity"):
        rows.append(_row("Quantity", f"{data['quantity']} units"))
    if data.get("totalAmount"):
        rows.append(_row("Total Amount", f"₹{float(data['totalAmount']):,.2f}"))
    body = (
        f"<p>Hello {escape(vendor_name)},</p>"
        "<p>You have received a new purchase order that requires your attention.</p>"
        f"<div class=\"order-details\">{''.join(rows)}</div>"
        "<p>Please log in to your SmartShelfX dashboard to review and respond to this order.</p>"
        f'<a href="{escape(site_url)}" class="btn">View Order</a>'
    )
    subject = f"New Purchase Order #{order_id} - SmartShelfX"
    html = _page("#6366f1", "📦 New Purchase Order", body,
                 "This is an automated notification. Please do not reply to this email.")
    return subject, html


def render_stock_request(vendor_name: str, data: dict, site_url: str) -> tuple[str, str]:
    rows = []
    if data.get("productName"):
        rows.append(_row("Product", data["productName"]))
    rows.append(_row("Quantity Requested", f"{data.get('quantity', 0)} units"))
    rows.append(_row("Requested By", data.get("requesterName") or "Warehouse Manager"))
    if data.get("notes"):
        rows.append(_row("Notes", data["notes"]))
    body = (
        f"<p>Hello {escape(vendor_name)},</p>"
        "<p>A warehouse manager has requested stock from your inventory.</p>"
        f"<div class=\"order-details\">{''.join(rows)}</div>"
        "<p>Please log in to approve or reject this request.</p>"
        f'<a href="{escape(site_url)}/stock-requests" class="btn">Review Request</a>'
    )
    subject = f"New Stock Request - {data.get('productName') or 'General'} - SmartShelfX"
    return subject, _page("#f59e0b", "📋 New Stock Request", body)


def render_order_update(vendor_name: str, data: dict, site_url: str) -> tuple[str, str]:
    status = data.get("status") or ""
    color, emoji = STATUS_STYLE.get(status, ("#6366f1", "📦"))
    order_id = _short(data.get("orderId"))
    notes = f"<p><strong>Notes:</strong> {escape(data['notes'])}</p>" if data.get("notes") else ""
    body = (
        f"<p>Hello {escape(vendor_name)},</p>"
        f"<p>Your order #{order_id} has been <strong>{escape(status)}</strong>.</p>"
        f"<div class=\"status-badge\">{escape(status.upper())}</div>"
        f"{notes}<p>Log in to view the details.</p>"
    )
    subject = f"Order {status.upper()} - #{order_id} - SmartShelfX"
    return subject, _page(color, f"{emoji} Order {escape(status.upper())}", body)


RENDERERS = {
    "purchase_order": render_purchase_order,
    "stock_request": render_stock_request,
    "order_update": render_order_update,
}


def render_email(event: dict, site_url: str = DEFAULT_SITE_URL) -> tuple[str, str]:
    """Returns (subject, html) for an email event; raises ValueError for an unknown type."""
    email_type = event.get("type")
    renderer = RENDERERS.get(email_type)
    if renderer is None:
        raise ValueError(f"Unknown email type: {email_type}")
    return renderer(event.get("vendorName") or "Vendor", event.get("data") or {}, site_url)


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context, ses_client=None):
    try:
        if isinstance(event, str):
            event = json.loads(event)
        vendor_email = event.get("vendorEmail")
        if not vendor_email:
            return _response(400, {"error": "vendorEmail is required"})

        logger.info("Sending %s email to %s", event.get("type"), vendor_email)
        subject, html = render_email(event, os.environ.get("SITE_URL", DEFAULT_SITE_URL))
        result = (ses_client or _ses()).send_email(
            Source=os.environ.get("SES_SENDER", DEFAULT_SENDER),
            Destination={"ToAddresses": [vendor_email]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {"Html": {"Data": html, "Charset": "UTF-8"}},
            },
        )
        logger.info("Email sent: %s", result.get("MessageId"))
        return _response(200, {"success": True, "messageId": result.get("MessageId")})
    except ValueError as e:
        logger.error("Invalid email request: %s", e)
        return _response(400, {"error": str(e)})
    except (ClientError, BotoCoreError) as e:
        logger.error("Error in send-vendor-email function: %s", e)
        return _response(500, {"error": str(e)})
