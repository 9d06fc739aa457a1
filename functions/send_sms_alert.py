"""send-sms-alert Lambda: publishes a stock or order alert SMS through SNS.

Event: {"phoneNumber", "type": critical_stock|out_of_stock|urgent_order, "data": {...}}
"""

from __future__ import annotations

import json
import logging
import os

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

_sns_client = None


def _sns():
    global _sns_client
    if _sns_client is None:
        _sns_client = boto3.client("sns")
    return _sns_client


def render_message(sms_type: str, data: dict) -> str:
    if sms_type == "critical_stock":
        return (
            f"🚨 CRITICAL: {data.get('productName')} is LOW STOCK "
            f"({data.get('currentStock')} units left, reorder at {data.get('reorderLevel')}). "
            "Immediate restocking required. - SmartShelfX"
        )
    if sms_type == "out_of_stock":
        return (
            f"❌ URGENT: {data.get('productName')} is OUT OF STOCK! "
            "Production may be affected. Please restock immediately. - SmartShelfX"
        )
    if sms_type == "urgent_order":
        return (
            f"📦 URGENT PO: New urgent order #{(data.get('orderId') or '')[:8]} "
            "requires your immediate attention. Login to SmartShelfX to respond."
        )
    raise ValueError(f"Unknown SMS type: {sms_type}")


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def lambda_handler(event, context, sns_client=None):
    try:
        if isinstance(event, str):
            event = json.loads(event)
        phone_number = event.get("phoneNumber")
        if not phone_number:
            return _response(400, {"error": "phoneNumber is required"})

        message = render_message(event.get("type"), event.get("data") or {})
        logger.info("Sending %s SMS to %s", event.get("type"), phone_number)
        result = (sns_client or _sns()).publish(
            PhoneNumber=phone_number,
            Message=message,
            MessageAttributes={
                "AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": "Transactional"},
            },
        )
        logger.info("SMS sent: %s", result.get("MessageId"))
        return _response(200, {"success": True, "messageId": result.get("MessageId")})
    except ValueError as e:
        logger.error("Invalid SMS request: %s", e)
        return _response(400, {"error": str(e)})
    except (ClientError, BotoCoreError) as e:
        logger.error("Error in send-sms-alert function: %s", e)
        return _response(500, {"error": str(e)})
