"""
Outgoing notifications (Telegram).

Sending never raises: a failed notification is logged and reported as False so
the business operation that triggered it still commits.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


def send_telegram_notification(message: str) -> bool:
    """
    Send a message to the configured Telegram chat.

    Args:
        message: Message text (HTML parse mode)

    Returns:
        True when delivered, False when not configured or on error
    """
    bot_token = settings.telegram_bot_token
    chat_id = settings.telegram_chat_id

    if not bot_token or not chat_id:
        logger.debug("Telegram is not configured, notification skipped")
        return False

    try:
        url = f"{TELEGRAM_API}/bot{bot_token}/sendMessage"

        payload = {
            "chat_id": chat_id,
            "text": message,
            "parse_mode": "HTML",
        }

        with httpx.Client(timeout=10.0) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()

            logger.info("Telegram notification sent")
            return True
    except httpx.HTTPError as e:
        logger.error("Telegram notification failed: %s", e)
        return False


def format_payroll_run_notification(
    period: str,
    employee_count: int,
    total_amount: Decimal,
    currency: str,
    creator: str | None = None,
) -> str:
    """Message announcing a new draft payroll."""
    now = datetime.now().strftime("%d/%m/%Y %H:%M")
    creator_text = creator or "System"

    return (
        f"<b>Payroll {period}</b>\n"
        f"{creator_text} ran the payroll at {now}: "
        f"{employee_count} employees, total net {total_amount:,.2f} {currency}. "
        f"Status: Draft, waiting for approval."
    )


def format_leave_request_notification(
    employee_name: str,
    policy_name: str,
    start_date: str,
    end_date: str,
    days_count: Decimal,
) -> str:
    return (
        f"<b>Leave request</b>\n"
        f"{employee_name} requested {days_count} days of {policy_name} "
        f"({start_date} - {end_date})."
    )
