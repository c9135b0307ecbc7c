"""
Outbound customer notifications (WhatsApp Business Cloud API).
"""

from __future__ import annotations

import abc
import logging
import re

import httpx

from posdesk.core.config import settings
from posdesk.core.exceptions import NotificationError

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("alert", "daily_report", "shop_status", "query_response")
SIGNATURE = "🤖 AI POS System"


class NotificationChannel(abc.ABC):
    @abc.abstractmethod
    async def send(self, phone: str, title: str, message: str, type: str = "alert") -> str | None:
        """Deliver one message and return the channel's message id.

        Raises ``NotificationError`` when delivery is not confirmed.
        """


def format_whatsapp_body(title: str, message: str, type: str, report_url: str | None = None) -> str:
    if type == "shop_status":
        return f"{message}\n\n{SIGNATURE}"
    if type == "daily_report":
        body = f"📊 *{title}*\n\n{message}"
        if report_url:
            body += f"\n\n📎 Detailed Report: {report_url}"
        return f"{body}\n\n{SIGNATURE}"
    if type == "alert":
        return f"🚨 *{title}*\n\n{message}\n\n{SIGNATURE}"
    if type == "query_response":
        return f"💬 *Query Response*\n\n{message}\n\n{SIGNATURE}"
    return f"*{title}*\n\n{message}\n\n{SIGNATURE}"


class WhatsAppChannel(NotificationChannel):
    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        phone_number_id: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.api_url = (api_url or settings.WHATSAPP_API_URL).rstrip("/")
        self.phone_number_id = phone_number_id or settings.WHATSAPP_PHONE_NUMBER_ID
        self.timeout = timeout or settings.WHATSAPP_TIMEOUT_SECONDS
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "WhatsAppChannel":
        return cls(token=settings.WHATSAPP_API_TOKEN)

    async def send(self, phone: str, title: str, message: str, type: str = "alert") -> str | None:
        if not self.token or not self.phone_number_id:
            raise NotificationError("WhatsApp API token not configured")

        to = re.sub(r"\D", "", phone or "")
        if not to:
            raise NotificationError("Recipient phone number is empty")

        logger.info("Sending WhatsApp notification: type=%s title=%r", type, title)
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": format_whatsapp_body(title, message, type)},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.api_url}/{self.phone_number_id}/messages",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.token}"},
                )
        except httpx.HTTPError as exc:
            raise NotificationError(f"WhatsApp request failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.error("WhatsApp API error %s: %s", resp.status_code, resp.text)
            raise NotificationError(f"WhatsApp API error: {resp.status_code}")

        try:
            messages = resp.json().get("messages") or [{}]
        except ValueError:
            messages = [{}]
        return messages[0].get("id")
