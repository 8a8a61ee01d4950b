"""
Notification Delivery

Consumers for the notifications exchange: signed webhook POSTs and
transactional email. Failures raise so the queue worker applies its
retry and dead-letter rules.
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional, Protocol

import httpx

from tokenops.config import Settings, get_settings
from tokenops.errors import UnsupportedOperationError, UpstreamError, ValidationError
from tokenops.message_queue.base import OperationType, QueueMessage, resolve_operation
from tokenops.utils.metrics import metrics
from tokenops.utils.observability import logger


USER_AGENT = "tokenops-webhooks/1.0"


def sign_payload(secret: str, body: bytes) -> str:
    """HMAC-SHA256 hex digest of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Constant-time check of an ``X-Webhook-Signature`` value."""
    return hmac.compare_digest(sign_payload(secret, body), signature)


class WebhookSender:
    """
    POSTs event payloads to subscriber URLs.

    Headers:
        X-Webhook-Event: event name
        X-Webhook-Timestamp: unix seconds at send time
        X-Webhook-Signature: HMAC-SHA256 of the body (only when a secret is configured)
    """

    def __init__(self, settings: Optional[Settings] = None, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._http = http

    async def send(
        self,
        url: str,
        event: str,
        data: Dict[str, Any],
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
    ) -> int:
        """
        Deliver one webhook.

        Returns:
            Response status code

        Raises:
            UpstreamError: Transport failure or non-2xx response
        """
        timestamp = str(int(time.time()))
        body = json.dumps(
            {"event": event, "timestamp": timestamp, "data": data},
            separators=(",", ":"),
            default=str,
        ).encode("utf-8")

        request_headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-Webhook-Event": event,
            "X-Webhook-Timestamp": timestamp,
            **(headers or {}),
        }
        if self.settings.webhook_secret:
            request_headers["X-Webhook-Signature"] = sign_payload(self.settings.webhook_secret, body)

        try:
            if self._http is not None:
                response = await self._http.request(
                    method, url, content=body, headers=request_headers,
                    timeout=self.settings.webhook_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        method, url, content=body, headers=request_headers,
                        timeout=self.settings.webhook_timeout_seconds,
                    )
        except httpx.HTTPError as e:
            metrics.webhook_deliveries.inc(event=event, outcome="error")
            raise UpstreamError(f"Webhook {event} to {url} failed: {e}") from e

        if not response.is_success:
            metrics.webhook_deliveries.inc(event=event, outcome="rejected")
            raise UpstreamError(
                f"Webhook {event} to {url} returned {response.status_code}",
                details={"status_code": response.status_code},
            )

        metrics.webhook_deliveries.inc(event=event, outcome="delivered")
        logger.info(
            f"Webhook {event} delivered",
            extra={"url": url, "event": event, "status_code": response.status_code}
        )
        return response.status_code


class EmailSender(Protocol):
    """
    Protocol for email channels.

    Implement this to add a new email provider.
    """

    async def send(self, to: str, subject: str, template: str, data: Dict[str, Any]) -> None:
        ...


def render_email(template: str, data: Dict[str, Any]) -> str:
    """Plain-text body: one ``key: value`` line per non-empty field."""
    lines = [template.replace("_", " ").capitalize(), ""]
    lines += [f"{key}: {value}" for key, value in data.items() if value not in (None, "")]
    return "\n".join(lines)


class LogOnlyEmailSender:
    """Logs emails instead of sending them (development default)."""

    async def send(self, to: str, subject: str, template: str, data: Dict[str, Any]) -> None:
        logger.info(
            f"📧 Email '{subject}' to {to} (template={template}, not sent: no provider configured)",
            extra={"to": to, "template": template}
        )


class MailerSendEmailSender:
    """Sends email through the MailerSend HTTP API."""

    def __init__(self, settings: Optional[Settings] = None, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._http = http

    async def send(self, to: str, subject: str, template: str, data: Dict[str, Any]) -> None:
        payload = {
            "from": {"email": self.settings.email_from},
            "to": [{"email": to}],
            "reply_to": {"email": self.settings.support_email},
            "subject": subject,
            "text": render_email(template, data),
        }
        headers = {"Authorization": f"Bearer {self.settings.mailersend_api_key}"}

        try:
            if self._http is not None:
                response = await self._http.post(self.settings.mailersend_api_url, json=payload, headers=headers, timeout=10.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.settings.mailersend_api_url, json=payload, headers=headers, timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"MailerSend rejected email to {to}: {e}") from e


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.mailersend_api_key:
        return MailerSendEmailSender(settings)
    return LogOnlyEmailSender()


class NotificationDispatcher:
    """Queue message handler for ``webhook`` and ``email`` messages."""

    def __init__(self, webhooks: WebhookSender, email: EmailSender):
        self.webhooks = webhooks
        self.email = email

    async def handle(self, message: QueueMessage) -> Dict[str, Any]:
        operation = resolve_operation(message.type)
        payload = message.payload

        if operation == OperationType.WEBHOOK:
            url = payload.get("url")
            event = payload.get("event")
            if not url or not event:
                raise ValidationError("Webhook message needs url and event")
            status_code = await self.webhooks.send(
                url,
                event,
                payload.get("data", {}),
                method=payload.get("method", "POST"),
                headers=payload.get("headers"),
            )
            return {"delivered": True, "status_code": status_code}

        if operation == OperationType.EMAIL:
            to = payload.get("to")
            template = payload.get("template")
            if not to or not template:
                raise ValidationError("Email message needs to and template")
            try:
                await self.email.send(to, payload.get("subject", template), template, payload.get("data", {}))
            except Exception:
                metrics.emails_sent.inc(template=template, outcome="failed")
                raise
            metrics.emails_sent.inc(template=template, outcome="sent")
            return {"sent": True, "to": to}

        raise UnsupportedOperationError(f"Unsupported notification type: {message.type}")
