"""Email notification for newly received messages.

Notifications run detached from the request that triggered them. A missing
credential, a transport error or a non-2xx answer from the delivery endpoint
is logged and dropped; nothing is retried and the stored message is never
affected.
"""

from __future__ import annotations

import html
import logging

import httpx

from replied.core.settings import Settings
from replied.services.background import BackgroundTaskRunner

logger = logging.getLogger(__name__)

HTTP_MULTIPLE_CHOICES = 300
NOTIFICATION_SUBJECT = "New Anonymous Message Received!"


def build_notification_payload(
    *,
    sender_address: str,
    recipient_contact: str,
    recipient_name: str,
    content: str,
    inbox_url: str,
) -> dict[str, object]:
    """Return the JSON body posted to the delivery endpoint."""
    body = (
        f"<strong>Hi {html.escape(recipient_name)}!</strong><br><br>"
        "You just received a new anonymous message:<br><br>"
        f"<em>\"{html.escape(content)}\"</em><br><br>"
        f"<a href=\"{html.escape(inbox_url, quote=True)}\">Go to your inbox to reply</a>"
    )
    return {
        "from": sender_address,
        "to": [recipient_contact],
        "subject": NOTIFICATION_SUBJECT,
        "html": body,
    }


class NotificationDispatcher:
    """Send inbox notifications through an HTTP email API."""

    def __init__(
        self,
        runner: BackgroundTaskRunner,
        *,
        api_key: str | None,
        api_url: str,
        from_address: str,
        frontend_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._runner = runner
        self._api_key = api_key
        self._api_url = api_url
        self._from_address = from_address
        self._inbox_url = f"{frontend_url.rstrip('/')}/inbox"
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def notify(self, recipient_contact: str, recipient_name: str, content: str) -> bool:
        """Deliver one notification; return True if the endpoint accepted it.

        Never raises for delivery problems.
        """
        if not self._api_key:
            logger.info("RESEND_API_KEY not set, skipping email notification")
            return False
        payload = build_notification_payload(
            sender_address=self._from_address,
            recipient_contact=recipient_contact,
            recipient_name=recipient_name,
            content=content,
            inbox_url=self._inbox_url,
        )
        try:
            response = await self._client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as exc:
            logger.error("Failed to send email notification: %s", exc.__class__.__name__)
            return False
        if response.status_code >= HTTP_MULTIPLE_CHOICES:
            logger.error("Email API error: status %d", response.status_code)
            return False
        logger.info("Email notification sent")
        return True

    def dispatch(self, recipient_contact: str, recipient_name: str, content: str) -> None:
        """Fire-and-forget :meth:`notify` on the background runner."""
        if not self.enabled:
            logger.debug("Notifications disabled, not dispatching")
            return
        self._runner.spawn(
            self.notify(recipient_contact, recipient_name, content),
            name="inbox-notification",
        )

    async def close(self) -> None:
        await self._client.aclose()


def build_dispatcher(config: Settings, runner: BackgroundTaskRunner) -> NotificationDispatcher:
    """Create the dispatcher described by the settings."""
    if not config.notifications_enabled:
        logger.warning("RESEND_API_KEY not set; email notifications disabled")
    return NotificationDispatcher(
        runner,
        api_key=config.resend_api_key,
        api_url=config.notify_api_url,
        from_address=config.notify_from_address,
        frontend_url=config.frontend_url,
        timeout_seconds=config.notify_timeout_seconds,
    )
