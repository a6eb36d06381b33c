"""
MatriMatch — E-mail sender

Posts match e-mails to a transactional mail HTTP API.  Template rendering
lives with the provider; this service sends the template name and variables.
"""

from __future__ import annotations

import httpx
import structlog

from matrimatch.config import Settings, get_settings
from matrimatch.errors import DeliveryError

logger = structlog.get_logger("matrimatch.email_service")

_TEMPLATES = {
    "new_match": "new-match",
    "mutual_match": "mutual-match",
}


class EmailService:
    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client

    async def send_notification_email(self, member, notification) -> bool:
        """Send the e-mail companion of an in-app notification.

        Returns False when mail delivery is not configured or the type has no
        e-mail template; raises ``DeliveryError`` on provider failure.
        """
        log = logger.bind(member_id=str(member.id), notification_id=str(notification.id))
        template = _TEMPLATES.get(notification.type)
        if template is None:
            log.info("email_skipped", reason="no_template", type=notification.type)
            return False
        if not self.settings.MAIL_API_URL:
            log.info("email_skipped", reason="mail_not_configured")
            return False

        data = notification.data or {}
        body = {
            "from": self.settings.MAIL_FROM_ADDRESS,
            "to": member.email,
            "template": template,
            "variables": {
                "name": member.display_name,
                "title": notification.title,
                "message": notification.message,
                "action_url": f"{self.settings.APP_BASE_URL}{data.get('action_url', '')}",
            },
        }
        headers = {"Authorization": f"Bearer {self.settings.MAIL_API_KEY}"}

        try:
            if self.client is not None:
                response = await self.client.post(
                    self.settings.MAIL_API_URL, json=body, headers=headers,
                    timeout=self.settings.MAIL_TIMEOUT_SECONDS,
                )
            else:
                async with httpx.AsyncClient(timeout=self.settings.MAIL_TIMEOUT_SECONDS) as client:
                    response = await client.post(self.settings.MAIL_API_URL, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("email_send_failed", error=str(exc))
            raise DeliveryError(f"E-mail delivery failed: {exc}") from exc

        log.info("email_sent", template=template)
        return True
