"""
MatriMatch — Push notification sender

Thin client for the FCM legacy HTTP endpoint.  Transient failures (network
errors, HTTP 429 and 5xx) are retried in-process with tenacity before the
error is surfaced to the calling task, which has its own retry budget.
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from matrimatch.config import Settings, get_settings
from matrimatch.errors import DeliveryError

logger = structlog.get_logger("matrimatch.push_service")


def _is_retryable_push_error(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class PushNotificationService:
    """Sends one push message to one member's registered device.

    Parameters
    ----------
    settings:
        FCM key, endpoint, timeout and attempt budget.
    client:
        Optional shared ``httpx.AsyncClient``; a short-lived client is used
        per call when omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client

    async def send_to_member(self, member, title: str, body: str, data: dict) -> bool:
        """Deliver a push message.

        Returns
        -------
        bool
            True when the provider accepted the message; False when push is
            not configured or the member has no device registered.

        Raises
        ------
        DeliveryError
            Provider kept failing after the retry budget was spent, or
            rejected the request outright.
        """
        log = logger.bind(member_id=str(member.id), type=data.get("type"))

        if not self.settings.FCM_SERVER_KEY:
            log.info("push_skipped", reason="fcm_not_configured")
            return False
        if not member.device_token:
            log.info("push_skipped", reason="no_device_token")
            return False

        message = {
            "to": member.device_token,
            "notification": {"title": title, "body": body, "sound": "default"},
            "data": {k: "" if v is None else str(v) for k, v in data.items()},
            "priority": "high",
        }
        headers = {
            "Authorization": f"key={self.settings.FCM_SERVER_KEY}",
            "Content-Type": "application/json",
        }

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_retryable_push_error),
                stop=stop_after_attempt(self.settings.PUSH_MAX_ATTEMPTS),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                reraise=False,
            ):
                with attempt:
                    await self._post(message, headers)
        except RetryError as retry_err:
            last = retry_err.last_attempt.exception()
            log.error("push_retry_exhausted", error=str(last))
            raise DeliveryError(f"Push delivery failed: {last}") from last
        except httpx.HTTPError as exc:
            log.error("push_rejected", error=str(exc))
            raise DeliveryError(f"Push delivery rejected: {exc}") from exc

        log.info("push_sent")
        return True

    async def _post(self, message: dict, headers: dict) -> None:
        if self.client is not None:
            response = await self.client.post(
                self.settings.FCM_ENDPOINT, json=message, headers=headers,
                timeout=self.settings.PUSH_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.settings.PUSH_TIMEOUT_SECONDS) as client:
            response = await client.post(self.settings.FCM_ENDPOINT, json=message, headers=headers)
            response.raise_for_status()
