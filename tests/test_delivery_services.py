"""Tests for the push and e-mail senders against a mocked HTTP transport."""
import json
import uuid
from types import SimpleNamespace

import httpx
import pytest

from matrimatch.config import Settings
from matrimatch.errors import DeliveryError
from matrimatch.services.email_service import EmailService
from matrimatch.services.push_service import PushNotificationService


def _client(status_code, seen):
    def handler(request):
        seen.append(request)
        return httpx.Response(status_code, json={"ok": status_code < 400})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _member(**kwargs):
    defaults = dict(
        id=uuid.uuid4(),
        email="asha@example.com",
        display_name="Asha",
        device_token="device-123",
    )
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


class TestPushNotificationService:
    """FCM sender."""

    async def test_not_configured_returns_false(self):
        service = PushNotificationService(Settings(FCM_SERVER_KEY=""))
        assert await service.send_to_member(_member(), "t", "b", {"type": "new_match"}) is False

    async def test_no_device_token_returns_false(self):
        seen = []
        service = PushNotificationService(Settings(FCM_SERVER_KEY="k"), client=_client(200, seen))
        assert await service.send_to_member(_member(device_token=None), "t", "b", {}) is False
        assert seen == []

    async def test_sends_with_stringified_data(self):
        seen = []
        service = PushNotificationService(Settings(FCM_SERVER_KEY="secret"), client=_client(200, seen))

        sent = await service.send_to_member(
            _member(), "It's a Match! 🎉", "body", {"type": "mutual_match", "can_chat": True, "x": None}
        )

        assert sent is True
        [request] = seen
        assert request.headers["Authorization"] == "key=secret"
        body = json.loads(request.content)
        assert body["to"] == "device-123"
        assert body["data"] == {"type": "mutual_match", "can_chat": "True", "x": ""}

    async def test_client_error_is_not_retried(self):
        seen = []
        service = PushNotificationService(Settings(FCM_SERVER_KEY="k"), client=_client(400, seen))
        with pytest.raises(DeliveryError):
            await service.send_to_member(_member(), "t", "b", {})
        assert len(seen) == 1

    async def test_server_error_exhausts_budget(self):
        seen = []
        settings = Settings(FCM_SERVER_KEY="k", PUSH_MAX_ATTEMPTS=1)
        service = PushNotificationService(settings, client=_client(503, seen))
        with pytest.raises(DeliveryError):
            await service.send_to_member(_member(), "t", "b", {})
        assert len(seen) == 1


class TestEmailService:
    """Transactional mail sender."""

    def _notification(self, ntype="new_match"):
        return SimpleNamespace(
            id=uuid.uuid4(),
            type=ntype,
            title="New Match Found! 💕",
            message="You have a new potential match waiting for you.",
            data={"action_url": "/matches/abc"},
        )

    async def test_not_configured_returns_false(self):
        service = EmailService(Settings(MAIL_API_URL=""))
        assert await service.send_notification_email(_member(), self._notification()) is False

    async def test_type_without_template_skipped(self):
        seen = []
        service = EmailService(Settings(MAIL_API_URL="https://mail.test/send"), client=_client(200, seen))
        assert await service.send_notification_email(_member(), self._notification("message")) is False
        assert seen == []

    async def test_sends_template_variables(self):
        seen = []
        settings = Settings(MAIL_API_URL="https://mail.test/send", APP_BASE_URL="https://app.test")
        service = EmailService(settings, client=_client(202, seen))

        assert await service.send_notification_email(_member(), self._notification()) is True

        body = json.loads(seen[0].content)
        assert body["template"] == "new-match"
        assert body["to"] == "asha@example.com"
        assert body["variables"]["action_url"] == "https://app.test/matches/abc"

    async def test_provider_failure_raises(self):
        service = EmailService(Settings(MAIL_API_URL="https://mail.test/send"), client=_client(500, []))
        with pytest.raises(DeliveryError):
            await service.send_notification_email(_member(), self._notification())
