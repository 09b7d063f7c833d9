"""Unit tests for the SMTP notification service."""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from marketplace.services.notification_service import NotificationService


@pytest.fixture
def service() -> NotificationService:
    service = NotificationService()
    service.smtp_username = "mailer"
    service.smtp_password = "secret"
    return service


class TestNotificationService:

    async def test_send_delivers_message(self, service):
        with patch("marketplace.services.notification_service.aiosmtplib.send", new=AsyncMock()) as send:
            assert await service.send("ravi@example.com", "Verified", "Hello Ravi") is True

        message = send.await_args.args[0]
        assert message["To"] == "ravi@example.com"
        assert message["Subject"] == "Verified"
        assert "Hello Ravi" in message.get_content()
        assert send.await_args.kwargs["username"] == "mailer"

    async def test_missing_credentials_skips_send(self):
        service = NotificationService()

        with patch("marketplace.services.notification_service.aiosmtplib.send", new=AsyncMock()) as send:
            assert await service.send("ravi@example.com", "Verified", "Hello") is False

        send.assert_not_awaited()

    async def test_missing_recipient(self, service):
        assert await service.send("", "Verified", "Hello") is False

    async def test_smtp_failure_returns_false(self, service):
        send = AsyncMock(side_effect=aiosmtplib.SMTPException("relay denied"))

        with patch("marketplace.services.notification_service.aiosmtplib.send", new=send), patch(
            "asyncio.sleep", new=AsyncMock()
        ):
            assert await service.send("ravi@example.com", "Verified", "Hello") is False

        assert send.await_count == 3
