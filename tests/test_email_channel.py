"""
Tests for paynotify/services/email_channel.py - SendGrid send and key probe.
All HTTP is mocked.
"""
import asyncio
import time
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from paynotify.services.email_channel import SendGridChannel


def _mock_http_client(response=None, side_effect=None):
    """Return a mock httpx.AsyncClient usable as an async ctx mgr."""
    client = AsyncMock()
    client.get = AsyncMock(return_value=response, side_effect=side_effect)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestSend:
    async def test_returns_message_id(self):
        channel = SendGridChannel("SG.key")
        response = MagicMock()
        response.headers = {"X-Message-Id": "msg_abc"}
        with patch("sendgrid.SendGridAPIClient") as mock_cls:
            mock_cls.return_value.send.return_value = response
            result = await channel.send("from@x.com", "Sender", "to@y.com", "Subject", "Body")

        assert result == {"id": "msg_abc"}
        message = mock_cls.return_value.send.call_args.args[0]
        assert message.subject.subject == "Subject"

    async def test_errors_propagate(self):
        channel = SendGridChannel("SG.key")
        with patch("sendgrid.SendGridAPIClient") as mock_cls:
            mock_cls.return_value.send.side_effect = Exception("HTTP Error 401: Unauthorized")
            with pytest.raises(Exception, match="401"):
                await channel.send("from@x.com", "Sender", "to@y.com", "Subject", "Body")

    async def test_timeout(self):
        channel = SendGridChannel("SG.key", timeout_seconds=0.05)
        with patch.object(channel, "_send_sync", side_effect=lambda *a: time.sleep(0.3)):
            with pytest.raises(asyncio.TimeoutError):
                await channel.send("from@x.com", "Sender", "to@y.com", "Subject", "Body")

    def test_configured(self):
        assert SendGridChannel("SG.key").configured is True
        assert SendGridChannel("").configured is False


class TestProbe:
    async def test_success(self):
        client = _mock_http_client(response=MagicMock(status_code=200))
        with patch("httpx.AsyncClient", return_value=client):
            assert await SendGridChannel("SG.key").probe() is None
        headers = client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer SG.key"

    @pytest.mark.parametrize("status", [401, 403])
    async def test_unauthorized(self, status):
        client = _mock_http_client(response=MagicMock(status_code=status))
        with patch("httpx.AsyncClient", return_value=client):
            assert await SendGridChannel("SG.key").probe() == "unauthorized"

    async def test_network(self):
        client = _mock_http_client(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient", return_value=client):
            assert await SendGridChannel("SG.key").probe() == "network"

    async def test_other_status(self):
        client = _mock_http_client(response=MagicMock(status_code=500))
        with patch("httpx.AsyncClient", return_value=client):
            assert await SendGridChannel("SG.key").probe() == "unknown: HTTP 500"
