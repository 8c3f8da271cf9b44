"""
Tests for paynotify/api/health.py - liveness and configuration checks.
"""
import pytest
from datetime import datetime

from paynotify.api.health import health_check


class TestHealthCheck:
    async def test_returns_healthy(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == "1.0.0"
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None

    async def test_http_route(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers


class TestConfigCheck:
    async def test_valid_configuration(self, client, mock_channel):
        response = await client.get("/health/config")
        assert response.status_code == 200
        assert response.json()["valid"] is True
        mock_channel.probe.assert_not_called()

    async def test_invalid_configuration_is_still_200(self, client, settings):
        settings.sendgrid_api_key = ""
        response = await client.get("/health/config")
        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert "Required environment variable SENDGRID_API_KEY is not set" in body["errors"]

    async def test_refresh_probes(self, client, mock_channel):
        mock_channel.probe.return_value = "unauthorized"
        response = await client.post("/health/config/refresh")
        assert response.json()["valid"] is False
        mock_channel.probe.assert_awaited_once()
