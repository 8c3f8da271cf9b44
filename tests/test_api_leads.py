"""
Tests for paynotify/api/leads.py - lead capture and payment verification.
"""
import pytest
from unittest.mock import AsyncMock
from sqlalchemy import select

from paynotify.models.lead import Lead


class TestCaptureLead:
    async def test_creates_lead_and_notifies(self, client, services, session_factory, mock_channel):
        response = await client.post(
            "/api/v1/leads",
            json={"name": "Ada Obi", "email": "Ada@Example.com", "phone": "+2348000000000"},
        )
        await services.queue.join()

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True

        async with session_factory() as db:
            lead = (await db.execute(select(Lead))).scalar_one()
        assert str(lead.id) == body["lead_id"]
        assert lead.email == "ada@example.com"

        assert mock_channel.send.await_count == 2
        subjects = {c.args[3] for c in mock_channel.send.await_args_list}
        assert "New Lead: Ada Obi - ada@example.com" in subjects

    async def test_resubmission_returns_same_id(self, client, services):
        first = await client.post("/api/v1/leads", json={"name": "Ada", "email": "ada@example.com"})
        second = await client.post("/api/v1/leads", json={"name": "Ada O", "email": "ada@example.com"})
        await services.queue.join()
        assert first.json()["lead_id"] == second.json()["lead_id"]

    @pytest.mark.parametrize("payload", [
        {"email": "ada@example.com"},
        {"name": "Ada"},
        {"name": "  ", "email": "ada@example.com"},
        {"name": "Ada", "email": "not-an-email"},
    ])
    async def test_invalid_input_is_400(self, client, payload, mock_channel):
        response = await client.post("/api/v1/leads", json=payload)
        assert response.status_code == 400
        mock_channel.send.assert_not_called()

    async def test_non_json_body_is_400(self, client):
        response = await client.post(
            "/api/v1/leads", content=b"name=Ada", headers={"content-type": "text/plain"},
        )
        assert response.status_code == 400

    async def test_storage_failure_is_500(self, client, services):
        services.reconciler.upsert_lead = AsyncMock(side_effect=RuntimeError("db down"))
        response = await client.post("/api/v1/leads", json={"name": "Ada", "email": "ada@example.com"})
        assert response.status_code == 500


class TestVerifyPayment:
    async def _seed(self, services):
        record = {
            "session_reference": "cs_test_1",
            "email": "ada@example.com",
            "name": "Ada Obi",
            "tier_name": "Gold Membership",
            "amount_total": 2500,
            "currency": "usd",
            "status": "completed",
        }
        await services.reconciler.insert_client(record)

    async def test_requires_a_parameter(self, client):
        response = await client.get("/api/v1/payments/verify")
        assert response.status_code == 400

    async def test_verified_by_session(self, client, services):
        await self._seed(services)
        response = await client.get("/api/v1/payments/verify", params={"session_id": "cs_test_1"})

        body = response.json()
        assert body["verified"] is True
        assert body["payment"]["tier_name"] == "Gold Membership"
        assert body["payment"]["amount_total"] == 2500

    async def test_verified_by_email(self, client, services):
        await self._seed(services)
        response = await client.get("/api/v1/payments/verify", params={"email": "ada@example.com"})
        assert response.json()["verified"] is True

    async def test_not_found(self, client):
        response = await client.get("/api/v1/payments/verify", params={"session_id": "cs_missing"})
        assert response.status_code == 200
        assert response.json()["verified"] is False
