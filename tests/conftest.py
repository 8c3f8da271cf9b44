"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import hashlib
import hmac
import json
import time
import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.pool import StaticPool

from paynotify.config import Settings
from paynotify.database import Base
from paynotify.main import create_app
from paynotify.services.container import build_services
from paynotify.services.email_monitor import EmailMonitor
from paynotify.services.stripe_gateway import StripeGateway

import paynotify.models  # noqa: F401  registers tables on Base.metadata

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_EMAIL = "admin@diaspora9ja.com"


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")


@pytest.fixture
def sign():
    return sign_payload


@pytest.fixture
def event_body():
    return make_event


@pytest.fixture
async def session_factory():
    """In-memory SQLite shared across sessions (StaticPool keeps one connection)."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        app_env="test",
        log_level="WARNING",
        database_url="sqlite+aiosqlite:///:memory:",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_publishable_key="pk_test_123",
        sendgrid_api_key="SG.test_key_0123456789abcdef",
        from_email="noreply@diaspora9ja.com",
        from_name="Diaspora9ja",
        admin_email=ADMIN_EMAIL,
        metrics_backend="memory",
    )


@pytest.fixture
def mock_channel():
    """Stand-in for SendGridChannel - prevents real SendGrid calls in tests."""
    channel = MagicMock()
    channel.configured = True
    channel.send = AsyncMock(return_value={"id": "sg_msg_123"})
    channel.probe = AsyncMock(return_value=None)
    return channel


@pytest.fixture
def monitor():
    return EmailMonitor(daily_limit=100, monthly_limit=3000, max_log_entries=1000)


@pytest.fixture
def gateway():
    """Real verifier; network lookups are replaced with mocks."""
    gw = StripeGateway("sk_test_123", WEBHOOK_SECRET)
    gw.list_line_items = AsyncMock(return_value=[])
    gw.retrieve_product = AsyncMock(return_value={"id": "prod_1", "name": "Gold Membership"})
    return gw


@pytest.fixture
def services(settings, session_factory, gateway, mock_channel, monitor):
    return build_services(
        settings,
        session_factory=session_factory,
        gateway=gateway,
        channel=mock_channel,
        monitor=monitor,
    )


@pytest.fixture
def app(services):
    with patch("paynotify.main.configure_structured_logging"):
        application = create_app()
    application.state.services = services
    return application


@pytest.fixture
async def client(app):
    """HTTP client against the ASGI app. Lifespan does not run, so the
    notification queue dispatches each batch as a detached task."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
