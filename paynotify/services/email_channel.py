"""
SendGrid delivery channel.

send() is the only call the dispatcher makes against the outside world. The
SendGrid SDK is synchronous, so each send runs in the default executor and is
bounded by a hard timeout; exceeding it raises asyncio.TimeoutError.
"""
import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

SENDGRID_API_BASE = "https://api.sendgrid.com/v3"
DEFAULT_SEND_TIMEOUT_SECONDS = 30.0
PROBE_TIMEOUT_SECONDS = 10.0


class SendGridChannel:
    def __init__(self, api_key: str, timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _send_sync(
        self,
        from_email: str,
        from_name: str,
        to_email: str,
        subject: str,
        body: str,
    ) -> dict:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail, Email, To, Content

        message = Mail(
            from_email=Email(from_email, from_name),
            to_emails=To(to_email),
            subject=subject,
        )
        message.content = [Content("text/plain", body)]

        sg = SendGridAPIClient(api_key=self.api_key)
        response = sg.send(message)
        return {"id": response.headers.get("X-Message-Id", "") or None}

    async def send(
        self,
        from_email: str,
        from_name: str,
        to_email: str,
        subject: str,
        body: str,
    ) -> dict:
        """Send one plain-text email. Returns {"id": provider message id}."""
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(
                None,
                lambda: self._send_sync(from_email, from_name, to_email, subject, body),
            ),
            timeout=self.timeout_seconds,
        )

    async def probe(self) -> Optional[str]:
        """
        Confirm the API key is authorized by listing its scopes.

        Returns None on success, otherwise one of "unauthorized", "network",
        or "unknown: <detail>".
        """
        try:
            async with httpx.AsyncClient(timeout=PROBE_TIMEOUT_SECONDS) as client:
                response = await client.get(
                    f"{SENDGRID_API_BASE}/scopes",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            logger.warning("SendGrid probe network failure: %s", str(e))
            return "network"
        except Exception as e:
            logger.warning("SendGrid probe failed: %s", str(e))
            return f"unknown: {e}"

        if response.status_code in (401, 403):
            return "unauthorized"
        if response.status_code >= 400:
            return f"unknown: HTTP {response.status_code}"
        return None
