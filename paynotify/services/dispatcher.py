"""
Notification dispatcher - sends NotificationJobs through the delivery channel.

Each send consults the volume limiter first and fails fast as a
configuration error when denied. Every attempt produces exactly one monitor
log entry. There is no retry loop here: a failed send is logged once.
Nothing in this module raises to its caller; dispatch runs detached from
the webhook response.
"""
import asyncio
import logging
from typing import Optional

from paynotify.services.notification_templates import NotificationJob
from paynotify.utils.email_validation import is_valid_email_format
from paynotify.utils.errors import EmailErrorKind, classify_error, normalize_error
from paynotify.utils.logging import mask_email

logger = logging.getLogger(__name__)


def _result(
    success: bool,
    message_id: Optional[str] = None,
    error: Optional[str] = None,
    error_kind: Optional[EmailErrorKind] = None,
) -> dict:
    return {
        "success": success,
        "message_id": message_id,
        "error": error,
        "error_kind": error_kind.value if error_kind else None,
    }


class NotificationDispatcher:
    def __init__(self, channel, monitor, from_email: str, from_name: str):
        self.channel = channel
        self.monitor = monitor
        self.from_email = from_email
        self.from_name = from_name

    def _fail(self, job: NotificationJob, error: str, kind: EmailErrorKind) -> dict:
        self.monitor.log_attempt(
            job.email_type, job.recipient, job.subject,
            success=False, error=error, error_kind=kind.value,
        )
        return _result(False, error=error, error_kind=kind)

    async def send_job(self, job: NotificationJob) -> dict:
        """
        Send one job. Returns {"success", "message_id", "error", "error_kind"}.
        """
        try:
            return await self._send_job(job)
        finally:
            await self.monitor.persist()

    async def _send_job(self, job: NotificationJob) -> dict:
        decision = self.monitor.can_send(reserve=True)
        if not decision["allowed"]:
            return self._fail(
                job, f"Email sending blocked: {decision['reason']}",
                EmailErrorKind.CONFIGURATION_ERROR,
            )
        # The slot is released only after the attempt has been logged.
        try:
            return await self._send_reserved(job)
        finally:
            self.monitor.release()

    async def _send_reserved(self, job: NotificationJob) -> dict:
        if not self.channel.configured:
            return self._fail(
                job, "SENDGRID_API_KEY is not configured", EmailErrorKind.CONFIGURATION_ERROR,
            )

        if not job.recipient or not job.subject or not job.body:
            return self._fail(job, "Missing required email parameters", EmailErrorKind.TEMPLATE_ERROR)

        if not is_valid_email_format(job.recipient):
            return self._fail(
                job, f"Invalid email recipient: {mask_email(job.recipient)}",
                EmailErrorKind.TEMPLATE_ERROR,
            )

        try:
            response = await self.channel.send(
                self.from_email, self.from_name, job.recipient, job.subject, job.body,
            )
        except Exception as e:
            kind = classify_error(e)
            normalized = normalize_error(e)
            self.monitor.log_attempt(
                job.email_type, job.recipient, job.subject,
                success=False, error=normalized["message"], error_kind=kind.value,
            )
            logger.warning(
                "Notification send failed: type=%s kind=%s code=%s",
                job.email_type, kind.value, normalized["code"],
                extra={"email_type": job.email_type, "error_kind": kind.value,
                       "error_code": normalized["code"]},
            )
            return _result(False, error=normalized["message"], error_kind=kind)

        message_id = (response or {}).get("id")
        self.monitor.log_attempt(
            job.email_type, job.recipient, job.subject,
            success=True, provider_message_id=message_id,
        )
        return _result(True, message_id=message_id)

    async def send_all(self, jobs: list[NotificationJob]) -> list[dict]:
        """
        Send jobs concurrently, all-settled: one failure never cancels siblings.
        Results are returned in job order.
        """
        if not jobs:
            return []
        outcomes = await asyncio.gather(
            *(self.send_job(job) for job in jobs), return_exceptions=True,
        )
        results = []
        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, BaseException):
                normalized = normalize_error(outcome)
                logger.error(
                    "Notification job crashed: type=%s error=%s",
                    job.email_type, normalized["message"],
                    extra={"email_type": job.email_type},
                )
                outcome = _result(
                    False, error=normalized["message"], error_kind=EmailErrorKind.PROVIDER_ERROR,
                )
            results.append(outcome)
        return results
