"""
Email volume limiter and delivery metrics monitor.

One instance is built at startup and shared by the dispatcher and the
monitoring API. Counters live in process memory: under a multi-process
deployment each worker enforces its own caps (known scaling boundary).

- Daily/monthly counters roll over lazily on every read or log call by
  comparing the wall-clock date to last_reset_date. There is no timer.
- can_send() is the only thing that blocks sending. Threshold warnings
  emitted from log_attempt() are observational.
- can_send(reserve=True) holds a slot until release(), so concurrent sends
  that have passed the gate but not yet logged still count against the caps.
- Every attempt appends exactly one log entry to a bounded ring buffer.
"""
import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 100
DEFAULT_MONTHLY_LIMIT = 3000
DEFAULT_MAX_LOG_ENTRIES = 1000
WARNING_THRESHOLD = 0.8
LOW_SUCCESS_RATE = 95.0
RECENT_FAILURES_IN_REPORT = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EmailLogEntry:
    id: int
    timestamp: str
    type: str
    recipient: str
    subject: str
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    provider_message_id: Optional[str] = None
    attempt_number: int = 1


@dataclass
class EmailMetrics:
    total_sent: int = 0
    total_failed: int = 0
    daily_volume: int = 0
    monthly_volume: int = 0
    last_reset_date: str = ""
    errors_by_kind: dict = field(default_factory=dict)
    emails_by_type: dict = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        attempts = self.total_sent + self.total_failed
        return (self.total_sent / attempts) * 100 if attempts else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["success_rate"] = self.success_rate
        return data


class EmailMonitor:
    def __init__(
        self,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        monthly_limit: int = DEFAULT_MONTHLY_LIMIT,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        store=None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.daily_limit = daily_limit
        self.monthly_limit = monthly_limit
        self.max_log_entries = max_log_entries
        self._store = store
        self._clock = clock
        self._metrics = self._initial_metrics()
        self._logs: deque[EmailLogEntry] = deque(maxlen=max_log_entries)
        self._next_id = 1
        self._in_flight = 0

    def _initial_metrics(self) -> EmailMetrics:
        return EmailMetrics(last_reset_date=self._clock().date().isoformat())

    # ------------------------------------------------------------------
    # Counter rollover
    # ------------------------------------------------------------------

    def _reset_counters_if_needed(self) -> None:
        today = self._clock().date()
        try:
            last_reset = date.fromisoformat(self._metrics.last_reset_date)
        except ValueError:
            last_reset = today

        if today == last_reset:
            return

        self._metrics.daily_volume = 0
        if (today.year, today.month) != (last_reset.year, last_reset.month):
            self._metrics.monthly_volume = 0
        self._metrics.last_reset_date = today.isoformat()
        logger.info("Email volume counters rolled over to %s", today.isoformat())

    # ------------------------------------------------------------------
    # Limiter
    # ------------------------------------------------------------------

    def can_send(self, reserve: bool = False) -> dict:
        """
        Allow/deny decision made before any send is attempted.

        With reserve=True an allowed decision also takes a slot that the
        caller must hand back with release() once the attempt is logged.
        """
        self._reset_counters_if_needed()
        daily = self._metrics.daily_volume + self._in_flight
        monthly = self._metrics.monthly_volume + self._in_flight

        if daily >= self.daily_limit:
            return {
                "allowed": False,
                "reason": f"Daily email limit reached ({daily}/{self.daily_limit})",
            }
        if monthly >= self.monthly_limit:
            return {
                "allowed": False,
                "reason": f"Monthly email limit reached ({monthly}/{self.monthly_limit})",
            }
        if reserve:
            self._in_flight += 1
        return {"allowed": True, "reason": None}

    def release(self) -> None:
        self._in_flight = max(0, self._in_flight - 1)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def log_attempt(
        self,
        email_type: str,
        recipient: str,
        subject: str,
        success: bool,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
        provider_message_id: Optional[str] = None,
        attempt_number: int = 1,
    ) -> EmailLogEntry:
        self._reset_counters_if_needed()

        entry = EmailLogEntry(
            id=self._next_id,
            timestamp=self._clock().isoformat(),
            type=email_type,
            recipient=recipient,
            subject=subject,
            success=success,
            error=error,
            error_kind=error_kind,
            provider_message_id=provider_message_id,
            attempt_number=attempt_number,
        )
        self._next_id += 1
        self._logs.append(entry)

        metrics = self._metrics
        if success:
            metrics.total_sent += 1
            metrics.daily_volume += 1
            metrics.monthly_volume += 1
        else:
            metrics.total_failed += 1
            if error_kind:
                metrics.errors_by_kind[error_kind] = metrics.errors_by_kind.get(error_kind, 0) + 1
        metrics.emails_by_type[email_type] = metrics.emails_by_type.get(email_type, 0) + 1

        from paynotify.utils.logging import mask_email
        if success:
            logger.info(
                "Email sent: type=%s to=%s id=%s daily=%d monthly=%d success_rate=%.2f%%",
                email_type, mask_email(recipient), provider_message_id,
                metrics.daily_volume, metrics.monthly_volume, metrics.success_rate,
                extra={"email_type": email_type},
            )
        else:
            logger.error(
                "Email failed: type=%s to=%s error=%s success_rate=%.2f%%",
                email_type, mask_email(recipient), error, metrics.success_rate,
                extra={"email_type": email_type, "error_kind": error_kind},
            )

        self._check_volume_warnings()
        return entry

    def _check_volume_warnings(self) -> None:
        daily = self._metrics.daily_volume
        monthly = self._metrics.monthly_volume

        if daily >= self.daily_limit:
            logger.error("Daily email limit reached: %d/%d emails", daily, self.daily_limit)
        elif daily >= self.daily_limit * WARNING_THRESHOLD:
            logger.warning("Daily email volume warning: %d/%d emails sent today", daily, self.daily_limit)

        if monthly >= self.monthly_limit:
            logger.error("Monthly email limit reached: %d/%d emails", monthly, self.monthly_limit)
        elif monthly >= self.monthly_limit * WARNING_THRESHOLD:
            logger.warning(
                "Monthly email volume warning: %d/%d emails sent this month",
                monthly, self.monthly_limit,
            )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_metrics(self) -> dict:
        self._reset_counters_if_needed()
        return self._metrics.to_dict()

    def get_volume_status(self) -> dict:
        self._reset_counters_if_needed()
        return {
            "daily": self.daily_limit,
            "monthly": self.monthly_limit,
            "current": {
                "daily": self._metrics.daily_volume,
                "monthly": self._metrics.monthly_volume,
            },
        }

    def get_recent_logs(self, limit: int = 50) -> list[EmailLogEntry]:
        """Most recent first."""
        return list(reversed(self._logs))[:limit]

    def get_logs_by_type(self, email_type: str, limit: int = 20) -> list[EmailLogEntry]:
        return [e for e in reversed(self._logs) if e.type == email_type][:limit]

    def get_failed_logs(self, limit: int = 20) -> list[EmailLogEntry]:
        return [e for e in reversed(self._logs) if not e.success][:limit]

    def get_threshold_warnings(self) -> list[str]:
        status = self.get_volume_status()
        warnings = []
        if status["current"]["daily"] >= self.daily_limit:
            warnings.append("Daily volume limit reached")
        elif status["current"]["daily"] >= self.daily_limit * WARNING_THRESHOLD:
            warnings.append("Daily volume approaching limit")
        if status["current"]["monthly"] >= self.monthly_limit:
            warnings.append("Monthly volume limit reached")
        elif status["current"]["monthly"] >= self.monthly_limit * WARNING_THRESHOLD:
            warnings.append("Monthly volume approaching limit")
        attempts = self._metrics.total_sent + self._metrics.total_failed
        if attempts and self._metrics.success_rate < LOW_SUCCESS_RATE:
            warnings.append(f"Success rate below {LOW_SUCCESS_RATE:.0f}%")
        return warnings

    def generate_report(self) -> str:
        metrics = self.get_metrics()
        status = self.get_volume_status()
        failures = self.get_failed_logs(RECENT_FAILURES_IN_REPORT)
        warnings = self.get_threshold_warnings()

        daily_pct = status["current"]["daily"] / self.daily_limit * 100 if self.daily_limit else 0.0
        monthly_pct = status["current"]["monthly"] / self.monthly_limit * 100 if self.monthly_limit else 0.0

        lines = [
            "Email Monitoring Report",
            f"Generated: {self._clock().isoformat()}",
            "",
            "Volume:",
            f"- Daily: {status['current']['daily']}/{self.daily_limit} ({daily_pct:.1f}%)",
            f"- Monthly: {status['current']['monthly']}/{self.monthly_limit} ({monthly_pct:.1f}%)",
            "",
            "Totals:",
            f"- Sent: {metrics['total_sent']}",
            f"- Failed: {metrics['total_failed']}",
            f"- Success rate: {metrics['success_rate']:.2f}%",
            "",
            "Emails by type:",
        ]
        lines += [f"- {t}: {c}" for t, c in metrics["emails_by_type"].items()] or ["- none"]
        lines += ["", "Errors by kind:"]
        lines += [f"- {k}: {c}" for k, c in metrics["errors_by_kind"].items()] or ["- none"]
        lines += ["", f"Recent failures (last {RECENT_FAILURES_IN_REPORT}):"]
        lines += [
            f"- {e.timestamp}: {e.type} to {e.recipient} - {e.error}" for e in failures
        ] or ["- No recent failures"]
        lines += ["", "Warnings:"]
        lines += [f"- {w}" for w in warnings] or ["- none"]
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_logs(self) -> None:
        self._logs.clear()
        logger.info("Email logs cleared")

    def reset_metrics(self) -> None:
        self._metrics = self._initial_metrics()
        self._logs.clear()
        logger.info("Email metrics and logs reset")

    # ------------------------------------------------------------------
    # Persistence (best-effort)
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "metrics": asdict(self._metrics),
            "logs": [asdict(e) for e in self._logs],
            "next_id": self._next_id,
        }

    def restore(self, snapshot: dict) -> None:
        metrics = snapshot.get("metrics") or {}
        known = set(EmailMetrics.__dataclass_fields__)
        self._metrics = EmailMetrics(**{k: v for k, v in metrics.items() if k in known})
        if not self._metrics.last_reset_date:
            self._metrics.last_reset_date = self._clock().date().isoformat()
        self._logs = deque(
            (EmailLogEntry(**e) for e in snapshot.get("logs") or []),
            maxlen=self.max_log_entries,
        )
        last_id = self._logs[-1].id if self._logs else 0
        self._next_id = max(int(snapshot.get("next_id") or 1), last_id + 1)

    async def load(self) -> bool:
        """Restore state from the store. Returns False when nothing was loaded."""
        if self._store is None:
            return False
        try:
            snapshot = await self._store.load()
            if not snapshot:
                return False
            self.restore(snapshot)
            self._reset_counters_if_needed()
            logger.info("Email monitor state restored (%d log entries)", len(self._logs))
            return True
        except Exception as e:
            logger.warning("Failed to load email monitor state: %s", str(e))
            return False

    async def persist(self) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(self.snapshot())
        except Exception as e:
            logger.warning("Failed to persist email monitor state: %s", str(e))
