"""
Configuration validator - secrets, SendGrid key shape, and sender settings.

Two entry points:
- validate_sync(): presence and format checks only, no network.
- validate(): the same plus an authorization probe against SendGrid.

The last result is cached for a TTL window. Nothing here raises past the
public methods: every failure lands in the result's errors/warnings.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from paynotify.utils.email_validation import is_valid_email_format

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300

SENDGRID_KEY_PREFIX = "SG."
SENDGRID_KEY_MIN_LENGTH = 20

# (settings attribute, environment variable name)
REQUIRED_SECRETS = (
    ("stripe_secret_key", "STRIPE_SECRET_KEY"),
    ("database_url", "DATABASE_URL"),
    ("sendgrid_api_key", "SENDGRID_API_KEY"),
)
RECOMMENDED_SECRETS = (
    ("stripe_webhook_secret", "STRIPE_WEBHOOK_SECRET"),
    ("stripe_publishable_key", "STRIPE_PUBLISHABLE_KEY"),
)

PLACEHOLDER_SENDER_DOMAINS = frozenset({
    "example.com",
    "example.org",
    "example.net",
    "localhost",
})


@dataclass
class ConfigValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


class ConfigValidator:
    def __init__(
        self,
        settings,
        channel=None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.channel = channel
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cached: Optional[ConfigValidationResult] = None
        self._cached_at: float = 0.0

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def _check_secrets(self, errors: list, warnings: list) -> None:
        for attr, env_name in REQUIRED_SECRETS:
            if not getattr(self.settings, attr, ""):
                errors.append(f"Required environment variable {env_name} is not set")
        for attr, env_name in RECOMMENDED_SECRETS:
            if not getattr(self.settings, attr, ""):
                warnings.append(f"Recommended environment variable {env_name} is not set")

    @staticmethod
    def check_sendgrid_key_shape(api_key: str) -> list[str]:
        if not api_key:
            return []
        errors = []
        if not api_key.startswith(SENDGRID_KEY_PREFIX):
            errors.append(
                f"SENDGRID_API_KEY appears to have invalid format (should start with '{SENDGRID_KEY_PREFIX}')"
            )
        if len(api_key) < SENDGRID_KEY_MIN_LENGTH:
            errors.append("SENDGRID_API_KEY appears to be too short")
        return errors

    def _check_sender(self, errors: list, warnings: list) -> None:
        admin_email = getattr(self.settings, "admin_email", "")
        if not admin_email:
            errors.append("Admin email is not configured")
        elif not is_valid_email_format(admin_email):
            errors.append(f"Admin email has invalid format: {admin_email}")

        from_email = getattr(self.settings, "from_email", "")
        if not from_email:
            errors.append("From email is not configured")
        elif not is_valid_email_format(from_email):
            errors.append(f"From email has invalid format: {from_email}")
        elif from_email.rsplit("@", 1)[-1].lower() in PLACEHOLDER_SENDER_DOMAINS:
            warnings.append(
                f"From email uses placeholder domain ({from_email}). "
                "Configure a verified sending domain for production"
            )

        from_name = (getattr(self.settings, "from_name", "") or "").strip()
        if not from_name:
            errors.append("From name is not configured")
        elif len(from_name) < 2:
            warnings.append("From name is very short, consider using a more descriptive name")

    def _collect(self) -> tuple[list, list]:
        errors: list[str] = []
        warnings: list[str] = []
        self._check_secrets(errors, warnings)
        self._check_sender(errors, warnings)
        errors.extend(self.check_sendgrid_key_shape(getattr(self.settings, "sendgrid_api_key", "")))
        return errors, warnings

    async def _probe(self) -> list[str]:
        if self.channel is None:
            return []
        outcome = await self.channel.probe()
        if outcome is None:
            return []
        if outcome == "unauthorized":
            return ["SENDGRID_API_KEY is invalid or unauthorized"]
        if outcome == "network":
            return ["Unable to validate SENDGRID_API_KEY due to network issues"]
        return [f"SENDGRID_API_KEY validation failed: {outcome}"]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate_sync(self) -> ConfigValidationResult:
        """Presence/format checks without any network call. Not cached."""
        try:
            errors, warnings = self._collect()
        except Exception as e:
            errors, warnings = [f"Configuration validation failed: {e}"], []
        return ConfigValidationResult(valid=not errors, errors=errors, warnings=warnings)

    async def validate(self, force_refresh: bool = False) -> ConfigValidationResult:
        """Full validation including the SendGrid probe, cached for the TTL."""
        now = self._clock()
        if (
            not force_refresh
            and self._cached is not None
            and now - self._cached_at < self.cache_ttl_seconds
        ):
            return self._cached

        errors: list[str] = []
        warnings: list[str] = []
        try:
            errors, warnings = self._collect()
            # Only probe a key that is present and well-formed
            api_key = getattr(self.settings, "sendgrid_api_key", "")
            if api_key and not self.check_sendgrid_key_shape(api_key):
                errors.extend(await self._probe())
        except Exception as e:
            errors.append(f"Configuration validation failed: {e}")

        result = ConfigValidationResult(valid=not errors, errors=errors, warnings=warnings)
        self._cached = result
        self._cached_at = now
        return result

    def clear_cache(self) -> None:
        self._cached = None
        self._cached_at = 0.0

    @staticmethod
    def log_results(result: ConfigValidationResult) -> None:
        if result.valid:
            logger.info("Email configuration validation passed")
        else:
            for error in result.errors:
                logger.error("Configuration error: %s", error)
        for warning in result.warnings:
            logger.warning("Configuration warning: %s", warning)
