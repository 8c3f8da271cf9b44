"""
Service container - every long-lived collaborator, built once per process.

The lifespan builds the container and stores it on app.state; endpoints
receive it through the get_services dependency. Tests build their own with
fakes passed in.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from paynotify.services.config_validator import ConfigValidator
from paynotify.services.dispatcher import NotificationDispatcher
from paynotify.services.email_channel import SendGridChannel
from paynotify.services.email_monitor import EmailMonitor
from paynotify.services.event_router import EventRouter
from paynotify.services.metrics_store import build_metrics_store
from paynotify.services.notification_queue import NotificationQueue
from paynotify.services.reconciler import RecordReconciler
from paynotify.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: object
    gateway: StripeGateway
    channel: SendGridChannel
    monitor: EmailMonitor
    dispatcher: NotificationDispatcher
    queue: NotificationQueue
    reconciler: RecordReconciler
    router: EventRouter
    validator: ConfigValidator
    session_factory: object


def build_services(
    settings,
    session_factory=None,
    gateway: Optional[StripeGateway] = None,
    channel: Optional[SendGridChannel] = None,
    monitor: Optional[EmailMonitor] = None,
) -> Services:
    if session_factory is None:
        from paynotify.database import get_session_factory
        session_factory = get_session_factory()

    gateway = gateway or StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
    channel = channel or SendGridChannel(
        settings.sendgrid_api_key, timeout_seconds=settings.email_send_timeout_seconds,
    )
    monitor = monitor or EmailMonitor(
        daily_limit=settings.email_daily_limit,
        monthly_limit=settings.email_monthly_limit,
        max_log_entries=settings.email_log_max_entries,
        store=build_metrics_store(settings.metrics_backend, settings.redis_url),
    )
    dispatcher = NotificationDispatcher(channel, monitor, settings.from_email, settings.from_name)
    queue = NotificationQueue(dispatcher, max_size=settings.notification_queue_size)
    reconciler = RecordReconciler(session_factory, gateway)
    router = EventRouter(reconciler, queue, settings.admin_email, settings.from_name)
    validator = ConfigValidator(
        settings, channel, cache_ttl_seconds=settings.config_validation_ttl_seconds,
    )

    return Services(
        settings=settings,
        gateway=gateway,
        channel=channel,
        monitor=monitor,
        dispatcher=dispatcher,
        queue=queue,
        reconciler=reconciler,
        router=router,
        validator=validator,
        session_factory=session_factory,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the container built at startup."""
    return request.app.state.services
