"""Service container - wires configuration, clock, delivery client, and domain services."""
import logging
from dataclasses import dataclass
from typing import Optional

from webinar.config import Config
from webinar.services.chat_feed import ChatFeed
from webinar.services.notification_sender import (
    HttpNotificationSender,
    LoggingNotificationSender,
    NotificationSender,
)
from webinar.services.notification_service import AlertHook, NotificationScheduler
from webinar.services.registration_service import RegistrationService
from webinar.services.session_scheduler import SessionScheduler
from webinar.services.token_service import TokenService
from webinar.services.viewer_service import ViewerService
from webinar.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Simple dependency container to share services across request handlers."""

    config: Config
    clock: Clock
    sender: NotificationSender
    token_service: TokenService
    session_scheduler: SessionScheduler
    notification_scheduler: NotificationScheduler
    registration_service: RegistrationService
    viewer_service: ViewerService
    chat_feed: ChatFeed

    @classmethod
    async def create(
        cls,
        config: Config,
        *,
        clock: Optional[Clock] = None,
        sender: Optional[NotificationSender] = None,
        alert_hook: Optional[AlertHook] = None,
    ) -> "ServiceContainer":
        """
        Build the service container with all dependencies.

        Args:
            config: Loaded Config instance
            clock: Time source (system clock unless a test injects one)
            sender: Delivery client (HTTP when a send URL is configured, else log-only)
            alert_hook: Called for notifications that failed permanently
        """
        logger.info("Building service container...")

        clock = clock or SystemClock()
        if sender is None:
            if config.delivery_enabled:
                sender = HttpNotificationSender(
                    config.notification_send_url,
                    config.notification_send_api_key,
                    timeout_seconds=config.notification_timeout_seconds,
                )
            else:
                logger.warning("NOTIFICATION_SEND_URL not set; notifications will only be logged")
                sender = LoggingNotificationSender()

        token_service = TokenService()
        session_scheduler = SessionScheduler(max_sessions_per_webinar=config.max_sessions_per_webinar)
        notification_scheduler = NotificationScheduler.from_config(config, sender, alert_hook=alert_hook)
        registration_service = RegistrationService(token_service, notifications=notification_scheduler)
        viewer_service = ViewerService(
            notification_scheduler,
            missed_grace_seconds=config.missed_grace_seconds,
            early_access_seconds=config.early_access_minutes * 60,
            completion_threshold_percent=config.completion_threshold_percent,
        )
        chat_feed = ChatFeed()

        logger.info("Service container ready")

        return cls(
            config=config,
            clock=clock,
            sender=sender,
            token_service=token_service,
            session_scheduler=session_scheduler,
            notification_scheduler=notification_scheduler,
            registration_service=registration_service,
            viewer_service=viewer_service,
            chat_feed=chat_feed,
        )

    async def cleanup(self):
        """Release external resources."""
        try:
            await self.sender.close()
        except Exception as e:
            logger.warning(f"Failed to close notification sender: {e}")
        logger.info("Service container cleanup complete")
