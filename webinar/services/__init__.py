"""Services package - business logic layer."""
from webinar.services.access_state import AccessDecision, AccessPhase, AccessPolicy, evaluate_access
from webinar.services.chat_feed import ChatEntry, ChatFeed
from webinar.services.notification_sender import (
    HttpNotificationSender,
    LoggingNotificationSender,
    NotificationMessage,
    NotificationSender,
)
from webinar.services.notification_service import DrainResult, NotificationScheduler
from webinar.services.registration_service import RegistrationError, RegistrationService
from webinar.services.session_scheduler import ScheduleConfigError, SessionScheduler
from webinar.services.token_service import TokenService
from webinar.services.viewer_service import ProgressResult, ViewerService

__all__ = [
    "AccessDecision",
    "AccessPhase",
    "AccessPolicy",
    "evaluate_access",
    "ChatEntry",
    "ChatFeed",
    "HttpNotificationSender",
    "LoggingNotificationSender",
    "NotificationMessage",
    "NotificationSender",
    "DrainResult",
    "NotificationScheduler",
    "RegistrationError",
    "RegistrationService",
    "ScheduleConfigError",
    "SessionScheduler",
    "TokenService",
    "ProgressResult",
    "ViewerService",
]
