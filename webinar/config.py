"""Configuration loader for the webinar engine with validation."""
import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

from database.models import NotificationTrigger

load_dotenv()


def _parse_triggers(raw: str | None) -> tuple[NotificationTrigger, ...]:
    if not raw or not raw.strip():
        return tuple(NotificationTrigger)
    out: list[NotificationTrigger] = []
    for part in raw.split(","):
        name = part.strip().upper()
        if not name:
            continue
        try:
            trigger = NotificationTrigger(name)
        except ValueError as e:
            raise ValueError(f"unknown notification trigger: {name}") from e
        if trigger not in out:
            out.append(trigger)
    return tuple(out)


@dataclass
class Config:
    """
    Engine configuration from environment variables.

    All settings are validated on load to fail fast if misconfigured.
    """

    # Shared secret for the periodic trigger endpoints
    cron_secret: str

    # External send service
    notification_send_url: str = ""
    notification_send_api_key: str = ""
    notification_timeout_seconds: float = 10.0

    # Notification retry policy
    notification_max_attempts: int = 5
    notification_retry_base_seconds: int = 60
    notification_retry_max_seconds: int = 3600
    drain_batch_size: int = 100
    job_lease_seconds: int = 300
    enabled_triggers: tuple[NotificationTrigger, ...] = field(default_factory=lambda: tuple(NotificationTrigger))

    # Trigger timing
    reminder_minutes_before: int = 30
    missed_grace_minutes: int = 24 * 60

    # Access
    early_access_minutes: int = 5
    completion_threshold_percent: int = 90

    # Session generation
    max_sessions_per_webinar: int = 5000

    # Links in outgoing notifications
    public_base_url: str = "http://localhost:8000"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.cron_secret:
            raise ValueError("cron_secret must not be empty")

        if self.notification_timeout_seconds <= 0:
            raise ValueError("notification_timeout_seconds must be positive")

        if self.notification_max_attempts < 1:
            raise ValueError("notification_max_attempts must be at least 1")

        if self.notification_retry_base_seconds < 1:
            raise ValueError("notification_retry_base_seconds must be at least 1")

        if self.notification_retry_max_seconds < self.notification_retry_base_seconds:
            raise ValueError("notification_retry_max_seconds must be >= notification_retry_base_seconds")

        if self.drain_batch_size < 1:
            raise ValueError("drain_batch_size must be at least 1")

        if self.job_lease_seconds < 1:
            raise ValueError("job_lease_seconds must be at least 1")

        if self.reminder_minutes_before < 0:
            raise ValueError("reminder_minutes_before must be >= 0")

        if self.missed_grace_minutes < 0:
            raise ValueError("missed_grace_minutes must be >= 0")

        if self.early_access_minutes < 0:
            raise ValueError("early_access_minutes must be >= 0")

        if not 1 <= self.completion_threshold_percent <= 100:
            raise ValueError("completion_threshold_percent must be between 1 and 100")

        if self.max_sessions_per_webinar < 1:
            raise ValueError("max_sessions_per_webinar must be at least 1")

    @classmethod
    def from_env(cls) -> "Config":
        """
        Load configuration from environment variables.

        Raises:
            RuntimeError: If required environment variables are missing
            ValueError: If configuration values are invalid
        """
        cron_secret = os.getenv("CRON_SECRET")
        if not cron_secret:
            raise RuntimeError("CRON_SECRET environment variable is required")

        return cls(
            cron_secret=cron_secret,
            notification_send_url=os.getenv("NOTIFICATION_SEND_URL", ""),
            notification_send_api_key=os.getenv("NOTIFICATION_SEND_API_KEY", ""),
            notification_timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10")),
            notification_max_attempts=int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5")),
            notification_retry_base_seconds=int(os.getenv("NOTIFICATION_RETRY_BASE_SECONDS", "60")),
            notification_retry_max_seconds=int(os.getenv("NOTIFICATION_RETRY_MAX_SECONDS", "3600")),
            drain_batch_size=int(os.getenv("NOTIFICATION_BATCH_SIZE", "100")),
            job_lease_seconds=int(os.getenv("NOTIFICATION_LEASE_SECONDS", "300")),
            enabled_triggers=_parse_triggers(os.getenv("NOTIFICATION_TRIGGERS")),
            reminder_minutes_before=int(os.getenv("REMINDER_MINUTES_BEFORE", "30")),
            missed_grace_minutes=int(os.getenv("MISSED_GRACE_MINUTES", str(24 * 60))),
            early_access_minutes=int(os.getenv("EARLY_ACCESS_MINUTES", "5")),
            completion_threshold_percent=int(os.getenv("COMPLETION_THRESHOLD_PERCENT", "90")),
            max_sessions_per_webinar=int(os.getenv("MAX_SESSIONS_PER_WEBINAR", "5000")),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        )

    @property
    def missed_grace_seconds(self) -> int:
        return self.missed_grace_minutes * 60

    @property
    def delivery_enabled(self) -> bool:
        """Check if an external send service is configured."""
        return bool(self.notification_send_url)
