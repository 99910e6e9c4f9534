"""Notification delivery clients (external send service)."""
import logging
from dataclasses import asdict, dataclass
from typing import Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationMessage:
    """Everything a delivery provider needs to render one message."""

    job_id: int
    trigger: str
    webinar_id: str
    registration_id: int
    email: str
    first_name: Optional[str]
    session_id: int
    scheduled_at: str  # ISO-8601 UTC
    watch_url: str

    def to_payload(self) -> dict:
        return asdict(self)


class NotificationDeliveryError(RuntimeError):
    """The send service rejected or failed a message."""


@runtime_checkable
class NotificationSender(Protocol):
    async def send(self, message: NotificationMessage) -> None:
        """Deliver one message; raise on failure."""
        ...

    async def close(self) -> None:
        ...


class HttpNotificationSender:
    """Posts messages as JSON to the configured send service."""

    def __init__(self, api_url: str, api_key: str = "", timeout_seconds: float = 10.0):
        self.api_url = api_url
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            headers=self.headers,
            timeout=httpx.Timeout(float(timeout_seconds)),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    async def close(self) -> None:
        """Close underlying HTTP resources."""
        await self._client.aclose()

    async def send(self, message: NotificationMessage) -> None:
        try:
            response = await self._client.post(self.api_url, json=message.to_payload())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationDeliveryError(
                f"send service returned HTTP {e.response.status_code} for job {message.job_id}"
            ) from e
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"send service request failed for job {message.job_id}: {e}") from e

        logger.debug(f"Delivered {message.trigger} notification for job {message.job_id}")


class LoggingNotificationSender:
    """Used when no send service is configured: records the message in the log only."""

    async def close(self) -> None:
        return None

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "Notification (log only): job=%s trigger=%s registration=%s email=%s",
            message.job_id,
            message.trigger,
            message.registration_id,
            message.email,
        )
