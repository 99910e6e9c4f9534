"""
Shared fixtures: a throwaway SQLite database per test, a frozen clock,
an in-memory notification sender and a ready service container.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from database.db import db
from database.models import (
    ChatScriptEntry,
    Registration,
    ScheduleConfig,
    ScheduleMode,
    SessionType,
    WebinarSession,
)
from webinar.config import Config
from webinar.container import ServiceContainer
from webinar.utils.clock import FrozenClock
from webinar.utils.datetime_utils import to_db

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
CRON_SECRET = "test-cron-secret"


class RecordingSender:
    """NotificationSender that keeps messages in memory."""

    def __init__(self):
        self.messages = []
        self.error: Exception | None = None
        self.fail_emails: set[str] = set()
        self.delay_seconds: float = 0.0
        self.closed = False

    async def send(self, message) -> None:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        if message.email in self.fail_emails:
            raise RuntimeError(f"mailbox unavailable: {message.email}")
        self.messages.append(message)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
async def database(tmp_path):
    db.database_url = f"sqlite+aiosqlite:///{tmp_path / 'webinar.db'}"
    await db.connect()
    await db.create_tables()
    yield db
    await db.disconnect()


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def config():
    return Config(
        cron_secret=CRON_SECRET,
        notification_max_attempts=3,
        notification_retry_base_seconds=60,
        notification_retry_max_seconds=600,
        notification_timeout_seconds=0.2,
    )


@pytest.fixture
async def container(database, config, clock, sender):
    services = await ServiceContainer.create(config, clock=clock, sender=sender)
    yield services
    await services.cleanup()


async def add_schedule_config(webinar_id="webinar-1", **overrides) -> ScheduleConfig:
    values = dict(
        webinar_id=webinar_id,
        mode=ScheduleMode.INTERVAL,
        interval_minutes=120,
        anchor_time=to_db(T0),
        timezone="UTC",
        horizon_days=1,
        duration_seconds=3600,
        replay_enabled=True,
        blackout_dates="[]",
        is_active=True,
    )
    values.update(overrides)
    if isinstance(values.get("anchor_time"), datetime):
        values["anchor_time"] = to_db(values["anchor_time"])
    if isinstance(values.get("blackout_dates"), list):
        values["blackout_dates"] = json.dumps(values["blackout_dates"])
    async with db.session() as s:
        s.add(ScheduleConfig(**values))
    async with db.session() as s:
        return await s.get(ScheduleConfig, webinar_id)


async def add_session(
    webinar_id="webinar-1",
    scheduled_at=T0,
    session_type=SessionType.EVERGREEN,
    duration_seconds=3600,
) -> WebinarSession:
    session = WebinarSession(
        webinar_id=webinar_id,
        scheduled_at=to_db(scheduled_at),
        session_type=session_type,
        duration_seconds=duration_seconds,
    )
    async with db.session() as s:
        s.add(session)
        await s.flush()
        session_id = session.id
    async with db.session() as s:
        return await s.get(WebinarSession, session_id)


async def add_registration(
    session: WebinarSession,
    email="viewer@example.com",
    token="token-viewer",
    registered_at=None,
    **overrides,
) -> Registration:
    registration = Registration(
        webinar_id=session.webinar_id,
        session_id=session.id,
        email=email,
        first_name="Ada",
        access_token=token,
        max_video_position=0.0,
        registered_at=to_db(registered_at or (as_aware(session.scheduled_at) - timedelta(hours=1))),
        **overrides,
    )
    async with db.session() as s:
        s.add(registration)
        await s.flush()
        registration_id = registration.id
    return await get_registration(registration_id)


async def add_chat_entries(webinar_id, entries) -> None:
    async with db.session() as s:
        for appears_at, sender_name, message in entries:
            s.add(
                ChatScriptEntry(
                    webinar_id=webinar_id,
                    sender_name=sender_name,
                    message=message,
                    appears_at=appears_at,
                    is_from_moderator=sender_name == "Host",
                )
            )


async def get_registration(registration_id) -> Registration:
    async with db.session() as s:
        return await s.get(Registration, registration_id)


def as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
