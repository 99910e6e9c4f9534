"""Registration service - binds a registrant to a session and issues the access token."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from database.db import db
from database.models import Registration, WebinarSession
from webinar.services.token_service import TokenService
from webinar.utils.datetime_utils import as_utc, to_db

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RegistrationError(ValueError):
    """The registration request cannot be fulfilled."""


@dataclass(frozen=True)
class RegistrationResult:
    registration_id: int
    access_token: str
    session_id: int
    scheduled_at: datetime
    created: bool


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if len(value) > 254 or not _EMAIL_RE.match(value):
        raise RegistrationError("invalid email address")
    return value


def _session_end(session: WebinarSession) -> datetime:
    return as_utc(session.scheduled_at) + timedelta(seconds=int(session.duration_seconds))


class RegistrationService:
    def __init__(self, tokens: TokenService, notifications=None):
        self.tokens = tokens
        self.notifications = notifications

    async def _find_existing(self, webinar_id: str, email: str) -> Optional[Registration]:
        async with db.session() as s:
            result = await s.execute(
                select(Registration).where(Registration.webinar_id == webinar_id, Registration.email == email)
            )
            return result.scalar_one_or_none()

    async def pick_session(self, webinar_id: str, now: datetime, session_id: Optional[int] = None) -> WebinarSession:
        """
        Session a new registrant is bound to.

        An explicit `session_id` must belong to the webinar and not be over.
        Otherwise the earliest session that has not started yet, falling back
        to one that is still running.
        """
        now = as_utc(now)
        async with db.session() as s:
            if session_id is not None:
                session = await s.get(WebinarSession, int(session_id))
                if session is None or session.webinar_id != webinar_id:
                    raise RegistrationError("unknown session")
                if _session_end(session) <= now:
                    raise RegistrationError("session is already over")
                return session

            result = await s.execute(
                select(WebinarSession)
                .where(WebinarSession.webinar_id == webinar_id, WebinarSession.scheduled_at >= to_db(now))
                .order_by(WebinarSession.scheduled_at.asc(), WebinarSession.id.asc())
                .limit(1)
            )
            session = result.scalar_one_or_none()
            if session is not None:
                return session

            result = await s.execute(
                select(WebinarSession)
                .where(WebinarSession.webinar_id == webinar_id, WebinarSession.scheduled_at < to_db(now))
                .order_by(WebinarSession.scheduled_at.desc(), WebinarSession.id.desc())
                .limit(1)
            )
            session = result.scalar_one_or_none()
            if session is not None and _session_end(session) > now:
                return session

        raise RegistrationError("no upcoming session for this webinar")

    async def register(
        self,
        webinar_id: str,
        email: str,
        now: datetime,
        *,
        first_name: Optional[str] = None,
        session_id: Optional[int] = None,
    ) -> RegistrationResult:
        """
        Register `email` for `webinar_id`.

        Idempotent per (webinar, email): a repeat signup returns the existing
        registration and its token, regardless of `session_id`.
        """
        webinar_id = str(webinar_id or "").strip()
        if not webinar_id:
            raise RegistrationError("webinar_id is required")
        email = normalize_email(email)
        first_name = (first_name or "").strip()[:100] or None

        registration = await self._find_existing(webinar_id, email)
        created = False
        if registration is None:
            session = await self.pick_session(webinar_id, now, session_id)
            async with db.session() as s:
                row = Registration(
                    webinar_id=webinar_id,
                    session_id=int(session.id),
                    email=email,
                    first_name=first_name,
                    access_token=self.tokens.generate(),
                    max_video_position=0.0,
                    registered_at=to_db(now),
                    attended_at=None,
                    completed_at=None,
                )
                s.add(row)
                try:
                    await s.flush()
                    created = True
                except IntegrityError:
                    # Another signup for the same email won the insert; re-read it below.
                    await s.rollback()
            if created:
                registration = row
            else:
                registration = await self._find_existing(webinar_id, email)
                if registration is None:
                    raise RuntimeError(f"registration for {webinar_id} could not be created")

        async with db.session() as s:
            session = await s.get(WebinarSession, int(registration.session_id))

        if created:
            logger.info(f"Registered {registration.id} for webinar {webinar_id} session {session.id}")

        if self.notifications is not None:
            try:
                await self.notifications.enqueue_for_registration(registration, session, now)
            except Exception as e:
                logger.error(f"Failed to enqueue notifications for registration {registration.id}: {e}", exc_info=True)

        return RegistrationResult(
            registration_id=int(registration.id),
            access_token=str(registration.access_token),
            session_id=int(session.id),
            scheduled_at=as_utc(session.scheduled_at),
            created=created,
        )
