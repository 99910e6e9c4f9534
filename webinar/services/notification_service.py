"""Notification scheduler - idempotent trigger jobs plus a leased drain loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, Optional, Union
from urllib.parse import quote

from sqlalchemy import and_, or_, select, update

from database.db import db, insert_if_absent
from database.models import JobStatus, NotificationJob, NotificationTrigger, Registration, WebinarSession
from webinar.services.notification_sender import NotificationMessage, NotificationSender
from webinar.utils.datetime_utils import as_utc, isoformat_utc, to_db

logger = logging.getLogger(__name__)

# Sessions started earlier than this are not revisited by the backfill.
BACKFILL_LOOKBACK = timedelta(days=2)

MAX_ERROR_LENGTH = 4000


@dataclass(frozen=True)
class DrainResult:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class TerminalFailure:
    job_id: int
    registration_id: int
    trigger: NotificationTrigger
    attempts: int
    error: str


AlertHook = Callable[[TerminalFailure], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class _JobContext:
    job_id: int
    trigger: NotificationTrigger
    attempts: int
    registration: Optional[Registration]
    session: Optional[WebinarSession]


class NotificationScheduler:
    def __init__(
        self,
        sender: NotificationSender,
        *,
        enabled_triggers: Iterable[NotificationTrigger] = tuple(NotificationTrigger),
        reminder_minutes_before: int = 30,
        missed_grace_minutes: int = 24 * 60,
        max_attempts: int = 5,
        retry_base_seconds: int = 60,
        retry_max_seconds: int = 3600,
        batch_size: int = 100,
        lease_seconds: int = 300,
        timeout_seconds: float = 10.0,
        public_base_url: str = "http://localhost:8000",
        alert_hook: Optional[AlertHook] = None,
        worker_id: Optional[str] = None,
    ):
        self.sender = sender
        self.enabled_triggers = frozenset(NotificationTrigger(t) for t in enabled_triggers)
        self.reminder_before = timedelta(minutes=int(reminder_minutes_before))
        self.missed_grace = timedelta(minutes=int(missed_grace_minutes))
        self.max_attempts = int(max_attempts)
        self.retry_base_seconds = int(retry_base_seconds)
        self.retry_max_seconds = int(retry_max_seconds)
        self.batch_size = int(batch_size)
        self.lease_seconds = int(lease_seconds)
        self.timeout_seconds = float(timeout_seconds)
        self.public_base_url = public_base_url.rstrip("/")
        self.alert_hook = alert_hook
        self.worker_id = worker_id or f"pid:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    @classmethod
    def from_config(cls, config, sender: NotificationSender, *, alert_hook: Optional[AlertHook] = None):
        return cls(
            sender,
            enabled_triggers=config.enabled_triggers,
            reminder_minutes_before=config.reminder_minutes_before,
            missed_grace_minutes=config.missed_grace_minutes,
            max_attempts=config.notification_max_attempts,
            retry_base_seconds=config.notification_retry_base_seconds,
            retry_max_seconds=config.notification_retry_max_seconds,
            batch_size=config.drain_batch_size,
            lease_seconds=config.job_lease_seconds,
            timeout_seconds=config.notification_timeout_seconds,
            public_base_url=config.public_base_url,
            alert_hook=alert_hook,
        )

    # ------------------------------------------------------------------ enqueue

    def due_times(self, registration: Registration, session: WebinarSession) -> dict[NotificationTrigger, datetime]:
        """Due instant per trigger for a registration (COMPLETED is enqueued on completion instead)."""
        start = as_utc(session.scheduled_at)
        end = start + timedelta(seconds=int(session.duration_seconds))
        due = {
            NotificationTrigger.REGISTERED: as_utc(registration.registered_at),
            NotificationTrigger.REMINDER_BEFORE: start - self.reminder_before,
            NotificationTrigger.STARTED: start,
            NotificationTrigger.NO_SHOW: end + self.missed_grace,
        }
        return {trigger: at for trigger, at in due.items() if trigger in self.enabled_triggers}

    def _job_rows(self, registration: Registration, due: dict[NotificationTrigger, datetime], now: datetime) -> list[dict]:
        stamp = to_db(now)
        return [
            {
                "registration_id": int(registration.id),
                "trigger": trigger,
                "due_at": to_db(at),
                "status": JobStatus.PENDING,
                "attempts": 0,
                "created_at": stamp,
                "updated_at": stamp,
            }
            for trigger, at in due.items()
        ]

    async def enqueue_for_registration(self, registration: Registration, session: WebinarSession, now: datetime) -> int:
        """
        Create the trigger jobs for one registration.

        Re-running never duplicates: rows are keyed on (registration_id, trigger).
        Returns the number of jobs actually created.
        """
        rows = self._job_rows(registration, self.due_times(registration, session), now)
        async with db.session() as s:
            return await insert_if_absent(s, NotificationJob, rows, conflict_columns=["registration_id", "trigger"])

    async def enqueue_completed(self, registration_id: int, now: datetime) -> int:
        if NotificationTrigger.COMPLETED not in self.enabled_triggers:
            return 0
        async with db.session() as s:
            registration = await s.get(Registration, int(registration_id))
            if registration is None:
                return 0
            session = await s.get(WebinarSession, int(registration.session_id))
            if session is None:
                return 0
            end = as_utc(session.scheduled_at) + timedelta(seconds=int(session.duration_seconds))
            due = {NotificationTrigger.COMPLETED: max(as_utc(now), end)}
            rows = self._job_rows(registration, due, now)
            return await insert_if_absent(s, NotificationJob, rows, conflict_columns=["registration_id", "trigger"])

    async def enqueue_for_upcoming_sessions(self, now: datetime) -> int:
        """Backfill jobs for every registration whose session has not finished yet."""
        now = as_utc(now)
        created = 0
        last_id = 0
        while True:
            async with db.session() as s:
                result = await s.execute(
                    select(Registration, WebinarSession)
                    .join(WebinarSession, Registration.session_id == WebinarSession.id)
                    .where(
                        Registration.id > last_id,
                        WebinarSession.scheduled_at >= to_db(now - BACKFILL_LOOKBACK),
                    )
                    .order_by(Registration.id.asc())
                    .limit(self.batch_size)
                )
                page = result.all()
                if not page:
                    break

                rows: list[dict] = []
                for registration, session in page:
                    end = as_utc(session.scheduled_at) + timedelta(seconds=int(session.duration_seconds))
                    if end <= now:
                        continue
                    rows.extend(self._job_rows(registration, self.due_times(registration, session), now))

                created += await insert_if_absent(s, NotificationJob, rows, conflict_columns=["registration_id", "trigger"])
                last_id = int(page[-1][0].id)

        if created:
            logger.info(f"Notification backfill created {created} job(s)")
        return created

    # -------------------------------------------------------------------- drain

    def retry_delay_seconds(self, attempts: int) -> int:
        """Exponential backoff after the `attempts`-th failed delivery."""
        exponent = max(0, int(attempts) - 1)
        delay = self.retry_base_seconds * (2 ** min(exponent, 32))
        return min(delay, self.retry_max_seconds)

    async def process_due_jobs(self, now: datetime) -> DrainResult:
        """
        Deliver every due job once.

        Each job is claimed with a compare-and-set lease before delivery, so
        overlapping drains never send the same job twice. A failing job is
        recorded and the batch moves on.
        """
        now = as_utc(now)
        sent = failed = skipped = 0

        for job_id in await self._due_job_ids(now):
            if not await self._claim(job_id, now):
                continue
            try:
                outcome = await self._process_claimed(job_id, now)
            except Exception as e:
                logger.error(f"Notification job {job_id} crashed: {e}", exc_info=True)
                continue
            if outcome == JobStatus.SENT:
                sent += 1
            elif outcome == JobStatus.FAILED:
                failed += 1
            elif outcome == JobStatus.SKIPPED:
                skipped += 1

        if sent or failed or skipped:
            logger.info(f"Notification drain: sent={sent} failed={failed} skipped={skipped}")
        return DrainResult(sent=sent, failed=failed, skipped=skipped)

    def _stale_cutoff(self, now: datetime):
        return to_db(now - timedelta(seconds=self.lease_seconds))

    def _lease_free(self, now: datetime):
        return or_(NotificationJob.locked_at.is_(None), NotificationJob.locked_at < self._stale_cutoff(now))

    def _is_due(self, now: datetime):
        stamp = to_db(now)
        return or_(
            and_(NotificationJob.status == JobStatus.PENDING, NotificationJob.due_at <= stamp),
            and_(
                NotificationJob.status == JobStatus.FAILED,
                NotificationJob.attempts < self.max_attempts,
                NotificationJob.retry_at.is_not(None),
                NotificationJob.retry_at <= stamp,
            ),
        )

    async def _due_job_ids(self, now: datetime) -> list[int]:
        async with db.session() as s:
            result = await s.execute(
                select(NotificationJob.id)
                .where(self._is_due(now), self._lease_free(now))
                .order_by(NotificationJob.due_at.asc(), NotificationJob.id.asc())
                .limit(self.batch_size)
            )
            return [int(job_id) for job_id in result.scalars().all()]

    async def _claim(self, job_id: int, now: datetime) -> bool:
        # Re-check due-ness: another drain may have failed the job since it was listed.
        async with db.session() as s:
            result = await s.execute(
                update(NotificationJob)
                .where(
                    NotificationJob.id == int(job_id),
                    self._is_due(now),
                    self._lease_free(now),
                )
                .values(locked_at=to_db(now), locked_by=self.worker_id)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0) == 1

    async def _load(self, job_id: int) -> Optional[_JobContext]:
        async with db.session() as s:
            job = await s.get(NotificationJob, int(job_id))
            if job is None:
                return None
            registration = await s.get(Registration, int(job.registration_id))
            session = None
            if registration is not None:
                session = await s.get(WebinarSession, int(registration.session_id))
            return _JobContext(
                job_id=int(job.id),
                trigger=NotificationTrigger(job.trigger),
                attempts=int(job.attempts or 0),
                registration=registration,
                session=session,
            )

    def skip_reason(self, ctx: _JobContext, now: datetime) -> Optional[str]:
        """Why a claimed job should not be sent at `now` (None = send it)."""
        if ctx.registration is None:
            return "registration not found"
        if ctx.session is None:
            return "session not found"

        start = as_utc(ctx.session.scheduled_at)
        end = start + timedelta(seconds=int(ctx.session.duration_seconds))

        if ctx.trigger == NotificationTrigger.REMINDER_BEFORE and now >= start:
            return "session already started"
        if ctx.trigger == NotificationTrigger.STARTED and now >= end:
            return "session already ended"
        if ctx.trigger == NotificationTrigger.NO_SHOW and (
            ctx.registration.attended_at is not None or float(ctx.registration.max_video_position or 0) > 0
        ):
            return "registrant attended"
        if ctx.trigger == NotificationTrigger.COMPLETED and ctx.registration.completed_at is None:
            return "registrant has not completed"
        return None

    def build_message(self, ctx: _JobContext) -> NotificationMessage:
        registration = ctx.registration
        return NotificationMessage(
            job_id=ctx.job_id,
            trigger=ctx.trigger.value,
            webinar_id=str(registration.webinar_id),
            registration_id=int(registration.id),
            email=str(registration.email),
            first_name=registration.first_name,
            session_id=int(ctx.session.id),
            scheduled_at=isoformat_utc(ctx.session.scheduled_at),
            watch_url=f"{self.public_base_url}/webinar/watch?token={quote(registration.access_token)}",
        )

    async def _process_claimed(self, job_id: int, now: datetime) -> Optional[JobStatus]:
        ctx = await self._load(job_id)
        if ctx is None:
            return None

        reason = self.skip_reason(ctx, now)
        if reason is not None:
            await self._mark_skipped(job_id, now, reason)
            logger.debug(f"Skipped {ctx.trigger.value} job {job_id}: {reason}")
            return JobStatus.SKIPPED

        error: Optional[str] = None
        try:
            await asyncio.wait_for(self.sender.send(self.build_message(ctx)), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            error = f"delivery timed out after {self.timeout_seconds:g}s"
        except Exception as e:
            error = str(e) or e.__class__.__name__

        if error is None:
            await self._mark_sent(job_id, now)
            return JobStatus.SENT

        await self._mark_failed(ctx, now, error)
        return JobStatus.FAILED

    async def _mark_sent(self, job_id: int, now: datetime) -> None:
        stamp = to_db(now)
        async with db.session() as s:
            await s.execute(
                update(NotificationJob)
                .where(NotificationJob.id == int(job_id))
                .values(
                    status=JobStatus.SENT,
                    attempts=NotificationJob.attempts + 1,
                    sent_at=stamp,
                    retry_at=None,
                    last_error=None,
                    locked_at=None,
                    locked_by=None,
                    updated_at=stamp,
                )
                .execution_options(synchronize_session=False)
            )

    async def _mark_skipped(self, job_id: int, now: datetime, reason: str) -> None:
        stamp = to_db(now)
        async with db.session() as s:
            await s.execute(
                update(NotificationJob)
                .where(NotificationJob.id == int(job_id))
                .values(
                    status=JobStatus.SKIPPED,
                    retry_at=None,
                    last_error=reason,
                    locked_at=None,
                    locked_by=None,
                    updated_at=stamp,
                )
                .execution_options(synchronize_session=False)
            )

    async def _mark_failed(self, ctx: _JobContext, now: datetime, error: str) -> None:
        attempts = ctx.attempts + 1
        terminal = attempts >= self.max_attempts
        retry_at = None if terminal else to_db(now + timedelta(seconds=self.retry_delay_seconds(attempts)))
        stamp = to_db(now)

        async with db.session() as s:
            await s.execute(
                update(NotificationJob)
                .where(NotificationJob.id == ctx.job_id)
                .values(
                    status=JobStatus.FAILED,
                    attempts=attempts,
                    retry_at=retry_at,
                    last_error=error[:MAX_ERROR_LENGTH],
                    locked_at=None,
                    locked_by=None,
                    updated_at=stamp,
                )
                .execution_options(synchronize_session=False)
            )

        if not terminal:
            logger.warning(
                f"Notification job {ctx.job_id} ({ctx.trigger.value}) failed, attempt {attempts}/{self.max_attempts}: {error}"
            )
            return

        logger.error(
            f"Notification job {ctx.job_id} ({ctx.trigger.value}) failed permanently after {attempts} attempts: {error}"
        )
        await self._alert(
            TerminalFailure(
                job_id=ctx.job_id,
                registration_id=int(ctx.registration.id),
                trigger=ctx.trigger,
                attempts=attempts,
                error=error,
            )
        )

    async def _alert(self, failure: TerminalFailure) -> None:
        if self.alert_hook is None:
            return
        try:
            result = self.alert_hook(failure)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Alert hook failed for notification job {failure.job_id}: {e}", exc_info=True)
