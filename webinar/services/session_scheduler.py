"""Session scheduler - materializes WebinarSession rows from schedule configs (idempotent)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select

from database.db import db, insert_if_absent
from database.models import ScheduleConfig, ScheduleMode, SessionType, WebinarSession
from webinar.utils.datetime_utils import as_utc, to_db

logger = logging.getLogger(__name__)


class ScheduleConfigError(ValueError):
    """A webinar's schedule config cannot be expanded into sessions."""


@dataclass(frozen=True)
class ScheduleRule:
    """Validated, storage-independent view of a ScheduleConfig."""

    webinar_id: str
    mode: ScheduleMode
    anchor_time: datetime
    horizon: timedelta
    duration_seconds: int
    session_type: SessionType
    tz: ZoneInfo
    interval: timedelta | None = None
    blackout_dates: frozenset[date] = frozenset()

    @classmethod
    def from_model(cls, config: ScheduleConfig) -> "ScheduleRule":
        webinar_id = str(config.webinar_id or "").strip()
        if not webinar_id:
            raise ScheduleConfigError("webinar_id is empty")

        try:
            mode = ScheduleMode(config.mode)
        except ValueError as e:
            raise ScheduleConfigError(f"unknown schedule mode: {config.mode!r}") from e

        if config.anchor_time is None:
            raise ScheduleConfigError("anchor_time is required")

        horizon_days = int(config.horizon_days or 0)
        if horizon_days <= 0:
            raise ScheduleConfigError("horizon_days must be positive")

        duration_seconds = int(config.duration_seconds or 0)
        if duration_seconds <= 0:
            raise ScheduleConfigError("duration_seconds must be positive")

        try:
            tz = ZoneInfo(str(config.timezone or "UTC"))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ScheduleConfigError(f"unknown timezone: {config.timezone!r}") from e

        interval = None
        if mode == ScheduleMode.INTERVAL:
            interval_minutes = int(config.interval_minutes or 0)
            if interval_minutes <= 0:
                raise ScheduleConfigError("interval_minutes must be positive for INTERVAL schedules")
            interval = timedelta(minutes=interval_minutes)

        if config.session_type is not None:
            session_type = SessionType(config.session_type)
        else:
            session_type = SessionType.LIVE if mode == ScheduleMode.FIXED else SessionType.EVERGREEN

        return cls(
            webinar_id=webinar_id,
            mode=mode,
            anchor_time=as_utc(config.anchor_time),
            horizon=timedelta(days=horizon_days),
            duration_seconds=duration_seconds,
            session_type=session_type,
            tz=tz,
            interval=interval,
            blackout_dates=_parse_blackout_dates(config.blackout_dates),
        )

    def session_times(self, now: datetime, *, max_sessions: int) -> list[datetime]:
        """
        Session start instants this rule requires at `now`.

        FIXED: the anchor, unless that session is already over.
        INTERVAL: every `anchor + k * interval` inside `[now, now + horizon]`.
        The bounds for `k` are computed directly, so cost depends only on the
        number of sessions in the horizon, not on how long the series has run.
        """
        now = as_utc(now)

        if self.mode == ScheduleMode.FIXED:
            if self.anchor_time + timedelta(seconds=self.duration_seconds) <= now:
                return []
            return [self.anchor_time]

        step = self.interval
        window_end = now + self.horizon
        # ceil((now - anchor) / step) and floor((window_end - anchor) / step), exact integer math.
        k_min = -((self.anchor_time - now) // step)
        k_max = (window_end - self.anchor_time) // step
        count = k_max - k_min + 1
        if count <= 0:
            return []
        if count > max_sessions:
            raise ScheduleConfigError(
                f"schedule would create {count} sessions in the horizon (max {max_sessions})"
            )

        times = [self.anchor_time + k * step for k in range(k_min, k_max + 1)]
        if self.blackout_dates:
            times = [t for t in times if t.astimezone(self.tz).date() not in self.blackout_dates]
        return times


def _parse_blackout_dates(raw) -> frozenset[date]:
    if raw is None or raw == "":
        return frozenset()
    values = raw
    if isinstance(raw, str):
        try:
            values = json.loads(raw)
        except ValueError as e:
            raise ScheduleConfigError("blackout_dates is not valid JSON") from e
    if not isinstance(values, list):
        raise ScheduleConfigError("blackout_dates must be a list of YYYY-MM-DD strings")
    out: set[date] = set()
    for value in values:
        try:
            out.add(date.fromisoformat(str(value)))
        except ValueError as e:
            raise ScheduleConfigError(f"invalid blackout date: {value!r}") from e
    return frozenset(out)


@dataclass(frozen=True)
class EnsureResult:
    created: int
    existing: int


@dataclass(frozen=True)
class WebinarGenerationError:
    webinar_id: str
    error: str


@dataclass
class GenerationReport:
    processed: int = 0
    created: int = 0
    existing: int = 0
    errors: list[WebinarGenerationError] = field(default_factory=list)


class SessionScheduler:
    def __init__(self, *, max_sessions_per_webinar: int = 5000):
        self.max_sessions_per_webinar = int(max_sessions_per_webinar)

    async def ensure_sessions_for_webinar(self, config: ScheduleConfig, now: datetime) -> EnsureResult:
        """
        Make sure every session the config requires at `now` exists.

        Safe to re-run and to run concurrently: rows are inserted with
        ON CONFLICT DO NOTHING on (webinar_id, scheduled_at).
        """
        rule = ScheduleRule.from_model(config)
        times = rule.session_times(now, max_sessions=self.max_sessions_per_webinar)
        if not times:
            return EnsureResult(created=0, existing=0)

        created_at = to_db(now)
        rows = [
            {
                "webinar_id": rule.webinar_id,
                "scheduled_at": to_db(t),
                "session_type": rule.session_type,
                "duration_seconds": rule.duration_seconds,
                "created_at": created_at,
            }
            for t in times
        ]
        async with db.session() as session:
            created = await insert_if_absent(
                session,
                WebinarSession,
                rows,
                conflict_columns=["webinar_id", "scheduled_at"],
            )

        return EnsureResult(created=created, existing=len(rows) - created)

    async def generate_all(self, now: datetime) -> GenerationReport:
        """
        Run generation for every active webinar.

        A failure for one webinar (malformed config, DB error) is logged and
        reported; it never aborts the others.
        """
        async with db.session() as session:
            result = await session.execute(
                select(ScheduleConfig)
                .where(ScheduleConfig.is_active.is_(True))
                .order_by(ScheduleConfig.webinar_id.asc())
            )
            configs = list(result.scalars().all())

        report = GenerationReport()
        for config in configs:
            webinar_id = str(config.webinar_id)
            try:
                ensured = await self.ensure_sessions_for_webinar(config, now)
            except Exception as e:
                logger.error(f"Session generation failed for webinar {webinar_id}: {e}", exc_info=True)
                report.errors.append(WebinarGenerationError(webinar_id=webinar_id, error=str(e)))
                continue
            report.processed += 1
            report.created += ensured.created
            report.existing += ensured.existing

        logger.info(
            "Session generation: processed=%s created=%s existing=%s errors=%s",
            report.processed,
            report.created,
            report.existing,
            len(report.errors),
        )
        return report

    async def list_upcoming_sessions(self, webinar_id: str, now: datetime, *, limit: int = 10) -> list[WebinarSession]:
        limit = max(1, min(int(limit or 10), 100))
        async with db.session() as session:
            result = await session.execute(
                select(WebinarSession)
                .where(WebinarSession.webinar_id == str(webinar_id), WebinarSession.scheduled_at >= to_db(now))
                .order_by(WebinarSession.scheduled_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())
