"""Viewer service - access decisions, attendance and playback progress for a registration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from database.db import db
from database.models import Registration, ScheduleConfig, WebinarSession
from webinar.services.access_state import (
    AccessDecision,
    AccessPolicy,
    SessionTiming,
    ViewerProgress,
    accepts_position,
    evaluate_access,
)
from webinar.utils.datetime_utils import to_db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressResult:
    accepted: bool
    max_video_position: float


@dataclass(frozen=True)
class ViewerContext:
    registration: Registration
    session: WebinarSession
    timing: SessionTiming
    policy: AccessPolicy


class ViewerService:
    def __init__(
        self,
        notifications=None,
        *,
        missed_grace_seconds: int = 24 * 3600,
        early_access_seconds: int = 5 * 60,
        completion_threshold_percent: int = 90,
    ):
        self.notifications = notifications
        self.missed_grace_seconds = int(missed_grace_seconds)
        self.early_access_seconds = int(early_access_seconds)
        self.completion_threshold_percent = int(completion_threshold_percent)

    async def load_context(self, registration_id: int) -> Optional[ViewerContext]:
        async with db.session() as s:
            registration = await s.get(Registration, int(registration_id))
            if registration is None:
                return None
            session = await s.get(WebinarSession, int(registration.session_id))
            if session is None:
                return None
            result = await s.execute(
                select(ScheduleConfig.replay_enabled).where(ScheduleConfig.webinar_id == registration.webinar_id)
            )
            replay_enabled = result.scalar_one_or_none()

        policy = AccessPolicy(
            replay_enabled=True if replay_enabled is None else bool(replay_enabled),
            missed_grace_seconds=self.missed_grace_seconds,
            early_access_seconds=self.early_access_seconds,
        )
        return ViewerContext(
            registration=registration,
            session=session,
            timing=SessionTiming.from_model(session),
            policy=policy,
        )

    def decide(self, ctx: ViewerContext, now: datetime) -> AccessDecision:
        return evaluate_access(ctx.timing, ViewerProgress.from_model(ctx.registration), now, ctx.policy)

    async def access_state(self, ctx: ViewerContext, now: datetime) -> AccessDecision:
        """Evaluate access and stamp attendance when the viewer is being served video."""
        decision = self.decide(ctx, now)
        if decision.may_watch and ctx.registration.attended_at is None:
            await self.mark_attended(int(ctx.registration.id), now)
        return decision

    async def mark_attended(self, registration_id: int, now: datetime) -> bool:
        """Set `attended_at` once; later calls keep the first timestamp."""
        async with db.session() as s:
            result = await s.execute(
                update(Registration)
                .where(Registration.id == int(registration_id), Registration.attended_at.is_(None))
                .values(attended_at=to_db(now))
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0) == 1

    async def record_progress(self, registration_id: int, position_seconds: float, now: datetime) -> ProgressResult:
        """
        Raise the registration's max_video_position to `position_seconds`.

        The update is a conditional `WHERE max_video_position < :position`, so
        concurrent heartbeats can only move the value forward. Positions the
        viewer could not legitimately have reached are ignored.
        """
        ctx = await self.load_context(registration_id)
        if ctx is None:
            return ProgressResult(accepted=False, max_video_position=0.0)

        current = float(ctx.registration.max_video_position or 0.0)
        try:
            position = float(position_seconds)
        except (TypeError, ValueError):
            return ProgressResult(accepted=False, max_video_position=current)

        decision = self.decide(ctx, now)
        if not accepts_position(decision, ctx.timing, position):
            return ProgressResult(accepted=False, max_video_position=current)

        completion_mark = ctx.timing.duration_seconds * self.completion_threshold_percent / 100.0
        newly_completed = False
        stamp = to_db(now)

        async with db.session() as s:
            await s.execute(
                update(Registration)
                .where(Registration.id == int(registration_id), Registration.max_video_position < position)
                .values(max_video_position=position)
                .execution_options(synchronize_session=False)
            )
            await s.execute(
                update(Registration)
                .where(Registration.id == int(registration_id), Registration.attended_at.is_(None))
                .values(attended_at=stamp)
                .execution_options(synchronize_session=False)
            )
            if position >= completion_mark:
                result = await s.execute(
                    update(Registration)
                    .where(Registration.id == int(registration_id), Registration.completed_at.is_(None))
                    .values(completed_at=stamp)
                    .execution_options(synchronize_session=False)
                )
                newly_completed = int(result.rowcount or 0) == 1

            result = await s.execute(
                select(Registration.max_video_position).where(Registration.id == int(registration_id))
            )
            stored = float(result.scalar_one() or 0.0)

        if newly_completed and self.notifications is not None:
            try:
                await self.notifications.enqueue_completed(int(registration_id), now)
            except Exception as e:
                logger.error(f"Failed to enqueue COMPLETED notification for registration {registration_id}: {e}")

        return ProgressResult(accepted=True, max_video_position=stored)
