"""Access state machine - a viewer's current phase for a session.

Pure functions only: no database, no clock reads. Callers pass `now` in, which
keeps every transition reproducible in tests.

Phase order for a single viewer as `now` increases:

    NOT_STARTED -> (LIVE_WATCHING <-> CAUGHT_UP_WAITING)* -> ENDED_REPLAY_AVAILABLE

LIVE sessions additionally have the terminal MISSED branch.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from database.models import Registration, SessionType, WebinarSession
from webinar.utils.datetime_utils import as_utc


class AccessPhase(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    LIVE_WATCHING = "LIVE_WATCHING"
    CAUGHT_UP_WAITING = "CAUGHT_UP_WAITING"
    ENDED_REPLAY_AVAILABLE = "ENDED_REPLAY_AVAILABLE"
    MISSED = "MISSED"


# Phases in which the viewer is actually being served video.
WATCHING_PHASES = frozenset(
    {AccessPhase.LIVE_WATCHING, AccessPhase.CAUGHT_UP_WAITING, AccessPhase.ENDED_REPLAY_AVAILABLE}
)


@dataclass(frozen=True)
class SessionTiming:
    scheduled_at: datetime
    session_type: SessionType
    duration_seconds: int

    @classmethod
    def from_model(cls, session: WebinarSession) -> "SessionTiming":
        return cls(
            scheduled_at=as_utc(session.scheduled_at),
            session_type=SessionType(session.session_type),
            duration_seconds=int(session.duration_seconds),
        )


@dataclass(frozen=True)
class ViewerProgress:
    max_video_position: float = 0.0
    attended: bool = False

    @classmethod
    def from_model(cls, registration: Registration) -> "ViewerProgress":
        position = float(registration.max_video_position or 0.0)
        return cls(
            max_video_position=position,
            attended=registration.attended_at is not None or position > 0,
        )


@dataclass(frozen=True)
class AccessPolicy:
    replay_enabled: bool = True
    missed_grace_seconds: int = 24 * 3600
    early_access_seconds: int = 5 * 60


@dataclass(frozen=True)
class AccessDecision:
    phase: AccessPhase
    allowed_ceiling: float | None  # furthest reachable position; None = no ceiling / no video
    elapsed_seconds: float  # clamped >= 0
    seconds_until_start: float  # 0 once started
    allow_seeking: bool
    waiting_room_open: bool = False

    @property
    def may_watch(self) -> bool:
        return self.phase in WATCHING_PHASES


def _not_started(raw_elapsed: float, policy: AccessPolicy) -> AccessDecision:
    until = -raw_elapsed
    return AccessDecision(
        phase=AccessPhase.NOT_STARTED,
        allowed_ceiling=None,
        elapsed_seconds=0.0,
        seconds_until_start=until,
        allow_seeking=False,
        waiting_room_open=until <= policy.early_access_seconds,
    )


def _ended(elapsed: float) -> AccessDecision:
    return AccessDecision(
        phase=AccessPhase.ENDED_REPLAY_AVAILABLE,
        allowed_ceiling=None,
        elapsed_seconds=elapsed,
        seconds_until_start=0.0,
        allow_seeking=True,
    )


def _missed(elapsed: float) -> AccessDecision:
    return AccessDecision(
        phase=AccessPhase.MISSED,
        allowed_ceiling=None,
        elapsed_seconds=elapsed,
        seconds_until_start=0.0,
        allow_seeking=False,
    )


def evaluate_access(
    session: SessionTiming,
    viewer: ViewerProgress,
    now: datetime,
    policy: AccessPolicy | None = None,
) -> AccessDecision:
    """Compute the viewer's access phase at `now`."""
    policy = policy or AccessPolicy()
    duration = float(session.duration_seconds)
    raw_elapsed = (as_utc(now) - session.scheduled_at).total_seconds()

    if raw_elapsed < 0:
        return _not_started(raw_elapsed, policy)

    elapsed = raw_elapsed

    if session.session_type == SessionType.LIVE:
        if elapsed <= duration:
            return AccessDecision(
                phase=AccessPhase.LIVE_WATCHING,
                allowed_ceiling=elapsed,
                elapsed_seconds=elapsed,
                seconds_until_start=0.0,
                allow_seeking=False,
            )
        if not policy.replay_enabled:
            return _missed(elapsed)
        if viewer.attended:
            return _ended(elapsed)
        # A late viewer still inside the grace window gets the replay (and is
        # marked attended by the caller); afterwards the viewer has missed it.
        if elapsed <= duration + policy.missed_grace_seconds:
            return _ended(elapsed)
        return _missed(elapsed)

    if session.session_type == SessionType.EVERGREEN:
        if elapsed >= duration:
            return _ended(elapsed)
        ceiling = min(elapsed, duration)
        phase = (
            AccessPhase.CAUGHT_UP_WAITING
            if viewer.max_video_position >= ceiling
            else AccessPhase.LIVE_WATCHING
        )
        return AccessDecision(
            phase=phase,
            allowed_ceiling=ceiling,
            elapsed_seconds=elapsed,
            seconds_until_start=0.0,
            allow_seeking=False,
        )

    raise ValueError(f"unknown session type: {session.session_type!r}")


def accepts_position(decision: AccessDecision, session: SessionTiming, position_seconds: float) -> bool:
    """
    Whether a playback heartbeat at `position_seconds` may advance progress.

    Out-of-range positions are expected (client clock drift, buffering) and are
    simply not accepted; they are never an error.
    """
    if position_seconds != position_seconds or position_seconds < 0:  # NaN or negative
        return False
    if decision.phase in (AccessPhase.NOT_STARTED, AccessPhase.MISSED):
        return False
    if position_seconds > session.duration_seconds:
        return False
    if (
        session.session_type == SessionType.EVERGREEN
        and decision.allowed_ceiling is not None
        and position_seconds > decision.allowed_ceiling
    ):
        return False
    return True
