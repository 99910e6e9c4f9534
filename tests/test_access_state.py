"""Access phase transitions for live and evergreen sessions."""

from datetime import timedelta

import pytest

from database.models import SessionType
from webinar.services.access_state import (
    AccessPhase,
    AccessPolicy,
    SessionTiming,
    ViewerProgress,
    accepts_position,
    evaluate_access,
)
from tests.conftest import T0

EVERGREEN = SessionTiming(scheduled_at=T0, session_type=SessionType.EVERGREEN, duration_seconds=3600)
LIVE = SessionTiming(scheduled_at=T0, session_type=SessionType.LIVE, duration_seconds=3600)
FRESH = ViewerProgress()

PHASE_ORDER = {
    AccessPhase.NOT_STARTED: 0,
    AccessPhase.LIVE_WATCHING: 1,
    AccessPhase.CAUGHT_UP_WAITING: 1,
    AccessPhase.ENDED_REPLAY_AVAILABLE: 2,
}


def test_evergreen_end_to_end_scenario():
    at_1005 = T0 + timedelta(minutes=5)
    decision = evaluate_access(EVERGREEN, FRESH, at_1005)
    assert decision.phase == AccessPhase.LIVE_WATCHING
    assert decision.allowed_ceiling == 300
    assert decision.allow_seeking is False

    caught_up = ViewerProgress(max_video_position=300.0, attended=True)
    assert evaluate_access(EVERGREEN, caught_up, at_1005).phase == AccessPhase.CAUGHT_UP_WAITING

    at_1105 = T0 + timedelta(hours=1, minutes=5)
    ended = evaluate_access(EVERGREEN, caught_up, at_1105)
    assert ended.phase == AccessPhase.ENDED_REPLAY_AVAILABLE
    assert ended.allowed_ceiling is None
    assert ended.allow_seeking is True


def test_not_started_reports_countdown_and_waiting_room():
    early = evaluate_access(EVERGREEN, FRESH, T0 - timedelta(minutes=30))
    assert early.phase == AccessPhase.NOT_STARTED
    assert early.seconds_until_start == 1800
    assert early.allowed_ceiling is None
    assert early.waiting_room_open is False

    soon = evaluate_access(EVERGREEN, FRESH, T0 - timedelta(minutes=4))
    assert soon.phase == AccessPhase.NOT_STARTED
    assert soon.waiting_room_open is True


def test_exact_start_is_watching():
    decision = evaluate_access(EVERGREEN, FRESH, T0)
    assert decision.phase == AccessPhase.CAUGHT_UP_WAITING
    assert decision.allowed_ceiling == 0


def test_evergreen_at_exact_end_is_replay():
    decision = evaluate_access(EVERGREEN, FRESH, T0 + timedelta(seconds=3600))
    assert decision.phase == AccessPhase.ENDED_REPLAY_AVAILABLE


def test_live_session_during_broadcast():
    decision = evaluate_access(LIVE, FRESH, T0 + timedelta(minutes=10))
    assert decision.phase == AccessPhase.LIVE_WATCHING
    assert decision.allowed_ceiling == 600


def test_live_after_end_attended_viewer_gets_replay():
    attended = ViewerProgress(max_video_position=1200.0, attended=True)
    much_later = T0 + timedelta(days=10)
    assert evaluate_access(LIVE, attended, much_later).phase == AccessPhase.ENDED_REPLAY_AVAILABLE


def test_live_after_end_absent_viewer_within_grace_then_missed():
    policy = AccessPolicy(missed_grace_seconds=3600)
    within = T0 + timedelta(hours=1, minutes=30)
    after = T0 + timedelta(hours=2, minutes=1)
    assert evaluate_access(LIVE, FRESH, within, policy).phase == AccessPhase.ENDED_REPLAY_AVAILABLE
    assert evaluate_access(LIVE, FRESH, after, policy).phase == AccessPhase.MISSED


def test_live_without_replay_is_missed_after_end():
    policy = AccessPolicy(replay_enabled=False)
    attended = ViewerProgress(max_video_position=100.0, attended=True)
    decision = evaluate_access(LIVE, attended, T0 + timedelta(hours=1, seconds=1), policy)
    assert decision.phase == AccessPhase.MISSED
    assert decision.may_watch is False


@pytest.mark.parametrize("session", [EVERGREEN, LIVE])
def test_phases_never_move_backwards(session):
    viewer = ViewerProgress(max_video_position=0.0, attended=True)
    previous = -1
    for minute in range(-20, 180, 7):
        phase = evaluate_access(session, viewer, T0 + timedelta(minutes=minute)).phase
        assert PHASE_ORDER[phase] >= previous
        previous = PHASE_ORDER[phase]


def test_accepts_position_bounds():
    watching = evaluate_access(EVERGREEN, FRESH, T0 + timedelta(seconds=50))
    assert accepts_position(watching, EVERGREEN, 50) is True
    assert accepts_position(watching, EVERGREEN, 500) is False
    assert accepts_position(watching, EVERGREEN, -1) is False
    assert accepts_position(watching, EVERGREEN, float("nan")) is False

    not_started = evaluate_access(EVERGREEN, FRESH, T0 - timedelta(seconds=1))
    assert accepts_position(not_started, EVERGREEN, 0) is False

    ended = evaluate_access(EVERGREEN, FRESH, T0 + timedelta(hours=2))
    assert accepts_position(ended, EVERGREEN, 3000) is True
    assert accepts_position(ended, EVERGREEN, 3601) is False
