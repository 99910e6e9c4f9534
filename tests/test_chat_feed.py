"""Scripted chat windows."""

from datetime import timedelta

from database.models import SessionType
from webinar.services.access_state import SessionTiming, ViewerProgress, evaluate_access
from webinar.services.chat_feed import ChatFeed
from tests.conftest import T0, add_chat_entries

SCRIPT = [
    (10, "Host", "Welcome everyone!"),
    (30, "Sam", "Hi from Lisbon"),
    (30, "Kim", "Hello!"),
    (90, "Host", "Let's get started"),
    (400, "Lee", "Great point"),
]


async def test_window_is_half_open_and_ordered(database):
    await add_chat_entries("webinar-1", SCRIPT)
    await add_chat_entries("other", [(20, "Zed", "wrong webinar")])

    entries = await ChatFeed().fetch_window("webinar-1", 10, 90)

    assert [(e.appears_at, e.sender_name) for e in entries] == [(30, "Sam"), (30, "Kim"), (90, "Host")]


async def test_repeated_polls_return_identical_results(database):
    await add_chat_entries("webinar-1", SCRIPT)
    feed = ChatFeed()

    first = await feed.fetch_window("webinar-1", 0, 500)
    second = await feed.fetch_window("webinar-1", 0, 500)

    assert first == second
    assert len(first) == 5


async def test_inverted_or_empty_range_returns_nothing(database):
    await add_chat_entries("webinar-1", SCRIPT)
    feed = ChatFeed()

    assert await feed.fetch_window("webinar-1", 100, 10) == []
    assert await feed.fetch_window("webinar-1", 30, 30) == []


async def test_viewer_window_is_capped_at_live_edge(database):
    await add_chat_entries("webinar-1", SCRIPT)
    timing = SessionTiming(scheduled_at=T0, session_type=SessionType.EVERGREEN, duration_seconds=3600)
    decision = evaluate_access(timing, ViewerProgress(), T0 + timedelta(seconds=60))

    entries = await ChatFeed().fetch_for_viewer("webinar-1", timing, decision, 0, 1000)

    assert [e.appears_at for e in entries] == [10, 30, 30]


async def test_live_and_not_started_sessions_have_no_scripted_chat(database):
    await add_chat_entries("webinar-1", SCRIPT)
    feed = ChatFeed()

    live = SessionTiming(scheduled_at=T0, session_type=SessionType.LIVE, duration_seconds=3600)
    live_decision = evaluate_access(live, ViewerProgress(), T0 + timedelta(minutes=10))
    assert await feed.fetch_for_viewer("webinar-1", live, live_decision, 0, 1000) == []

    evergreen = SessionTiming(scheduled_at=T0, session_type=SessionType.EVERGREEN, duration_seconds=3600)
    early = evaluate_access(evergreen, ViewerProgress(), T0 - timedelta(minutes=1))
    assert await feed.fetch_for_viewer("webinar-1", evergreen, early, 0, 1000) == []


def test_entry_serialization():
    from webinar.services.chat_feed import ChatEntry

    entry = ChatEntry(id=1, sender_name="Host", message="Hi", appears_at=5, is_from_moderator=True)
    assert entry.to_dict() == {
        "id": 1,
        "senderName": "Host",
        "message": "Hi",
        "appearsAt": 5,
        "isFromModerator": True,
    }
