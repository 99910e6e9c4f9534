"""Scripted chat replay - returns author-defined chat lines for a playback window."""
from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy import select

from database.db import db
from database.models import ChatScriptEntry, SessionType
from webinar.services.access_state import AccessDecision, AccessPhase, SessionTiming


@dataclass(frozen=True)
class ChatEntry:
    id: int
    sender_name: str
    message: str
    appears_at: int
    is_from_moderator: bool

    @classmethod
    def from_model(cls, row: ChatScriptEntry) -> "ChatEntry":
        return cls(
            id=int(row.id),
            sender_name=row.sender_name,
            message=row.message,
            appears_at=int(row.appears_at),
            is_from_moderator=bool(row.is_from_moderator),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "senderName": self.sender_name,
            "message": self.message,
            "appearsAt": self.appears_at,
            "isFromModerator": self.is_from_moderator,
        }


class ChatFeed:
    """Read-only view over the chat script, keyed by playback offset."""

    async def fetch_window(self, webinar_id: str, from_seconds: float, to_seconds: float) -> list[ChatEntry]:
        """
        Entries with `from_seconds < appears_at <= to_seconds`.

        Ordered by (appears_at, id), so repeated polls over the same window
        return the same list. An empty or inverted window returns [].
        """
        if not _finite(from_seconds) or not _finite(to_seconds) or to_seconds <= from_seconds:
            return []

        # appears_at is whole seconds, so flooring both bounds keeps the same window.
        lower, upper = math.floor(from_seconds), math.floor(to_seconds)
        async with db.session() as session:
            result = await session.execute(
                select(ChatScriptEntry)
                .where(
                    ChatScriptEntry.webinar_id == str(webinar_id),
                    ChatScriptEntry.appears_at > lower,
                    ChatScriptEntry.appears_at <= upper,
                )
                .order_by(ChatScriptEntry.appears_at.asc(), ChatScriptEntry.id.asc())
            )
            return [ChatEntry.from_model(row) for row in result.scalars().all()]

    async def fetch_for_viewer(
        self,
        webinar_id: str,
        session: SessionTiming,
        decision: AccessDecision,
        from_seconds: float,
        to_seconds: float,
    ) -> list[ChatEntry]:
        """
        Chat window for a viewer in a given access phase.

        Scripted replay only applies to evergreen sessions, where it is capped at
        the viewer's allowed ceiling so lines never appear ahead of the video.
        """
        if session.session_type != SessionType.EVERGREEN:
            return []
        if decision.phase in (AccessPhase.NOT_STARTED, AccessPhase.MISSED):
            return []
        if decision.allowed_ceiling is not None:
            to_seconds = min(to_seconds, decision.allowed_ceiling)
        return await self.fetch_window(webinar_id, from_seconds, to_seconds)


def _finite(value: float) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False
