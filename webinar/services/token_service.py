"""Token service - issues and validates registration access tokens."""
from __future__ import annotations

import secrets
from typing import Optional

from sqlalchemy import select, update

from database.db import db
from database.models import Registration

# 32 random bytes -> 256 bits of entropy, URL-safe.
TOKEN_BYTES = 32


class TokenService:
    """DB-backed opaque access tokens for watch links.

    Tokens are high-entropy lookup keys, not MACs, so a plain indexed lookup is
    enough. There is no expiry here; the access phase governs whether the
    registration may still watch.
    """

    def generate(self) -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    async def issue(self, registration_id: int) -> Optional[str]:
        """Store a fresh token on the registration (rotates any previous one)."""
        token = self.generate()
        async with db.session() as session:
            result = await session.execute(
                update(Registration)
                .where(Registration.id == int(registration_id))
                .values(access_token=token)
            )
            if not result.rowcount:
                return None
        return token

    async def resolve(self, token: str) -> Optional[Registration]:
        token = (token or "").strip()
        if not token:
            return None
        async with db.session() as session:
            result = await session.execute(select(Registration).where(Registration.access_token == token))
            return result.scalar_one_or_none()

    async def validate(self, webinar_id: str, token: str) -> Optional[Registration]:
        """Return the registration if `token` belongs to `webinar_id`, else None."""
        registration = await self.resolve(token)
        if registration is None or registration.webinar_id != str(webinar_id):
            return None
        return registration
