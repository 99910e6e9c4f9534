"""Shared-secret bearer checks for the periodic trigger endpoints."""

from __future__ import annotations

import secrets
from typing import Mapping


def get_bearer_token(headers: Mapping[str, str]) -> str | None:
    # Prefer Authorization: Bearer <token>, fallback to X-Cron-Secret header.
    # Query params are not accepted - they leak to logs/proxies.
    auth = headers.get("authorization") or headers.get("Authorization")
    if auth:
        parts = auth.strip().split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    token = headers.get("x-cron-secret") or headers.get("X-Cron-Secret")
    return token.strip() if token else None


def is_authorized(headers: Mapping[str, str], expected: str) -> bool:
    expected = (expected or "").strip()
    if not expected:
        return False
    provided = get_bearer_token(headers)
    if not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
