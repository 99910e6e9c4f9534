"""Access token issuing and validation."""

import re

from webinar.services.token_service import TokenService
from tests.conftest import add_registration, add_session


def test_generated_tokens_are_long_urlsafe_and_unique():
    service = TokenService()
    tokens = {service.generate() for _ in range(200)}

    assert len(tokens) == 200
    for token in tokens:
        assert len(token) >= 43
        assert re.fullmatch(r"[A-Za-z0-9_-]+", token)


async def test_issue_rotates_token(database):
    registration = await add_registration(await add_session())
    service = TokenService()

    new_token = await service.issue(registration.id)

    assert new_token and new_token != "token-viewer"
    assert await service.resolve("token-viewer") is None
    assert (await service.resolve(new_token)).id == registration.id


async def test_issue_for_unknown_registration(database):
    assert await TokenService().issue(424242) is None


async def test_validate_checks_webinar(database):
    registration = await add_registration(await add_session(webinar_id="webinar-1"))
    service = TokenService()

    assert (await service.validate("webinar-1", "token-viewer")).id == registration.id
    assert await service.validate("webinar-2", "token-viewer") is None
    assert await service.validate("webinar-1", "nope") is None
    assert await service.validate("webinar-1", "") is None
