"""In-memory stand-ins for the external capabilities used in tests."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from scrubbed.domain.models import Coordinates, ExternalIdentity, UserProfile, UserType
from scrubbed.services.geolocation import PositionOptions
from scrubbed.services.oauth import ProviderError
from scrubbed.services.phone_service import MessagingError


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessenger:
    def __init__(self, *, code: str = "123456", send_error: str | None = None) -> None:
        self.code = code
        self.send_error = send_error
        self.sent: List[tuple] = []
        self.checked: List[tuple] = []

    async def send(self, user_id: str, phone: str) -> None:
        self.sent.append((user_id, phone))
        if self.send_error:
            raise MessagingError(self.send_error)

    async def verify_code(self, user_id: str, code: str) -> None:
        self.checked.append((user_id, code))
        if code != self.code:
            raise MessagingError("Invalid or expired verification code")


class FakeProfiles:
    def __init__(self) -> None:
        self.updates: List[tuple] = []

    async def update_profile(self, user_id: str, partial: Mapping[str, Any]) -> UserProfile:
        self.updates.append((user_id, dict(partial)))
        return UserProfile(id=user_id, email="", full_name=None, user_type=UserType.DUMPER, **partial)


class FakeProvider:
    """Identity provider that maps codes to identities."""

    def __init__(self, identities: Optional[Dict[str, ExternalIdentity]] = None) -> None:
        self.identities = dict(identities or {})
        self.exchanged: List[str] = []

    def authorization_url(self, *, state: str, redirect_uri: str) -> str:
        return f"https://provider.test/authorize?state={state}&redirect_uri={redirect_uri}"

    async def exchange_code(self, code: str, *, redirect_uri: str) -> ExternalIdentity:
        self.exchanged.append(code)
        identity = self.identities.get(code)
        if identity is None:
            raise ProviderError("invalid_grant")
        return identity


class FakePositionSource:
    """Returns queued results in order; an exception instance is raised instead of returned."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls = 0
        self.delay = 0.0

    async def get_current_position(self, options: PositionOptions) -> Coordinates:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSink:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.pushed: List[tuple] = []

    async def update_location(self, profile_id: str, location: Coordinates) -> None:
        if self.fail:
            raise RuntimeError("store unavailable")
        self.pushed.append((profile_id, location))
