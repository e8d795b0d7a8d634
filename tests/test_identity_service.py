from __future__ import annotations

import asyncio
import time

import pytest

from fakes import FakeClock
from scrubbed.core import config as core_config
from scrubbed.core.cache import TTLCache
from scrubbed.domain.models import ExternalIdentity, PendingIntent, UserType
from scrubbed.repositories.sql_repository import SQLRepository
from scrubbed.services.identity_service import (
    CallbackState,
    IdentityResolver,
    ProfileWriteError,
    display_name,
    resolve_user_type,
)
from scrubbed.services.oauth import encode_state


def _identity(uid: str = "google-1", **meta) -> ExternalIdentity:
    return ExternalIdentity(id=uid, email="maria.silva@example.com", user_metadata=meta)


# -------------------------------------- user type --------------------------------------
def test_pending_intent_alone_resolves_collector():
    assert resolve_user_type(CallbackState(), PendingIntent(user_type=UserType.COLLECTOR)) == UserType.COLLECTOR


def test_no_hints_defaults_to_dumper():
    assert resolve_user_type(None, None) == UserType.DUMPER
    assert resolve_user_type(CallbackState(), None) == UserType.DUMPER


def test_provider_metadata_beats_pending_intent_and_state():
    callback = CallbackState(
        user_metadata={"user_type": "dumper"},
        state=encode_state(UserType.COLLECTOR, "n"),
    )
    assert resolve_user_type(callback, PendingIntent(user_type=UserType.COLLECTOR)) == UserType.DUMPER


def test_app_metadata_is_read_when_user_metadata_is_silent():
    callback = CallbackState(user_metadata={"name": "x"}, app_metadata={"user_type": "collector"})
    assert resolve_user_type(callback, None) == UserType.COLLECTOR


def test_state_parameter_is_last_resort():
    callback = CallbackState(state=encode_state(UserType.COLLECTOR, "nonce"))
    assert resolve_user_type(callback, None) == UserType.COLLECTOR
    assert resolve_user_type(CallbackState(state="%%not-base64%%"), None) == UserType.DUMPER


def test_display_name_fallbacks():
    assert display_name(_identity(full_name="Maria Silva")) == "Maria Silva"
    assert display_name(_identity(given_name="Maria", family_name="Silva")) == "Maria Silva"
    assert display_name(_identity(given_name="Maria")) == "Maria"
    assert display_name(_identity()) == "Maria.silva"
    assert display_name(ExternalIdentity(id="x")) == "User"
    assert display_name(None) == "User"


# -------------------------------------- ensure --------------------------------------
def test_ensure_profile_inserts_once(temp_db):
    repo = SQLRepository()
    resolver = IdentityResolver(repo, TTLCache(clock=FakeClock()))
    identity = _identity(full_name="Maria Silva")

    created = asyncio.run(resolver.ensure_profile_exists(identity, None, PendingIntent(UserType.COLLECTOR)))
    assert created is True
    row = repo.get_profile("google-1")
    assert row.user_type == "collector"
    assert row.full_name == "Maria Silva"
    assert row.phone_verified is False

    assert asyncio.run(resolver.ensure_profile_exists(identity)) is False
    fresh = IdentityResolver(repo, TTLCache(clock=FakeClock()))
    assert asyncio.run(fresh.ensure_profile_exists(identity)) is False


class _BlindRepository(SQLRepository):
    """Never sees the existing row, so the insert collides."""

    def get_profile(self, profile_id):
        return None


def test_duplicate_insert_race_is_swallowed(temp_db):
    SQLRepository().insert_profile({"id": "google-1", "email": "a@example.com", "user_type": "dumper"})
    resolver = IdentityResolver(_BlindRepository(), TTLCache(clock=FakeClock()))

    assert asyncio.run(resolver.ensure_profile_exists(_identity())) is False
    assert resolver.cache.get(resolver.exists_key("google-1")) is True


# -------------------------------------- fetch --------------------------------------
def test_fetch_profile_caches_store_row(temp_db):
    repo = SQLRepository()
    repo.insert_profile({"id": "u1", "email": "u1@example.com", "full_name": "Ana", "user_type": "collector"})
    clock = FakeClock()
    resolver = IdentityResolver(repo, TTLCache(clock=clock))

    profile = asyncio.run(resolver.fetch_profile("u1"))
    assert profile.full_name == "Ana"
    assert profile.user_type == UserType.COLLECTOR

    repo.update_profile("u1", {"full_name": "Changed"})
    assert asyncio.run(resolver.fetch_profile("u1")).full_name == "Ana"
    clock.advance(301)
    assert asyncio.run(resolver.fetch_profile("u1")).full_name == "Changed"


class _SlowRepository(SQLRepository):
    def __init__(self, delay: float) -> None:
        self.delay = delay

    def get_profile(self, profile_id):
        time.sleep(self.delay)
        return super().get_profile(profile_id)


def test_slow_fetch_falls_back_and_retries_after_short_ttl(temp_db, monkeypatch):
    monkeypatch.setenv("PROFILE_FETCH_TIMEOUT_SECONDS", "0.05")
    core_config.get_settings.cache_clear()
    SQLRepository().insert_profile({"id": "google-1", "email": "x@example.com", "full_name": "Stored", "user_type": "dumper"})
    clock = FakeClock()
    repo = _SlowRepository(delay=0.3)
    resolver = IdentityResolver(repo, TTLCache(clock=clock))
    resolver.remember(_identity(full_name="Maria Silva"), UserType.COLLECTOR)

    async def timed_fetch():
        started = time.monotonic()
        result = await resolver.fetch_profile("google-1")
        return result, time.monotonic() - started

    profile, elapsed = asyncio.run(timed_fetch())
    assert elapsed < 0.25
    assert profile.full_name == "Maria Silva"
    assert profile.user_type == UserType.COLLECTOR
    assert profile.email == "maria.silva@example.com"

    repo.delay = 0
    clock.advance(59)
    assert asyncio.run(resolver.fetch_profile("google-1")).full_name == "Maria Silva"
    clock.advance(1)
    assert asyncio.run(resolver.fetch_profile("google-1")).full_name == "Stored"


def test_missing_row_yields_fallback(temp_db):
    resolver = IdentityResolver(SQLRepository(), TTLCache(clock=FakeClock()))
    profile = asyncio.run(resolver.fetch_profile("nobody"))
    assert profile.id == "nobody"
    assert profile.full_name == "User"
    assert profile.user_type == UserType.DUMPER


# -------------------------------------- update --------------------------------------
def test_update_profile_upserts_and_recaches(temp_db):
    repo = SQLRepository()
    resolver = IdentityResolver(repo, TTLCache(clock=FakeClock()))
    resolver.remember(_identity(full_name="Maria Silva"), UserType.DUMPER)

    updated = asyncio.run(resolver.update_profile("google-1", {"phone": "+5511999990000"}))
    assert updated.phone == "+5511999990000"
    assert repo.get_profile("google-1").phone == "+5511999990000"

    updated = asyncio.run(resolver.update_profile("google-1", {"address": "Rua A, 10", "user_type": "collector"}))
    assert updated.address == "Rua A, 10"
    assert updated.user_type == UserType.COLLECTOR
    assert updated.phone == "+5511999990000"
    assert resolver.cache.get(resolver.profile_key("google-1")) == updated
    assert repo.get_profile("google-1").user_type == "collector"


def test_update_profile_merges_onto_stored_row_not_cached_fallback(temp_db):
    repo = SQLRepository()
    repo.insert_profile(
        {"id": "g1", "email": "g1@example.com", "full_name": "Carla", "user_type": "collector", "address": "Rua B, 5"}
    )
    clock = FakeClock()
    resolver = IdentityResolver(repo, TTLCache(clock=clock))
    resolver.cache.set(resolver.profile_key("g1"), resolver.fallback_profile("g1"), 60)

    merged = asyncio.run(resolver.update_profile("g1", {"phone": "+5511988887777"}))
    assert merged.user_type == UserType.COLLECTOR
    assert merged.full_name == "Carla"
    assert merged.address == "Rua B, 5"
    assert merged.phone == "+5511988887777"

    clock.advance(120)
    cached = asyncio.run(resolver.fetch_profile("g1"))
    assert cached.user_type == UserType.COLLECTOR
    assert cached.address == "Rua B, 5"


def test_update_profile_rejects_unknown_fields(temp_db):
    resolver = IdentityResolver(SQLRepository(), TTLCache(clock=FakeClock()))
    with pytest.raises(ValueError):
        asyncio.run(resolver.update_profile("u1", {"email": "new@example.com"}))
    with pytest.raises(ValueError):
        asyncio.run(resolver.update_profile("u1", {"user_type": "admin"}))


class _BrokenWrites(SQLRepository):
    def update_profile(self, profile_id, values):
        raise RuntimeError("connection reset")


def test_update_profile_surfaces_write_failures_after_invalidating(temp_db):
    repo = _BrokenWrites()
    repo.insert_profile({"id": "u1", "email": "u1@example.com", "user_type": "dumper"})
    resolver = IdentityResolver(repo, TTLCache(clock=FakeClock()))
    asyncio.run(resolver.fetch_profile("u1"))
    assert resolver.profile_key("u1") in resolver.cache

    with pytest.raises(ProfileWriteError):
        asyncio.run(resolver.update_profile("u1", {"full_name": "New"}))
    assert resolver.profile_key("u1") not in resolver.cache


def test_forget_drops_cache_but_not_row(temp_db):
    repo = SQLRepository()
    resolver = IdentityResolver(repo, TTLCache(clock=FakeClock()))
    asyncio.run(resolver.ensure_profile_exists(_identity()))
    asyncio.run(resolver.fetch_profile("google-1"))

    resolver.forget("google-1")
    assert len(resolver.cache) == 0
    assert repo.get_profile("google-1") is not None
