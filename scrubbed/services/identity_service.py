"""
Profile resolution for signed-in identities.

Turns an external identity plus whatever sign-in hints survived the redirect
into a persisted UserProfile, keeping remote round-trips down with a TTL
cache and falling back to a locally built profile when the store is slow or
unreachable. Reads never block sign-in; writes surface their failures.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from starlette.concurrency import run_in_threadpool

from scrubbed.core.cache import TTLCache
from scrubbed.core.config import get_settings
from scrubbed.domain.models import (
    PROFILE_MUTABLE_FIELDS,
    ExternalIdentity,
    PendingIntent,
    UserProfile,
    UserType,
)
from scrubbed.repositories.mappers import profile_from_entity, profile_to_values
from scrubbed.repositories.sql_repository import DuplicateRowError, SQLRepository
from scrubbed.services.oauth import decode_state_user_type

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """Base class for identity/profile failures."""


class ProfileWriteError(IdentityError):
    """The remote store rejected or failed a profile write."""


@dataclass(frozen=True)
class CallbackState:
    """Hints carried by the provider callback: session metadata and the redirect state value."""

    user_metadata: Mapping[str, Any] = field(default_factory=dict)
    app_metadata: Mapping[str, Any] = field(default_factory=dict)
    state: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: ExternalIdentity, state: Optional[str] = None) -> CallbackState:
        return cls(user_metadata=identity.user_metadata, app_metadata=identity.app_metadata, state=state)


def display_name(identity: Optional[ExternalIdentity]) -> str:
    """Best human name available from provider metadata, else the capitalised email local-part."""
    if identity is None:
        return "User"
    meta = identity.user_metadata or {}
    for key in ("full_name", "name"):
        value = (meta.get(key) or "").strip()
        if value:
            return value
    first = (meta.get("given_name") or meta.get("first_name") or "").strip()
    last = (meta.get("family_name") or meta.get("last_name") or "").strip()
    if first and last:
        return f"{first} {last}"
    if first:
        return first
    local = (identity.email or "").split("@")[0]
    if local:
        return local[:1].upper() + local[1:]
    return "User"


def resolve_user_type(callback: Optional[CallbackState], pending_intent: Optional[PendingIntent]) -> UserType:
    """
    Pick the user's role from the first channel that still carries it.

    Order: provider session metadata, then the locally stored pending intent,
    then the redirect state parameter. Defaults to dumper.
    """
    if callback is not None:
        for meta in (callback.user_metadata, callback.app_metadata):
            found = UserType.parse((meta or {}).get("user_type"))
            if found:
                return found
    if pending_intent is not None:
        found = UserType.parse(pending_intent.user_type)
        if found:
            return found
    if callback is not None:
        found = decode_state_user_type(callback.state)
        if found:
            return found
    return UserType.DUMPER


@dataclass
class _KnownIdentity:
    identity: ExternalIdentity
    user_type: UserType


class IdentityResolver:
    """Owns the profile_exists:{id} and profile:{id} cache namespaces."""

    def __init__(self, repository: SQLRepository | None = None, cache: TTLCache | None = None) -> None:
        self.settings = get_settings()
        self.repository = repository or SQLRepository()
        self.cache = cache or TTLCache()
        self._known: Dict[str, _KnownIdentity] = {}

    # -------------------------------------- helpers --------------------------------------
    @staticmethod
    def exists_key(user_id: str) -> str:
        return f"profile_exists:{user_id}"

    @staticmethod
    def profile_key(user_id: str) -> str:
        return f"profile:{user_id}"

    def remember(self, identity: ExternalIdentity, user_type: UserType) -> None:
        """Keep the identity around so a fallback profile can be built without the store."""
        self._known[identity.id] = _KnownIdentity(identity=identity, user_type=user_type)

    def forget(self, user_id: str) -> None:
        """Drop everything cached locally for a user. The stored row is untouched."""
        self._known.pop(user_id, None)
        self.cache.invalidate(self.exists_key(user_id))
        self.cache.invalidate(self.profile_key(user_id))

    def fallback_profile(self, user_id: str) -> UserProfile:
        known = self._known.get(user_id)
        identity = known.identity if known else None
        now = datetime.now(timezone.utc)
        return UserProfile(
            id=user_id,
            email=identity.email if identity else "",
            full_name=display_name(identity),
            user_type=known.user_type if known else UserType.DUMPER,
            phone=None,
            address=None,
            email_verified=True,
            phone_verified=False,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------- ensure --------------------------------------
    async def ensure_profile_exists(
        self,
        identity: ExternalIdentity,
        callback: Optional[CallbackState] = None,
        pending_intent: Optional[PendingIntent] = None,
    ) -> bool:
        """
        Make sure a stored profile row exists for the identity.

        Returns True only when this call inserted the row. A concurrent insert
        that wins the race is treated as success, not retried.
        """
        user_type = resolve_user_type(callback or CallbackState.from_identity(identity), pending_intent)
        self.remember(identity, user_type)
        key = self.exists_key(identity.id)
        if self.cache.get(key):
            return False
        row = await run_in_threadpool(self.repository.get_profile, identity.id)
        if row is not None:
            self.cache.set(key, True, self.settings.profile_cache_ttl_seconds)
            return False
        values = {
            "id": identity.id,
            "email": identity.email or "",
            "full_name": display_name(identity),
            "user_type": user_type.value,
            "phone": (identity.user_metadata or {}).get("phone") or None,
            "address": None,
            "email_verified": True,
            "phone_verified": False,
        }
        created = True
        try:
            await run_in_threadpool(self.repository.insert_profile, values)
            logger.info("[identity] Created %s profile for %s", user_type.value, identity.id)
        except DuplicateRowError:
            logger.info("[identity] Profile for %s was created concurrently", identity.id)
            created = False
        self.cache.set(key, True, self.settings.profile_cache_ttl_seconds)
        return created

    # -------------------------------------- fetch --------------------------------------
    async def fetch_profile(self, user_id: str) -> UserProfile:
        """
        Cached profile read raced against a short timeout.

        On timeout, store error or a missing row, a fallback profile is cached
        with the short TTL so the next expiry retries the store.
        """
        key = self.profile_key(user_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        row = None
        loop = asyncio.get_running_loop()
        try:
            # Plain executor future: a timeout abandons the read instead of waiting on the thread.
            row = await asyncio.wait_for(
                loop.run_in_executor(None, self.repository.get_profile, user_id),
                timeout=self.settings.profile_fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("[identity] Profile fetch for %s timed out; using fallback", user_id)
        except Exception:
            logger.exception("[identity] Profile fetch for %s failed; using fallback", user_id)
        if row is None:
            profile = self.fallback_profile(user_id)
            self.cache.set(key, profile, self.settings.fallback_profile_ttl_seconds)
            return profile
        profile = profile_from_entity(row)
        self.cache.set(key, profile, self.settings.profile_cache_ttl_seconds)
        return profile

    # -------------------------------------- update --------------------------------------
    async def update_profile(self, user_id: str, partial: Mapping[str, Any]) -> UserProfile:
        """Upsert the given fields, then re-cache the merged view."""
        unknown = set(partial) - PROFILE_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Profile fields cannot be updated: {', '.join(sorted(unknown))}")
        values = dict(partial)
        if "user_type" in values:
            parsed = UserType.parse(values["user_type"])
            if parsed is None:
                raise ValueError(f"Unknown user type: {values['user_type']!r}")
            values["user_type"] = parsed.value

        profile_key = self.profile_key(user_id)
        current: Optional[UserProfile] = self.cache.get(profile_key)
        self.cache.invalidate(self.exists_key(user_id))
        self.cache.invalidate(profile_key)

        try:
            row = await run_in_threadpool(self.repository.get_profile, user_id)
            if row is None:
                base = current or self.fallback_profile(user_id)
                try:
                    await run_in_threadpool(self.repository.insert_profile, profile_to_values(base.merged(values)))
                except DuplicateRowError:
                    await run_in_threadpool(self.repository.update_profile, user_id, values)
            else:
                # The stored row beats any cached view, which may be a fallback.
                current = profile_from_entity(row)
                await run_in_threadpool(self.repository.update_profile, user_id, values)
        except Exception as exc:
            raise ProfileWriteError(f"Failed to update profile {user_id}: {exc}") from exc

        base = current or self.fallback_profile(user_id)
        merged = base.merged(values, updated_at=datetime.now(timezone.utc))
        self.cache.set(profile_key, merged, self.settings.profile_cache_ttl_seconds)
        self.cache.set(self.exists_key(user_id), True, self.settings.profile_cache_ttl_seconds)
        return merged
