"""
Authentication and identity related use cases.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from starlette.concurrency import run_in_threadpool

from scrubbed.core.config import get_settings
from scrubbed.core.mailer import send_welcome_email
from scrubbed.core.utils import absolute_url, as_utc, utcnow
from scrubbed.domain.models import PendingIntent, UserProfile, UserType
from scrubbed.repositories.sql_repository import SQLRepository
from scrubbed.services.identity_service import CallbackState, IdentityResolver
from scrubbed.services.oauth import (
    GoogleIdentityProvider,
    IdentityProvider,
    ProviderError,
    decode_state_nonce,
    encode_state,
)
from scrubbed.services.phone_service import PhoneVerificationService
from scrubbed.services.session_service import delete_session, issue_session, user_id_for_token
from scrubbed.services.verification import VerificationGates, requires_phone_verification

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for authentication-related exceptions."""


class SignInError(AuthError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProviderExchangeError(SignInError):
    """The identity provider refused the code or could not be reached."""


@dataclass
class SignInStart:
    authorization_url: str
    intent_key: str
    state: str


@dataclass
class SignInResult:
    profile: UserProfile
    session_token: str
    created: bool
    requires_verification: bool


class AuthService:
    """Handles external sign-in, sessions and sign-out."""

    def __init__(
        self,
        *,
        repository: SQLRepository | None = None,
        resolver: IdentityResolver | None = None,
        provider: IdentityProvider | None = None,
        gates: VerificationGates | None = None,
        welcome_mailer=send_welcome_email,
    ) -> None:
        self.settings = get_settings()
        self.repository = repository or SQLRepository()
        self.resolver = resolver or IdentityResolver(self.repository)
        self.provider = provider or GoogleIdentityProvider(self.settings)
        self.gates = gates or VerificationGates(PhoneVerificationService(self.repository), self.resolver)
        self.welcome_mailer = welcome_mailer

    # -------------------------------------- helpers --------------------------------------
    def _redirect_uri(self) -> str:
        return absolute_url(self.settings.oauth_redirect_path)

    def _consume_intent(self, intent_key: Optional[str]) -> Optional[PendingIntent]:
        if not intent_key:
            return None
        entity = self.repository.consume_pending_intent(intent_key)
        if entity is None:
            return None
        ttl = self.settings.pending_intent_ttl_seconds
        created = as_utc(entity.created_at)
        if ttl > 0 and created and created + timedelta(seconds=ttl) < utcnow():
            logger.info("[identity] Discarding stale pending intent")
            return None
        user_type = UserType.parse(entity.user_type)
        return PendingIntent(user_type=user_type) if user_type else None

    def _send_welcome(self, profile: UserProfile) -> None:
        if not profile.email:
            return
        try:
            self.welcome_mailer(profile.email, profile.full_name or "there", profile.user_type.value)
        except Exception:
            logger.exception("[email] Welcome email for %s failed", profile.id)

    # -------------------------------------- sign in --------------------------------------
    async def begin_external_sign_in(self, user_type: str | UserType) -> SignInStart:
        parsed = UserType.parse(user_type)
        if parsed is None:
            raise SignInError("Choose either dumper or collector")
        intent_key = secrets.token_urlsafe(24)
        await run_in_threadpool(self.repository.save_pending_intent, intent_key, parsed.value)
        state = encode_state(parsed, intent_key)
        url = self.provider.authorization_url(state=state, redirect_uri=self._redirect_uri())
        return SignInStart(authorization_url=url, intent_key=intent_key, state=state)

    async def complete_sign_in(
        self,
        code: str,
        *,
        state: Optional[str] = None,
        intent_key: Optional[str] = None,
    ) -> SignInResult:
        if not (code or "").strip():
            raise SignInError("Missing authorization code")
        try:
            identity = await self.provider.exchange_code(code.strip(), redirect_uri=self._redirect_uri())
        except ProviderError as exc:
            raise ProviderExchangeError(str(exc)) from exc

        # The cookie may be lost on the way back; the state nonce names the same record.
        pending = await run_in_threadpool(self._consume_intent, intent_key or decode_state_nonce(state))
        callback = CallbackState.from_identity(identity, state)
        created = False
        try:
            created = await self.resolver.ensure_profile_exists(identity, callback, pending)
        except Exception:
            # Sign-in proceeds on a fallback profile when the store misbehaves.
            logger.exception("[identity] Could not ensure profile for %s", identity.id)

        profile = await self.resolver.fetch_profile(identity.id)
        token = await run_in_threadpool(issue_session, identity.id)
        if created:
            await run_in_threadpool(self._send_welcome, profile)
        logger.info("[identity] %s signed in as %s", identity.id, profile.user_type.value)
        return SignInResult(
            profile=profile,
            session_token=token,
            created=created,
            requires_verification=requires_phone_verification(profile),
        )

    # -------------------------------------- session --------------------------------------
    async def current_user(self, session_token: Optional[str]) -> Optional[UserProfile]:
        user_id = await run_in_threadpool(user_id_for_token, session_token)
        if not user_id:
            return None
        return await self.resolver.fetch_profile(user_id)

    async def sign_out(self, user_id: Optional[str], session_token: Optional[str]) -> None:
        if session_token:
            await run_in_threadpool(delete_session, session_token)
        if user_id:
            self.resolver.forget(user_id)
            self.gates.discard(user_id)
