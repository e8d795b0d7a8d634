"""
Phone verification gate.

unverified -> verifying -> sent -> verifying -> verified, with error reachable
from the sending/verifying steps. The state object is owned by the gate and
only changes through its methods.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from scrubbed.core.config import get_settings
from scrubbed.domain.models import UserProfile
from scrubbed.services.phone_service import MessagingError, PhoneMessenger

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"\d{6}")


class VerificationError(Exception):
    """Base class for verification gate failures."""


class InvalidCodeFormatError(VerificationError):
    pass


class CooldownActiveError(VerificationError):
    def __init__(self, remaining_seconds: int):
        super().__init__(f"Wait {remaining_seconds}s before requesting another code")
        self.remaining_seconds = remaining_seconds


class VerificationBusyError(VerificationError):
    """Another send/verify is still running for this user."""


class NoCodeSentError(VerificationError):
    pass


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    SENT = "sent"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    ERROR = "error"


@dataclass(frozen=True)
class VerificationState:
    status: VerificationStatus = VerificationStatus.UNVERIFIED
    phone_sent: bool = False
    phone_verified: bool = False
    is_verifying: bool = False
    error: Optional[str] = None


class ProfileUpdater(Protocol):
    async def update_profile(self, user_id: str, partial: Mapping[str, Any]) -> UserProfile:
        ...


def requires_phone_verification(profile: Optional[UserProfile]) -> bool:
    """A user must verify before reaching a dashboard iff a phone is on file and not yet verified."""
    if profile is None:
        return False
    return bool((profile.phone or "").strip()) and not profile.phone_verified


class VerificationGate:
    def __init__(
        self,
        user_id: str,
        messenger: PhoneMessenger,
        profiles: ProfileUpdater,
        *,
        cooldown_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_id = user_id
        self.messenger = messenger
        self.profiles = profiles
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else get_settings().phone_resend_cooldown_seconds
        )
        self._clock = clock
        self._state = VerificationState()
        self._resend_at = 0.0
        # Set once the messenger accepts a code; the code is spent server-side after that.
        self._accepted_code: Optional[str] = None

    @property
    def state(self) -> VerificationState:
        return self._state

    @property
    def cooldown_remaining(self) -> int:
        remaining = self._resend_at - self._clock()
        return max(0, int(remaining + 0.999))

    def _move(self, **changes) -> None:
        self._state = replace(self._state, **changes)

    def _fail(self, exc: Exception, default: str) -> None:
        reason = exc.reason if isinstance(exc, MessagingError) else (str(exc) or default)
        self._move(status=VerificationStatus.ERROR, is_verifying=False, error=reason)

    async def send_phone_verification(self, phone: str) -> VerificationState:
        if self._state.is_verifying:
            raise VerificationBusyError("A verification request is already in progress")
        remaining = self.cooldown_remaining
        if remaining:
            raise CooldownActiveError(remaining)
        self._move(status=VerificationStatus.VERIFYING, is_verifying=True, error=None)
        try:
            await self.messenger.send(self.user_id, phone)
        except Exception as exc:
            self._fail(exc, "Failed to send phone verification")
            logger.warning("[verify] Sending code to user %s failed: %s", self.user_id, self._state.error)
            raise
        self._accepted_code = None
        self._resend_at = self._clock() + self.cooldown_seconds
        self._move(status=VerificationStatus.SENT, phone_sent=True, is_verifying=False)
        return self._state

    async def verify_phone_code(self, code: str) -> VerificationState:
        code = (code or "").strip()
        if not CODE_PATTERN.fullmatch(code):
            raise InvalidCodeFormatError("Enter the 6-digit code")
        if self._state.is_verifying:
            raise VerificationBusyError("A verification request is already in progress")
        if not self._state.phone_sent:
            raise NoCodeSentError("Request a verification code first")
        self._move(status=VerificationStatus.VERIFYING, is_verifying=True, error=None)
        try:
            if code != self._accepted_code:
                await self.messenger.verify_code(self.user_id, code)
                self._accepted_code = code
            await self.profiles.update_profile(self.user_id, {"phone_verified": True})
        except Exception as exc:
            self._fail(exc, "Failed to verify phone code")
            raise
        self._move(status=VerificationStatus.VERIFIED, phone_verified=True, is_verifying=False)
        return self._state

    def reset(self) -> None:
        self._state = VerificationState()
        self._resend_at = 0.0
        self._accepted_code = None


class VerificationGates:
    """One gate per signed-in user, dropped on sign-out."""

    def __init__(self, messenger: PhoneMessenger, profiles: ProfileUpdater, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.messenger = messenger
        self.profiles = profiles
        self._clock = clock
        self._gates: Dict[str, VerificationGate] = {}

    def for_user(self, user_id: str) -> VerificationGate:
        gate = self._gates.get(user_id)
        if gate is None:
            gate = VerificationGate(user_id, self.messenger, self.profiles, clock=self._clock)
            self._gates[user_id] = gate
        return gate

    def discard(self, user_id: str) -> None:
        gate = self._gates.pop(user_id, None)
        if gate is not None:
            gate.reset()
