"""
Phone verification backend: the messaging capability behind the verification gate.

Codes are six digits, stored only as Argon2 hashes and valid for
PHONE_CODE_TTL_SECONDS. Delivery goes through the SMS adapter.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from scrubbed.core.config import get_settings
from scrubbed.core.security import hash_secret, numeric_code, verify_secret
from scrubbed.core.sms import SmsNotConfiguredError, send_sms
from scrubbed.core.utils import as_utc, utcnow
from scrubbed.repositories.sql_repository import SQLRepository

logger = logging.getLogger(__name__)


class MessagingError(Exception):
    """Messaging capability failure with a reason the user can act on."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PhoneMessenger(Protocol):
    async def send(self, user_id: str, phone: str) -> None:
        ...

    async def verify_code(self, user_id: str, code: str) -> None:
        ...


def normalize_phone(phone: str | None) -> str:
    raw = (phone or "").strip()
    digits = "".join(ch for ch in raw if ch.isdigit())
    if not digits:
        return ""
    return f"+{digits}" if raw.startswith("+") else digits


class PhoneVerificationService:
    """Stores hashed codes and sends them by SMS."""

    def __init__(self, repository: SQLRepository | None = None, sms_sender=send_sms) -> None:
        self.settings = get_settings()
        self.repository = repository or SQLRepository()
        self.sms_sender = sms_sender

    def _send(self, user_id: str, phone: str) -> None:
        code = numeric_code(6)
        ttl = self.settings.phone_code_ttl_seconds
        expires_at = utcnow() + timedelta(seconds=ttl)
        self.repository.create_phone_verification(user_id, phone, hash_secret(code), expires_at)
        body = f"Your Scrubbed verification code is: {code}. This code expires in {max(1, ttl // 60)} minutes."
        try:
            delivered = self.sms_sender(phone, body)
        except SmsNotConfiguredError as exc:
            raise MessagingError(str(exc)) from exc
        if not delivered:
            raise MessagingError("Failed to send SMS")

    async def send(self, user_id: str, phone: str) -> None:
        normalized = normalize_phone(phone)
        if not normalized:
            raise MessagingError("Phone number is required")
        await run_in_threadpool(self._send, user_id, normalized)

    def _verify(self, user_id: str, code: str) -> None:
        now = utcnow()
        for entry in self.repository.list_open_phone_verifications(user_id):
            if as_utc(entry.expires_at) < now:
                continue
            if verify_secret(code, entry.code_hash):
                self.repository.mark_phone_verified(entry.id)
                self.repository.delete_other_phone_verifications(user_id, entry.id)
                return
        raise MessagingError("Invalid or expired verification code")

    async def verify_code(self, user_id: str, code: str) -> None:
        if not (code or "").strip():
            raise MessagingError("Verification code is required")
        await run_in_threadpool(self._verify, user_id, code.strip())
