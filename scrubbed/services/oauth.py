"""
External identity provider adapter and the opaque redirect state format.

The provider is consumed as two capabilities: build the URL that starts the
redirect, and exchange the returned code for an identity.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from typing import Optional, Protocol
from urllib.parse import urlencode

import requests
from starlette.concurrency import run_in_threadpool

from scrubbed.core.config import Settings, get_settings
from scrubbed.domain.models import ExternalIdentity, UserType

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class ProviderError(Exception):
    """The identity provider refused the exchange or could not be reached."""


class IdentityProvider(Protocol):
    def authorization_url(self, *, state: str, redirect_uri: str) -> str:
        ...

    async def exchange_code(self, code: str, *, redirect_uri: str) -> ExternalIdentity:
        ...


def encode_state(user_type: UserType, nonce: str) -> str:
    payload = {"user_type": user_type.value, "nonce": nonce, "timestamp": int(time.time() * 1000)}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def _decode_state(state: Optional[str]) -> Optional[dict]:
    if not state:
        return None
    raw = state.strip()
    raw += "=" * (-len(raw) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(raw.encode()).decode())
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.debug("[identity] Ignoring undecodable redirect state")
        return None
    return data if isinstance(data, dict) else None


def decode_state_user_type(state: Optional[str]) -> Optional[UserType]:
    """Best-effort read of the user type carried in a redirect state value."""
    data = _decode_state(state)
    return UserType.parse(data.get("user_type")) if data else None


def decode_state_nonce(state: Optional[str]) -> Optional[str]:
    data = _decode_state(state)
    nonce = data.get("nonce") if data else None
    return str(nonce) if nonce else None


class GoogleIdentityProvider:
    """OAuth2 authorization-code flow against Google."""

    def __init__(self, settings: Settings | None = None, *, timeout: int = 10) -> None:
        self.settings = settings or get_settings()
        self.timeout = timeout

    def authorization_url(self, *, state: str, redirect_uri: str) -> str:
        query = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(query)}"

    def _exchange(self, code: str, redirect_uri: str) -> ExternalIdentity:
        try:
            token_resp = requests.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
                timeout=self.timeout,
            )
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise ProviderError("Provider returned no access token")
            info_resp = requests.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
            info_resp.raise_for_status()
            info = info_resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise ProviderError(f"Identity exchange failed: {exc}") from exc
        subject = info.get("sub")
        if not subject:
            raise ProviderError("Provider returned no subject id")
        return ExternalIdentity(id=str(subject), email=info.get("email") or "", user_metadata=info, app_metadata={})

    async def exchange_code(self, code: str, *, redirect_uri: str) -> ExternalIdentity:
        return await run_in_threadpool(self._exchange, code, redirect_uri)
