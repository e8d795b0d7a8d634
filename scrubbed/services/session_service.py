"""Session helpers (issue tokens, cookies, validation)."""
from __future__ import annotations

import secrets
from datetime import timedelta

from fastapi import Response

from scrubbed.core.config import get_settings
from scrubbed.core.utils import as_utc, utcnow
from scrubbed.db.models import UserSession
from scrubbed.db.session import get_session

SESSION_COOKIE_NAME = "session"


def issue_session(user_id: str) -> str:
    """Create a new session token and persist it in the SQL store."""
    token = secrets.token_urlsafe(32)
    settings = get_settings()
    ttl = max(60, settings.session_ttl_seconds)
    expires_at = utcnow() + timedelta(seconds=ttl)

    with get_session() as session:
        session.add(UserSession(token=token, user_id=user_id, expires_at=expires_at))
        session.commit()
    return token


def user_id_for_token(token: str | None) -> str | None:
    """Return the user id behind a session token, dropping it if expired."""
    if not token:
        return None

    with get_session() as session:
        db_session = session.get(UserSession, token)
        if db_session:
            if db_session.expires_at and as_utc(db_session.expires_at) < utcnow():
                session.delete(db_session)
                session.commit()
                return None
            return db_session.user_id

    return None


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    secure_cookie = settings.app_env == "prod"
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        httponly=True,
        secure=secure_cookie,
        samesite="lax",
        max_age=settings.session_ttl_seconds,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")


def delete_session(token: str) -> None:
    """Remove a session token from persistent stores."""
    if not token:
        return
    with get_session() as session:
        entity = session.get(UserSession, token)
        if entity:
            session.delete(entity)
            session.commit()
