from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from scrubbed.core.config import get_settings
from scrubbed.core.rate_limiter import rate_limit_ip
from scrubbed.domain.models import UserProfile
from scrubbed.routers.deps import (
    get_auth_service,
    get_location_trackers,
    profile_payload,
    require_user,
    verification_payload,
)
from scrubbed.services.auth_service import ProviderExchangeError, SignInError
from scrubbed.services.identity_service import ProfileWriteError
from scrubbed.services.phone_service import MessagingError
from scrubbed.services.session_service import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    set_session_cookie,
    user_id_for_token,
)
from scrubbed.services.verification import (
    CooldownActiveError,
    InvalidCodeFormatError,
    NoCodeSentError,
    VerificationBusyError,
    requires_phone_verification,
)

router = APIRouter(prefix="/auth", tags=["auth"])

INTENT_COOKIE_NAME = "signin_intent"


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    user_type: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class PhoneSendBody(BaseModel):
    phone: Optional[str] = None


class PhoneVerifyBody(BaseModel):
    code: str = ""


def _signed_in_payload(profile: UserProfile) -> dict:
    return {"user": profile_payload(profile), "requires_verification": requires_phone_verification(profile)}


@router.get("/google")
async def google_sign_in(request: Request, user_type: str = "dumper"):
    rate_limit_ip(request, "auth:google", limit=20, window_seconds=300)
    svc = get_auth_service(request)
    try:
        start = await svc.begin_external_sign_in(user_type)
    except SignInError as exc:
        raise HTTPException(400, exc.message) from exc
    settings = get_settings()
    response = RedirectResponse(start.authorization_url, status_code=303)
    response.set_cookie(
        INTENT_COOKIE_NAME,
        start.intent_key,
        httponly=True,
        secure=settings.app_env == "prod",
        samesite="lax",
        max_age=settings.pending_intent_ttl_seconds,
        path="/",
    )
    return response


@router.get("/callback")
async def sign_in_callback(request: Request, code: str = "", state: str = "", error: str = ""):
    if error:
        raise HTTPException(400, f"Sign-in was not completed: {error}")
    svc = get_auth_service(request)
    try:
        result = await svc.complete_sign_in(
            code,
            state=state or None,
            intent_key=request.cookies.get(INTENT_COOKIE_NAME),
        )
    except ProviderExchangeError as exc:
        raise HTTPException(502, exc.message) from exc
    except SignInError as exc:
        raise HTTPException(400, exc.message) from exc
    response = JSONResponse(_signed_in_payload(result.profile))
    set_session_cookie(response, result.session_token)
    response.delete_cookie(INTENT_COOKIE_NAME, path="/")
    return response


@router.post("/logout")
async def logout(request: Request):
    svc = get_auth_service(request)
    token = request.cookies.get(SESSION_COOKIE_NAME)
    user_id = await run_in_threadpool(user_id_for_token, token)
    await svc.sign_out(user_id, token)
    if user_id:
        await get_location_trackers(request).discard(user_id)
    response = JSONResponse({"ok": True})
    clear_session_cookie(response)
    return response


@router.get("/me")
async def me(user: UserProfile = Depends(require_user)):
    return _signed_in_payload(user)


@router.patch("/profile")
async def update_profile(request: Request, body: ProfileUpdate, user: UserProfile = Depends(require_user)):
    svc = get_auth_service(request)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "Nothing to update")
    if "phone" in changes and (changes["phone"] or None) != user.phone:
        changes["phone"] = changes["phone"] or None
        changes["phone_verified"] = False
        svc.gates.discard(user.id)
    try:
        profile = await svc.resolver.update_profile(user.id, changes)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    except ProfileWriteError as exc:
        raise HTTPException(502, "Could not save your profile. Try again.") from exc
    return _signed_in_payload(profile)


@router.post("/phone/send")
async def send_phone_code(request: Request, body: PhoneSendBody, user: UserProfile = Depends(require_user)):
    rate_limit_ip(request, "auth:phone", limit=5, window_seconds=300)
    svc = get_auth_service(request)
    phone = (body.phone or user.phone or "").strip()
    if not phone:
        raise HTTPException(400, "Phone number is required")
    gate = svc.gates.for_user(user.id)
    try:
        state = await gate.send_phone_verification(phone)
    except CooldownActiveError as exc:
        raise HTTPException(429, str(exc)) from exc
    except VerificationBusyError as exc:
        raise HTTPException(409, str(exc)) from exc
    except MessagingError as exc:
        raise HTTPException(502, exc.reason) from exc
    if phone != user.phone:
        try:
            await svc.resolver.update_profile(user.id, {"phone": phone, "phone_verified": False})
        except ProfileWriteError as exc:
            raise HTTPException(502, "Could not save your phone number. Try again.") from exc
    return verification_payload(state, cooldown_remaining=gate.cooldown_remaining)


@router.post("/phone/verify")
async def verify_phone_code(request: Request, body: PhoneVerifyBody, user: UserProfile = Depends(require_user)):
    svc = get_auth_service(request)
    gate = svc.gates.for_user(user.id)
    try:
        state = await gate.verify_phone_code(body.code)
    except (InvalidCodeFormatError, NoCodeSentError) as exc:
        raise HTTPException(400, str(exc)) from exc
    except VerificationBusyError as exc:
        raise HTTPException(409, str(exc)) from exc
    except MessagingError as exc:
        raise HTTPException(400, exc.reason) from exc
    except ProfileWriteError as exc:
        raise HTTPException(502, "Could not save your verification. Try again.") from exc
    return verification_payload(state, cooldown_remaining=gate.cooldown_remaining)


@router.get("/verification")
async def verification_status(request: Request, user: UserProfile = Depends(require_user)):
    gate = get_auth_service(request).gates.for_user(user.id)
    payload = verification_payload(gate.state, cooldown_remaining=gate.cooldown_remaining)
    payload["requires_verification"] = requires_phone_verification(user)
    return payload
