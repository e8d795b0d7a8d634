"""Shared router helpers: service lookup on app.state, session guard, JSON payloads."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, Request

from scrubbed.domain.models import CollectorProfile, UserProfile, UserType, WasteRequest
from scrubbed.services.auth_service import AuthService
from scrubbed.services.collector_service import CollectorService
from scrubbed.services.geolocation import CollectorTrackers, GeolocationTracker
from scrubbed.services.lifecycle import RequestLifecycle
from scrubbed.services.session_service import SESSION_COOKIE_NAME
from scrubbed.services.verification import VerificationState


def _state_service(request: Request, name: str):
    svc = getattr(getattr(request.app, "state", None), name, None)
    if not svc:
        raise RuntimeError(f"{name} is not configured")
    return svc


def get_auth_service(request: Request) -> AuthService:
    return _state_service(request, "auth_service")


def get_lifecycle(request: Request) -> RequestLifecycle:
    return _state_service(request, "request_lifecycle")


def get_collector_service(request: Request) -> CollectorService:
    return _state_service(request, "collector_service")


def get_location_trackers(request: Request) -> CollectorTrackers:
    return _state_service(request, "location_trackers")


async def require_user(request: Request) -> UserProfile:
    """FastAPI dependency: the signed-in profile, or 401."""
    profile = await get_auth_service(request).current_user(request.cookies.get(SESSION_COOKIE_NAME))
    if profile is None:
        raise HTTPException(401, "Sign in required")
    return profile


def require_role(user: UserProfile, role: UserType) -> None:
    if user.user_type != role:
        raise HTTPException(403, f"Only {role.value}s can do this")


def profile_payload(profile: UserProfile) -> Dict[str, Any]:
    return {
        "id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "user_type": profile.user_type.value,
        "phone": profile.phone,
        "address": profile.address,
        "email_verified": profile.email_verified,
        "phone_verified": profile.phone_verified,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }


def request_payload(item: WasteRequest, *, distance_km: float | None = None) -> Dict[str, Any]:
    data = {
        "id": item.id,
        "dumper_id": item.dumper_id,
        "collector_id": item.collector_id,
        "waste_type": item.waste_type,
        "description": item.description,
        "location": item.location.to_dict(),
        "address": item.address,
        "status": item.status.value,
        "scheduled_time": item.scheduled_time.isoformat() if item.scheduled_time else None,
        "estimated_amount": item.estimated_amount,
        "photos": list(item.photos),
        "created_at": item.created_at.isoformat() if item.created_at else None,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }
    if distance_km is not None:
        data["distance_km"] = round(distance_km, 2)
    return data


def collector_payload(collector: CollectorProfile) -> Dict[str, Any]:
    location = collector.current_location
    return {
        "id": collector.id,
        "profile_id": collector.profile_id,
        "specializations": list(collector.specializations),
        "service_radius_km": collector.service_radius_km,
        "is_available": collector.is_available,
        "current_location": location.to_dict() if location else None,
        "rating": collector.rating,
        "total_collections": collector.total_collections,
    }


def tracker_payload(tracker: GeolocationTracker) -> Dict[str, Any]:
    coords = tracker.coordinates
    return {
        "ok": tracker.error is None,
        "location": coords.to_dict() if coords else None,
        "error": tracker.error,
        "error_kind": tracker.error_kind.value if tracker.error_kind else None,
        "refreshing": tracker.refreshing,
    }


def verification_payload(state: VerificationState, *, cooldown_remaining: int = 0) -> Dict[str, Any]:
    return {
        "status": state.status.value,
        "phone_sent": state.phone_sent,
        "phone_verified": state.phone_verified,
        "is_verifying": state.is_verifying,
        "error": state.error,
        "cooldown_remaining": cooldown_remaining,
    }
