from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from scrubbed.domain.models import Coordinates, UserProfile, UserType
from scrubbed.routers.deps import (
    collector_payload,
    get_collector_service,
    get_location_trackers,
    require_role,
    require_user,
    tracker_payload,
)
from scrubbed.services.geolocation import PositionErrorKind

router = APIRouter(prefix="/collectors", tags=["collectors"])


class AvailabilityBody(BaseModel):
    is_available: bool


class LocationBody(BaseModel):
    """A device fix, or the reason the device could not produce one."""

    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    error: Optional[PositionErrorKind] = None


@router.get("/me")
async def my_collector_profile(request: Request, user: UserProfile = Depends(require_user)):
    require_role(user, UserType.COLLECTOR)
    collector = await get_collector_service(request).get_or_create(user.id)
    return collector_payload(collector)


@router.post("/me/availability")
async def set_availability(request: Request, body: AvailabilityBody, user: UserProfile = Depends(require_user)):
    require_role(user, UserType.COLLECTOR)
    svc = get_collector_service(request)
    await svc.get_or_create(user.id)
    await svc.set_availability(user.id, body.is_available)
    await get_location_trackers(request).for_collector(user.id).set_available(body.is_available)
    return collector_payload(await svc.get_or_create(user.id))


@router.post("/me/location")
async def update_location(request: Request, body: LocationBody, user: UserProfile = Depends(require_user)):
    require_role(user, UserType.COLLECTOR)
    collector = await get_collector_service(request).get_or_create(user.id)
    trackers = get_location_trackers(request)
    if body.error is not None:
        tracker = await trackers.report_failure(user.id, body.error)
    elif body.lat is None or body.lng is None:
        raise HTTPException(400, "lat and lng are required")
    else:
        coords = Coordinates(lat=body.lat, lng=body.lng)
        tracker = await trackers.report(user.id, coords, available=collector.is_available)
    return tracker_payload(tracker)
