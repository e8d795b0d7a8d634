from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from scrubbed.core.config import get_settings
from scrubbed.domain.models import Coordinates, RequestDraft, UserProfile, UserType
from scrubbed.routers.deps import (
    get_collector_service,
    get_lifecycle,
    request_payload,
    require_role,
    require_user,
)
from scrubbed.services.lifecycle import (
    AlreadyClaimed,
    InvalidRequestError,
    InvalidTransitionError,
    LifecycleError,
    NotRequestOwnerError,
    RequestNotFoundError,
)
from scrubbed.services.matching import available_requests, my_requests

router = APIRouter(prefix="/requests", tags=["requests"])


class RequestCreate(BaseModel):
    waste_type: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str
    description: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    estimated_amount: Optional[str] = None
    photos: List[str] = Field(default_factory=list)


class StatusChange(BaseModel):
    status: str


def _lifecycle_http_error(exc: LifecycleError) -> HTTPException:
    if isinstance(exc, RequestNotFoundError):
        return HTTPException(404, "Request not found")
    if isinstance(exc, NotRequestOwnerError):
        return HTTPException(403, str(exc))
    if isinstance(exc, InvalidRequestError):
        return HTTPException(400, str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(409, str(exc))
    return HTTPException(400, str(exc))


@router.get("/available")
async def list_available(
    request: Request,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    user: UserProfile = Depends(require_user),
):
    require_role(user, UserType.COLLECTOR)
    here = Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None
    if here is None:
        collector = await get_collector_service(request).get(user.id)
        here = collector.current_location if collector else None
    pool = await get_lifecycle(request).visible_to(user.id, include_open=True)
    matches = available_requests(pool, user.id, here, radius_km=get_settings().match_radius_km)
    return {
        "location_known": here is not None,
        "requests": [request_payload(match.request, distance_km=match.distance_km) for match in matches],
    }


@router.get("/mine")
async def list_mine(request: Request, user: UserProfile = Depends(require_user)):
    pool = await get_lifecycle(request).visible_to(user.id)
    return {"requests": [request_payload(item) for item in my_requests(pool, user.id)]}


@router.post("", status_code=201)
async def create_request(request: Request, body: RequestCreate, user: UserProfile = Depends(require_user)):
    require_role(user, UserType.DUMPER)
    draft = RequestDraft(
        waste_type=body.waste_type,
        location=Coordinates(lat=body.lat, lng=body.lng),
        address=body.address,
        description=body.description,
        scheduled_time=body.scheduled_time,
        estimated_amount=body.estimated_amount,
        photos=list(body.photos),
    )
    try:
        created = await get_lifecycle(request).create(user.id, draft)
    except LifecycleError as exc:
        raise _lifecycle_http_error(exc) from exc
    return request_payload(created)


@router.post("/{request_id}/accept")
async def accept_request(request_id: str, request: Request, user: UserProfile = Depends(require_user)):
    require_role(user, UserType.COLLECTOR)
    try:
        result = await get_lifecycle(request).accept(request_id, user.id)
    except LifecycleError as exc:
        raise _lifecycle_http_error(exc) from exc
    if isinstance(result, AlreadyClaimed):
        return JSONResponse(
            {"claimed": False, "detail": "This request is no longer available"},
            status_code=409,
        )
    return {"claimed": True, "request": request_payload(result.request)}


@router.post("/{request_id}/status")
async def change_status(
    request_id: str,
    request: Request,
    body: StatusChange,
    user: UserProfile = Depends(require_user),
):
    try:
        updated = await get_lifecycle(request).advance(request_id, user.id, body.status)
    except LifecycleError as exc:
        raise _lifecycle_http_error(exc) from exc
    return request_payload(updated)


@router.post("/{request_id}/cancel")
async def cancel_request(request_id: str, request: Request, user: UserProfile = Depends(require_user)):
    try:
        cancelled = await get_lifecycle(request).cancel(request_id, user.id)
    except LifecycleError as exc:
        raise _lifecycle_http_error(exc) from exc
    return request_payload(cancelled)
