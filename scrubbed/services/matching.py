"""
Purpose: Filter the shared request pool into per-user working sets.

available_requests: open work a collector may claim, nearest first.
my_requests: everything a user owns or holds, regardless of distance.

Rule: Pure functions over already-fetched requests. No storage calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from scrubbed.domain.geo import haversine_km
from scrubbed.domain.models import Coordinates, RequestStatus, WasteRequest

DEFAULT_RADIUS_KM = 4.0


@dataclass(frozen=True)
class NearbyRequest:
    request: WasteRequest
    distance_km: float


def is_claimable_by(request: WasteRequest, user_id: str) -> bool:
    return (
        request.status == RequestStatus.PENDING
        and request.collector_id is None
        and request.dumper_id != user_id
    )


def available_requests(
    pool: Iterable[WasteRequest],
    user_id: str,
    here: Optional[Coordinates],
    *,
    radius_km: float = DEFAULT_RADIUS_KM,
) -> List[NearbyRequest]:
    """Claimable requests within radius_km of here. Empty when here is unknown."""
    if here is None:
        return []
    matches: List[NearbyRequest] = []
    for request in pool:
        if not is_claimable_by(request, user_id):
            continue
        distance = haversine_km(here, request.location)
        if distance <= radius_km:
            matches.append(NearbyRequest(request=request, distance_km=distance))
    matches.sort(key=lambda match: match.distance_km)
    return matches


def my_requests(pool: Iterable[WasteRequest], user_id: str) -> List[WasteRequest]:
    return [request for request in pool if request.involves(user_id)]
