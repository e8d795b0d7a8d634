"""
Request lifecycle: pending -> matched -> in_progress -> completed, and
pending -> cancelled.

Every transition is a single conditional write in the store. Nothing here
locks locally: when two callers race, the store decides and the loser reads
back what happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Union

from starlette.concurrency import run_in_threadpool

from scrubbed.domain.models import WASTE_TYPES, RequestDraft, RequestStatus, WasteRequest
from scrubbed.repositories.mappers import request_from_entity
from scrubbed.repositories.sql_repository import SQLRepository

logger = logging.getLogger(__name__)

# Collector-driven steps after a claim: target status -> required current status.
COLLECTOR_STEPS = {
    RequestStatus.IN_PROGRESS: RequestStatus.MATCHED,
    RequestStatus.COMPLETED: RequestStatus.IN_PROGRESS,
}


class LifecycleError(Exception):
    """Base class for request lifecycle failures."""


class RequestNotFoundError(LifecycleError):
    pass


class InvalidTransitionError(LifecycleError):
    pass


class NotRequestOwnerError(LifecycleError):
    pass


class InvalidRequestError(LifecycleError):
    pass


@dataclass(frozen=True)
class Claimed:
    request: WasteRequest


@dataclass(frozen=True)
class AlreadyClaimed:
    """The request was no longer pending and unassigned when the claim landed."""
    request: WasteRequest


AcceptResult = Union[Claimed, AlreadyClaimed]


class RequestLifecycle:
    def __init__(self, repository: SQLRepository | None = None) -> None:
        self.repository = repository or SQLRepository()

    async def get(self, request_id: str) -> WasteRequest:
        entity = await run_in_threadpool(self.repository.get_request, request_id)
        if entity is None:
            raise RequestNotFoundError(f"Request {request_id} not found")
        return request_from_entity(entity)

    async def visible_to(self, user_id: str, *, include_open: bool = False) -> List[WasteRequest]:
        entities = await run_in_threadpool(
            lambda: self.repository.list_requests_for(user_id, include_open=include_open)
        )
        return [request_from_entity(entity) for entity in entities]

    async def create(self, dumper_id: str, draft: RequestDraft) -> WasteRequest:
        if draft.waste_type not in WASTE_TYPES:
            raise InvalidRequestError(f"Unknown waste type: {draft.waste_type}")
        address = (draft.address or "").strip()
        if not address:
            raise InvalidRequestError("Address is required")
        values = {
            "dumper_id": dumper_id,
            "waste_type": draft.waste_type,
            "description": draft.description or None,
            "location": draft.location.to_dict(),
            "address": address,
            "scheduled_time": draft.scheduled_time,
            "estimated_amount": draft.estimated_amount or None,
            "photos": list(draft.photos or []),
        }
        entity = await run_in_threadpool(self.repository.insert_request, values)
        logger.info("[lifecycle] Request %s created by %s", entity.id, dumper_id)
        return request_from_entity(entity)

    async def accept(self, request_id: str, collector_id: str) -> AcceptResult:
        """Claim a pending request. Losing a race yields AlreadyClaimed, not an error."""
        current = await self.get(request_id)
        if current.dumper_id == collector_id:
            raise InvalidTransitionError("You cannot accept your own request")
        won = await run_in_threadpool(self.repository.accept_request, request_id, collector_id)
        latest = await self.get(request_id)
        if not won and latest.collector_id is None:
            raise InvalidTransitionError(f"Cannot accept a request that is {latest.status.value}")
        if not won:
            logger.info("[lifecycle] Request %s already claimed (by %s)", request_id, latest.collector_id)
            return AlreadyClaimed(request=latest)
        logger.info("[lifecycle] Request %s claimed by %s", request_id, collector_id)
        return Claimed(request=latest)

    async def advance(self, request_id: str, collector_id: str, next_status: RequestStatus | str) -> WasteRequest:
        try:
            target = RequestStatus(next_status)
        except ValueError as exc:
            raise InvalidTransitionError(f"Unknown status: {next_status}") from exc
        required = COLLECTOR_STEPS.get(target)
        if required is None:
            raise InvalidTransitionError(f"Collectors cannot move a request to {target.value}")
        moved = await run_in_threadpool(
            lambda: self.repository.transition_request(
                request_id,
                from_status=required.value,
                to_status=target.value,
                collector_id=collector_id,
            )
        )
        latest = await self.get(request_id)
        if not moved:
            if latest.collector_id is not None and latest.collector_id != collector_id:
                raise NotRequestOwnerError("Only the assigned collector can update this request")
            raise InvalidTransitionError(f"Cannot move request from {latest.status.value} to {target.value}")
        if target == RequestStatus.COMPLETED:
            await run_in_threadpool(self.repository.increment_collections, collector_id)
        logger.info("[lifecycle] Request %s moved to %s", request_id, target.value)
        return latest

    async def cancel(self, request_id: str, dumper_id: str) -> WasteRequest:
        moved = await run_in_threadpool(
            lambda: self.repository.transition_request(
                request_id,
                from_status=RequestStatus.PENDING.value,
                to_status=RequestStatus.CANCELLED.value,
                dumper_id=dumper_id,
            )
        )
        latest = await self.get(request_id)
        if not moved:
            if latest.dumper_id != dumper_id:
                raise NotRequestOwnerError("Only the requester can cancel this request")
            raise InvalidTransitionError(f"Cannot cancel a request that is {latest.status.value}")
        logger.info("[lifecycle] Request %s cancelled", request_id)
        return latest
