"""Collector profile use cases (auto-creation, availability, last known location)."""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from scrubbed.domain.models import CollectorProfile, Coordinates
from scrubbed.repositories.mappers import collector_from_entity
from scrubbed.repositories.sql_repository import DuplicateRowError, SQLRepository

logger = logging.getLogger(__name__)

DEFAULT_SPECIALIZATIONS = ("Household", "Recyclable")
DEFAULT_SERVICE_RADIUS_KM = 10


class CollectorNotFoundError(Exception):
    """No collector profile exists for the given user."""


class CollectorService:
    def __init__(self, repository: SQLRepository | None = None) -> None:
        self.repository = repository or SQLRepository()

    async def get(self, profile_id: str) -> CollectorProfile | None:
        entity = await run_in_threadpool(self.repository.get_collector_by_profile, profile_id)
        return collector_from_entity(entity) if entity else None

    async def get_or_create(self, profile_id: str) -> CollectorProfile:
        existing = await self.get(profile_id)
        if existing:
            return existing
        try:
            entity = await run_in_threadpool(
                lambda: self.repository.insert_collector(
                    profile_id,
                    specializations=list(DEFAULT_SPECIALIZATIONS),
                    service_radius_km=DEFAULT_SERVICE_RADIUS_KM,
                )
            )
        except DuplicateRowError:
            entity = await run_in_threadpool(self.repository.get_collector_by_profile, profile_id)
        logger.info("[collector] Collector profile ready for %s", profile_id)
        return collector_from_entity(entity)

    async def set_availability(self, profile_id: str, is_available: bool) -> None:
        updated = await run_in_threadpool(
            self.repository.update_collector, profile_id, {"is_available": bool(is_available)}
        )
        if not updated:
            raise CollectorNotFoundError(f"No collector profile for {profile_id}")

    async def update_location(self, profile_id: str, location: Coordinates) -> None:
        updated = await run_in_threadpool(
            self.repository.update_collector, profile_id, {"current_location": location.to_dict()}
        )
        if not updated:
            raise CollectorNotFoundError(f"No collector profile for {profile_id}")
