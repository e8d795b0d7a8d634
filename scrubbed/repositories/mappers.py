"""Translate SQLAlchemy entities into domain models."""

from __future__ import annotations

from scrubbed.core.utils import as_utc
from scrubbed.db import models
from scrubbed.domain.models import (
    CollectorProfile,
    Coordinates,
    RequestStatus,
    UserProfile,
    UserType,
    WasteRequest,
)


def profile_from_entity(entity: models.Profile) -> UserProfile:
    return UserProfile(
        id=entity.id,
        email=entity.email or "",
        full_name=entity.full_name,
        user_type=UserType.parse(entity.user_type) or UserType.DUMPER,
        phone=entity.phone,
        address=entity.address,
        email_verified=bool(entity.email_verified),
        phone_verified=bool(entity.phone_verified),
        created_at=as_utc(entity.created_at),
        updated_at=as_utc(entity.updated_at),
    )


def profile_to_values(profile: UserProfile) -> dict:
    return {
        "id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "user_type": profile.user_type.value,
        "phone": profile.phone,
        "address": profile.address,
        "email_verified": profile.email_verified,
        "phone_verified": profile.phone_verified,
    }


def collector_from_entity(entity: models.Collector) -> CollectorProfile:
    return CollectorProfile(
        id=entity.id,
        profile_id=entity.profile_id,
        specializations=list(entity.specializations or []),
        service_radius_km=int(entity.service_radius_km or 10),
        is_available=bool(entity.is_available),
        current_location=Coordinates.from_mapping(entity.current_location),
        rating=entity.rating,
        total_collections=int(entity.total_collections or 0),
        created_at=as_utc(entity.created_at),
        updated_at=as_utc(entity.updated_at),
    )


def request_from_entity(entity: models.WasteRequest) -> WasteRequest:
    return WasteRequest(
        id=entity.id,
        dumper_id=entity.dumper_id,
        collector_id=entity.collector_id,
        waste_type=entity.waste_type,
        description=entity.description,
        location=Coordinates.from_mapping(entity.location) or Coordinates(0.0, 0.0),
        address=entity.address,
        status=RequestStatus(entity.status),
        scheduled_time=as_utc(entity.scheduled_time),
        estimated_amount=entity.estimated_amount,
        photos=list(entity.photos or []),
        created_at=as_utc(entity.created_at),
        updated_at=as_utc(entity.updated_at),
    )
