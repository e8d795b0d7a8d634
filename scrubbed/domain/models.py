"""
Purpose: Core data models for users, collectors and waste requests.
What it does:
Defines the shapes the services pass around, independent of the SQLAlchemy
tables that persist them.

Rule: No storage calls here. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

WASTE_TYPES = (
    "Household",
    "Electronic",
    "Organic",
    "Recyclable",
    "Hazardous",
    "Construction",
    "Garden",
    "Furniture",
)


class UserType(str, Enum):
    DUMPER = "dumper"
    COLLECTOR = "collector"

    @classmethod
    def parse(cls, value: Any) -> Optional[UserType]:
        """Return the matching member or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class RequestStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# States in which a collector must be assigned.
ASSIGNED_STATUSES = frozenset({RequestStatus.MATCHED, RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED})


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Optional[Coordinates]:
        if not data:
            return None
        try:
            return cls(lat=float(data["lat"]), lng=float(data["lng"]))
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class PendingIntent:
    """Role chosen before an external sign-in redirect."""
    user_type: UserType


@dataclass(frozen=True)
class ExternalIdentity:
    """What the identity provider tells us about a signed-in account."""
    id: str
    email: str = ""
    user_metadata: Mapping[str, Any] = field(default_factory=dict)
    app_metadata: Mapping[str, Any] = field(default_factory=dict)


# Fields a caller may change through update_profile.
PROFILE_MUTABLE_FIELDS = frozenset({"full_name", "user_type", "phone", "address", "phone_verified"})


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    full_name: Optional[str]
    user_type: UserType
    phone: Optional[str] = None
    address: Optional[str] = None
    email_verified: bool = True
    phone_verified: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def merged(self, partial: Mapping[str, Any], *, updated_at: Optional[datetime] = None) -> UserProfile:
        changes = dict(partial)
        if "user_type" in changes:
            changes["user_type"] = UserType.parse(changes["user_type"]) or self.user_type
        if updated_at is not None:
            changes["updated_at"] = updated_at
        return replace(self, **changes)


@dataclass
class CollectorProfile:
    id: str
    profile_id: str
    specializations: List[str] = field(default_factory=list)
    service_radius_km: int = 10
    is_available: bool = True
    current_location: Optional[Coordinates] = None
    rating: Optional[float] = None
    total_collections: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class RequestDraft:
    """Input for a new pickup request, before it has an id or status."""
    waste_type: str
    location: Coordinates
    address: str
    description: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    estimated_amount: Optional[str] = None
    photos: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class WasteRequest:
    id: str
    dumper_id: str
    collector_id: Optional[str]
    waste_type: str
    description: Optional[str]
    location: Coordinates
    address: str
    status: RequestStatus
    scheduled_time: Optional[datetime] = None
    estimated_amount: Optional[str] = None
    photos: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def assignment_consistent(self) -> bool:
        """collector_id is set exactly when the status requires an assigned collector."""
        return (self.collector_id is not None) == (self.status in ASSIGNED_STATUSES)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.dumper_id, self.collector_id)
