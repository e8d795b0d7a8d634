"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError

from scrubbed.db.models import (
    Collector,
    PendingIntent,
    PhoneVerification,
    Profile,
    WasteRequest,
)
from scrubbed.db.session import get_session


class StoreError(Exception):
    """Base class for repository failures that are not plain SQLAlchemy errors."""


class DuplicateRowError(StoreError):
    """An insert hit an existing primary/unique key."""


def _new_id() -> str:
    return str(uuid.uuid4())


class SQLRepository:
    """
    Row-level get/insert/update helpers wrapping the SQLAlchemy session.

    A missing row is reported as None, never as an exception. Conditional
    updates return whether the precondition held (rowcount == 1).
    """

    # -------------------------- profiles --------------------------
    def get_profile(self, profile_id: str) -> Optional[Profile]:
        with get_session() as session:
            return session.get(Profile, profile_id)

    def insert_profile(self, values: dict) -> Profile:
        now = datetime.now(timezone.utc)
        entity = Profile(created_at=now, updated_at=now, **values)
        with get_session() as session:
            session.add(entity)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRowError(f"Profile {values.get('id')} already exists") from exc
            return entity

    def update_profile(self, profile_id: str, values: dict) -> bool:
        with get_session() as session:
            stmt = (
                update(Profile)
                .where(Profile.id == profile_id)
                .values(**values, updated_at=datetime.now(timezone.utc))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    # -------------------------- collectors --------------------------
    def get_collector_by_profile(self, profile_id: str) -> Optional[Collector]:
        with get_session() as session:
            stmt = select(Collector).where(Collector.profile_id == profile_id)
            return session.execute(stmt).scalar_one_or_none()

    def insert_collector(
        self,
        profile_id: str,
        *,
        specializations: list[str],
        service_radius_km: int,
        is_available: bool = True,
    ) -> Collector:
        now = datetime.now(timezone.utc)
        entity = Collector(
            id=_new_id(),
            profile_id=profile_id,
            specializations=list(specializations),
            service_radius_km=service_radius_km,
            is_available=is_available,
            current_location=None,
            rating=None,
            total_collections=0,
            created_at=now,
            updated_at=now,
        )
        with get_session() as session:
            session.add(entity)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRowError(f"Collector for {profile_id} already exists") from exc
            return entity

    def update_collector(self, profile_id: str, values: dict) -> bool:
        with get_session() as session:
            stmt = (
                update(Collector)
                .where(Collector.profile_id == profile_id)
                .values(**values, updated_at=datetime.now(timezone.utc))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def increment_collections(self, profile_id: str) -> None:
        with get_session() as session:
            stmt = (
                update(Collector)
                .where(Collector.profile_id == profile_id)
                .values(total_collections=Collector.total_collections + 1)
            )
            session.execute(stmt)
            session.commit()

    # -------------------------- waste requests --------------------------
    def get_request(self, request_id: str) -> Optional[WasteRequest]:
        with get_session() as session:
            return session.get(WasteRequest, request_id)

    def list_requests_for(self, user_id: str, *, include_open: bool = False) -> list[WasteRequest]:
        """Requests the user owns or holds, plus every pending one when include_open is set."""
        conditions = [WasteRequest.dumper_id == user_id, WasteRequest.collector_id == user_id]
        if include_open:
            conditions.append(WasteRequest.status == "pending")
        with get_session() as session:
            stmt = select(WasteRequest).where(or_(*conditions)).order_by(WasteRequest.created_at.desc())
            return list(session.execute(stmt).scalars().all())

    def insert_request(self, values: dict) -> WasteRequest:
        values = dict(values)
        now = datetime.now(timezone.utc)
        entity = WasteRequest(
            id=values.pop("id", None) or _new_id(),
            status="pending",
            collector_id=None,
            created_at=now,
            updated_at=now,
            **values,
        )
        with get_session() as session:
            session.add(entity)
            session.commit()
            return entity

    def accept_request(self, request_id: str, collector_id: str) -> bool:
        """Compare-and-swap claim: only a pending, unassigned request is taken."""
        with get_session() as session:
            stmt = (
                update(WasteRequest)
                .where(
                    WasteRequest.id == request_id,
                    WasteRequest.status == "pending",
                    WasteRequest.collector_id.is_(None),
                )
                .values(collector_id=collector_id, status="matched", updated_at=datetime.now(timezone.utc))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def transition_request(
        self,
        request_id: str,
        *,
        from_status: str,
        to_status: str,
        collector_id: str | None = None,
        dumper_id: str | None = None,
    ) -> bool:
        """Move a request between statuses if it is still in from_status and held by the given party."""
        conditions = [WasteRequest.id == request_id, WasteRequest.status == from_status]
        if collector_id is not None:
            conditions.append(WasteRequest.collector_id == collector_id)
        if dumper_id is not None:
            conditions.append(WasteRequest.dumper_id == dumper_id)
        with get_session() as session:
            stmt = (
                update(WasteRequest)
                .where(*conditions)
                .values(status=to_status, updated_at=datetime.now(timezone.utc))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    # -------------------------- pending intents --------------------------
    def save_pending_intent(self, key: str, user_type: str) -> None:
        entity = PendingIntent(key=key, user_type=user_type, created_at=datetime.now(timezone.utc))
        with get_session() as session:
            session.merge(entity)
            session.commit()

    def consume_pending_intent(self, key: str) -> Optional[PendingIntent]:
        """Read-once: the row is deleted in the same transaction it is read."""
        with get_session() as session:
            entity = session.get(PendingIntent, key)
            if not entity:
                return None
            session.delete(entity)
            session.commit()
            return entity

    # -------------------------- phone verifications --------------------------
    def create_phone_verification(self, user_id: str, phone: str, code_hash: str, expires_at: datetime) -> str:
        entity = PhoneVerification(
            id=_new_id(),
            user_id=user_id,
            phone=phone,
            code_hash=code_hash,
            expires_at=expires_at,
            verified=False,
            created_at=datetime.now(timezone.utc),
        )
        with get_session() as session:
            session.add(entity)
            session.commit()
            return entity.id

    def list_open_phone_verifications(self, user_id: str) -> list[PhoneVerification]:
        with get_session() as session:
            stmt = (
                select(PhoneVerification)
                .where(PhoneVerification.user_id == user_id, PhoneVerification.verified.is_(False))
                .order_by(PhoneVerification.created_at.desc())
            )
            return list(session.execute(stmt).scalars().all())

    def mark_phone_verified(self, verification_id: str) -> None:
        with get_session() as session:
            stmt = update(PhoneVerification).where(PhoneVerification.id == verification_id).values(verified=True)
            session.execute(stmt)
            session.commit()

    def delete_other_phone_verifications(self, user_id: str, keep_id: str) -> None:
        with get_session() as session:
            stmt = delete(PhoneVerification).where(
                PhoneVerification.user_id == user_id,
                PhoneVerification.id != keep_id,
            )
            session.execute(stmt)
            session.commit()
