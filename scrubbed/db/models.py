"""SQLAlchemy models for profiles, collectors, requests and auth bookkeeping."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    JSON,
    func,
)
from sqlalchemy.orm import relationship

from .session import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, default="")
    full_name = Column(String(255), nullable=True)
    user_type = Column(String(16), nullable=False, default="dumper")
    phone = Column(String(32), nullable=True)
    address = Column(Text, nullable=True)
    email_verified = Column(Boolean, default=True, nullable=False)
    phone_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    collector = relationship("Collector", uselist=False, back_populates="profile", cascade="all,delete-orphan")


class Collector(Base):
    __tablename__ = "collectors"

    id = Column(String(64), primary_key=True)
    profile_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), unique=True, nullable=False)
    specializations = Column(JSON, default=list, nullable=False)
    service_radius_km = Column(Integer, default=10, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    current_location = Column(JSON, nullable=True)
    rating = Column(Float, nullable=True)
    total_collections = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    profile = relationship("Profile", back_populates="collector")


class WasteRequest(Base):
    __tablename__ = "waste_requests"

    id = Column(String(64), primary_key=True)
    dumper_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    collector_id = Column(String(64), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    waste_type = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(JSON, nullable=False)
    address = Column(Text, nullable=False)
    status = Column(String(16), default="pending", nullable=False, index=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    estimated_amount = Column(String(64), nullable=True)
    price = Column(Float, nullable=True)
    photos = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class PendingIntent(Base):
    __tablename__ = "pending_intents"

    key = Column(String(128), primary_key=True)
    user_type = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PhoneVerification(Base):
    __tablename__ = "phone_verifications"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    phone = Column(String(32), nullable=False)
    code_hash = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class UserSession(Base):
    __tablename__ = "sessions"

    token = Column(String(128), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
