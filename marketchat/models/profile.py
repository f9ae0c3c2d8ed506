"""Marketplace profile and role models, used to label conversations."""

from __future__ import annotations

import enum
import uuid

from sqlalchemy import Boolean, Column, Enum, Float, String, Text, Uuid

from marketchat.config import get_settings
from marketchat.db import Base
from marketchat.models.mixins import TimestampMixin


class AppRole(str, enum.Enum):
    ADMIN = "admin"
    FARMER = "farmer"
    BUYER = "buyer"


class Profile(Base, TimestampMixin):
    """Public profile of an authenticated user (one per user_id)."""

    __tablename__ = get_settings().profiles_table

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, unique=True, nullable=False, index=True)
    full_name = Column(String(256), nullable=False)
    avatar_url = Column(String(1024), nullable=True)
    phone_number = Column(String(64), nullable=True)
    location = Column(String(256), nullable=True)
    district = Column(String(128), nullable=True)
    business_type = Column(String(128), nullable=True)
    farm_size = Column(Float, nullable=True)
    bio = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)


class UserRole(Base, TimestampMixin):
    __tablename__ = "user_roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    role = Column(
        Enum(AppRole, name="app_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
