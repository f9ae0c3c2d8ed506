"""Profile lookups for labelling conversations."""

from __future__ import annotations

from typing import Dict, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from marketchat.models.profile import Profile, UserRole
from marketchat.schemas.conversation import ProfileRead


class ProfileService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_profiles(self, user_ids: Iterable[UUID]) -> Dict[UUID, ProfileRead]:
        """Profiles keyed by user id; users without a profile are simply missing."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        profiles = self.db.query(Profile).filter(Profile.user_id.in_(ids)).all()
        roles = {
            r.user_id: r.role
            for r in self.db.query(UserRole).filter(UserRole.user_id.in_(ids)).all()
        }
        result: Dict[UUID, ProfileRead] = {}
        for profile in profiles:
            read = ProfileRead.model_validate(profile)
            read.role = roles.get(profile.user_id)
            result[profile.user_id] = read
        return result
