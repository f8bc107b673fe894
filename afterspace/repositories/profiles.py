import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from afterspace.errors import InvalidInputError
from afterspace.keys import EntityType, format_instant, normalize_id, utcnow
from afterspace.models import ProfileStatus, UserProfile, is_type, mutable_attributes

logger = logging.getLogger(__name__)

_is_profile = is_type(EntityType.USER_PROFILE)


class ProfileRepository:
    """User profiles, keyed by the raw user id.

    The partition is shared with the user's experience join rows, so every
    read filters on the entity type before taking the newest row.
    """

    def __init__(self, store):
        self.store = store

    def save(self, profile: UserProfile, now: Optional[datetime] = None) -> UserProfile:
        user_id = normalize_id(profile.user_id)
        if user_id is None:
            raise InvalidInputError("user id is required")
        now = now or utcnow()
        existing = self.store.latest(user_id, _is_profile)

        if existing is None:
            created = replace(
                profile,
                user_id=user_id,
                status=profile.status or ProfileStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self.store.insert(created.to_item())
            logger.info("created profile %s", user_id)
            return created

        fields = mutable_attributes(replace(profile, user_id=user_id, created_at=None).to_item())
        fields["updatedAt"] = format_instant(now)
        updated = self.store.update_fields(existing["pk"], existing["sk"], fields)
        logger.info("updated profile %s (%s)", user_id, ", ".join(sorted(fields)))
        return UserProfile.from_item(updated)

    def find_by_id_including_deleted(self, user_id) -> Optional[UserProfile]:
        user_id = normalize_id(user_id)
        if user_id is None:
            return None
        item = self.store.latest(user_id, _is_profile)
        return UserProfile.from_item(item) if item else None

    def find_by_id(self, user_id) -> Optional[UserProfile]:
        profile = self.find_by_id_including_deleted(user_id)
        if profile is None or profile.deleted:
            return None
        return profile

    def exists(self, user_id, include_deleted: bool = False) -> bool:
        if include_deleted:
            return self.find_by_id_including_deleted(user_id) is not None
        return self.find_by_id(user_id) is not None

    def soft_delete(self, user_id, now: Optional[datetime] = None) -> bool:
        return self._set_status(user_id, ProfileStatus.DELETED, now)

    def reactivate(self, user_id, now: Optional[datetime] = None) -> bool:
        return self._set_status(user_id, ProfileStatus.ACTIVE, now)

    def _set_status(self, user_id, status: ProfileStatus, now: Optional[datetime]) -> bool:
        user_id = normalize_id(user_id)
        item = self.store.latest(user_id, _is_profile) if user_id else None
        if item is None:
            return False
        self.store.update_fields(
            item["pk"],
            item["sk"],
            {"status": status.value, "updatedAt": format_instant(now or utcnow())},
        )
        logger.info("profile %s -> %s", user_id, status.value)
        return True
