import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from boto3.dynamodb.conditions import Attr

from afterspace.errors import ConflictError, InvalidInputError
from afterspace.keys import EXPERIENCE_PREFIX, USER_LINK_GUARD, EntityType, format_instant, normalize_id, utcnow
from afterspace.models import UserExperience, UserExperienceStatus, classify, is_type, mutable_attributes
from afterspace.router import USER_LINKS_BY_EXPERIENCE
from afterspace.store import newest_by

logger = logging.getLogger(__name__)

_is_user_experience = is_type(EntityType.USER_EXPERIENCE)


def _by_experience(item):
    return normalize_id(item.get("experienceId"), EXPERIENCE_PREFIX)


def _by_user(item):
    return normalize_id(item.get("userId") or item["pk"])


class UserExperienceRepository:
    """Interest and payment rows between a user and an experience.

    Rows live in the user's own partition, next to the profile. Saving is an
    upsert: the first write for a pair creates the row (guarded against a
    concurrent first write), later writes only touch the fields they set.
    """

    def __init__(self, store, router):
        self.store = store
        self.router = router

    def save(self, record: UserExperience, now: Optional[datetime] = None) -> UserExperience:
        user_id = normalize_id(record.user_id)
        experience_id = normalize_id(record.experience_id, EXPERIENCE_PREFIX)
        if user_id is None or experience_id is None:
            raise InvalidInputError("user id and experience id are required")
        now = now or utcnow()
        record = replace(record, user_id=user_id, experience_id=experience_id)

        existing = self._row(user_id, experience_id)
        if existing is None:
            created = replace(record, created_at=now, updated_at=now)
            if self.store.put_unique(created.to_item(), USER_LINK_GUARD(user_id, experience_id)):
                logger.info("created user-experience %s / %s", user_id, experience_id)
                return created
            existing = self._row(user_id, experience_id)
            if existing is None:
                raise ConflictError(f"link guard for user {user_id} / experience {experience_id} has no row")

        fields = mutable_attributes(replace(record, created_at=None).to_item())
        fields["updatedAt"] = format_instant(now)
        updated = self.store.update_fields(existing["pk"], existing["sk"], fields)
        return UserExperience.from_item(updated)

    def find(self, user_id, experience_id) -> Optional[UserExperience]:
        user_id = normalize_id(user_id)
        experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
        if user_id is None or experience_id is None:
            return None
        row = self._row(user_id, experience_id)
        return UserExperience.from_item(row) if row else None

    def find_by_user(self, user_id) -> List[UserExperience]:
        """Newest row per experience. Rows without an experience id are kept as-is."""
        user_id = normalize_id(user_id)
        if user_id is None:
            return []
        items = self.store.query_partition(user_id, _is_user_experience)
        linked = newest_by([i for i in items if _by_experience(i)], _by_experience)
        dangling = [i for i in items if not _by_experience(i)]
        return [UserExperience.from_item(i) for i in linked + dangling]

    def find_by_user_and_status(self, user_id, status: UserExperienceStatus) -> List[UserExperience]:
        return [r for r in self.find_by_user(user_id) if r.status == status]

    def find_by_experience(self, experience_id) -> List[UserExperience]:
        rows = newest_by(self.router.find(USER_LINKS_BY_EXPERIENCE, experience_id), _by_user)
        return [UserExperience.from_item(i) for i in rows]

    def find_by_experience_and_status(self, experience_id, status: UserExperienceStatus) -> List[UserExperience]:
        return [r for r in self.find_by_experience(experience_id) if r.status == status]

    def find_interested_by_experience(self, experience_id) -> List[UserExperience]:
        return [r for r in self.find_by_experience(experience_id) if r.exp_interest is True]

    def find_all_interested(self) -> List[UserExperience]:
        """Every row with the interest flag set. Reads the whole table."""
        items = [i for i in self.store.scan(Attr("exp-interest").eq(True)) if classify(i) == EntityType.USER_EXPERIENCE]
        return [UserExperience.from_item(i) for i in items if _by_experience(i)]

    def _row(self, user_id, experience_id):
        for item in self.store.iter_partition(user_id):
            if _is_user_experience(item) and _by_experience(item) == experience_id:
                return item
        return None
