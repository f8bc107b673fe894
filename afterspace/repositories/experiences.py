import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from boto3.dynamodb.conditions import Attr

from afterspace.errors import InvalidInputError
from afterspace.keys import EXPERIENCE_PK, EXPERIENCE_PREFIX, EntityType, format_instant, normalize_id, utcnow
from afterspace.models import Experience, ExperienceStatus, classify, is_type, mutable_attributes
from afterspace.router import EXPERIENCES_BY_VENUE
from afterspace.store import newest_by

logger = logging.getLogger(__name__)

_is_experience = is_type(EntityType.EXPERIENCE)


def _experience_rows(items) -> List[Experience]:
    rows = [i for i in items if classify(i) == EntityType.EXPERIENCE]
    rows = newest_by(rows, lambda i: normalize_id(i.get("experienceId") or i["pk"], EXPERIENCE_PREFIX))
    return [Experience.from_item(i) for i in rows]


class ExperienceRepository:
    def __init__(self, store, router):
        self.store = store
        self.router = router

    def save(self, experience: Experience, now: Optional[datetime] = None) -> Experience:
        """Create the experience, or write only its set fields over the stored row."""
        experience_id = normalize_id(experience.experience_id, EXPERIENCE_PREFIX)
        if experience_id is None:
            raise InvalidInputError("experience id is required")
        now = now or utcnow()
        experience = replace(experience, experience_id=experience_id)
        existing = self.store.latest(EXPERIENCE_PK(experience_id), _is_experience)

        if existing is None:
            created = replace(
                experience,
                status=experience.status or ExperienceStatus.DRAFT,
                created_at=now,
                updated_at=now,
            )
            self.store.insert(created.to_item())
            logger.info("created experience %s", experience_id)
            return created

        fields = mutable_attributes(replace(experience, created_at=None).to_item())
        fields["updatedAt"] = format_instant(now)
        updated = self.store.update_fields(existing["pk"], existing["sk"], fields)
        logger.info("updated experience %s", experience_id)
        return Experience.from_item(updated)

    def find_by_id(self, experience_id) -> Optional[Experience]:
        """Latest row for the id, soft-deleted or not."""
        experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
        if experience_id is None:
            return None
        item = self.store.latest(EXPERIENCE_PK(experience_id), _is_experience)
        return Experience.from_item(item) if item else None

    def find_by_venue(self, venue_id) -> List[Experience]:
        return _experience_rows(self.router.find(EXPERIENCES_BY_VENUE, venue_id))

    def find_all(self, include_deleted: bool = False) -> List[Experience]:
        items = self.store.scan(Attr("pk").begins_with(EXPERIENCE_PREFIX))
        return [e for e in _experience_rows(items) if include_deleted or not e.deleted]

    def find_by_city(self, city: str) -> List[Experience]:
        if not city or not city.strip():
            return []
        items = self.store.scan(Attr("pk").begins_with(EXPERIENCE_PREFIX) & Attr("city").eq(city.strip()))
        return [e for e in _experience_rows(items) if not e.deleted]
