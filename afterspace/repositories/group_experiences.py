import logging
from datetime import datetime
from typing import List, Optional, Tuple

from afterspace.errors import ConflictError, InvalidInputError
from afterspace.keys import (
    EXPERIENCE_PREFIX,
    GROUP_LINK_GUARD,
    GROUP_PK,
    GROUP_PREFIX,
    EntityType,
    normalize_id,
    utcnow,
)
from afterspace.models import GroupExperience, is_type
from afterspace.router import GROUP_LINKS_BY_EXPERIENCE
from afterspace.store import newest_by

logger = logging.getLogger(__name__)

_is_link = is_type(EntityType.GROUP_EXPERIENCE)


def _ids(group_id, experience_id) -> Tuple[str, str]:
    group_id = normalize_id(group_id, GROUP_PREFIX)
    experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
    if group_id is None or experience_id is None:
        raise InvalidInputError("group id and experience id are required")
    return group_id, experience_id


class GroupExperienceRepository:
    """Links between groups and experiences, at most one per pair.

    Creation writes the link and a guard row in one transaction, so two
    concurrent links of the same pair leave exactly one row.
    """

    def __init__(self, store, router):
        self.store = store
        self.router = router

    def link(self, group_id, experience_id, now: Optional[datetime] = None) -> Tuple[GroupExperience, bool]:
        """Return the link for the pair and whether this call created it."""
        group_id, experience_id = _ids(group_id, experience_id)
        existing = self.find(group_id, experience_id)
        if existing is not None:
            logger.debug("group %s already linked to experience %s", group_id, experience_id)
            return existing, False

        now = now or utcnow()
        link = GroupExperience(group_id=group_id, experience_id=experience_id, created_at=now, updated_at=now)
        if self.store.put_unique(link.to_item(), GROUP_LINK_GUARD(group_id, experience_id)):
            logger.info("linked group %s to experience %s", group_id, experience_id)
            return link, True

        existing = self.find(group_id, experience_id)
        if existing is None:
            raise ConflictError(f"link guard for group {group_id} / experience {experience_id} has no link row")
        return existing, False

    def unlink(self, group_id, experience_id) -> bool:
        group_id, experience_id = _ids(group_id, experience_id)
        rows = self._rows(group_id, experience_id)
        for row in rows:
            self.store.delete_unique(row["pk"], row["sk"], GROUP_LINK_GUARD(group_id, experience_id))
        if rows:
            logger.info("unlinked group %s from experience %s", group_id, experience_id)
        return bool(rows)

    def find(self, group_id, experience_id) -> Optional[GroupExperience]:
        group_id, experience_id = _ids(group_id, experience_id)
        rows = self._rows(group_id, experience_id)
        return GroupExperience.from_item(rows[0]) if rows else None

    def find_by_group(self, group_id) -> List[GroupExperience]:
        group_id = normalize_id(group_id, GROUP_PREFIX)
        if group_id is None:
            return []
        rows = newest_by(
            self.store.query_partition(GROUP_PK(group_id), _is_link),
            lambda i: normalize_id(i.get("experienceId"), EXPERIENCE_PREFIX),
        )
        return [GroupExperience.from_item(i) for i in rows]

    def find_by_experience(self, experience_id) -> List[GroupExperience]:
        rows = newest_by(
            self.router.find(GROUP_LINKS_BY_EXPERIENCE, experience_id),
            lambda i: normalize_id(i.get("groupId") or i["pk"], GROUP_PREFIX),
        )
        return [GroupExperience.from_item(i) for i in rows]

    def _rows(self, group_id, experience_id):
        return [
            i
            for i in self.store.query_partition(GROUP_PK(group_id), _is_link)
            if normalize_id(i.get("experienceId"), EXPERIENCE_PREFIX) == experience_id
        ]
