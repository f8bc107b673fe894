import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from afterspace.errors import ConflictError, InvalidInputError
from afterspace.keys import GROUP_PK, GROUP_PREFIX, USER_REF, EntityType, format_instant, normalize_id, parse_instant, utcnow
from afterspace.models import Group, GroupStatus, is_type, mutable_attributes
from afterspace.router import GROUPS_BY_MEMBER
from afterspace.store import newest_by

logger = logging.getLogger(__name__)

_is_group = is_type(EntityType.GROUP)


class GroupRepository:
    def __init__(self, store, router):
        self.store = store
        self.router = router

    def save(self, group: Group, now: Optional[datetime] = None) -> Group:
        group_id = normalize_id(group.group_id, GROUP_PREFIX)
        if group_id is None:
            raise InvalidInputError("group id is required")
        now = now or utcnow()
        group = replace(group, group_id=group_id)
        existing = self.store.latest(GROUP_PK(group_id), _is_group)

        if existing is None:
            created = replace(group, status=group.status or GroupStatus.ACTIVE, created_at=now, updated_at=now)
            self.store.insert(created.to_item())
            logger.info("created group %s", group_id)
            return created

        fields = mutable_attributes(replace(group, created_at=None).to_item())
        fields["updatedAt"] = format_instant(now)
        return Group.from_item(self.store.update_fields(existing["pk"], existing["sk"], fields))

    def find_by_id(self, group_id) -> Optional[Group]:
        """Latest row for the id, including soft-deleted groups."""
        item = self._latest_item(group_id)
        return Group.from_item(item) if item else None

    def exists(self, group_id) -> bool:
        return self._latest_item(group_id) is not None

    def find_by_member(self, user_id) -> List[Group]:
        """Groups the user created or belongs to."""
        user_id = normalize_id(user_id)
        if user_id is None:
            return []
        rows = newest_by(
            self.router.find(GROUPS_BY_MEMBER, user_id),
            lambda i: normalize_id(i.get("groupId") or i["pk"], GROUP_PREFIX),
        )
        groups = [Group.from_item(i) for i in rows]
        return [g for g in groups if user_id in g.members or g.creator_user_id == user_id]

    def replace_members(self, group: Group, members: List[str], now: Optional[datetime] = None, creator=None) -> Group:
        """Write a new member list, provided the group is unchanged since ``group`` was read.

        Raises ``ConflictError`` when another writer got there first.
        """
        item = self._latest_item(group.group_id)
        if item is None:
            raise InvalidInputError(f"group {group.group_id} does not exist")
        fields = {"memberUserIds": list(members), "updatedAt": format_instant(now or utcnow())}
        if creator:
            fields["creatorUserId"] = creator
            fields["GSI1PK"] = USER_REF(creator)
            fields["GSI1SK"] = GROUP_PK(group.group_id)
        stored_version = item.get("updatedAt")
        if parse_instant(stored_version) != group.updated_at:
            raise ConflictError(f"group {group.group_id} changed since it was read")
        expected = {"updatedAt": stored_version}
        updated = self.store.update_fields(item["pk"], item["sk"], fields, expected=expected)
        return Group.from_item(updated)

    def delete(self, group_id) -> int:
        """Remove every stored version of the group row. Returns the number removed."""
        group_id = normalize_id(group_id, GROUP_PREFIX)
        if group_id is None:
            return 0
        rows = self.store.query_partition(GROUP_PK(group_id), _is_group)
        for row in rows:
            self.store.delete(row["pk"], row["sk"])
        logger.info("hard-deleted group %s (%d row(s))", group_id, len(rows))
        return len(rows)

    def _latest_item(self, group_id):
        group_id = normalize_id(group_id, GROUP_PREFIX)
        if group_id is None:
            return None
        return self.store.latest(GROUP_PK(group_id), _is_group)
