"""Group membership and the experiences a group is going to.

Mutations are allowed for the group's creator and its current members.
Membership writes are checked against the row as read in the same call and
rejected with ``ConflictError`` if it changed in between.
"""
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, List, Optional

from afterspace.errors import EntityDeletedError, ForbiddenError, InvalidInputError
from afterspace.keys import EXPERIENCE_PREFIX, GROUP_PREFIX, normalize_id
from afterspace.models import Experience, Group, GroupAttendance, GroupExperience, GroupStatus
from afterspace.services.timeline import is_attending

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    added: List[str] = field(default_factory=list)
    already_linked: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)


def clean_user_ids(user_ids: Optional[Iterable[str]]) -> List[str]:
    """Trimmed, non-blank ids in first-seen order."""
    cleaned = []
    for user_id in user_ids or []:
        user_id = normalize_id(user_id)
        if user_id and user_id not in cleaned:
            cleaned.append(user_id)
    return cleaned


def is_member_or_creator(group: Group, principal) -> bool:
    principal = normalize_id(principal)
    if principal is None:
        return False
    return principal == group.creator_user_id or principal in [m.strip() for m in group.members]


class GroupService:
    def __init__(self, groups, group_experiences, experiences, user_experiences):
        self.groups = groups
        self.group_experiences = group_experiences
        self.experiences = experiences
        self.user_experiences = user_experiences

    # groups

    def create_group(
        self,
        group_name: str,
        principal=None,
        description: Optional[str] = None,
        member_user_ids: Optional[Iterable[str]] = None,
        group_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Group:
        """Create a group. Without a principal the first member becomes the creator."""
        if not group_name or not group_name.strip():
            raise InvalidInputError("group name is required")
        members = clean_user_ids(member_user_ids)
        creator = normalize_id(principal) or (members[0] if members else None)
        if creator and creator not in members:
            members.insert(0, creator)
        group = Group(
            group_id=normalize_id(group_id, GROUP_PREFIX) or str(uuid.uuid4()),
            creator_user_id=creator,
            group_name=group_name.strip(),
            description=description,
            status=GroupStatus.ACTIVE,
            member_user_ids=members,
        )
        if self.groups.exists(group.group_id):
            raise InvalidInputError(f"group {group.group_id} already exists")
        return self.groups.save(group, now=now)

    def save_group(self, group: Group, now: Optional[datetime] = None) -> Group:
        """Upsert with partial-update semantics; no permission checks."""
        if group.member_user_ids is not None:
            group = replace(group, member_user_ids=clean_user_ids(group.member_user_ids))
        if group.creator_user_id is None and group.member_user_ids and not self.groups.exists(group.group_id):
            group = replace(group, creator_user_id=group.member_user_ids[0])
        return self.groups.save(group, now=now)

    def find_group(self, group_id) -> Optional[Group]:
        group = self.groups.find_by_id(group_id)
        if group is None or group.deleted:
            return None
        return group

    def find_groups_by_member(self, user_id) -> List[Group]:
        return [g for g in self.groups.find_by_member(user_id) if not g.deleted]

    def update_group(
        self,
        group_id,
        principal,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status=None,
        now: Optional[datetime] = None,
    ) -> Optional[Group]:
        parsed_status = None
        if status is not None:
            parsed_status = GroupStatus.parse(status)
            if parsed_status is None:
                raise InvalidInputError(f"unknown group status {status!r}")
        group = self._mutable(group_id, principal)
        if group is None:
            return None
        changes = Group(
            group_id=group.group_id,
            group_name=name.strip() if name and name.strip() else None,
            description=description,
            status=parsed_status,
        )
        return self.groups.save(changes, now=now)

    def soft_delete_group(self, group_id, principal, now: Optional[datetime] = None) -> Optional[Group]:
        group = self._mutable(group_id, principal)
        if group is None:
            return None
        deleted = self.groups.save(Group(group_id=group.group_id, status=GroupStatus.DELETED), now=now)
        logger.info("soft-deleted group %s", group.group_id)
        return deleted

    def hard_delete_group(self, group_id, principal) -> Optional[Group]:
        """Remove the group row and its experience links. Returns the group as it was."""
        group = self.groups.find_by_id(group_id)
        if group is None:
            return None
        self._check_permission(group, principal)
        for link in self.group_experiences.find_by_group(group.group_id):
            if link.experience_id:
                self.group_experiences.unlink(group.group_id, link.experience_id)
        self.groups.delete(group.group_id)
        return group

    # membership

    def add_members(self, group_id, user_ids, principal=None, now: Optional[datetime] = None) -> Optional[Group]:
        new_ids = clean_user_ids(user_ids)
        if not new_ids:
            raise InvalidInputError("at least one user id is required")
        group = self.groups.find_by_id(group_id)
        if group is None:
            return None
        if group.deleted:
            raise EntityDeletedError(f"group {group.group_id} has been deleted")

        self_join = principal is not None and new_ids == [normalize_id(principal)]
        if group.members and not self_join:
            self._check_permission(group, principal)

        members = group.members
        added = [u for u in new_ids if u not in members]
        if not added:
            return group
        members.extend(added)
        creator = None if group.creator_user_id else members[0]
        updated = self.groups.replace_members(group, members, now=now, creator=creator)
        logger.info("added %s to group %s", added, group.group_id)
        return updated

    def remove_members(self, group_id, user_ids, principal=None, now: Optional[datetime] = None) -> Optional[Group]:
        """Remove members. Leaving the group without members is rejected."""
        remove_ids = clean_user_ids(user_ids)
        if not remove_ids:
            raise InvalidInputError("at least one user id is required")
        group = self._mutable(group_id, principal)
        if group is None:
            return None

        remaining = [m for m in group.members if m.strip() not in remove_ids]
        if not remaining:
            raise InvalidInputError(f"cannot remove all members from group {group.group_id}")
        if len(remaining) == len(group.members):
            return group
        updated = self.groups.replace_members(group, remaining, now=now)
        logger.info("removed %s from group %s", remove_ids, group.group_id)
        return updated

    # experiences

    def link_experience(self, group_id, experience_id, principal=None, now: Optional[datetime] = None) -> Optional[GroupExperience]:
        """Link one experience. Returns ``None`` if the group or experience is missing."""
        experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
        if experience_id is None:
            raise InvalidInputError("experience id is required")
        group = self._mutable(group_id, principal)
        if group is None or self._live_experience(experience_id) is None:
            return None
        link, _ = self.group_experiences.link(group.group_id, experience_id, now=now)
        return link

    def link_experiences(self, group_id, experience_ids, principal=None, now: Optional[datetime] = None) -> Optional[LinkResult]:
        ids = [normalize_id(e, EXPERIENCE_PREFIX) for e in experience_ids or []]
        ids = [e for e in dict.fromkeys(ids) if e]
        if not ids:
            raise InvalidInputError("at least one experience id is required")
        group = self._mutable(group_id, principal)
        if group is None:
            return None
        result = LinkResult()
        for experience_id in ids:
            if self._live_experience(experience_id) is None:
                result.invalid.append(experience_id)
                continue
            _, created = self.group_experiences.link(group.group_id, experience_id, now=now)
            (result.added if created else result.already_linked).append(experience_id)
        return result

    def unlink_experience(self, group_id, experience_id, principal=None) -> bool:
        experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
        if experience_id is None:
            raise InvalidInputError("experience id is required")
        group = self._mutable(group_id, principal)
        if group is None:
            return False
        return self.group_experiences.unlink(group.group_id, experience_id)

    def find_group_experiences(self, group_id) -> List[Experience]:
        experiences = []
        for link in self.group_experiences.find_by_group(group_id):
            if not link.experience_id:
                logger.warning("group %s has a link without experience id, skipping", link.group_id)
                continue
            experience = self._live_experience(link.experience_id)
            if experience is None:
                logger.warning("group %s linked to missing experience %s", link.group_id, link.experience_id)
                continue
            experiences.append(experience)
        return experiences

    def find_groups_by_experience(self, experience_id) -> List[Group]:
        groups = []
        for link in self.group_experiences.find_by_experience(experience_id):
            group = self.groups.find_by_id(link.group_id)
            if group is None:
                logger.warning("experience %s linked to missing group %s", link.experience_id, link.group_id)
                continue
            if not group.deleted:
                groups.append(group)
        return groups

    def group_attendance(self, group_id, experience_id) -> Optional[GroupAttendance]:
        """Split the group's members into those who paid for the experience and those who did not."""
        group = self.find_group(group_id)
        experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
        if group is None or experience_id is None:
            return None
        attendance = GroupAttendance(group_id=group.group_id, experience_id=experience_id)
        for member in group.members:
            record = self.user_experiences.find(member, experience_id)
            if record is not None and is_attending(record):
                attendance.paid_user_ids.append(member)
            else:
                attendance.unpaid_user_ids.append(member)
        return attendance

    # helpers

    def _mutable(self, group_id, principal) -> Optional[Group]:
        group = self.groups.find_by_id(group_id)
        if group is None:
            return None
        if group.deleted:
            raise EntityDeletedError(f"group {group.group_id} has been deleted")
        self._check_permission(group, principal)
        return group

    def _check_permission(self, group: Group, principal) -> None:
        if principal is None:
            return
        if not is_member_or_creator(group, principal):
            raise ForbiddenError(f"{principal} may not modify group {group.group_id}")

    def _live_experience(self, experience_id) -> Optional[Experience]:
        experience = self.experiences.find_by_id(experience_id)
        if experience is None or experience.deleted:
            return None
        return experience
