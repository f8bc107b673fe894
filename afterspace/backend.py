"""One object holding the store, the index router, the repositories and the
services, exposing the operations request handlers call."""
import logging
from datetime import datetime
from typing import List, Optional

from afterspace.config import Settings
from afterspace.models import (
    Experience,
    Group,
    GroupAttendance,
    GroupExperience,
    NearbyExperience,
    PaymentDetails,
    UserExperience,
    UserProfile,
)
from afterspace.repositories import (
    ExperienceRepository,
    GroupExperienceRepository,
    GroupRepository,
    ProfileRepository,
    UserExperienceRepository,
    VenueRepository,
)
from afterspace.router import IndexRouter
from afterspace.services import (
    ExperienceService,
    GroupService,
    LinkResult,
    NearbyService,
    RelationshipService,
    TimelineService,
)
from afterspace.store import Store

logger = logging.getLogger(__name__)


class Backend:
    def __init__(self, store: Store, router: IndexRouter, geohash_precision: int = 6):
        self.store = store
        self.router = router

        self.profiles = ProfileRepository(store)
        self.experience_repo = ExperienceRepository(store, router)
        self.group_repo = GroupRepository(store, router)
        self.group_experience_repo = GroupExperienceRepository(store, router)
        self.user_experience_repo = UserExperienceRepository(store, router)
        self.venue_repo = VenueRepository(store, router, geohash_precision)

        self.experiences = ExperienceService(self.experience_repo, self.venue_repo)
        self.groups = GroupService(
            self.group_repo, self.group_experience_repo, self.experience_repo, self.user_experience_repo
        )
        self.relationships = RelationshipService(self.experience_repo, self.user_experience_repo)
        self.nearby = NearbyService(self.venue_repo, self.experience_repo, geohash_precision)
        self.timeline = TimelineService(self.experience_repo, self.user_experience_repo)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Backend":
        settings = settings or Settings.from_env()
        store = Store.from_settings(settings)
        router = IndexRouter.from_settings(store, settings)
        logger.info(
            "backend on table %s (%s, strategy %s)", settings.table, settings.region, settings.query_strategy.value
        )
        return cls(store, router, settings.geohash_precision)

    # profiles

    def save_profile(self, profile: UserProfile, now: Optional[datetime] = None) -> UserProfile:
        return self.profiles.save(profile, now=now)

    def find_profile(self, user_id) -> Optional[UserProfile]:
        return self.profiles.find_by_id(user_id)

    def find_profile_including_deleted(self, user_id) -> Optional[UserProfile]:
        return self.profiles.find_by_id_including_deleted(user_id)

    def soft_delete_profile(self, user_id, now: Optional[datetime] = None) -> bool:
        return self.profiles.soft_delete(user_id, now=now)

    def reactivate_profile(self, user_id, now: Optional[datetime] = None) -> bool:
        return self.profiles.reactivate(user_id, now=now)

    # experiences

    def save_experience(self, experience: Experience, principal=None, now: Optional[datetime] = None) -> Experience:
        return self.experiences.save_experience(experience, principal, now)

    def find_experience(self, experience_id) -> Optional[Experience]:
        return self.experiences.find_experience(experience_id)

    def delete_experience(self, experience_id, principal=None, now: Optional[datetime] = None) -> bool:
        return self.experiences.delete_experience(experience_id, principal, now)

    def find_experiences_by_venue(self, venue_id) -> List[Experience]:
        return self.experiences.find_by_venue(venue_id)

    def find_all_experiences(self) -> List[Experience]:
        return self.experiences.find_all()

    def find_experiences_by_city(self, city: str) -> List[Experience]:
        return self.experiences.find_by_city(city)

    def find_nearby_experiences(self, lat, lng, radius_km=None) -> List[NearbyExperience]:
        return self.nearby.find_nearby(lat, lng, radius_km)

    # groups

    def save_group(self, group: Group, now: Optional[datetime] = None) -> Group:
        return self.groups.save_group(group, now)

    def create_group(self, group_name: str, principal=None, **kwargs) -> Group:
        return self.groups.create_group(group_name, principal, **kwargs)

    def find_group(self, group_id) -> Optional[Group]:
        return self.groups.find_group(group_id)

    def find_groups_by_member(self, user_id) -> List[Group]:
        return self.groups.find_groups_by_member(user_id)

    def update_group(self, group_id, principal, **changes) -> Optional[Group]:
        return self.groups.update_group(group_id, principal, **changes)

    def soft_delete_group(self, group_id, principal, now: Optional[datetime] = None) -> Optional[Group]:
        return self.groups.soft_delete_group(group_id, principal, now)

    def hard_delete_group(self, group_id, principal) -> Optional[Group]:
        return self.groups.hard_delete_group(group_id, principal)

    def add_group_members(self, group_id, user_ids, principal=None, now: Optional[datetime] = None) -> Optional[Group]:
        return self.groups.add_members(group_id, user_ids, principal, now)

    def remove_group_members(self, group_id, user_ids, principal=None, now: Optional[datetime] = None) -> Optional[Group]:
        return self.groups.remove_members(group_id, user_ids, principal, now)

    def link_group_experience(
        self, group_id, experience_id, principal=None, now: Optional[datetime] = None
    ) -> Optional[GroupExperience]:
        return self.groups.link_experience(group_id, experience_id, principal, now)

    def link_group_experiences(self, group_id, experience_ids, principal=None, now: Optional[datetime] = None) -> Optional[LinkResult]:
        return self.groups.link_experiences(group_id, experience_ids, principal, now)

    def unlink_group_experience(self, group_id, experience_id, principal=None) -> bool:
        return self.groups.unlink_experience(group_id, experience_id, principal)

    def find_group_experiences(self, group_id) -> List[Experience]:
        return self.groups.find_group_experiences(group_id)

    def find_groups_by_experience(self, experience_id) -> List[Group]:
        return self.groups.find_groups_by_experience(experience_id)

    def group_attendance(self, group_id, experience_id) -> Optional[GroupAttendance]:
        return self.groups.group_attendance(group_id, experience_id)

    # user <-> experience

    def mark_interest(self, user_id, experience_id, interested=None, **kwargs) -> Optional[UserExperience]:
        return self.relationships.mark_interest(user_id, experience_id, interested, **kwargs)

    def mark_payment(
        self, user_id, experience_id, details: Optional[PaymentDetails] = None, **kwargs
    ) -> Optional[UserExperience]:
        return self.relationships.mark_payment(user_id, experience_id, details, **kwargs)

    def find_interested_users(self, experience_id) -> List[UserExperience]:
        return self.relationships.find_interested_users(experience_id)

    def find_attending_users(self, experience_id) -> List[UserExperience]:
        return self.relationships.find_attending_users(experience_id)

    def find_all_interested(self) -> List[UserExperience]:
        return self.relationships.find_all_interested()

    def filter_experiences(self, user_id, views=None, now: Optional[datetime] = None) -> List[Experience]:
        return self.timeline.filter_experiences(user_id, views, now)
