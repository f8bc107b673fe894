from afterspace.repositories.experiences import ExperienceRepository
from afterspace.repositories.group_experiences import GroupExperienceRepository
from afterspace.repositories.groups import GroupRepository
from afterspace.repositories.profiles import ProfileRepository
from afterspace.repositories.user_experiences import UserExperienceRepository
from afterspace.repositories.venues import VenueRepository

__all__ = [
    "ExperienceRepository",
    "GroupExperienceRepository",
    "GroupRepository",
    "ProfileRepository",
    "UserExperienceRepository",
    "VenueRepository",
]
