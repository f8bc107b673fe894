from afterspace.services.experiences import ExperienceService
from afterspace.services.groups import GroupService, LinkResult
from afterspace.services.nearby import NearbyService
from afterspace.services.relationships import RelationshipService
from afterspace.services.timeline import TimelineService, View

__all__ = [
    "ExperienceService",
    "GroupService",
    "LinkResult",
    "NearbyService",
    "RelationshipService",
    "TimelineService",
    "View",
]
