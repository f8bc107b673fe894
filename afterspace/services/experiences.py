import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from afterspace import geo
from afterspace.errors import AfterspaceError, EntityDeletedError, ForbiddenError, InvalidInputError
from afterspace.keys import EXPERIENCE_PREFIX, VENUE_PREFIX, normalize_id, utcnow
from afterspace.models import Experience, ExperienceStatus, VenueLocation, overlay

logger = logging.getLogger(__name__)

default_venue_id = lambda experience_id: f"venue-{experience_id}"


class ExperienceService:
    """Experience lifecycle plus the venue row that places it on the map."""

    def __init__(self, experiences, venues):
        self.experiences = experiences
        self.venues = venues

    def create_experience(self, experience: Experience, principal=None, now: Optional[datetime] = None) -> Experience:
        if experience.has_coordinates:
            geo.validate_coordinates(experience.latitude, experience.longitude)
        experience_id = normalize_id(experience.experience_id, EXPERIENCE_PREFIX) or str(uuid.uuid4())
        if self.experiences.find_by_id(experience_id) is not None:
            raise InvalidInputError(f"experience {experience_id} already exists")
        experience = replace(
            experience,
            experience_id=experience_id,
            created_by=normalize_id(principal) or experience.created_by,
        )
        return self._write(experience, now)

    def update_experience(
        self, experience_id, changes: Experience, principal=None, now: Optional[datetime] = None
    ) -> Optional[Experience]:
        """Apply the set fields of ``changes``. Only the creator may update."""
        if changes.has_coordinates:
            geo.validate_coordinates(changes.latitude, changes.longitude)
        existing = self.experiences.find_by_id(experience_id)
        if existing is None:
            return None
        self._check_creator(existing, principal, "update")
        if existing.deleted:
            raise EntityDeletedError(f"experience {existing.experience_id} has been deleted")
        changes = replace(changes, experience_id=existing.experience_id, created_by=None, created_at=None)
        merged = overlay(existing, changes)
        venue_touched = any(
            getattr(changes, name) is not None for name in ("latitude", "longitude", "location", "title", "address", "city", "country")
        )
        if not (venue_touched and merged.has_coordinates):
            return self.experiences.save(changes, now=now)
        return self._write(merged, now, only=changes)

    def save_experience(self, experience: Experience, principal=None, now: Optional[datetime] = None) -> Experience:
        """Create or update, depending on whether the id is already stored."""
        experience_id = normalize_id(experience.experience_id, EXPERIENCE_PREFIX)
        if experience_id and self.experiences.find_by_id(experience_id) is not None:
            return self.update_experience(experience_id, experience, principal, now)
        return self.create_experience(experience, principal, now)

    def find_experience(self, experience_id) -> Optional[Experience]:
        experience = self.experiences.find_by_id(experience_id)
        if experience is None or experience.deleted:
            return None
        return experience

    def delete_experience(self, experience_id, principal=None, now: Optional[datetime] = None) -> bool:
        """Soft delete. Only the creator may delete."""
        existing = self.experiences.find_by_id(experience_id)
        if existing is None or existing.deleted:
            return False
        self._check_creator(existing, principal, "delete")
        self.experiences.save(
            Experience(experience_id=existing.experience_id, status=ExperienceStatus.DELETED), now=now
        )
        logger.info("soft-deleted experience %s", existing.experience_id)
        return True

    def find_all(self) -> List[Experience]:
        return self.experiences.find_all()

    def find_by_city(self, city: str) -> List[Experience]:
        return self.experiences.find_by_city(city)

    def find_by_venue(self, venue_id) -> List[Experience]:
        return [e for e in self.experiences.find_by_venue(venue_id) if not e.deleted]

    def _check_creator(self, experience: Experience, principal, action: str) -> None:
        if principal is None:
            return
        if experience.created_by and normalize_id(principal) != experience.created_by:
            raise ForbiddenError(f"only the creator can {action} experience {experience.experience_id}")

    def _write(self, experience: Experience, now, only: Optional[Experience] = None) -> Experience:
        """Save the experience, then upsert its venue.

        The venue write is best-effort: a failure is logged and the saved
        experience is still returned.
        """
        if experience.has_coordinates:
            geo.validate_coordinates(experience.latitude, experience.longitude)
            venue_id = normalize_id(experience.venue_id, VENUE_PREFIX) or default_venue_id(experience.experience_id)
            experience = replace(experience, venue_id=venue_id)
            if only is not None:
                only = replace(only, venue_id=venue_id)

        saved = self.experiences.save(only if only is not None else experience, now=now)

        if experience.has_coordinates:
            venue = VenueLocation(
                venue_id=experience.venue_id,
                name=experience.location or experience.title,
                latitude=experience.latitude,
                longitude=experience.longitude,
                address=experience.address,
                city=experience.city,
                country=experience.country,
            )
            try:
                self.venues.save(venue, now=now or utcnow())
            except AfterspaceError:
                logger.warning(
                    "venue %s for experience %s not saved", venue.venue_id, experience.experience_id, exc_info=True
                )
        return saved
