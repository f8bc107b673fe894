import logging
import math
from typing import List, Optional

from afterspace import geo
from afterspace.errors import InvalidInputError
from afterspace.models import NearbyExperience

logger = logging.getLogger(__name__)


class NearbyService:
    """Experiences around a point: geohash cells first, exact distance second."""

    def __init__(self, venues, experiences, precision: int = geo.DEFAULT_PRECISION):
        self.venues = venues
        self.experiences = experiences
        self.precision = precision

    def find_nearby(self, lat, lng, radius_km: Optional[float] = None) -> List[NearbyExperience]:
        """Experiences in the 3x3 cells around the point, nearest first.

        With ``radius_km`` the exact (unrounded) distance must not exceed it.
        Distances are reported rounded to two decimals.
        """
        geo.validate_coordinates(lat, lng)
        lat, lng = float(lat), float(lng)
        if radius_km is not None:
            try:
                radius_km = float(radius_km)
            except (TypeError, ValueError):
                raise InvalidInputError("radius must be a number") from None
            if math.isnan(radius_km) or radius_km < 0:
                raise InvalidInputError("radius must not be negative")

        cells = geo.neighbors_of(lat, lng, self.precision)
        venues = self.venues.find_by_cells(cells)
        logger.debug("nearby %.5f,%.5f: %d cell(s), %d venue(s)", lat, lng, len(cells), len(venues))

        hits = []
        seen = set()
        for venue in venues:
            for experience in self.experiences.find_by_venue(venue.venue_id):
                if experience.deleted or not experience.has_coordinates or experience.experience_id in seen:
                    continue
                distance = geo.distance_km(lat, lng, experience.latitude, experience.longitude)
                if radius_km is not None and distance > radius_km:
                    continue
                seen.add(experience.experience_id)
                hits.append(
                    (
                        distance,
                        NearbyExperience(
                            experience_id=experience.experience_id,
                            title=experience.title,
                            description=experience.description,
                            type=experience.type,
                            latitude=experience.latitude,
                            longitude=experience.longitude,
                            address=experience.address,
                            city=experience.city,
                            distance_km=round(distance, 2),
                            venue_id=venue.venue_id,
                            venue_name=venue.name,
                        ),
                    )
                )
        hits.sort(key=lambda hit: hit[0])
        return [hit for _, hit in hits]
