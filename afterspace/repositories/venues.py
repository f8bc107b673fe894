import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional

from afterspace import geo
from afterspace.errors import InvalidInputError
from afterspace.keys import VENUE_PK, VENUE_PREFIX, EntityType, format_instant, normalize_id, utcnow
from afterspace.models import VenueLocation, is_type, mutable_attributes
from afterspace.router import VENUES_BY_CELL
from afterspace.store import newest_by

logger = logging.getLogger(__name__)

_is_venue = is_type(EntityType.VENUE)


class VenueRepository:
    def __init__(self, store, router, precision: int = geo.DEFAULT_PRECISION):
        self.store = store
        self.router = router
        self.precision = precision

    def save(self, venue: VenueLocation, now: Optional[datetime] = None) -> VenueLocation:
        """Upsert the venue. The geohash cell follows the coordinates on every write."""
        venue_id = normalize_id(venue.venue_id, VENUE_PREFIX)
        if venue_id is None:
            raise InvalidInputError("venue id is required")
        venue = replace(venue, venue_id=venue_id)
        if venue.latitude is not None and venue.longitude is not None:
            venue = replace(venue, geohash_prefix=geo.cell_of(venue.latitude, venue.longitude, self.precision))
        now = now or utcnow()
        existing = self.store.latest(VENUE_PK(venue_id), _is_venue)

        if existing is None:
            created = replace(venue, created_at=now, updated_at=now)
            self.store.insert(created.to_item())
            logger.info("created venue %s in cell %s", venue_id, created.geohash_prefix)
            return created

        fields = mutable_attributes(replace(venue, created_at=None).to_item())
        fields["updatedAt"] = format_instant(now)
        return VenueLocation.from_item(self.store.update_fields(existing["pk"], existing["sk"], fields))

    def find_by_id(self, venue_id) -> Optional[VenueLocation]:
        venue_id = normalize_id(venue_id, VENUE_PREFIX)
        if venue_id is None:
            return None
        item = self.store.latest(VENUE_PK(venue_id), _is_venue)
        return VenueLocation.from_item(item) if item else None

    def find_by_cell(self, cell: str) -> List[VenueLocation]:
        rows = self.router.find(VENUES_BY_CELL, cell)
        # older versions of a venue may still sit in the old cell
        rows = newest_by(rows, lambda i: normalize_id(i.get("venueId") or i["pk"], VENUE_PREFIX))
        return [VenueLocation.from_item(i) for i in rows if i.get("geohash_prefix") == cell]

    def find_by_cells(self, cells: Iterable[str]) -> List[VenueLocation]:
        venues = {}
        for cell in cells:
            for venue in self.find_by_cell(cell):
                venues.setdefault(venue.venue_id, venue)
        return list(venues.values())
