"""Relationship lookups through a secondary index with a base-table scan fallback.

A lookup names a :class:`Relation`: which index key holds the related id,
which base-table attribute holds the same id for scanning, and which entity
type the answer must be. The :class:`~afterspace.config.QueryStrategy`
chosen at startup decides when the scan runs:

* ``INDEX_FIRST``: scan only when the index query fails (or when the
  index cannot hold the whole answer, see ``Relation.index_complete``).
* ``SCAN_FALLBACK``: also scan when the index returns nothing, which hides
  index lag right after a write.
* ``SCAN_ONLY``: never touch the index.

Empty results are never an error. A failed scan is.
"""
import logging
from dataclasses import dataclass
from functools import reduce
from typing import Dict, List

from boto3.dynamodb.conditions import Attr

from afterspace.config import QueryStrategy
from afterspace.errors import IndexUnavailableError
from afterspace.keys import EXPERIENCE_PREFIX, USER_PREFIX, VENUE_PREFIX, EntityType, id_variants, normalize_id
from afterspace.models import classify

logger = logging.getLogger(__name__)

RELATED = "related"
GEOHASH = "geohash"


@dataclass(frozen=True)
class Relation:
    name: str
    entity_type: EntityType
    prefix: str
    scan_attribute: str
    index: str = RELATED
    index_attribute: str = "GSI1PK"
    # False when the index only holds part of the answer, so the scan always runs
    index_complete: bool = True
    contains: bool = False


EXPERIENCES_BY_VENUE = Relation("experiences-by-venue", EntityType.EXPERIENCE, VENUE_PREFIX, "venueId")
GROUP_LINKS_BY_EXPERIENCE = Relation(
    "group-links-by-experience", EntityType.GROUP_EXPERIENCE, EXPERIENCE_PREFIX, "experienceId"
)
USER_LINKS_BY_EXPERIENCE = Relation(
    "user-links-by-experience", EntityType.USER_EXPERIENCE, EXPERIENCE_PREFIX, "experienceId"
)
# the index holds groups by creator; plain members are only found by scanning
GROUPS_BY_MEMBER = Relation(
    "groups-by-member", EntityType.GROUP, USER_PREFIX, "memberUserIds", index_complete=False, contains=True
)
VENUES_BY_CELL = Relation(
    "venues-by-cell", EntityType.VENUE, "", "geohash_prefix", index=GEOHASH, index_attribute="geohash_prefix"
)


class IndexRouter:
    def __init__(self, store, index_names: Dict[str, str], strategy: QueryStrategy = QueryStrategy.SCAN_FALLBACK):
        self.store = store
        self.index_names = index_names
        self.strategy = QueryStrategy(strategy)

    @classmethod
    def from_settings(cls, store, settings) -> "IndexRouter":
        return cls(
            store,
            {RELATED: settings.related_index, GEOHASH: settings.geohash_index},
            settings.query_strategy,
        )

    def find(self, relation: Relation, related_id) -> List[dict]:
        bare = normalize_id(related_id, relation.prefix)
        if bare is None:
            return []

        indexed: List[dict] = []
        if self.strategy != QueryStrategy.SCAN_ONLY:
            index_name = self.index_names[relation.index]
            try:
                indexed = self.store.query_index(index_name, relation.index_attribute, f"{relation.prefix}{bare}")
            except IndexUnavailableError as exc:
                logger.info("%s: index %s unavailable (%s), scanning table", relation.name, index_name, exc.code or exc)
                return self._scan(relation, bare)
            indexed = [i for i in indexed if classify(i) == relation.entity_type]
            if relation.index_complete and (indexed or self.strategy == QueryStrategy.INDEX_FIRST):
                return indexed
            if not indexed:
                logger.debug("%s: index returned nothing for %s, scanning table", relation.name, bare)

        return _merge(indexed, self._scan(relation, bare))

    def _scan(self, relation: Relation, bare: str) -> List[dict]:
        variants = id_variants(bare, relation.prefix) if relation.prefix else [bare]
        attr = Attr(relation.scan_attribute)
        if relation.contains:
            condition = reduce(lambda a, b: a | b, [attr.contains(v) for v in variants])
        else:
            condition = attr.is_in(variants)
        return [i for i in self.store.scan(condition) if classify(i) == relation.entity_type]


def _merge(first: List[dict], second: List[dict]) -> List[dict]:
    seen = set()
    merged = []
    for item in first + second:
        key = (item.get("pk"), item.get("sk"))
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged
