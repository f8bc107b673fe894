"""Index-first lookups, scan fallbacks and id-prefix variants."""

import pytest

from afterspace.config import QueryStrategy
from afterspace.models import Experience, Group
from afterspace.router import EXPERIENCES_BY_VENUE, GROUPS_BY_MEMBER, VENUES_BY_CELL, IndexRouter
from afterspace.store import Store
from conftest import utc

NOW = utc(2025, 5, 1)


def _router(store, settings, strategy):
    return IndexRouter(store, {"related": settings.related_index, "geohash": settings.geohash_index}, strategy)


def _put_unindexed_experience(store, experience_id, venue_id_attr):
    """An experience row whose index attributes were never written."""
    item = Experience(experience_id=experience_id, title=experience_id, created_at=NOW).to_item()
    item["venueId"] = venue_id_attr
    store.put(item)


@pytest.fixture
def indexed(store):
    store.put(Experience(experience_id="e1", venue_id="v1", created_at=NOW).to_item())
    return store


@pytest.mark.parametrize("strategy", list(QueryStrategy))
def test_indexed_rows_found_by_every_strategy(indexed, settings, strategy):
    rows = _router(indexed, settings, strategy).find(EXPERIENCES_BY_VENUE, "v1")
    assert [r["experienceId"] for r in rows] == ["e1"]


def test_prefixed_related_id_is_normalized(indexed, settings):
    rows = _router(indexed, settings, QueryStrategy.INDEX_FIRST).find(EXPERIENCES_BY_VENUE, "VENUE#v1")
    assert [r["experienceId"] for r in rows] == ["e1"]


def test_blank_related_id_returns_nothing(indexed, settings):
    assert _router(indexed, settings, QueryStrategy.SCAN_FALLBACK).find(EXPERIENCES_BY_VENUE, "  ") == []


def test_index_lag_hidden_by_scan_fallback_only(store, settings):
    _put_unindexed_experience(store, "e2", "v2")
    assert _router(store, settings, QueryStrategy.INDEX_FIRST).find(EXPERIENCES_BY_VENUE, "v2") == []
    rows = _router(store, settings, QueryStrategy.SCAN_FALLBACK).find(EXPERIENCES_BY_VENUE, "v2")
    assert [r["experienceId"] for r in rows] == ["e2"]


def test_scan_matches_prefixed_and_bare_spellings(store, settings):
    _put_unindexed_experience(store, "e3", "VENUE#v3")
    _put_unindexed_experience(store, "e4", "v3")
    rows = _router(store, settings, QueryStrategy.SCAN_ONLY).find(EXPERIENCES_BY_VENUE, "v3")
    assert sorted(r["experienceId"] for r in rows) == ["e3", "e4"]


@pytest.mark.parametrize("strategy", [QueryStrategy.INDEX_FIRST, QueryStrategy.SCAN_FALLBACK])
def test_missing_index_falls_back_to_scan(bare_table, settings, strategy):
    store = Store(bare_table)
    store.put(Experience(experience_id="e1", venue_id="v1", created_at=NOW).to_item())
    store.put({"pk": "VENUE#v1", "sk": "2025-05-01T00:00:00.000000Z", "entityType": "VENUE", "venueId": "v1", "geohash_prefix": "dr5reg"})
    router = _router(store, settings, strategy)
    assert [r["experienceId"] for r in router.find(EXPERIENCES_BY_VENUE, "v1")] == ["e1"]
    assert [r["venueId"] for r in router.find(VENUES_BY_CELL, "dr5reg")] == ["v1"]


def test_missing_index_and_nothing_stored_is_empty(bare_table, settings):
    router = _router(Store(bare_table), settings, QueryStrategy.SCAN_FALLBACK)
    assert router.find(EXPERIENCES_BY_VENUE, "v9") == []


def test_other_entity_types_are_filtered_out(store, settings):
    # a join row that happens to carry the same venueId attribute
    store.put({"pk": "u1", "sk": "2025-05-01T00:00:00.000000Z", "entityType": "USER_EXPERIENCE", "venueId": "v5"})
    _put_unindexed_experience(store, "e5", "v5")
    rows = _router(store, settings, QueryStrategy.SCAN_ONLY).find(EXPERIENCES_BY_VENUE, "v5")
    assert [r["pk"] for r in rows] == ["EXPERIENCE#e5"]


def test_member_lookup_merges_index_and_scan(store, settings):
    store.put(Group(group_id="mine", creator_user_id="alice", member_user_ids=["alice"], created_at=NOW).to_item())
    store.put(Group(group_id="theirs", creator_user_id="bob", member_user_ids=["bob", "alice"], created_at=NOW).to_item())
    store.put(Group(group_id="other", creator_user_id="bob", member_user_ids=["bob"], created_at=NOW).to_item())
    for strategy in QueryStrategy:
        rows = _router(store, settings, strategy).find(GROUPS_BY_MEMBER, "alice")
        assert sorted(r["groupId"] for r in rows) == ["mine", "theirs"], strategy
