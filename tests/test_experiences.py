"""Experience lifecycle and the venue written alongside it."""

from datetime import date, time

import pygeohash as gh
import pytest

from afterspace.errors import AfterspaceError, EntityDeletedError, ForbiddenError, InvalidInputError
from afterspace.models import Experience, ExperienceStatus, ExperienceType
from conftest import utc

NOW = utc(2025, 4, 1, 12, 0)
LATER = utc(2025, 4, 2, 12, 0)


def _jazz(**overrides):
    values = dict(
        experience_id="e1",
        title="Jazz night",
        description="Live trio",
        type=ExperienceType.ENTERTAINMENT,
        location="Blue Note",
        city="New York",
        latitude=40.7308,
        longitude=-74.0006,
        experience_date=date(2025, 6, 1),
        start_time=time(20, 0),
        tags=["music"],
    )
    values.update(overrides)
    return Experience(**values)


@pytest.fixture
def jazz(backend):
    return backend.save_experience(_jazz(), principal="alice", now=NOW)


def test_create_defaults_and_venue(jazz, backend):
    assert jazz.created_by == "alice"
    assert jazz.status == ExperienceStatus.DRAFT
    assert jazz.venue_id == "venue-e1"
    assert jazz.created_at == NOW

    venue = backend.venue_repo.find_by_id("venue-e1")
    assert venue.name == "Blue Note"
    assert (venue.latitude, venue.longitude) == (40.7308, -74.0006)
    assert venue.geohash_prefix == gh.encode(40.7308, -74.0006, precision=6)
    assert [e.experience_id for e in backend.find_experiences_by_venue("venue-e1")] == ["e1"]


def test_create_without_id_generates_one(backend):
    created = backend.save_experience(Experience(title="Pottery"), principal="bob", now=NOW)
    assert created.experience_id
    assert backend.find_experience(created.experience_id).title == "Pottery"
    assert created.venue_id is None


def test_invalid_coordinates_rejected_before_writing(backend):
    with pytest.raises(InvalidInputError):
        backend.save_experience(_jazz(latitude=95.0), principal="alice", now=NOW)
    assert backend.experience_repo.find_by_id("e1") is None


def test_partial_update_keeps_other_fields(jazz, backend):
    updated = backend.save_experience(Experience(experience_id="e1", description="Quartet"), principal="alice", now=LATER)
    assert updated.description == "Quartet"
    assert updated.title == "Jazz night"
    assert updated.tags == ["music"]
    assert updated.created_by == "alice"
    assert updated.created_at == NOW
    assert updated.updated_at == LATER


def test_moving_an_experience_moves_its_venue(jazz, backend):
    backend.save_experience(Experience(experience_id="e1", latitude=40.6782, longitude=-73.9442), principal="alice", now=LATER)
    venue = backend.venue_repo.find_by_id("venue-e1")
    assert (venue.latitude, venue.longitude) == (40.6782, -73.9442)
    assert venue.name == "Blue Note"
    assert venue.geohash_prefix == gh.encode(40.6782, -73.9442, precision=6)


def test_only_creator_may_update_or_delete(jazz, backend):
    with pytest.raises(ForbiddenError):
        backend.save_experience(Experience(experience_id="e1", title="Mine now"), principal="mallory")
    with pytest.raises(ForbiddenError):
        backend.delete_experience("e1", principal="mallory")
    assert backend.find_experience("e1").title == "Jazz night"


def test_soft_delete_hides_experience(jazz, backend):
    assert backend.delete_experience("e1", principal="alice", now=LATER) is True
    assert backend.find_experience("e1") is None
    assert backend.experience_repo.find_by_id("e1").status == ExperienceStatus.DELETED
    assert backend.find_experiences_by_venue("venue-e1") == []
    assert backend.find_all_experiences() == []
    assert backend.delete_experience("e1", principal="alice") is False

    with pytest.raises(EntityDeletedError):
        backend.save_experience(Experience(experience_id="e1", title="Back"), principal="alice")


def test_venue_failure_does_not_fail_the_save(backend, monkeypatch):
    def broken(*args, **kwargs):
        raise AfterspaceError("venue table is down")

    monkeypatch.setattr(backend.venue_repo, "save", broken)
    saved = backend.save_experience(_jazz(), principal="alice", now=NOW)
    assert saved.venue_id == "venue-e1"
    assert backend.find_experience("e1").title == "Jazz night"
    assert backend.venue_repo.find_by_id("venue-e1") is None


def test_find_all_and_by_city(jazz, backend):
    backend.save_experience(_jazz(experience_id="e2", city="Boston", latitude=None, longitude=None), principal="alice", now=NOW)
    assert sorted(e.experience_id for e in backend.find_all_experiences()) == ["e1", "e2"]
    assert [e.experience_id for e in backend.find_experiences_by_city("Boston")] == ["e2"]
    assert backend.find_experiences_by_city("  ") == []
