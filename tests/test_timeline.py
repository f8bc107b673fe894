"""Interest, payment and the past / upcoming / interested views."""

from datetime import date, time, timedelta, timezone

import pytest

from afterspace.errors import ForbiddenError, InvalidInputError
from afterspace.models import Experience, PaymentDetails, UserExperience, UserExperienceStatus
from afterspace.services.timeline import View, is_attending, is_interested, parse_views
from conftest import utc

BEFORE = utc(2025, 5, 1)
AFTER = utc(2025, 7, 1)


def _ids(experiences):
    return [e.experience_id for e in experiences]


@pytest.fixture
def catalog(backend):
    schedule = {
        "concert": (date(2025, 6, 1), time(10, 0)),
        "tasting": (date(2025, 6, 10), time(19, 30)),
        "market": (date(2025, 5, 1), None),
        "someday": (None, None),
    }
    for experience_id, (day, start) in schedule.items():
        backend.save_experience(
            Experience(experience_id=experience_id, title=experience_id, experience_date=day, start_time=start),
            principal="host",
            now=utc(2025, 1, 1),
        )
    return backend


def test_paid_experience_moves_from_upcoming_to_past(catalog):
    catalog.mark_payment("u1", "concert", now=utc(2025, 4, 1))
    assert _ids(catalog.filter_experiences("u1", "upcoming", now=BEFORE)) == ["concert"]
    assert catalog.filter_experiences("u1", "past", now=BEFORE) == []
    assert _ids(catalog.filter_experiences("u1", "past", now=AFTER)) == ["concert"]
    assert catalog.filter_experiences("u1", "upcoming", now=AFTER) == []


def test_past_is_the_default_view(catalog):
    catalog.mark_payment("u1", "concert", now=utc(2025, 4, 1))
    assert _ids(catalog.filter_experiences("u1", now=AFTER)) == ["concert"]
    assert _ids(catalog.timeline.past_attended("u1", now=AFTER)) == ["concert"]


def test_interested_view_keeps_future_experiences_only(catalog):
    catalog.mark_interest("u1", "tasting", True, now=utc(2025, 4, 1))
    assert _ids(catalog.filter_experiences("u1", "interested", now=BEFORE)) == ["tasting"]
    assert catalog.filter_experiences("u1", "interested", now=AFTER) == []
    assert catalog.filter_experiences("u1", "past", now=AFTER) == []


def test_legacy_interested_status_counts(catalog):
    catalog.user_experience_repo.save(
        UserExperience(user_id="u1", experience_id="tasting", status=UserExperienceStatus.INTERESTED), now=utc(2025, 4, 1)
    )
    assert _ids(catalog.timeline.interested("u1", now=BEFORE)) == ["tasting"]


def test_date_only_experience_today_is_upcoming_not_past(catalog):
    catalog.mark_payment("u1", "market", now=utc(2025, 4, 1))
    evening = utc(2025, 5, 1, 18, 0)
    assert _ids(catalog.filter_experiences("u1", "upcoming", now=evening)) == ["market"]
    assert catalog.filter_experiences("u1", "past", now=evening) == []
    assert _ids(catalog.filter_experiences("u1", "past", now=utc(2025, 5, 2))) == ["market"]


def test_undated_experiences_never_match(catalog):
    catalog.mark_payment("u1", "someday", now=utc(2025, 4, 1))
    catalog.mark_interest("u1", "someday", True, now=utc(2025, 4, 1))
    for view in View:
        assert catalog.filter_experiences("u1", view, now=BEFORE) == []


def test_experience_without_a_row_is_excluded(catalog):
    catalog.mark_payment("u2", "concert", now=utc(2025, 4, 1))
    assert catalog.filter_experiences("u1", "upcoming", now=BEFORE) == []


def test_views_combine_as_conjunction(catalog):
    catalog.mark_payment("u1", "concert", now=utc(2025, 4, 1))
    catalog.mark_payment("u1", "tasting", now=utc(2025, 4, 1))
    catalog.mark_interest("u1", "tasting", True, now=utc(2025, 4, 2))
    assert _ids(catalog.filter_experiences("u1", ["upcoming"], now=BEFORE)) == ["concert", "tasting"]
    assert _ids(catalog.filter_experiences("u1", ["upcoming", "interested"], now=BEFORE)) == ["tasting"]
    assert catalog.filter_experiences("u1", ["past", "upcoming"], now=BEFORE) == []


def test_missing_and_blank_experience_rows_are_skipped(catalog):
    catalog.mark_payment("u1", "concert", now=utc(2025, 4, 1))
    catalog.user_experience_repo.save(UserExperience(user_id="u1", experience_id="ghost", paid=True), now=utc(2025, 4, 2))
    catalog.store.put({"pk": "u1", "sk": "2025-04-03T00:00:00.000000Z", "entityType": "USER_EXPERIENCE", "PAID": True})
    catalog.mark_payment("u1", "tasting", now=utc(2025, 4, 4))
    catalog.delete_experience("tasting", principal="host")
    assert _ids(catalog.filter_experiences("u1", "upcoming", now=BEFORE)) == ["concert"]


def test_parse_views():
    assert parse_views(None) == {View.PAST}
    assert parse_views("") == {View.PAST}
    assert parse_views(["Upcoming_Paid", "interested"]) == {View.UPCOMING, View.INTERESTED}
    with pytest.raises(InvalidInputError):
        parse_views(["tomorrow"])


def test_mark_interest_is_idempotent(catalog):
    catalog.mark_interest("u1", "concert", True, now=utc(2025, 4, 1))
    catalog.mark_interest("u1", "EXPERIENCE#concert", True, now=utc(2025, 4, 2))
    rows = catalog.user_experience_repo.find_by_user("u1")
    assert len(rows) == 1
    assert rows[0].exp_interest is True
    assert rows[0].created_at == utc(2025, 4, 1)

    catalog.mark_interest("u1", "concert", interest_score=0.0, now=utc(2025, 4, 3))
    record = catalog.user_experience_repo.find("u1", "concert")
    assert record.exp_interest is False
    assert record.interest_score == 0.0


def test_interest_and_payment_share_one_row(catalog):
    catalog.mark_interest("u1", "concert", True, now=utc(2025, 4, 1))
    paid = catalog.mark_payment("u1", "concert", now=utc(2025, 4, 2))
    assert paid.exp_interest is True
    assert paid.paid is True
    assert paid.status == UserExperienceStatus.PAID
    assert len(catalog.user_experience_repo.find_by_user("u1")) == 1


def test_mark_payment_defaults_payment_date(catalog):
    paid = catalog.mark_payment(
        "u1", "concert", PaymentDetails(amount=45.5, currency="USD"), now=utc(2025, 4, 1)
    )
    assert paid.payment_details.payment_date == utc(2025, 4, 1)
    assert paid.payment_details.amount == 45.5

    cancelled = catalog.mark_payment("u1", "concert", status="cancelled", now=utc(2025, 4, 2))
    assert cancelled.status == UserExperienceStatus.CANCELLED
    assert cancelled.paid is False


def test_mark_rules(catalog):
    assert catalog.mark_interest("u1", "missing", True) is None
    assert catalog.mark_payment("u1", "missing") is None
    with pytest.raises(ForbiddenError):
        catalog.mark_interest("u1", "concert", True, principal="u2")
    with pytest.raises(ForbiddenError):
        catalog.mark_payment("u1", "concert", principal="u2")
    with pytest.raises(InvalidInputError):
        catalog.mark_payment("u1", "concert", status="REFUNDED")
    with pytest.raises(InvalidInputError):
        catalog.mark_interest("u1", "concert")
    with pytest.raises(InvalidInputError):
        catalog.mark_interest(" ", "concert", True)
    assert catalog.user_experience_repo.find_by_user("u1") == []


def test_users_by_experience(catalog):
    catalog.mark_interest("u1", "concert", True, now=utc(2025, 4, 1))
    catalog.mark_payment("u2", "concert", now=utc(2025, 4, 1))
    catalog.mark_interest("u3", "tasting", True, now=utc(2025, 4, 1))
    assert [r.user_id for r in catalog.find_interested_users("concert")] == ["u1"]
    assert [r.user_id for r in catalog.find_attending_users("concert")] == ["u2"]
    assert sorted(r.user_id for r in catalog.find_all_interested()) == ["u1", "u3"]
    assert [r.user_id for r in catalog.user_experience_repo.find_by_experience_and_status("concert", UserExperienceStatus.PAID)] == ["u2"]


def test_payments_at_one_instant_keep_both_rows(catalog):
    at = utc(2025, 4, 1)
    catalog.mark_payment("u1", "concert", now=at)
    catalog.mark_payment("u1", "tasting", now=at)
    assert sorted(r.experience_id for r in catalog.user_experience_repo.find_by_user("u1")) == ["concert", "tasting"]

    again = catalog.mark_payment("u1", "concert", status="ATTENDED", now=utc(2025, 4, 2))
    assert again.status == UserExperienceStatus.ATTENDED
    assert len(catalog.user_experience_repo.find_by_user("u1")) == 2


DETAILS = PaymentDetails(amount=10.0, currency="USD")


@pytest.mark.parametrize(
    "record, attending",
    [
        (UserExperience(user_id="u1", experience_id="e1", paid=True), True),
        (UserExperience(user_id="u1", experience_id="e1", paid=False, payment_details=DETAILS), True),
        (UserExperience(user_id="u1", experience_id="e1", payment_details=DETAILS, status=UserExperienceStatus.CANCELLED), True),
        (UserExperience(user_id="u1", experience_id="e1", status=UserExperienceStatus.ATTENDED), True),
        (UserExperience(user_id="u1", experience_id="e1", status=UserExperienceStatus.PAID), True),
        (UserExperience(user_id="u1", experience_id="e1", status=UserExperienceStatus.CANCELLED), False),
        (UserExperience(user_id="u1", experience_id="e1", paid=False, status=UserExperienceStatus.INTERESTED), False),
        (UserExperience(user_id="u1", experience_id="e1"), False),
    ],
)
def test_attendance_signals(record, attending):
    assert is_attending(record) is attending


@pytest.mark.parametrize(
    "record, interested",
    [
        (UserExperience(user_id="u1", experience_id="e1", exp_interest=True), True),
        (UserExperience(user_id="u1", experience_id="e1", status=UserExperienceStatus.INTERESTED), True),
        (UserExperience(user_id="u1", experience_id="e1", exp_interest=False, status=UserExperienceStatus.INTERESTED), False),
        (UserExperience(user_id="u1", experience_id="e1", exp_interest=True, status=UserExperienceStatus.CANCELLED), True),
        (UserExperience(user_id="u1", experience_id="e1", status=UserExperienceStatus.PAID), False),
    ],
)
def test_interest_signals(record, interested):
    assert is_interested(record) is interested


def test_payment_details_count_even_when_not_paid(catalog):
    catalog.mark_payment("u1", "concert", DETAILS, status="CANCELLED", now=utc(2025, 4, 1))
    record = catalog.user_experience_repo.find("u1", "concert")
    assert record.paid is False
    assert record.payment_details is not None
    assert _ids(catalog.filter_experiences("u1", "past", now=AFTER)) == ["concert"]


def test_status_alone_decides_without_other_signals(catalog):
    at = utc(2025, 4, 1)
    catalog.user_experience_repo.save(UserExperience(user_id="u1", experience_id="concert", status=UserExperienceStatus.ATTENDED), now=at)
    catalog.user_experience_repo.save(UserExperience(user_id="u1", experience_id="tasting", status=UserExperienceStatus.CANCELLED), now=at)
    assert _ids(catalog.filter_experiences("u1", "past", now=AFTER)) == ["concert"]


def test_interest_flag_overrides_legacy_status(catalog):
    catalog.user_experience_repo.save(
        UserExperience(user_id="u1", experience_id="tasting", exp_interest=False, status=UserExperienceStatus.INTERESTED),
        now=utc(2025, 4, 1),
    )
    assert catalog.filter_experiences("u1", "interested", now=BEFORE) == []


def test_mixed_start_time_offsets_sort_by_instant(catalog):
    plus_two = timezone(timedelta(hours=2))
    catalog.save_experience(
        Experience(experience_id="brunch", title="brunch", experience_date=date(2025, 6, 1), start_time=time(11, 0, tzinfo=plus_two)),
        principal="host",
        now=utc(2025, 1, 1),
    )
    for experience_id in ("concert", "brunch", "market"):
        catalog.mark_payment("u1", experience_id, now=utc(2025, 4, 1))
    # brunch starts 09:00 UTC, before the 10:00 UTC concert
    assert _ids(catalog.filter_experiences("u1", "past", now=AFTER)) == ["market", "brunch", "concert"]
