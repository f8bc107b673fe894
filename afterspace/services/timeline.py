"""Past / upcoming / interested experience lists for a user.

Each of the user's join rows is checked against the linked experience's
start and the current instant:

* interested: interest flag set (legacy rows: status INTERESTED) and the
  experience starts now or later.
* past: attended and the experience started before now.
* upcoming: attended and the experience starts after now.

"Attended" is true when any of ``paid``, ``payment_details`` or a
PAID/ATTENDED status says so. Experiences with a date but no start time
are compared by calendar day in UTC: today counts as upcoming, not past.
Rows without an experience id, or whose experience is gone, are skipped.
"""
import logging
from datetime import datetime, time, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from afterspace.errors import InvalidInputError
from afterspace.keys import utcnow
from afterspace.models import Experience, UserExperience, UserExperienceStatus

logger = logging.getLogger(__name__)


class View(str, Enum):
    PAST = "past"
    UPCOMING = "upcoming"
    INTERESTED = "interested"


_ALIASES = {
    "past": View.PAST,
    "past-attended": View.PAST,
    "attended": View.PAST,
    "upcoming": View.UPCOMING,
    "upcoming-paid": View.UPCOMING,
    "paid": View.UPCOMING,
    "interested": View.INTERESTED,
}


def parse_views(views: Union[None, str, View, Iterable[Union[str, View]]]) -> Set[View]:
    if views is None:
        return {View.PAST}
    if isinstance(views, (str, View)):
        views = [views]
    parsed = set()
    for view in views:
        if isinstance(view, View):
            parsed.add(view)
            continue
        key = str(view).strip().lower().replace("_", "-")
        if not key:
            continue
        if key not in _ALIASES:
            raise InvalidInputError(f"unknown experience filter {view!r}")
        parsed.add(_ALIASES[key])
    return parsed or {View.PAST}


def is_interested(record: UserExperience) -> bool:
    if record.exp_interest is not None:
        return record.exp_interest
    return record.status == UserExperienceStatus.INTERESTED


def is_attending(record: UserExperience) -> bool:
    if record.paid:
        return True
    if record.payment_details is not None:
        return True
    return record.status in (UserExperienceStatus.PAID, UserExperienceStatus.ATTENDED)


def _position(experience: Experience, now: datetime) -> Optional[int]:
    """-1 if the experience started before ``now``, 0 if it starts now, 1 if later."""
    if experience.experience_date is None:
        return None
    if experience.start_time is None:
        today = now.astimezone(timezone.utc).date()
        if experience.experience_date < today:
            return -1
        return 0 if experience.experience_date == today else 1
    start = datetime.combine(experience.experience_date, experience.start_time)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if start < now:
        return -1
    return 0 if start == now else 1


def _interested(record, experience, now) -> bool:
    pos = _position(experience, now)
    return is_interested(record) and pos is not None and pos >= 0


def _past(record, experience, now) -> bool:
    pos = _position(experience, now)
    return is_attending(record) and pos is not None and pos < 0


def _upcoming(record, experience, now) -> bool:
    pos = _position(experience, now)
    if pos is None or not is_attending(record):
        return False
    if experience.start_time is None:
        return pos >= 0
    return pos > 0


CHECKS: Dict[View, Callable[[UserExperience, Experience, datetime], bool]] = {
    View.PAST: _past,
    View.UPCOMING: _upcoming,
    View.INTERESTED: _interested,
}


def _start_key(experience: Experience) -> datetime:
    start = datetime.combine(experience.experience_date, experience.start_time or time.min)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return start.astimezone(timezone.utc)


class TimelineService:
    def __init__(self, experiences, user_experiences):
        self.experiences = experiences
        self.user_experiences = user_experiences

    def filter_experiences(self, user_id, views=None, now: Optional[datetime] = None) -> List[Experience]:
        """Experiences of the user passing every requested view (default: past)."""
        wanted = parse_views(views)
        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        matches: Dict[str, Experience] = {}
        for record in self.user_experiences.find_by_user(user_id):
            experience_id = record.experience_id
            if not experience_id:
                logger.warning("user %s has an experience row without experience id, skipping", record.user_id)
                continue
            if experience_id in matches:
                continue
            experience = self.experiences.find_by_id(experience_id)
            if experience is None or experience.deleted:
                logger.warning("user %s linked to missing experience %s, skipping", record.user_id, experience_id)
                continue
            if all(CHECKS[view](record, experience, now) for view in wanted):
                matches[experience_id] = experience
            else:
                logger.debug("experience %s filtered out for %s (%s)", experience_id, record.user_id, sorted(v.value for v in wanted))

        return sorted(matches.values(), key=_start_key)

    def past_attended(self, user_id, now: Optional[datetime] = None) -> List[Experience]:
        return self.filter_experiences(user_id, View.PAST, now)

    def upcoming_paid(self, user_id, now: Optional[datetime] = None) -> List[Experience]:
        return self.filter_experiences(user_id, View.UPCOMING, now)

    def interested(self, user_id, now: Optional[datetime] = None) -> List[Experience]:
        return self.filter_experiences(user_id, View.INTERESTED, now)
