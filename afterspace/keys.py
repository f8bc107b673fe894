"""Key layout for the shared table.

Every row lives under ``pk``/``sk``. ``sk`` is the ISO-8601 instant the row
was created, so the newest row of a partition is the first one returned by a
descending query. Profiles and user-experience rows keep the raw user id as
their partition key; everything else is prefixed with its type.
"""
import re
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

EXPERIENCE_PREFIX = "EXPERIENCE#"
GROUP_PREFIX = "GROUP#"
VENUE_PREFIX = "VENUE#"
USER_PREFIX = "USER#"
GUARD_PREFIX = "LINKGUARD#"

# guard rows have no version history
GUARD_SK = "1970-01-01T00:00:00.000000Z"


class EntityType(str, Enum):
    USER_PROFILE = "USER_PROFILE"
    EXPERIENCE = "EXPERIENCE"
    GROUP = "GROUP"
    GROUP_EXPERIENCE = "GROUP_EXPERIENCE"
    USER_EXPERIENCE = "USER_EXPERIENCE"
    VENUE = "VENUE"
    GUARD = "GUARD"


PK_PREFIXES = {
    EntityType.USER_PROFILE: "",
    EntityType.USER_EXPERIENCE: "",
    EntityType.EXPERIENCE: EXPERIENCE_PREFIX,
    EntityType.GROUP: GROUP_PREFIX,
    EntityType.GROUP_EXPERIENCE: GROUP_PREFIX,
    EntityType.VENUE: VENUE_PREFIX,
    EntityType.GUARD: GUARD_PREFIX,
}

EXPERIENCE_PK = lambda eid: f"{EXPERIENCE_PREFIX}{eid}"
GROUP_PK = lambda gid: f"{GROUP_PREFIX}{gid}"
VENUE_PK = lambda vid: f"{VENUE_PREFIX}{vid}"
USER_REF = lambda uid: f"{USER_PREFIX}{uid}"
GROUP_LINK_GUARD = lambda gid, eid: f"{GUARD_PREFIX}{GROUP_PREFIX}{gid}#{EXPERIENCE_PREFIX}{eid}"
USER_LINK_GUARD = lambda uid, eid: f"{GUARD_PREFIX}{USER_PREFIX}{uid}#{EXPERIENCE_PREFIX}{eid}"


def strip_prefix(value: str, prefix: str) -> str:
    """Remove ``prefix`` once if present. Already-bare ids pass through."""
    if prefix and value.startswith(prefix):
        return value[len(prefix):]
    return value


def normalize_id(value, prefix: str = "") -> Optional[str]:
    """Canonical natural id: trimmed, unprefixed, ``None`` when blank."""
    if value is None:
        return None
    value = str(value).strip()
    if prefix:
        value = strip_prefix(value, prefix).strip()
    return value or None


def encode_key(entity_type: EntityType, natural_id: str) -> str:
    entity_type = EntityType(entity_type)
    prefix = PK_PREFIXES[entity_type]
    natural_id = normalize_id(natural_id, prefix)
    if natural_id is None:
        raise ValueError(f"blank id for {entity_type.value}")
    return f"{prefix}{natural_id}"


def decode_key(entity_type: EntityType, pk: str) -> str:
    return strip_prefix(pk, PK_PREFIXES[EntityType(entity_type)])


def id_variants(value: str, prefix: str) -> List[str]:
    """Both spellings an id may have been stored under, bare first."""
    bare = normalize_id(value, prefix)
    if bare is None:
        return []
    return [bare, f"{prefix}{bare}"]


_FRACTION = re.compile(r"\.(\d+)")


def format_instant(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_instant(value) -> Optional[datetime]:
    """Parse a stored instant. Naive values are taken as UTC."""
    if value is None or isinstance(value, datetime):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # fromisoformat only keeps microseconds
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def version_sk(now: Optional[datetime] = None) -> str:
    return format_instant(now or utcnow())


def next_sk(sk: str) -> str:
    """The sort key one microsecond after ``sk``."""
    return format_instant(parse_instant(sk) + timedelta(microseconds=1))


def parse_date(value) -> Optional[date]:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    text = str(value).strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])
