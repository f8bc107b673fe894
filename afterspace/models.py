"""Entities stored in the shared table and their attribute-map encoding.

Optional fields default to ``None`` and are left out of the item when unset,
so ``from_item(to_item(x)) == x`` for any combination of set fields.
Attribute names follow the existing table (camelCase, plus the historical
``exp-interest`` and ``PAID`` spellings on user-experience rows).
"""
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional

from afterspace.keys import (
    EXPERIENCE_PREFIX,
    GROUP_PREFIX,
    GUARD_PREFIX,
    USER_PREFIX,
    VENUE_PREFIX,
    EXPERIENCE_PK,
    GROUP_PK,
    USER_REF,
    VENUE_PK,
    EntityType,
    format_instant,
    normalize_id,
    parse_date,
    parse_instant,
)

Item = Dict[str, Any]


class _LenientEnum(str, Enum):
    @classmethod
    def parse(cls, value, default=None):
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return default


class ProfileStatus(_LenientEnum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class ExperienceType(_LenientEnum):
    DINING = "DINING"
    ACTIVITY = "ACTIVITY"
    TOUR = "TOUR"
    WORKSHOP = "WORKSHOP"
    EVENT = "EVENT"
    ENTERTAINMENT = "ENTERTAINMENT"
    ADVENTURE = "ADVENTURE"
    CULTURAL = "CULTURAL"
    WELLNESS = "WELLNESS"
    BUSINESS = "BUSINESS"
    OTHER = "OTHER"


class ExperienceStatus(_LenientEnum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    FULL = "FULL"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


class GroupStatus(_LenientEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


class UserExperienceStatus(_LenientEnum):
    INTERESTED = "INTERESTED"
    PAID = "PAID"
    ATTENDED = "ATTENDED"
    CANCELLED = "CANCELLED"


def _put(item: Item, name: str, value) -> None:
    if value is None:
        return
    if isinstance(value, Enum):
        value = value.value
    elif isinstance(value, datetime):
        value = format_instant(value)
    elif isinstance(value, (date, time)):
        value = value.isoformat()
    item[name] = value


def _float(value) -> Optional[float]:
    return None if value is None else float(value)


def _int(value) -> Optional[int]:
    return None if value is None else int(value)


def _bool(value) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _time(value) -> Optional[time]:
    if value is None or isinstance(value, time):
        return value
    text = str(value).strip()
    return time.fromisoformat(text) if text else None


def _created_at(item: Item) -> Optional[datetime]:
    if item.get("createdAt"):
        return parse_instant(item["createdAt"])
    try:
        return parse_instant(item.get("sk"))
    except ValueError:
        # some join rows were written with a non-timestamp sort key
        return None


def _strings(value) -> Optional[List[str]]:
    if value is None:
        return None
    return [str(v) for v in value]


def classify(item: Item) -> Optional[EntityType]:
    """Entity type of a raw row, using ``entityType`` or, for older rows, its shape."""
    declared = item.get("entityType")
    if declared:
        try:
            return EntityType(declared)
        except ValueError:
            return None
    pk = str(item.get("pk", ""))
    if pk.startswith(GUARD_PREFIX):
        return EntityType.GUARD
    if pk.startswith(VENUE_PREFIX) or "geohash_prefix" in item:
        return EntityType.VENUE
    if pk.startswith(EXPERIENCE_PREFIX):
        return EntityType.EXPERIENCE
    if pk.startswith(GROUP_PREFIX):
        return EntityType.GROUP_EXPERIENCE if "experienceId" in item else EntityType.GROUP
    if "experienceId" in item:
        return EntityType.USER_EXPERIENCE
    return EntityType.USER_PROFILE


def is_type(entity_type: EntityType):
    return lambda item: classify(item) == entity_type


def overlay(base, changes):
    """Copy of ``base`` with every non-None field of ``changes`` applied."""
    return replace(base, **{f.name: getattr(changes, f.name) for f in fields(changes) if getattr(changes, f.name) is not None})


IMMUTABLE_ATTRIBUTES = ("pk", "sk", "createdAt", "entityType")


def mutable_attributes(item: Item) -> Item:
    """Attributes a partial update may overwrite. Unset fields are already absent."""
    return {k: v for k, v in item.items() if k not in IMMUTABLE_ATTRIBUTES}


@dataclass
class UserProfile:
    user_id: str
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    gender: Optional[str] = None
    profession: Optional[str] = None
    company: Optional[str] = None
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    status: Optional[ProfileStatus] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def deleted(self) -> bool:
        return self.status == ProfileStatus.DELETED

    def to_item(self) -> Item:
        item: Item = {"pk": self.user_id, "entityType": EntityType.USER_PROFILE.value, "userId": self.user_id}
        _put(item, "sk", self.created_at)
        _put(item, "dateOfBirth", self.date_of_birth)
        _put(item, "address", self.address)
        _put(item, "city", self.city)
        _put(item, "state", self.state)
        _put(item, "zipCode", self.zip_code)
        _put(item, "country", self.country)
        _put(item, "latitude", self.latitude)
        _put(item, "longitude", self.longitude)
        _put(item, "gender", self.gender)
        _put(item, "profession", self.profession)
        _put(item, "company", self.company)
        _put(item, "bio", self.bio)
        _put(item, "phoneNumber", self.phone_number)
        _put(item, "status", self.status)
        _put(item, "createdAt", self.created_at)
        _put(item, "updatedAt", self.updated_at)
        return item

    @classmethod
    def from_item(cls, item: Item) -> "UserProfile":
        return cls(
            user_id=normalize_id(item.get("userId") or item["pk"]),
            date_of_birth=parse_date(item.get("dateOfBirth")),
            address=item.get("address"),
            city=item.get("city"),
            state=item.get("state"),
            zip_code=item.get("zipCode"),
            country=item.get("country"),
            latitude=_float(item.get("latitude")),
            longitude=_float(item.get("longitude")),
            gender=item.get("gender"),
            profession=item.get("profession"),
            company=item.get("company"),
            bio=item.get("bio"),
            phone_number=item.get("phoneNumber"),
            status=ProfileStatus.parse(item.get("status"), ProfileStatus.ACTIVE),
            created_at=_created_at(item),
            updated_at=parse_instant(item.get("updatedAt")),
        )


@dataclass
class Experience:
    experience_id: Optional[str] = None
    created_by: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[ExperienceType] = None
    status: Optional[ExperienceStatus] = None
    location: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    experience_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    price_per_person: Optional[float] = None
    currency: Optional[str] = None
    max_capacity: Optional[int] = None
    current_bookings: Optional[int] = None
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None
    contact_info: Optional[str] = None
    requirements: Optional[str] = None
    cancellation_policy: Optional[str] = None
    average_rating: Optional[float] = None
    total_reviews: Optional[int] = None
    venue_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def deleted(self) -> bool:
        return self.status == ExperienceStatus.DELETED

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_item(self) -> Item:
        item: Item = {
            "pk": EXPERIENCE_PK(self.experience_id),
            "entityType": EntityType.EXPERIENCE.value,
            "experienceId": self.experience_id,
        }
        _put(item, "sk", self.created_at)
        _put(item, "createdBy", self.created_by)
        _put(item, "title", self.title)
        _put(item, "description", self.description)
        _put(item, "type", self.type)
        _put(item, "status", self.status)
        _put(item, "location", self.location)
        _put(item, "address", self.address)
        _put(item, "city", self.city)
        _put(item, "country", self.country)
        _put(item, "latitude", self.latitude)
        _put(item, "longitude", self.longitude)
        _put(item, "experienceDate", self.experience_date)
        _put(item, "startTime", self.start_time)
        _put(item, "endTime", self.end_time)
        _put(item, "pricePerPerson", self.price_per_person)
        _put(item, "currency", self.currency)
        _put(item, "maxCapacity", self.max_capacity)
        _put(item, "currentBookings", self.current_bookings)
        _put(item, "tags", self.tags)
        _put(item, "images", self.images)
        _put(item, "contactInfo", self.contact_info)
        _put(item, "requirements", self.requirements)
        _put(item, "cancellationPolicy", self.cancellation_policy)
        _put(item, "averageRating", self.average_rating)
        _put(item, "totalReviews", self.total_reviews)
        _put(item, "venueId", self.venue_id)
        _put(item, "createdAt", self.created_at)
        _put(item, "updatedAt", self.updated_at)
        if self.venue_id:
            item["GSI1PK"] = VENUE_PK(self.venue_id)
            item["GSI1SK"] = EXPERIENCE_PK(self.experience_id)
        return item

    @classmethod
    def from_item(cls, item: Item) -> "Experience":
        return cls(
            experience_id=normalize_id(item.get("experienceId") or item["pk"], EXPERIENCE_PREFIX),
            created_by=item.get("createdBy"),
            title=item.get("title"),
            description=item.get("description"),
            type=ExperienceType.parse(item.get("type"), ExperienceType.OTHER),
            status=ExperienceStatus.parse(item.get("status"), ExperienceStatus.DRAFT),
            location=item.get("location"),
            address=item.get("address"),
            city=item.get("city"),
            country=item.get("country"),
            latitude=_float(item.get("latitude")),
            longitude=_float(item.get("longitude")),
            experience_date=parse_date(item.get("experienceDate")),
            start_time=_time(item.get("startTime")),
            end_time=_time(item.get("endTime")),
            price_per_person=_float(item.get("pricePerPerson")),
            currency=item.get("currency"),
            max_capacity=_int(item.get("maxCapacity")),
            current_bookings=_int(item.get("currentBookings")),
            tags=_strings(item.get("tags")),
            images=_strings(item.get("images")),
            contact_info=item.get("contactInfo"),
            requirements=item.get("requirements"),
            cancellation_policy=item.get("cancellationPolicy"),
            average_rating=_float(item.get("averageRating")),
            total_reviews=_int(item.get("totalReviews")),
            venue_id=normalize_id(item.get("venueId"), VENUE_PREFIX),
            created_at=_created_at(item),
            updated_at=parse_instant(item.get("updatedAt")),
        )


@dataclass
class Group:
    group_id: str
    creator_user_id: Optional[str] = None
    group_name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[GroupStatus] = None
    member_user_ids: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def deleted(self) -> bool:
        return self.status == GroupStatus.DELETED

    @property
    def members(self) -> List[str]:
        return list(self.member_user_ids or [])

    def to_item(self) -> Item:
        item: Item = {"pk": GROUP_PK(self.group_id), "entityType": EntityType.GROUP.value, "groupId": self.group_id}
        _put(item, "sk", self.created_at)
        _put(item, "creatorUserId", self.creator_user_id)
        _put(item, "groupName", self.group_name)
        _put(item, "description", self.description)
        _put(item, "status", self.status)
        _put(item, "memberUserIds", self.member_user_ids)
        _put(item, "createdAt", self.created_at)
        _put(item, "updatedAt", self.updated_at)
        if self.creator_user_id:
            item["GSI1PK"] = USER_REF(self.creator_user_id)
            item["GSI1SK"] = GROUP_PK(self.group_id)
        return item

    @classmethod
    def from_item(cls, item: Item) -> "Group":
        return cls(
            group_id=normalize_id(item.get("groupId") or item["pk"], GROUP_PREFIX),
            # older rows stored the creator as userId
            creator_user_id=normalize_id(item.get("creatorUserId") or item.get("userId"), USER_PREFIX),
            group_name=item.get("groupName"),
            description=item.get("description"),
            status=GroupStatus.parse(item.get("status"), GroupStatus.ACTIVE),
            member_user_ids=_strings(item.get("memberUserIds")),
            created_at=_created_at(item),
            updated_at=parse_instant(item.get("updatedAt")),
        )


@dataclass
class GroupExperience:
    group_id: str
    experience_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_item(self) -> Item:
        item: Item = {
            "pk": GROUP_PK(self.group_id),
            "entityType": EntityType.GROUP_EXPERIENCE.value,
            "groupId": self.group_id,
            "experienceId": self.experience_id,
            "GSI1PK": EXPERIENCE_PK(self.experience_id),
            "GSI1SK": GROUP_PK(self.group_id),
        }
        _put(item, "sk", self.created_at)
        _put(item, "createdAt", self.created_at)
        _put(item, "updatedAt", self.updated_at)
        return item

    @classmethod
    def from_item(cls, item: Item) -> "GroupExperience":
        return cls(
            group_id=normalize_id(item.get("groupId") or item["pk"], GROUP_PREFIX),
            experience_id=normalize_id(item.get("experienceId"), EXPERIENCE_PREFIX),
            created_at=_created_at(item),
            updated_at=parse_instant(item.get("updatedAt")),
        )


@dataclass
class PaymentDetails:
    amount: Optional[float] = None
    currency: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None

    def to_map(self) -> Item:
        data: Item = {}
        _put(data, "amount", self.amount)
        _put(data, "currency", self.currency)
        _put(data, "paymentMethod", self.payment_method)
        _put(data, "paymentDate", self.payment_date)
        _put(data, "transactionId", self.transaction_id)
        return data

    @classmethod
    def from_map(cls, data: Optional[Item]) -> Optional["PaymentDetails"]:
        if data is None:
            return None
        return cls(
            amount=_float(data.get("amount")),
            currency=data.get("currency"),
            payment_method=data.get("paymentMethod"),
            payment_date=parse_instant(data.get("paymentDate")),
            transaction_id=data.get("transactionId"),
        )


@dataclass
class UserExperience:
    """Join row between a user and an experience.

    Holds three separate attendance signals: ``paid``, ``payment_details``
    and ``status``. ``exp_interest`` is the interest flag.
    """

    user_id: str
    experience_id: Optional[str] = None
    experience_time: Optional[datetime] = None
    interest_score: Optional[float] = None
    exp_interest: Optional[bool] = None
    status: Optional[UserExperienceStatus] = None
    paid: Optional[bool] = None
    payment_details: Optional[PaymentDetails] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_item(self) -> Item:
        item: Item = {"pk": self.user_id, "entityType": EntityType.USER_EXPERIENCE.value, "userId": self.user_id}
        _put(item, "sk", self.created_at)
        _put(item, "experienceId", self.experience_id)
        _put(item, "experienceTime", self.experience_time)
        _put(item, "interestScore", self.interest_score)
        _put(item, "exp-interest", self.exp_interest)
        _put(item, "status", self.status)
        _put(item, "PAID", self.paid)
        if self.payment_details is not None:
            item["paymentDetails"] = self.payment_details.to_map()
        _put(item, "createdAt", self.created_at)
        _put(item, "updatedAt", self.updated_at)
        if self.experience_id:
            item["GSI1PK"] = EXPERIENCE_PK(self.experience_id)
            item["GSI1SK"] = USER_REF(self.user_id)
        return item

    @classmethod
    def from_item(cls, item: Item) -> "UserExperience":
        return cls(
            user_id=normalize_id(item.get("userId") or item["pk"]),
            experience_id=normalize_id(item.get("experienceId"), EXPERIENCE_PREFIX),
            experience_time=parse_instant(item.get("experienceTime")),
            interest_score=_float(item.get("interestScore")),
            exp_interest=_bool(item.get("exp-interest")),
            status=UserExperienceStatus.parse(item.get("status")),
            paid=_bool(item.get("PAID")),
            payment_details=PaymentDetails.from_map(item.get("paymentDetails")),
            created_at=_created_at(item),
            updated_at=parse_instant(item.get("updatedAt")),
        )


@dataclass
class VenueLocation:
    venue_id: str
    name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    geohash_prefix: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_item(self) -> Item:
        item: Item = {"pk": VENUE_PK(self.venue_id), "entityType": EntityType.VENUE.value, "venueId": self.venue_id}
        _put(item, "sk", self.created_at)
        _put(item, "name", self.name)
        _put(item, "latitude", self.latitude)
        _put(item, "longitude", self.longitude)
        _put(item, "address", self.address)
        _put(item, "city", self.city)
        _put(item, "country", self.country)
        _put(item, "geohash_prefix", self.geohash_prefix)
        _put(item, "createdAt", self.created_at)
        _put(item, "updatedAt", self.updated_at)
        return item

    @classmethod
    def from_item(cls, item: Item) -> "VenueLocation":
        return cls(
            venue_id=normalize_id(item.get("venueId") or item["pk"], VENUE_PREFIX),
            name=item.get("name"),
            latitude=_float(item.get("latitude")),
            longitude=_float(item.get("longitude")),
            address=item.get("address"),
            city=item.get("city"),
            country=item.get("country"),
            geohash_prefix=item.get("geohash_prefix"),
            created_at=_created_at(item),
            updated_at=parse_instant(item.get("updatedAt")),
        )


@dataclass
class NearbyExperience:
    experience_id: str
    title: Optional[str]
    description: Optional[str]
    type: Optional[ExperienceType]
    latitude: float
    longitude: float
    address: Optional[str]
    city: Optional[str]
    distance_km: float
    venue_id: Optional[str] = None
    venue_name: Optional[str] = None


@dataclass
class GroupAttendance:
    group_id: str
    experience_id: str
    paid_user_ids: List[str] = field(default_factory=list)
    unpaid_user_ids: List[str] = field(default_factory=list)
