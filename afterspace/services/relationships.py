import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from afterspace.errors import ForbiddenError, InvalidInputError
from afterspace.keys import EXPERIENCE_PREFIX, normalize_id, utcnow
from afterspace.models import PaymentDetails, UserExperience, UserExperienceStatus
from afterspace.services.timeline import is_attending

logger = logging.getLogger(__name__)


def _require_ids(user_id, experience_id):
    user_id = normalize_id(user_id)
    experience_id = normalize_id(experience_id, EXPERIENCE_PREFIX)
    if user_id is None or experience_id is None:
        raise InvalidInputError("user id and experience id are required")
    return user_id, experience_id


def _check_principal(principal, user_id):
    if principal is not None and normalize_id(principal) != user_id:
        raise ForbiddenError("users can only change their own interest and payments")


class RelationshipService:
    """Interest and payment between users and experiences."""

    def __init__(self, experiences, user_experiences):
        self.experiences = experiences
        self.user_experiences = user_experiences

    def mark_interest(
        self,
        user_id,
        experience_id,
        interested: Optional[bool] = None,
        interest_score: Optional[float] = None,
        principal=None,
        now: Optional[datetime] = None,
    ) -> Optional[UserExperience]:
        """Set the interest flag. ``interest_score > 0`` stands in for ``interested``.

        The row's status and payment fields are left alone. Returns ``None``
        when the experience does not exist.
        """
        user_id, experience_id = _require_ids(user_id, experience_id)
        _check_principal(principal, user_id)
        if interested is None:
            if interest_score is None:
                raise InvalidInputError("interested or interest_score is required")
            interested = float(interest_score) > 0
        if self._missing(experience_id):
            return None

        record = UserExperience(
            user_id=user_id,
            experience_id=experience_id,
            exp_interest=bool(interested),
            interest_score=None if interest_score is None else float(interest_score),
        )
        saved = self.user_experiences.save(record, now=now)
        logger.info("user %s interest in %s = %s", user_id, experience_id, saved.exp_interest)
        return saved

    def mark_payment(
        self,
        user_id,
        experience_id,
        details: Optional[PaymentDetails] = None,
        status=None,
        principal=None,
        now: Optional[datetime] = None,
    ) -> Optional[UserExperience]:
        """Record a payment. Status defaults to PAID; ``paid`` follows the status."""
        user_id, experience_id = _require_ids(user_id, experience_id)
        _check_principal(principal, user_id)
        if status is None:
            parsed = UserExperienceStatus.PAID
        else:
            parsed = UserExperienceStatus.parse(status)
            if parsed is None:
                raise InvalidInputError(f"unknown payment status {status!r}")
        if self._missing(experience_id):
            return None

        now = now or utcnow()
        if details is not None and details.payment_date is None:
            details = replace(details, payment_date=now)
        record = UserExperience(
            user_id=user_id,
            experience_id=experience_id,
            status=parsed,
            paid=parsed in (UserExperienceStatus.PAID, UserExperienceStatus.ATTENDED),
            payment_details=details,
        )
        saved = self.user_experiences.save(record, now=now)
        logger.info("user %s payment for %s: status=%s paid=%s", user_id, experience_id, parsed.value, saved.paid)
        return saved

    def find_interested_users(self, experience_id) -> List[UserExperience]:
        return self.user_experiences.find_interested_by_experience(experience_id)

    def find_attending_users(self, experience_id) -> List[UserExperience]:
        return [r for r in self.user_experiences.find_by_experience(experience_id) if is_attending(r)]

    def find_all_interested(self) -> List[UserExperience]:
        return self.user_experiences.find_all_interested()

    def _missing(self, experience_id) -> bool:
        experience = self.experiences.find_by_id(experience_id)
        if experience is None or experience.deleted:
            logger.info("experience %s not found", experience_id)
            return True
        return False
