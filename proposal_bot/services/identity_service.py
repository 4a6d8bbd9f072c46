import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from proposal_bot.logging_config import get_logger
from proposal_bot.models import Company, OperatorChannel, Profile
from proposal_bot.schemas.conversation import Channel, Identity
from proposal_bot.services.phone_utils import (
    COMPARE_TAIL_DIGITS,
    MIN_FALLBACK_DIGITS,
    is_suffix_match,
    normalize_phone,
    phone_tail,
)

logger = get_logger("identity_service")


def _digits_only(column):
    return func.regexp_replace(column, r"\D", "", "g")


def _find_exact_matches(db: Session, digits: str) -> list[tuple[UUID, Optional[str]]]:
    profiles = db.query(Profile.user_id, Profile.name).filter(_digits_only(Profile.phone) == digits).all()
    companies = db.query(Company.user_id, Company.name).filter(_digits_only(Company.phone) == digits).all()
    return [(row[0], row[1]) for row in [*profiles, *companies]]


def _find_suffix_candidates(db: Session, digits: str) -> list[tuple[UUID, Optional[str], str]]:
    tail = phone_tail(digits, COMPARE_TAIL_DIGITS)
    tail_filter = func.right(_digits_only(Profile.phone), COMPARE_TAIL_DIGITS) == tail
    profiles = db.query(Profile.user_id, Profile.name, Profile.phone).filter(tail_filter).all()

    company_tail = func.right(_digits_only(Company.phone), COMPARE_TAIL_DIGITS) == tail
    companies = db.query(Company.user_id, Company.name, Company.phone).filter(company_tail).all()

    return [(row[0], row[1], normalize_phone(row[2])) for row in [*profiles, *companies]]


def _single_operator(matches: list[tuple[UUID, Optional[str]]]) -> Optional[tuple[UUID, Optional[str]]]:
    """Profile and company rows of the same operator count once; anything else is ambiguous."""
    operators: dict[UUID, Optional[str]] = {}
    for user_id, name in matches:
        # profile rows come first, their name wins
        if user_id not in operators or not operators[user_id]:
            operators[user_id] = name
    if len(operators) != 1:
        return None
    return next(iter(operators.items()))


def resolve_identity(db: Session, channel: Channel, raw_phone: Optional[str]) -> Identity:
    """
    Map a phone number to a registered operator.

    Exact normalized match first. Without one, numbers of at least 10 digits may
    match on their trailing digits when one number is a suffix of the other
    (country code present on one side only); ambiguous results stay unknown.
    """
    digits = normalize_phone(raw_phone)
    if not digits:
        return Identity.unknown()

    exact = _find_exact_matches(db, digits)
    match = _single_operator(exact)
    if exact and not match:
        logger.warning(
            "Phone matches more than one operator",
            extra={"context": {"channel": channel.value, "candidates": len(exact)}},
        )
        return Identity.unknown()

    if not match and len(digits) >= MIN_FALLBACK_DIGITS:
        candidates = [
            (user_id, name)
            for user_id, name, stored in _find_suffix_candidates(db, digits)
            if is_suffix_match(stored, digits)
        ]
        match = _single_operator(candidates)
        if candidates and not match:
            logger.warning(
                "Suffix phone match is ambiguous",
                extra={"context": {"channel": channel.value, "candidates": len(candidates)}},
            )

    if not match:
        logger.info(f"Unknown phone on {channel.value}: ...{phone_tail(digits, 4)}")
        return Identity.unknown()

    operator_id, name = match
    logger.info(f"Resolved operator {operator_id} on {channel.value}")
    return Identity(is_known_operator=True, operator_id=operator_id, display_name=name)


def link_channel(db: Session, operator_id: UUID, channel: Channel, external_user_id: str) -> None:
    """Remember the operator's native chat id so notifications can reach them later."""
    now = datetime.now(timezone.utc)
    stmt = insert(OperatorChannel).values(
        id=uuid.uuid4(),
        user_id=operator_id,
        channel=channel.value,
        external_user_id=external_user_id,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "channel"],
        set_={"external_user_id": stmt.excluded.external_user_id, "updated_at": now},
    )
    db.execute(stmt)


def get_linked_channels(db: Session, operator_id: UUID) -> list[OperatorChannel]:
    return db.query(OperatorChannel).filter(OperatorChannel.user_id == operator_id).all()
