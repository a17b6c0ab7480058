"""
Grant issuance: trials, promotional demos, and purchase grants created from
payment-succeeded events.

Payment events are delivered at least once. The payment reference is the
idempotency key: the second delivery of an event returns the grant created
by the first instead of issuing another one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple
from uuid import uuid4

from domain.access_code import generate_access_code, is_valid_access_code, normalize_access_code
from domain.errors import Conflict, TransientStoreError, ValidationError
from domain.grant import AccessGrant, Audience, GrantKind, GrantMetadata, GrantStatus
from domain.time import inclusive_window_end, require_utc_timestamp, utc_now
from repositories.grant_repository import (
    code_exists,
    get_grant_by_payment_reference,
    insert_grant,
    list_grants_by_owner,
)
from repositories.query import DuplicateKeyError
from services.settings import get_settings

logger = logging.getLogger(__name__)

B2C_PURCHASE_SEATS: int = 1
ORGANIZATION_PURCHASE_SEATS: int = 5


@dataclass(frozen=True, slots=True)
class PaymentSucceeded:
    """A confirmed payment, as forwarded by the payment provider integration."""

    payment_reference: str
    user_id: str
    package_ref: Optional[str] = None
    unique_code: Optional[str] = None
    max_seats: Optional[int] = None
    audience: Audience = Audience.B2C
    organization_id: Optional[str] = None
    valid_days: Optional[int] = None


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    require_utc_timestamp("now", now)
    return now


def generate_unique_code() -> str:
    """
    Pick a random code not yet carried by any grant.

    The insert's unique constraint remains the final arbiter; this only keeps
    collisions rare.
    """

    attempts = get_settings().code_generation_attempts
    for _ in range(attempts):
        code = generate_access_code()
        if not code_exists(code):
            return code
    raise TransientStoreError(f"Could not generate an unused access code after {attempts} attempts")


def _insert_with_fresh_code(build: Callable[[str], AccessGrant]) -> AccessGrant:
    attempts = get_settings().code_generation_attempts
    for attempt in range(1, attempts + 1):
        grant = build(generate_unique_code())
        try:
            return insert_grant(grant)
        except DuplicateKeyError:
            logger.warning(
                "Access code collided on insert; generating another",
                extra={"kind": grant.kind.value, "attempt": attempt},
            )
    raise TransientStoreError(f"Could not insert a grant with a unique code after {attempts} attempts")


def issue_trial(
    owner_user_id: str,
    package_ref: Optional[str] = None,
    audience: Audience = Audience.B2C,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AccessGrant:
    if not owner_user_id:
        raise ValidationError("owner_user_id is required")
    now = _resolve_now(now)
    settings = get_settings()

    grant = _insert_with_fresh_code(
        lambda code: AccessGrant(
            grant_id=uuid4(),
            kind=GrantKind.TRIAL,
            code=code,
            owner_user_id=owner_user_id,
            organization_id=organization_id,
            audience=Audience(audience),
            max_seats=settings.trial_seats,
            start_date=now,
            end_date=inclusive_window_end(now, settings.trial_days),
            metadata=GrantMetadata(package_ref=package_ref),
            created_at=now,
            updated_at=now,
        )
    )
    logger.info(
        "Trial issued",
        extra={"grant_id": str(grant.grant_id), "owner_user_id": owner_user_id, "end_date": grant.end_date.isoformat()},
    )
    return grant


def issue_demo(
    owner_user_id: str,
    audience: Audience,
    package_ref: Optional[str] = None,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AccessGrant:
    """
    Issue a promotional demo for `audience`.

    Raises:
        Conflict (active_grant_exists): the owner already holds a usable demo for the audience
    """

    if not owner_user_id:
        raise ValidationError("owner_user_id is required")
    now = _resolve_now(now)
    audience = Audience(audience)
    settings = get_settings()

    for existing in list_grants_by_owner(owner_user_id, kind=GrantKind.DEMO):
        if (
            existing.audience == audience
            and existing.status == GrantStatus.ACTIVE
            and not existing.is_expired(now)
        ):
            raise Conflict(
                f"You already have an active demo code for {audience.value}: {existing.code}",
                flag="active_grant_exists",
            )

    grant = _insert_with_fresh_code(
        lambda code: AccessGrant(
            grant_id=uuid4(),
            kind=GrantKind.DEMO,
            code=code,
            owner_user_id=owner_user_id,
            organization_id=organization_id,
            audience=audience,
            max_seats=settings.demo_seats,
            start_date=now,
            end_date=inclusive_window_end(now, settings.demo_days),
            metadata=GrantMetadata(package_ref=package_ref, promo_tag=audience.value),
            created_at=now,
            updated_at=now,
        )
    )
    logger.info(
        "Demo issued",
        extra={"grant_id": str(grant.grant_id), "owner_user_id": owner_user_id, "audience": audience.value},
    )
    return grant


def _validate_event(event: PaymentSucceeded) -> None:
    if not event.payment_reference or not event.payment_reference.strip():
        raise ValidationError("payment_reference is required")
    if not event.user_id or not event.user_id.strip():
        raise ValidationError("user_id is required")
    if event.max_seats is not None and event.max_seats < 1:
        raise ValidationError("max_seats must be >= 1")
    if event.valid_days is not None and event.valid_days < 1:
        raise ValidationError("valid_days must be >= 1")
    if event.unique_code is not None and not is_valid_access_code(event.unique_code):
        raise ValidationError(f"Malformed access code: {event.unique_code}")


def issue_purchase_from_payment(
    event: PaymentSucceeded,
    now: Optional[datetime] = None,
) -> Tuple[AccessGrant, bool]:
    """
    Create the purchase grant for a payment, at most once per payment_reference.

    Returns:
        (grant, created): created is False when the event was already processed.
    """

    _validate_event(event)
    now = _resolve_now(now)
    settings = get_settings()
    audience = Audience(event.audience)

    existing = get_grant_by_payment_reference(event.payment_reference)
    if existing is not None:
        logger.info(
            "Duplicate payment event ignored",
            extra={"payment_reference": event.payment_reference, "grant_id": str(existing.grant_id)},
        )
        return existing, False

    if event.max_seats is not None:
        max_seats = event.max_seats
    else:
        max_seats = B2C_PURCHASE_SEATS if audience == Audience.B2C else ORGANIZATION_PURCHASE_SEATS
    valid_days = event.valid_days or settings.purchase_valid_days

    attempts = settings.code_generation_attempts
    for attempt in range(1, attempts + 1):
        code = normalize_access_code(event.unique_code) if event.unique_code else generate_unique_code()
        grant = AccessGrant(
            grant_id=uuid4(),
            kind=GrantKind.PURCHASE,
            code=code,
            owner_user_id=event.user_id,
            organization_id=event.organization_id,
            audience=audience,
            max_seats=max_seats,
            start_date=now,
            end_date=inclusive_window_end(now, valid_days),
            metadata=GrantMetadata(package_ref=event.package_ref, payment_reference=event.payment_reference),
            created_at=now,
            updated_at=now,
        )
        try:
            stored = insert_grant(grant)
        except DuplicateKeyError:
            # Either a concurrent delivery of the same event won, or the code collided.
            winner = get_grant_by_payment_reference(event.payment_reference)
            if winner is not None:
                logger.info(
                    "Concurrent payment event already created the grant",
                    extra={"payment_reference": event.payment_reference, "grant_id": str(winner.grant_id)},
                )
                return winner, False
            if event.unique_code:
                raise Conflict(f"Access code {code} is already in use", flag="code_taken") from None
            logger.warning(
                "Access code collided on insert; generating another",
                extra={"kind": GrantKind.PURCHASE.value, "attempt": attempt},
            )
            continue

        logger.info(
            "Purchase grant issued",
            extra={
                "grant_id": str(stored.grant_id),
                "payment_reference": event.payment_reference,
                "max_seats": max_seats,
                "audience": audience.value,
            },
        )
        return stored, True

    raise TransientStoreError(f"Could not insert a purchase grant after {attempts} attempts")


__all__ = [
    "PaymentSucceeded",
    "generate_unique_code",
    "issue_demo",
    "issue_purchase_from_payment",
    "issue_trial",
]
