"""
Code validator: answers "can this user use this code right now?".

Read-only apart from one idempotent write: a grant found past its validity
window is flipped to EXPIRED (through the seat allocator's conditional update).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from domain.access_code import normalize_access_code
from domain.errors import GrantNotFound
from domain.grant import AccessGrant, Audience, GrantKind, GrantStatus, RedemptionState
from domain.time import require_utc_timestamp, utc_now
from repositories.grant_repository import get_grant_by_code
from services import seat_allocator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RedemptionCheck:
    valid: bool
    remaining_seats: int
    max_seats: int
    used_seats: int
    is_expired: bool
    has_user_played: bool
    user_seat_used: bool
    seats_full: bool
    grant_id: UUID
    kind: GrantKind
    audience: Audience
    end_date: datetime
    message: str


def _result(
    grant: AccessGrant,
    *,
    valid: bool,
    message: str,
    is_expired: bool = False,
    has_user_played: bool = False,
    user_seat_used: bool = False,
    seats_full: Optional[bool] = None,
) -> RedemptionCheck:
    return RedemptionCheck(
        valid=valid,
        remaining_seats=max(grant.remaining_seats, 0),
        max_seats=grant.max_seats,
        used_seats=grant.used_seats,
        is_expired=is_expired,
        has_user_played=has_user_played,
        user_seat_used=user_seat_used,
        seats_full=grant.seats_full if seats_full is None else seats_full,
        grant_id=grant.grant_id,
        kind=grant.kind,
        audience=grant.audience,
        end_date=grant.end_date,
        message=message,
    )


def check(code: str, user_id: Optional[str] = None, now: Optional[datetime] = None) -> RedemptionCheck:
    """
    Validate `code`, optionally for a specific user.

    Raises:
        GrantNotFound: if no grant carries the code
    """

    if now is None:
        now = utc_now()
    require_utc_timestamp("now", now)

    grant = get_grant_by_code(normalize_access_code(code))
    if grant is None:
        raise GrantNotFound(code)

    if grant.is_expired(now):
        if grant.status != GrantStatus.EXPIRED:
            grant = seat_allocator.mark_expired(grant, now)
        return _result(
            grant,
            valid=False,
            is_expired=True,
            message="This code has expired. You cannot play the game.",
        )

    if user_id is not None:
        state = grant.state_for(user_id)
        if state == RedemptionState.SEAT_CONSUMED:
            return _result(
                grant,
                valid=False,
                has_user_played=True,
                user_seat_used=True,
                message="You have already completed the game with this code. Your seat has been used.",
            )
        if state == RedemptionState.STARTED:
            return _result(grant, valid=True, has_user_played=True, message="Welcome back. Continue where you left off.")

    # Seats held by users who started but have not finished count as taken.
    if grant.full_for_new_users:
        plural = "s" if grant.max_seats != 1 else ""
        return _result(
            grant,
            valid=False,
            seats_full=True,
            message=f"You have only {grant.max_seats} seat{plural}. Your seats are completed.",
        )

    return _result(grant, valid=True, message="Code is valid.")


__all__ = ["RedemptionCheck", "check"]
