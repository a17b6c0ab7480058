"""
Seat allocator: the only writer of grant seat state.

Per (grant, user) state machine:

    NOT_STARTED --start()--> STARTED --complete()--> SEAT_CONSUMED

Every transition is one conditional update of the grant document
(compare-and-swap on its revision, see repositories/grant_repository.py).
There are no locks and no read-then-increment: a request that loses a race
re-reads the document and decides again, so duplicate retries, parallel tabs
and "play again" clicks can never count a seat twice.

Failure semantics:
- start() for a new user when every seat is used or held by a started user -> SeatsFull
- complete() for a user who never started goes through the same admission
  checks (GrantExpired, SeatsFull)
- start() on an expired grant -> GrantExpired
- complete() for a user whose seat is already consumed -> ALREADY_COMPLETED outcome
  (a successful no-op, not an error)
- store failures or exhausted retries -> TransientStoreError (safe to retry)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from domain.access_code import normalize_access_code
from domain.errors import AlreadyCompleted, GrantExpired, GrantNotFound, SeatsFull, TransientStoreError
from domain.grant import AccessGrant, GrantStatus, RedemptionState
from domain.time import require_utc_timestamp, utc_now
from repositories.grant_repository import get_grant_by_code, get_grant_by_id, swap_grant
from services.settings import get_settings

logger = logging.getLogger(__name__)


class SeatOutcomeKind(str, Enum):
    STARTED = "started"  # new STARTED entry written
    RESUMED = "resumed"  # user was already STARTED; nothing written
    SEAT_CONSUMED = "seat_consumed"  # seat counted by this call
    ALREADY_COMPLETED = "already_completed"  # seat was counted earlier; nothing written


@dataclass(frozen=True, slots=True)
class SeatOutcome:
    kind: SeatOutcomeKind
    grant: AccessGrant
    user_id: str

    @property
    def changed(self) -> bool:
        return self.kind in (SeatOutcomeKind.STARTED, SeatOutcomeKind.SEAT_CONSUMED)

    @property
    def state(self) -> RedemptionState:
        return self.grant.state_for(self.user_id)


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    require_utc_timestamp("now", now)
    return now


def _load_by_code(code: str) -> AccessGrant:
    grant = get_grant_by_code(normalize_access_code(code))
    if grant is None:
        raise GrantNotFound(code)
    return grant


def _load_by_id(grant_id: UUID) -> AccessGrant:
    grant = get_grant_by_id(grant_id)
    if grant is None:
        raise GrantNotFound(str(grant_id))
    return grant


def _lost_race(operation: str, grant: AccessGrant, user_id: Optional[str], attempt: int) -> None:
    logger.info(
        f"Conditional update lost a race during {operation}; re-reading grant",
        extra={
            "grant_id": str(grant.grant_id),
            "user_id": user_id,
            "revision": grant.revision,
            "attempt": attempt,
        },
    )


def start(code: str, user_id: str, now: Optional[datetime] = None) -> SeatOutcome:
    """
    Admit `user_id` to the grant identified by `code`.

    New users need a seat that is neither used nor held by another started
    user. Starting holds a seat, so a user who already started resumes and can
    always complete.

    Raises:
        GrantNotFound, GrantExpired, SeatsFull, AlreadyCompleted, TransientStoreError
    """

    now = _resolve_now(now)
    attempts = get_settings().seat_cas_max_attempts

    for attempt in range(1, attempts + 1):
        grant = _load_by_code(code)

        if grant.is_expired(now):
            raise GrantExpired(grant.code)

        state = grant.state_for(user_id)
        if state == RedemptionState.SEAT_CONSUMED:
            raise AlreadyCompleted()
        if state == RedemptionState.STARTED:
            return SeatOutcome(SeatOutcomeKind.RESUMED, grant, user_id)

        if grant.full_for_new_users:
            logger.info(
                "Start rejected: grant is full for new users",
                extra={
                    "grant_id": str(grant.grant_id),
                    "user_id": user_id,
                    "used_seats": grant.used_seats,
                    "pending_claims": grant.pending_claims,
                },
            )
            raise SeatsFull(grant.max_seats, grant.used_seats)

        stored = swap_grant(grant, grant.with_started(user_id, now))
        if stored is not None:
            logger.info(
                "Redemption started",
                extra={"grant_id": str(grant.grant_id), "user_id": user_id, "revision": stored.revision},
            )
            return SeatOutcome(SeatOutcomeKind.STARTED, stored, user_id)

        _lost_race("start", grant, user_id, attempt)

    raise TransientStoreError(f"Could not start redemption after {attempts} attempts; retry the request")


def complete(grant_id: UUID, user_id: str, now: Optional[datetime] = None) -> SeatOutcome:
    """
    Consume `user_id`'s seat exactly once.

    The write matches only if the document is unchanged since it was read AND
    the user's entry is not already completed; used_seats + 1 and the entry's
    completed flag land in that same single update.

    Raises:
        GrantNotFound, GrantExpired (user never started on an expired grant),
        SeatsFull (no capacity left for this user), TransientStoreError
    """

    now = _resolve_now(now)
    attempts = get_settings().seat_cas_max_attempts

    for attempt in range(1, attempts + 1):
        grant = _load_by_id(grant_id)

        if grant.state_for(user_id) == RedemptionState.SEAT_CONSUMED:
            logger.info(
                "Seat already consumed; completion is a no-op",
                extra={"grant_id": str(grant.grant_id), "user_id": user_id},
            )
            return SeatOutcome(SeatOutcomeKind.ALREADY_COMPLETED, grant, user_id)

        if grant.state_for(user_id) == RedemptionState.NOT_STARTED:
            if grant.is_expired(now):
                raise GrantExpired(grant.code)
            if grant.full_for_new_users:
                logger.info(
                    "Completion rejected: user never started and no seat is free",
                    extra={"grant_id": str(grant.grant_id), "user_id": user_id, "used_seats": grant.used_seats},
                )
                raise SeatsFull(grant.max_seats, grant.used_seats)

        if grant.seats_full:
            logger.warning(
                "Completion rejected: no seat left to consume",
                extra={"grant_id": str(grant.grant_id), "user_id": user_id, "max_seats": grant.max_seats},
            )
            raise SeatsFull(grant.max_seats, grant.used_seats)

        stored = swap_grant(grant, grant.with_consumed(user_id, now), unless_consumed_by=user_id)
        if stored is not None:
            logger.info(
                "Seat consumed",
                extra={
                    "grant_id": str(grant.grant_id),
                    "user_id": user_id,
                    "used_seats": stored.used_seats,
                    "max_seats": stored.max_seats,
                },
            )
            return SeatOutcome(SeatOutcomeKind.SEAT_CONSUMED, stored, user_id)

        _lost_race("complete", grant, user_id, attempt)

    raise TransientStoreError(f"Could not record completion after {attempts} attempts; retry the request")


def mark_expired(grant: AccessGrant, now: Optional[datetime] = None) -> AccessGrant:
    """
    Flip an out-of-window grant to EXPIRED. Idempotent.

    Returns the stored grant (unchanged if it was already expired).
    """

    now = _resolve_now(now)
    attempts = get_settings().seat_cas_max_attempts
    current = grant

    for attempt in range(1, attempts + 1):
        if current.status == GrantStatus.EXPIRED:
            return current

        stored = swap_grant(current, current.with_expired(now))
        if stored is not None:
            logger.info(
                "Grant expired",
                extra={"grant_id": str(current.grant_id), "end_date": current.end_date.isoformat()},
            )
            return stored

        _lost_race("expire", current, None, attempt)
        current = _load_by_id(current.grant_id)

    raise TransientStoreError(f"Could not expire grant after {attempts} attempts; retry the request")


__all__ = [
    "SeatOutcome",
    "SeatOutcomeKind",
    "complete",
    "mark_expired",
    "start",
]
