"""
Domain: AccessGrant (redeemable code) and per-user redemption state.

Contract excerpts implemented here:
- A grant is one of three kinds (trial, demo, purchase) sharing a single seat
  contract: max_seats, used_seats, redemptions, audience, validity window.
- Each grant code is unique and immutable once issued.
- 0 <= used_seats <= max_seats; used_seats never decreases.
- At most one redemption entry per user_id.
- used_seats == number of redemption entries with completed == True.
- Per (grant, user): NOT_STARTED -> STARTED -> SEAT_CONSUMED, never backwards.

This module contains only pure domain entities/value objects: no I/O, no database,
no frameworks. All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .time import end_of_day, require_utc_timestamp


class GrantKind(str, Enum):
    TRIAL = "trial"
    DEMO = "demo"
    PURCHASE = "purchase"


class Audience(str, Enum):
    B2C = "B2C"
    B2B = "B2B"
    B2E = "B2E"


class GrantStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"  # every seat consumed
    EXPIRED = "expired"


class RedemptionState(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    SEAT_CONSUMED = "seat_consumed"


@dataclass(frozen=True, slots=True)
class Redemption:
    """One user's use of a grant."""

    user_id: str
    started_at: datetime
    completed: bool = False
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("started_at", self.started_at)
        if self.completed_at is not None:
            require_utc_timestamp("completed_at", self.completed_at)
        if self.completed and self.completed_at is None:
            raise ValueError("completed redemption requires completed_at")

    @property
    def state(self) -> RedemptionState:
        return RedemptionState.SEAT_CONSUMED if self.completed else RedemptionState.STARTED

    def consumed(self, completed_at: datetime) -> "Redemption":
        """Return a new Redemption marked as having consumed its seat."""

        require_utc_timestamp("completed_at", completed_at)
        if self.completed:
            raise ValueError("Redemption has already consumed its seat")
        return replace(self, completed=True, completed_at=completed_at)


@dataclass(frozen=True, slots=True)
class GrantMetadata:
    """
    Kind-specific attributes of a grant.

    - package_ref: catalog package or product the grant unlocks (any kind)
    - promo_tag: promotional audience tag (demos)
    - payment_reference: provider payment id, unique per purchase grant
    """

    package_ref: Optional[str] = None
    promo_tag: Optional[str] = None
    payment_reference: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AccessGrant:
    """
    Immutable snapshot of a grant document at a given revision.

    Transitions (`with_started`, `with_consumed`) return new instances with the
    revision bumped; the repository persists them with a compare-and-swap on the
    revision this snapshot was read at.
    """

    grant_id: UUID
    kind: GrantKind
    code: str
    owner_user_id: str
    audience: Audience
    max_seats: int
    start_date: datetime
    end_date: datetime
    used_seats: int = 0
    status: GrantStatus = GrantStatus.ACTIVE
    redemptions: Tuple[Redemption, ...] = ()
    organization_id: Optional[str] = None
    metadata: GrantMetadata = field(default_factory=GrantMetadata)
    revision: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("start_date", self.start_date)
        require_utc_timestamp("end_date", self.end_date)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

        if self.max_seats < 1:
            raise ValueError("max_seats must be >= 1")
        if not 0 <= self.used_seats <= self.max_seats:
            raise ValueError("used_seats must be within [0, max_seats]")
        if self.end_date < self.start_date:
            raise ValueError("end_date must not precede start_date")

        user_ids = [r.user_id for r in self.redemptions]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("At most one redemption per user_id")

        completed = sum(1 for r in self.redemptions if r.completed)
        if completed != self.used_seats:
            raise ValueError(
                f"used_seats ({self.used_seats}) must equal completed redemptions ({completed})"
            )

        if self.kind == GrantKind.PURCHASE and not self.metadata.payment_reference:
            raise ValueError("purchase grants require a payment_reference")

    @property
    def remaining_seats(self) -> int:
        return self.max_seats - self.used_seats

    @property
    def seats_full(self) -> bool:
        return self.remaining_seats <= 0

    @property
    def pending_claims(self) -> int:
        """Seats provisionally held by users who started but have not completed."""

        return sum(1 for r in self.redemptions if not r.completed)

    @property
    def full_for_new_users(self) -> bool:
        return self.used_seats + self.pending_claims >= self.max_seats

    @property
    def valid_until(self) -> datetime:
        """Last usable instant: the end date extended to end of day."""

        return end_of_day(self.end_date)

    def is_expired(self, now: datetime) -> bool:
        require_utc_timestamp("now", now)
        return self.status == GrantStatus.EXPIRED or now > self.valid_until

    def redemption_for(self, user_id: str) -> Optional[Redemption]:
        for redemption in self.redemptions:
            if redemption.user_id == user_id:
                return redemption
        return None

    def state_for(self, user_id: str) -> RedemptionState:
        redemption = self.redemption_for(user_id)
        if redemption is None:
            return RedemptionState.NOT_STARTED
        return redemption.state

    def with_started(self, user_id: str, started_at: datetime) -> "AccessGrant":
        """
        Return the next revision with a STARTED entry for `user_id`.

        Admission applies to new users only. Every STARTED entry holds a seat
        until it completes, so a grant whose seats are all used or claimed
        rejects them.
        """

        if self.redemption_for(user_id) is not None:
            raise ValueError("User already has a redemption on this grant")
        if self.full_for_new_users:
            raise ValueError("Grant has no remaining seats for new users")

        entry = Redemption(user_id=user_id, started_at=started_at)
        return replace(
            self,
            redemptions=self.redemptions + (entry,),
            revision=self.revision + 1,
            updated_at=started_at,
        )

    def with_consumed(self, user_id: str, completed_at: datetime) -> "AccessGrant":
        """
        Return the next revision with `user_id`'s seat consumed.

        A user without an entry gets one created already completed. The grant
        status becomes COMPLETED when the last seat is taken.
        """

        existing = self.redemption_for(user_id)
        if existing is not None and existing.completed:
            raise ValueError("Seat already consumed for this user")
        if self.seats_full:
            raise ValueError("Grant has no remaining seats")
        if existing is None and self.full_for_new_users:
            raise ValueError("Grant has no unclaimed seats for new users")

        if existing is None:
            entry = Redemption(
                user_id=user_id,
                started_at=completed_at,
                completed=True,
                completed_at=completed_at,
            )
            redemptions = self.redemptions + (entry,)
        else:
            redemptions = tuple(
                r.consumed(completed_at) if r.user_id == user_id else r for r in self.redemptions
            )

        used_seats = self.used_seats + 1
        status = self.status
        if used_seats >= self.max_seats and status == GrantStatus.ACTIVE:
            status = GrantStatus.COMPLETED

        return replace(
            self,
            redemptions=redemptions,
            used_seats=used_seats,
            status=status,
            revision=self.revision + 1,
            updated_at=completed_at,
        )

    def with_expired(self, expired_at: datetime) -> "AccessGrant":
        """Return the next revision with status EXPIRED. Seat counts are untouched."""

        require_utc_timestamp("expired_at", expired_at)
        if self.status == GrantStatus.EXPIRED:
            raise ValueError("Grant is already expired")
        return replace(
            self,
            status=GrantStatus.EXPIRED,
            revision=self.revision + 1,
            updated_at=expired_at,
        )


__all__ = [
    "AccessGrant",
    "Audience",
    "GrantKind",
    "GrantMetadata",
    "GrantStatus",
    "Redemption",
    "RedemptionState",
]
