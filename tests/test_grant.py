"""
Tests for `domain/grant.py`.

Covers contract rules:
- 0 <= used_seats <= max_seats and used_seats == completed redemptions.
- At most one redemption per user.
- NOT_STARTED -> STARTED -> SEAT_CONSUMED, never backwards.
- A grant stays usable for the whole of its end date.
- Transitions return new snapshots with the revision bumped.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from domain.grant import (
    AccessGrant,
    Audience,
    GrantKind,
    GrantMetadata,
    GrantStatus,
    Redemption,
    RedemptionState,
)

START = datetime(2025, 1, 1, 9, 30, 0, tzinfo=timezone.utc)
END = datetime(2025, 1, 14, 9, 30, 0, tzinfo=timezone.utc)


def _grant(**overrides) -> AccessGrant:
    fields = dict(
        grant_id=UUID("00000000-0000-0000-0000-000000000001"),
        kind=GrantKind.DEMO,
        code="4573-DTE2-R232",
        owner_user_id="owner",
        audience=Audience.B2B,
        max_seats=2,
        start_date=START,
        end_date=END,
    )
    fields.update(overrides)
    return AccessGrant(**fields)


def test_new_grant_has_all_seats_free() -> None:
    grant = _grant()

    assert grant.used_seats == 0
    assert grant.remaining_seats == 2
    assert grant.seats_full is False
    assert grant.status == GrantStatus.ACTIVE
    assert grant.state_for("alice") == RedemptionState.NOT_STARTED


def test_grant_rejects_inconsistent_seat_counts() -> None:
    with pytest.raises(ValueError):
        _grant(max_seats=0)

    with pytest.raises(ValueError):
        _grant(used_seats=3, max_seats=2)

    # used_seats must match the number of completed entries
    with pytest.raises(ValueError):
        _grant(used_seats=1)


def test_grant_rejects_duplicate_redemptions() -> None:
    entry = Redemption(user_id="alice", started_at=START)
    with pytest.raises(ValueError):
        _grant(redemptions=(entry, entry))


def test_grant_requires_utc_timestamps_and_ordered_window() -> None:
    with pytest.raises(ValueError):
        _grant(start_date=datetime(2025, 1, 1))

    with pytest.raises(ValueError):
        _grant(end_date=START.astimezone(timezone(timedelta(hours=2))))

    with pytest.raises(ValueError):
        _grant(end_date=START - timedelta(days=1))


def test_purchase_grant_requires_payment_reference() -> None:
    with pytest.raises(ValueError):
        _grant(kind=GrantKind.PURCHASE)

    grant = _grant(kind=GrantKind.PURCHASE, metadata=GrantMetadata(payment_reference="pi_123"))
    assert grant.metadata.payment_reference == "pi_123"


def test_end_date_is_usable_until_end_of_day() -> None:
    grant = _grant()

    assert grant.is_expired(datetime(2025, 1, 14, 23, 59, 59, tzinfo=timezone.utc)) is False
    assert grant.is_expired(datetime(2025, 1, 15, 0, 0, 0, tzinfo=timezone.utc)) is True


def test_expired_status_is_expired_regardless_of_window() -> None:
    grant = _grant(status=GrantStatus.EXPIRED)
    assert grant.is_expired(START) is True


def test_with_started_adds_entry_and_bumps_revision() -> None:
    grant = _grant()
    started = grant.with_started("alice", START)

    assert started.state_for("alice") == RedemptionState.STARTED
    assert started.revision == grant.revision + 1
    assert started.used_seats == 0
    # original snapshot untouched
    assert grant.redemptions == ()

    with pytest.raises(ValueError):
        started.with_started("alice", START)


def test_with_started_rejects_new_user_on_full_grant() -> None:
    grant = _grant(max_seats=1).with_consumed("alice", START)
    with pytest.raises(ValueError):
        grant.with_started("bob", START)


def test_started_entries_hold_seats_until_completed() -> None:
    grant = _grant(max_seats=1).with_started("alice", START)

    assert grant.pending_claims == 1
    assert grant.seats_full is False
    assert grant.full_for_new_users is True
    with pytest.raises(ValueError):
        grant.with_started("bob", START)
    with pytest.raises(ValueError):
        grant.with_consumed("bob", START)

    consumed = grant.with_consumed("alice", START + timedelta(hours=1))
    assert consumed.pending_claims == 0
    assert consumed.used_seats == 1


def test_with_consumed_counts_seat_once() -> None:
    grant = _grant().with_started("alice", START)
    done_at = START + timedelta(hours=1)
    consumed = grant.with_consumed("alice", done_at)

    assert consumed.used_seats == 1
    assert consumed.state_for("alice") == RedemptionState.SEAT_CONSUMED
    assert consumed.redemption_for("alice").completed_at == done_at
    assert consumed.redemption_for("alice").started_at == START
    assert consumed.status == GrantStatus.ACTIVE

    with pytest.raises(ValueError):
        consumed.with_consumed("alice", done_at)


def test_with_consumed_without_entry_appends_completed_entry() -> None:
    consumed = _grant().with_consumed("carol", START)

    assert consumed.used_seats == 1
    entry = consumed.redemption_for("carol")
    assert entry is not None
    assert entry.completed is True


def test_last_seat_marks_grant_completed() -> None:
    grant = _grant().with_consumed("alice", START).with_consumed("bob", START)

    assert grant.used_seats == 2
    assert grant.seats_full is True
    assert grant.status == GrantStatus.COMPLETED

    with pytest.raises(ValueError):
        grant.with_consumed("carol", START)


def test_with_expired_keeps_seats_and_is_not_repeatable() -> None:
    grant = _grant().with_consumed("alice", START)
    expired = grant.with_expired(START + timedelta(days=30))

    assert expired.status == GrantStatus.EXPIRED
    assert expired.used_seats == 1
    assert expired.revision == grant.revision + 1

    with pytest.raises(ValueError):
        expired.with_expired(START + timedelta(days=31))


def test_grant_is_immutable() -> None:
    grant = _grant()
    with pytest.raises(FrozenInstanceError):
        grant.used_seats = 1  # type: ignore[misc]
