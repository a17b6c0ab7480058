"""
Tests for `services/progress_service.py`.

Covers contract rules:
- One record per (user, level), however many times or however concurrently it is saved.
- Submitting the audience's last required level consumes the seat on the
  first-time completion only.
- Play-again resubmissions never consume another seat.
- Progress without a started grant is saved without seat accounting.
- An explicit code for a user who never started goes through admission:
  expired or fully claimed grants reject the submission.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import pytest

from domain.errors import GrantExpired, GrantNotFound, ProgressNotFound, SeatsFull, ValidationError
from domain.grant import AccessGrant, Audience, GrantKind, RedemptionState
from domain.progress import CardScore, RiskLevel
from repositories.grant_repository import get_grant_by_code, insert_grant
from services import progress_service, seat_allocator
from services.progress_service import LevelSubmission
from services.seat_allocator import SeatOutcomeKind

NOW = datetime(2025, 2, 1, 10, 0, 0, tzinfo=timezone.utc)

PLAYED = LevelSubmission(cards=(CardScore("c1", total_score=12, correct_answers=3, total_questions=4),))
EMPTY = LevelSubmission()


def _seed(code: str, audience: Audience, max_seats: int = 2, end_date: Optional[datetime] = None) -> AccessGrant:
    return insert_grant(
        AccessGrant(
            grant_id=uuid4(),
            kind=GrantKind.TRIAL,
            code=code,
            owner_user_id="owner",
            audience=audience,
            max_seats=max_seats,
            start_date=NOW - timedelta(days=1),
            end_date=end_date or NOW + timedelta(days=6),
        )
    )


def test_save_creates_then_overwrites_single_record(store) -> None:
    first = progress_service.save_level_progress("alice", 1, PLAYED, now=NOW)
    later = NOW + timedelta(minutes=5)
    second = progress_service.save_level_progress(
        "alice", 1, LevelSubmission(cards=PLAYED.cards, total_score=16, max_score=16), now=later
    )

    rows = store.rows("progress_records")
    assert len(rows) == 1
    assert second.record_id == first.record_id
    assert second.total_score == 16
    assert second.percentage_score == 100
    assert second.risk_level == RiskLevel.CONFIDENT
    assert second.completed_at == later
    assert second.created_at == NOW


def test_save_derives_aggregates(store) -> None:
    record = progress_service.save_level_progress("alice", 2, PLAYED, now=NOW)

    assert record.max_score == 16
    assert record.percentage_score == 75
    assert record.risk_level == RiskLevel.CAUTIOUS


def test_save_rejects_bad_input(store) -> None:
    with pytest.raises(ValidationError):
        progress_service.save_level_progress("alice", 4, PLAYED, now=NOW)
    with pytest.raises(ValidationError):
        progress_service.save_level_progress("", 1, PLAYED, now=NOW)
    with pytest.raises(ValidationError):
        progress_service.save_level_progress("alice", 1, LevelSubmission(percentage_score=150), now=NOW)


def test_concurrent_first_saves_keep_one_record(store) -> None:
    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(lambda _: progress_service.save_level_progress("alice", 1, PLAYED, now=NOW), range(6)))

    rows = [r for r in store.rows("progress_records") if r["user_id"] == "alice" and r["level_number"] == 1]
    assert len(rows) == 1


def test_get_level_progress_missing(store) -> None:
    with pytest.raises(ProgressNotFound):
        progress_service.get_level_progress("alice", 2)


def test_summary_lists_all_levels(store) -> None:
    progress_service.save_level_progress("alice", 1, PLAYED, now=NOW)
    progress_service.save_level_progress("alice", 3, EMPTY, now=NOW)

    summary = progress_service.progress_summary("alice")

    assert set(summary.levels) == {1, 2, 3}
    assert summary.levels[2] is None
    assert summary.levels_completed == 1
    assert summary.overall_percentage == 75


def test_is_complete_reads_fresh_state(store) -> None:
    assert progress_service.is_complete("alice", Audience.B2C) is False
    progress_service.save_level_progress("alice", 1, PLAYED, now=NOW)
    assert progress_service.is_complete("alice", Audience.B2C) is True
    assert progress_service.is_complete("alice", Audience.B2B) is False


def test_b2c_level_one_consumes_seat(store) -> None:
    _seed("2222-BBB2-B222", Audience.B2C)
    seat_allocator.start("2222-BBB2-B222", "alice", now=NOW)

    result = progress_service.submit_level_progress("alice", 1, PLAYED, now=NOW)

    assert result.transition.first_time is True
    assert result.seat_outcome.kind == SeatOutcomeKind.SEAT_CONSUMED
    assert result.record.grant_ref == "2222-BBB2-B222"
    assert get_grant_by_code("2222-BBB2-B222").used_seats == 1


def test_b2b_seat_consumed_only_after_level_three(store) -> None:
    code = "3333-CCC3-C333"
    _seed(code, Audience.B2B)
    seat_allocator.start(code, "alice", now=NOW)

    for level in (1, 2):
        result = progress_service.submit_level_progress("alice", level, PLAYED, grant_code=code, now=NOW)
        assert result.seat_outcome is None
        assert get_grant_by_code(code).used_seats == 0

    result = progress_service.submit_level_progress("alice", 3, PLAYED, grant_code=code, now=NOW)

    assert result.seat_outcome.kind == SeatOutcomeKind.SEAT_CONSUMED
    assert get_grant_by_code(code).state_for("alice") == RedemptionState.SEAT_CONSUMED


def test_play_again_does_not_consume_another_seat(store) -> None:
    code = "4444-DDD4-D444"
    _seed(code, Audience.B2B)
    seat_allocator.start(code, "alice", now=NOW)
    for level in (1, 2, 3):
        progress_service.submit_level_progress("alice", level, PLAYED, grant_code=code, now=NOW)

    again = progress_service.submit_level_progress(
        "alice", 3, PLAYED, grant_code=code, now=NOW + timedelta(hours=1)
    )

    assert again.transition.first_time is False
    assert again.seat_outcome is None
    assert get_grant_by_code(code).used_seats == 1
    assert len(store.rows("progress_records")) == 3


def test_empty_final_level_does_not_complete(store) -> None:
    code = "5555-EEE5-E555"
    _seed(code, Audience.B2C)
    seat_allocator.start(code, "alice", now=NOW)

    result = progress_service.submit_level_progress("alice", 1, EMPTY, now=NOW)

    assert result.transition.is_completed_now is False
    assert result.seat_outcome is None
    assert get_grant_by_code(code).used_seats == 0


def test_interrupted_completion_is_recovered(store) -> None:
    code = "6666-FFF6-F666"
    _seed(code, Audience.B2C)
    seat_allocator.start(code, "alice", now=NOW)
    # the earlier request saved progress but died before the seat write
    progress_service.save_level_progress("alice", 1, PLAYED, grant_ref=code, now=NOW)

    result = progress_service.submit_level_progress("alice", 1, PLAYED, now=NOW + timedelta(minutes=1))

    assert result.transition.first_time is False
    assert result.seat_outcome.kind == SeatOutcomeKind.SEAT_CONSUMED
    assert get_grant_by_code(code).used_seats == 1


def test_duplicate_concurrent_submissions_consume_one_seat(store) -> None:
    code = "7777-GGG7-G777"
    _seed(code, Audience.B2C, max_seats=3)
    seat_allocator.start(code, "alice", now=NOW)

    with ThreadPoolExecutor(max_workers=5) as pool:
        list(
            pool.map(
                lambda _: progress_service.submit_level_progress("alice", 1, PLAYED, grant_code=code, now=NOW),
                range(5),
            )
        )

    grant = get_grant_by_code(code)
    assert grant.used_seats == 1
    assert len(store.rows("progress_records")) == 1


def test_progress_without_started_grant_is_saved(store) -> None:
    result = progress_service.submit_level_progress("dave", 1, PLAYED, now=NOW)

    assert result.grant is None
    assert result.seat_outcome is None
    assert result.record.grant_ref is None


def test_unknown_grant_code_is_rejected(store) -> None:
    with pytest.raises(GrantNotFound):
        progress_service.submit_level_progress("alice", 1, PLAYED, grant_code="0000-AAA0-A000", now=NOW)


def test_list_user_progress_is_ordered_by_level(store) -> None:
    progress_service.save_level_progress("alice", 3, PLAYED, now=NOW)
    progress_service.save_level_progress("alice", 1, PLAYED, now=NOW)
    progress_service.save_level_progress("bob", 2, PLAYED, now=NOW)

    records = progress_service.list_user_progress("alice")

    assert [r.level_number for r in records] == [1, 3]


def test_explicit_code_starts_user_before_consuming(store) -> None:
    code = "8888-HHH8-H888"
    _seed(code, Audience.B2C)

    result = progress_service.submit_level_progress("erin", 1, PLAYED, grant_code=code, now=NOW)

    assert result.seat_outcome.kind == SeatOutcomeKind.SEAT_CONSUMED
    grant = get_grant_by_code(code)
    assert grant.used_seats == 1
    assert grant.redemption_for("erin").started_at == NOW


def test_explicit_code_on_expired_grant_is_rejected(store) -> None:
    code = "9999-JJJ9-J999"
    _seed(code, Audience.B2C, end_date=NOW - timedelta(hours=12))

    with pytest.raises(GrantExpired):
        progress_service.submit_level_progress(
            "mallory", 1, PLAYED, grant_code=code, now=NOW + timedelta(days=1)
        )

    grant = get_grant_by_code(code)
    assert grant.used_seats == 0
    assert grant.state_for("mallory") == RedemptionState.NOT_STARTED
    assert store.rows("progress_records") == []


def test_explicit_code_on_claimed_grant_is_rejected(store) -> None:
    code = "1212-KKK1-K212"
    _seed(code, Audience.B2C, max_seats=1)
    seat_allocator.start(code, "alice", now=NOW)

    with pytest.raises(SeatsFull):
        progress_service.submit_level_progress("mallory", 1, PLAYED, grant_code=code, now=NOW)

    assert get_grant_by_code(code).used_seats == 0
    assert get_grant_by_code(code).state_for("mallory") == RedemptionState.NOT_STARTED


def test_user_started_before_fill_completes_via_submission(store) -> None:
    code = "1313-LLL1-L313"
    _seed(code, Audience.B2C, max_seats=2)
    seat_allocator.start(code, "alice", now=NOW)
    seat_allocator.start(code, "bob", now=NOW)

    bob = progress_service.submit_level_progress("bob", 1, PLAYED, now=NOW)
    alice = progress_service.submit_level_progress("alice", 1, PLAYED, now=NOW + timedelta(hours=2))

    assert bob.seat_outcome.kind == SeatOutcomeKind.SEAT_CONSUMED
    assert alice.seat_outcome.kind == SeatOutcomeKind.SEAT_CONSUMED
    grant = get_grant_by_code(code)
    assert grant.used_seats == 2
    assert grant.state_for("alice") == RedemptionState.SEAT_CONSUMED
