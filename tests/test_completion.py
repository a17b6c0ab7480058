"""
Tests for `domain/completion.py` and `domain/access_code.py`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from domain.access_code import generate_access_code, is_valid_access_code, normalize_access_code
from domain.completion import (
    CompletionTransition,
    is_complete_from_records,
    last_required_level,
    level_status,
    required_levels,
)
from domain.grant import Audience
from domain.progress import CardScore, ProgressRecord

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _finished(level: int) -> ProgressRecord:
    return ProgressRecord(
        record_id=uuid4(),
        user_id="alice",
        level_number=level,
        cards=(CardScore("c1", total_score=4, total_questions=1),),
        total_score=4,
        max_score=4,
        correct_answers=1,
        total_questions=1,
        percentage_score=100,
        risk_level=None,
        completed_at=NOW,
    )


def test_required_levels_per_audience() -> None:
    assert required_levels(Audience.B2C) == {1}
    assert required_levels(Audience.B2B) == {1, 2, 3}
    assert required_levels(Audience.B2E) == {1, 2, 3}
    assert last_required_level(Audience.B2C) == 1
    assert last_required_level(Audience.B2E) == 3


def test_b2c_complete_with_level_one_only() -> None:
    assert is_complete_from_records([_finished(1)], Audience.B2C) is True


def test_b2b_incomplete_with_two_levels() -> None:
    records = [_finished(1), _finished(2)]

    assert is_complete_from_records(records, Audience.B2B) is False
    assert level_status(records, Audience.B2B) == {1: True, 2: True, 3: False}
    assert is_complete_from_records(records + [_finished(3)], Audience.B2B) is True


def test_empty_level_does_not_count() -> None:
    empty = ProgressRecord(
        record_id=uuid4(),
        user_id="alice",
        level_number=1,
        cards=(),
        total_score=0,
        max_score=0,
        correct_answers=0,
        total_questions=0,
        percentage_score=0,
        risk_level=None,
        completed_at=NOW,
    )
    assert is_complete_from_records([empty], Audience.B2C) is False


def test_transition_first_time_only_on_false_to_true() -> None:
    assert CompletionTransition(False, True).first_time is True
    assert CompletionTransition(True, True).first_time is False
    assert CompletionTransition(False, False).first_time is False


def test_generated_codes_match_format() -> None:
    codes = {generate_access_code() for _ in range(50)}

    assert all(is_valid_access_code(code) for code in codes)
    assert len(codes) > 1


def test_code_normalization() -> None:
    assert normalize_access_code("  4573-dte2-r232 ") == "4573-DTE2-R232"
    assert is_valid_access_code("4573-dte2-r232") is True
    assert is_valid_access_code("4573-DTE-R232") is False
