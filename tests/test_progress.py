"""
Tests for `domain/progress.py`.

Covers contract rules:
- Levels are 1..3.
- Supplied aggregates are trusted; missing ones are derived from the cards.
- max_score defaults to total_questions * points per question.
- Risk thresholds: >=84 Confident, 44-83 Cautious, <44 Vulnerable.
- A level counts as finished only with answered cards and completed_at set.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from domain.progress import (
    CardScore,
    ProgressRecord,
    QuestionResult,
    RiskLevel,
    classify_risk,
    compute_level_totals,
    require_level_number,
)

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "percentage, expected",
    [
        (100, RiskLevel.CONFIDENT),
        (84, RiskLevel.CONFIDENT),
        (83, RiskLevel.CAUTIOUS),
        (44, RiskLevel.CAUTIOUS),
        (43, RiskLevel.VULNERABLE),
        (0, RiskLevel.VULNERABLE),
    ],
)
def test_classify_risk_thresholds(percentage: int, expected: RiskLevel) -> None:
    assert classify_risk(percentage) == expected


def test_level_number_bounds() -> None:
    require_level_number(1)
    require_level_number(3)
    for bad in (0, 4, -1):
        with pytest.raises(ValueError):
            require_level_number(bad)
    with pytest.raises(ValueError):
        require_level_number(True)  # type: ignore[arg-type]


def test_totals_are_derived_from_cards() -> None:
    cards = [
        CardScore("c1", total_score=12, correct_answers=3, total_questions=4),
        CardScore("c2", total_score=4, correct_answers=1, total_questions=4),
    ]

    totals = compute_level_totals(cards)

    assert totals.total_score == 16
    assert totals.correct_answers == 4
    assert totals.total_questions == 8
    assert totals.max_score == 32
    assert totals.percentage_score == 50
    assert totals.risk_level == RiskLevel.CAUTIOUS


def test_supplied_totals_are_trusted() -> None:
    cards = [CardScore("c1", total_score=12, correct_answers=3, total_questions=4)]

    totals = compute_level_totals(
        cards,
        total_score=30,
        max_score=40,
        percentage_score=90,
        risk_level=RiskLevel.VULNERABLE,
    )

    assert totals.total_score == 30
    assert totals.max_score == 40
    assert totals.percentage_score == 90
    assert totals.risk_level == RiskLevel.VULNERABLE


def test_empty_cards_yield_zero_percentage() -> None:
    totals = compute_level_totals([])

    assert totals.max_score == 0
    assert totals.percentage_score == 0
    assert totals.risk_level == RiskLevel.VULNERABLE


def test_points_per_question_is_configurable() -> None:
    totals = compute_level_totals([CardScore("c1", total_score=5, total_questions=2)], points_per_question=5)
    assert totals.max_score == 10
    assert totals.percentage_score == 50


def test_out_of_range_percentage_is_rejected() -> None:
    with pytest.raises(ValueError):
        compute_level_totals([], percentage_score=101)


def test_card_score_dict_shape() -> None:
    card = CardScore(
        card_id="c1",
        card_title="Spot the phish",
        questions=(QuestionResult(question_no=1, selected_answer="b", correct_answer="b", is_correct=True, points=4),),
        total_score=4,
        max_score=4,
        correct_answers=1,
        total_questions=1,
        percentage_score=100,
    )

    data = card.to_dict()

    assert data["questions"][0]["is_correct"] is True
    assert data["questions"][0]["answered_at"] is None
    assert CardScore.from_dict(data) == card


def _record(cards, completed_at) -> ProgressRecord:
    return ProgressRecord(
        record_id=uuid4(),
        user_id="alice",
        level_number=1,
        cards=tuple(cards),
        total_score=0,
        max_score=0,
        correct_answers=0,
        total_questions=0,
        percentage_score=0,
        risk_level=None,
        completed_at=completed_at,
    )


def test_level_complete_requires_cards_and_completion_time() -> None:
    assert _record([CardScore("c1")], NOW).is_level_complete is True
    assert _record([], NOW).is_level_complete is False
    assert _record([CardScore("c1")], None).is_level_complete is False


def test_progress_record_rejects_bad_level() -> None:
    with pytest.raises(ValueError):
        ProgressRecord(
            record_id=uuid4(),
            user_id="alice",
            level_number=4,
            cards=(),
            total_score=0,
            max_score=0,
            correct_answers=0,
            total_questions=0,
            percentage_score=0,
            risk_level=None,
            completed_at=None,
        )
