"""
Domain: per-user, per-level assessment progress.

Contract excerpts implemented here:
- At most one ProgressRecord per (user_id, level_number); levels are 1..3.
- Aggregates supplied by the caller are trusted; missing ones are derived from
  the per-card breakdowns.
- max_score defaults to total_questions * points_per_question.
- Risk level from percentage_score: >=84 Confident, 44-83 Cautious, <44 Vulnerable.
- An empty cards list is a valid save (started, nothing answered).

This module contains only pure domain entities/value objects: no I/O, no database,
no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from .time import parse_utc_datetime, require_utc_timestamp

MIN_LEVEL: int = 1
MAX_LEVEL: int = 3
DEFAULT_POINTS_PER_QUESTION: int = 4

CONFIDENT_THRESHOLD: int = 84
CAUTIOUS_THRESHOLD: int = 44


class RiskLevel(str, Enum):
    CONFIDENT = "Confident"
    CAUTIOUS = "Cautious"
    VULNERABLE = "Vulnerable"


def classify_risk(percentage_score: float) -> RiskLevel:
    if percentage_score >= CONFIDENT_THRESHOLD:
        return RiskLevel.CONFIDENT
    if percentage_score >= CAUTIOUS_THRESHOLD:
        return RiskLevel.CAUTIOUS
    return RiskLevel.VULNERABLE


def require_level_number(level_number: int) -> None:
    if isinstance(level_number, bool) or not isinstance(level_number, int):
        raise ValueError("level_number must be an integer")
    if not MIN_LEVEL <= level_number <= MAX_LEVEL:
        raise ValueError(f"Level number must be between {MIN_LEVEL} and {MAX_LEVEL}")


@dataclass(frozen=True, slots=True)
class QuestionResult:
    question_no: int
    question_id: Optional[str] = None
    question_text: Optional[str] = None
    selected_answer: Optional[str] = None
    correct_answer: Optional[str] = None
    is_correct: bool = False
    points: int = 0
    answered_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_no": self.question_no,
            "question_id": self.question_id,
            "question_text": self.question_text,
            "selected_answer": self.selected_answer,
            "correct_answer": self.correct_answer,
            "is_correct": self.is_correct,
            "points": self.points,
            "answered_at": self.answered_at.isoformat() if self.answered_at else None,
        }


@dataclass(frozen=True, slots=True)
class CardScore:
    """Score breakdown for one card played within a level."""

    card_id: str
    card_title: str = ""
    questions: Tuple[QuestionResult, ...] = ()
    total_score: int = 0
    max_score: int = 0
    correct_answers: int = 0
    total_questions: int = 0
    percentage_score: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_id": self.card_id,
            "card_title": self.card_title,
            "questions": [q.to_dict() for q in self.questions],
            "total_score": self.total_score,
            "max_score": self.max_score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "percentage_score": self.percentage_score,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "CardScore":
        questions = tuple(
            QuestionResult(
                question_no=int(q["question_no"]),
                question_id=q.get("question_id"),
                question_text=q.get("question_text"),
                selected_answer=q.get("selected_answer"),
                correct_answer=q.get("correct_answer"),
                is_correct=bool(q.get("is_correct", False)),
                points=int(q.get("points") or 0),
                answered_at=parse_utc_datetime(q["answered_at"]) if q.get("answered_at") else None,
            )
            for q in data.get("questions") or []
        )
        return CardScore(
            card_id=str(data["card_id"]),
            card_title=str(data.get("card_title") or ""),
            questions=questions,
            total_score=int(data.get("total_score") or 0),
            max_score=int(data.get("max_score") or 0),
            correct_answers=int(data.get("correct_answers") or 0),
            total_questions=int(data.get("total_questions") or 0),
            percentage_score=float(data.get("percentage_score") or 0),
        )


@dataclass(frozen=True, slots=True)
class LevelTotals:
    total_score: int
    max_score: int
    correct_answers: int
    total_questions: int
    percentage_score: float
    risk_level: RiskLevel


def compute_level_totals(
    cards: Sequence[CardScore],
    *,
    total_score: Optional[int] = None,
    max_score: Optional[int] = None,
    correct_answers: Optional[int] = None,
    total_questions: Optional[int] = None,
    percentage_score: Optional[float] = None,
    risk_level: Optional[RiskLevel] = None,
    points_per_question: int = DEFAULT_POINTS_PER_QUESTION,
) -> LevelTotals:
    """
    Resolve the level aggregates, trusting caller-supplied values.

    Example:
        compute_level_totals([CardScore("c1", total_score=12, total_questions=4)])
        # LevelTotals(total_score=12, max_score=16, ..., percentage_score=75,
        #             risk_level=RiskLevel.CAUTIOUS)
    """

    final_total_score = total_score if total_score is not None else sum(c.total_score for c in cards)
    final_correct = correct_answers if correct_answers is not None else sum(c.correct_answers for c in cards)
    final_questions = total_questions if total_questions is not None else sum(c.total_questions for c in cards)
    final_max_score = max_score if max_score is not None else final_questions * points_per_question

    if percentage_score is not None:
        final_percentage: float = percentage_score
    elif final_max_score > 0:
        final_percentage = round(final_total_score / final_max_score * 100)
    else:
        final_percentage = 0

    if not 0 <= final_percentage <= 100:
        raise ValueError("percentage_score must be within [0, 100]")

    return LevelTotals(
        total_score=final_total_score,
        max_score=final_max_score,
        correct_answers=final_correct,
        total_questions=final_questions,
        percentage_score=final_percentage,
        risk_level=risk_level if risk_level is not None else classify_risk(final_percentage),
    )


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """
    Durable record of one user's performance on one level.

    Resubmitting the same level replaces cards and aggregates and resets
    completed_at; the record_id and created_at of the first save are kept.
    """

    record_id: UUID
    user_id: str
    level_number: int
    cards: Tuple[CardScore, ...]
    total_score: int
    max_score: int
    correct_answers: int
    total_questions: int
    percentage_score: float
    risk_level: Optional[RiskLevel]
    completed_at: Optional[datetime]
    grant_ref: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_level_number(self.level_number)
        if self.completed_at is not None:
            require_utc_timestamp("completed_at", self.completed_at)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def has_answers(self) -> bool:
        return len(self.cards) > 0

    @property
    def is_level_complete(self) -> bool:
        """A level counts as finished only with answered cards and a completion time."""

        return self.has_answers and self.completed_at is not None


__all__ = [
    "CardScore",
    "DEFAULT_POINTS_PER_QUESTION",
    "LevelTotals",
    "MAX_LEVEL",
    "MIN_LEVEL",
    "ProgressRecord",
    "QuestionResult",
    "RiskLevel",
    "classify_risk",
    "compute_level_totals",
    "require_level_number",
]
