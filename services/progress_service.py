"""
Progress service: per-level progress upserts and the submission flow that
turns a finished assessment into exactly one consumed seat.

Submission flow:
1. Resolve the grant the progress is attributed to (explicit code, or the
   grant the user most recently started). A user who never started on an
   explicit code goes through the start admission checks first.
2. Evaluate completion from a fresh read right before the write.
3. Upsert the level record.
4. On the audience's last required level, evaluate again from a fresh read and,
   on a first-time completion, ask the seat allocator to consume the seat.

The seat allocator is idempotent, so a retried or duplicated submission can
reach step 4 any number of times without counting a second seat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from domain.access_code import normalize_access_code
from domain.completion import (
    CompletionTransition,
    is_complete_from_records,
    last_required_level,
    level_status,
)
from domain.errors import (
    AlreadyCompleted,
    GrantNotFound,
    ProgressNotFound,
    TransientStoreError,
    ValidationError,
)
from domain.grant import AccessGrant, Audience, RedemptionState
from domain.progress import (
    MAX_LEVEL,
    MIN_LEVEL,
    CardScore,
    ProgressRecord,
    RiskLevel,
    compute_level_totals,
    require_level_number,
)
from domain.time import require_utc_timestamp, utc_now
from repositories.grant_repository import get_grant_by_code, list_grants_for_participant
from repositories.progress_repository import (
    get_progress,
    insert_progress,
    list_progress_for_user,
    update_progress,
)
from repositories.query import DuplicateKeyError
from services import seat_allocator
from services.seat_allocator import SeatOutcome
from services.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LevelSubmission:
    """
    What the client reports for one level.

    Aggregates left as None are derived from the cards.
    """

    cards: Tuple[CardScore, ...] = ()
    total_score: Optional[int] = None
    max_score: Optional[int] = None
    correct_answers: Optional[int] = None
    total_questions: Optional[int] = None
    percentage_score: Optional[float] = None
    risk_level: Optional[RiskLevel] = None


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    record: ProgressRecord
    grant: Optional[AccessGrant] = None
    transition: Optional[CompletionTransition] = None
    seat_outcome: Optional[SeatOutcome] = None


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    user_id: str
    levels: Dict[int, Optional[ProgressRecord]] = field(default_factory=dict)

    @property
    def levels_completed(self) -> int:
        return sum(1 for record in self.levels.values() if record is not None and record.is_level_complete)

    @property
    def overall_percentage(self) -> float:
        played = [r for r in self.levels.values() if r is not None and r.max_score > 0]
        max_score = sum(r.max_score for r in played)
        if max_score == 0:
            return 0
        return round(sum(r.total_score for r in played) / max_score * 100)


def _validate_user_and_level(user_id: str, level_number: int) -> None:
    if not user_id or not user_id.strip():
        raise ValidationError("user_id is required")
    try:
        require_level_number(level_number)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def _build_record(
    existing: Optional[ProgressRecord],
    user_id: str,
    level_number: int,
    payload: LevelSubmission,
    grant_ref: Optional[str],
    now: datetime,
) -> ProgressRecord:
    try:
        totals = compute_level_totals(
            payload.cards,
            total_score=payload.total_score,
            max_score=payload.max_score,
            correct_answers=payload.correct_answers,
            total_questions=payload.total_questions,
            percentage_score=payload.percentage_score,
            risk_level=payload.risk_level,
            points_per_question=get_settings().points_per_question,
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    return ProgressRecord(
        record_id=existing.record_id if existing is not None else uuid4(),
        user_id=user_id,
        level_number=level_number,
        cards=tuple(payload.cards),
        total_score=totals.total_score,
        max_score=totals.max_score,
        correct_answers=totals.correct_answers,
        total_questions=totals.total_questions,
        percentage_score=totals.percentage_score,
        risk_level=totals.risk_level,
        completed_at=now,
        grant_ref=grant_ref if grant_ref is not None or existing is None else existing.grant_ref,
        created_at=existing.created_at if existing is not None and existing.created_at else now,
        updated_at=now,
    )


def save_level_progress(
    user_id: str,
    level_number: int,
    payload: LevelSubmission,
    grant_ref: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ProgressRecord:
    """
    Create or overwrite the record for (user_id, level_number).

    Never produces a second record for the key: a concurrent insert that wins
    the unique constraint turns this call into an overwrite.

    Raises:
        ValidationError: bad level number, user id or aggregates
        TransientStoreError: on store failures
    """

    _validate_user_and_level(user_id, level_number)
    if now is None:
        now = utc_now()
    require_utc_timestamp("now", now)

    existing = get_progress(user_id, level_number)
    if existing is None:
        record = _build_record(None, user_id, level_number, payload, grant_ref, now)
        try:
            stored = insert_progress(record)
            logger.info(
                "Progress record created",
                extra={"user_id": user_id, "level_number": level_number, "cards": len(record.cards)},
            )
            return stored
        except DuplicateKeyError:
            logger.info(
                "Concurrent first save detected; overwriting the winning record",
                extra={"user_id": user_id, "level_number": level_number},
            )
            existing = get_progress(user_id, level_number)
            if existing is None:
                raise TransientStoreError(
                    f"Progress record for level {level_number} conflicted but could not be read back"
                )

    record = _build_record(existing, user_id, level_number, payload, grant_ref, now)
    stored = update_progress(record)
    if stored is None:
        raise TransientStoreError(f"Progress record for level {level_number} disappeared during update")
    logger.info(
        "Progress record updated",
        extra={"user_id": user_id, "level_number": level_number, "cards": len(record.cards)},
    )
    return stored


def get_level_progress(user_id: str, level_number: int) -> ProgressRecord:
    _validate_user_and_level(user_id, level_number)
    record = get_progress(user_id, level_number)
    if record is None:
        raise ProgressNotFound(user_id, level_number)
    return record


def list_user_progress(user_id: str) -> List[ProgressRecord]:
    return list_progress_for_user(user_id)


def progress_summary(user_id: str) -> ProgressSummary:
    by_level = {record.level_number: record for record in list_progress_for_user(user_id)}
    return ProgressSummary(
        user_id=user_id,
        levels={level: by_level.get(level) for level in range(MIN_LEVEL, MAX_LEVEL + 1)},
    )


def is_complete(user_id: str, audience: Audience) -> bool:
    """Completion verdict from records read now; nothing is cached."""

    return is_complete_from_records(list_progress_for_user(user_id), audience)


def completion_status(user_id: str, audience: Audience) -> Dict[int, bool]:
    return level_status(list_progress_for_user(user_id), audience)


def _resolve_grant(user_id: str, grant_code: Optional[str]) -> Optional[AccessGrant]:
    if grant_code:
        grant = get_grant_by_code(normalize_access_code(grant_code))
        if grant is None:
            raise GrantNotFound(grant_code)
        return grant

    started = [
        grant
        for grant in list_grants_for_participant(user_id)
        if grant.state_for(user_id) == RedemptionState.STARTED
    ]
    if not started:
        return None
    # Most recently started wins when the user holds several open redemptions.
    return max(started, key=lambda g: g.redemption_for(user_id).started_at)


def submit_level_progress(
    user_id: str,
    level_number: int,
    payload: LevelSubmission,
    grant_code: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubmissionResult:
    """
    Save one level and, when it completes the assessment for the first time,
    consume the user's seat on the resolved grant.

    Raises:
        ValidationError, GrantNotFound, GrantExpired, SeatsFull, TransientStoreError
    """

    _validate_user_and_level(user_id, level_number)
    if now is None:
        now = utc_now()
    require_utc_timestamp("now", now)

    grant = _resolve_grant(user_id, grant_code)
    if grant is None:
        record = save_level_progress(user_id, level_number, payload, now=now)
        logger.info(
            "Progress saved without an attributed grant",
            extra={"user_id": user_id, "level_number": level_number},
        )
        return SubmissionResult(record=record)

    if grant.state_for(user_id) == RedemptionState.NOT_STARTED:
        # An explicit code for a user who never started passes admission first.
        try:
            grant = seat_allocator.start(grant.code, user_id, now=now).grant
        except AlreadyCompleted:
            # a duplicate request finished the assessment in between
            grant = _resolve_grant(user_id, grant.code)

    audience = grant.audience
    was_before = is_complete(user_id, audience)
    record = save_level_progress(user_id, level_number, payload, grant_ref=grant.code, now=now)

    if level_number != last_required_level(audience):
        return SubmissionResult(record=record, grant=grant)

    transition = CompletionTransition(
        was_completed_before=was_before,
        is_completed_now=is_complete(user_id, audience),
    )

    # A completed user whose entry is still STARTED had an earlier request die
    # between the progress write and the seat write.
    recovering = transition.is_completed_now and grant.state_for(user_id) == RedemptionState.STARTED
    if not (transition.first_time or recovering):
        return SubmissionResult(record=record, grant=grant, transition=transition)

    logger.info(
        "Assessment completed; consuming seat",
        extra={
            "user_id": user_id,
            "grant_id": str(grant.grant_id),
            "audience": audience.value,
            "first_time": transition.first_time,
        },
    )
    outcome = seat_allocator.complete(grant.grant_id, user_id, now=now)
    return SubmissionResult(record=record, grant=outcome.grant, transition=transition, seat_outcome=outcome)


__all__ = [
    "LevelSubmission",
    "ProgressSummary",
    "SubmissionResult",
    "completion_status",
    "get_level_progress",
    "is_complete",
    "list_user_progress",
    "progress_summary",
    "save_level_progress",
    "submit_level_progress",
]
