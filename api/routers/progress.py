"""
Progress API Endpoints.

Endpoints for submitting level results and reading the caller's progress.
"""

from fastapi import APIRouter, Depends, Path

from api.dependencies import current_user_id
from api.models import (
    CompletionResponse,
    ErrorResponse,
    ProgressRecordResponse,
    ProgressSubmissionRequest,
    ProgressSubmissionResponse,
    ProgressSummaryResponse,
)
from api.serializers import card_score, progress_response
from domain.grant import Audience
from domain.progress import MAX_LEVEL, MIN_LEVEL
from services import progress_service
from services.progress_service import LevelSubmission

router = APIRouter()


@router.post(
    "/progress",
    response_model=ProgressSubmissionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Submit Level Progress",
    description="Save the result of one level. Finishing the last required level consumes the caller's seat once."
)
def submit_progress(request: ProgressSubmissionRequest, user_id: str = Depends(current_user_id)):
    """
    Submit one level's result.

    Resubmitting a level overwrites the stored record. The seat on the
    attributed code is consumed only the first time the caller's required
    levels are all complete; later submissions never consume another.

    When `grant_code` is omitted the code the caller most recently started is used.
    """
    payload = LevelSubmission(
        cards=tuple(card_score(c) for c in request.cards),
        total_score=request.total_score,
        max_score=request.max_score,
        correct_answers=request.correct_answers,
        total_questions=request.total_questions,
        percentage_score=request.percentage_score,
        risk_level=request.risk_level,
    )
    result = progress_service.submit_level_progress(
        user_id,
        request.level_number,
        payload,
        grant_code=request.grant_code,
    )

    transition = result.transition
    return ProgressSubmissionResponse(
        record=progress_response(result.record),
        completed_before=transition.was_completed_before if transition else None,
        completed_now=transition.is_completed_now if transition else None,
        first_time_completion=transition.first_time if transition else False,
        seat_outcome=result.seat_outcome.kind.value if result.seat_outcome else None,
        grant_code=result.grant.code if result.grant else None,
        used_seats=result.grant.used_seats if result.grant else None,
        max_seats=result.grant.max_seats if result.grant else None,
    )


@router.get(
    "/progress",
    response_model=ProgressSummaryResponse,
    summary="Get Progress Summary"
)
def get_progress_summary(user_id: str = Depends(current_user_id)):
    summary = progress_service.progress_summary(user_id)
    return ProgressSummaryResponse(
        user_id=summary.user_id,
        levels={
            f"level{level}": progress_response(record) if record is not None else None
            for level, record in summary.levels.items()
        },
        levels_completed=summary.levels_completed,
        overall_percentage=summary.overall_percentage,
    )


@router.get(
    "/progress/completion",
    response_model=CompletionResponse,
    summary="Check Completion",
    description="Whether the caller has finished every level required for an audience."
)
def get_completion(audience: Audience, user_id: str = Depends(current_user_id)):
    levels = progress_service.completion_status(user_id, audience)
    return CompletionResponse(
        user_id=user_id,
        audience=audience,
        completed=all(levels.values()),
        levels={f"level{level}": done for level, done in levels.items()},
    )


@router.get(
    "/progress/{level_number}",
    response_model=ProgressRecordResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get Level Progress"
)
def get_level(
    level_number: int = Path(..., ge=MIN_LEVEL, le=MAX_LEVEL),
    user_id: str = Depends(current_user_id),
):
    return progress_response(progress_service.get_level_progress(user_id, level_number))
