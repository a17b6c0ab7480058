"""
Grants API Endpoints.

Endpoints for validating access codes, starting play, and issuing trial and
demo codes.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import current_user_id
from api.models import (
    CodeCheckResponse,
    DemoRequest,
    ErrorResponse,
    GrantResponse,
    StartResponse,
    TrialRequest,
)
from api.serializers import grant_response
from domain.access_code import normalize_access_code
from domain.errors import GrantNotFound
from repositories.grant_repository import get_grant_by_code
from services import code_validator, seat_allocator
from services.grant_issuance_service import issue_demo, issue_trial

router = APIRouter()


@router.get(
    "/grants/check/{code}",
    response_model=CodeCheckResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Validate Access Code",
    description="Check whether a code can be used now, optionally for a specific user. No authentication required."
)
def check_code(code: str, user_id: Optional[str] = None):
    """
    Validate an access code.

    **Rules:**
    - A code past the end of its last valid day is reported expired
    - A user whose seat is already used gets `valid=false, user_seat_used=true`
    - A user who started but has not finished may always resume
    - A new user on a full code gets `valid=false, seats_full=true`; seats held
      by users who started but have not finished count as taken
    """
    result = code_validator.check(code, user_id=user_id)
    return CodeCheckResponse(
        valid=result.valid,
        remaining_seats=result.remaining_seats,
        max_seats=result.max_seats,
        used_seats=result.used_seats,
        is_expired=result.is_expired,
        has_user_played=result.has_user_played,
        user_seat_used=result.user_seat_used,
        seats_full=result.seats_full,
        grant_id=result.grant_id,
        kind=result.kind,
        audience=result.audience,
        end_date=result.end_date,
        message=result.message,
    )


@router.post(
    "/grants/{code}/start",
    response_model=StartResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Start Play",
    description="Admit the caller to a code, or resume if they already started."
)
def start_play(code: str, user_id: str = Depends(current_user_id)):
    """
    Start playing with a code.

    Starting holds a seat for the caller; the seat is consumed when they
    finish the levels required for the code's audience, and nobody new can
    take it in between.

    **Conflict flags:** `expired`, `seats_full`, `already_completed`
    """
    outcome = seat_allocator.start(code, user_id)
    return StartResponse(
        outcome=outcome.kind.value,
        state=outcome.state,
        grant=grant_response(outcome.grant),
    )


@router.post(
    "/grants/trials",
    response_model=GrantResponse,
    status_code=201,
    summary="Issue Trial Code"
)
def create_trial(request: TrialRequest, user_id: str = Depends(current_user_id)):
    grant = issue_trial(
        user_id,
        package_ref=request.package_ref,
        audience=request.audience,
        organization_id=request.organization_id,
    )
    return grant_response(grant)


@router.post(
    "/grants/demos",
    response_model=GrantResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
    summary="Issue Demo Code",
    description="Issue a promotional demo code. One active demo per audience per user."
)
def create_demo(request: DemoRequest, user_id: str = Depends(current_user_id)):
    grant = issue_demo(
        user_id,
        request.audience,
        package_ref=request.package_ref,
        organization_id=request.organization_id,
    )
    return grant_response(grant)


@router.get(
    "/grants/{code}",
    response_model=GrantResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get Grant Details"
)
def get_grant(code: str):
    grant = get_grant_by_code(normalize_access_code(code))
    if grant is None:
        raise GrantNotFound(code)
    return grant_response(grant)
