"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.grant import Audience, GrantKind, GrantStatus, RedemptionState
from domain.progress import MAX_LEVEL, MIN_LEVEL, RiskLevel


# ============================================================================
# Grant Models
# ============================================================================

class CodeCheckResponse(BaseModel):
    """Result of validating an access code."""
    valid: bool
    remaining_seats: int
    max_seats: int
    used_seats: int
    is_expired: bool
    has_user_played: bool
    user_seat_used: bool
    seats_full: bool
    grant_id: UUID
    kind: GrantKind
    audience: Audience
    end_date: datetime
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "valid": True,
                "remaining_seats": 1,
                "max_seats": 2,
                "used_seats": 1,
                "is_expired": False,
                "has_user_played": False,
                "user_seat_used": False,
                "seats_full": False,
                "grant_id": "123e4567-e89b-12d3-a456-426614174000",
                "kind": "demo",
                "audience": "B2B",
                "end_date": "2025-01-14T09:30:00Z",
                "message": "Code is valid."
            }
        }


class RedemptionResponse(BaseModel):
    """One user's redemption entry on a grant."""
    user_id: str
    state: RedemptionState
    started_at: datetime
    completed_at: Optional[datetime] = None


class GrantResponse(BaseModel):
    """Grant details with per-user redemption states."""
    grant_id: UUID
    kind: GrantKind
    code: str
    owner_user_id: str
    organization_id: Optional[str] = None
    audience: Audience
    max_seats: int
    used_seats: int
    remaining_seats: int
    status: GrantStatus
    start_date: datetime
    end_date: datetime
    package_ref: Optional[str] = None
    promo_tag: Optional[str] = None
    redemptions: List[RedemptionResponse]


class StartResponse(BaseModel):
    """Result of starting (or resuming) play with a code."""
    outcome: str  # "started" or "resumed"
    state: RedemptionState
    grant: GrantResponse


class TrialRequest(BaseModel):
    """Request a free trial code."""
    package_ref: Optional[str] = None
    audience: Audience = Audience.B2C
    organization_id: Optional[str] = None


class DemoRequest(BaseModel):
    """Request a promotional demo code for an audience segment."""
    audience: Audience
    package_ref: Optional[str] = None
    organization_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "audience": "B2E",
                "package_ref": "security-awareness-2025"
            }
        }


# ============================================================================
# Progress Models
# ============================================================================

class QuestionModel(BaseModel):
    question_no: int
    question_id: Optional[str] = None
    question_text: Optional[str] = None
    selected_answer: Optional[str] = None
    correct_answer: Optional[str] = None
    is_correct: bool = False
    points: int = 0
    answered_at: Optional[datetime] = None


class CardModel(BaseModel):
    """Score breakdown for one card."""
    card_id: str
    card_title: str = ""
    questions: List[QuestionModel] = Field(default_factory=list)
    total_score: int = 0
    max_score: int = 0
    correct_answers: int = 0
    total_questions: int = 0
    percentage_score: float = 0


class ProgressSubmissionRequest(BaseModel):
    """Submit the result of one level. Aggregates left out are derived from the cards."""
    level_number: int = Field(..., ge=MIN_LEVEL, le=MAX_LEVEL)
    cards: List[CardModel] = Field(default_factory=list)
    total_score: Optional[int] = Field(None, ge=0)
    max_score: Optional[int] = Field(None, ge=0)
    correct_answers: Optional[int] = Field(None, ge=0)
    total_questions: Optional[int] = Field(None, ge=0)
    percentage_score: Optional[float] = Field(None, ge=0, le=100)
    risk_level: Optional[RiskLevel] = None
    grant_code: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "level_number": 1,
                "cards": [
                    {
                        "card_id": "phishing-101",
                        "card_title": "Spot the phish",
                        "questions": [],
                        "total_score": 12,
                        "max_score": 16,
                        "correct_answers": 3,
                        "total_questions": 4,
                        "percentage_score": 75
                    }
                ],
                "grant_code": "4573-DTE2-R232"
            }
        }


class ProgressRecordResponse(BaseModel):
    record_id: UUID
    user_id: str
    level_number: int
    grant_ref: Optional[str] = None
    cards: List[CardModel]
    total_score: int
    max_score: int
    correct_answers: int
    total_questions: int
    percentage_score: float
    risk_level: Optional[RiskLevel] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProgressSubmissionResponse(BaseModel):
    record: ProgressRecordResponse
    completed_before: Optional[bool] = None
    completed_now: Optional[bool] = None
    first_time_completion: bool = False
    seat_outcome: Optional[str] = None  # "seat_consumed" or "already_completed"
    grant_code: Optional[str] = None
    used_seats: Optional[int] = None
    max_seats: Optional[int] = None


class ProgressSummaryResponse(BaseModel):
    user_id: str
    levels: Dict[str, Optional[ProgressRecordResponse]]
    levels_completed: int
    overall_percentage: float


class CompletionResponse(BaseModel):
    user_id: str
    audience: Audience
    completed: bool
    levels: Dict[str, bool]


# ============================================================================
# Payment Models
# ============================================================================

class PaymentEventRequest(BaseModel):
    """Payment-succeeded event forwarded by the payment integration."""
    payment_reference: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    package_ref: Optional[str] = None
    unique_code: Optional[str] = None
    max_seats: Optional[int] = Field(None, ge=1)
    audience: Audience = Audience.B2C
    organization_id: Optional[str] = None
    valid_days: Optional[int] = Field(None, ge=1)

    class Config:
        json_schema_extra = {
            "example": {
                "payment_reference": "pi_3PqRsT2eZvKYlo2C1a2b3c4d",
                "user_id": "user_123",
                "package_ref": "security-awareness-2025",
                "audience": "B2B",
                "max_seats": 25,
                "organization_id": "org_42"
            }
        }


class PaymentEventResponse(BaseModel):
    created: bool
    grant: GrantResponse


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    flag: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Conflict",
                "detail": "You have only 2 seats. Your seats are completed.",
                "flag": "seats_full",
                "status_code": 400
            }
        }
