"""
Domain -> API model conversion shared by the routers.
"""

from api.models import (
    CardModel,
    GrantResponse,
    ProgressRecordResponse,
    QuestionModel,
    RedemptionResponse,
)
from domain.grant import AccessGrant
from domain.progress import CardScore, ProgressRecord, QuestionResult


def grant_response(grant: AccessGrant) -> GrantResponse:
    return GrantResponse(
        grant_id=grant.grant_id,
        kind=grant.kind,
        code=grant.code,
        owner_user_id=grant.owner_user_id,
        organization_id=grant.organization_id,
        audience=grant.audience,
        max_seats=grant.max_seats,
        used_seats=grant.used_seats,
        remaining_seats=grant.remaining_seats,
        status=grant.status,
        start_date=grant.start_date,
        end_date=grant.end_date,
        package_ref=grant.metadata.package_ref,
        promo_tag=grant.metadata.promo_tag,
        redemptions=[
            RedemptionResponse(
                user_id=r.user_id,
                state=r.state,
                started_at=r.started_at,
                completed_at=r.completed_at,
            )
            for r in grant.redemptions
        ],
    )


def card_model(card: CardScore) -> CardModel:
    return CardModel(
        card_id=card.card_id,
        card_title=card.card_title,
        questions=[QuestionModel(**q.to_dict()) for q in card.questions],
        total_score=card.total_score,
        max_score=card.max_score,
        correct_answers=card.correct_answers,
        total_questions=card.total_questions,
        percentage_score=card.percentage_score,
    )


def card_score(card: CardModel) -> CardScore:
    return CardScore(
        card_id=card.card_id,
        card_title=card.card_title,
        questions=tuple(
            QuestionResult(
                question_no=q.question_no,
                question_id=q.question_id,
                question_text=q.question_text,
                selected_answer=q.selected_answer,
                correct_answer=q.correct_answer,
                is_correct=q.is_correct,
                points=q.points,
                answered_at=q.answered_at,
            )
            for q in card.questions
        ),
        total_score=card.total_score,
        max_score=card.max_score,
        correct_answers=card.correct_answers,
        total_questions=card.total_questions,
        percentage_score=card.percentage_score,
    )


def progress_response(record: ProgressRecord) -> ProgressRecordResponse:
    return ProgressRecordResponse(
        record_id=record.record_id,
        user_id=record.user_id,
        level_number=record.level_number,
        grant_ref=record.grant_ref,
        cards=[card_model(c) for c in record.cards],
        total_score=record.total_score,
        max_score=record.max_score,
        correct_answers=record.correct_answers,
        total_questions=record.total_questions,
        percentage_score=record.percentage_score,
        risk_level=record.risk_level,
        completed_at=record.completed_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
