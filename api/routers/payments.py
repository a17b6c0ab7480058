"""
Payments API Endpoints.

Receives payment-succeeded events from the payment integration and turns each
into exactly one purchase grant.
"""

from fastapi import APIRouter, Depends, Response

from api.dependencies import verify_payment_source
from api.models import ErrorResponse, PaymentEventRequest, PaymentEventResponse
from api.serializers import grant_response
from services.grant_issuance_service import PaymentSucceeded, issue_purchase_from_payment

router = APIRouter()


@router.post(
    "/payments/events",
    response_model=PaymentEventResponse,
    responses={400: {"model": ErrorResponse}, 401: {"description": "Missing or wrong payment secret"}},
    dependencies=[Depends(verify_payment_source)],
    summary="Record Payment Event",
    description="Create the purchase grant for a confirmed payment. Safe to deliver more than once."
)
def record_payment_event(request: PaymentEventRequest, response: Response):
    """
    Create a purchase grant from a payment-succeeded event.

    **Idempotency:**
    The `payment_reference` identifies the payment. Redelivering the same
    event returns the grant created the first time with `created=false`
    and status 200; the first delivery answers 201.

    **Defaults:** 1 seat for B2C, 5 seats for B2B/B2E, valid 365 days.

    **Source check:** when PAYMENT_WEBHOOK_SECRET is configured the request
    must carry it in the X-Payment-Secret header.
    """
    grant, created = issue_purchase_from_payment(
        PaymentSucceeded(
            payment_reference=request.payment_reference,
            user_id=request.user_id,
            package_ref=request.package_ref,
            unique_code=request.unique_code,
            max_seats=request.max_seats,
            audience=request.audience,
            organization_id=request.organization_id,
            valid_days=request.valid_days,
        )
    )
    response.status_code = 201 if created else 200
    return PaymentEventResponse(created=created, grant=grant_response(grant))
