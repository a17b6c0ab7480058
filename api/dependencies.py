"""
Shared request dependencies.

Authentication happens upstream; the gateway forwards the authenticated user
id in the X-User-Id header. Payment events come from the payment integration
directly and carry the shared secret in X-Payment-Secret.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException

from services.settings import get_settings

logger = logging.getLogger(__name__)


def current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header is empty")
    return user_id


def verify_payment_source(x_payment_secret: Optional[str] = Header(None, alias="X-Payment-Secret")) -> None:
    """Reject payment events that do not carry the configured shared secret."""
    expected = get_settings().payment_webhook_secret
    if expected is None:
        return
    if x_payment_secret is None or not hmac.compare_digest(x_payment_secret.encode(), expected.encode()):
        logger.warning("Payment event rejected: missing or wrong X-Payment-Secret")
        raise HTTPException(status_code=401, detail="Payment event is not from the payment integration")
