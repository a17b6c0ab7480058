"""
Query execution helpers shared by the repositories.

supabase-py surfaces failures two ways depending on version: by raising
postgrest's APIError or by returning a response with an `error` attribute.
Both are normalized here:

- unique-constraint violations (SQLSTATE 23505) -> DuplicateKeyError
- anything else                                -> TransientStoreError
"""

from __future__ import annotations

from typing import Any, List

import httpx
from postgrest.exceptions import APIError

from domain.errors import TransientStoreError

UNIQUE_VIOLATION: str = "23505"


class DuplicateKeyError(ValueError):
    """Raised when an insert collides with a unique constraint."""

    def __init__(self, message: str, *, detail: str | None = None):
        self.detail = detail
        super().__init__(message)


def execute(query: Any, *, action: str) -> List[dict[str, Any]]:
    """Run a built query and return its rows (possibly empty)."""

    try:
        response = query.execute()
    except APIError as exc:
        if str(getattr(exc, "code", "")) == UNIQUE_VIOLATION:
            raise DuplicateKeyError(
                f"Failed to {action}: duplicate key", detail=getattr(exc, "details", None)
            ) from None
        raise TransientStoreError(f"Failed to {action}: {exc}") from exc
    except httpx.HTTPError as exc:
        raise TransientStoreError(f"Failed to {action}: {exc}") from exc

    error = getattr(response, "error", None)
    if error:
        if str(getattr(error, "code", "")) == UNIQUE_VIOLATION:
            raise DuplicateKeyError(f"Failed to {action}: duplicate key") from None
        raise TransientStoreError(f"Failed to {action}: {error}")

    return getattr(response, "data", None) or []


__all__ = ["DuplicateKeyError", "UNIQUE_VIOLATION", "execute"]
