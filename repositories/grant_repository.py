"""
AccessGrant repository (persistence).

This module provides *only* persistence operations for the AccessGrant domain
entity. It contains no business rules about admission or seat consumption; it
only enforces persistence constraints (uniqueness) and offers the document-level
compare-and-swap every grant mutation goes through.

Compare-and-swap:
- Each grant row carries a `revision` that every mutation bumps.
- `swap_grant` writes a new snapshot only if the stored revision still equals the
  revision the caller read, in a single UPDATE ... WHERE round trip.
- An optional containment guard additionally refuses the write if the user's
  redemption entry is already completed.
"""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.grant import (
    AccessGrant,
    Audience,
    GrantKind,
    GrantMetadata,
    GrantStatus,
    Redemption,
)
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.client import get_client
from repositories.query import execute

# Supabase table name for grant documents.
# Keep this aligned with sql/schema.sql.
_GRANTS_TABLE: str = "access_grants"


def _redemption_to_json(redemption: Redemption) -> dict[str, Any]:
    return {
        "user_id": redemption.user_id,
        "started_at": to_iso_utc(redemption.started_at, name="started_at"),
        "completed": redemption.completed,
        "completed_at": (
            to_iso_utc(redemption.completed_at, name="completed_at")
            if redemption.completed_at is not None
            else None
        ),
    }


def _redemption_from_json(data: Mapping[str, Any]) -> Redemption:
    completed_at = data.get("completed_at")
    return Redemption(
        user_id=str(data["user_id"]),
        started_at=parse_utc_datetime(data["started_at"]),
        completed=bool(data.get("completed", False)),
        completed_at=parse_utc_datetime(completed_at) if completed_at else None,
    )


def _row_to_grant(row: Mapping[str, Any]) -> AccessGrant:
    """Convert a Supabase row into an AccessGrant."""

    redemptions_raw = row.get("redemptions") or []
    if isinstance(redemptions_raw, str):
        redemptions_raw = json.loads(redemptions_raw)

    return AccessGrant(
        grant_id=UUID(str(row["grant_id"])),
        kind=GrantKind(str(row["kind"])),
        code=str(row["code"]),
        owner_user_id=str(row["owner_user_id"]),
        organization_id=row.get("organization_id"),
        audience=Audience(str(row["audience"])),
        max_seats=int(row["max_seats"]),
        used_seats=int(row.get("used_seats") or 0),
        redemptions=tuple(_redemption_from_json(r) for r in redemptions_raw),
        start_date=parse_utc_datetime(row["start_date_utc"]),
        end_date=parse_utc_datetime(row["end_date_utc"]),
        status=GrantStatus(str(row["status"])),
        metadata=GrantMetadata(
            package_ref=row.get("package_ref"),
            promo_tag=row.get("promo_tag"),
            payment_reference=row.get("payment_reference"),
        ),
        revision=int(row.get("revision") or 0),
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _mutable_fields(grant: AccessGrant) -> dict[str, Any]:
    """Columns a state transition may change."""

    return {
        "used_seats": grant.used_seats,
        "redemptions": [_redemption_to_json(r) for r in grant.redemptions],
        "status": grant.status.value,
        "revision": grant.revision,
        "updated_at_utc": to_iso_utc(grant.updated_at or utc_now(), name="updated_at"),
    }


def _grant_to_row(grant: AccessGrant) -> dict[str, Any]:
    created_at = grant.created_at or utc_now()
    row: dict[str, Any] = {
        "grant_id": str(grant.grant_id),
        "kind": grant.kind.value,
        "code": grant.code,
        "owner_user_id": grant.owner_user_id,
        "organization_id": grant.organization_id,
        "audience": grant.audience.value,
        "max_seats": grant.max_seats,
        "start_date_utc": to_iso_utc(grant.start_date, name="start_date"),
        "end_date_utc": to_iso_utc(grant.end_date, name="end_date"),
        "package_ref": grant.metadata.package_ref,
        "promo_tag": grant.metadata.promo_tag,
        "payment_reference": grant.metadata.payment_reference,
        "created_at_utc": to_iso_utc(created_at, name="created_at"),
    }
    row.update(_mutable_fields(grant))
    row["updated_at_utc"] = to_iso_utc(grant.updated_at or created_at, name="updated_at")
    return row


def _first(rows: List[dict[str, Any]]) -> Optional[AccessGrant]:
    if not rows:
        return None
    return _row_to_grant(rows[0])


def insert_grant(grant: AccessGrant) -> AccessGrant:
    """
    Insert a newly issued grant.

    Raises:
        DuplicateKeyError: if the code or payment_reference is already taken
        TransientStoreError: on any other store failure
    """

    rows = execute(
        get_client().table(_GRANTS_TABLE).insert(_grant_to_row(grant)),
        action="create access grant",
    )
    return _row_to_grant(rows[0]) if rows else grant


def code_exists(code: str) -> bool:
    rows = execute(
        get_client().table(_GRANTS_TABLE).select("grant_id").eq("code", code).limit(1),
        action="check access code uniqueness",
    )
    return bool(rows)


def get_grant_by_code(code: str) -> Optional[AccessGrant]:
    return _first(
        execute(
            get_client().table(_GRANTS_TABLE).select("*").eq("code", code).limit(1),
            action="fetch access grant by code",
        )
    )


def get_grant_by_id(grant_id: UUID) -> Optional[AccessGrant]:
    return _first(
        execute(
            get_client().table(_GRANTS_TABLE).select("*").eq("grant_id", str(grant_id)).limit(1),
            action="fetch access grant",
        )
    )


def get_grant_by_payment_reference(payment_reference: str) -> Optional[AccessGrant]:
    return _first(
        execute(
            get_client()
            .table(_GRANTS_TABLE)
            .select("*")
            .eq("payment_reference", payment_reference)
            .limit(1),
            action="fetch access grant by payment reference",
        )
    )


def list_grants_by_owner(owner_user_id: str, kind: Optional[GrantKind] = None) -> List[AccessGrant]:
    query = get_client().table(_GRANTS_TABLE).select("*").eq("owner_user_id", owner_user_id)
    if kind is not None:
        query = query.eq("kind", kind.value)
    rows = execute(query.order("created_at_utc", desc=True), action="list access grants by owner")
    return [_row_to_grant(row) for row in rows]


def list_grants_for_participant(user_id: str) -> List[AccessGrant]:
    """Grants holding a redemption entry for `user_id` (any state)."""

    rows = execute(
        get_client()
        .table(_GRANTS_TABLE)
        .select("*")
        .contains("redemptions", json.dumps([{"user_id": user_id}])),
        action="list access grants for participant",
    )
    return [_row_to_grant(row) for row in rows]


def swap_grant(
    current: AccessGrant,
    updated: AccessGrant,
    *,
    unless_consumed_by: Optional[str] = None,
) -> Optional[AccessGrant]:
    """
    Persist `updated` only if the stored document is still at `current.revision`.

    If `unless_consumed_by` is given, the write is also refused when that user's
    redemption entry is already completed.

    Returns:
        The stored grant after the write, or None if no row matched the condition
        (the caller re-reads to find out why).
    """

    if updated.grant_id != current.grant_id:
        raise ValueError("Cannot swap snapshots of different grants")
    if updated.revision != current.revision + 1:
        raise ValueError("Updated snapshot must be exactly one revision ahead")

    query = (
        get_client()
        .table(_GRANTS_TABLE)
        .update(_mutable_fields(updated))
        .eq("grant_id", str(current.grant_id))
        .eq("revision", current.revision)
    )
    if unless_consumed_by is not None:
        query = query.not_.contains(
            "redemptions",
            json.dumps([{"user_id": unless_consumed_by, "completed": True}]),
        )

    return _first(execute(query, action="update access grant"))


__all__ = [
    "code_exists",
    "get_grant_by_code",
    "get_grant_by_id",
    "get_grant_by_payment_reference",
    "insert_grant",
    "list_grants_by_owner",
    "list_grants_for_participant",
    "swap_grant",
]
