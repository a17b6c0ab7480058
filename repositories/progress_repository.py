"""
Progress repository (persistence).

This module provides *only* persistence operations for the ProgressRecord domain
entity. The unique (user_id, level_number) key is enforced by the database;
deciding between insert and update is the progress service's job.
"""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.progress import CardScore, ProgressRecord, RiskLevel
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.client import get_client
from repositories.query import execute

# Supabase table name for progress records.
# Keep this aligned with sql/schema.sql.
_PROGRESS_TABLE: str = "progress_records"


def _row_to_progress(row: Mapping[str, Any]) -> ProgressRecord:
    """Convert a Supabase row into a ProgressRecord."""

    cards_raw = row.get("cards") or []
    if isinstance(cards_raw, str):
        cards_raw = json.loads(cards_raw)

    risk = row.get("risk_level")
    completed_at = row.get("completed_at_utc")
    return ProgressRecord(
        record_id=UUID(str(row["record_id"])),
        user_id=str(row["user_id"]),
        level_number=int(row["level_number"]),
        grant_ref=row.get("grant_ref"),
        cards=tuple(CardScore.from_dict(card) for card in cards_raw),
        total_score=int(row.get("total_score") or 0),
        max_score=int(row.get("max_score") or 0),
        correct_answers=int(row.get("correct_answers") or 0),
        total_questions=int(row.get("total_questions") or 0),
        percentage_score=float(row.get("percentage_score") or 0),
        risk_level=RiskLevel(str(risk)) if risk else None,
        completed_at=parse_utc_datetime(completed_at) if completed_at else None,
        created_at=parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _content_fields(record: ProgressRecord) -> dict[str, Any]:
    """Columns a resubmission overwrites."""

    return {
        "grant_ref": record.grant_ref,
        "cards": [card.to_dict() for card in record.cards],
        "total_score": record.total_score,
        "max_score": record.max_score,
        "correct_answers": record.correct_answers,
        "total_questions": record.total_questions,
        "percentage_score": record.percentage_score,
        "risk_level": record.risk_level.value if record.risk_level else None,
        "completed_at_utc": (
            to_iso_utc(record.completed_at, name="completed_at") if record.completed_at else None
        ),
        "updated_at_utc": to_iso_utc(record.updated_at or utc_now(), name="updated_at"),
    }


def get_progress(user_id: str, level_number: int) -> Optional[ProgressRecord]:
    rows = execute(
        get_client()
        .table(_PROGRESS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("level_number", level_number)
        .limit(1),
        action="fetch progress record",
    )
    if not rows:
        return None
    return _row_to_progress(rows[0])


def list_progress_for_user(user_id: str) -> List[ProgressRecord]:
    """All of a user's level records, lowest level first."""

    rows = execute(
        get_client()
        .table(_PROGRESS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("level_number"),
        action="list progress records",
    )
    return [_row_to_progress(row) for row in rows]


def insert_progress(record: ProgressRecord) -> ProgressRecord:
    """
    Insert the first record for (user_id, level_number).

    Raises:
        DuplicateKeyError: if a record for the key already exists
    """

    created_at = record.created_at or utc_now()
    payload: dict[str, Any] = {
        "record_id": str(record.record_id),
        "user_id": record.user_id,
        "level_number": record.level_number,
        "created_at_utc": to_iso_utc(created_at, name="created_at"),
    }
    payload.update(_content_fields(record))

    rows = execute(
        get_client().table(_PROGRESS_TABLE).insert(payload),
        action="create progress record",
    )
    return _row_to_progress(rows[0]) if rows else record


def update_progress(record: ProgressRecord) -> Optional[ProgressRecord]:
    """
    Overwrite the record stored for (user_id, level_number).

    Returns None if no record exists for the key.
    """

    rows = execute(
        get_client()
        .table(_PROGRESS_TABLE)
        .update(_content_fields(record))
        .eq("user_id", record.user_id)
        .eq("level_number", record.level_number),
        action="update progress record",
    )
    if not rows:
        return None
    return _row_to_progress(rows[0])


__all__ = [
    "get_progress",
    "insert_progress",
    "list_progress_for_user",
    "update_progress",
]
