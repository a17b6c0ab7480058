"""
Domain: completion criterion and first-time completion detection (pure).

Contract excerpts implemented here:
- The levels a user must finish depend on the grant's audience:
  B2C -> {1}; B2B, B2E -> {1, 2, 3}.
- A required level counts only if its record exists, has answered cards and
  has completed_at set.
- A seat is consumed on the transition "not complete before the submission,
  complete after it"; resubmitting afterwards never re-triggers it.

No I/O here. The progress service supplies freshly read records.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping

from .grant import Audience
from .progress import ProgressRecord

_REQUIRED_LEVELS: Mapping[Audience, FrozenSet[int]] = {
    Audience.B2C: frozenset({1}),
    Audience.B2B: frozenset({1, 2, 3}),
    Audience.B2E: frozenset({1, 2, 3}),
}


def required_levels(audience: Audience) -> FrozenSet[int]:
    return _REQUIRED_LEVELS[Audience(audience)]


def last_required_level(audience: Audience) -> int:
    """The submission of this level is where completion is re-evaluated."""

    return max(required_levels(audience))


def level_status(records: Iterable[ProgressRecord], audience: Audience) -> Dict[int, bool]:
    """Per required level: whether the user has finished it."""

    by_level = {record.level_number: record for record in records}
    return {
        level: level in by_level and by_level[level].is_level_complete
        for level in sorted(required_levels(audience))
    }


def is_complete_from_records(records: Iterable[ProgressRecord], audience: Audience) -> bool:
    return all(level_status(records, audience).values())


@dataclass(frozen=True, slots=True)
class CompletionTransition:
    """Completion verdicts taken immediately before and after one submission."""

    was_completed_before: bool
    is_completed_now: bool

    @property
    def first_time(self) -> bool:
        return not self.was_completed_before and self.is_completed_now


__all__ = [
    "CompletionTransition",
    "is_complete_from_records",
    "last_required_level",
    "level_status",
    "required_levels",
]
