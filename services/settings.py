"""
Runtime settings.

Values come from the environment; a `.env` file at the project root is loaded
first so local development needs no exported variables.

Environment variables (all optional, defaults in parentheses):
- POINTS_PER_QUESTION (4): points a question is worth when max_score is derived
- TRIAL_SEATS (2), TRIAL_DAYS (7): free trial capacity and validity, start day included
- DEMO_SEATS (2), DEMO_DAYS (14): promotional demo capacity and validity
- PURCHASE_VALID_DAYS (365): validity of purchase grants
- SEAT_CAS_MAX_ATTEMPTS (5): conditional-update retries before a transient error
- CODE_GENERATION_ATTEMPTS (10): attempts to find an unused access code
- LOG_LEVEL (INFO)
- PAYMENT_WEBHOOK_SECRET (unset): shared secret the payment integration sends in
  X-Payment-Secret; when unset the payment endpoint accepts any caller
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _int_env(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise RuntimeError(f"Environment variable {name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    points_per_question: int = 4
    trial_seats: int = 2
    trial_days: int = 7
    demo_seats: int = 2
    demo_days: int = 14
    purchase_valid_days: int = 365
    seat_cas_max_attempts: int = 5
    code_generation_attempts: int = 10
    log_level: str = "INFO"
    payment_webhook_secret: Optional[str] = None

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            points_per_question=_int_env("POINTS_PER_QUESTION", 4),
            trial_seats=_int_env("TRIAL_SEATS", 2),
            trial_days=_int_env("TRIAL_DAYS", 7),
            demo_seats=_int_env("DEMO_SEATS", 2),
            demo_days=_int_env("DEMO_DAYS", 14),
            purchase_valid_days=_int_env("PURCHASE_VALID_DAYS", 365),
            seat_cas_max_attempts=_int_env("SEAT_CAS_MAX_ATTEMPTS", 5),
            code_generation_attempts=_int_env("CODE_GENERATION_ATTEMPTS", 10),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            payment_webhook_secret=os.getenv("PAYMENT_WEBHOOK_SECRET") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


__all__ = ["Settings", "get_settings"]
