"""
Domain: redeemable access code format.

Codes look like 4573-DTE2-R232:
- 4 digits
- 3 letters + 1 digit
- 1 letter + 3 digits

Codes are generated server-side with a cryptographic random source; uniqueness
against issued grants is checked by the issuance service before assignment.
"""

from __future__ import annotations

import re
import secrets
import string

DIGITS = string.digits
LETTERS = string.ascii_uppercase

CODE_PATTERN = re.compile(r"^\d{4}-[A-Z]{3}\d-[A-Z]\d{3}$")


def _pick(charset: str, length: int) -> str:
    return "".join(secrets.choice(charset) for _ in range(length))


def generate_access_code() -> str:
    part1 = _pick(DIGITS, 4)
    part2 = _pick(LETTERS, 3) + _pick(DIGITS, 1)
    part3 = _pick(LETTERS, 1) + _pick(DIGITS, 3)
    return f"{part1}-{part2}-{part3}"


def normalize_access_code(code: str) -> str:
    """Codes are matched case-insensitively and without surrounding whitespace."""
    return code.strip().upper()


def is_valid_access_code(code: str) -> bool:
    return bool(CODE_PATTERN.match(normalize_access_code(code)))


__all__ = [
    "CODE_PATTERN",
    "generate_access_code",
    "is_valid_access_code",
    "normalize_access_code",
]
