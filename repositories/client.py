"""
Supabase client initialization.

This module contains *only* the database connection setup. Repository modules
call `get_client()` on every operation; the client is created on first use so
importing a repository never requires credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)

Tests and scripts may install a different client with `set_client()`.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

# Load environment variables from the .env file at the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_client: Optional[Any] = None
_client_lock = threading.Lock()


def _create_from_env() -> Client:
    # Read credentials from the environment to avoid hard-coding secrets in code.
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_key: str | None = os.getenv("SUPABASE_KEY")

    if not supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(supabase_url, supabase_key)


def get_client() -> Client:
    """Return the shared Supabase client, creating it on first use."""

    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = _create_from_env()
    return _client


def set_client(client: Optional[Any]) -> None:
    """Install a client (or reset with None so the next call re-reads the environment)."""

    global _client
    with _client_lock:
        _client = client


__all__ = ["get_client", "set_client"]
