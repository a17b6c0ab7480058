"""
Pytest configuration.

This file adds the project root to the Python path so that tests can import
from the domain, repositories, services and api packages, and provides an
in-memory store fixture for service and API tests.
"""

import sys
from pathlib import Path

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

import pytest  # noqa: E402

from repositories.client import set_client  # noqa: E402
from fake_supabase import FakeSupabase  # noqa: E402


@pytest.fixture
def store():
    """Install a fresh in-memory store for the duration of one test."""
    fake = FakeSupabase()
    set_client(fake)
    yield fake
    set_client(None)
