"""
Core Utilities

Shared helpers used across the seeder.
"""
import time
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def monotonic_ms() -> float:
    """Milliseconds from a monotonic clock, for duration measurements."""
    return time.perf_counter() * 1000.0


def new_id() -> str:
    """Generate a new string UUID primary key."""
    return str(uuid.uuid4())
