# ABOUTME: Time helpers shared by models and services
# ABOUTME: All persisted timestamps are naive UTC datetimes

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what SQLite round-trips."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
