"""UTC time helpers.

All timestamps stored or compared by the service go through :func:`utcnow`,
so they are timezone-aware and can be pinned in tests by patching this one
function.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
