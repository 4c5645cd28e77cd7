"""Time source injected into caches and the session manager."""

from datetime import datetime, timezone


class SystemClock:
    """Wall clock returning naive UTC datetimes, matching the DB columns."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)
