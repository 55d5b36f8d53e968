# services/period.py
from datetime import datetime, timezone


def period_key(instant: datetime) -> str:
    """
    Billing period identifier ("YYYY-MM") for a period-start instant.

    Naive datetimes are taken as UTC. Callers pass the subscription's
    ``current_period_start``, never the wall clock.
    """
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return f"{instant.year:04d}-{instant.month:02d}"
