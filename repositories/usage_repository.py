# repositories/usage_repository.py
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import update
from sqlmodel import Session, select

from core.clock import utcnow
from core.database import insert_for
from models.models import UsageCounter, UsageRecord


# ============================================================
# Usage counters
# ============================================================
def find_usage_counter(session: Session, external_org_id: str, period_key: str, metric: str) -> Optional[UsageCounter]:
    return session.exec(
        select(UsageCounter).where(
            UsageCounter.external_org_id == external_org_id,
            UsageCounter.period_key == period_key,
            UsageCounter.metric == metric,
        )
    ).first()


def _counter_values(
    *,
    organization_id: int,
    external_org_id: str,
    subscription_id: int,
    period_key: str,
    period_start: datetime,
    period_end: datetime,
    metric: str,
    included: int,
) -> Dict[str, Any]:
    now = utcnow()
    return dict(
        organization_id=organization_id,
        external_org_id=external_org_id,
        subscription_id=subscription_id,
        period_key=period_key,
        period_start=period_start,
        period_end=period_end,
        metric=metric,
        included=included,
        used=0,
        created_at=now,
        updated_at=now,
    )


def ensure_usage_counter(session: Session, **values) -> UsageCounter:
    """
    Create the counter with used=0 if missing. An existing counter (seeded or
    created by a concurrent caller) is left untouched. Does not commit.
    """
    stmt = insert_for(session, UsageCounter).values(**_counter_values(**values)).on_conflict_do_nothing(
        index_elements=["external_org_id", "period_key", "metric"]
    )
    session.exec(stmt)
    return find_usage_counter(session, values["external_org_id"], values["period_key"], values["metric"])


def upsert_usage_counter(session: Session, **values) -> UsageCounter:
    """
    Seed a counter: create it with used=0, or refresh included and the period
    bounds of an existing one while keeping its used value. Commits.
    """
    row = _counter_values(**values)
    stmt = insert_for(session, UsageCounter).values(**row)
    stmt = stmt.on_conflict_do_update(
        index_elements=["external_org_id", "period_key", "metric"],
        set_={
            "included": stmt.excluded.included,
            "period_start": stmt.excluded.period_start,
            "period_end": stmt.excluded.period_end,
            "subscription_id": stmt.excluded.subscription_id,
            "organization_id": stmt.excluded.organization_id,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.exec(stmt)
    session.commit()
    counter = find_usage_counter(session, row["external_org_id"], row["period_key"], row["metric"])
    session.refresh(counter)
    return counter


def increment_usage_counter(session: Session, counter_id: int, quantity: int) -> Tuple[int, int]:
    """
    Atomically add ``quantity`` to ``used`` in a single UPDATE and return the
    resulting (used, included). Does not commit.
    """
    session.exec(
        update(UsageCounter)
        .where(UsageCounter.id == counter_id)
        .values(used=UsageCounter.used + quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    used, included = session.exec(
        select(UsageCounter.used, UsageCounter.included).where(UsageCounter.id == counter_id)
    ).one()
    return used, included


def read_counter_totals(session: Session, counter_id: int) -> Optional[Tuple[str, int, int]]:
    """Current (period_key, used, included) straight from the table."""
    row = session.exec(
        select(UsageCounter.period_key, UsageCounter.used, UsageCounter.included).where(UsageCounter.id == counter_id)
    ).first()
    if row is None:
        return None
    return row[0], row[1], row[2]


# ============================================================
# Usage records
# ============================================================
def find_usage_record_by_key(session: Session, external_org_id: str, idempotency_key: str) -> Optional[UsageRecord]:
    return session.exec(
        select(UsageRecord).where(
            UsageRecord.external_org_id == external_org_id,
            UsageRecord.idempotency_key == idempotency_key,
        )
    ).first()


def append_usage_record(
    session: Session,
    *,
    organization_id: int,
    external_org_id: str,
    subscription_id: int,
    usage_counter_id: int,
    metric: str,
    quantity: int,
    occurred_at: datetime,
    idempotency_key: str,
) -> bool:
    """
    Append one record. Returns False when the idempotency key is already
    taken (a concurrent duplicate won). Does not commit.
    """
    stmt = insert_for(session, UsageRecord).values(
        organization_id=organization_id,
        external_org_id=external_org_id,
        subscription_id=subscription_id,
        usage_counter_id=usage_counter_id,
        metric=metric,
        quantity=quantity,
        occurred_at=occurred_at,
        idempotency_key=idempotency_key,
        record_metadata={"request_id": idempotency_key},
        created_at=utcnow(),
    ).on_conflict_do_nothing(index_elements=["external_org_id", "idempotency_key"])
    result = session.exec(stmt)
    return result.rowcount == 1
