# repositories/webhook_repository.py
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from core.database import insert_for
from models.models import WebhookEvent


def find_webhook_event(session: Session, stripe_event_id: str) -> Optional[WebhookEvent]:
    return session.exec(
        select(WebhookEvent).where(WebhookEvent.stripe_event_id == stripe_event_id)
    ).first()


def enqueue_webhook_event(session: Session, stripe_event_id: str, event_type: str, payload: str,
                          received_at: datetime) -> bool:
    """
    Insert a queue entry unless one already exists for the event id.
    Returns True when this call created the row.
    """
    stmt = insert_for(session, WebhookEvent).values(
        stripe_event_id=stripe_event_id,
        event_type=event_type,
        payload=payload,
        processed=False,
        created_at=received_at,
    ).on_conflict_do_nothing(index_elements=["stripe_event_id"])
    result = session.exec(stmt)
    session.commit()
    return result.rowcount == 1


def list_unprocessed_events(session: Session, limit: int = 100) -> List[WebhookEvent]:
    return list(session.exec(
        select(WebhookEvent)
        .where(WebhookEvent.processed == False)  # noqa: E712
        .order_by(WebhookEvent.created_at, WebhookEvent.id)
        .limit(limit)
    ).all())


def mark_webhook_processed(session: Session, event: WebhookEvent, processed_at: datetime) -> WebhookEvent:
    """Flip processed=false -> true. Caller commits."""
    event.processed = True
    event.processed_at = processed_at
    event.processing_error = None
    session.add(event)
    return event


def record_processing_error(session: Session, stripe_event_id: str, error: str) -> None:
    event = find_webhook_event(session, stripe_event_id)
    if event is None or event.processed:
        return
    event.processing_error = error[:2000]
    session.add(event)
    session.commit()
