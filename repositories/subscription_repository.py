# repositories/subscription_repository.py
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from core.clock import utcnow
from models.models import CURRENT_SUBSCRIPTION_STATUSES, Subscription


def create_subscription(session: Session, subscription: Subscription) -> Subscription:
    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    return subscription


def find_subscription_by_stripe_id(session: Session, stripe_subscription_id: str) -> Optional[Subscription]:
    return session.exec(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    ).first()


def find_current_subscription(session: Session, organization_id: int) -> Optional[Subscription]:
    """
    The organization's current subscription: most recently created row whose
    status is active or trialing. Nothing in the schema prevents several.
    """
    return session.exec(
        select(Subscription)
        .where(
            Subscription.organization_id == organization_id,
            Subscription.status.in_(CURRENT_SUBSCRIPTION_STATUSES),
        )
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    ).first()


def apply_provider_state(
    session: Session,
    subscription: Subscription,
    *,
    status: str,
    current_period_start: datetime,
    current_period_end: datetime,
    trial_start: Optional[datetime],
    trial_end: Optional[datetime],
    canceled_at: Optional[datetime] = None,
    event_created_at: Optional[datetime] = None,
) -> Subscription:
    """Overwrite mirrored fields with absolute values. Caller commits."""
    subscription.status = status
    subscription.current_period_start = current_period_start
    subscription.current_period_end = current_period_end
    subscription.trial_start = trial_start
    subscription.trial_end = trial_end
    if canceled_at is not None:
        subscription.canceled_at = canceled_at
    if event_created_at is not None:
        subscription.last_event_at = event_created_at
    subscription.updated_at = utcnow()
    session.add(subscription)
    return subscription
