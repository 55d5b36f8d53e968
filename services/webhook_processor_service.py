# ================================================================
# services/webhook_processor_service.py: Queue -> subscription state
# ================================================================
import json
import logging
from typing import Any, Callable, Dict

from sqlmodel import Session

from core.clock import Clock, from_unix, system_clock, to_utc
from core.errors import WebhookEventNotFoundError
from core.payment_utils import map_stripe_status, subscription_period, trial_bounds
from models.models import Subscription, SubscriptionStatus
from repositories.subscription_repository import apply_provider_state, find_subscription_by_stripe_id
from repositories.webhook_repository import find_webhook_event, mark_webhook_processed, record_processing_error

logger = logging.getLogger(__name__)

EventHandler = Callable[[Session, Dict[str, Any], Clock], None]


# ============================================================
# Helpers
# ============================================================
def _data_object(event: Dict[str, Any]) -> Dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _is_stale(subscription: Subscription, event: Dict[str, Any]) -> bool:
    event_created = from_unix(event.get("created"))
    if event_created is None or subscription.last_event_at is None:
        return False
    return event_created < to_utc(subscription.last_event_at)


def _local_subscription(session: Session, event: Dict[str, Any]):
    """Local row for the event's subscription, or None when missing or stale."""
    stripe_subscription = _data_object(event)
    stripe_subscription_id = stripe_subscription.get("id")
    subscription = find_subscription_by_stripe_id(session, stripe_subscription_id) if stripe_subscription_id else None

    if subscription is None:
        logger.warning(f"⚠️ Subscription {stripe_subscription_id} not found locally, nothing to converge")
        return None

    if _is_stale(subscription, event):
        logger.info(
            f"⏭️ Skipping stale event {event.get('id')} for {stripe_subscription_id} "
            f"(event created {from_unix(event.get('created'))}, last applied {subscription.last_event_at})"
        )
        return None
    return subscription


# ============================================================
# Handlers
# ============================================================
def handle_subscription_created(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    # Local rows are created by the signup flow, not by this event
    obj = _data_object(event)
    logger.info(f"ℹ️ Subscription created {obj.get('id')} for customer {obj.get('customer')}")


def handle_subscription_updated(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    subscription = _local_subscription(session, event)
    if subscription is None:
        return

    obj = _data_object(event)
    period_start, period_end = subscription_period(obj)
    trial_start, trial_end = trial_bounds(obj)
    status = map_stripe_status(obj.get("status"), fallback=subscription.status)

    apply_provider_state(
        session,
        subscription,
        status=status,
        current_period_start=period_start or subscription.current_period_start,
        current_period_end=period_end or subscription.current_period_end,
        trial_start=trial_start,
        trial_end=trial_end,
        canceled_at=from_unix(obj.get("canceled_at")),
        event_created_at=from_unix(event.get("created")),
    )
    logger.info(f"✅ Subscription {subscription.stripe_subscription_id} converged to status={status}")


def handle_subscription_deleted(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    subscription = _local_subscription(session, event)
    if subscription is None:
        return

    obj = _data_object(event)
    canceled_at = from_unix(obj.get("canceled_at")) or from_unix(obj.get("ended_at")) or clock.now()

    apply_provider_state(
        session,
        subscription,
        status=SubscriptionStatus.CANCELED.value,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        trial_start=subscription.trial_start,
        trial_end=subscription.trial_end,
        canceled_at=canceled_at,
        event_created_at=from_unix(event.get("created")),
    )
    logger.info(f"🗑️ Subscription {subscription.stripe_subscription_id} marked canceled")


def handle_invoice_paid(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    obj = _data_object(event)
    logger.info(f"💰 Invoice {obj.get('id')} paid (subscription {obj.get('subscription')})")


def handle_invoice_payment_failed(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    # Status changes arrive through customer.subscription.updated
    obj = _data_object(event)
    logger.info(f"⚠️ Invoice {obj.get('id')} payment failed (subscription {obj.get('subscription')})")


def handle_trial_will_end(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    obj = _data_object(event)
    logger.info(f"⏳ Trial ending soon for {obj.get('id')} at {from_unix(obj.get('trial_end'))}")


def handle_unrecognized(session: Session, event: Dict[str, Any], clock: Clock) -> None:
    logger.info(f"ℹ️ Unhandled event type {event.get('type')} ({event.get('id')}), no-op")


EVENT_HANDLERS: Dict[str, EventHandler] = {
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "customer.subscription.trial_will_end": handle_trial_will_end,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_succeeded": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


# ============================================================
# Processor
# ============================================================
class WebhookProcessorService:
    """
    Applies one queued event. Safe to invoke repeatedly: processed entries
    return immediately, and handlers only ever set absolute values.
    """

    def __init__(self, session: Session, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def process(self, event_id: str) -> Dict[str, bool]:
        webhook_event = find_webhook_event(self.session, event_id)
        if webhook_event is None:
            raise WebhookEventNotFoundError(event_id)

        if webhook_event.processed:
            logger.info(f"🔁 Webhook {event_id} already processed at {webhook_event.processed_at}")
            return {"converged": True}

        event_type = webhook_event.event_type
        logger.info(f"⚙️ Processing webhook {event_id} ({event_type})")

        try:
            event = json.loads(webhook_event.payload)
            handler = EVENT_HANDLERS.get(event_type, handle_unrecognized)
            handler(self.session, event, self.clock)
            mark_webhook_processed(self.session, webhook_event, self.clock.now())
            self.session.commit()
        except Exception as e:
            # Entry stays unprocessed so a later invocation retries it
            self.session.rollback()
            logger.error(f"❌ Error processing webhook {event_id} ({event_type}): {e}")
            record_processing_error(self.session, event_id, f"{e.__class__.__name__}: {e}")
            raise

        logger.info(f"✅ Webhook {event_id} processed")
        return {"converged": True}
