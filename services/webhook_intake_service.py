# ================================================================
# services/webhook_intake_service.py: Verify + enqueue Stripe events
# ================================================================
import json
import logging
from typing import Any, Dict, Optional

import stripe
from sqlmodel import Session

from core.clock import Clock, system_clock
from core.errors import UnauthorizedError, ValidationError
from repositories.webhook_repository import enqueue_webhook_event, find_webhook_event

logger = logging.getLogger(__name__)


def verify_signature(raw_body: bytes, signature_header: Optional[str], secret: Optional[str],
                     tolerance: int = 300) -> Dict[str, Any]:
    """
    Check the Stripe-Signature header against the raw, unparsed body and only
    then parse it. Returns the decoded event dict.
    """
    if not signature_header:
        raise ValidationError("Missing stripe-signature header", code="MISSING_SIGNATURE")
    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise UnauthorizedError("Webhook secret not configured", code="WEBHOOK_SECRET_MISSING")

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("Webhook payload is not valid UTF-8", code="INVALID_PAYLOAD")

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"❌ Invalid webhook signature: {e}")
        raise UnauthorizedError("Invalid webhook signature", code="INVALID_WEBHOOK_SIGNATURE")

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError("Webhook payload is not valid JSON", code="INVALID_PAYLOAD")

    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise ValidationError("Webhook payload is missing id or type", code="INVALID_PAYLOAD")
    return event


class WebhookIntakeService:
    """Accepts provider events. Never applies business effects."""

    def __init__(self, session: Session, webhook_secret: Optional[str], tolerance: int = 300,
                 clock: Clock = system_clock):
        self.session = session
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.clock = clock

    def intake(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        event = verify_signature(raw_body, signature_header, self.webhook_secret, self.tolerance)
        event_id = str(event["id"])
        event_type = str(event["type"])

        if find_webhook_event(self.session, event_id) is not None:
            logger.info(f"🔁 Webhook {event_id} ({event_type}) already queued")
            return {"queued": True, "eventId": event_id}

        created = enqueue_webhook_event(
            self.session,
            stripe_event_id=event_id,
            event_type=event_type,
            payload=raw_body.decode("utf-8"),
            received_at=self.clock.now(),
        )
        if created:
            logger.info(f"📥 Webhook {event_id} ({event_type}) queued")
        else:
            logger.info(f"🔁 Webhook {event_id} ({event_type}) queued concurrently by another request")
        return {"queued": True, "eventId": event_id}
