# core/payment_utils.py
import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from core.clock import from_unix
from core.errors import ForbiddenError
from core.security import OrgContext
from models.models import SubscriptionStatus

logger = logging.getLogger(__name__)

# Stripe subscription status -> local status
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE.value,
    "trialing": SubscriptionStatus.TRIALING.value,
    "past_due": SubscriptionStatus.PAST_DUE.value,
    "canceled": SubscriptionStatus.CANCELED.value,
    "unpaid": SubscriptionStatus.CANCELED.value,
    "incomplete": SubscriptionStatus.CANCELED.value,
    "incomplete_expired": SubscriptionStatus.CANCELED.value,
    "paused": SubscriptionStatus.PAST_DUE.value,
}


def map_stripe_status(stripe_status: Optional[str], fallback: Optional[str] = None) -> str:
    """
    Map a provider status onto the local enum. Unknown values keep ``fallback``
    (the currently stored status) or, without one, become canceled.
    """
    if stripe_status in STRIPE_STATUS_MAP:
        return STRIPE_STATUS_MAP[stripe_status]
    logger.warning(f"⚠️ Unknown Stripe subscription status: {stripe_status!r}")
    return fallback or SubscriptionStatus.CANCELED.value


def _first_item(subscription: Mapping[str, Any]) -> Mapping[str, Any]:
    items = subscription.get("items") or {}
    data = items.get("data") if isinstance(items, Mapping) else None
    if data:
        return data[0]
    return {}


def subscription_period(subscription: Mapping[str, Any]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Current period bounds of a Stripe subscription object. Newer API versions
    only carry them on the subscription items.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        item = _first_item(subscription)
        start = start if start is not None else item.get("current_period_start")
        end = end if end is not None else item.get("current_period_end")
    return from_unix(start), from_unix(end)


def trial_bounds(subscription: Mapping[str, Any]) -> Tuple[Optional[datetime], Optional[datetime]]:
    return from_unix(subscription.get("trial_start")), from_unix(subscription.get("trial_end"))


def require_same_org(org: OrgContext, requested_org_id: str) -> None:
    """The org id in a request body must match the token's org."""
    if requested_org_id != org.org_id:
        logger.warning(f"🚫 orgId mismatch: body={requested_org_id} token={org.org_id}")
        raise ForbiddenError(
            "Organization ID in request does not match authenticated organization",
            {"orgId": requested_org_id},
        )
