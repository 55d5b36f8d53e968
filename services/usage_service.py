# services/usage_service.py
import logging
from typing import Any, Dict, Optional, Tuple

from sqlmodel import Session

from core.errors import InvalidPlanCodeError, NoActiveSubscriptionError, NotFoundError, OrgNotFoundError
from core.plans import PlanCatalog
from models.models import Organization, Subscription, UsageCounter
from repositories.org_repository import find_organization_by_external_id
from repositories.subscription_repository import find_current_subscription
from repositories.usage_repository import find_usage_counter, upsert_usage_counter
from services.period import period_key

logger = logging.getLogger(__name__)


def resolve_billing_context(session: Session, org_external_id: str) -> Tuple[Organization, Subscription]:
    """Organization plus its current (active or trialing) subscription."""
    organization = find_organization_by_external_id(session, org_external_id)
    if organization is None:
        raise OrgNotFoundError(org_external_id)

    subscription = find_current_subscription(session, organization.id)
    if subscription is None:
        raise NoActiveSubscriptionError(org_external_id)
    return organization, subscription


# ============================================================
# 🌱 Seeding
# ============================================================
def seed_counter_for_subscription(
    session: Session,
    plans: PlanCatalog,
    organization: Organization,
    subscription: Subscription,
    metric: str,
) -> UsageCounter:
    """
    Create or refresh the counter for the subscription's current period.
    ``included`` follows the plan; ``used`` is never reset.
    """
    plan = plans.lookup_plan(subscription.plan_code)
    if plan is None:
        raise InvalidPlanCodeError(subscription.plan_code, {"subscriptionId": subscription.id})

    key = period_key(subscription.current_period_start)
    counter = upsert_usage_counter(
        session,
        organization_id=organization.id,
        external_org_id=organization.external_org_id,
        subscription_id=subscription.id,
        period_key=key,
        period_start=subscription.current_period_start,
        period_end=subscription.current_period_end,
        metric=metric,
        included=plan.included_quota,
    )
    logger.info(
        "🌱 Usage counter seeded org=%s period=%s metric=%s included=%s used=%s",
        organization.external_org_id, key, metric, counter.included, counter.used,
    )
    return counter


def seed_usage_counter(session: Session, plans: PlanCatalog, org_external_id: str, metric: str) -> Dict[str, Any]:
    organization, subscription = resolve_billing_context(session, org_external_id)
    counter = seed_counter_for_subscription(session, plans, organization, subscription, metric)
    return {"periodKey": counter.period_key, "remaining": counter.remaining}


# ============================================================
# 🚦 Quota check
# ============================================================
def check_quota(session: Session, org_external_id: str, metric: str) -> Dict[str, Any]:
    """Report whether the org still has quota left. Exceeding quota is never enforced here."""
    _, subscription = resolve_billing_context(session, org_external_id)
    key = period_key(subscription.current_period_start)

    counter: Optional[UsageCounter] = find_usage_counter(session, org_external_id, key, metric)
    if counter is None:
        raise NotFoundError(
            f"Usage counter not found for organization: {org_external_id}, period: {key}, metric: {metric}",
            {"orgId": org_external_id, "periodKey": key, "metric": metric},
            code="COUNTER_NOT_FOUND",
        )

    remaining = counter.remaining
    logger.info(
        "🚦 Quota checked org=%s metric=%s period=%s included=%s used=%s remaining=%s",
        org_external_id, metric, key, counter.included, counter.used, remaining,
    )
    return {"allow": remaining > 0, "remaining": remaining}
