# services/entitlements_service.py
import logging
from typing import Any, Dict

from sqlmodel import Session

from models.models import Organization, Subscription
from repositories.org_repository import find_organization_by_external_id
from repositories.subscription_repository import find_subscription_by_stripe_id
from repositories.usage_repository import find_usage_counter
from services.period import period_key
from services.usage_service import resolve_billing_context

logger = logging.getLogger(__name__)


class EntitlementsProvisioner:
    """
    Pushes a new subscription to the feature-flag / entitlement provider.

    No provider client ships with the service, so the default reports that
    nothing was provisioned. Deployments plug in a subclass that calls the
    provider and returns True once it has accepted the subscription.
    """

    def provision(self, organization: Organization, subscription: Subscription) -> bool:
        logger.warning(
            f"⚠️ Entitlements provider not configured, skipping org={organization.external_org_id} "
            f"subscription={subscription.stripe_subscription_id}"
        )
        return False


def provision_best_effort(provisioner: EntitlementsProvisioner, organization: Organization,
                          subscription: Subscription) -> bool:
    """Soft dependency: a provider failure is logged and never raised."""
    if not organization.stripe_customer_id:
        logger.warning(
            f"⚠️ Org {organization.external_org_id} has no Stripe customer, entitlements not provisioned"
        )
        return False

    logger.info(
        f"🎟️ Provisioning entitlements org={organization.external_org_id} plan={subscription.plan_code} "
        f"customer={organization.stripe_customer_id} subscription={subscription.stripe_subscription_id}"
    )
    try:
        provisioned = bool(provisioner.provision(organization, subscription))
    except Exception as e:
        logger.error(
            f"❌ Entitlements provisioning failed for org={organization.external_org_id} "
            f"subscription={subscription.stripe_subscription_id}: {e}"
        )
        return False

    if provisioned:
        logger.info(f"✅ Entitlements provisioned for subscription={subscription.stripe_subscription_id}")
    return provisioned


def provision_subscription(session: Session, provisioner: EntitlementsProvisioner, org_external_id: str,
                           stripe_subscription_id: str) -> Dict[str, bool]:
    """Re-run provisioning for one of the org's subscriptions. Never raises for missing data."""
    organization = find_organization_by_external_id(session, org_external_id)
    if organization is None:
        logger.warning(f"⚠️ Organization {org_external_id} not found for entitlements provisioning")
        return {"provisioned": False}

    subscription = find_subscription_by_stripe_id(session, stripe_subscription_id)
    if subscription is None or subscription.organization_id != organization.id:
        logger.warning(
            f"⚠️ Subscription {stripe_subscription_id} not found for org={org_external_id}, nothing to provision"
        )
        return {"provisioned": False}

    return {"provisioned": provision_best_effort(provisioner, organization, subscription)}


default_provisioner = EntitlementsProvisioner()


def get_entitlements_provisioner() -> EntitlementsProvisioner:
    """FastAPI dependency (overridden in tests)."""
    return default_provisioner


def get_entitlements(session: Session, org_external_id: str, metric: str) -> Dict[str, Any]:
    """Plan and quota snapshot for the org's current period."""
    _, subscription = resolve_billing_context(session, org_external_id)
    key = period_key(subscription.current_period_start)
    counter = find_usage_counter(session, org_external_id, key, metric)

    included = counter.included if counter else 0
    used = counter.used if counter else 0
    return {
        "planCode": subscription.plan_code,
        "status": subscription.status,
        "periodKey": key,
        "included": included,
        "used": used,
        "remaining": max(0, included - used),
    }
