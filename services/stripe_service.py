# ================================================================
# services/stripe_service.py: Stripe customers & subscriptions
# ================================================================
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import stripe
from sqlmodel import Session

from core.clock import Clock, system_clock
from core.config import settings
from core.errors import OrgNotFoundError, UpstreamError, ValidationError
from core.payment_utils import map_stripe_status, subscription_period, trial_bounds
from core.plans import PlanCatalog
from models.models import Organization, Subscription
from repositories.org_repository import fill_stripe_customer_id, find_organization_by_external_id
from repositories.subscription_repository import create_subscription
from services.entitlements_service import EntitlementsProvisioner, provision_best_effort
from services.usage_service import seed_counter_for_subscription

logger = logging.getLogger(__name__)


def _as_dict(obj: Any) -> Dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


# ============================================================
# 💳 Gateway (only place that talks to the Stripe SDK)
# ============================================================
class StripeGateway:
    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def _require_key(self) -> str:
        if not self.api_key:
            raise UpstreamError("STRIPE_SECRET_KEY is not configured", code="STRIPE_NOT_CONFIGURED")
        return self.api_key

    def find_customer_by_email(self, email: str) -> Optional[str]:
        try:
            customers = stripe.Customer.list(email=email, limit=1, api_key=self._require_key())
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe customer search failed for {email}: {e}")
            raise UpstreamError(f"Failed to search Stripe customer: {e}")
        if customers.data:
            return customers.data[0].id
        return None

    def create_customer(self, email: str, metadata: Dict[str, str]) -> str:
        try:
            customer = stripe.Customer.create(email=email, metadata=metadata, api_key=self._require_key())
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe customer creation failed for {email}: {e}")
            raise UpstreamError(f"Failed to create Stripe customer: {e}", code="STRIPE_CUSTOMER_CREATION_FAILED")
        return customer.id

    def create_subscription(self, customer_id: str, price_id: str, trial_days: int,
                            metadata: Dict[str, str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "metadata": metadata,
        }
        if trial_days > 0:
            params["trial_period_days"] = trial_days
        try:
            subscription = stripe.Subscription.create(api_key=self._require_key(), **params)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe subscription creation failed for {customer_id}: {e}")
            raise UpstreamError(f"Failed to create Stripe subscription: {e}")
        return _as_dict(subscription)

    def create_setup_intent(self, customer_id: str, metadata: Dict[str, str]) -> Dict[str, Any]:
        try:
            setup_intent = stripe.SetupIntent.create(
                customer=customer_id,
                usage="off_session",
                metadata=metadata,
                api_key=self._require_key(),
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe SetupIntent creation failed for {customer_id}: {e}")
            raise UpstreamError(f"Failed to create SetupIntent: {e}")
        return _as_dict(setup_intent)

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        """Attach the payment method and make it the default for invoices and renewals."""
        api_key = self._require_key()
        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id, api_key=api_key)
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
                api_key=api_key,
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Setting default payment method {payment_method_id} failed for {customer_id}: {e}")
            raise UpstreamError(f"Failed to attach or set default payment method: {e}")


stripe_gateway = StripeGateway(settings.STRIPE_SECRET_KEY)


def get_stripe_gateway() -> StripeGateway:
    """FastAPI dependency (overridden in tests)."""
    return stripe_gateway


def require_stripe_customer(session: Session, org_external_id: str) -> Organization:
    """Organization that already has a Stripe customer linked."""
    organization = find_organization_by_external_id(session, org_external_id)
    if organization is None:
        raise OrgNotFoundError(org_external_id)
    if not organization.stripe_customer_id:
        raise ValidationError(
            f"Organization {org_external_id} does not have a Stripe customer ID. Please ensure customer first.",
            {"orgId": org_external_id},
            code="STRIPE_CUSTOMER_MISSING",
        )
    return organization


# ============================================================
# 👤 Customer ensure
# ============================================================
def ensure_customer(session: Session, gateway: StripeGateway, org_external_id: str, email: str) -> Dict[str, str]:
    """Return the org's Stripe customer, reusing one found by email or creating it."""
    organization = find_organization_by_external_id(session, org_external_id)
    if organization is None:
        raise OrgNotFoundError(org_external_id)

    if organization.stripe_customer_id:
        logger.info(f"🔁 Stripe customer already linked for org={org_external_id}")
        return {"stripeCustomerId": organization.stripe_customer_id}

    customer_id = gateway.find_customer_by_email(email)
    if customer_id:
        logger.info(f"🔎 Reusing Stripe customer {customer_id} found by email for org={org_external_id}")
    else:
        customer_id = gateway.create_customer(email, {"orgId": org_external_id})
        logger.info(f"🆕 Stripe customer {customer_id} created for org={org_external_id}")

    # Set at most once; a concurrent winner's id is what we return
    organization = fill_stripe_customer_id(session, organization.id, customer_id)
    return {"stripeCustomerId": organization.stripe_customer_id}


# ============================================================
# 🧾 Subscription create
# ============================================================
def create_subscription_for_organization(
    session: Session,
    plans: PlanCatalog,
    gateway: StripeGateway,
    provisioner: EntitlementsProvisioner,
    org_external_id: str,
    plan_code: str,
    metric: str,
    clock: Clock = system_clock,
) -> Dict[str, Any]:
    plan = plans.lookup_plan(plan_code)
    if plan is None:
        raise ValidationError(
            f"Invalid plan code: {plan_code}. Must be one of: {', '.join(plans.codes())}",
            {"planCode": plan_code},
            code="INVALID_PLAN_CODE",
        )

    organization = require_stripe_customer(session, org_external_id)

    stripe_subscription = gateway.create_subscription(
        organization.stripe_customer_id,
        plan.price_id,
        plan.trial_days,
        {"orgId": org_external_id, "planCode": plan_code},
    )
    logger.info(
        f"✅ Stripe subscription {stripe_subscription.get('id')} created for org={org_external_id} "
        f"status={stripe_subscription.get('status')}"
    )

    now = clock.now()
    period_start, period_end = subscription_period(stripe_subscription)
    trial_start, trial_end = trial_bounds(stripe_subscription)
    status = map_stripe_status(stripe_subscription.get("status"))

    subscription = create_subscription(session, Subscription(
        organization_id=organization.id,
        external_org_id=org_external_id,
        stripe_subscription_id=stripe_subscription["id"],
        stripe_customer_id=organization.stripe_customer_id,
        stripe_price_id=plan.price_id,
        plan_code=plan_code,
        status=status,
        current_period_start=period_start or now,
        current_period_end=period_end or now + timedelta(days=30),
        trial_start=trial_start,
        trial_end=trial_end,
        created_at=now,
        updated_at=now,
    ))

    if subscription.is_current:
        seed_counter_for_subscription(session, plans, organization, subscription, metric)
    else:
        logger.info(f"ℹ️ Subscription {subscription.stripe_subscription_id} is {status}, counter not seeded")

    provision_best_effort(provisioner, organization, subscription)

    return {
        "subscriptionId": subscription.stripe_subscription_id,
        "status": subscription.status,
        "trialEndsAt": subscription.trial_end,
    }
