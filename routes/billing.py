# routes/billing.py
import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from core.clock import Clock, get_clock
from core.config import settings
from core.database import get_session
from core.envelope import get_correlation_id, wrap_success
from core.payment_utils import require_same_org
from core.plans import PlanCatalog, get_plan_catalog
from core.security import OrgContext, get_org_context
from schemas.billing_schema import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    EnsureCustomerRequest,
    EnsureCustomerResponse,
)
from services.entitlements_service import EntitlementsProvisioner, get_entitlements_provisioner
from services.stripe_service import (
    StripeGateway,
    create_subscription_for_organization,
    ensure_customer,
    get_stripe_gateway,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["Stripe"])


# ==================================================================
#  👤 ENSURE STRIPE CUSTOMER
# ==================================================================
@router.post("/customer.ensure")
def ensure_stripe_customer(
    payload: EnsureCustomerRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"👤 [{correlation_id}] customer.ensure org={org.org_id}")
    require_same_org(org, payload.org_id)
    result = ensure_customer(session, gateway, org.org_id, payload.email)
    return wrap_success(EnsureCustomerResponse(**result), correlation_id)


# ==================================================================
#  🧾 CREATE SUBSCRIPTION (seeds usage counter)
# ==================================================================
@router.post("/subscription.create")
def create_stripe_subscription(
    payload: CreateSubscriptionRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    plans: PlanCatalog = Depends(get_plan_catalog),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    provisioner: EntitlementsProvisioner = Depends(get_entitlements_provisioner),
    clock: Clock = Depends(get_clock),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"🧾 [{correlation_id}] subscription.create org={org.org_id} plan={payload.plan_code}")
    require_same_org(org, payload.org_id)
    result = create_subscription_for_organization(
        session,
        plans,
        gateway,
        provisioner,
        org.org_id,
        payload.plan_code,
        settings.DEFAULT_METRIC,
        clock=clock,
    )
    logger.info(f"✅ [{correlation_id}] subscription {result['subscriptionId']} status={result['status']}")
    return wrap_success(CreateSubscriptionResponse(**result), correlation_id)
