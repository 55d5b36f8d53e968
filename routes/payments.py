# routes/payments.py
import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from core.database import get_session
from core.envelope import get_correlation_id, wrap_success
from core.payment_utils import require_same_org
from core.security import OrgContext, get_org_context
from schemas.billing_schema import (
    DefaultPaymentMethodSetRequest,
    DefaultPaymentMethodSetResponse,
    SetupIntentCreateRequest,
    SetupIntentCreateResponse,
)
from services.payment_service import create_setup_intent, set_default_payment_method
from services.stripe_service import StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


# ==================================================================
#  💳 CREATE SETUP INTENT
# ==================================================================
@router.post("/setup-intent.create")
def create_payment_setup_intent(
    payload: SetupIntentCreateRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"💳 [{correlation_id}] setup-intent.create org={org.org_id}")
    require_same_org(org, payload.org_id)
    result = create_setup_intent(session, gateway, org.org_id)
    return wrap_success(SetupIntentCreateResponse(**result), correlation_id)


# ==================================================================
#  ⭐ SET DEFAULT PAYMENT METHOD
# ==================================================================
@router.post("/default-method.set")
def set_payment_default_method(
    payload: DefaultPaymentMethodSetRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"⭐ [{correlation_id}] default-method.set org={org.org_id} pm={payload.payment_method_id}")
    require_same_org(org, payload.org_id)
    result = set_default_payment_method(session, gateway, org.org_id, payload.payment_method_id)
    return wrap_success(DefaultPaymentMethodSetResponse(**result), correlation_id)
