# ================================================================
# services/payment_service.py: Payment method collection
# ================================================================
import logging
from typing import Dict

from sqlmodel import Session

from core.errors import UpstreamError
from services.stripe_service import StripeGateway, require_stripe_customer

logger = logging.getLogger(__name__)


def create_setup_intent(session: Session, gateway: StripeGateway, org_external_id: str) -> Dict[str, str]:
    """
    Start off-session card collection for the org's Stripe customer.
    The client secret is handed to Stripe.js on the frontend.
    """
    organization = require_stripe_customer(session, org_external_id)

    setup_intent = gateway.create_setup_intent(organization.stripe_customer_id, {"orgId": org_external_id})
    client_secret = setup_intent.get("client_secret")
    if not client_secret:
        raise UpstreamError(
            "SetupIntent created but client_secret is missing",
            {"setupIntentId": setup_intent.get("id")},
        )

    logger.info(f"💳 SetupIntent {setup_intent.get('id')} created for org={org_external_id}")
    return {"clientSecret": client_secret}


def set_default_payment_method(session: Session, gateway: StripeGateway, org_external_id: str,
                               payment_method_id: str) -> Dict[str, bool]:
    organization = require_stripe_customer(session, org_external_id)

    gateway.set_default_payment_method(organization.stripe_customer_id, payment_method_id)
    logger.info(
        f"✅ Payment method {payment_method_id} set as default for org={org_external_id} "
        f"customer={organization.stripe_customer_id}"
    )
    return {"ok": True}
