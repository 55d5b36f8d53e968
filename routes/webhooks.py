# routes/webhooks.py
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from core.clock import Clock, get_clock
from core.config import settings
from core.database import get_session
from core.envelope import get_correlation_id, wrap_success
from schemas.webhook_schema import WebhookReceiveResponse
from services.webhook_intake_service import WebhookIntakeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


# ==================================================================
#  📥 STRIPE WEBHOOK RECEIVE (verify + enqueue only)
# ==================================================================
@router.post("/stripe.receive", status_code=202)
async def receive_stripe_webhook(
    request: Request,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    correlation_id: str = Depends(get_correlation_id),
):
    """
    Accept a Stripe event. The raw body is verified before it is parsed;
    business effects run later through /api/jobs/stripe.process.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    logger.info(f"📥 [{correlation_id}] webhook received ({len(payload)} bytes)")

    intake = WebhookIntakeService(
        session,
        settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        clock=clock,
    )
    result = intake.intake(payload, sig_header)

    return JSONResponse(
        status_code=202,
        content=wrap_success(WebhookReceiveResponse(**result), correlation_id),
    )
