# routes/jobs.py
import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from core.clock import Clock, get_clock
from core.database import get_session
from core.envelope import get_correlation_id, wrap_success
from schemas.webhook_schema import ProcessWebhookRequest, ProcessWebhookResponse
from services.webhook_processor_service import WebhookProcessorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


# ==================================================================
#  ⚙️ PROCESS ONE QUEUED STRIPE EVENT
# ==================================================================
@router.post("/stripe.process")
def process_stripe_event(
    payload: ProcessWebhookRequest,
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"⚙️ [{correlation_id}] jobs.process event={payload.event_id}")
    result = WebhookProcessorService(session, clock).process(payload.event_id)
    return wrap_success(ProcessWebhookResponse(**result), correlation_id)
