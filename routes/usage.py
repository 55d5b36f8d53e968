# routes/usage.py
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
from schemas.usage_schema import UsageRecordRequest, UsageRecordResponse, UsageSeedRequest, UsageSeedResponse
from services.usage_recording_service import UsageRecordingService
from services.usage_service import seed_usage_counter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/usage", tags=["Usage"])


# ==================================================================
#  ✅ RECORD USAGE (idempotent on request_id)
# ==================================================================
@router.post("/record")
def record_usage(
    payload: UsageRecordRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    plans: PlanCatalog = Depends(get_plan_catalog),
    clock: Clock = Depends(get_clock),
    correlation_id: str = Depends(get_correlation_id),
):
    """Record usage; a repeated request_id returns the counter's current state."""
    logger.info(f"📊 [{correlation_id}] usage.record org={org.org_id} metric={payload.metric} request_id={payload.request_id}")
    require_same_org(org, payload.org_id)

    result = UsageRecordingService(session, plans, clock).record_usage(
        org.org_id,
        payload.metric,
        payload.value,
        payload.occurred_at,
        payload.request_id,
    )

    logger.info(f"✅ [{correlation_id}] usage.record period={result.period_key} used={result.used} remaining={result.remaining}")
    return wrap_success(UsageRecordResponse(**result.as_dict()), correlation_id)


# ==================================================================
#  ✅ SEED USAGE COUNTER
# ==================================================================
@router.post("/seed")
def seed_usage(
    payload: UsageSeedRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    plans: PlanCatalog = Depends(get_plan_catalog),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"🌱 [{correlation_id}] usage.seed org={org.org_id}")
    require_same_org(org, payload.org_id)

    result = seed_usage_counter(session, plans, org.org_id, payload.metric or settings.DEFAULT_METRIC)
    return wrap_success(UsageSeedResponse(**result), correlation_id)
