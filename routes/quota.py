# routes/quota.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from core.config import settings
from core.database import get_session
from core.envelope import get_correlation_id, wrap_success
from core.payment_utils import require_same_org
from core.security import OrgContext, get_org_context
from schemas.usage_schema import (
    EntitlementsProvisionRequest,
    EntitlementsProvisionResponse,
    EntitlementsResponse,
    QuotaCheckRequest,
    QuotaCheckResponse,
)
from services.entitlements_service import (
    EntitlementsProvisioner,
    get_entitlements,
    get_entitlements_provisioner,
    provision_subscription,
)
from services.usage_service import check_quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Quota"])


# ==================================================================
#  🚦 QUOTA CHECK
# ==================================================================
@router.post("/quota/check")
def quota_check(
    payload: QuotaCheckRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    correlation_id: str = Depends(get_correlation_id),
):
    metric = payload.metric or settings.DEFAULT_METRIC
    logger.info(f"🚦 [{correlation_id}] quota.check org={org.org_id} metric={metric}")
    result = check_quota(session, org.org_id, metric)
    return wrap_success(QuotaCheckResponse(**result), correlation_id)


# ==================================================================
#  🎟️ MY ENTITLEMENTS
# ==================================================================
@router.get("/me/entitlements")
def read_entitlements(
    metric: Optional[str] = None,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    correlation_id: str = Depends(get_correlation_id),
):
    result = get_entitlements(session, org.org_id, metric or settings.DEFAULT_METRIC)
    return wrap_success(EntitlementsResponse(**result), correlation_id)


# ==================================================================
#  🎟️ PROVISION ENTITLEMENTS (always 200, soft dependency)
# ==================================================================
@router.post("/entitlements/provision")
def provision_entitlements(
    payload: EntitlementsProvisionRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    provisioner: EntitlementsProvisioner = Depends(get_entitlements_provisioner),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"🎟️ [{correlation_id}] entitlements.provision org={org.org_id} subscription={payload.subscription_id}")
    require_same_org(org, payload.org_id)
    result = provision_subscription(session, provisioner, org.org_id, payload.subscription_id)
    logger.info(f"[{correlation_id}] entitlements.provision provisioned={result['provisioned']}")
    return wrap_success(EntitlementsProvisionResponse(**result), correlation_id)
