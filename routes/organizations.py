# routes/organizations.py
import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session

from core.database import get_session
from core.envelope import get_correlation_id, wrap_success
from core.security import OrgContext, get_org_context
from schemas.billing_schema import OrganizationCreateRequest, OrganizationCreateResponse
from services.org_service import create_organization

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orgs", tags=["Organizations"])


# ==================================================================
#  ✅ CREATE (OR FETCH) MY ORGANIZATION
# ==================================================================
@router.post("/create")
def create_my_organization(
    payload: OrganizationCreateRequest,
    org: OrgContext = Depends(get_org_context),
    session: Session = Depends(get_session),
    correlation_id: str = Depends(get_correlation_id),
):
    logger.info(f"🏢 [{correlation_id}] orgs.create external={org.org_id}")
    result = create_organization(session, org.org_id, payload.name)
    return wrap_success(OrganizationCreateResponse(**result), correlation_id)
