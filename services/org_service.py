# services/org_service.py
import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from repositories.org_repository import upsert_organization

logger = logging.getLogger(__name__)


def create_organization(session: Session, org_external_id: str, name: Optional[str] = None) -> Dict[str, Any]:
    """Idempotent: the first call creates the tenant, later calls return it."""
    organization = upsert_organization(session, org_external_id, name)
    logger.info(f"🏢 Organization ready id={organization.id} external={org_external_id}")
    return {"orgId": organization.id, "externalOrgId": organization.external_org_id, "name": organization.name}
