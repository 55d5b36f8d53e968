# repositories/org_repository.py
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from core.clock import utcnow
from core.database import insert_for
from models.models import Organization


def find_organization_by_external_id(session: Session, external_org_id: str) -> Optional[Organization]:
    return session.exec(
        select(Organization).where(Organization.external_org_id == external_org_id)
    ).first()


def upsert_organization(session: Session, external_org_id: str, name: Optional[str] = None) -> Organization:
    """Create the organization once per tenant; later calls return the stored row."""
    now = utcnow()
    stmt = insert_for(session, Organization).values(
        external_org_id=external_org_id,
        name=name or f"Organization {external_org_id}",
        created_at=now,
        updated_at=now,
    ).on_conflict_do_nothing(index_elements=["external_org_id"])
    session.exec(stmt)
    session.commit()
    return find_organization_by_external_id(session, external_org_id)


def fill_stripe_customer_id(session: Session, org_id: int, stripe_customer_id: str) -> Organization:
    """
    Set the Stripe customer reference only if none is stored yet.
    Returns the organization with whatever reference won.
    """
    session.exec(
        update(Organization)
        .where(Organization.id == org_id, Organization.stripe_customer_id.is_(None))
        .values(stripe_customer_id=stripe_customer_id, updated_at=utcnow())
    )
    session.commit()
    organization = session.get(Organization, org_id)
    return organization
