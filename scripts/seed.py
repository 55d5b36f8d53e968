# scripts/seed.py

import os
import sys
import argparse
from datetime import timedelta

from dotenv import load_dotenv
from sqlmodel import Session

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ✅ Load environment variables before settings are read
load_dotenv()

from core.clock import utcnow
from core.config import settings
from core.database import engine, create_db_and_tables
from core.plans import PlanCatalog, plan_catalog
from core.security import create_access_token
from models.models import Subscription, SubscriptionStatus
from repositories.org_repository import upsert_organization
from repositories.subscription_repository import create_subscription, find_current_subscription
from services.usage_service import seed_counter_for_subscription


def seed_demo_data(session: Session, plans: PlanCatalog, external_org_id: str = "org_demo",
                   plan_code: str = "trial") -> Subscription:
    """Demo organization with a trialing subscription and a seeded usage counter."""
    print(f"🌱 Seeding demo data for {external_org_id} ({plan_code})...")
    plan = plans.lookup_plan(plan_code)
    if plan is None:
        raise SystemExit(f"❌ Unknown plan code: {plan_code}. Choose one of: {', '.join(plans.codes())}")

    # -----------------------------
    # 🏢 Demo Organization
    # -----------------------------
    org = upsert_organization(session, external_org_id, "Demo Organization")
    print(f"✅ Organization ready (id={org.id})")

    # -----------------------------
    # 🧾 Trialing subscription
    # -----------------------------
    subscription = find_current_subscription(session, org.id)
    if not subscription:
        now = utcnow()
        subscription = create_subscription(session, Subscription(
            organization_id=org.id,
            external_org_id=external_org_id,
            stripe_subscription_id=f"sub_demo_{external_org_id}",
            stripe_price_id=plan.price_id,
            plan_code=plan_code,
            status=SubscriptionStatus.TRIALING.value,
            current_period_start=now,
            current_period_end=now + timedelta(days=30),
            trial_start=now,
            trial_end=now + timedelta(days=plan.trial_days or 14),
        ))
        print(f"✅ Created subscription {subscription.stripe_subscription_id}")

    # -----------------------------
    # 📊 Usage counter
    # -----------------------------
    counter = seed_counter_for_subscription(session, plans, org, subscription, settings.DEFAULT_METRIC)
    print(f"✅ Counter {counter.period_key}/{counter.metric}: {counter.used}/{counter.included}")
    return subscription


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the Meterflow database with a demo tenant.")
    parser.add_argument("--org", default="org_demo", help="External organization id")
    parser.add_argument("--plan", default="trial", help="Plan code to subscribe the demo org to")
    args = parser.parse_args()

    create_db_and_tables()
    with Session(engine) as session:
        seed_demo_data(session, plan_catalog, args.org, args.plan)

    token = create_access_token({"sub": "demo-user", "org_id": args.org})
    print("🌱 Demo data seeding complete.")
    print(f"🔑 Bearer token for {args.org}: {token}")
