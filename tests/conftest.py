# tests/conftest.py
import hashlib
import hmac
import itertools
import json
import os
import tempfile
import time
from datetime import datetime, timedelta, timezone

import pytest

# Settings are read at import time, so the environment goes first
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "meterflow-test-app.db")

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from core.clock import FixedClock, get_clock  # noqa: E402
from core.database import build_engine, create_db_and_tables, get_session  # noqa: E402
from core.plans import PlanCatalog, PlanConfig, get_plan_catalog  # noqa: E402
from core.security import create_access_token  # noqa: E402
from models.models import Subscription, SubscriptionStatus  # noqa: E402
from repositories.org_repository import upsert_organization  # noqa: E402
from repositories.subscription_repository import create_subscription  # noqa: E402
from services.entitlements_service import EntitlementsProvisioner, get_entitlements_provisioner  # noqa: E402
from services.stripe_service import StripeGateway, get_stripe_gateway  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
NOW = datetime(2025, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
PERIOD_START = datetime(2025, 3, 1, tzinfo=timezone.utc)


# ============================================================
# Database
# ============================================================
@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'meterflow.db'}")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# ============================================================
# Collaborators
# ============================================================
@pytest.fixture
def plans():
    return PlanCatalog({
        "trial": PlanConfig(code="trial", included_quota=30, price_id="price_trial", trial_days=14),
        "starter": PlanConfig(code="starter", included_quota=1000, price_id="price_starter"),
        "growth": PlanConfig(code="growth", included_quota=5000, price_id="price_growth"),
    })


@pytest.fixture
def clock():
    return FixedClock(NOW)


class FakeStripeGateway(StripeGateway):
    def __init__(self):
        super().__init__(api_key="sk_test_dummy")
        self.existing_customers = {}
        self.created_customers = []
        self.created_subscriptions = []
        self.subscription_status = "trialing"
        self.setup_intents = []
        self.setup_intent_secret = "seti_test_secret_abc"
        self.default_payment_methods = {}

    def find_customer_by_email(self, email):
        return self.existing_customers.get(email)

    def create_customer(self, email, metadata):
        customer_id = f"cus_test_{len(self.created_customers) + 1}"
        self.created_customers.append((email, metadata))
        return customer_id

    def create_subscription(self, customer_id, price_id, trial_days, metadata):
        self.created_subscriptions.append((customer_id, price_id, trial_days, metadata))
        start = 1740787200  # 2025-03-01T00:00:00Z
        return {
            "id": f"sub_test_{len(self.created_subscriptions)}",
            "status": self.subscription_status,
            "customer": customer_id,
            "items": {"data": [{"current_period_start": start, "current_period_end": start + 31 * 86400}]},
            "trial_start": start if trial_days else None,
            "trial_end": start + trial_days * 86400 if trial_days else None,
        }

    def create_setup_intent(self, customer_id, metadata):
        self.setup_intents.append((customer_id, metadata))
        return {
            "id": f"seti_test_{len(self.setup_intents)}",
            "client_secret": self.setup_intent_secret,
            "customer": customer_id,
        }

    def set_default_payment_method(self, customer_id, payment_method_id):
        self.default_payment_methods[customer_id] = payment_method_id


class RecordingProvisioner(EntitlementsProvisioner):
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def provision(self, organization, subscription):
        self.calls.append(subscription.stripe_subscription_id)
        if self.fail:
            raise RuntimeError("entitlement provider unavailable")
        return True


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def provisioner():
    return RecordingProvisioner()


# ============================================================
# Data builders
# ============================================================
_subscription_ids = itertools.count(1)


@pytest.fixture
def make_billing_org(session):
    """Create an organization plus one subscription; returns (org, subscription)."""

    def _make(external_org_id="org_test", plan_code="starter", status=SubscriptionStatus.ACTIVE.value,
              period_start=PERIOD_START, created_at=None, stripe_customer_id=None):
        org = upsert_organization(session, external_org_id, "Test Org")
        subscription = create_subscription(session, Subscription(
            organization_id=org.id,
            external_org_id=external_org_id,
            stripe_subscription_id=f"sub_local_{next(_subscription_ids)}",
            stripe_customer_id=stripe_customer_id,
            plan_code=plan_code,
            status=status,
            current_period_start=period_start,
            current_period_end=period_start + timedelta(days=31),
            created_at=created_at or NOW,
            updated_at=created_at or NOW,
        ))
        return org, subscription

    return _make


# ============================================================
# Webhooks
# ============================================================
def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_id: str, event_type: str, obj: dict, created: int = 1741000000) -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    })


# ============================================================
# API client
# ============================================================
def auth_headers(org_id: str = "org_test") -> dict:
    token = create_access_token({"sub": "user_test", "org_id": org_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(engine, plans, clock, gateway, provisioner):
    from main import app

    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_plan_catalog] = lambda: plans
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    app.dependency_overrides[get_entitlements_provisioner] = lambda: provisioner

    yield TestClient(app)

    app.dependency_overrides.clear()
