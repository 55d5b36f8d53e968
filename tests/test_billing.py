from datetime import datetime, timezone

import pytest
from sqlmodel import select

from core.errors import NotFoundError, OrgNotFoundError, UpstreamError, ValidationError
from core.plans import PlanCatalog, PlanConfig
from models.models import Subscription, UsageCounter
from repositories.org_repository import fill_stripe_customer_id, find_organization_by_external_id, upsert_organization
from repositories.usage_repository import find_usage_counter
from services.entitlements_service import EntitlementsProvisioner, provision_best_effort, provision_subscription
from services.org_service import create_organization
from services.payment_service import create_setup_intent, set_default_payment_method
from services.stripe_service import create_subscription_for_organization, ensure_customer
from services.usage_recording_service import UsageRecordingService
from services.usage_service import check_quota, seed_usage_counter

from conftest import RecordingProvisioner


# ============================================================
# Organizations
# ============================================================
def test_create_organization_is_idempotent(session):
    first = create_organization(session, "org_new", "Acme")
    second = create_organization(session, "org_new", "Renamed")

    assert first["orgId"] == second["orgId"]
    assert second["name"] == "Acme"


def test_customer_reference_is_filled_once(session):
    org = upsert_organization(session, "org_new")

    fill_stripe_customer_id(session, org.id, "cus_first")
    fill_stripe_customer_id(session, org.id, "cus_second")

    session.expire_all()
    assert find_organization_by_external_id(session, "org_new").stripe_customer_id == "cus_first"


# ============================================================
# Stripe customer
# ============================================================
def test_ensure_customer_creates_then_reuses(session, gateway):
    upsert_organization(session, "org_new")

    first = ensure_customer(session, gateway, "org_new", "owner@acme.test")
    second = ensure_customer(session, gateway, "org_new", "owner@acme.test")

    assert first == second == {"stripeCustomerId": "cus_test_1"}
    assert len(gateway.created_customers) == 1
    assert gateway.created_customers[0] == ("owner@acme.test", {"orgId": "org_new"})


def test_ensure_customer_reuses_customer_found_by_email(session, gateway):
    upsert_organization(session, "org_new")
    gateway.existing_customers["owner@acme.test"] = "cus_existing"

    result = ensure_customer(session, gateway, "org_new", "owner@acme.test")

    assert result == {"stripeCustomerId": "cus_existing"}
    assert gateway.created_customers == []


def test_ensure_customer_unknown_org(session, gateway):
    with pytest.raises(OrgNotFoundError):
        ensure_customer(session, gateway, "org_missing", "owner@acme.test")


# ============================================================
# Stripe subscription
# ============================================================
@pytest.fixture
def customer_org(session):
    org = upsert_organization(session, "org_paid")
    return fill_stripe_customer_id(session, org.id, "cus_paid")


def test_create_subscription_persists_and_seeds_counter(session, plans, gateway, provisioner, clock, customer_org):
    result = create_subscription_for_organization(
        session, plans, gateway, provisioner, "org_paid", "trial", "api_call", clock=clock,
    )

    assert result["subscriptionId"] == "sub_test_1"
    assert result["status"] == "trialing"
    assert result["trialEndsAt"] == datetime(2025, 3, 15, tzinfo=timezone.utc)
    assert gateway.created_subscriptions == [("cus_paid", "price_trial", 14, {"orgId": "org_paid", "planCode": "trial"})]

    stored = session.exec(select(Subscription)).one()
    assert stored.plan_code == "trial"
    assert stored.current_period_start == datetime(2025, 3, 1, tzinfo=timezone.utc)
    assert stored.stripe_customer_id == "cus_paid"

    counter = find_usage_counter(session, "org_paid", "2025-03", "api_call")
    assert counter.included == 30
    assert counter.used == 0
    assert provisioner.calls == ["sub_test_1"]


def test_create_subscription_survives_entitlement_failure(session, plans, gateway, clock, customer_org):
    failing = RecordingProvisioner(fail=True)

    result = create_subscription_for_organization(
        session, plans, gateway, failing, "org_paid", "starter", "api_call", clock=clock,
    )

    assert result["subscriptionId"] == "sub_test_1"
    assert failing.calls == ["sub_test_1"]
    assert len(session.exec(select(Subscription)).all()) == 1


def test_create_subscription_rejects_unknown_plan(session, plans, gateway, provisioner, customer_org):
    with pytest.raises(ValidationError) as exc_info:
        create_subscription_for_organization(session, plans, gateway, provisioner, "org_paid", "platinum", "api_call")

    assert exc_info.value.code == "INVALID_PLAN_CODE"
    assert exc_info.value.status_code == 400
    assert gateway.created_subscriptions == []


def test_create_subscription_requires_customer(session, plans, gateway, provisioner):
    upsert_organization(session, "org_nocustomer")

    with pytest.raises(ValidationError) as exc_info:
        create_subscription_for_organization(
            session, plans, gateway, provisioner, "org_nocustomer", "starter", "api_call",
        )
    assert exc_info.value.code == "STRIPE_CUSTOMER_MISSING"


def test_incomplete_subscription_is_stored_canceled_and_not_seeded(session, plans, gateway, provisioner, clock,
                                                                   customer_org):
    gateway.subscription_status = "incomplete"

    result = create_subscription_for_organization(
        session, plans, gateway, provisioner, "org_paid", "starter", "api_call", clock=clock,
    )

    assert result["status"] == "canceled"
    assert session.exec(select(UsageCounter)).all() == []


# ============================================================
# Payment methods
# ============================================================
def test_setup_intent_returns_client_secret(session, gateway, customer_org):
    result = create_setup_intent(session, gateway, "org_paid")

    assert result == {"clientSecret": "seti_test_secret_abc"}
    assert gateway.setup_intents == [("cus_paid", {"orgId": "org_paid"})]


def test_setup_intent_requires_customer(session, gateway):
    upsert_organization(session, "org_nocustomer")

    with pytest.raises(ValidationError) as exc_info:
        create_setup_intent(session, gateway, "org_nocustomer")

    assert exc_info.value.code == "STRIPE_CUSTOMER_MISSING"
    assert gateway.setup_intents == []


def test_setup_intent_without_client_secret(session, gateway, customer_org):
    gateway.setup_intent_secret = None

    with pytest.raises(UpstreamError) as exc_info:
        create_setup_intent(session, gateway, "org_paid")

    assert exc_info.value.status_code == 502
    assert exc_info.value.details == {"setupIntentId": "seti_test_1"}


def test_default_payment_method_is_set_on_customer(session, gateway, customer_org):
    result = set_default_payment_method(session, gateway, "org_paid", "pm_card_visa")

    assert result == {"ok": True}
    assert gateway.default_payment_methods == {"cus_paid": "pm_card_visa"}


def test_default_payment_method_unknown_org(session, gateway):
    with pytest.raises(OrgNotFoundError):
        set_default_payment_method(session, gateway, "org_missing", "pm_card_visa")

    assert gateway.default_payment_methods == {}


# ============================================================
# Entitlements provisioning
# ============================================================
def test_default_provisioner_reports_nothing_provisioned(session, customer_org, make_billing_org):
    _, subscription = make_billing_org(external_org_id="org_paid", stripe_customer_id="cus_paid")

    assert provision_best_effort(EntitlementsProvisioner(), customer_org, subscription) is False


def test_provisioning_skipped_without_customer(session, provisioner, make_billing_org):
    org, subscription = make_billing_org()

    assert provision_best_effort(provisioner, org, subscription) is False
    assert provisioner.calls == []


def test_provision_subscription(session, provisioner, customer_org, make_billing_org):
    _, subscription = make_billing_org(external_org_id="org_paid", stripe_customer_id="cus_paid")

    result = provision_subscription(session, provisioner, "org_paid", subscription.stripe_subscription_id)

    assert result == {"provisioned": True}
    assert provisioner.calls == [subscription.stripe_subscription_id]


def test_provision_subscription_of_another_org(session, provisioner, customer_org, make_billing_org):
    _, foreign = make_billing_org(external_org_id="org_other")

    assert provision_subscription(session, provisioner, "org_paid", foreign.stripe_subscription_id) == {
        "provisioned": False
    }
    assert provision_subscription(session, provisioner, "org_paid", "sub_missing") == {"provisioned": False}
    assert provision_subscription(session, provisioner, "org_missing", "sub_missing") == {"provisioned": False}
    assert provisioner.calls == []


# ============================================================
# Seeding and quota
# ============================================================
def test_reseed_updates_included_but_keeps_used(session, plans, clock, make_billing_org):
    make_billing_org()
    seed_usage_counter(session, plans, "org_test", "api_call")
    UsageRecordingService(session, plans, clock).record_usage("org_test", "api_call", 40, clock.now(), "k1")

    upgraded = PlanCatalog({"starter": PlanConfig(code="starter", included_quota=2000, price_id="price_starter")})
    result = seed_usage_counter(session, upgraded, "org_test", "api_call")

    assert result == {"periodKey": "2025-03", "remaining": 1960}
    session.expire_all()
    counter = find_usage_counter(session, "org_test", "2025-03", "api_call")
    assert (counter.included, counter.used) == (2000, 40)


def test_quota_check(session, plans, clock, make_billing_org):
    make_billing_org(plan_code="trial", status="trialing")
    seed_usage_counter(session, plans, "org_test", "api_call")

    assert check_quota(session, "org_test", "api_call") == {"allow": True, "remaining": 30}

    UsageRecordingService(session, plans, clock).record_usage("org_test", "api_call", 31, clock.now(), "k1")
    session.expire_all()
    assert check_quota(session, "org_test", "api_call") == {"allow": False, "remaining": 0}


def test_quota_check_without_counter(session, make_billing_org):
    make_billing_org()

    with pytest.raises(NotFoundError) as exc_info:
        check_quota(session, "org_test", "api_call")
    assert exc_info.value.code == "COUNTER_NOT_FOUND"
    assert exc_info.value.status_code == 404


def test_demo_seed_script_is_repeatable(session, plans):
    from scripts.seed import seed_demo_data

    first = seed_demo_data(session, plans, "org_demo", "trial")
    second = seed_demo_data(session, plans, "org_demo", "trial")

    assert first.id == second.id
    counter = find_usage_counter(session, "org_demo", first.current_period_start.strftime("%Y-%m"), "api_call")
    assert (counter.included, counter.used) == (30, 0)
