from sqlmodel import select

from models.models import WebhookEvent
from repositories.org_repository import fill_stripe_customer_id, upsert_organization
from repositories.webhook_repository import find_webhook_event

from conftest import auth_headers, make_event, sign_payload


def record_body(request_id="req-1", value=1, org_id="org_test", metric="api_call"):
    return {
        "orgId": org_id,
        "metric": metric,
        "value": value,
        "occurredAt": "2025-03-15T11:59:00Z",
        "request_id": request_id,
    }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ============================================================
# usage.record
# ============================================================
def test_record_usage_envelope(client, make_billing_org):
    make_billing_org()

    response = client.post(
        "/api/usage/record",
        json=record_body(),
        headers={**auth_headers(), "x-correlation-id": "corr-123"},
    )

    assert response.status_code == 200
    assert response.headers["x-correlation-id"] == "corr-123"
    assert response.json() == {
        "data": {"periodKey": "2025-03", "used": 1, "remaining": 999},
        "correlationId": "corr-123",
    }


def test_record_usage_duplicate_request_id(client, make_billing_org):
    make_billing_org()

    client.post("/api/usage/record", json=record_body("req-1", 3), headers=auth_headers())
    response = client.post("/api/usage/record", json=record_body("req-1", 3), headers=auth_headers())

    assert response.status_code == 200
    assert response.json()["data"] == {"periodKey": "2025-03", "used": 3, "remaining": 997}


def test_record_usage_requires_token(client):
    response = client.post("/api/usage/record", json=record_body())

    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "UNAUTHORIZED"
    assert body["correlationId"]


def test_record_usage_rejects_foreign_org(client, make_billing_org):
    make_billing_org()

    response = client.post("/api/usage/record", json=record_body(org_id="org_other"), headers=auth_headers())

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_record_usage_non_positive_value(client, make_billing_org):
    make_billing_org()

    response = client.post("/api/usage/record", json=record_body(value=0), headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_QUANTITY"


def test_record_usage_malformed_body(client):
    body = record_body()
    body["value"] = "lots"
    del body["request_id"]

    response = client.post("/api/usage/record", json=body, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_record_usage_without_subscription(client, session):
    upsert_organization(session, "org_test")

    response = client.post("/api/usage/record", json=record_body(), headers=auth_headers())

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NO_ACTIVE_SUBSCRIPTION"


# ============================================================
# webhooks.receive + jobs.process
# ============================================================
def post_webhook(client, payload, signature):
    headers = {"content-type": "application/json"}
    if signature:
        headers["stripe-signature"] = signature
    return client.post("/api/webhooks/stripe.receive", content=payload.encode(), headers=headers)


def test_webhook_receive_is_accepted_once(client, session):
    payload = make_event("evt_api_1", "invoice.paid", {"id": "in_1"})
    signature = sign_payload(payload)

    first = post_webhook(client, payload, signature)
    second = post_webhook(client, payload, signature)

    assert first.status_code == second.status_code == 202
    assert first.json()["data"] == {"eventId": "evt_api_1", "queued": True}
    assert len(session.exec(select(WebhookEvent)).all()) == 1


def test_webhook_receive_bad_signature(client, session):
    payload = make_event("evt_api_bad", "invoice.paid", {"id": "in_1"})

    response = post_webhook(client, payload, sign_payload(payload, secret="whsec_wrong"))

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_WEBHOOK_SIGNATURE"
    assert session.exec(select(WebhookEvent)).all() == []


def test_webhook_receive_missing_signature(client):
    payload = make_event("evt_api_nosig", "invoice.paid", {"id": "in_1"})

    response = post_webhook(client, payload, None)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "MISSING_SIGNATURE"


def test_process_job_converges_subscription(client, session, make_billing_org):
    _, subscription = make_billing_org()
    payload = make_event("evt_api_upd", "customer.subscription.updated", {
        "id": subscription.stripe_subscription_id,
        "status": "past_due",
        "current_period_start": 1740787200,
        "current_period_end": 1743465600,
    })
    post_webhook(client, payload, sign_payload(payload))

    response = client.post("/api/jobs/stripe.process", json={"eventId": "evt_api_upd"})

    assert response.status_code == 200
    assert response.json()["data"] == {"converged": True}
    session.expire_all()
    assert find_webhook_event(session, "evt_api_upd").processed is True


def test_process_job_unknown_event(client):
    response = client.post("/api/jobs/stripe.process", json={"eventId": "evt_nope"})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "WEBHOOK_EVENT_NOT_FOUND"


# ============================================================
# Organizations, Stripe, seed, quota
# ============================================================
def test_signup_flow(client, gateway, provisioner):
    headers = auth_headers("org_flow")

    org = client.post("/api/orgs/create", json={"name": "Flow Inc"}, headers=headers)
    assert org.status_code == 200
    assert org.json()["data"]["externalOrgId"] == "org_flow"

    customer = client.post(
        "/api/stripe/customer.ensure", json={"orgId": "org_flow", "email": "owner@flowinc.com"}, headers=headers,
    )
    assert customer.json()["data"] == {"stripeCustomerId": "cus_test_1"}

    subscription = client.post(
        "/api/stripe/subscription.create", json={"orgId": "org_flow", "planCode": "trial"}, headers=headers,
    )
    assert subscription.status_code == 200
    data = subscription.json()["data"]
    assert data["status"] == "trialing"
    assert data["trialEndsAt"].startswith("2025-03-15")

    quota = client.post("/api/quota/check", json={}, headers=headers)
    assert quota.json()["data"] == {"allow": True, "remaining": 30}

    entitlements = client.get("/api/me/entitlements", headers=headers)
    assert entitlements.json()["data"]["planCode"] == "trial"
    assert entitlements.json()["data"]["included"] == 30


def test_subscription_create_invalid_plan(client, session):
    org = upsert_organization(session, "org_test")
    fill_stripe_customer_id(session, org.id, "cus_1")

    response = client.post(
        "/api/stripe/subscription.create", json={"orgId": "org_test", "planCode": "platinum"}, headers=auth_headers(),
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_PLAN_CODE"


def test_seed_endpoint_and_quota_without_counter(client, make_billing_org):
    make_billing_org()

    missing = client.post("/api/quota/check", json={"metric": "api_call"}, headers=auth_headers())
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "COUNTER_NOT_FOUND"

    seeded = client.post("/api/usage/seed", json={"orgId": "org_test"}, headers=auth_headers())
    assert seeded.status_code == 200
    assert seeded.json()["data"] == {"periodKey": "2025-03", "remaining": 1000}


# ============================================================
# Payments and entitlements provisioning
# ============================================================
def test_payment_method_setup(client, session, gateway):
    org = upsert_organization(session, "org_test")
    fill_stripe_customer_id(session, org.id, "cus_1")

    intent = client.post("/api/payments/setup-intent.create", json={"orgId": "org_test"}, headers=auth_headers())
    assert intent.status_code == 200
    assert intent.json()["data"] == {"clientSecret": "seti_test_secret_abc"}

    default = client.post(
        "/api/payments/default-method.set",
        json={"orgId": "org_test", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(),
    )
    assert default.status_code == 200
    assert default.json()["data"] == {"ok": True}
    assert gateway.default_payment_methods == {"cus_1": "pm_card_visa"}


def test_setup_intent_without_customer(client, session):
    upsert_organization(session, "org_test")

    response = client.post("/api/payments/setup-intent.create", json={"orgId": "org_test"}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "STRIPE_CUSTOMER_MISSING"


def test_default_method_requires_payment_method_id(client):
    response = client.post("/api/payments/default-method.set", json={"orgId": "org_test"}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_entitlements_provision_always_answers_200(client, provisioner, make_billing_org):
    _, subscription = make_billing_org()

    response = client.post(
        "/api/entitlements/provision",
        json={"orgId": "org_test", "subscriptionId": subscription.stripe_subscription_id},
        headers=auth_headers(),
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"provisioned": False}
    assert provisioner.calls == []


def test_entitlements_provision_rejects_foreign_org(client):
    response = client.post(
        "/api/entitlements/provision",
        json={"orgId": "org_other", "subscriptionId": "sub_1"},
        headers=auth_headers(),
    )

    assert response.status_code == 403
