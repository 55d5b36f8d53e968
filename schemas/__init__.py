from .billing_schema import (
    OrganizationCreateRequest, OrganizationCreateResponse,
    EnsureCustomerRequest, EnsureCustomerResponse,
    CreateSubscriptionRequest, CreateSubscriptionResponse,
    SetupIntentCreateRequest, SetupIntentCreateResponse,
    DefaultPaymentMethodSetRequest, DefaultPaymentMethodSetResponse,
)
from .usage_schema import (
    UsageRecordRequest, UsageRecordResponse,
    UsageSeedRequest, UsageSeedResponse,
    QuotaCheckRequest, QuotaCheckResponse,
    EntitlementsResponse,
    EntitlementsProvisionRequest, EntitlementsProvisionResponse,
)
from .webhook_schema import WebhookReceiveResponse, ProcessWebhookRequest, ProcessWebhookResponse

__all__ = [
    # Billing
    "OrganizationCreateRequest", "OrganizationCreateResponse",
    "EnsureCustomerRequest", "EnsureCustomerResponse",
    "CreateSubscriptionRequest", "CreateSubscriptionResponse",
    "SetupIntentCreateRequest", "SetupIntentCreateResponse",
    "DefaultPaymentMethodSetRequest", "DefaultPaymentMethodSetResponse",

    # Usage
    "UsageRecordRequest", "UsageRecordResponse",
    "UsageSeedRequest", "UsageSeedResponse",
    "QuotaCheckRequest", "QuotaCheckResponse",
    "EntitlementsResponse",
    "EntitlementsProvisionRequest", "EntitlementsProvisionResponse",

    # Webhooks
    "WebhookReceiveResponse", "ProcessWebhookRequest", "ProcessWebhookResponse",
]
