# billing_schema.py
from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional
from datetime import datetime


# ---------------------------
# Organization
# ---------------------------
class OrganizationCreateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)


class OrganizationCreateResponse(BaseModel):
    orgId: int
    externalOrgId: str
    name: str


# ---------------------------
# Stripe customer
# ---------------------------
class EnsureCustomerRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)
    email: EmailStr

    model_config = ConfigDict(populate_by_name=True)


class EnsureCustomerResponse(BaseModel):
    stripeCustomerId: str


# ---------------------------
# Stripe subscription
# ---------------------------
class CreateSubscriptionRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)
    plan_code: str = Field(..., alias="planCode", min_length=1, max_length=50)

    model_config = ConfigDict(populate_by_name=True)


class CreateSubscriptionResponse(BaseModel):
    subscriptionId: str
    status: str
    trialEndsAt: Optional[datetime] = None


# ---------------------------
# Payment methods
# ---------------------------
class SetupIntentCreateRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class SetupIntentCreateResponse(BaseModel):
    clientSecret: str


class DefaultPaymentMethodSetRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)
    payment_method_id: str = Field(..., alias="paymentMethodId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class DefaultPaymentMethodSetResponse(BaseModel):
    ok: bool
