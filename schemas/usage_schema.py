# usage_schema.py
from pydantic import BaseModel, Field, ConfigDict, StrictInt
from typing import Optional
from datetime import datetime


# ---------------------------
# Usage record
# ---------------------------
class UsageRecordRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)
    metric: str = Field(default="api_call", min_length=1, max_length=100)
    # positivity is checked by the service (INVALID_QUANTITY)
    value: StrictInt
    occurred_at: datetime = Field(..., alias="occurredAt")
    request_id: str = Field(..., min_length=1, max_length=255, description="Idempotency key")

    model_config = ConfigDict(populate_by_name=True)


class UsageRecordResponse(BaseModel):
    periodKey: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    used: int
    remaining: int


# ---------------------------
# Usage seed
# ---------------------------
class UsageSeedRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)
    metric: Optional[str] = Field(default=None, min_length=1, max_length=100)

    model_config = ConfigDict(populate_by_name=True)


class UsageSeedResponse(BaseModel):
    periodKey: str
    remaining: int


# ---------------------------
# Quota
# ---------------------------
class QuotaCheckRequest(BaseModel):
    metric: Optional[str] = Field(default=None, min_length=1, max_length=100)


class QuotaCheckResponse(BaseModel):
    allow: bool
    remaining: int


class EntitlementsResponse(BaseModel):
    planCode: str
    status: str
    periodKey: str
    included: int
    used: int
    remaining: int


class EntitlementsProvisionRequest(BaseModel):
    org_id: str = Field(..., alias="orgId", min_length=1)
    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class EntitlementsProvisionResponse(BaseModel):
    provisioned: bool
