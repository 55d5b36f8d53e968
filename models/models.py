# models/models.py
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint, Column, JSON, Text

from core.clock import utcnow


# ============================================================
# ENUMS
# ============================================================
class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


CURRENT_SUBSCRIPTION_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value)


# ============================================================
# ORGANIZATION (tenant)
# ============================================================
class Organization(SQLModel, table=True):
    __tablename__ = "organization"

    id: Optional[int] = Field(default=None, primary_key=True)

    # Identity provider reference (e.g. "org_2abc...")
    external_org_id: str = Field(max_length=255, unique=True, index=True, nullable=False)
    name: str = Field(max_length=255)

    # ✅ Filled at most once, on first billing contact
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255, unique=True, index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    subscriptions: List["Subscription"] = Relationship(back_populates="organization")


# ============================================================
# SUBSCRIPTION (mirror of the Stripe subscription)
# ============================================================
class Subscription(SQLModel, table=True):
    __tablename__ = "subscription"

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organization.id", nullable=False, index=True)
    external_org_id: str = Field(max_length=255, index=True)

    stripe_subscription_id: str = Field(max_length=255, unique=True, index=True, nullable=False)
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_price_id: Optional[str] = Field(default=None, max_length=255)
    plan_code: str = Field(max_length=50, index=True)

    status: str = Field(default=SubscriptionStatus.ACTIVE.value, max_length=20, index=True)
    current_period_start: datetime = Field(nullable=False)
    current_period_end: datetime = Field(nullable=False)
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    # Provider `created` time of the last event applied; older events are skipped
    last_event_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    organization: Optional["Organization"] = Relationship(back_populates="subscriptions")
    usage_counters: List["UsageCounter"] = Relationship(back_populates="subscription")

    @property
    def is_current(self) -> bool:
        return self.status in CURRENT_SUBSCRIPTION_STATUSES


# ============================================================
# USAGE COUNTER (one per org / period / metric)
# ============================================================
class UsageCounter(SQLModel, table=True):
    __tablename__ = "usage_counter"
    __table_args__ = (
        UniqueConstraint("external_org_id", "period_key", "metric", name="uq_usage_counter_org_period_metric"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organization.id", nullable=False, index=True)
    external_org_id: str = Field(max_length=255, index=True)
    subscription_id: int = Field(foreign_key="subscription.id", nullable=False, index=True)

    period_key: str = Field(max_length=7, index=True)  # YYYY-MM
    period_start: datetime = Field(nullable=False)
    period_end: datetime = Field(nullable=False)
    metric: str = Field(max_length=100)

    included: int = Field(default=0, ge=0)
    # Only ever changed through an atomic UPDATE ... SET used = used + n
    used: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    subscription: Optional["Subscription"] = Relationship(back_populates="usage_counters")
    records: List["UsageRecord"] = Relationship(back_populates="usage_counter")

    @property
    def remaining(self) -> int:
        return max(0, self.included - self.used)


# ============================================================
# USAGE RECORD (append-only)
# ============================================================
class UsageRecord(SQLModel, table=True):
    __tablename__ = "usage_record"
    __table_args__ = (
        UniqueConstraint("external_org_id", "idempotency_key", name="uq_usage_record_org_idempotency_key"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: int = Field(foreign_key="organization.id", nullable=False, index=True)
    external_org_id: str = Field(max_length=255, index=True)
    subscription_id: int = Field(foreign_key="subscription.id", nullable=False, index=True)
    usage_counter_id: int = Field(foreign_key="usage_counter.id", nullable=False, index=True)

    metric: str = Field(max_length=100)
    quantity: int = Field(gt=0)
    occurred_at: datetime = Field(nullable=False)

    idempotency_key: str = Field(max_length=255, index=True)
    record_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)

    usage_counter: Optional["UsageCounter"] = Relationship(back_populates="records")


# ============================================================
# WEBHOOK EVENT QUEUE
# ============================================================
class WebhookEvent(SQLModel, table=True):
    __tablename__ = "webhook_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    stripe_event_id: str = Field(unique=True, index=True, max_length=255)
    event_type: str = Field(max_length=100, index=True)

    # Verified raw JSON body, kept verbatim
    payload: str = Field(sa_column=Column(Text, nullable=False))
    processed: bool = Field(default=False, index=True)
    processing_error: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


# ============================================================
# EXPORTS
# ============================================================
__all__ = [
    "Organization",
    "Subscription",
    "UsageCounter",
    "UsageRecord",
    "WebhookEvent",
    "SubscriptionStatus",
    "CURRENT_SUBSCRIPTION_STATUSES",
]
