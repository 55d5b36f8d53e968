# ================================================================
# services/usage_recording_service.py: Idempotent usage recording
# ================================================================
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from sqlmodel import Session

from core.clock import Clock, system_clock, to_utc
from core.errors import (
    InternalServerError,
    InvalidPlanCodeError,
    InvalidQuantityError,
    NoActiveSubscriptionError,
    OrgNotFoundError,
)
from core.plans import PlanCatalog
from models.models import Subscription
from repositories.org_repository import find_organization_by_external_id
from repositories.subscription_repository import find_current_subscription
from repositories.usage_repository import (
    append_usage_record,
    ensure_usage_counter,
    find_usage_counter,
    find_usage_record_by_key,
    increment_usage_counter,
    read_counter_totals,
)
from services.period import period_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageResult:
    period_key: str
    used: int
    remaining: int

    def as_dict(self) -> Dict[str, Any]:
        return {"periodKey": self.period_key, "used": self.used, "remaining": self.remaining}


def _remaining(included: int, used: int) -> int:
    return max(0, included - used)


def validate_quantity(quantity: Any) -> int:
    # bool is an int subclass; True is not a usage value
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


class UsageRecordingService:
    """
    Records one usage event against the (org, period, metric) counter.

    The plan catalog and clock are handed in by the caller. The counter
    increment and the record append share one transaction, so either both
    are visible or neither is.
    """

    def __init__(self, session: Session, plans: PlanCatalog, clock: Clock = system_clock):
        self.session = session
        self.plans = plans
        self.clock = clock

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------
    def record_usage(
        self,
        org_external_id: str,
        metric: str,
        quantity: int,
        occurred_at: datetime,
        idempotency_key: str,
    ) -> UsageResult:
        quantity = validate_quantity(quantity)

        # 1. Idempotency: re-derive from the current counter, never replay
        existing = find_usage_record_by_key(self.session, org_external_id, idempotency_key)
        if existing is not None:
            logger.info(
                "🔁 Duplicate usage request org=%s key=%s, returning current counter state",
                org_external_id, idempotency_key,
            )
            return self._derive_from_counter(existing.usage_counter_id, org_external_id)

        # 2. Organization
        organization = find_organization_by_external_id(self.session, org_external_id)
        if organization is None:
            raise OrgNotFoundError(org_external_id)

        # 3. Current subscription
        subscription = find_current_subscription(self.session, organization.id)
        if subscription is None:
            raise NoActiveSubscriptionError(org_external_id)

        # 4. Period from the subscription, not from now()
        key = period_key(subscription.current_period_start)

        organization_id = organization.id
        subscription_id = subscription.id

        try:
            # 5. Counter, created lazily with used=0
            counter_id = self._resolve_counter(organization_id, org_external_id, subscription, key, metric)

            # 6. Atomic increment
            used, included = increment_usage_counter(self.session, counter_id, quantity)

            # 7. Append record
            appended = append_usage_record(
                self.session,
                organization_id=organization_id,
                external_org_id=org_external_id,
                subscription_id=subscription_id,
                usage_counter_id=counter_id,
                metric=metric,
                quantity=quantity,
                occurred_at=to_utc(occurred_at),
                idempotency_key=idempotency_key,
            )
        except Exception:
            self.session.rollback()
            raise

        if not appended:
            # A concurrent request with the same key committed first
            self.session.rollback()
            logger.info("🔁 Lost idempotency race org=%s key=%s, increment rolled back", org_external_id, idempotency_key)
            winner = find_usage_record_by_key(self.session, org_external_id, idempotency_key)
            if winner is None:
                raise InternalServerError(
                    "Usage record disappeared after conflict",
                    {"orgId": org_external_id, "request_id": idempotency_key},
                )
            return self._derive_from_counter(winner.usage_counter_id, org_external_id)

        self.session.commit()

        logger.info(
            "✅ Usage recorded org=%s metric=%s period=%s quantity=%s used=%s included=%s",
            org_external_id, metric, key, quantity, used, included,
        )
        return UsageResult(period_key=key, used=used, remaining=_remaining(included, used))

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------
    def _resolve_counter(
        self,
        organization_id: int,
        org_external_id: str,
        subscription: Subscription,
        key: str,
        metric: str,
    ) -> int:
        counter = find_usage_counter(self.session, org_external_id, key, metric)
        if counter is not None:
            return counter.id

        plan = self.plans.lookup_plan(subscription.plan_code)
        if plan is None:
            raise InvalidPlanCodeError(subscription.plan_code, {"subscriptionId": subscription.id})

        counter = ensure_usage_counter(
            self.session,
            organization_id=organization_id,
            external_org_id=org_external_id,
            subscription_id=subscription.id,
            period_key=key,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            metric=metric,
            included=plan.included_quota,
        )
        logger.info(
            "🆕 Usage counter ready org=%s period=%s metric=%s included=%s",
            org_external_id, key, metric, counter.included,
        )
        return counter.id

    def _derive_from_counter(self, counter_id: int, org_external_id: str) -> UsageResult:
        totals = read_counter_totals(self.session, counter_id)
        if totals is None:
            raise InternalServerError(
                "Usage counter missing for recorded usage",
                {"orgId": org_external_id, "counterId": counter_id},
                code="COUNTER_NOT_FOUND",
            )
        key, used, included = totals
        return UsageResult(period_key=key, used=used, remaining=_remaining(included, used))
