# core/plans.py
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from core.config import PlanSettings, settings


@dataclass(frozen=True)
class PlanConfig:
    code: str
    included_quota: int
    price_id: str
    trial_days: int = 0


class PlanCatalog:
    """Read-only plan lookup, passed into services instead of read as a global."""

    def __init__(self, plans: Mapping[str, PlanConfig]):
        self._plans: Dict[str, PlanConfig] = dict(plans)

    @classmethod
    def from_settings(cls, plans: Mapping[str, PlanSettings]) -> "PlanCatalog":
        return cls({
            code: PlanConfig(
                code=code,
                included_quota=plan.included,
                price_id=plan.stripe_price_id,
                trial_days=plan.trial_days,
            )
            for code, plan in plans.items()
        })

    def lookup_plan(self, plan_code: str) -> Optional[PlanConfig]:
        return self._plans.get(plan_code)

    def codes(self) -> List[str]:
        return sorted(self._plans)


plan_catalog = PlanCatalog.from_settings(settings.PLANS)


def get_plan_catalog() -> PlanCatalog:
    """FastAPI dependency (overridden in tests)."""
    return plan_catalog
