# ==================================================================================
# core/config.py: Meterflow Configuration (Stripe + Plans + Pydantic v2 Settings)
# ==================================================================================
from typing import Dict, Optional
import sys

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlanSettings(BaseModel):
    """One billable plan as configured for the environment."""

    stripe_price_id: str
    included: int = Field(..., ge=0, description="Included quota per billing period")
    trial_days: int = Field(default=0, ge=0)


def default_plans() -> Dict[str, PlanSettings]:
    return {
        "trial": PlanSettings(stripe_price_id="price_1SF55833pr8E7tWLycMY8XKB", included=30, trial_days=14),
        "starter": PlanSettings(stripe_price_id="price_1SF55w33pr8E7tWLQJNWOvxd", included=60),
        "growth": PlanSettings(stripe_price_id="price_1SF56S33pr8E7tWLslF4FKKW", included=300),
        "pro": PlanSettings(stripe_price_id="price_1SF56w33pr8E7tWLzL6eOFPW", included=1500),
    }


class Settings(BaseSettings):
    # ------------------------
    # DATABASE CONFIG
    # ------------------------
    DATABASE_URL: str = "sqlite:///./meterflow.db"

    # ------------------------
    # SECURITY CONFIG
    # ------------------------
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # ------------------------
    # STRIPE / PAYMENT CONFIG
    # ------------------------
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE: int = 300  # seconds

    # ------------------------
    # PLANS & USAGE
    # ------------------------
    # JSON in the environment, e.g. PLANS='{"starter": {"stripe_price_id": "price_x", "included": 1000}}'
    PLANS: Dict[str, PlanSettings] = Field(default_factory=default_plans)
    DEFAULT_METRIC: str = "api_call"

    # ------------------------
    # ENVIRONMENT SETTINGS
    # ------------------------
    ENVIRONMENT: str = "development"  # 'development' | 'production'
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ------------------------
# Global Settings Loader
# ------------------------
try:
    settings = Settings()
    print(f"✅ Environment loaded. 🌍 Environment: {settings.ENVIRONMENT}, Debug: {settings.DEBUG}")
except ValidationError as e:
    print("❌ Environment configuration error: missing or invalid settings!")
    print(e)
    sys.exit(1)
