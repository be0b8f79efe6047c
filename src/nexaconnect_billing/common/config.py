"""NexaConnect billing configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_REQUIRED_IN_PRODUCTION = (
    "stripe_secret_key",
    "stripe_webhook_secret",
    "auth_url",
    "auth_service_key",
)


class BillingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NEXA_")

    environment: str = "development"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/nexaconnect.db"

    # API
    api_title: str = "NexaConnect Billing"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: str = "2023-10-16"
    # JSON dict mapping "<tier>_<cycle>" to a Stripe Price ID,
    # e.g. '{"professional_monthly": "price_..."}'
    stripe_price_map: str = "{}"
    webhook_tolerance: int = 0  # seconds, 0 disables the replay window

    # Hosted auth service (bearer token -> user)
    auth_url: str = ""
    auth_service_key: str = ""
    auth_timeout: float = 10.0

    # Lead unlocks
    lead_unlock_default_price: int = 2500  # cents
    lead_unlock_currency: str = "aud"
    lead_reservation_ttl: int = Field(default=1800, ge=1800, le=86400)

    # Customer binding
    customer_claim_ttl: int = 60  # seconds
    customer_bind_attempts: int = 5
    customer_bind_poll_interval: float = 0.5

    @property
    def price_map(self) -> dict[str, str]:
        """Return the configured price map as {"<tier>_<cycle>": price_id}."""
        try:
            raw = json.loads(self.stripe_price_map or "{}")
        except (json.JSONDecodeError, TypeError) as exc:
            raise ValueError(
                f"NEXA_STRIPE_PRICE_MAP must be valid JSON, got: {self.stripe_price_map!r}"
            ) from exc
        return {str(k).lower(): v for k, v in raw.items()}

    def validate_for_production(self) -> None:
        """Raise if required secrets are missing in non-development environments."""
        missing = [field for field in _REQUIRED_IN_PRODUCTION if not getattr(self, field)]

        if self.environment != "development" and missing:
            env_vars = ", ".join(f"NEXA_{f.upper()}" for f in missing)
            raise RuntimeError(
                f"Missing configuration in '{self.environment}' environment. "
                f"Set these environment variables: {env_vars}."
            )

        if missing:
            warnings.warn(
                "Billing is not fully configured — set NEXA_STRIPE_SECRET_KEY, "
                "NEXA_STRIPE_WEBHOOK_SECRET, NEXA_AUTH_URL, NEXA_AUTH_SERVICE_KEY "
                "for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> BillingSettings:
    settings = BillingSettings()
    settings.validate_for_production()
    return settings
