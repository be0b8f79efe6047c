"""NexaConnect billing: Stripe subscriptions and lead unlocks for NDIS providers."""

from nexaconnect_billing.billing.tiers import Tier, tier_from_plan_label
from nexaconnect_billing.client import BillingClient, BillingClientError
from nexaconnect_billing.webhooks.signature import signature_header, verify_signature

__all__ = [
    "BillingClient",
    "BillingClientError",
    "Tier",
    "tier_from_plan_label",
    "signature_header",
    "verify_signature",
]
__version__ = "0.1.0"
