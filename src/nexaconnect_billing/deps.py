"""Dependency injection singletons for NexaConnect billing."""

from nexaconnect_billing.billing.customers import CustomerBinder
from nexaconnect_billing.billing.processor import PaymentProcessor, StripeProcessor
from nexaconnect_billing.billing.service import BillingService
from nexaconnect_billing.common.config import get_settings
from nexaconnect_billing.common.database import DatabaseManager
from nexaconnect_billing.common.identity import IdentityClient
from nexaconnect_billing.leads.service import LeadUnlockService
from nexaconnect_billing.webhooks.processor import WebhookEventProcessor

_db: DatabaseManager | None = None
_processor: PaymentProcessor | None = None
_identity: IdentityClient | None = None
_binder: CustomerBinder | None = None
_billing: BillingService | None = None
_leads: LeadUnlockService | None = None
_webhooks: WebhookEventProcessor | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_payment_processor() -> PaymentProcessor:
    global _processor
    if _processor is None:
        _processor = StripeProcessor(get_settings())
    return _processor


def get_identity_client() -> IdentityClient:
    global _identity
    if _identity is None:
        settings = get_settings()
        _identity = IdentityClient(
            base_url=settings.auth_url,
            service_key=settings.auth_service_key,
            timeout=settings.auth_timeout,
        )
    return _identity


def get_customer_binder() -> CustomerBinder:
    global _binder
    if _binder is None:
        _binder = CustomerBinder(get_settings(), get_db(), get_payment_processor())
    return _binder


def get_billing_service() -> BillingService:
    global _billing
    if _billing is None:
        _billing = BillingService(
            get_settings(), get_db(), get_payment_processor(), get_customer_binder(),
        )
    return _billing


def get_lead_unlock_service() -> LeadUnlockService:
    global _leads
    if _leads is None:
        _leads = LeadUnlockService(
            get_settings(), get_db(), get_payment_processor(), get_customer_binder(),
        )
    return _leads


def get_webhook_processor() -> WebhookEventProcessor:
    global _webhooks
    if _webhooks is None:
        _webhooks = WebhookEventProcessor(get_settings())
    return _webhooks


def set_payment_processor(processor: PaymentProcessor) -> None:
    """Swap the payment processor (tests, local runs); drops dependent services."""
    global _processor, _binder, _billing, _leads
    _processor = processor
    _binder = None
    _billing = None
    _leads = None


def set_identity_client(client: IdentityClient) -> None:
    global _identity
    _identity = client


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _processor, _identity, _binder, _billing, _leads, _webhooks
    _db = None
    _processor = None
    _identity = None
    _binder = None
    _billing = None
    _leads = None
    _webhooks = None
