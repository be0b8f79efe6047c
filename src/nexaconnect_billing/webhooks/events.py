"""Typed Stripe webhook events.

Each handled event type gets its own model; anything else parses to
:class:`UnknownEvent`, which the processor skips.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StripeObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or {}

    def meta(self, key: str) -> Optional[str]:
        """Metadata value as a string, or None if missing or empty."""
        value = self.metadata.get(key)
        if value is None or value == "":
            return None
        return str(value)


def _ref_id(ref: Union[str, dict, None]) -> Optional[str]:
    """Id of a Stripe reference that may or may not be expanded."""
    if isinstance(ref, dict):
        return ref.get("id")
    return ref or None


class CheckoutSessionObject(StripeObject):
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    customer: Union[str, dict, None] = None
    subscription: Union[str, dict, None] = None

    @property
    def subscription_id(self) -> Optional[str]:
        return _ref_id(self.subscription)


class SubscriptionObject(StripeObject):
    status: Optional[str] = None
    customer: Union[str, dict, None] = None


class InvoiceObject(StripeObject):
    customer: Union[str, dict, None] = None
    subscription: Union[str, dict, None] = None
    amount_due: Optional[int] = None
    attempt_count: Optional[int] = None

    @property
    def subscription_id(self) -> Optional[str]:
        return _ref_id(self.subscription)


class _CheckoutData(BaseModel):
    object: CheckoutSessionObject


class _SubscriptionData(BaseModel):
    object: SubscriptionObject


class _InvoiceData(BaseModel):
    object: InvoiceObject


class StripeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    type: str = ""
    created: Optional[int] = None
    livemode: bool = False

    @property
    def provider_id(self) -> Optional[str]:
        return None


class _ObjectEvent(StripeEvent):
    @property
    def object(self):
        return self.data.object

    @property
    def provider_id(self) -> Optional[str]:
        return self.data.object.meta("providerId")


class CheckoutSessionCompleted(_ObjectEvent):
    data: _CheckoutData


class CheckoutSessionExpired(_ObjectEvent):
    data: _CheckoutData


class SubscriptionUpdated(_ObjectEvent):
    data: _SubscriptionData


class SubscriptionDeleted(_ObjectEvent):
    data: _SubscriptionData


class InvoicePaymentFailed(_ObjectEvent):
    data: _InvoiceData


class UnknownEvent(StripeEvent):
    data: dict[str, Any] = Field(default_factory=dict)


EVENT_TYPES: dict[str, type[StripeEvent]] = {
    "checkout.session.completed": CheckoutSessionCompleted,
    "checkout.session.expired": CheckoutSessionExpired,
    "customer.subscription.updated": SubscriptionUpdated,
    "customer.subscription.deleted": SubscriptionDeleted,
    "invoice.payment_failed": InvoicePaymentFailed,
}


def parse_event(payload: dict[str, Any]) -> StripeEvent:
    """Parse a decoded event envelope into its typed model.

    Raises pydantic.ValidationError when a handled event type is malformed.
    """
    event_cls = EVENT_TYPES.get(payload.get("type", ""), UnknownEvent)
    return event_cls.model_validate(payload)
