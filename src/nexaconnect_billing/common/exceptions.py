"""NexaConnect billing exception hierarchy."""


class NexaError(Exception):
    """Base exception for all billing errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "NEXA_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthenticationError(NexaError):
    """Raised when a bearer token is missing or cannot be resolved to a user."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED")


class ProviderAccessError(NexaError):
    """Raised when the authenticated user does not own the provider."""

    status_code = 403

    def __init__(self, message: str = "Not allowed to manage this provider"):
        super().__init__(message, code="FORBIDDEN")


class ProviderNotFoundError(NexaError):
    status_code = 404

    def __init__(self, message: str = "Provider not found"):
        super().__init__(message, code="PROVIDER_NOT_FOUND")


class LeadNotFoundError(NexaError):
    """Raised when a lead is absent or owned by a different provider."""

    status_code = 404

    def __init__(self, message: str = "Lead not found"):
        super().__init__(message, code="LEAD_NOT_FOUND")


class LeadAlreadyProcessedError(NexaError):
    """Raised when a lead is no longer available for unlocking."""

    status_code = 400

    def __init__(self, message: str = "Lead already processed"):
        super().__init__(message, code="LEAD_ALREADY_PROCESSED")


class CheckoutInProgressError(NexaError):
    """Raised when a lead's reserved checkout cannot be replaced yet."""

    status_code = 409

    def __init__(self, message: str = "Checkout already in progress for this lead, please retry shortly"):
        super().__init__(message, code="CHECKOUT_IN_PROGRESS")


class NoCustomerError(NexaError):
    """Raised when a portal session is requested before any checkout."""

    status_code = 400

    def __init__(self, message: str = "No Stripe customer found. Subscribe to a plan first."):
        super().__init__(message, code="NO_CUSTOMER")


class UnknownPriceError(NexaError):
    status_code = 400

    def __init__(self, message: str = "No Stripe price configured for this plan"):
        super().__init__(message, code="UNKNOWN_PRICE")


class CustomerBindingInProgressError(NexaError):
    """Raised when another request is still creating the Stripe customer."""

    status_code = 409

    def __init__(self, message: str = "Billing account setup in progress, please retry"):
        super().__init__(message, code="CUSTOMER_BINDING_IN_PROGRESS")


class PaymentProcessorError(NexaError):
    """Raised when a Stripe API call fails."""

    def __init__(self, message: str = "Payment processor error"):
        super().__init__(message, code="PAYMENT_PROCESSOR_ERROR")


class IdentityServiceError(NexaError):
    """Raised when the hosted auth service cannot be reached."""

    def __init__(self, message: str = "Identity service error"):
        super().__init__(message, code="IDENTITY_SERVICE_ERROR")
