"""
BillingClient SDK — sync client for the NexaConnect billing service.

Used by the web app's server side and by scripts to start checkouts,
open the billing portal and unlock leads on behalf of a signed-in user.
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx


class BillingClientError(Exception):
    """Raised when the billing service rejects a request."""

    def __init__(self, message: str, status_code: int = 0, code: str = ""):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


@dataclass
class ClientBillingStatus:
    """Billing status returned by the SDK."""

    provider_id: str
    tier: str
    verified: bool
    has_customer: bool = False
    has_subscription: bool = False


class BillingClient:
    """
    Synchronous HTTP client for the billing service.

    ``return_url`` is where Stripe sends the browser back to; the service
    appends ``?checkout=...`` / ``?lead_checkout=...`` markers to it.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8080",
        access_token: Optional[str] = None,
        timeout: float = 15.0,
    ):
        self.server_url = server_url.rstrip("/")
        self.access_token = access_token
        self._http = httpx.Client(base_url=self.server_url, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "BillingClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        if not self.access_token:
            raise BillingClientError("Not authenticated")
        return {"Authorization": f"Bearer {self.access_token}"}

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise BillingClientError(f"Billing service unreachable: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            raise BillingClientError(
                data.get("error") or f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                code=data.get("code", ""),
            )
        return data

    def _redirect_url(self, path: str, body: dict[str, Any], what: str) -> str:
        data = self._request("POST", path, json=body)
        url = data.get("url")
        if not url:
            raise BillingClientError(f"No {what} URL returned")
        return url

    def create_checkout(
        self,
        provider_id: str,
        plan_name: str,
        return_url: str,
        price_id: Optional[str] = None,
        billing_cycle: str = "monthly",
    ) -> str:
        """Start a subscription checkout; returns the Stripe Checkout URL."""
        body = {
            "providerId": provider_id,
            "planName": plan_name,
            "billingCycle": billing_cycle,
            "returnUrl": return_url,
        }
        if price_id:
            body["priceId"] = price_id
        return self._redirect_url("/create-checkout", body, "checkout")

    def open_portal(self, provider_id: str, return_url: str) -> str:
        """Open the Stripe billing portal; returns its URL."""
        return self._redirect_url(
            "/create-portal",
            {"providerId": provider_id, "returnUrl": return_url},
            "portal",
        )

    def unlock_lead(self, provider_id: str, lead_id: str, return_url: str) -> str:
        """Start a one-time checkout to unlock a lead; returns its URL."""
        return self._redirect_url(
            "/unlock-lead",
            {"providerId": provider_id, "leadId": lead_id, "returnUrl": return_url},
            "checkout",
        )

    def billing_status(self, provider_id: str) -> ClientBillingStatus:
        data = self._request("GET", "/billing-status", params={"providerId": provider_id})
        return ClientBillingStatus(
            provider_id=data["providerId"],
            tier=data["tier"],
            verified=data["verified"],
            has_customer=data.get("hasCustomer", False),
            has_subscription=data.get("hasSubscription", False),
        )
