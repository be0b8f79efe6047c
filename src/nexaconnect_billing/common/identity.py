"""HTTP client resolving bearer tokens against the hosted auth service."""

import logging
from typing import Optional

import httpx

from nexaconnect_billing.common.exceptions import IdentityServiceError

logger = logging.getLogger(__name__)


class IdentityClient:
    """Calls the auth service's ``/auth/v1/user`` endpoint."""

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout

    async def get_user(self, token: str) -> Optional[dict]:
        """Return the user record for an access token, or None if it is rejected.

        Raises IdentityServiceError when the service is unreachable or
        answers with a server error.
        """
        if not self.base_url:
            raise IdentityServiceError("Identity service not configured")

        url = f"{self.base_url}/auth/v1/user"
        headers = {
            "Authorization": f"Bearer {token}",
            "apikey": self.service_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Identity service request failed: %s", e)
            raise IdentityServiceError(str(e)) from e

        if resp.status_code >= 500:
            raise IdentityServiceError(f"Identity service returned {resp.status_code}")
        if resp.status_code != 200:
            return None

        data = resp.json()
        if not data.get("id"):
            return None
        return data
