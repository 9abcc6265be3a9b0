"""Authentication providers for VCD CSE SDK.

Supports two authentication methods:
- API token: a VCD API token (refresh token) exchanged for short-lived
  bearer access tokens
- Access token: an already issued bearer access token
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from vcdcse.exceptions import AuthenticationError

SYSTEM_ORG = "system"


class AuthProvider(ABC):
    """Base authentication provider interface.

    All authentication methods must implement this interface.
    """

    @abstractmethod
    def get_headers(self) -> dict[str, str]:
        """Return authentication headers for requests.

        Returns:
            Dictionary of headers to include in requests.
        """
        ...

    @abstractmethod
    def needs_refresh(self) -> bool:
        """Check if credentials need refreshing.

        Returns:
            True if credentials should be refreshed before next request.
        """
        ...

    @abstractmethod
    def refresh(self, client: Any) -> None:
        """Refresh credentials if needed.

        Args:
            client: HTTP client to use for refresh requests.
        """
        ...

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        """Check if currently authenticated.

        Returns:
            True if valid credentials are available.
        """
        ...


@dataclass
class ApiTokenAuth(AuthProvider):
    """VCD API token authentication.

    Exchanges the API token for a bearer access token on first use and again
    shortly before the access token expires.

    Example:
        ```python
        auth = ApiTokenAuth(org="tenant1", api_token="...")
        client = VcdClient(auth=auth, base_url="https://vcd.example.com")
        ```

    Attributes:
        org: Organization the token belongs to ("System" for providers).
        api_token: API token generated in the VCD UI.
    """

    org: str
    api_token: str = field(repr=False)  # Never log tokens
    _access_token: str | None = field(default=None, repr=False)
    _expires_at: float = field(default=0.0, repr=False)
    _refresh_buffer: int = field(default=60, repr=False)  # Refresh 60s before expiry

    @property
    def token_path(self) -> str:
        """OAuth endpoint that exchanges the API token."""
        if self.org.lower() == SYSTEM_ORG:
            return "/oauth/provider/token"
        return f"/oauth/tenant/{self.org}/token"

    def get_headers(self) -> dict[str, str]:
        """Return bearer token header.

        Returns:
            Dict with Authorization header if authenticated, empty dict otherwise.
        """
        if self._access_token:
            return {"Authorization": f"Bearer {self._access_token}"}
        return {}

    def needs_refresh(self) -> bool:
        """Check if the access token needs refreshing.

        Returns:
            True if not authenticated or token is close to expiry.
        """
        if not self._access_token:
            return True
        return time.time() >= (self._expires_at - self._refresh_buffer)

    @property
    def is_authenticated(self) -> bool:
        """Check if we have a valid, non-expired access token."""
        return self._access_token is not None and time.time() < self._expires_at

    def refresh(self, client: Any) -> None:
        """Exchange the API token for a new access token.

        Args:
            client: httpx client pointing to the VCD base URL.

        Raises:
            AuthenticationError: If VCD rejects the API token.
        """
        response = client.post(
            self.token_path,
            data={"grant_type": "refresh_token", "refresh_token": self.api_token},
            headers={"Accept": "application/json"},
        )
        if response.status_code in (400, 401, 403):
            raise AuthenticationError(
                f"could not exchange the API token for org '{self.org}': "
                f"HTTP {response.status_code}",
                response=response,
            )
        response.raise_for_status()
        data = response.json()

        self._access_token = data.get("access_token")
        if not self._access_token:
            raise AuthenticationError(
                f"the token endpoint for org '{self.org}' did not return an access token",
                response=response,
            )
        expires_in = data.get("expires_in", 3600)
        self._expires_at = time.time() + expires_in


@dataclass
class AccessTokenAuth(AuthProvider):
    """Static bearer token authentication.

    Example:
        ```python
        auth = AccessTokenAuth(access_token="eyJhbGciOi...")
        client = VcdClient(auth=auth)
        ```

    Attributes:
        access_token: Bearer token issued by VCD.
    """

    access_token: str = field(repr=False)  # Never log tokens

    def get_headers(self) -> dict[str, str]:
        """Return bearer token header."""
        return {"Authorization": f"Bearer {self.access_token}"}

    def needs_refresh(self) -> bool:
        """Static tokens cannot be refreshed.

        Returns:
            Always False.
        """
        return False

    def refresh(self, client: Any) -> None:
        """No refresh possible for static tokens."""
        pass

    @property
    def is_authenticated(self) -> bool:
        """Check if the token is present."""
        return bool(self.access_token)
