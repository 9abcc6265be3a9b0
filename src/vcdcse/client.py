"""VCD CSE SDK Client.

Main entry point for managing Kubernetes clusters on VMware Cloud Director.
"""

from __future__ import annotations

from typing import Any

from vcdcse._config import CseConfig
from vcdcse._http import HttpClient
from vcdcse.auth import AccessTokenAuth, ApiTokenAuth, AuthProvider
from vcdcse.resources.clusters import Clusters
from vcdcse.resources.entities import DefinedEntities
from vcdcse.resources.lookups import Lookups


class VcdClient:
    """Synchronous client for the VCD Container Service Extension.

    Supports two authentication methods:
    - API token: exchanged for an access token, refreshed before expiry
    - Access token: used as is

    Example:
        ```python
        from vcdcse import VcdClient

        client = VcdClient(
            base_url="https://vcd.example.com", org="tenant1", api_token="..."
        )
        for cluster in client.clusters.get_by_name("my-cluster"):
            print(cluster.id, cluster.state)
        ```

    Environment variables:
        VCD_URL: Base URL of VCD
        VCD_ORG: Organization of the API token
        VCD_API_TOKEN: API token
        VCD_ACCESS_TOKEN: Bearer access token
        VCD_API_VERSION: API version (default: 37.2)
        VCD_TIMEOUT: Request timeout in seconds (default: 60)
        VCD_MAX_RETRIES: Max retries (default: 3)
        VCD_POLL_INTERVAL: Seconds between cluster polls (default: 10)

    Auth priority (highest to lowest):
        1. Explicit `auth` parameter
        2. Explicit credential parameters (api_token and org, access_token)
        3. Environment variables and config file
    """

    def __init__(
        self,
        api_token: str | None = None,
        *,
        org: str | None = None,
        access_token: str | None = None,
        auth: AuthProvider | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        verify_ssl: bool | None = None,
        poll_interval: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_token: VCD API token.
            org: Organization the API token belongs to.
            access_token: Bearer access token, used instead of an API token.
            auth: Explicit AuthProvider instance to use.
            base_url: VCD base URL. Falls back to VCD_URL env var.
            api_version: VCD API version sent in the Accept header.
            timeout: Request timeout in seconds.
            max_retries: Maximum number of retries for failed requests.
            verify_ssl: Whether to verify SSL certificates.
            poll_interval: Seconds between two polls of a cluster.
        """
        config = CseConfig.load()

        self._base_url = base_url or config.base_url
        self._org = org or config.org
        self.poll_interval = poll_interval if poll_interval is not None else config.poll_interval

        self._auth = self._resolve_auth(
            api_token=api_token,
            org=self._org,
            access_token=access_token,
            auth=auth,
            config=config,
        )

        self._http = HttpClient(
            base_url=self._base_url,
            auth=self._auth,
            timeout=timeout if timeout is not None else config.timeout,
            max_retries=max_retries if max_retries is not None else config.max_retries,
            verify_ssl=verify_ssl if verify_ssl is not None else config.verify_ssl,
            api_version=api_version or config.api_version,
        )

        self.entities = DefinedEntities(self._http)
        self.lookups = Lookups(self._http)
        self.clusters = Clusters(
            self.entities,
            self.lookups,
            self._http.base_url,
            poll_interval=self.poll_interval,
        )

    def _resolve_auth(
        self,
        api_token: str | None = None,
        org: str | None = None,
        access_token: str | None = None,
        auth: AuthProvider | None = None,
        config: CseConfig | None = None,
    ) -> AuthProvider:
        """Resolve authentication provider from parameters, environment, and config.

        Raises:
            ValueError: If no authentication credentials are provided.
        """
        if auth is not None:
            return auth

        if api_token:
            if not org:
                raise ValueError("An API token needs the organization it belongs to (org).")
            return ApiTokenAuth(org=org, api_token=api_token)

        if access_token:
            return AccessTokenAuth(access_token=access_token)

        if config:
            if config.api_token and org:
                return ApiTokenAuth(org=org, api_token=config.api_token)
            if config.access_token:
                return AccessTokenAuth(access_token=config.access_token)

        raise ValueError(
            "No authentication credentials provided. "
            "Provide one of: api_token and org, access_token, or auth provider. "
            "Or set environment variables: VCD_API_TOKEN and VCD_ORG, or VCD_ACCESS_TOKEN."
        )

    @property
    def base_url(self) -> str:
        return self._http.base_url

    def close(self) -> None:
        """Close the client and release resources."""
        self._http.close()

    def __enter__(self) -> VcdClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
