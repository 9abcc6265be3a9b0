"""HTTP client infrastructure for VCD CSE SDK.

Handles:
- Authentication via AuthProvider
- Retries with exponential backoff
- Rate limit handling
- Error mapping
- ETag capture and conditional updates
- Response logging that can be muted while polling
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import httpx

from vcdcse._config import DEFAULT_API_VERSION
from vcdcse._version import __version__
from vcdcse.exceptions import (
    AuthenticationError,
    ConflictError,
    ConnectionError,
    CseError,
    NotFoundError,
    RateLimitError,
    TimeoutError,
    ValidationError,
)

if TYPE_CHECKING:
    from vcdcse.auth import AuthProvider

logger = logging.getLogger(__name__)


def default_headers(api_version: str = DEFAULT_API_VERSION) -> dict[str, str]:
    """Headers sent with every request."""
    return {
        "User-Agent": f"vcd-cse-sdk-python/{__version__}",
        "Accept": f"application/json;version={api_version}",
        "Content-Type": "application/json",
    }


class HttpClient:
    """Synchronous HTTP client for the VCD API."""

    def __init__(
        self,
        base_url: str,
        auth: AuthProvider | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        verify_ssl: bool = True,
        api_version: str = DEFAULT_API_VERSION,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = timeout
        self._max_retries = max_retries
        self._api_version = api_version
        self.log_responses = True

        self._client = httpx.Client(
            base_url=self._base_url,
            headers=default_headers(api_version),
            timeout=timeout,
            verify=verify_ssl,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_version(self) -> str:
        return self._api_version

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @contextmanager
    def suppress_response_logging(self) -> Iterator[None]:
        """Mute response body logging for the duration of the block.

        The previous setting is restored however the block exits.
        """
        previous = self.log_responses
        self.log_responses = False
        try:
            yield
        finally:
            self.log_responses = previous

    def get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Perform GET request."""
        return self._request("GET", path, params=params, headers=headers)[0]

    def get_with_etag(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> tuple[Any, str | None]:
        """Perform GET request, returning the body and the ETag header."""
        return self._request("GET", path, params=params)

    def post(self, path: str, *, json: dict[str, Any] | None = None) -> Any:
        """Perform POST request."""
        return self._request("POST", path, json=json)[0]

    def put(
        self, path: str, *, json: dict[str, Any] | None = None, etag: str | None = None
    ) -> tuple[Any, str | None]:
        """Perform PUT request.

        When etag is given it is sent as If-Match, so the update fails with
        ConflictError if the resource changed in the meantime.

        Returns:
            The response body and the new ETag.
        """
        headers = {"If-Match": etag} if etag else None
        return self._request("PUT", path, json=json, headers=headers)

    def delete(self, path: str) -> Any:
        """Perform DELETE request."""
        return self._request("DELETE", path)[0]

    def _get_auth_headers(self) -> dict[str, str]:
        """Get authentication headers from auth provider."""
        if self._auth is None:
            return {}
        return self._auth.get_headers()

    def _ensure_auth(self) -> None:
        """Ensure auth is valid, refreshing if needed."""
        if self._auth is None:
            return
        if self._auth.needs_refresh():
            self._auth.refresh(self._client)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        _auth_retry: bool = False,
    ) -> tuple[Any, str | None]:
        """Perform HTTP request with retries and error handling."""
        last_exception: Exception | None = None
        retry_count = 0

        self._ensure_auth()

        while retry_count <= self._max_retries:
            try:
                response = self._client.request(
                    method,
                    path,
                    params=_filter_none(params) if params else None,
                    json=json,
                    headers={**self._get_auth_headers(), **(headers or {})},
                )
                return self._handle_response(response), response.headers.get("ETag")

            except httpx.TimeoutException as e:
                last_exception = TimeoutError(f"Request timed out: {e}")
                retry_count += 1

            except httpx.ConnectError as e:
                last_exception = ConnectionError(f"Failed to connect: {e}")
                retry_count += 1

            except RateLimitError as e:
                wait_time = e.retry_after or (2**retry_count)
                time.sleep(wait_time)
                retry_count += 1
                last_exception = e

            except AuthenticationError:
                # Try to refresh and retry once
                if not _auth_retry and self._auth is not None:
                    self._auth.refresh(self._client)
                    return self._request(
                        method,
                        path,
                        params=params,
                        json=json,
                        headers=headers,
                        _auth_retry=True,
                    )
                raise

            except (ValidationError, NotFoundError, ConflictError):
                raise

            except CseError as e:
                retry_count += 1
                last_exception = e

            if retry_count <= self._max_retries:
                time.sleep(2**retry_count * 0.1)

        if last_exception:
            raise last_exception
        raise CseError("Request failed after retries")

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle HTTP response and map errors."""
        if self.log_responses and logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "%s %s -> %d: %s",
                response.request.method,
                response.request.url,
                response.status_code,
                response.text,
            )

        if response.status_code == 204:
            return None

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_success:
            return data

        message = self._extract_error_message(data, response)

        if response.status_code == 401:
            raise AuthenticationError(message, response=response)

        if response.status_code == 404:
            raise NotFoundError(message, response=response)

        if response.status_code == 412 or (
            response.status_code in (400, 409) and "etag" in message.lower()
        ):
            raise ConflictError(message, response=response)

        if response.status_code in (400, 422):
            errors = data.get("errors", []) if isinstance(data, dict) else []
            raise ValidationError(message, errors=errors, response=response)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            retry_after_int: int | None = None
            if retry_after:
                with contextlib.suppress(ValueError):
                    retry_after_int = int(retry_after)
            raise RateLimitError(
                message,
                retry_after=retry_after_int,
                response=response,
            )

        if response.status_code >= 500:
            raise CseError(f"Server error: {message}", response=response)

        raise CseError(message, response=response)

    def _extract_error_message(self, data: Any, response: httpx.Response) -> str:
        """Extract error message from response."""
        if isinstance(data, dict):
            if "message" in data:
                return data["message"]
            if "minorErrorCode" in data:
                return str(data["minorErrorCode"])
            if "error" in data:
                error = data["error"]
                if isinstance(error, str):
                    return error
                if isinstance(error, dict) and "message" in error:
                    return error["message"]

        return f"HTTP {response.status_code}: {response.reason_phrase}"


def _filter_none(params: dict[str, Any]) -> dict[str, Any]:
    """Drop query parameters that are not set."""
    return {k: v for k, v in params.items() if v is not None}
