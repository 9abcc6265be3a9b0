"""VCD CSE SDK exceptions.

All exceptions inherit from CseError for easy catching.
"""

from __future__ import annotations

from typing import Any


class CseError(Exception):
    """Base exception for all VCD CSE SDK errors."""

    def __init__(self, message: str, *, response: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.response = response

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class AuthenticationError(CseError):
    """Invalid or missing credentials.

    Check that VCD_API_TOKEN and VCD_ORG are set or pass them to VcdClient.
    """


class RateLimitError(CseError):
    """Rate limit exceeded.

    Check retry_after for when to retry.
    """

    def __init__(
        self, message: str, *, retry_after: int | None = None, response: Any = None
    ) -> None:
        super().__init__(message, response=response)
        self.retry_after = retry_after


class ValidationError(CseError):
    """Cluster settings or request validation failed.

    Check field for the attribute that caused the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        errors: list[dict[str, Any]] | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message, response=response)
        self.field = field
        self.errors = errors or []


class UnsupportedVersionError(CseError):
    """The CSE version or the Kubernetes template is not supported."""

    def __init__(self, message: str, *, version: str = "", response: Any = None) -> None:
        super().__init__(message, response=response)
        self.version = version


class NotFoundError(CseError):
    """Resource not found."""

    def __init__(
        self, message: str, *, resource_type: str = "", resource_id: str = "", response: Any = None
    ) -> None:
        super().__init__(message, response=response)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ResolutionError(NotFoundError):
    """A referenced resource ID could not be resolved to a name (or vice versa)."""


class ConflictError(CseError):
    """The entity changed since it was read (stale ETag).

    Fetch the cluster again and retry the operation.
    """


class InvalidEntityError(CseError):
    """The entity is not a Kubernetes cluster or its contents are inconsistent."""

    def __init__(self, message: str, *, entity_id: str = "", response: Any = None) -> None:
        super().__init__(message, response=response)
        self.entity_id = entity_id


class ClusterError(CseError):
    """The cluster reached a state that prevents the operation from finishing.

    Check state and details for the latest information reported by CSE.
    """

    def __init__(
        self,
        message: str,
        *,
        cluster_id: str | None = None,
        state: str | None = None,
        details: list[str] | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message, response=response)
        self.cluster_id = cluster_id
        self.state = state
        self.details = details or []


class ConnectionError(CseError):
    """Failed to connect to VCD.

    Check network connectivity and base_url configuration.
    """


class TimeoutError(CseError):
    """A request or a cluster operation timed out.

    For cluster operations, cluster_id and state hold the last observed status.
    The cluster is left exactly as it was found.
    """

    def __init__(
        self,
        message: str,
        *,
        cluster_id: str | None = None,
        state: str | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message, response=response)
        self.cluster_id = cluster_id
        self.state = state
