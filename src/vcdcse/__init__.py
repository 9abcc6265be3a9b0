"""
VCD CSE SDK - Python SDK for the VMware Cloud Director Container Service Extension.

Create, scale, upgrade and delete Kubernetes clusters made simple.
"""

from vcdcse._version import __version__
from vcdcse.client import VcdClient
from vcdcse.exceptions import (
    AuthenticationError,
    ClusterError,
    ConflictError,
    ConnectionError,
    CseError,
    InvalidEntityError,
    NotFoundError,
    RateLimitError,
    ResolutionError,
    TimeoutError,
    UnsupportedVersionError,
    ValidationError,
)
from vcdcse.models.cluster import (
    ClusterSettings,
    ClusterUpdate,
    ControlPlaneSettings,
    DefaultStorageClassSettings,
    KubernetesCluster,
    WorkerPoolSettings,
)

__all__ = [
    # Version
    "__version__",
    # Client
    "VcdClient",
    # Cluster models
    "ClusterSettings",
    "ClusterUpdate",
    "ControlPlaneSettings",
    "DefaultStorageClassSettings",
    "KubernetesCluster",
    "WorkerPoolSettings",
    # Exceptions
    "CseError",
    "AuthenticationError",
    "RateLimitError",
    "ValidationError",
    "UnsupportedVersionError",
    "NotFoundError",
    "ResolutionError",
    "ConflictError",
    "InvalidEntityError",
    "ClusterError",
    "ConnectionError",
    "TimeoutError",
]
