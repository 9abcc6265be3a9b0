"""Pydantic models for VCD CSE SDK."""

from vcdcse.models.capvcd import Capvcd, CapvcdStatus, StatusEvent
from vcdcse.models.cluster import (
    ClusterChange,
    ClusterEvent,
    ClusterSettings,
    ClusterState,
    ClusterStatus,
    ClusterUpdate,
    ControlPlaneSettings,
    ControlPlaneUpdate,
    DefaultStorageClassSettings,
    Filesystem,
    KubernetesCluster,
    ReclaimPolicy,
    TkgVersionBundle,
    WorkerPoolSettings,
    WorkerPoolUpdate,
)
from vcdcse.models.common import PaginatedResponse, Reference
from vcdcse.models.entity import DefinedEntity, DefinedEntityType, EntityState
from vcdcse.models.resources import (
    ComputePolicy,
    OrgVdcNetwork,
    SessionInfo,
    StorageProfile,
    VAppTemplate,
    Vdc,
)

__all__ = [
    # Common
    "PaginatedResponse",
    "Reference",
    # Entities
    "DefinedEntity",
    "DefinedEntityType",
    "EntityState",
    "Capvcd",
    "CapvcdStatus",
    "StatusEvent",
    # Resources
    "ComputePolicy",
    "OrgVdcNetwork",
    "SessionInfo",
    "StorageProfile",
    "VAppTemplate",
    "Vdc",
    # Clusters
    "ClusterSettings",
    "ControlPlaneSettings",
    "WorkerPoolSettings",
    "DefaultStorageClassSettings",
    "ReclaimPolicy",
    "Filesystem",
    "KubernetesCluster",
    "ClusterEvent",
    "ClusterState",
    "ClusterStatus",
    "ClusterUpdate",
    "ClusterChange",
    "ControlPlaneUpdate",
    "WorkerPoolUpdate",
    "TkgVersionBundle",
]
