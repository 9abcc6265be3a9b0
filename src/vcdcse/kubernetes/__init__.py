"""Kubernetes cluster orchestration on top of defined entities."""

from vcdcse.kubernetes._builder import ClusterSpecBuilder, get_vcdke_config
from vcdcse.kubernetes._manifest import dump_manifest, load_manifest, read_manifest
from vcdcse.kubernetes._names import NameResolutionCache
from vcdcse.kubernetes._protocols import EntityStore, ResourceLookup
from vcdcse.kubernetes._reconstruct import ClusterStateReconstructor, cluster_status
from vcdcse.kubernetes._validation import validate_settings
from vcdcse.kubernetes._versions import (
    cse_components_versions,
    is_upgrade_target,
    tkg_bundle_from_ova_name,
)
from vcdcse.kubernetes._watcher import ProvisioningWatcher

__all__ = [
    "ClusterSpecBuilder",
    "ClusterStateReconstructor",
    "EntityStore",
    "NameResolutionCache",
    "ProvisioningWatcher",
    "ResourceLookup",
    "cluster_status",
    "cse_components_versions",
    "dump_manifest",
    "get_vcdke_config",
    "is_upgrade_target",
    "load_manifest",
    "read_manifest",
    "tkg_bundle_from_ova_name",
    "validate_settings",
]
