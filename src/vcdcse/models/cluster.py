"""Kubernetes cluster models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from vcdcse.models.common import CseModel, FrozenModel

DEFAULT_CSE_VERSION = "4.2.0"
MASKED_API_TOKEN = "******"


class ReclaimPolicy(str, Enum):
    DELETE = "delete"
    RETAIN = "retain"


class Filesystem(str, Enum):
    EXT4 = "ext4"
    XFS = "xfs"


class ClusterState(str, Enum):
    """Lifecycle states reported by CSE in status.vcdKe.state."""

    PROVISIONING = "provisioning"
    PROVISIONED = "provisioned"
    ERROR = "error"


class ControlPlaneSettings(CseModel):
    """Control plane of a cluster. The machine count must be odd."""

    machine_count: int = 1
    disk_size_gi: int = 20
    sizing_policy_id: str = ""
    placement_policy_id: str = ""
    storage_profile_id: str = ""
    ip: str = ""


class WorkerPoolSettings(CseModel):
    """A named group of worker machines."""

    name: str
    machine_count: int = 1
    disk_size_gi: int = 20
    sizing_policy_id: str = ""
    placement_policy_id: str = ""
    vgpu_policy_id: str = ""
    storage_profile_id: str = ""


class DefaultStorageClassSettings(CseModel):
    """Storage class created in the cluster as the default one."""

    storage_profile_id: str
    name: str
    reclaim_policy: str = ReclaimPolicy.DELETE.value
    filesystem: str = Filesystem.EXT4.value


class ClusterSettings(CseModel):
    """Declarative description of a cluster, as given by the user.

    Every referenced VCD object is given by ID.
    """

    cse_version: str = DEFAULT_CSE_VERSION
    name: str
    organization_id: str = ""
    vdc_id: str = ""
    network_id: str = ""
    kubernetes_template_ova_id: str = ""
    control_plane: ControlPlaneSettings = Field(default_factory=ControlPlaneSettings)
    worker_pools: list[WorkerPoolSettings] = Field(default_factory=list)
    default_storage_class: DefaultStorageClassSettings | None = None
    owner: str = ""
    api_token: str = Field("", repr=False)
    node_health_check: bool = False
    pod_cidr: str = ""
    service_cidr: str = ""
    ssh_public_key: str = ""
    virtual_ip_subnet: str = ""
    auto_repair_on_errors: bool = False


class ClusterEvent(CseModel):
    """Something that happened during the lifetime of a cluster."""

    name: str
    type: str  # "event" or "error"
    resource_id: str = ""
    resource_name: str = ""
    occurred_at: datetime | None = None
    details: str = ""


class KubernetesCluster(ClusterSettings):
    """Typed view of an existing cluster, rebuilt from its entity."""

    id: str
    etag: str | None = None
    state: str = ""
    kubernetes_version: str = ""
    tkg_version: str = ""
    capvcd_version: str = ""
    cpi_version: str = ""
    csi_version: str = ""
    cluster_resource_set_bindings: list[str] = Field(default_factory=list)
    events: list[ClusterEvent] = Field(default_factory=list)
    kubernetes_template_ova_name: str = ""

    def worker_pool(self, name: str) -> WorkerPoolSettings | None:
        """Find a worker pool by name."""
        for pool in self.worker_pools:
            if pool.name == name:
                return pool
        return None


class ClusterStatus(CseModel):
    """The few status fields needed to follow a cluster while polling."""

    id: str
    state: str = ""
    auto_repair_on_errors: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def latest_error(self) -> str:
        return self.errors[-1] if self.errors else ""


class ControlPlaneUpdate(CseModel):
    machine_count: int


class WorkerPoolUpdate(CseModel):
    machine_count: int


class ClusterChange(str, Enum):
    """Parts of a cluster that a ClusterUpdate can touch."""

    KUBERNETES_TEMPLATE = "kubernetes_template"
    CONTROL_PLANE = "control_plane"
    WORKER_POOLS = "worker_pools"
    NEW_WORKER_POOLS = "new_worker_pools"
    NODE_HEALTH_CHECK = "node_health_check"
    AUTO_REPAIR_ON_ERRORS = "auto_repair_on_errors"


class ClusterUpdate(CseModel):
    """Partial update of a cluster. Unset fields are left untouched."""

    kubernetes_template_ova_id: str | None = None
    control_plane: ControlPlaneUpdate | None = None
    worker_pools: dict[str, WorkerPoolUpdate] | None = None
    new_worker_pools: list[WorkerPoolSettings] | None = None
    node_health_check: bool | None = None
    auto_repair_on_errors: bool | None = None

    def changes(self) -> set[ClusterChange]:
        """Which parts of the cluster this update modifies."""
        fields = {
            ClusterChange.KUBERNETES_TEMPLATE: self.kubernetes_template_ova_id,
            ClusterChange.CONTROL_PLANE: self.control_plane,
            ClusterChange.WORKER_POOLS: self.worker_pools,
            ClusterChange.NEW_WORKER_POOLS: self.new_worker_pools,
            ClusterChange.NODE_HEALTH_CHECK: self.node_health_check,
            ClusterChange.AUTO_REPAIR_ON_ERRORS: self.auto_repair_on_errors,
        }
        return {change for change, value in fields.items() if value is not None}


# Internal payload. Built once from ClusterSettings, never modified afterward.


class CseComponentsVersions(FrozenModel):
    """Entity type versions that belong to a CSE release."""

    vcdke_config_rde_type_version: str
    capvcd_rde_type_version: str
    cse_interface_version: str


class TkgVersionBundle(FrozenModel):
    """Versions of the cluster components shipped in a Kubernetes template OVA."""

    kubernetes_version: str
    tkg_version: str
    tkr_version: str
    etcd_version: str
    core_dns_version: str


class MachineHealthCheckSettings(FrozenModel):
    max_unhealthy_nodes_percentage: float
    node_startup_timeout: str
    node_not_ready_timeout: str
    node_unknown_timeout: str


class VcdKeConfig(FrozenModel):
    """Relevant parts of the CSE server configuration."""

    container_registry_url: str
    base64_certificates: tuple[str, ...] = ()
    machine_health_check: MachineHealthCheckSettings | None = None


class ControlPlaneInternal(FrozenModel):
    machine_count: int
    disk_size_gi: int
    sizing_policy_name: str = ""
    placement_policy_name: str = ""
    storage_profile_name: str = ""
    ip: str = ""


class WorkerPoolInternal(FrozenModel):
    name: str
    machine_count: int
    disk_size_gi: int
    sizing_policy_name: str = ""
    placement_policy_name: str = ""
    vgpu_policy_name: str = ""
    storage_profile_name: str = ""


class DefaultStorageClassInternal(FrozenModel):
    storage_profile_name: str
    name: str
    use_delete_reclaim_policy: bool
    filesystem: str


class ClusterSettingsInternal(FrozenModel):
    """ClusterSettings with every ID replaced by the name CSE expects."""

    cse_version: str
    name: str
    organization_name: str
    vdc_name: str
    network_name: str
    kubernetes_template_ova_name: str
    catalog_name: str
    tkg_version_bundle: TkgVersionBundle
    components_versions: CseComponentsVersions
    rde_type_id: str
    control_plane: ControlPlaneInternal
    worker_pools: tuple[WorkerPoolInternal, ...]
    default_storage_class: DefaultStorageClassInternal | None = None
    vcdke_config: VcdKeConfig
    owner: str
    api_token: str = Field(repr=False)
    vcd_url: str
    virtual_ip_subnet: str = ""
    ssh_public_key: str = ""
    pod_cidr: str
    service_cidr: str
    auto_repair_on_errors: bool = False
