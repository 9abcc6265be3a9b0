"""Typed schema of the CAPVCD cluster entity.

These models only read the entity. Updates edit the raw entity JSON so that
fields this schema does not know about survive the round trip.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from vcdcse.models.common import CseModel, Reference

# Keys used by the different CSE components to describe an event or an error
_DETAIL_KEYS = (
    "Detailed Error",
    "Detailed Event",
    "Detailed Description",
    "event",
    "error",
)


class StatusEvent(CseModel):
    """One entry of an eventSet or errorSet."""

    name: str = ""
    occurred_at: datetime | None = Field(None, alias="occurredAt")
    vcd_resource_id: str = Field("", alias="vcdResourceId")
    vcd_resource_name: str = Field("", alias="vcdResourceName")
    additional_details: dict[str, Any] | None = Field(None, alias="additionalDetails")

    @property
    def detail(self) -> str:
        """Most descriptive text available for this entry."""
        details = self.additional_details or {}
        for key in _DETAIL_KEYS:
            value = details.get(key)
            if value:
                return str(value)
        return self.name


class ComponentStatus(CseModel):
    """Status block shared by every CSE component."""

    name: str = ""
    version: str = ""
    event_set: list[StatusEvent] = Field(default_factory=list, alias="eventSet")
    error_set: list[StatusEvent] = Field(default_factory=list, alias="errorSet")


class VcdKeStatus(ComponentStatus):
    state: str = ""
    vcd_ke_version: str = Field("", alias="vcdKeVersion")


class ApiEndpoint(CseModel):
    host: str = ""
    port: int = 0


class ClusterApiStatus(CseModel):
    phase: str = ""
    api_endpoints: list[ApiEndpoint] = Field(default_factory=list, alias="apiEndpoints")


class OrgVdcProperties(CseModel):
    id: str = ""
    name: str = ""
    ovdc_network_name: str = Field("", alias="ovdcNetworkName")


class VcdProperties(CseModel):
    site: str = ""
    org_vdcs: list[OrgVdcProperties] = Field(default_factory=list, alias="orgVdcs")
    organizations: list[Reference] = Field(default_factory=list)


class ResourceSetBinding(CseModel):
    name: str = ""
    kind: str = ""
    applied: bool = False
    cluster_resource_set_name: str = Field("", alias="clusterResourceSetName")


class UpgradeVersions(CseModel):
    tkg_version: str = Field("", alias="tkgVersion")
    kubernetes_version: str = Field("", alias="kubernetesVersion")


class UpgradeStatus(CseModel):
    ready: bool = False
    current: UpgradeVersions = Field(default_factory=UpgradeVersions)


class CapvcdComponentStatus(ComponentStatus):
    phase: str = ""
    capvcd_version: str = Field("", alias="capvcdVersion")
    kubernetes: str = ""
    upgrade: UpgradeStatus = Field(default_factory=UpgradeStatus)
    vcd_properties: VcdProperties = Field(default_factory=VcdProperties, alias="vcdProperties")
    cluster_api_status: ClusterApiStatus = Field(
        default_factory=ClusterApiStatus, alias="clusterApiStatus"
    )
    cluster_resource_set_bindings: list[ResourceSetBinding] = Field(
        default_factory=list, alias="clusterResourceSetBindings"
    )


class CapvcdStatus(CseModel):
    """Server maintained part of the entity."""

    vcd_ke: VcdKeStatus = Field(default_factory=VcdKeStatus, alias="vcdKe")
    capvcd: CapvcdComponentStatus = Field(default_factory=CapvcdComponentStatus)
    cpi: ComponentStatus = Field(default_factory=ComponentStatus)
    csi: ComponentStatus = Field(default_factory=ComponentStatus)
    projector: ComponentStatus = Field(default_factory=ComponentStatus)

    def components(self) -> list[ComponentStatus]:
        return [self.vcd_ke, self.capvcd, self.cpi, self.csi, self.projector]


class DefaultStorageClassOptions(CseModel):
    filesystem: str = ""
    k8s_storage_class_name: str = Field("", alias="k8sStorageClassName")
    vcd_storage_profile_name: str = Field("", alias="vcdStorageProfileName")
    use_delete_reclaim_policy: bool = Field(False, alias="useDeleteReclaimPolicy")


class VcdKeSpec(CseModel):
    is_vcdke_cluster: bool = Field(True, alias="isVCDKECluster")
    mark_for_delete: bool = Field(False, alias="markForDelete")
    force_delete: bool = Field(False, alias="forceDelete")
    auto_repair_on_errors: bool = Field(False, alias="autoRepairOnErrors")
    default_storage_class_options: DefaultStorageClassOptions = Field(
        default_factory=DefaultStorageClassOptions, alias="defaultStorageClassOptions"
    )


class CapvcdSpec(CseModel):
    """Desired state, including the CAPI manifest."""

    vcd_ke: VcdKeSpec = Field(default_factory=VcdKeSpec, alias="vcdKe")
    capi_yaml: str = Field("", alias="capiYaml")


class CapvcdMetadata(CseModel):
    name: str = ""
    site: str = ""
    org_name: str = Field("", alias="orgName")
    virtual_data_center_name: str = Field("", alias="virtualDataCenterName")


class Capvcd(CseModel):
    """Contents of a ``vmware:capvcdCluster`` entity."""

    kind: str = "CAPVCDCluster"
    api_version: str = Field("", alias="apiVersion")
    metadata: CapvcdMetadata = Field(default_factory=CapvcdMetadata)
    spec: CapvcdSpec = Field(default_factory=CapvcdSpec)
    status: CapvcdStatus = Field(default_factory=CapvcdStatus)
