"""Rebuilds the typed cluster model from a stored cluster entity.

The CAPI manifest is read in preference to the status: it changes as soon
as the cluster is updated, while the status can lag behind for minutes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import ValidationError as SchemaError

from vcdcse.exceptions import InvalidEntityError, NotFoundError, ResolutionError
from vcdcse.kubernetes._manifest import (
    ClusterDocument,
    KubeadmControlPlaneDocument,
    MachineDeploymentDocument,
    MachineHealthCheckDocument,
    ManifestDocument,
    VcdClusterDocument,
    VcdMachineTemplateDocument,
    control_plane_template_name,
    load_manifest,
    read_manifest,
)
from vcdcse.kubernetes._protocols import ResourceLookup
from vcdcse.kubernetes._versions import cse_version_for_entity_type, short_version
from vcdcse.models.capvcd import Capvcd, CapvcdStatus, StatusEvent
from vcdcse.models.cluster import (
    MASKED_API_TOKEN,
    ClusterEvent,
    ClusterStatus,
    ControlPlaneSettings,
    DefaultStorageClassSettings,
    KubernetesCluster,
    ReclaimPolicy,
    WorkerPoolSettings,
)
from vcdcse.models.entity import DefinedEntity
from vcdcse.models.resources import ComputePolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

CAPVCD_TYPE = "vmware:capvcdCluster"


def is_cluster_entity(entity: DefinedEntity) -> bool:
    return CAPVCD_TYPE in (entity.id or "") and CAPVCD_TYPE in entity.entity_type


def parse_capvcd(entity: DefinedEntity) -> Capvcd:
    try:
        return Capvcd.model_validate(entity.entity)
    except SchemaError as e:
        raise InvalidEntityError(
            f"could not read the contents of cluster '{entity.id}': {e}", entity_id=entity.id or ""
        ) from e


def cluster_status(entity: DefinedEntity) -> ClusterStatus:
    """Only the fields needed to follow a cluster while it converges."""
    contents = entity.entity
    status = contents.get("status") or {}
    vcd_ke_spec = (contents.get("spec") or {}).get("vcdKe") or {}
    error_set = (status.get("capvcd") or {}).get("errorSet") or []
    try:
        errors = [StatusEvent.model_validate(e).detail for e in error_set]
    except SchemaError as e:
        raise InvalidEntityError(
            f"could not read the errors of cluster '{entity.id}': {e}", entity_id=entity.id or ""
        ) from e
    return ClusterStatus(
        id=entity.id or "",
        state=(status.get("vcdKe") or {}).get("state", ""),
        auto_repair_on_errors=bool(vcd_ke_spec.get("autoRepairOnErrors", False)),
        errors=errors,
    )


def _sort_key(event: ClusterEvent) -> float:
    return event.occurred_at.timestamp() if event.occurred_at else float("-inf")


def cluster_events(status: CapvcdStatus) -> list[ClusterEvent]:
    """Events and errors of every component, newest first."""
    events = []
    for component in status.components():
        for kind, entries in (("event", component.event_set), ("error", component.error_set)):
            events.extend(
                ClusterEvent(
                    name=entry.name,
                    type=kind,
                    resource_id=entry.vcd_resource_id,
                    resource_name=entry.vcd_resource_name,
                    occurred_at=entry.occurred_at,
                    details=entry.detail,
                )
                for entry in entries
            )
    events.sort(key=_sort_key, reverse=True)
    return events


@dataclass
class ManifestState:
    """Cluster fields read from the CAPI manifest."""

    control_plane: ControlPlaneSettings = field(default_factory=ControlPlaneSettings)
    worker_pools: dict[str, WorkerPoolSettings] = field(default_factory=dict)
    kubernetes_version: str = ""
    tkg_version: str = ""
    ssh_public_key: str = ""
    pod_cidr: str = ""
    service_cidr: str = ""
    virtual_ip_subnet: str = ""
    node_health_check: bool = False
    template_name: str = ""
    catalog_name: str = ""


def _pool(state: ManifestState, name: str) -> WorkerPoolSettings:
    # A pool is described by two documents that can come in any order
    if name not in state.worker_pools:
        state.worker_pools[name] = WorkerPoolSettings(name=name)
    return state.worker_pools[name]


def _first(blocks: list[str], path: str) -> str:
    if not blocks:
        raise InvalidEntityError(f"expected at least one '{path}' item in the CAPI YAML")
    return blocks[0]


def fold_manifest(
    documents: Sequence[ManifestDocument],
    storage_profiles: Mapping[str, str],
    compute_policies: Sequence[ComputePolicy],
) -> ManifestState:
    """Fold the manifest documents into cluster fields.

    Args:
        documents: Typed views of the manifest.
        storage_profiles: Storage profile name to ID, for the cluster VDC.
        compute_policies: Compute policies, matched by name.
    """
    state = ManifestState()
    control_plane_template = control_plane_template_name(documents)
    for document in documents:
        if isinstance(document, KubeadmControlPlaneDocument):
            state.control_plane.machine_count = document.spec.replicas
            state.kubernetes_version = document.spec.version
            users = document.spec.kubeadm_config_spec.users
            if not users:
                raise InvalidEntityError(
                    "expected 'spec.kubeadmConfigSpec.users' in the CAPI YAML to not be empty"
                )
            if users[0].ssh_authorized_keys:
                state.ssh_public_key = users[0].ssh_authorized_keys[0]

        elif isinstance(document, VcdMachineTemplateDocument):
            machine = document.machine
            target: ControlPlaneSettings | WorkerPoolSettings
            if document.name == control_plane_template:
                target = state.control_plane
                # All templates share the same OVA
                state.template_name = machine.template
                state.catalog_name = machine.catalog
            else:
                target = _pool(state, document.name)
            target.disk_size_gi = document.disk_size_gi
            target.storage_profile_id = storage_profiles.get(machine.storage_profile, "")
            _match_policies(
                target, machine.sizing_policy, machine.placement_policy, compute_policies
            )

        elif isinstance(document, MachineDeploymentDocument):
            _pool(state, document.name).machine_count = document.spec.replicas

        elif isinstance(document, VcdClusterDocument):
            state.virtual_ip_subnet = document.spec.load_balancer_config_spec.vip_subnet

        elif isinstance(document, ClusterDocument):
            state.tkg_version = document.tkg_version
            network = document.spec.cluster_network
            state.pod_cidr = _first(
                network.pods.cidr_blocks, "spec.clusterNetwork.pods.cidrBlocks"
            )
            state.service_cidr = _first(
                network.services.cidr_blocks, "spec.clusterNetwork.services.cidrBlocks"
            )

        elif isinstance(document, MachineHealthCheckDocument):
            state.node_health_check = True

    return state


def _match_policies(
    target: ControlPlaneSettings | WorkerPoolSettings,
    sizing_policy: str,
    placement_policy: str,
    compute_policies: Sequence[ComputePolicy],
) -> None:
    for policy in compute_policies:
        if policy.name == sizing_policy and policy.is_sizing_only:
            target.sizing_policy_id = policy.id
        elif policy.name == placement_policy and not policy.is_sizing_only:
            if isinstance(target, WorkerPoolSettings) and policy.is_vgpu_policy:
                target.vgpu_policy_id = policy.id
            else:
                target.placement_policy_id = policy.id


class ClusterStateReconstructor:
    """Builds a KubernetesCluster out of its entity."""

    def __init__(self, lookups: ResourceLookup) -> None:
        self._lookups = lookups

    def reconstruct(self, entity: DefinedEntity) -> KubernetesCluster:
        """Typed view of a cluster entity.

        Only entities fetched by ID carry an etag, and so does the result.

        Raises:
            InvalidEntityError: If the entity is not a cluster or is malformed.
            ResolutionError: If a resource named in the entity cannot be found.
        """
        if not is_cluster_entity(entity):
            raise InvalidEntityError(
                f"the entity is not a '{CAPVCD_TYPE}' entity, it is '{entity.entity_type}'",
                entity_id=entity.id or "",
            )
        capvcd = parse_capvcd(entity)
        status = capvcd.status
        capvcd_status = status.capvcd
        vcd_ke = capvcd.spec.vcd_ke

        fields: dict[str, Any] = {
            "id": entity.id,
            "etag": entity.etag,
            "name": entity.name,
            "state": status.vcd_ke.state,
            "api_token": MASKED_API_TOKEN,
            "auto_repair_on_errors": vcd_ke.auto_repair_on_errors,
            "events": cluster_events(status),
            "cse_version": (
                short_version(status.vcd_ke.vcd_ke_version)
                or cse_version_for_entity_type(entity.entity_type)
            ),
            "capvcd_version": capvcd_status.capvcd_version,
            "cpi_version": status.cpi.version.strip(),
            "csi_version": status.csi.version,
            "owner": entity.owner.name if entity.owner else "",
            "cluster_resource_set_bindings": [
                b.name for b in capvcd_status.cluster_resource_set_bindings
            ],
        }
        endpoints = capvcd_status.cluster_api_status.api_endpoints
        control_plane_ip = endpoints[0].host if endpoints else ""
        properties = capvcd_status.vcd_properties
        if properties.organizations:
            fields["organization_id"] = properties.organizations[0].id

        # Clusters that failed early carry no VDC information
        if not properties.org_vdcs:
            return KubernetesCluster(
                control_plane=ControlPlaneSettings(ip=control_plane_ip), **fields
            )

        org_vdc = properties.org_vdcs[0]
        org_name = properties.organizations[0].name if properties.organizations else ""
        vdc_id = org_vdc.id
        # Some CSE releases store the VDC name where its ID should be
        if vdc_id == org_vdc.name:
            vdc_id = self._resolve(
                "VDC", org_vdc.name, lambda: self._lookups.find_vdc(org_name, org_vdc.name)
            ).id
        fields["vdc_id"] = vdc_id
        fields["network_id"] = self._resolve(
            "Org VDC Network",
            org_vdc.ovdc_network_name,
            lambda: self._lookups.find_network(vdc_id, org_vdc.ovdc_network_name),
        ).id

        storage_profiles = {p.name: p.id for p in self._lookups.list_storage_profiles(vdc_id)}
        compute_policies = self._lookups.list_compute_policies(vdc_id)

        options = vcd_ke.default_storage_class_options
        if options.k8s_storage_class_name:
            fields["default_storage_class"] = DefaultStorageClassSettings(
                storage_profile_id=storage_profiles.get(options.vcd_storage_profile_name, ""),
                name=options.k8s_storage_class_name,
                reclaim_policy=(
                    ReclaimPolicy.DELETE.value
                    if options.use_delete_reclaim_policy
                    else ReclaimPolicy.RETAIN.value
                ),
                filesystem=options.filesystem,
            )

        documents = read_manifest(load_manifest(capvcd.spec.capi_yaml))
        state = fold_manifest(documents, storage_profiles, compute_policies)
        state.control_plane.ip = control_plane_ip

        if state.template_name:
            template = self._resolve(
                "Kubernetes Template OVA",
                state.template_name,
                lambda: self._lookups.find_vapp_template(state.catalog_name, state.template_name),
            )
            fields["kubernetes_template_ova_id"] = template.id
            fields["kubernetes_template_ova_name"] = template.name

        logger.debug("Cluster '%s' has %d worker pools", entity.id, len(state.worker_pools))
        return KubernetesCluster(
            control_plane=state.control_plane,
            worker_pools=list(state.worker_pools.values()),
            kubernetes_version=state.kubernetes_version,
            tkg_version=state.tkg_version,
            ssh_public_key=state.ssh_public_key,
            pod_cidr=state.pod_cidr,
            service_cidr=state.service_cidr,
            virtual_ip_subnet=state.virtual_ip_subnet,
            node_health_check=state.node_health_check,
            **fields,
        )

    @staticmethod
    def _resolve(what: str, name: str, find: Callable[[], T]) -> T:
        try:
            return find()
        except NotFoundError as e:
            raise ResolutionError(
                f"could not find the {what} named '{name}': {e}",
                resource_type=what,
                resource_id=name,
            ) from e
