"""Turns the user's cluster settings into the entity that creates the cluster."""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from vcdcse.exceptions import InvalidEntityError, NotFoundError, ResolutionError
from vcdcse.kubernetes._manifest import dump_manifest
from vcdcse.kubernetes._names import NameResolutionCache
from vcdcse.kubernetes._protocols import EntityStore, ResourceLookup
from vcdcse.kubernetes._templates import CAPVCD_API_VERSION, cluster_documents
from vcdcse.kubernetes._validation import validate_settings
from vcdcse.kubernetes._versions import cse_components_versions, tkg_bundle_from_ova_name
from vcdcse.models.cluster import (
    ClusterSettings,
    ClusterSettingsInternal,
    ControlPlaneInternal,
    DefaultStorageClassInternal,
    MachineHealthCheckSettings,
    ReclaimPolicy,
    VcdKeConfig,
    WorkerPoolInternal,
    WorkerPoolSettings,
)
from vcdcse.models.entity import DefinedEntity, entity_type_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

CAPVCD_VENDOR = "vmware"
CAPVCD_NSS = "capvcdCluster"
VCDKE_CONFIG_NSS = "VCDKEConfig"
VCDKE_CONFIG_NAME = "vcdKeConfig"


def _fetch(what: str, resource_id: str, fetch: Callable[[str], T]) -> T:
    try:
        return fetch(resource_id)
    except NotFoundError as e:
        raise ResolutionError(
            f"could not retrieve the {what} with ID '{resource_id}': {e}",
            resource_type=what,
            resource_id=resource_id,
        ) from e


def get_vcdke_config(
    store: EntityStore, version: str, with_health_check: bool = False
) -> VcdKeConfig:
    """Read the CSE server configuration entity.

    Health check thresholds are only read when ``with_health_check`` is set.
    """
    entities = store.list_by_name(CAPVCD_VENDOR, VCDKE_CONFIG_NSS, version, VCDKE_CONFIG_NAME)
    if len(entities) != 1:
        raise InvalidEntityError(
            f"expected exactly one VCDKEConfig entity with version '{version}', "
            f"but got {len(entities)}"
        )
    profiles = entities[0].entity.get("profiles")
    if not isinstance(profiles, list) or not profiles:
        raise InvalidEntityError(
            "wrong format of VCDKEConfig entity contents, expected a non-empty 'profiles' array"
        )
    profile = profiles[0]
    k8s_config = profile.get("K8Config")
    if not isinstance(k8s_config, dict):
        raise InvalidEntityError(
            "wrong format of VCDKEConfig entity contents, expected a 'K8Config' object"
        )

    certificates = tuple(
        base64.b64encode(str(c).encode()).decode()
        for c in k8s_config.get("certificateAuthorities") or []
    )

    health_check = None
    mhc = k8s_config.get("mhc")
    if with_health_check and mhc:
        try:
            health_check = MachineHealthCheckSettings(
                max_unhealthy_nodes_percentage=float(mhc["maxUnhealthyNodes"]),
                node_startup_timeout=str(mhc["nodeStartupTimeout"]),
                node_not_ready_timeout=str(mhc["nodeNotReadyTimeout"]),
                node_unknown_timeout=str(mhc["nodeUnknownTimeout"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidEntityError(
                f"wrong format of the Machine Health Check settings in VCDKEConfig: {e}"
            ) from e

    return VcdKeConfig(
        container_registry_url=f"{profile.get('containerRegistryUrl', '')}/tkg",
        base64_certificates=certificates,
        machine_health_check=health_check,
    )


class ClusterSpecBuilder:
    """Builds the internal payload of a new cluster.

    Every check and lookup happens here, before any entity is created.
    """

    def __init__(self, store: EntityStore, lookups: ResourceLookup, vcd_url: str) -> None:
        self._store = store
        self._lookups = lookups
        self._vcd_url = vcd_url

    def build(self, settings: ClusterSettings) -> ClusterSettingsInternal:
        """Validate the settings and replace every ID with the name CSE expects.

        Raises:
            ValidationError: If the settings break a local invariant.
            UnsupportedVersionError: If the CSE version or the OVA is not supported.
            ResolutionError: If a referenced resource does not exist.
        """
        validate_settings(settings)
        components = cse_components_versions(settings.cse_version)

        lookups = self._lookups
        org = _fetch("Organization", settings.organization_id, lookups.get_org)
        vdc = _fetch("VDC", settings.vdc_id, lookups.get_vdc)
        network = _fetch("Org VDC Network", settings.network_id, lookups.get_network)
        template = _fetch(
            "Kubernetes Template OVA",
            settings.kubernetes_template_ova_id,
            lookups.get_vapp_template,
        )
        bundle = tkg_bundle_from_ova_name(template.name)

        control_plane = settings.control_plane
        pools = settings.worker_pools
        storage_class = settings.default_storage_class

        names = NameResolutionCache(lookups)
        names.resolve_storage_profiles(
            [control_plane.storage_profile_id]
            + [p.storage_profile_id for p in pools]
            + ([storage_class.storage_profile_id] if storage_class else [])
        )
        names.resolve_compute_policies(
            [control_plane.sizing_policy_id, control_plane.placement_policy_id]
            + [p.sizing_policy_id for p in pools]
            + [p.placement_policy_id for p in pools]
            + [p.vgpu_policy_id for p in pools]
        )

        owner = settings.owner or lookups.current_session().user.name
        vcdke_config = get_vcdke_config(
            self._store, components.vcdke_config_rde_type_version, settings.node_health_check
        )

        default_storage_class = None
        if storage_class is not None:
            default_storage_class = DefaultStorageClassInternal(
                storage_profile_name=names[storage_class.storage_profile_id],
                name=storage_class.name,
                use_delete_reclaim_policy=(
                    storage_class.reclaim_policy == ReclaimPolicy.DELETE.value
                ),
                filesystem=storage_class.filesystem,
            )

        logger.debug(
            "Built settings of cluster '%s' with Kubernetes %s",
            settings.name,
            bundle.kubernetes_version,
        )
        return ClusterSettingsInternal(
            cse_version=settings.cse_version,
            name=settings.name,
            organization_name=org.name,
            vdc_name=vdc.name,
            network_name=network.name,
            kubernetes_template_ova_name=template.name,
            catalog_name=template.catalog_name,
            tkg_version_bundle=bundle,
            components_versions=components,
            rde_type_id=entity_type_id(
                CAPVCD_VENDOR, CAPVCD_NSS, components.capvcd_rde_type_version
            ),
            control_plane=ControlPlaneInternal(
                machine_count=control_plane.machine_count,
                disk_size_gi=control_plane.disk_size_gi,
                sizing_policy_name=names[control_plane.sizing_policy_id],
                placement_policy_name=names[control_plane.placement_policy_id],
                storage_profile_name=names[control_plane.storage_profile_id],
                ip=control_plane.ip,
            ),
            worker_pools=tuple(self.worker_pool(p, names) for p in pools),
            default_storage_class=default_storage_class,
            vcdke_config=vcdke_config,
            owner=owner,
            api_token=settings.api_token,
            vcd_url=self._vcd_url,
            virtual_ip_subnet=settings.virtual_ip_subnet,
            ssh_public_key=settings.ssh_public_key,
            pod_cidr=settings.pod_cidr,
            service_cidr=settings.service_cidr,
            auto_repair_on_errors=settings.auto_repair_on_errors,
        )

    @staticmethod
    def worker_pool(pool: WorkerPoolSettings, names: NameResolutionCache) -> WorkerPoolInternal:
        return WorkerPoolInternal(
            name=pool.name,
            machine_count=pool.machine_count,
            disk_size_gi=pool.disk_size_gi,
            sizing_policy_name=names[pool.sizing_policy_id],
            placement_policy_name=names[pool.placement_policy_id],
            vgpu_policy_name=names[pool.vgpu_policy_id],
            storage_profile_name=names[pool.storage_profile_id],
        )

    def entity(self, settings: ClusterSettingsInternal) -> DefinedEntity:
        """The cluster entity, with the CAPI manifest embedded in its spec."""
        vcd_ke: dict[str, Any] = {
            "isVCDKECluster": True,
            "markForDelete": False,
            "forceDelete": False,
            "autoRepairOnErrors": settings.auto_repair_on_errors,
            "secure": {"apiToken": settings.api_token},
        }
        storage_class = settings.default_storage_class
        if storage_class is not None:
            vcd_ke["defaultStorageClassOptions"] = {
                "vcdStorageProfileName": storage_class.storage_profile_name,
                "k8sStorageClassName": storage_class.name,
                "useDeleteReclaimPolicy": storage_class.use_delete_reclaim_policy,
                "filesystem": storage_class.filesystem,
            }
        contents = {
            "apiVersion": CAPVCD_API_VERSION,
            "kind": "CAPVCDCluster",
            "name": settings.name,
            "metadata": {
                "name": settings.name,
                "orgName": settings.organization_name,
                "site": settings.vcd_url,
                "virtualDataCenterName": settings.vdc_name,
            },
            "spec": {
                "vcdKe": vcd_ke,
                "capiYaml": dump_manifest(cluster_documents(settings)),
            },
        }
        return DefinedEntity(entity_type=settings.rde_type_id, name=settings.name, entity=contents)
