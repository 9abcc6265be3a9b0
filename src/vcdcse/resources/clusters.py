"""Kubernetes clusters resource."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from vcdcse._config import DEFAULT_POLL_INTERVAL
from vcdcse.exceptions import (
    ClusterError,
    ConflictError,
    CseError,
    NotFoundError,
    ResolutionError,
    TimeoutError,
    UnsupportedVersionError,
    ValidationError,
)
from vcdcse.kubernetes._builder import (
    CAPVCD_NSS,
    CAPVCD_VENDOR,
    ClusterSpecBuilder,
    get_vcdke_config,
)
from vcdcse.kubernetes._manifest import (
    Document,
    add_worker_pools,
    dump_manifest,
    load_manifest,
    set_control_plane_machine_count,
    set_kubernetes_template,
    set_node_health_check,
    set_worker_pool_machine_counts,
)
from vcdcse.kubernetes._names import NameResolutionCache
from vcdcse.kubernetes._protocols import EntityStore, ResourceLookup
from vcdcse.kubernetes._reconstruct import ClusterStateReconstructor, cluster_status
from vcdcse.kubernetes._validation import validate_worker_pool
from vcdcse.kubernetes._versions import (
    cse_components_versions,
    is_upgrade_target,
    tkg_bundle_from_ova_name,
)
from vcdcse.kubernetes._watcher import ProvisioningWatcher
from vcdcse.models.cluster import (
    DEFAULT_CSE_VERSION,
    ClusterChange,
    ClusterSettings,
    ClusterSettingsInternal,
    ClusterState,
    ClusterUpdate,
    ControlPlaneUpdate,
    KubernetesCluster,
    WorkerPoolSettings,
    WorkerPoolUpdate,
)
from vcdcse.models.entity import DefinedEntity
from vcdcse.models.resources import VAppTemplate

logger = logging.getLogger(__name__)

CREATE_LOOKUP_ATTEMPTS = 5

# Handler arguments: cluster, update, manifest documents, spec.vcdKe of the entity
_Handler = Callable[[KubernetesCluster, ClusterUpdate, list[Document], dict[str, Any]], None]


class Clusters:
    """Manage the lifecycle of CSE Kubernetes clusters.

    Example:
        ```python
        from vcdcse import VcdClient
        from vcdcse.models import ClusterSettings, WorkerPoolSettings

        client = VcdClient()
        cluster = client.clusters.create(
            ClusterSettings(
                name="my-cluster",
                organization_id="urn:vcloud:org:...",
                vdc_id="urn:vcloud:vdc:...",
                network_id="urn:vcloud:network:...",
                kubernetes_template_ova_id="urn:vcloud:vapptemplate:...",
                worker_pools=[WorkerPoolSettings(name="worker-pool-1")],
                api_token="...",
                pod_cidr="100.96.0.0/11",
                service_cidr="100.64.0.0/13",
            ),
            timeout=3600,
        )
        cluster = client.clusters.update_worker_pools(cluster, {"worker-pool-1": 2})
        client.clusters.delete(cluster.id)
        ```
    """

    def __init__(
        self,
        entities: EntityStore,
        lookups: ResourceLookup,
        vcd_url: str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entities = entities
        self._lookups = lookups
        self._builder = ClusterSpecBuilder(entities, lookups, vcd_url)
        self._reconstructor = ClusterStateReconstructor(lookups)
        self._watcher = ProvisioningWatcher(
            entities, poll_interval=poll_interval, sleep=sleep, clock=clock
        )
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    # Creation

    def create(self, settings: ClusterSettings, timeout: float = 0) -> KubernetesCluster:
        """Create a cluster and wait until it is provisioned.

        Args:
            settings: Desired cluster.
            timeout: Seconds to wait for provisioning. 0 waits forever.

        Raises:
            ValidationError: If the settings are invalid. Nothing is created.
            ClusterError: If provisioning fails and auto repair is disabled.
            TimeoutError: If the timeout elapses. The cluster is left in place,
                and the error carries its ID and last observed state.
        """
        cluster_id = self.create_async(settings)
        self._entities.resolve(cluster_id)
        self._watcher.wait(cluster_id, timeout=timeout)
        return self.get(cluster_id)

    def create_async(self, settings: ClusterSettings) -> str:
        """Create the cluster entity and return its ID right away.

        The entity stays in ``PRE_CREATED`` state until it is resolved.
        """
        internal = self._builder.build(settings)
        entity = self._builder.entity(internal)
        created = self._entities.create(internal.rde_type_id, entity)
        if created is None or not created.id:
            created = self._find_created(internal)
        logger.info("Created cluster '%s' with ID '%s'", internal.name, created.id)
        return created.id or ""

    def _find_created(self, internal: ClusterSettingsInternal) -> DefinedEntity:
        version = internal.components_versions.capvcd_rde_type_version
        for attempt in range(1, CREATE_LOOKUP_ATTEMPTS + 1):
            found = self._entities.list_by_name(CAPVCD_VENDOR, CAPVCD_NSS, version, internal.name)
            if len(found) == 1:
                return found[0]
            if len(found) > 1:
                raise CseError(
                    f"expected one cluster named '{internal.name}' after creating it, "
                    f"but got {len(found)}"
                )
            logger.debug(
                "Cluster '%s' not visible yet (attempt %d/%d)",
                internal.name,
                attempt,
                CREATE_LOOKUP_ATTEMPTS,
            )
            self._sleep(self.poll_interval)
        raise NotFoundError(
            f"the cluster '{internal.name}' was created but could not be found afterwards",
            resource_type="cluster",
            resource_id=internal.name,
        )

    # Reading

    def get(self, cluster_id: str) -> KubernetesCluster:
        """Get a cluster by ID. The result carries the ETag that updates need."""
        return self._reconstructor.reconstruct(self._entities.get(cluster_id))

    def get_by_name(
        self, name: str, cse_version: str = DEFAULT_CSE_VERSION
    ) -> list[KubernetesCluster]:
        """Find the clusters with the given name. The results carry no ETag."""
        versions = cse_components_versions(cse_version)
        entities = self._entities.list_by_name(
            CAPVCD_VENDOR, CAPVCD_NSS, versions.capvcd_rde_type_version, name
        )
        return [self._reconstructor.reconstruct(entity) for entity in entities]

    def refresh(self, cluster: KubernetesCluster) -> KubernetesCluster:
        """Fetch the latest state of a cluster, with a fresh ETag."""
        return self.get(cluster.id)

    def get_supported_upgrades(self, cluster: KubernetesCluster) -> list[VAppTemplate]:
        """Templates the cluster can be upgraded to."""
        upgrades = []
        for template in self._lookups.iter_vapp_templates():
            try:
                bundle = tkg_bundle_from_ova_name(template.name)
            except UnsupportedVersionError:
                continue
            if is_upgrade_target(bundle, cluster.tkg_version, cluster.kubernetes_version):
                upgrades.append(template)
        return upgrades

    # Updates

    def update(self, cluster: KubernetesCluster, update: ClusterUpdate) -> KubernetesCluster:
        """Apply a partial update to a provisioned cluster.

        Args:
            cluster: Cluster fetched by ID, so that it carries its ETag.
            update: Fields to change. Unset fields are left untouched.

        Returns:
            The cluster after the update, fetched again.

        Raises:
            ConflictError: If the cluster has no ETag or it changed since it was read.
            ClusterError: If the cluster is not provisioned.
            ValidationError: If the update is not valid for this cluster.
        """
        changes = update.changes()
        if not changes:
            return cluster
        if not cluster.etag:
            raise ConflictError(
                f"cluster '{cluster.id}' has no ETag, fetch it by ID before updating it"
            )

        entity = self._entities.get(cluster.id)
        if entity.etag != cluster.etag:
            raise ConflictError(
                f"cluster '{cluster.id}' was modified since it was read, "
                "fetch it again and retry the update"
            )
        state = cluster_status(entity).state
        if state != ClusterState.PROVISIONED.value:
            raise ClusterError(
                f"cluster '{cluster.id}' can only be updated when it is "
                f"'{ClusterState.PROVISIONED.value}', but it is '{state}'",
                cluster_id=cluster.id,
                state=state,
            )

        spec = entity.entity.setdefault("spec", {})
        vcd_ke = spec.setdefault("vcdKe", {})
        documents = load_manifest(spec.get("capiYaml", ""))

        handlers: dict[ClusterChange, _Handler] = {
            ClusterChange.KUBERNETES_TEMPLATE: self._apply_kubernetes_template,
            ClusterChange.CONTROL_PLANE: self._apply_control_plane,
            ClusterChange.WORKER_POOLS: self._apply_worker_pools,
            ClusterChange.NEW_WORKER_POOLS: self._apply_new_worker_pools,
            ClusterChange.NODE_HEALTH_CHECK: self._apply_node_health_check,
            ClusterChange.AUTO_REPAIR_ON_ERRORS: self._apply_auto_repair_on_errors,
        }
        for change in ClusterChange:
            if change in changes:
                logger.debug("Applying change '%s' to cluster '%s'", change.value, cluster.id)
                handlers[change](cluster, update, documents, vcd_ke)

        spec["capiYaml"] = dump_manifest(documents)
        self._entities.update(cluster.id, entity, etag=entity.etag)
        logger.info("Updated cluster '%s'", cluster.id)
        return self.get(cluster.id)

    def _apply_kubernetes_template(
        self,
        cluster: KubernetesCluster,
        update: ClusterUpdate,
        documents: list[Document],
        vcd_ke: dict[str, Any],
    ) -> None:
        ova_id = update.kubernetes_template_ova_id or ""
        try:
            template = self._lookups.get_vapp_template(ova_id)
        except NotFoundError as e:
            raise ResolutionError(
                f"could not retrieve the Kubernetes Template OVA with ID '{ova_id}': {e}",
                resource_type="Kubernetes Template OVA",
                resource_id=ova_id,
            ) from e
        bundle = tkg_bundle_from_ova_name(template.name)
        if not is_upgrade_target(bundle, cluster.tkg_version, cluster.kubernetes_version):
            raise ValidationError(
                f"cannot upgrade cluster '{cluster.id}' from Kubernetes "
                f"'{cluster.kubernetes_version}' (TKG '{cluster.tkg_version}') to "
                f"'{bundle.kubernetes_version}' (TKG '{bundle.tkg_version}')",
                field="kubernetes_template_ova_id",
            )
        set_kubernetes_template(documents, template.name, bundle)

    def _apply_control_plane(
        self,
        cluster: KubernetesCluster,
        update: ClusterUpdate,
        documents: list[Document],
        vcd_ke: dict[str, Any],
    ) -> None:
        if update.control_plane is not None:
            set_control_plane_machine_count(documents, update.control_plane.machine_count)

    def _apply_worker_pools(
        self,
        cluster: KubernetesCluster,
        update: ClusterUpdate,
        documents: list[Document],
        vcd_ke: dict[str, Any],
    ) -> None:
        machine_counts = {
            name: pool.machine_count for name, pool in (update.worker_pools or {}).items()
        }
        set_worker_pool_machine_counts(documents, machine_counts)

    def _apply_new_worker_pools(
        self,
        cluster: KubernetesCluster,
        update: ClusterUpdate,
        documents: list[Document],
        vcd_ke: dict[str, Any],
    ) -> None:
        pools = update.new_worker_pools or []
        for i, pool in enumerate(pools):
            validate_worker_pool(pool, field=f"new_worker_pools[{i}]")

        names = NameResolutionCache(self._lookups)
        names.resolve_storage_profiles(pool.storage_profile_id for pool in pools)
        names.resolve_compute_policies(
            policy_id
            for pool in pools
            for policy_id in (
                pool.sizing_policy_id,
                pool.placement_policy_id,
                pool.vgpu_policy_id,
            )
        )
        add_worker_pools(documents, [ClusterSpecBuilder.worker_pool(p, names) for p in pools])

    def _apply_node_health_check(
        self,
        cluster: KubernetesCluster,
        update: ClusterUpdate,
        documents: list[Document],
        vcd_ke: dict[str, Any],
    ) -> None:
        settings = None
        if update.node_health_check:
            versions = cse_components_versions(cluster.cse_version)
            config = get_vcdke_config(
                self._entities, versions.vcdke_config_rde_type_version, with_health_check=True
            )
            settings = config.machine_health_check
        set_node_health_check(documents, bool(update.node_health_check), settings)

    def _apply_auto_repair_on_errors(
        self,
        cluster: KubernetesCluster,
        update: ClusterUpdate,
        documents: list[Document],
        vcd_ke: dict[str, Any],
    ) -> None:
        vcd_ke["autoRepairOnErrors"] = bool(update.auto_repair_on_errors)

    def update_worker_pools(
        self, cluster: KubernetesCluster, machine_counts: Mapping[str, int]
    ) -> KubernetesCluster:
        """Resize existing worker pools, addressed by name."""
        return self.update(
            cluster,
            ClusterUpdate(
                worker_pools={
                    name: WorkerPoolUpdate(machine_count=count)
                    for name, count in machine_counts.items()
                }
            ),
        )

    def add_worker_pools(
        self, cluster: KubernetesCluster, pools: Sequence[WorkerPoolSettings]
    ) -> KubernetesCluster:
        return self.update(cluster, ClusterUpdate(new_worker_pools=list(pools)))

    def update_control_plane(
        self, cluster: KubernetesCluster, machine_count: int
    ) -> KubernetesCluster:
        return self.update(
            cluster, ClusterUpdate(control_plane=ControlPlaneUpdate(machine_count=machine_count))
        )

    def upgrade(
        self, cluster: KubernetesCluster, kubernetes_template_ova_id: str
    ) -> KubernetesCluster:
        """Move the cluster to another Kubernetes template OVA."""
        return self.update(
            cluster, ClusterUpdate(kubernetes_template_ova_id=kubernetes_template_ova_id)
        )

    def set_health_check(self, cluster: KubernetesCluster, enabled: bool) -> KubernetesCluster:
        return self.update(cluster, ClusterUpdate(node_health_check=enabled))

    def set_auto_repair_on_errors(
        self, cluster: KubernetesCluster, enabled: bool
    ) -> KubernetesCluster:
        return self.update(cluster, ClusterUpdate(auto_repair_on_errors=enabled))

    # Deletion

    def delete(self, cluster_id: str, timeout: float = 0) -> None:
        """Mark a cluster for deletion and wait until it is gone.

        ETag conflicts while marking are retried. A cluster that cannot be
        found is considered deleted.

        Args:
            cluster_id: ID of the cluster.
            timeout: Seconds to wait. 0 waits forever.

        Raises:
            TimeoutError: If the cluster still exists when the timeout elapses.
        """
        start = self._clock()
        marked = False
        with self._entities.quiet():
            while True:
                try:
                    entity = self._entities.get(cluster_id)
                except NotFoundError:
                    logger.info("Cluster '%s' deleted", cluster_id)
                    return

                vcd_ke = entity.entity.setdefault("spec", {}).setdefault("vcdKe", {})
                if vcd_ke.get("markForDelete") and vcd_ke.get("forceDelete"):
                    marked = True
                else:
                    vcd_ke["markForDelete"] = True
                    vcd_ke["forceDelete"] = True
                    try:
                        self._entities.update(cluster_id, entity, etag=entity.etag)
                        marked = True
                    except ConflictError:
                        logger.debug(
                            "Cluster '%s' changed while marking it for deletion, retrying",
                            cluster_id,
                        )

                if timeout and self._clock() - start >= timeout:
                    state = cluster_status(entity).state
                    if marked:
                        message = (
                            f"cluster '{cluster_id}' was successfully marked for deletion "
                            f"but was not removed in time, latest state was '{state}'"
                        )
                    else:
                        message = (
                            f"cluster '{cluster_id}' was not marked for deletion, "
                            "please try again"
                        )
                    raise TimeoutError(message, cluster_id=cluster_id, state=state)
                self._sleep(self.poll_interval)
