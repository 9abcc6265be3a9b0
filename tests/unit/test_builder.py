"""Tests for building the entity of a new cluster."""

from __future__ import annotations

import base64

import pytest
import yaml
from conftest import (
    API_TOKEN,
    CATALOG_NAME,
    OVA_NAME,
    PHOTON_OVA_ID,
    VCD_URL,
    VGPU_POLICY_ID,
    FakeEntityStore,
    FakeLookups,
    vcdke_config_entity,
)

from vcdcse.exceptions import (
    InvalidEntityError,
    ResolutionError,
    UnsupportedVersionError,
    ValidationError,
)
from vcdcse.kubernetes import ClusterSpecBuilder, get_vcdke_config
from vcdcse.models.cluster import ClusterSettings, WorkerPoolSettings


@pytest.fixture
def builder(store: FakeEntityStore, lookups: FakeLookups) -> ClusterSpecBuilder:
    return ClusterSpecBuilder(store, lookups, VCD_URL)


class TestBuild:
    """Test settings to internal payload."""

    def test_names_replace_ids(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings
    ) -> None:
        internal = builder.build(settings)

        assert internal.organization_name == "tenant1"
        assert internal.vdc_name == "vdc1"
        assert internal.network_name == "net1"
        assert internal.kubernetes_template_ova_name == OVA_NAME
        assert internal.catalog_name == CATALOG_NAME
        assert internal.rde_type_id == "urn:vcloud:type:vmware:capvcdCluster:1.3.0"
        assert internal.control_plane.sizing_policy_name == "TKG small"
        assert internal.control_plane.storage_profile_name == "*"
        pool = internal.worker_pools[0]
        assert pool.sizing_policy_name == "TKG small"
        assert pool.placement_policy_name == "rack-1"
        assert pool.vgpu_policy_name == ""
        assert internal.default_storage_class is not None
        assert internal.default_storage_class.storage_profile_name == "fast"
        assert internal.default_storage_class.use_delete_reclaim_policy is True
        assert internal.owner == "admin"
        assert internal.tkg_version_bundle.kubernetes_version == "v1.25.7+vmware.2"
        assert internal.vcdke_config.container_registry_url == "projects.registry.vmware.com/tkg"

    def test_policies_are_resolved_once(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings, lookups: FakeLookups
    ) -> None:
        builder.build(settings)

        assert lookups.calls["get_compute_policy"] == 2
        assert lookups.calls["get_storage_profile"] == 2

    def test_explicit_owner_skips_session(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings, lookups: FakeLookups
    ) -> None:
        settings.owner = "ops"

        internal = builder.build(settings)

        assert internal.owner == "ops"
        assert lookups.calls["current_session"] == 0

    def test_validation_happens_before_any_lookup(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings, lookups: FakeLookups
    ) -> None:
        settings.control_plane.machine_count = 2

        with pytest.raises(ValidationError):
            builder.build(settings)

        assert sum(lookups.calls.values()) == 0

    def test_unsupported_cse_version(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings, lookups: FakeLookups
    ) -> None:
        settings.cse_version = "4.0.0"

        with pytest.raises(UnsupportedVersionError):
            builder.build(settings)

        assert sum(lookups.calls.values()) == 0

    def test_unknown_vdc(self, builder: ClusterSpecBuilder, settings: ClusterSettings) -> None:
        settings.vdc_id = "urn:vcloud:vdc:00000000-0000-0000-0000-000000000000"

        with pytest.raises(ResolutionError) as exc_info:
            builder.build(settings)

        assert "could not retrieve the VDC with ID" in str(exc_info.value)
        assert exc_info.value.resource_id == settings.vdc_id

    def test_photon_template(self, builder: ClusterSpecBuilder, settings: ClusterSettings) -> None:
        settings.kubernetes_template_ova_id = PHOTON_OVA_ID

        with pytest.raises(UnsupportedVersionError, match="Photon"):
            builder.build(settings)

    def test_vgpu_pool(self, builder: ClusterSpecBuilder, settings: ClusterSettings) -> None:
        settings.worker_pools.append(
            WorkerPoolSettings(name="gpu-pool", machine_count=1, vgpu_policy_id=VGPU_POLICY_ID)
        )

        internal = builder.build(settings)

        assert internal.worker_pools[1].vgpu_policy_name == "nvidia-a100"


class TestEntity:
    """Test the entity sent to VCD."""

    def test_entity_contents(self, builder: ClusterSpecBuilder, settings: ClusterSettings) -> None:
        entity = builder.entity(builder.build(settings))

        assert entity.entity_type == "urn:vcloud:type:vmware:capvcdCluster:1.3.0"
        assert entity.name == "my-cluster"
        contents = entity.entity
        assert contents["apiVersion"] == "capvcd.vmware.com/v1.1"
        assert contents["kind"] == "CAPVCDCluster"
        assert contents["metadata"] == {
            "name": "my-cluster",
            "orgName": "tenant1",
            "site": VCD_URL,
            "virtualDataCenterName": "vdc1",
        }
        vcd_ke = contents["spec"]["vcdKe"]
        assert vcd_ke["isVCDKECluster"] is True
        assert vcd_ke["markForDelete"] is False
        assert vcd_ke["forceDelete"] is False
        assert vcd_ke["autoRepairOnErrors"] is False
        assert vcd_ke["secure"] == {"apiToken": API_TOKEN}
        assert vcd_ke["defaultStorageClassOptions"] == {
            "vcdStorageProfileName": "fast",
            "k8sStorageClassName": "sc-1",
            "useDeleteReclaimPolicy": True,
            "filesystem": "ext4",
        }

    def test_manifest_documents(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings
    ) -> None:
        """One control plane, one pool and the health check make nine documents."""
        entity = builder.entity(builder.build(settings))

        documents = list(yaml.safe_load_all(entity.entity["spec"]["capiYaml"]))

        assert [d["kind"] for d in documents] == [
            "Cluster",
            "Secret",
            "VCDCluster",
            "VCDMachineTemplate",
            "KubeadmControlPlane",
            "VCDMachineTemplate",
            "KubeadmConfigTemplate",
            "MachineDeployment",
            "MachineHealthCheck",
        ]
        assert all(d["metadata"]["namespace"] == "my-cluster-ns" for d in documents)

        cluster, secret, vcd_cluster, _, control_plane, pool_template, _, deployment, mhc = (
            documents
        )
        assert cluster["metadata"]["annotations"]["TKGVERSION"] == "v2.2.0"
        assert cluster["spec"]["clusterNetwork"]["pods"]["cidrBlocks"] == ["100.96.0.0/11"]
        assert base64.b64decode(secret["data"]["username"]).decode() == "admin"
        assert base64.b64decode(secret["data"]["refreshToken"]).decode() == API_TOKEN
        assert vcd_cluster["spec"]["org"] == "tenant1"
        assert vcd_cluster["spec"]["ovdcNetwork"] == "net1"
        assert "controlPlaneEndpoint" not in vcd_cluster["spec"]
        assert control_plane["spec"]["replicas"] == 1
        assert control_plane["spec"]["version"] == "v1.25.7+vmware.2"
        assert len(control_plane["spec"]["kubeadmConfigSpec"]["files"]) == 1
        machine = pool_template["spec"]["template"]["spec"]
        assert machine["placementPolicy"] == "rack-1"
        assert machine["diskSize"] == "20Gi"
        assert machine["enableNvidiaGPU"] is False
        assert deployment["spec"]["replicas"] == 1
        assert mhc["spec"]["maxUnhealthy"] == "100%"

    def test_no_health_check(self, builder: ClusterSpecBuilder, settings: ClusterSettings) -> None:
        settings.node_health_check = False

        entity = builder.entity(builder.build(settings))

        kinds = [d["kind"] for d in yaml.safe_load_all(entity.entity["spec"]["capiYaml"])]
        assert len(kinds) == 8
        assert "MachineHealthCheck" not in kinds

    def test_control_plane_endpoint(
        self, builder: ClusterSpecBuilder, settings: ClusterSettings
    ) -> None:
        settings.control_plane.ip = "10.0.0.50"

        entity = builder.entity(builder.build(settings))

        documents = list(yaml.safe_load_all(entity.entity["spec"]["capiYaml"]))
        assert documents[2]["spec"]["controlPlaneEndpoint"] == {"host": "10.0.0.50", "port": 6443}


class TestVcdKeConfig:
    """Test reading the server configuration entity."""

    def test_health_check_thresholds(self, store: FakeEntityStore) -> None:
        config = get_vcdke_config(store, "1.1.0", with_health_check=True)

        assert config.machine_health_check is not None
        assert config.machine_health_check.max_unhealthy_nodes_percentage == 100.0
        assert config.machine_health_check.node_startup_timeout == "900"
        assert config.machine_health_check.node_not_ready_timeout == "300"
        assert config.machine_health_check.node_unknown_timeout == "200"
        assert len(config.base64_certificates) == 1

    def test_thresholds_only_when_asked(self, store: FakeEntityStore) -> None:
        config = get_vcdke_config(store, "1.1.0")

        assert config.machine_health_check is None

    def test_missing_entity(self) -> None:
        with pytest.raises(InvalidEntityError, match="exactly one"):
            get_vcdke_config(FakeEntityStore(), "1.1.0")

    def test_missing_profiles(self) -> None:
        store = FakeEntityStore()
        entity = vcdke_config_entity()
        entity.entity = {"profiles": []}
        store.add(entity)

        with pytest.raises(InvalidEntityError, match="profiles"):
            get_vcdke_config(store, "1.1.0")
