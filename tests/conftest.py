"""Pytest configuration and fixtures."""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

import pytest
import respx

from vcdcse.auth import AccessTokenAuth
from vcdcse.client import VcdClient
from vcdcse.exceptions import ConflictError, NotFoundError
from vcdcse.models.cluster import (
    ClusterSettings,
    ControlPlaneSettings,
    DefaultStorageClassSettings,
    WorkerPoolSettings,
)
from vcdcse.models.common import Reference
from vcdcse.models.entity import DefinedEntity, DefinedEntityType, entity_type_id
from vcdcse.models.resources import (
    ComputePolicy,
    OrgVdcNetwork,
    SessionInfo,
    StorageProfile,
    VAppTemplate,
    Vdc,
)
from vcdcse.resources.clusters import Clusters

VCD_URL = "https://vcd.test.example.com"

ORG_ID = "urn:vcloud:org:a93c9db9-7471-3192-8d09-a8f7eeda85f9"
VDC_ID = "urn:vcloud:vdc:c6b0a8d2-4a8a-4a4d-9a7f-4d4e5c2b1a01"
NETWORK_ID = "urn:vcloud:network:0f3b5f6c-2d5e-4c3a-8a4d-1b2c3d4e5f60"
CATALOG_NAME = "tkgm-catalog"

OVA_ID = "urn:vcloud:vapptemplate:1d2e3f40-5a6b-4c7d-8e9f-0a1b2c3d4e5f"
OVA_NAME = "ubuntu-2004-kube-v1.25.7+vmware.2-tkg.1-8a74b9f12e488c54605b3537acb683bc"
UPGRADE_OVA_ID = "urn:vcloud:vapptemplate:2e3f4051-6b7c-4d8e-9f0a-1b2c3d4e5f60"
UPGRADE_OVA_NAME = "ubuntu-2004-kube-v1.26.8+vmware.1-tkg.1-b8c57a6c8c98d227f74e7b1a9eef27st"
OLD_OVA_ID = "urn:vcloud:vapptemplate:3f405162-7c8d-4e9f-8a1b-2c3d4e5f6071"
OLD_OVA_NAME = "ubuntu-2004-kube-v1.24.11+vmware.1-tkg.1-2ccb2a001f8bd8f15f1bfbc811071830"
PHOTON_OVA_ID = "urn:vcloud:vapptemplate:40516273-8d9e-4f0a-9b2c-3d4e5f607182"

STORAGE_PROFILE_ID = "urn:vcloud:vdcstorageProfile:9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d"
STORAGE_PROFILE_NAME = "*"
FAST_STORAGE_PROFILE_ID = "urn:vcloud:vdcstorageProfile:8b7c6d5e-4f3a-4b2c-9d1e-0f9a8b7c6d5e"
FAST_STORAGE_PROFILE_NAME = "fast"

SIZING_POLICY_ID = "urn:vcloud:vdcComputePolicy:11111111-2222-4333-8444-555555555555"
PLACEMENT_POLICY_ID = "urn:vcloud:vdcComputePolicy:22222222-3333-4444-8555-666666666666"
VGPU_POLICY_ID = "urn:vcloud:vdcComputePolicy:33333333-4444-4555-8666-777777777777"

API_TOKEN = "api-token-0123456789abcdef"


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeEntityStore:
    """In-memory entity store with ETags that change on every update."""

    def __init__(self) -> None:
        self.entities: dict[str, DefinedEntity] = {}
        self.versions: dict[str, int] = {}
        self.gets = 0
        self.updates = 0
        self.quiet_depth = 0
        self.quiet_gets = 0
        self.resolved: list[str] = []
        self.update_errors: list[Exception] = []
        self.on_get: Any = None
        self.return_created = True

    def add(self, entity: DefinedEntity) -> DefinedEntity:
        assert entity.id
        stored = entity.model_copy(deep=True)
        stored.etag = None
        self.entities[entity.id] = stored
        self.versions[entity.id] = 1
        return stored

    def etag(self, entity_id: str) -> str:
        return f'"{self.versions[entity_id]}"'

    def get_type(self, vendor: str, nss: str, version: str) -> DefinedEntityType:
        return DefinedEntityType(
            id=entity_type_id(vendor, nss, version), vendor=vendor, nss=nss, version=version
        )

    def create(self, entity_type_id: str, entity: DefinedEntity) -> DefinedEntity | None:
        _, _, _, vendor, nss, _ = entity_type_id.split(":")
        created = entity.model_copy(
            update={
                "id": f"urn:vcloud:entity:{vendor}:{nss}:{uuid.uuid4()}",
                "state": "PRE_CREATED",
                "owner": Reference(id="urn:vcloud:user:1", name="admin"),
            },
            deep=True,
        )
        self.add(created)
        return created.model_copy(deep=True) if self.return_created else None

    def resolve(self, entity_id: str) -> DefinedEntity:
        self.resolved.append(entity_id)
        self.entities[entity_id].state = "RESOLVED"
        return self.entities[entity_id].model_copy(deep=True)

    def get(self, entity_id: str) -> DefinedEntity:
        self.gets += 1
        if self.quiet_depth:
            self.quiet_gets += 1
        if entity_id not in self.entities:
            raise NotFoundError(f"entity '{entity_id}' not found", resource_id=entity_id)
        if self.on_get is not None:
            self.on_get(self.entities[entity_id])
        entity = self.entities[entity_id].model_copy(deep=True)
        entity.etag = self.etag(entity_id)
        return entity

    def list_by_name(self, vendor: str, nss: str, version: str, name: str) -> list[DefinedEntity]:
        type_id = entity_type_id(vendor, nss, version)
        return [
            e.model_copy(deep=True)
            for e in self.entities.values()
            if e.entity_type == type_id and e.name == name
        ]

    def update(self, entity_id: str, entity: DefinedEntity, etag: str | None) -> DefinedEntity:
        self.updates += 1
        if self.update_errors:
            raise self.update_errors.pop(0)
        if entity_id not in self.entities:
            raise NotFoundError(f"entity '{entity_id}' not found", resource_id=entity_id)
        if etag != self.etag(entity_id):
            raise ConflictError(f"stale ETag {etag} for entity '{entity_id}'")
        stored = entity.model_copy(deep=True)
        stored.etag = None
        self.entities[entity_id] = stored
        self.versions[entity_id] += 1
        updated = stored.model_copy(deep=True)
        updated.etag = self.etag(entity_id)
        return updated

    def delete(self, entity_id: str) -> None:
        self.entities.pop(entity_id)

    @contextmanager
    def quiet(self) -> Iterator[None]:
        self.quiet_depth += 1
        try:
            yield
        finally:
            self.quiet_depth -= 1


class FakeLookups:
    """In-memory VCD objects of a single organization and VDC."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.orgs = {ORG_ID: Reference(id=ORG_ID, name="tenant1")}
        self.vdcs = {VDC_ID: Vdc(id=VDC_ID, name="vdc1", org=self.orgs[ORG_ID])}
        self.networks = {
            NETWORK_ID: OrgVdcNetwork(
                id=NETWORK_ID, name="net1", owner_ref=Reference(id=VDC_ID, name="vdc1")
            )
        }
        self.templates = {
            template.id: template
            for template in (
                VAppTemplate(id=OVA_ID, name=OVA_NAME, catalog_name=CATALOG_NAME),
                VAppTemplate(id=UPGRADE_OVA_ID, name=UPGRADE_OVA_NAME, catalog_name=CATALOG_NAME),
                VAppTemplate(id=OLD_OVA_ID, name=OLD_OVA_NAME, catalog_name=CATALOG_NAME),
                VAppTemplate(
                    id=PHOTON_OVA_ID,
                    name="photon-3-kube-v1.25.7+vmware.2-tkg.1-8a74b9f12e488c54605b3537acb683bc",
                    catalog_name=CATALOG_NAME,
                ),
            )
        }
        self.policies = {
            policy.id: policy
            for policy in (
                ComputePolicy(id=SIZING_POLICY_ID, name="TKG small", is_sizing_only=True),
                ComputePolicy(id=PLACEMENT_POLICY_ID, name="rack-1"),
                ComputePolicy(id=VGPU_POLICY_ID, name="nvidia-a100", is_vgpu_policy=True),
            )
        }
        self.storage_profiles = {
            profile.id: profile
            for profile in (
                StorageProfile(id=STORAGE_PROFILE_ID, name=STORAGE_PROFILE_NAME),
                StorageProfile(id=FAST_STORAGE_PROFILE_ID, name=FAST_STORAGE_PROFILE_NAME),
            )
        }

    @staticmethod
    def _by_id(items: dict[str, Any], item_id: str, what: str) -> Any:
        if item_id not in items:
            raise NotFoundError(f"{what} '{item_id}' not found", resource_id=item_id)
        return items[item_id]

    @staticmethod
    def _by_name(items: dict[str, Any], name: str, what: str) -> Any:
        for item in items.values():
            if item.name == name:
                return item
        raise NotFoundError(f"{what} '{name}' not found", resource_id=name)

    def get_org(self, org_id: str) -> Reference:
        self.calls["get_org"] += 1
        return self._by_id(self.orgs, org_id, "org")

    def get_vdc(self, vdc_id: str) -> Vdc:
        self.calls["get_vdc"] += 1
        return self._by_id(self.vdcs, vdc_id, "vdc")

    def find_vdc(self, org_name: str, name: str) -> Vdc:
        self.calls["find_vdc"] += 1
        return self._by_name(self.vdcs, name, "vdc")

    def get_network(self, network_id: str) -> OrgVdcNetwork:
        self.calls["get_network"] += 1
        return self._by_id(self.networks, network_id, "network")

    def find_network(self, vdc_id: str, name: str) -> OrgVdcNetwork:
        self.calls["find_network"] += 1
        return self._by_name(self.networks, name, "network")

    def get_vapp_template(self, template_id: str) -> VAppTemplate:
        self.calls["get_vapp_template"] += 1
        return self._by_id(self.templates, template_id, "vApp template")

    def find_vapp_template(self, catalog_name: str, name: str) -> VAppTemplate:
        self.calls["find_vapp_template"] += 1
        return self._by_name(self.templates, name, "vApp template")

    def iter_vapp_templates(self) -> Iterator[VAppTemplate]:
        self.calls["iter_vapp_templates"] += 1
        yield from self.templates.values()

    def get_compute_policy(self, policy_id: str) -> ComputePolicy:
        self.calls["get_compute_policy"] += 1
        return self._by_id(self.policies, policy_id, "compute policy")

    def list_compute_policies(self, vdc_id: str) -> list[ComputePolicy]:
        self.calls["list_compute_policies"] += 1
        return list(self.policies.values())

    def get_storage_profile(self, profile_id: str) -> StorageProfile:
        self.calls["get_storage_profile"] += 1
        return self._by_id(self.storage_profiles, profile_id, "storage profile")

    def list_storage_profiles(self, vdc_id: str) -> list[StorageProfile]:
        self.calls["list_storage_profiles"] += 1
        return list(self.storage_profiles.values())

    def current_session(self) -> SessionInfo:
        self.calls["current_session"] += 1
        return SessionInfo(id="session-1", user=Reference(id="urn:vcloud:user:1", name="admin"))


def vcdke_config_entity(with_mhc: bool = True) -> DefinedEntity:
    """Server configuration entity, as CSE 4.2 installs it."""
    k8s_config: dict[str, Any] = {
        "certificateAuthorities": ["-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----"],
    }
    if with_mhc:
        k8s_config["mhc"] = {
            "maxUnhealthyNodes": 100,
            "nodeStartupTimeout": "900",
            "nodeNotReadyTimeout": "300",
            "nodeUnknownTimeout": "200",
        }
    return DefinedEntity(
        id="urn:vcloud:entity:vmware:VCDKEConfig:7a2b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d",
        entity_type="urn:vcloud:type:vmware:VCDKEConfig:1.1.0",
        name="vcdKeConfig",
        entity={
            "profiles": [
                {
                    "name": "production",
                    "containerRegistryUrl": "projects.registry.vmware.com",
                    "K8Config": k8s_config,
                }
            ]
        },
    )


def cluster_status_block(state: str = "provisioned", **capvcd: Any) -> dict[str, Any]:
    """Status that CSE writes into a cluster entity once it starts working on it."""
    return {
        "vcdKe": {
            "state": state,
            "vcdKeVersion": "4.2.0+abcdef",
            "eventSet": [
                {
                    "name": "ClusterRdeCreated",
                    "occurredAt": "2024-01-01T10:00:00Z",
                    "additionalDetails": {"Detailed Event": "cluster entity created"},
                }
            ],
        },
        "capvcd": {
            "capvcdVersion": "1.2.0",
            "vcdProperties": {
                "site": VCD_URL,
                "organizations": [{"id": ORG_ID, "name": "tenant1"}],
                "orgVdcs": [{"id": VDC_ID, "name": "vdc1", "ovdcNetworkName": "net1"}],
            },
            "clusterApiStatus": {"apiEndpoints": [{"host": "10.0.0.10", "port": 6443}]},
            "clusterResourceSetBindings": [
                {"name": "cpi", "kind": "Secret", "applied": True},
            ],
            "eventSet": [
                {
                    "name": "ControlPlaneReady",
                    "occurredAt": "2024-01-01T10:20:00Z",
                    "additionalDetails": {"Detailed Event": "control plane is ready"},
                }
            ],
            **capvcd,
        },
        "cpi": {"version": " 1.5.0 "},
        "csi": {"version": "1.5.0"},
    }


def set_status(store: FakeEntityStore, cluster_id: str, state: str = "provisioned") -> None:
    """Write a status into a stored cluster entity without changing its ETag."""
    store.entities[cluster_id].entity["status"] = cluster_status_block(state)


@pytest.fixture
def base_url() -> str:
    """Test VCD base URL."""
    return VCD_URL


@pytest.fixture
def mock_api(base_url: str) -> Generator[respx.MockRouter, None, None]:
    """Mock API router."""
    with respx.mock(base_url=base_url, assert_all_called=False) as router:
        yield router


@pytest.fixture
def client(base_url: str) -> Generator[VcdClient, None, None]:
    """Create a test VcdClient."""
    c = VcdClient(auth=AccessTokenAuth(access_token="test-access-token"), base_url=base_url)
    yield c
    c.close()


@pytest.fixture
def store() -> FakeEntityStore:
    """Entity store holding the server configuration entity."""
    s = FakeEntityStore()
    s.add(vcdke_config_entity())
    return s


@pytest.fixture
def lookups() -> FakeLookups:
    return FakeLookups()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def clusters(store: FakeEntityStore, lookups: FakeLookups, fake_clock: FakeClock) -> Clusters:
    """Cluster controller over the in-memory fakes, with a fake clock."""
    return Clusters(
        store, lookups, VCD_URL, poll_interval=10, sleep=fake_clock.sleep, clock=fake_clock
    )


@pytest.fixture
def settings() -> ClusterSettings:
    """A valid cluster: 1 control plane node and one worker pool of 1 node."""
    return ClusterSettings(
        cse_version="4.2.0",
        name="my-cluster",
        organization_id=ORG_ID,
        vdc_id=VDC_ID,
        network_id=NETWORK_ID,
        kubernetes_template_ova_id=OVA_ID,
        control_plane=ControlPlaneSettings(
            machine_count=1,
            disk_size_gi=20,
            sizing_policy_id=SIZING_POLICY_ID,
            storage_profile_id=STORAGE_PROFILE_ID,
        ),
        worker_pools=[
            WorkerPoolSettings(
                name="worker-pool-1",
                machine_count=1,
                disk_size_gi=20,
                sizing_policy_id=SIZING_POLICY_ID,
                placement_policy_id=PLACEMENT_POLICY_ID,
                storage_profile_id=STORAGE_PROFILE_ID,
            )
        ],
        default_storage_class=DefaultStorageClassSettings(
            storage_profile_id=FAST_STORAGE_PROFILE_ID,
            name="sc-1",
            reclaim_policy="delete",
            filesystem="ext4",
        ),
        api_token=API_TOKEN,
        node_health_check=True,
        pod_cidr="100.96.0.0/11",
        service_cidr="100.64.0.0/13",
        ssh_public_key="ssh-ed25519 AAAAC3Nza test@example.com",
        auto_repair_on_errors=False,
    )
