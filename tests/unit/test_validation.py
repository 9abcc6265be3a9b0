"""Tests for cluster settings validation."""

from __future__ import annotations

import pytest

from vcdcse.exceptions import ValidationError
from vcdcse.kubernetes._validation import (
    validate_name,
    validate_settings,
    validate_worker_pool,
)
from vcdcse.models.cluster import (
    ClusterSettings,
    ControlPlaneSettings,
    DefaultStorageClassSettings,
    WorkerPoolSettings,
)


class TestNames:
    """Test cluster and pool name rules."""

    @pytest.mark.parametrize("name", ["a", "my-cluster", "k8s1", "a" * 31])
    def test_valid_names(self, name: str) -> None:
        validate_name(name, "name")

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "1cluster",
            "My-cluster",
            "cluster-",
            "my_cluster",
            "a" * 32,
            "-cluster",
            "my-cluster\n",
        ],
    )
    def test_invalid_names(self, name: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_name(name, "name")
        assert exc_info.value.field == "name"


class TestSettings:
    """Test the checks on a full creation request."""

    def test_valid_settings(self, settings: ClusterSettings) -> None:
        validate_settings(settings)

    @pytest.mark.parametrize("count", [0, 2, 4, -1])
    def test_control_plane_count_must_be_odd(self, settings: ClusterSettings, count: int) -> None:
        settings.control_plane = ControlPlaneSettings(machine_count=count)

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "control_plane.machine_count"

    def test_control_plane_disk_minimum(self, settings: ClusterSettings) -> None:
        settings.control_plane.disk_size_gi = 19

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "control_plane.disk_size_gi"

    def test_control_plane_ip_must_be_an_address(self, settings: ClusterSettings) -> None:
        settings.control_plane.ip = "10.0.0.300"

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "control_plane.ip"

    def test_at_least_one_worker_pool(self, settings: ClusterSettings) -> None:
        settings.worker_pools = []

        with pytest.raises(ValidationError, match="at least one worker pool"):
            validate_settings(settings)

    def test_worker_pool_names_are_unique(self, settings: ClusterSettings) -> None:
        settings.worker_pools.append(WorkerPoolSettings(name="worker-pool-1"))

        with pytest.raises(ValidationError, match="unique") as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "worker_pools[1].name"

    def test_worker_pool_needs_nodes_at_creation(self, settings: ClusterSettings) -> None:
        settings.worker_pools[0].machine_count = 0

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "worker_pools[0].machine_count"

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("organization_id", ""),
            ("vdc_id", ""),
            ("network_id", ""),
            ("kubernetes_template_ova_id", ""),
            ("api_token", ""),
            ("pod_cidr", ""),
            ("service_cidr", ""),
            ("cse_version", ""),
        ],
    )
    def test_required_fields(self, settings: ClusterSettings, field: str, value: str) -> None:
        setattr(settings, field, value)

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == field

    @pytest.mark.parametrize("field", ["pod_cidr", "service_cidr", "virtual_ip_subnet"])
    def test_malformed_networks(self, settings: ClusterSettings, field: str) -> None:
        setattr(settings, field, "100.96.0.0/40")

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == field

    def test_unknown_reclaim_policy(self, settings: ClusterSettings) -> None:
        settings.default_storage_class = DefaultStorageClassSettings(
            storage_profile_id="urn:vcloud:vdcstorageProfile:1", name="sc", reclaim_policy="keep"
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "default_storage_class.reclaim_policy"

    def test_unknown_filesystem(self, settings: ClusterSettings) -> None:
        settings.default_storage_class = DefaultStorageClassSettings(
            storage_profile_id="urn:vcloud:vdcstorageProfile:1", name="sc", filesystem="btrfs"
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_settings(settings)

        assert exc_info.value.field == "default_storage_class.filesystem"


class TestWorkerPool:
    """Test single worker pool rules."""

    def test_placement_and_vgpu_are_exclusive(self) -> None:
        pool = WorkerPoolSettings(
            name="gpu-pool", placement_policy_id="placement", vgpu_policy_id="vgpu"
        )

        with pytest.raises(ValidationError, match="either a Placement Policy or a vGPU Policy"):
            validate_worker_pool(pool, "new_worker_pools[0]")

    def test_field_prefix(self) -> None:
        pool = WorkerPoolSettings(name="pool", disk_size_gi=10)

        with pytest.raises(ValidationError) as exc_info:
            validate_worker_pool(pool, "new_worker_pools[2]")

        assert exc_info.value.field == "new_worker_pools[2].disk_size_gi"

    def test_trailing_newline_in_pool_name(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_worker_pool(WorkerPoolSettings(name="worker-pool-1\n"), "worker_pools[0]")

        assert exc_info.value.field == "worker_pools[0].name"

    @pytest.mark.parametrize(
        "name",
        ["control-plane-node-pool", "gpu-control-plane-node-pool", "control-plane-node-pool2"],
    )
    def test_control_plane_suffix_is_reserved(self, name: str) -> None:
        with pytest.raises(ValidationError, match="control plane machines") as exc_info:
            validate_worker_pool(WorkerPoolSettings(name=name), "worker_pools[0]")

        assert exc_info.value.field == "worker_pools[0].name"
