"""Static validation of cluster settings.

Runs before any remote call. Every check raises its own ValidationError
whose ``field`` points at the offending attribute.
"""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Iterable

from vcdcse.exceptions import ValidationError
from vcdcse.kubernetes._templates import CONTROL_PLANE_SUFFIX
from vcdcse.models.cluster import (
    ClusterSettings,
    ControlPlaneSettings,
    DefaultStorageClassSettings,
    Filesystem,
    ReclaimPolicy,
    WorkerPoolSettings,
)

NAME_PATTERN = re.compile(r"[a-z](?:[a-z0-9-]{0,29}[a-z0-9])?")
MIN_DISK_SIZE_GI = 20


def validate_name(name: str, field: str) -> None:
    if not NAME_PATTERN.fullmatch(name or ""):
        raise ValidationError(
            f"the name '{name}' must contain only lowercase alphanumeric characters or '-', "
            "start with an alphabetic character, end with an alphanumeric, "
            "and contain at most 31 characters",
            field=field,
        )


def _require(value: str, field: str, what: str) -> None:
    if not value:
        raise ValidationError(f"the {what} is required", field=field)


def _validate_network(value: str, field: str, what: str) -> None:
    try:
        ipaddress.ip_network(value, strict=False)
    except ValueError as e:
        raise ValidationError(f"the {what} '{value}' is malformed: {e}", field=field) from e


def _validate_disk_size(size: int, field: str) -> None:
    if size < MIN_DISK_SIZE_GI:
        raise ValidationError(
            f"disk size in Gibibytes ({size}) must be at least {MIN_DISK_SIZE_GI}",
            field=field,
        )


def validate_control_plane(control_plane: ControlPlaneSettings) -> None:
    count = control_plane.machine_count
    if count < 1 or count % 2 == 0:
        raise ValidationError(
            f"number of control plane nodes must be odd and higher than 0, but it was '{count}'",
            field="control_plane.machine_count",
        )
    _validate_disk_size(control_plane.disk_size_gi, "control_plane.disk_size_gi")
    if control_plane.ip:
        try:
            ipaddress.ip_address(control_plane.ip)
        except ValueError as e:
            raise ValidationError(
                f"the control plane IP '{control_plane.ip}' is malformed",
                field="control_plane.ip",
            ) from e


def validate_worker_pool(pool: WorkerPoolSettings, field: str = "worker_pools") -> None:
    """Check a single worker pool, for creation or for adding it later."""
    validate_name(pool.name, f"{field}.name")
    if CONTROL_PLANE_SUFFIX in pool.name:
        raise ValidationError(
            f"the worker pool name '{pool.name}' must not contain '{CONTROL_PLANE_SUFFIX}', "
            "which names the control plane machines",
            field=f"{field}.name",
        )
    if pool.machine_count < 1:
        raise ValidationError(
            f"number of nodes in worker pool '{pool.name}' must be higher than 0, "
            f"but it was '{pool.machine_count}'",
            field=f"{field}.machine_count",
        )
    _validate_disk_size(pool.disk_size_gi, f"{field}.disk_size_gi")
    if pool.placement_policy_id and pool.vgpu_policy_id:
        raise ValidationError(
            f"the worker pool '{pool.name}' should have either a Placement Policy "
            "or a vGPU Policy, not both",
            field=f"{field}.vgpu_policy_id",
        )


def validate_worker_pools(pools: Iterable[WorkerPoolSettings]) -> None:
    pools = list(pools)
    if not pools:
        raise ValidationError("there must be at least one worker pool", field="worker_pools")
    seen: set[str] = set()
    for index, pool in enumerate(pools):
        validate_worker_pool(pool, f"worker_pools[{index}]")
        if pool.name in seen:
            raise ValidationError(
                f"the names of the worker pools must be unique, but '{pool.name}' is repeated",
                field=f"worker_pools[{index}].name",
            )
        seen.add(pool.name)


def validate_default_storage_class(storage_class: DefaultStorageClassSettings) -> None:
    validate_name(storage_class.name, "default_storage_class.name")
    _require(
        storage_class.storage_profile_id,
        "default_storage_class.storage_profile_id",
        "storage profile ID of the default storage class",
    )
    policies = {p.value for p in ReclaimPolicy}
    if storage_class.reclaim_policy not in policies:
        raise ValidationError(
            f"the reclaim policy '{storage_class.reclaim_policy}' is not valid, "
            f"it must be one of {sorted(policies)}",
            field="default_storage_class.reclaim_policy",
        )
    filesystems = {f.value for f in Filesystem}
    if storage_class.filesystem not in filesystems:
        raise ValidationError(
            f"the filesystem '{storage_class.filesystem}' is not valid, "
            f"it must be one of {sorted(filesystems)}",
            field="default_storage_class.filesystem",
        )


def validate_settings(settings: ClusterSettings) -> None:
    """Check every local invariant of a cluster creation request.

    Raises:
        ValidationError: On the first violated invariant.
    """
    _require(settings.cse_version, "cse_version", "CSE version")
    validate_name(settings.name, "name")
    _require(settings.organization_id, "organization_id", "Organization ID")
    _require(settings.vdc_id, "vdc_id", "VDC ID")
    _require(settings.network_id, "network_id", "Network ID")
    _require(
        settings.kubernetes_template_ova_id,
        "kubernetes_template_ova_id",
        "Kubernetes Template OVA ID",
    )
    validate_control_plane(settings.control_plane)
    validate_worker_pools(settings.worker_pools)
    if settings.default_storage_class is not None:
        validate_default_storage_class(settings.default_storage_class)
    _require(settings.api_token, "api_token", "API token")
    _require(settings.pod_cidr, "pod_cidr", "Pod CIDR")
    _validate_network(settings.pod_cidr, "pod_cidr", "Pod CIDR")
    _require(settings.service_cidr, "service_cidr", "Service CIDR")
    _validate_network(settings.service_cidr, "service_cidr", "Service CIDR")
    if settings.virtual_ip_subnet:
        _validate_network(settings.virtual_ip_subnet, "virtual_ip_subnet", "Virtual IP subnet")
