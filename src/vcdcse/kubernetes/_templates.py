"""Rendering of the CAPI documents that describe a cluster.

Every function returns plain dictionaries ready to be dumped as YAML.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

from vcdcse.models.cluster import (
    ClusterSettingsInternal,
    MachineHealthCheckSettings,
    WorkerPoolInternal,
)

CAPI_API_VERSION = "cluster.x-k8s.io/v1beta1"
CONTROL_PLANE_API_VERSION = "controlplane.cluster.x-k8s.io/v1beta1"
BOOTSTRAP_API_VERSION = "bootstrap.cluster.x-k8s.io/v1beta1"
INFRASTRUCTURE_API_VERSION = "infrastructure.cluster.x-k8s.io/v1beta2"
CAPVCD_API_VERSION = "capvcd.vmware.com/v1.1"

CONTROL_PLANE_SUFFIX = "control-plane-node-pool"
USER_CREDENTIALS_SECRET = "capi-user-credentials"
CRI_SOCKET = "/run/containerd/containerd.sock"
KUBELET_EXTRA_ARGS = {
    "eviction-hard": "nodefs.available<0%,nodefs.inodesFree<0%,imagefs.available<0%",
    "cloud-provider": "external",
}


@dataclass(frozen=True)
class ManifestContext:
    """Values shared by the documents of one cluster."""

    cluster_name: str
    catalog: str
    template: str
    kubernetes_version: str
    container_registry_url: str = ""
    ssh_public_key: str = ""
    base64_certificates: tuple[str, ...] = field(default=())

    @property
    def namespace(self) -> str:
        return f"{self.cluster_name}-ns"

    @property
    def control_plane_name(self) -> str:
        return f"{self.cluster_name}-{CONTROL_PLANE_SUFFIX}"


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _with_seconds(value: str) -> str:
    value = str(value)
    return value if value.endswith("s") else f"{value}s"


def _metadata(name: str, namespace: str, **extra: Any) -> dict[str, Any]:
    return {"name": name, "namespace": namespace, **extra}


def _ref(api_version: str, kind: str, name: str, namespace: str) -> dict[str, str]:
    return {"apiVersion": api_version, "kind": kind, "name": name, "namespace": namespace}


def _users(ssh_public_key: str) -> list[dict[str, Any]]:
    keys = [ssh_public_key] if ssh_public_key else []
    return [{"name": "root", "sshAuthorizedKeys": keys}]


def _certificate_files(ctx: ManifestContext) -> dict[str, Any]:
    if not ctx.base64_certificates:
        return {}
    files = [
        {
            "path": f"/etc/ssl/certs/custom_certificate_{i}.crt",
            "owner": "root:root",
            "permissions": "0644",
            "encoding": "base64",
            "content": certificate,
        }
        for i, certificate in enumerate(ctx.base64_certificates)
    ]
    commands = [
        "mv /etc/ssl/certs/custom_certificate_*.crt /usr/local/share/ca-certificates && "
        "update-ca-certificates"
    ]
    return {"files": files, "preKubeadmCommands": commands}


def _node_registration() -> dict[str, Any]:
    return {
        "nodeRegistration": {
            "criSocket": CRI_SOCKET,
            "kubeletExtraArgs": dict(KUBELET_EXTRA_ARGS),
        }
    }


def machine_template(
    ctx: ManifestContext,
    name: str,
    *,
    disk_size_gi: int,
    sizing_policy: str = "",
    placement_policy: str = "",
    storage_profile: str = "",
    enable_gpu: bool = False,
) -> dict[str, Any]:
    return {
        "apiVersion": INFRASTRUCTURE_API_VERSION,
        "kind": "VCDMachineTemplate",
        "metadata": _metadata(name, ctx.namespace),
        "spec": {
            "template": {
                "spec": {
                    "catalog": ctx.catalog,
                    "template": ctx.template,
                    "sizingPolicy": sizing_policy,
                    "placementPolicy": placement_policy,
                    "storageProfile": storage_profile,
                    "diskSize": f"{disk_size_gi}Gi",
                    "enableNvidiaGPU": enable_gpu,
                }
            }
        },
    }


def worker_pool_documents(ctx: ManifestContext, pool: WorkerPoolInternal) -> list[dict[str, Any]]:
    """VCDMachineTemplate, KubeadmConfigTemplate and MachineDeployment of a pool.

    A pool uses either a placement or a vGPU policy; the vGPU one also goes
    in the placementPolicy field.
    """
    placement_policy = pool.vgpu_policy_name or pool.placement_policy_name
    template = machine_template(
        ctx,
        pool.name,
        disk_size_gi=pool.disk_size_gi,
        sizing_policy=pool.sizing_policy_name,
        placement_policy=placement_policy,
        storage_profile=pool.storage_profile_name,
        enable_gpu=bool(pool.vgpu_policy_name),
    )
    config_template = {
        "apiVersion": BOOTSTRAP_API_VERSION,
        "kind": "KubeadmConfigTemplate",
        "metadata": _metadata(pool.name, ctx.namespace),
        "spec": {
            "template": {
                "spec": {
                    "users": _users(ctx.ssh_public_key),
                    "useExperimentalRetryJoin": True,
                    **_certificate_files(ctx),
                    "joinConfiguration": _node_registration(),
                }
            }
        },
    }
    deployment = {
        "apiVersion": CAPI_API_VERSION,
        "kind": "MachineDeployment",
        "metadata": _metadata(pool.name, ctx.namespace),
        "spec": {
            "clusterName": ctx.cluster_name,
            "replicas": pool.machine_count,
            "selector": {"matchLabels": None},
            "template": {
                "spec": {
                    "bootstrap": {
                        "configRef": _ref(
                            BOOTSTRAP_API_VERSION, "KubeadmConfigTemplate", pool.name, ctx.namespace
                        )
                    },
                    "clusterName": ctx.cluster_name,
                    "infrastructureRef": _ref(
                        INFRASTRUCTURE_API_VERSION, "VCDMachineTemplate", pool.name, ctx.namespace
                    ),
                    "version": ctx.kubernetes_version,
                }
            },
        },
    }
    return [template, config_template, deployment]


def machine_health_check(
    cluster_name: str, namespace: str, settings: MachineHealthCheckSettings
) -> dict[str, Any]:
    return {
        "apiVersion": CAPI_API_VERSION,
        "kind": "MachineHealthCheck",
        "metadata": _metadata(
            cluster_name,
            namespace,
            labels={"clusterctl.cluster.x-k8s.io": "", "clusterctl.cluster.x-k8s.io/move": ""},
        ),
        "spec": {
            "clusterName": cluster_name,
            "maxUnhealthy": "%.0f%%" % settings.max_unhealthy_nodes_percentage,
            "nodeStartupTimeout": _with_seconds(settings.node_startup_timeout),
            "selector": {"matchLabels": {"cluster.x-k8s.io/cluster-name": cluster_name}},
            "unhealthyConditions": [
                {
                    "type": "Ready",
                    "status": "Unknown",
                    "timeout": _with_seconds(settings.node_unknown_timeout),
                },
                {
                    "type": "Ready",
                    "status": "False",
                    "timeout": _with_seconds(settings.node_not_ready_timeout),
                },
            ],
        },
    }


def _cluster(settings: ClusterSettingsInternal, ctx: ManifestContext) -> dict[str, Any]:
    bundle = settings.tkg_version_bundle
    return {
        "apiVersion": CAPI_API_VERSION,
        "kind": "Cluster",
        "metadata": _metadata(
            ctx.cluster_name,
            ctx.namespace,
            labels={
                "cluster-role.tkg.tanzu.vmware.com/management": "",
                "tanzuKubernetesRelease": bundle.tkr_version,
                "tkg.tanzu.vmware.com/cluster-name": ctx.cluster_name,
            },
            annotations={"osInfo": "ubuntu,20.04,amd64", "TKGVERSION": bundle.tkg_version},
        ),
        "spec": {
            "clusterNetwork": {
                "pods": {"cidrBlocks": [settings.pod_cidr]},
                "serviceDomain": "cluster.local",
                "services": {"cidrBlocks": [settings.service_cidr]},
            },
            "controlPlaneRef": _ref(
                CONTROL_PLANE_API_VERSION,
                "KubeadmControlPlane",
                ctx.control_plane_name,
                ctx.namespace,
            ),
            "infrastructureRef": _ref(
                INFRASTRUCTURE_API_VERSION, "VCDCluster", ctx.cluster_name, ctx.namespace
            ),
        },
    }


def _credentials(settings: ClusterSettingsInternal, ctx: ManifestContext) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(USER_CREDENTIALS_SECRET, ctx.namespace),
        "type": "Opaque",
        "data": {"username": _b64(settings.owner), "refreshToken": _b64(settings.api_token)},
    }


def _vcd_cluster(settings: ClusterSettingsInternal, ctx: ManifestContext) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "site": settings.vcd_url,
        "org": settings.organization_name,
        "ovdc": settings.vdc_name,
        "ovdcNetwork": settings.network_name,
        "useAsManagementCluster": False,
        "userContext": {"secretRef": {"name": USER_CREDENTIALS_SECRET, "namespace": ctx.namespace}},
        "loadBalancerConfigSpec": {"vipSubnet": settings.virtual_ip_subnet},
    }
    if settings.control_plane.ip:
        spec["controlPlaneEndpoint"] = {"host": settings.control_plane.ip, "port": 6443}
    return {
        "apiVersion": INFRASTRUCTURE_API_VERSION,
        "kind": "VCDCluster",
        "metadata": _metadata(ctx.cluster_name, ctx.namespace),
        "spec": spec,
    }


def _control_plane(settings: ClusterSettingsInternal, ctx: ManifestContext) -> dict[str, Any]:
    bundle = settings.tkg_version_bundle
    registry = ctx.container_registry_url
    return {
        "apiVersion": CONTROL_PLANE_API_VERSION,
        "kind": "KubeadmControlPlane",
        "metadata": _metadata(ctx.control_plane_name, ctx.namespace),
        "spec": {
            "kubeadmConfigSpec": {
                "clusterConfiguration": {
                    "apiServer": {"certSANs": ["localhost", "127.0.0.1"]},
                    "controllerManager": {"extraArgs": {"enable-hostpath-provisioner": "true"}},
                    "dns": {"imageRepository": registry, "imageTag": bundle.core_dns_version},
                    "etcd": {
                        "local": {"imageRepository": registry, "imageTag": bundle.etcd_version}
                    },
                    "imageRepository": registry,
                },
                "users": _users(ctx.ssh_public_key),
                **_certificate_files(ctx),
                "initConfiguration": _node_registration(),
                "joinConfiguration": _node_registration(),
            },
            "machineTemplate": {
                "infrastructureRef": _ref(
                    INFRASTRUCTURE_API_VERSION,
                    "VCDMachineTemplate",
                    ctx.control_plane_name,
                    ctx.namespace,
                )
            },
            "replicas": settings.control_plane.machine_count,
            "version": bundle.kubernetes_version,
        },
    }


def manifest_context(settings: ClusterSettingsInternal) -> ManifestContext:
    return ManifestContext(
        cluster_name=settings.name,
        catalog=settings.catalog_name,
        template=settings.kubernetes_template_ova_name,
        kubernetes_version=settings.tkg_version_bundle.kubernetes_version,
        container_registry_url=settings.vcdke_config.container_registry_url,
        ssh_public_key=settings.ssh_public_key,
        base64_certificates=settings.vcdke_config.base64_certificates,
    )


def cluster_documents(settings: ClusterSettingsInternal) -> list[dict[str, Any]]:
    """Every CAPI document of a new cluster, in creation order.

    The MachineHealthCheck is only rendered when the server configuration
    carries health check thresholds.
    """
    ctx = manifest_context(settings)
    control_plane = settings.control_plane
    documents = [
        _cluster(settings, ctx),
        _credentials(settings, ctx),
        _vcd_cluster(settings, ctx),
        machine_template(
            ctx,
            ctx.control_plane_name,
            disk_size_gi=control_plane.disk_size_gi,
            sizing_policy=control_plane.sizing_policy_name,
            placement_policy=control_plane.placement_policy_name,
            storage_profile=control_plane.storage_profile_name,
        ),
        _control_plane(settings, ctx),
    ]
    for pool in settings.worker_pools:
        documents.extend(worker_pool_documents(ctx, pool))

    mhc = settings.vcdke_config.machine_health_check
    if mhc is not None:
        documents.append(machine_health_check(ctx.cluster_name, ctx.namespace, mhc))
    return documents
