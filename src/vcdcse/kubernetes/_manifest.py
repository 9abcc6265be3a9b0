"""The CAPI manifest embedded in a cluster entity.

The manifest is a multi-document YAML string. It is loaded into plain
dictionaries, which are what gets edited and written back, and each
dictionary can be read through a typed view selected by its ``kind``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import Discriminator, Field, Tag, TypeAdapter
from pydantic import ValidationError as SchemaError

from vcdcse.exceptions import InvalidEntityError, ValidationError
from vcdcse.kubernetes._templates import (
    ManifestContext,
    machine_health_check,
    worker_pool_documents,
)
from vcdcse.models.cluster import (
    MachineHealthCheckSettings,
    TkgVersionBundle,
    WorkerPoolInternal,
)
from vcdcse.models.common import CseModel

logger = logging.getLogger(__name__)

Document = dict[str, Any]


# Typed views


class ObjectMeta(CseModel):
    name: str = ""
    namespace: str = ""
    labels: dict[str, Any] = Field(default_factory=dict)
    annotations: dict[str, Any] = Field(default_factory=dict)


class _Document(CseModel):
    api_version: str = Field("", alias="apiVersion")
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name


class CidrBlocks(CseModel):
    cidr_blocks: list[str] = Field(default_factory=list, alias="cidrBlocks")


class ClusterNetwork(CseModel):
    pods: CidrBlocks = Field(default_factory=CidrBlocks)
    services: CidrBlocks = Field(default_factory=CidrBlocks)


class ClusterSpec(CseModel):
    cluster_network: ClusterNetwork = Field(default_factory=ClusterNetwork, alias="clusterNetwork")


class ClusterDocument(_Document):
    kind: Literal["Cluster"] = "Cluster"
    spec: ClusterSpec = Field(default_factory=ClusterSpec)

    @property
    def tkg_version(self) -> str:
        return str(self.metadata.annotations.get("TKGVERSION", ""))


class LoadBalancerConfigSpec(CseModel):
    vip_subnet: str = Field("", alias="vipSubnet")


class VcdClusterSpec(CseModel):
    load_balancer_config_spec: LoadBalancerConfigSpec = Field(
        default_factory=LoadBalancerConfigSpec, alias="loadBalancerConfigSpec"
    )


class VcdClusterDocument(_Document):
    kind: Literal["VCDCluster"] = "VCDCluster"
    spec: VcdClusterSpec = Field(default_factory=VcdClusterSpec)


class VcdMachineSpec(CseModel):
    catalog: str = ""
    template: str = ""
    sizing_policy: str = Field("", alias="sizingPolicy")
    placement_policy: str = Field("", alias="placementPolicy")
    storage_profile: str = Field("", alias="storageProfile")
    disk_size: str = Field(alias="diskSize")
    enable_nvidia_gpu: bool = Field(False, alias="enableNvidiaGPU")


class VcdMachineTemplateBody(CseModel):
    spec: VcdMachineSpec


class VcdMachineTemplateSpec(CseModel):
    template: VcdMachineTemplateBody


class VcdMachineTemplateDocument(_Document):
    kind: Literal["VCDMachineTemplate"] = "VCDMachineTemplate"
    spec: VcdMachineTemplateSpec

    @property
    def machine(self) -> VcdMachineSpec:
        return self.spec.template.spec

    @property
    def disk_size_gi(self) -> int:
        try:
            return int(self.machine.disk_size.replace("Gi", ""))
        except ValueError as e:
            raise InvalidEntityError(
                f"the disk size '{self.machine.disk_size}' of '{self.name}' is malformed"
            ) from e


class KubeadmUser(CseModel):
    name: str = ""
    ssh_authorized_keys: list[str] = Field(default_factory=list, alias="sshAuthorizedKeys")


class KubeadmConfigSpec(CseModel):
    users: list[KubeadmUser] = Field(default_factory=list)


class ObjectReference(CseModel):
    kind: str = ""
    name: str = ""


class MachineTemplate(CseModel):
    infrastructure_ref: ObjectReference = Field(
        default_factory=ObjectReference, alias="infrastructureRef"
    )


class KubeadmControlPlaneSpec(CseModel):
    replicas: int
    version: str = ""
    kubeadm_config_spec: KubeadmConfigSpec = Field(
        default_factory=KubeadmConfigSpec, alias="kubeadmConfigSpec"
    )
    machine_template: MachineTemplate = Field(
        default_factory=MachineTemplate, alias="machineTemplate"
    )


class KubeadmControlPlaneDocument(_Document):
    kind: Literal["KubeadmControlPlane"] = "KubeadmControlPlane"
    spec: KubeadmControlPlaneSpec

    @property
    def machine_template_name(self) -> str:
        """Name of the VCDMachineTemplate of the control plane machines."""
        return self.spec.machine_template.infrastructure_ref.name or self.name


class MachineDeploymentSpec(CseModel):
    replicas: int


class MachineDeploymentDocument(_Document):
    kind: Literal["MachineDeployment"] = "MachineDeployment"
    spec: MachineDeploymentSpec


class MachineHealthCheckDocument(_Document):
    kind: Literal["MachineHealthCheck"] = "MachineHealthCheck"


class OtherDocument(_Document):
    """Any document whose contents are not read (Secret, KubeadmConfigTemplate...)."""

    kind: str = ""


_VIEWS = {
    "Cluster",
    "VCDCluster",
    "VCDMachineTemplate",
    "KubeadmControlPlane",
    "MachineDeployment",
    "MachineHealthCheck",
}


def _view_tag(value: Any) -> str:
    kind = value.get("kind") if isinstance(value, dict) else getattr(value, "kind", None)
    return kind if kind in _VIEWS else "Other"


ManifestDocument = Annotated[
    Union[
        Annotated[ClusterDocument, Tag("Cluster")],
        Annotated[VcdClusterDocument, Tag("VCDCluster")],
        Annotated[VcdMachineTemplateDocument, Tag("VCDMachineTemplate")],
        Annotated[KubeadmControlPlaneDocument, Tag("KubeadmControlPlane")],
        Annotated[MachineDeploymentDocument, Tag("MachineDeployment")],
        Annotated[MachineHealthCheckDocument, Tag("MachineHealthCheck")],
        Annotated[OtherDocument, Tag("Other")],
    ],
    Discriminator(_view_tag),
]

_MANIFEST = TypeAdapter(list[ManifestDocument])


# Codec


def load_manifest(text: str) -> list[Document]:
    """Split a multi-document YAML string into dictionaries."""
    if not text or not text.strip():
        return []
    try:
        documents = [d for d in yaml.safe_load_all(text) if d is not None]
    except yaml.YAMLError as e:
        raise InvalidEntityError(f"the CAPI YAML is malformed: {e}") from e
    for document in documents:
        if not isinstance(document, dict):
            raise InvalidEntityError(
                f"expected every CAPI YAML document to be a mapping, got {type(document).__name__}"
            )
    return documents


def dump_manifest(documents: Sequence[Document]) -> str:
    return yaml.safe_dump_all(documents, sort_keys=False)


def read_manifest(documents: Sequence[Document]) -> list[ManifestDocument]:
    """Typed views of the documents, in the same order."""
    try:
        return _MANIFEST.validate_python(list(documents))
    except SchemaError as e:
        raise InvalidEntityError(f"the CAPI YAML is not a valid cluster description: {e}") from e


def control_plane_template_name(views: Sequence[ManifestDocument]) -> str:
    """Name of the VCDMachineTemplate referenced by the single KubeadmControlPlane."""
    control_planes = [v for v in views if isinstance(v, KubeadmControlPlaneDocument)]
    if len(control_planes) != 1:
        raise InvalidEntityError(
            f"expected one KubeadmControlPlane in the CAPI YAML, but got {len(control_planes)}"
        )
    return control_planes[0].machine_template_name


# Patch helpers. Each one edits the dictionaries in place.


def _get(document: Document, path: str) -> Any:
    value: Any = document
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            raise InvalidEntityError(
                f"incorrect CAPI YAML: key '{path}' does not exist in {document.get('kind')}"
            )
        value = value[key]
    return value


def _of_kind(documents: Sequence[Document], kind: str) -> list[Document]:
    return [d for d in documents if d.get("kind") == kind]


def _control_plane(documents: Sequence[Document]) -> Document:
    found = _of_kind(documents, "KubeadmControlPlane")
    if len(found) != 1:
        raise InvalidEntityError(
            f"expected one KubeadmControlPlane in the CAPI YAML, but got {len(found)}"
        )
    return found[0]


def set_kubernetes_template(
    documents: list[Document], ova_name: str, bundle: TkgVersionBundle
) -> None:
    """Point every machine at a new template OVA and bump the versions it ships."""
    templates = _of_kind(documents, "VCDMachineTemplate")
    if not templates:
        raise InvalidEntityError(
            "could not find any template inside the VCDMachineTemplate documents in the CAPI YAML"
        )
    for document in templates:
        _get(document, "spec.template.spec")["template"] = ova_name

    control_plane = _control_plane(documents)
    control_plane_spec = _get(control_plane, "spec")
    control_plane_spec["version"] = bundle.kubernetes_version
    configuration_path = "spec.kubeadmConfigSpec.clusterConfiguration"
    cluster_configuration = control_plane_spec.get("kubeadmConfigSpec", {}).get(
        "clusterConfiguration", {}
    )
    if "dns" in cluster_configuration:
        _get(control_plane, f"{configuration_path}.dns")["imageTag"] = bundle.core_dns_version
    if "etcd" in cluster_configuration:
        _get(control_plane, f"{configuration_path}.etcd.local")["imageTag"] = bundle.etcd_version

    for document in _of_kind(documents, "MachineDeployment"):
        _get(document, "spec.template.spec")["version"] = bundle.kubernetes_version

    for document in _of_kind(documents, "Cluster"):
        metadata = document.setdefault("metadata", {})
        metadata.setdefault("annotations", {})["TKGVERSION"] = bundle.tkg_version
        labels = metadata.get("labels")
        if labels and "tanzuKubernetesRelease" in labels:
            labels["tanzuKubernetesRelease"] = bundle.tkr_version


def set_control_plane_machine_count(documents: list[Document], machine_count: int) -> None:
    if machine_count < 1 or machine_count % 2 == 0:
        raise ValidationError(
            "number of control plane nodes must be odd and higher than 0, "
            f"but it was '{machine_count}'",
            field="control_plane.machine_count",
        )
    _get(_control_plane(documents), "spec")["replicas"] = machine_count


def set_worker_pool_machine_counts(
    documents: list[Document], machine_counts: Mapping[str, int]
) -> None:
    """Resize existing worker pools, addressed by name."""
    deployments = {
        d.get("metadata", {}).get("name"): d for d in _of_kind(documents, "MachineDeployment")
    }
    for name, machine_count in machine_counts.items():
        if machine_count < 0:
            raise ValidationError(
                f"number of nodes in worker pool '{name}' must not be negative, "
                f"but it was '{machine_count}'",
                field=f"worker_pools.{name}.machine_count",
            )
        if name not in deployments:
            raise ValidationError(
                f"the worker pool '{name}' does not exist in the cluster",
                field=f"worker_pools.{name}",
            )
        _get(deployments[name], "spec")["replicas"] = machine_count


def manifest_context(documents: Sequence[Document]) -> ManifestContext:
    """Recover the values shared by all the documents of an existing cluster."""
    views = read_manifest(documents)
    template_name = control_plane_template_name(views)
    clusters = [v for v in views if isinstance(v, ClusterDocument)]
    control_plane = next(v for v in views if isinstance(v, KubeadmControlPlaneDocument))
    control_plane_templates = [
        v
        for v in views
        if isinstance(v, VcdMachineTemplateDocument) and v.name == template_name
    ]
    if not clusters or not control_plane_templates:
        raise InvalidEntityError(
            "the CAPI YAML lacks the Cluster or the control plane VCDMachineTemplate "
            f"'{template_name}'"
        )
    machine = control_plane_templates[0].machine

    ssh_public_key = ""
    users = control_plane.spec.kubeadm_config_spec.users
    if users and users[0].ssh_authorized_keys:
        ssh_public_key = users[0].ssh_authorized_keys[0]

    raw_spec = _get(_control_plane(documents), "spec.kubeadmConfigSpec")
    registry = raw_spec.get("clusterConfiguration", {}).get("imageRepository", "")
    certificates = tuple(f.get("content", "") for f in raw_spec.get("files", []))

    return ManifestContext(
        cluster_name=clusters[0].name,
        catalog=machine.catalog,
        template=machine.template,
        kubernetes_version=control_plane.spec.version,
        container_registry_url=registry,
        ssh_public_key=ssh_public_key,
        base64_certificates=certificates,
    )


def add_worker_pools(documents: list[Document], pools: Sequence[WorkerPoolInternal]) -> None:
    existing = {d.get("metadata", {}).get("name") for d in _of_kind(documents, "MachineDeployment")}
    for pool in pools:
        if pool.name in existing:
            raise ValidationError(
                f"the worker pool '{pool.name}' already exists in the cluster",
                field="new_worker_pools.name",
            )
        existing.add(pool.name)

    ctx = manifest_context(documents)
    for pool in pools:
        logger.debug("Adding worker pool '%s' to cluster '%s'", pool.name, ctx.cluster_name)
        documents.extend(worker_pool_documents(ctx, pool))


def set_node_health_check(
    documents: list[Document],
    enabled: bool,
    settings: MachineHealthCheckSettings | None = None,
) -> None:
    """Add or remove the MachineHealthCheck document."""
    present = bool(_of_kind(documents, "MachineHealthCheck"))
    if not enabled:
        documents[:] = [d for d in documents if d.get("kind") != "MachineHealthCheck"]
        return
    if present:
        return
    if settings is None:
        raise ValidationError(
            "the CSE server configuration has no Machine Health Check settings, "
            "the health check cannot be enabled",
            field="node_health_check",
        )
    ctx = manifest_context(documents)
    documents.append(machine_health_check(ctx.cluster_name, ctx.namespace, settings))
