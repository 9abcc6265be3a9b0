"""CSE releases, Kubernetes template OVAs and the versions they ship."""

from __future__ import annotations

import re

from vcdcse.exceptions import UnsupportedVersionError
from vcdcse.models.cluster import DEFAULT_CSE_VERSION, CseComponentsVersions, TkgVersionBundle

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?")

# (major, minor) of a CSE release -> entity type versions it works with
CSE_COMPONENTS_VERSIONS: dict[tuple[int, int], CseComponentsVersions] = {
    (4, 1): CseComponentsVersions(
        vcdke_config_rde_type_version="1.1.0",
        capvcd_rde_type_version="1.2.0",
        cse_interface_version="1.0.0",
    ),
    (4, 2): CseComponentsVersions(
        vcdke_config_rde_type_version="1.1.0",
        capvcd_rde_type_version="1.3.0",
        cse_interface_version="1.0.0",
    ),
}

# Kubernetes template identifier -> component versions bundled in the OVA.
# The identifier is the part of the OVA name after "kube-", without ".ova".
TKG_VERSIONS: dict[str, dict[str, str]] = {
    "v1.24.11+vmware.1-tkg.1-2ccb2a001f8bd8f15f1bfbc811071830": {
        "tkg": "v2.2.0",
        "etcd": "v3.5.6_vmware.10",
        "coreDns": "v1.8.6_vmware.18",
    },
    "v1.25.7+vmware.2-tkg.1-8a74b9f12e488c54605b3537acb683bc": {
        "tkg": "v2.2.0",
        "etcd": "v3.5.6_vmware.9",
        "coreDns": "v1.9.3_vmware.8",
    },
    "v1.26.8+vmware.1-tkg.1-b8c57a6c8c98d227f74e7b1a9eef27st": {
        "tkg": "v2.4.0",
        "etcd": "v3.5.6_vmware.20",
        "coreDns": "v1.10.1_vmware.7",
    },
    "v1.27.5+vmware.1-tkg.1-0eb96d2f9f4f705ac87c40633d4b69st": {
        "tkg": "v2.4.0",
        "etcd": "v3.5.7_vmware.6",
        "coreDns": "v1.10.1_vmware.7",
    },
}


def parse_version(version: str) -> tuple[int, int, int] | None:
    """Numeric (major, minor, patch) of a version like ``v1.25.7+vmware.2``.

    Returns None when the string does not start with a version number.
    """
    match = _VERSION_RE.match(version.strip()) if version else None
    if match is None:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def short_version(version: str) -> str:
    """Reduce a version to MAJOR.MINOR.PATCH, keeping it as is if it cannot be parsed."""
    parsed = parse_version(version)
    if parsed is None:
        return version
    return "%d.%d.%d" % parsed


def cse_components_versions(cse_version: str) -> CseComponentsVersions:
    """Entity type versions used by a CSE release.

    Raises:
        UnsupportedVersionError: For releases older than 4.1 or newer than 4.2.
    """
    parsed = parse_version(cse_version)
    if parsed is None:
        raise UnsupportedVersionError(
            f"the CSE version '{cse_version}' is malformed", version=cse_version
        )
    versions = CSE_COMPONENTS_VERSIONS.get(parsed[:2])
    if versions is None:
        raise UnsupportedVersionError(
            f"the CSE version '{cse_version}' is not supported", version=cse_version
        )
    return versions


def cse_version_for_entity_type(entity_type: str) -> str:
    """CSE release that creates entities of the given CAPVCD type, such as
    ``urn:vcloud:type:vmware:capvcdCluster:1.3.0``.

    The latest supported release is returned when the type version is unknown.
    """
    type_version = entity_type.rsplit(":", 1)[-1]
    for (major, minor), versions in sorted(CSE_COMPONENTS_VERSIONS.items(), reverse=True):
        if versions.capvcd_rde_type_version == type_version:
            return f"{major}.{minor}.0"
    return DEFAULT_CSE_VERSION


def tkg_bundle_from_ova_name(ova_name: str) -> TkgVersionBundle:
    """Versions of everything shipped in a Kubernetes template OVA.

    Raises:
        UnsupportedVersionError: If the OVA is not a supported Kubernetes template.
    """
    if not ova_name:
        raise UnsupportedVersionError("the Kubernetes Template OVA cannot be empty")
    if "photon" in ova_name:
        raise UnsupportedVersionError(
            f"the Kubernetes Template OVA '{ova_name}' uses Photon, and it is not supported",
            version=ova_name,
        )
    start = ova_name.find("kube-")
    if start == -1:
        raise UnsupportedVersionError(
            f"the OVA '{ova_name}' is not a Kubernetes template OVA", version=ova_name
        )
    template_id = ova_name[start + len("kube-") :]
    if template_id.endswith(".ova"):
        template_id = template_id[: -len(".ova")]

    versions = TKG_VERSIONS.get(template_id)
    if versions is None:
        raise UnsupportedVersionError(
            f"the Kubernetes Template OVA '{ova_name}' is not supported", version=ova_name
        )

    kubernetes_version = template_id.split("-")[0]
    tkg_suffix = template_id.split("-")[1]
    return TkgVersionBundle(
        kubernetes_version=kubernetes_version,
        tkg_version=versions["tkg"],
        tkr_version=f"{kubernetes_version.replace('+', '---')}-{tkg_suffix}",
        etcd_version=versions["etcd"],
        core_dns_version=versions["coreDns"],
    )


def compare_tkg_version(bundle: TkgVersionBundle, tkg_version: str) -> int | None:
    """-1, 0 or 1 if the bundle TKG version is lower, equal or higher.

    Returns None when either version is malformed.
    """
    ours = parse_version(bundle.tkg_version)
    theirs = parse_version(tkg_version)
    if ours is None or theirs is None:
        return None
    return (ours > theirs) - (ours < theirs)


def kubernetes_upgradeable_from(bundle: TkgVersionBundle, kubernetes_version: str) -> bool:
    """Whether a cluster on ``kubernetes_version`` can move to the bundle's version.

    The target must be exactly one minor above, or the same minor with a higher
    patch. Malformed versions are never upgradeable.
    """
    target = parse_version(bundle.kubernetes_version)
    current = parse_version(kubernetes_version)
    if target is None or current is None or target == current:
        return False
    if target[0] != current[0]:
        return False
    return target[1] - 1 == current[1] or (target[1] == current[1] and target[2] > current[2])


def is_upgrade_target(bundle: TkgVersionBundle, tkg_version: str, kubernetes_version: str) -> bool:
    comparison = compare_tkg_version(bundle, tkg_version)
    return (
        comparison is not None
        and comparison >= 0
        and kubernetes_upgradeable_from(bundle, kubernetes_version)
    )
