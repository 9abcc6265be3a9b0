"""Collaborators the cluster orchestration depends on."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Protocol

from vcdcse.models.common import Reference
from vcdcse.models.entity import DefinedEntity, DefinedEntityType
from vcdcse.models.resources import (
    ComputePolicy,
    OrgVdcNetwork,
    SessionInfo,
    StorageProfile,
    VAppTemplate,
    Vdc,
)


class EntityStore(Protocol):
    """Versioned JSON documents with optimistic concurrency."""

    def get_type(self, vendor: str, nss: str, version: str) -> DefinedEntityType: ...

    def create(self, entity_type_id: str, entity: DefinedEntity) -> DefinedEntity | None: ...

    def resolve(self, entity_id: str) -> DefinedEntity: ...

    def get(self, entity_id: str) -> DefinedEntity: ...

    def list_by_name(
        self, vendor: str, nss: str, version: str, name: str
    ) -> list[DefinedEntity]: ...

    def update(self, entity_id: str, entity: DefinedEntity, etag: str | None) -> DefinedEntity: ...

    def delete(self, entity_id: str) -> None: ...

    def quiet(self) -> AbstractContextManager[None]: ...


class ResourceLookup(Protocol):
    """Read-only access to the VCD objects a cluster references."""

    def get_org(self, org_id: str) -> Reference: ...

    def get_vdc(self, vdc_id: str) -> Vdc: ...

    def find_vdc(self, org_name: str, name: str) -> Vdc: ...

    def get_network(self, network_id: str) -> OrgVdcNetwork: ...

    def find_network(self, vdc_id: str, name: str) -> OrgVdcNetwork: ...

    def get_vapp_template(self, template_id: str) -> VAppTemplate: ...

    def find_vapp_template(self, catalog_name: str, name: str) -> VAppTemplate: ...

    def iter_vapp_templates(self) -> Iterator[VAppTemplate]: ...

    def get_compute_policy(self, policy_id: str) -> ComputePolicy: ...

    def list_compute_policies(self, vdc_id: str) -> list[ComputePolicy]: ...

    def get_storage_profile(self, profile_id: str) -> StorageProfile: ...

    def list_storage_profiles(self, vdc_id: str) -> list[StorageProfile]: ...

    def current_session(self) -> SessionInfo: ...
