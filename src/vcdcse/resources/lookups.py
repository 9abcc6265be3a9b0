"""Read-only lookups of the VCD objects a cluster references."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any

from vcdcse.exceptions import CseError, NotFoundError
from vcdcse.models.common import Reference
from vcdcse.models.resources import (
    ComputePolicy,
    OrgVdcNetwork,
    SessionInfo,
    StorageProfile,
    VAppTemplate,
    Vdc,
)
from vcdcse.resources._base import DEFAULT_PAGE_SIZE, SyncResource

CLOUDAPI_V1 = "/cloudapi/1.0.0"
CLOUDAPI_V2 = "/cloudapi/2.0.0"
QUERY_PATH = "/api/query"

_UUID = re.compile(r"[0-9a-fA-F]{8}-(?:[0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}")


def extract_uuid(value: str) -> str:
    """Last UUID found in a URN or an href."""
    found = _UUID.findall(value)
    if not found:
        raise NotFoundError(f"'{value}' is not a valid VCD ID", resource_id=value)
    return found[-1]


class Lookups(SyncResource):
    """Organizations, VDCs, networks, templates and policies.

    OpenAPI endpoints are used where VCD offers them. vApp templates and
    storage profiles are read through the typed query service.
    """

    def _legacy_headers(self) -> dict[str, str]:
        return {"Accept": f"application/*+json;version={self._http.api_version}"}

    def _query(self, query_type: str, query_filter: str | None = None) -> Iterator[dict[str, Any]]:
        """Yield the records of a typed query, page by page."""
        page = 1
        while True:
            params = {
                "type": query_type,
                "format": "records",
                "page": page,
                "pageSize": DEFAULT_PAGE_SIZE,
                "filter": query_filter,
            }
            data = self._http.get(QUERY_PATH, params=params, headers=self._legacy_headers()) or {}
            records = data.get("record") or []
            yield from records
            if not records or page * data.get("pageSize", DEFAULT_PAGE_SIZE) >= data.get(
                "total", 0
            ):
                return
            page += 1

    def _find_one(self, path: str, query_filter: str, what: str, name: str) -> dict[str, Any]:
        found = list(self._paginate(path, params={"filter": query_filter}))
        if not found:
            raise NotFoundError(f"could not find {what} '{name}'", resource_type=what)
        if len(found) > 1:
            raise CseError(f"expected exactly one {what} named '{name}', got {len(found)}")
        return found[0]

    def get_org(self, org_id: str) -> Reference:
        return Reference.model_validate(self._http.get(f"{CLOUDAPI_V1}/orgs/{org_id}"))

    def get_vdc(self, vdc_id: str) -> Vdc:
        return Vdc.model_validate(self._http.get(f"{CLOUDAPI_V1}/vdcs/{vdc_id}"))

    def find_vdc(self, org_name: str, name: str) -> Vdc:
        """Find a VDC by name inside an organization."""
        data = self._find_one(
            f"{CLOUDAPI_V1}/vdcs", f"name=={name};org.name=={org_name}", "Organization VDC", name
        )
        return Vdc.model_validate(data)

    def get_network(self, network_id: str) -> OrgVdcNetwork:
        return OrgVdcNetwork.model_validate(
            self._http.get(f"{CLOUDAPI_V1}/orgVdcNetworks/{network_id}")
        )

    def find_network(self, vdc_id: str, name: str) -> OrgVdcNetwork:
        """Find a network by name among the ones owned by a VDC."""
        data = self._find_one(
            f"{CLOUDAPI_V1}/orgVdcNetworks",
            f"name=={name};ownerRef.id=={vdc_id}",
            "Organization VDC Network",
            name,
        )
        return OrgVdcNetwork.model_validate(data)

    @staticmethod
    def _template(record: dict[str, Any]) -> VAppTemplate:
        return VAppTemplate(
            id=f"urn:vcloud:vapptemplate:{extract_uuid(record['href'])}",
            name=record.get("name", ""),
            catalog_name=record.get("catalogName", ""),
            catalog_id=record.get("catalog"),
        )

    def get_vapp_template(self, template_id: str) -> VAppTemplate:
        href = f"{self._http.base_url}/api/vAppTemplate/vappTemplate-{extract_uuid(template_id)}"
        for record in self._query("vAppTemplate", f"href=={href}"):
            return self._template(record)
        raise NotFoundError(
            f"could not find vApp Template '{template_id}'",
            resource_type="vApp Template",
            resource_id=template_id,
        )

    def find_vapp_template(self, catalog_name: str, name: str) -> VAppTemplate:
        """Find a vApp template by name inside a catalog."""
        for record in self._query("vAppTemplate", f"name=={name};catalogName=={catalog_name}"):
            return self._template(record)
        raise NotFoundError(
            f"could not find vApp Template '{name}' in Catalog '{catalog_name}'",
            resource_type="vApp Template",
        )

    def iter_vapp_templates(self) -> Iterator[VAppTemplate]:
        """Every vApp template visible to the session."""
        for record in self._query("vAppTemplate"):
            yield self._template(record)

    def get_compute_policy(self, policy_id: str) -> ComputePolicy:
        return ComputePolicy.model_validate(
            self._http.get(f"{CLOUDAPI_V2}/vdcComputePolicies/{policy_id}")
        )

    def list_compute_policies(self, vdc_id: str) -> list[ComputePolicy]:
        return [
            ComputePolicy.model_validate(item)
            for item in self._paginate(f"{CLOUDAPI_V2}/vdcs/{vdc_id}/computePolicies")
        ]

    def get_storage_profile(self, profile_id: str) -> StorageProfile:
        data = self._http.get(
            f"/api/vdcStorageProfile/{extract_uuid(profile_id)}", headers=self._legacy_headers()
        )
        return StorageProfile(id=profile_id, name=(data or {}).get("name", ""))

    def list_storage_profiles(self, vdc_id: str) -> list[StorageProfile]:
        href = f"{self._http.base_url}/api/vdc/{extract_uuid(vdc_id)}"
        return [
            StorageProfile(
                id=f"urn:vcloud:vdcstorageProfile:{extract_uuid(record['href'])}",
                name=record.get("name", ""),
            )
            for record in self._query("orgVdcStorageProfile", f"vdc=={href}")
        ]

    def current_session(self) -> SessionInfo:
        return SessionInfo.model_validate(self._http.get(f"{CLOUDAPI_V1}/sessions/current"))
