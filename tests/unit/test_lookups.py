"""Tests for the lookups of VCD objects."""

from __future__ import annotations

import httpx
import pytest
import respx
from conftest import NETWORK_ID, ORG_ID, VCD_URL, VDC_ID

from vcdcse.client import VcdClient
from vcdcse.exceptions import CseError, NotFoundError
from vcdcse.resources.lookups import extract_uuid

TEMPLATE_UUID = "1d2e3f40-5a6b-4c7d-8e9f-0a1b2c3d4e5f"
TEMPLATE_HREF = f"{VCD_URL}/api/vAppTemplate/vappTemplate-{TEMPLATE_UUID}"
TEMPLATE_NAME = "ubuntu-2004-kube-v1.25.7+vmware.2-tkg.1-8a74b9f12e488c54605b3537acb683bc"


def _template_record(href: str = TEMPLATE_HREF, name: str = TEMPLATE_NAME) -> dict[str, str]:
    return {
        "href": href,
        "name": name,
        "catalogName": "tkgm-catalog",
        "catalog": f"{VCD_URL}/api/catalog/7e6f5a4b-3c2d-4e1f-9a8b-7c6d5e4f3a2b",
    }


def _page(*values: dict[str, object]) -> dict[str, object]:
    return {"resultTotal": len(values), "pageCount": 1, "page": 1, "values": list(values)}


class TestExtractUuid:
    """Test reading UUIDs out of URNs and hrefs."""

    def test_urn(self) -> None:
        assert extract_uuid(VDC_ID) == "c6b0a8d2-4a8a-4a4d-9a7f-4d4e5c2b1a01"

    def test_href_takes_last_uuid(self) -> None:
        href = f"{VCD_URL}/api/org/{ORG_ID[-36:]}/vdc/{VDC_ID[-36:]}"
        assert extract_uuid(href) == VDC_ID[-36:]

    def test_invalid(self) -> None:
        with pytest.raises(NotFoundError, match="not a valid VCD ID"):
            extract_uuid("urn:vcloud:vdc:nope")


class TestOpenApiLookups:
    """Test lookups served by the OpenAPI endpoints."""

    def test_get_org(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        mock_api.get(f"/cloudapi/1.0.0/orgs/{ORG_ID}").mock(
            return_value=httpx.Response(
                200, json={"id": ORG_ID, "name": "tenant1", "displayName": "Tenant 1"}
            )
        )

        org = client.lookups.get_org(ORG_ID)

        assert org.id == ORG_ID
        assert org.name == "tenant1"

    def test_find_network(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        """Networks should be searched by name inside the owning VDC."""
        route = mock_api.get("/cloudapi/1.0.0/orgVdcNetworks").mock(
            return_value=httpx.Response(
                200,
                json=_page(
                    {"id": NETWORK_ID, "name": "net1", "ownerRef": {"id": VDC_ID, "name": "vdc1"}}
                ),
            )
        )

        network = client.lookups.find_network(VDC_ID, "net1")

        assert network.id == NETWORK_ID
        assert network.owner_ref is not None and network.owner_ref.name == "vdc1"
        params = route.calls.last.request.url.params
        assert params["filter"] == f"name==net1;ownerRef.id=={VDC_ID}"

    def test_find_network_ambiguous(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        """More than one match should be an error."""
        mock_api.get("/cloudapi/1.0.0/orgVdcNetworks").mock(
            return_value=httpx.Response(
                200, json=_page({"id": NETWORK_ID, "name": "net1"}, {"id": "n2", "name": "net1"})
            )
        )

        with pytest.raises(CseError, match="exactly one"):
            client.lookups.find_network(VDC_ID, "net1")

    def test_find_vdc_missing(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        mock_api.get("/cloudapi/1.0.0/vdcs").mock(return_value=httpx.Response(200, json=_page()))

        with pytest.raises(NotFoundError):
            client.lookups.find_vdc("tenant1", "vdc9")

    def test_compute_policies_use_v2(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        """Compute policies should be read from the 2.0.0 API."""
        mock_api.get(f"/cloudapi/2.0.0/vdcs/{VDC_ID}/computePolicies").mock(
            return_value=httpx.Response(
                200,
                json=_page(
                    {"id": "p1", "name": "TKG small", "isSizingOnly": True},
                    {"id": "p2", "name": "nvidia-a100", "isVgpuPolicy": True},
                ),
            )
        )

        policies = client.lookups.list_compute_policies(VDC_ID)

        assert [(p.name, p.is_sizing_only, p.is_vgpu_policy) for p in policies] == [
            ("TKG small", True, False),
            ("nvidia-a100", False, True),
        ]

    def test_current_session(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        mock_api.get("/cloudapi/1.0.0/sessions/current").mock(
            return_value=httpx.Response(
                200,
                json={
                    "id": "s1",
                    "user": {"id": "urn:vcloud:user:1", "name": "admin"},
                    "org": {"id": ORG_ID, "name": "tenant1"},
                },
            )
        )

        assert client.lookups.current_session().user.name == "admin"


class TestQueryLookups:
    """Test lookups served by the typed query service."""

    def test_get_vapp_template(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        """Templates should be queried by href and given an URN."""
        route = mock_api.get("/api/query").mock(
            return_value=httpx.Response(
                200, json={"total": 1, "pageSize": 128, "record": [_template_record()]}
            )
        )

        template = client.lookups.get_vapp_template(f"urn:vcloud:vapptemplate:{TEMPLATE_UUID}")

        assert template.id == f"urn:vcloud:vapptemplate:{TEMPLATE_UUID}"
        assert template.name == TEMPLATE_NAME
        assert template.catalog_name == "tkgm-catalog"
        request = route.calls.last.request
        assert request.url.params["type"] == "vAppTemplate"
        assert request.url.params["format"] == "records"
        assert request.url.params["filter"] == f"href=={TEMPLATE_HREF}"
        assert request.headers["Accept"].startswith("application/*+json;version=")

    def test_get_vapp_template_missing(
        self, client: VcdClient, mock_api: respx.MockRouter
    ) -> None:
        mock_api.get("/api/query").mock(
            return_value=httpx.Response(200, json={"total": 0, "pageSize": 128, "record": []})
        )

        with pytest.raises(NotFoundError):
            client.lookups.get_vapp_template(f"urn:vcloud:vapptemplate:{TEMPLATE_UUID}")

    def test_query_follows_pages(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        """Records should be read until the total is reached."""
        other_href = f"{VCD_URL}/api/vAppTemplate/vappTemplate-2e3f4051-6b7c-4d8e-9f0a-1b2c3d4e5f60"
        route = mock_api.get("/api/query").mock(
            side_effect=[
                httpx.Response(
                    200, json={"total": 2, "pageSize": 1, "record": [_template_record()]}
                ),
                httpx.Response(
                    200,
                    json={
                        "total": 2,
                        "pageSize": 1,
                        "record": [_template_record(other_href, "photon-3-kube-v1.25.7")],
                    },
                ),
            ]
        )

        templates = list(client.lookups.iter_vapp_templates())

        assert [t.id[-4:] for t in templates] == ["4e5f", "5f60"]
        assert route.call_count == 2
        assert "filter" not in route.calls.last.request.url.params

    def test_list_storage_profiles(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        route = mock_api.get("/api/query").mock(
            return_value=httpx.Response(
                200,
                json={
                    "total": 1,
                    "pageSize": 128,
                    "record": [
                        {
                            "href": f"{VCD_URL}/api/admin/vdcStorageProfile/"
                            "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d",
                            "name": "*",
                        }
                    ],
                },
            )
        )

        profiles = client.lookups.list_storage_profiles(VDC_ID)

        assert [(p.id, p.name) for p in profiles] == [
            ("urn:vcloud:vdcstorageProfile:9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d", "*")
        ]
        params = route.calls.last.request.url.params
        assert params["type"] == "orgVdcStorageProfile"
        assert params["filter"] == f"vdc=={VCD_URL}/api/vdc/{VDC_ID[-36:]}"

    def test_get_storage_profile(self, client: VcdClient, mock_api: respx.MockRouter) -> None:
        profile_id = "urn:vcloud:vdcstorageProfile:8b7c6d5e-4f3a-4b2c-9d1e-0f9a8b7c6d5e"
        mock_api.get("/api/vdcStorageProfile/8b7c6d5e-4f3a-4b2c-9d1e-0f9a8b7c6d5e").mock(
            return_value=httpx.Response(200, json={"name": "fast"})
        )

        profile = client.lookups.get_storage_profile(profile_id)

        assert profile.id == profile_id
        assert profile.name == "fast"
