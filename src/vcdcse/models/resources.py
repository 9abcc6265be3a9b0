"""Models for the VCD objects a cluster references."""

from __future__ import annotations

from pydantic import Field

from vcdcse.models.common import CseModel, Reference


class Vdc(CseModel):
    """Organization VDC."""

    id: str
    name: str
    org: Reference | None = None


class OrgVdcNetwork(CseModel):
    """Organization VDC network."""

    id: str
    name: str
    owner_ref: Reference | None = Field(None, alias="ownerRef")


class VAppTemplate(CseModel):
    """vApp template (OVA) stored in a catalog."""

    id: str
    name: str
    catalog_name: str = Field("", alias="catalogName")
    catalog_id: str | None = Field(None, alias="catalogId")


class ComputePolicy(CseModel):
    """VDC compute policy: sizing, placement or vGPU."""

    id: str
    name: str
    is_sizing_only: bool = Field(False, alias="isSizingOnly")
    is_vgpu_policy: bool = Field(False, alias="isVgpuPolicy")


class StorageProfile(CseModel):
    """VDC storage profile."""

    id: str
    name: str


class SessionInfo(CseModel):
    """Current API session."""

    id: str = ""
    user: Reference
    org: Reference | None = None
