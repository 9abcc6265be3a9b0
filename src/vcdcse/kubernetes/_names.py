"""Memoized ID to name resolution for compute policies and storage profiles."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from vcdcse.exceptions import NotFoundError, ResolutionError
from vcdcse.kubernetes._protocols import ResourceLookup

logger = logging.getLogger(__name__)


class NameResolutionCache:
    """Resolves resource IDs to names, once per ID.

    An empty ID always maps to an empty name and never reaches VCD.
    One cache lives for a single orchestration run.
    """

    def __init__(self, lookups: ResourceLookup) -> None:
        self._lookups = lookups
        self._names: dict[str, str] = {"": ""}

    def __getitem__(self, resource_id: str) -> str:
        return self._names[resource_id]

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._names

    def resolve_storage_profiles(self, ids: Iterable[str]) -> None:
        for resource_id in self._pending(ids):
            try:
                profile = self._lookups.get_storage_profile(resource_id)
            except NotFoundError as e:
                raise ResolutionError(
                    f"could not retrieve Storage Profile with ID '{resource_id}': {e}",
                    resource_type="storage_profile",
                    resource_id=resource_id,
                ) from e
            self._names[resource_id] = profile.name

    def resolve_compute_policies(self, ids: Iterable[str]) -> None:
        for resource_id in self._pending(ids):
            try:
                policy = self._lookups.get_compute_policy(resource_id)
            except NotFoundError as e:
                raise ResolutionError(
                    f"could not retrieve Compute Policy with ID '{resource_id}': {e}",
                    resource_type="compute_policy",
                    resource_id=resource_id,
                ) from e
            self._names[resource_id] = policy.name

    def _pending(self, ids: Iterable[str]) -> list[str]:
        # dict.fromkeys keeps the first-seen order while dropping duplicates
        pending = [i for i in dict.fromkeys(ids) if i not in self._names]
        if pending:
            logger.debug("Resolving names of %d resources", len(pending))
        return pending
