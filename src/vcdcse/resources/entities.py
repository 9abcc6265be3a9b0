"""Runtime Defined Entities resource."""

from __future__ import annotations

from contextlib import AbstractContextManager

from vcdcse.models.entity import DefinedEntity, DefinedEntityType, entity_type_id
from vcdcse.resources._base import SyncResource

ENTITY_TYPES_PATH = "/cloudapi/1.0.0/entityTypes"
ENTITIES_PATH = "/cloudapi/1.0.0/entities"


class DefinedEntities(SyncResource):
    """Versioned JSON documents stored by VCD.

    Entities fetched by ID carry the ETag that conditional updates need.
    Entities obtained by name never do.

    Example:
        ```python
        entity = client.entities.get("urn:vcloud:entity:vmware:capvcdCluster:...")
        entity.entity["spec"]["vcdKe"]["autoRepairOnErrors"] = True
        client.entities.update(entity.id, entity, etag=entity.etag)
        ```
    """

    def get_type(self, vendor: str, nss: str, version: str) -> DefinedEntityType:
        """Get an entity type by vendor, namespace and version."""
        data = self._http.get(f"{ENTITY_TYPES_PATH}/{entity_type_id(vendor, nss, version)}")
        return DefinedEntityType.model_validate(data)

    def create(self, entity_type_id: str, entity: DefinedEntity) -> DefinedEntity | None:
        """Create an entity of the given type, in PRE_CREATED state.

        Returns:
            The new entity, or None when VCD answers with a task instead.
        """
        data = self._http.post(f"{ENTITY_TYPES_PATH}/{entity_type_id}", json=entity.payload())
        if isinstance(data, dict) and "entity" in data and data.get("id"):
            return DefinedEntity.model_validate(data)
        return None

    def resolve(self, entity_id: str) -> DefinedEntity:
        """Validate the entity against its type schema, making it RESOLVED."""
        data = self._http.post(f"{ENTITIES_PATH}/{entity_id}/resolve")
        return DefinedEntity.model_validate(data)

    def get(self, entity_id: str) -> DefinedEntity:
        """Get an entity by ID, with its ETag."""
        data, etag = self._http.get_with_etag(f"{ENTITIES_PATH}/{entity_id}")
        entity = DefinedEntity.model_validate(data)
        entity.etag = etag
        return entity

    def list_by_name(self, vendor: str, nss: str, version: str, name: str) -> list[DefinedEntity]:
        """Find the entities of a type with the given name. They carry no ETag."""
        return [
            DefinedEntity.model_validate(item)
            for item in self._paginate(
                f"{ENTITIES_PATH}/types/{vendor}/{nss}/{version}",
                params={"filter": f"name=={name}"},
            )
        ]

    def update(self, entity_id: str, entity: DefinedEntity, etag: str | None) -> DefinedEntity:
        """Replace the entity contents.

        Raises:
            ConflictError: If etag is stale.
        """
        data, new_etag = self._http.put(
            f"{ENTITIES_PATH}/{entity_id}", json=entity.payload(), etag=etag
        )
        updated = DefinedEntity.model_validate(data) if data else entity.model_copy()
        updated.etag = new_etag
        return updated

    def delete(self, entity_id: str) -> None:
        self._http.delete(f"{ENTITIES_PATH}/{entity_id}")

    def quiet(self) -> AbstractContextManager[None]:
        """Stop logging response bodies while the block runs."""
        return self._http.suppress_response_logging()
