"""API resource modules."""

from vcdcse.resources.clusters import Clusters
from vcdcse.resources.entities import DefinedEntities
from vcdcse.resources.lookups import Lookups

__all__ = [
    "Clusters",
    "DefinedEntities",
    "Lookups",
]
