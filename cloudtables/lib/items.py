"""Items flowing through a query.

A list call returns lightweight *summary* objects; a get call returns a
*detail* object whose fields are often nested one level deeper (CloudFront's
``GetDistribution`` wraps everything in ``Distribution``). Each table declares
where its logical identifiers live in either shape, and an ``Item`` carries
which shape it is so identifier extraction is uniform.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set

from cloudtables.lib.transforms import MISSING, get_path

__all__ = ["IdentityPaths", "Item", "ItemShape"]


class ItemShape(Enum):
    """Which response shape an item came from."""

    SUMMARY = "summary"
    DETAIL = "detail"


@dataclass(frozen=True)
class IdentityPaths:
    """Dotted paths of each logical identifier, per item shape.

    Example:
        IdentityPaths(
            summary={"id": "Id", "arn": "ARN"},
            detail={"id": "Distribution.Id", "arn": "Distribution.ARN"},
        )
    """

    summary: Mapping[str, str] = field(default_factory=dict)
    detail: Mapping[str, str] = field(default_factory=dict)

    def for_shape(self, shape: ItemShape) -> Mapping[str, str]:
        if shape is ItemShape.DETAIL:
            # Detail objects fall back to summary paths for shared fields
            return {**self.summary, **self.detail}
        return self.summary

    def extract(self, data: Any, shape: ItemShape, name: str) -> Optional[str]:
        path = self.for_shape(shape).get(name)
        if path is None:
            return None
        value = get_path(data, path)
        if value is MISSING or value is None:
            return None
        return str(value)


@dataclass
class Item:
    """One base item plus whatever hydration has fetched for it.

    Attributes:
        data: Raw provider object (list summary or get detail)
        shape: Which of the two shapes ``data`` is
        identity: The table's identifier paths
        seq: Position in the query's item stream
        hydrated: Hydration results keyed by source name
        from_base: Hydrated columns whose value was already on ``data``
    """

    data: Dict[str, Any]
    shape: ItemShape = ItemShape.SUMMARY
    identity: Optional[IdentityPaths] = None
    seq: int = 0
    hydrated: Dict[str, Any] = field(default_factory=dict)
    from_base: Set[str] = field(default_factory=set)

    def identifier(self, name: str = "id") -> Optional[str]:
        """Extract a logical identifier regardless of shape."""
        if self.identity is None:
            return None
        return self.identity.extract(self.data, self.shape, name)

    @property
    def cache_key(self) -> str:
        """Key for the per-query hydration cache."""
        ident = self.identifier("id")
        if ident is not None:
            return ident
        return f"#{self.seq}"

    def data_for(self, source: Optional[str], column: Optional[str] = None) -> Any:
        """Data a column reads: its hydration result, or the base item.

        A column whose value was already on the base item reads the base
        item, even when a sibling column made its source fetch.
        """
        if column is not None and column in self.from_base:
            return self.data
        if source is not None and source in self.hydrated:
            return self.hydrated[source]
        return self.data
