"""Table registry.

Holds the table declarations for the lifetime of a process. A registry is a
plain value built by ``cloudtables.tables.build_registry()`` and handed to
the query engine; tables are read-only once registered.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List

from cloudtables.lib.errors import ConfigurationError, UnknownTableError
from cloudtables.lib.table import Table

logger = logging.getLogger(__name__)

__all__ = ["TableRegistry"]


class TableRegistry:
    """Name -> table lookup."""

    def __init__(self, tables: Iterable[Table] = ()) -> None:
        self._tables: Dict[str, Table] = {}
        for table in tables:
            self.register(table)

    def register(self, table: Table) -> Table:
        if table.name in self._tables:
            raise ConfigurationError(
                f"Table '{table.name}' is already registered",
                table=table.name,
            )
        self._tables[table.name] = table
        logger.debug("Registered table %s (%d columns)", table.name, len(table.columns))
        return table

    def get(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError:
            raise UnknownTableError(name, available=self.names()) from None

    def names(self) -> List[str]:
        return sorted(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables[name] for name in self.names())

    def __len__(self) -> int:
        return len(self._tables)
