"""On-demand hydration of items.

List calls return summaries; some columns need a second call per item
(tags, the full detail object, the caller identity). The resolver works out
which hydrate sources the *wanted* columns actually need, calls each source
once per item identity and stores the results on the item for the
transforms to read.

Columns whose value is already present on the base item (a get call returns
the detail object that a list row would have hydrated) skip the call.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from cloudtables.lib.errors import NotFoundError
from cloudtables.lib.items import Item
from cloudtables.lib.table import Column, QueryContext
from cloudtables.lib.transforms import has_path

logger = logging.getLogger(__name__)

__all__ = ["HydrationCache", "HydrationResolver", "sources_needed"]


class HydrationCache:
    """Per-query results of hydrate calls keyed by (source, item identity).

    Thread safe: the first requester for a key makes the call, concurrent
    requesters for the same key wait on its result. Failures are cached
    alongside successes so a failing lookup is not repeated.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], Future] = {}
        self.calls = 0

    def get_or_call(self, source: str, key: str, fn: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._entries.get((source, key))
            owner = entry is None
            if owner:
                entry = Future()
                self._entries[(source, key)] = entry
                self.calls += 1

        if not owner:
            return entry.result()

        try:
            result = fn()
        except BaseException as e:
            entry.set_exception(e)
            raise
        entry.set_result(result)
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def sources_needed(item: Item, columns: Iterable[Column]) -> List[str]:
    """Distinct hydrate sources the columns need for this item, in column order.

    Columns found on the base item are added to ``item.from_base`` so they
    keep reading it when a sibling column on the same source is fetched.
    """
    needed: List[str] = []
    for column in columns:
        if column.hydrate is None:
            continue
        path = column.transform.resolve_path(column.name)
        if path and has_path(item.data, path):
            item.from_base.add(column.name)
            continue
        if column.hydrate not in needed:
            needed.append(column.hydrate)
    return needed


class HydrationResolver:
    """Fetches the hydrate data one query's wanted columns need."""

    def __init__(self, ctx: QueryContext, cache: Optional[HydrationCache] = None) -> None:
        self.ctx = ctx
        self.table = ctx.table
        self.cache = cache if cache is not None else HydrationCache()

    def resolve(self, item: Item, wanted_columns: Iterable[Column]) -> Optional[Item]:
        """Hydrate ``item`` in place for the wanted columns.

        Returns:
            The item, or None when a source reported the entity gone and the
            row must be dropped.

        Raises:
            CloudTablesError: any hydrate failure other than NotFoundError
        """
        for source in sources_needed(item, wanted_columns):
            config = self.table.hydrate(source)
            try:
                item.hydrated[source] = self.cache.get_or_call(
                    source,
                    "*" if config.shared else item.cache_key,
                    lambda: config.fn(self.ctx, item),
                )
            except NotFoundError as e:
                logger.debug(
                    "Dropping %s row %s: %s found nothing (%s)",
                    self.table.name,
                    item.cache_key,
                    source,
                    e.error_code or e.message,
                )
                return None
        return item
