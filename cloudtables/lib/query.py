"""Query execution.

Ties the pieces together for one query:

    QueryRequest -> QualifierResolver -> PageFetcher / get
                 -> HydrationResolver -> transforms -> rows

Pagination runs sequentially in the consuming thread. Items are hydrated and
transformed on a thread pool with a bounded in-flight window, and rows come
out in list order. Closing the row iterator stops pagination and cancels
queued work.

Example:
    engine = QueryEngine(build_registry(), AwsTransport(config.connection), config.engine)
    request = QueryRequest(
        table="aws_cost_by_service",
        columns=["service", "period_start", "unblended_cost_amount"],
        qualifiers=[Qualifier("granularity", QualOperator.EQ, "MONTHLY")],
    )
    for row in engine.execute(request):
        print(row)
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Generator, List, Optional, Sequence

from cloudtables.lib.config_loader import EngineSettings, TransformErrorPolicy
from cloudtables.lib.errors import NotFoundError, TransformError, TransportError
from cloudtables.lib.hydrate import HydrationCache, HydrationResolver
from cloudtables.lib.items import Item, ItemShape
from cloudtables.lib.logging import get_query_logger
from cloudtables.lib.pagination import PageFetcher
from cloudtables.lib.quals import QualifierResolver, Qualifier, QualMap, RequestPlan, Strategy
from cloudtables.lib.registry import TableRegistry
from cloudtables.lib.table import Column, QueryContext, Table, coerce_value
from cloudtables.lib.transforms import TransformContext, apply_chain

logger = logging.getLogger(__name__)

__all__ = ["QueryEngine", "QueryRequest", "Row"]

Row = Dict[str, Any]


@dataclass
class QueryRequest:
    """One query: a table, the wanted columns (all when empty) and qualifiers."""

    table: str
    columns: Sequence[str] = field(default_factory=list)
    qualifiers: Sequence[Qualifier] = field(default_factory=list)


class _QueryStats:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.items = 0
        self.pages = 0
        self.rows = 0
        self.dropped = 0
        self.transform_errors = 0

    def add(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)


class QueryEngine:
    """Runs queries against a table registry through a provider transport."""

    def __init__(
        self,
        registry: TableRegistry,
        transport: Any,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.settings = settings or EngineSettings()
        self.resolver = QualifierResolver(registry, self.settings)

    def plan(self, request: QueryRequest, *, now: Optional[datetime] = None) -> RequestPlan:
        return self.resolver.resolve(request.table, request.qualifiers, now=now)

    def execute(self, request: QueryRequest, *, now: Optional[datetime] = None) -> Generator[Row, None, None]:
        """Validate the request and return a lazy row iterator.

        Unknown tables or columns and missing required qualifiers raise here,
        before any provider call. Provider failures surface while iterating;
        rows already yielded stay valid.
        """
        table = self.registry.get(request.table)
        wanted = [table.column(name) for name in request.columns] or list(table.columns)
        plan = self.plan(request, now=now)
        return self._run(table, wanted, plan)

    # ------------------------------------------------------------------
    # Item sources
    # ------------------------------------------------------------------

    def _list_items(self, table: Table, plan: RequestPlan, stats: _QueryStats) -> Generator[Item, None, None]:
        list_config = table.list_config
        assert list_config is not None

        def call(params: Dict[str, Any]) -> Dict[str, Any]:
            return self.transport.call(list_config.service, list_config.operation, **params)

        fetcher = PageFetcher(list_config.pagination, call)
        raw_items = fetcher.iter_items(plan.params)
        try:
            for seq, data in enumerate(raw_items):
                stats.add("items")
                yield Item(data=data, shape=ItemShape.SUMMARY, identity=table.identity, seq=seq)
        finally:
            raw_items.close()
            stats.pages = fetcher.pages_fetched

    def _get_items(self, table: Table, ctx: QueryContext, plan: RequestPlan, stats: _QueryStats) -> Generator[Item, None, None]:
        get_config = table.get_config
        assert get_config is not None
        try:
            data = get_config.fetch(ctx, plan.params)
        except (NotFoundError, TransportError) as e:
            if e.error_code and e.error_code in get_config.ignore_error_codes:
                logger.debug("Get on %s found nothing for %s (%s)", table.name, plan.params, e.error_code)
                return
            raise
        if data is None:
            return
        stats.add("items")
        yield Item(data=data, shape=ItemShape.DETAIL, identity=table.identity, seq=0)

    # ------------------------------------------------------------------
    # Row building
    # ------------------------------------------------------------------

    def _column_value(
        self,
        table: Table,
        column: Column,
        item: Item,
        quals: Dict[str, Any],
        stats: _QueryStats,
    ) -> Any:
        tctx = TransformContext(
            column=column.name,
            data=item.data_for(column.hydrate, column.name),
            item=item,
            quals=quals,
        )
        try:
            value = apply_chain(column.transform, tctx)
            return coerce_value(value, column.type, column=column.name)
        except TransformError as e:
            stats.add("transform_errors")
            if self.settings.transform_errors is TransformErrorPolicy.FAIL:
                e.table = e.table or table.name
                raise
            logger.warning("Nulling %s.%s: %s", table.name, column.name, e.message)
            return None

    def _build_row(
        self,
        table: Table,
        hydrator: HydrationResolver,
        item: Item,
        wanted: List[Column],
        quals: Dict[str, Any],
        stats: _QueryStats,
    ) -> Optional[Row]:
        if hydrator.resolve(item, wanted) is None:
            stats.add("dropped")
            return None
        return {column.name: self._column_value(table, column, item, quals, stats) for column in wanted}

    def _run(self, table: Table, wanted: List[Column], plan: RequestPlan) -> Generator[Row, None, None]:
        qlog = get_query_logger(__name__)
        qlog.set_context(table=table.name, strategy=plan.strategy.value)

        ctx = QueryContext(
            table=table,
            quals=plan.quals if isinstance(plan.quals, QualMap) else QualMap(plan.quals),
            transport=self.transport,
            settings=self.settings,
            now=plan.now or datetime.now(timezone.utc),
        )
        cache = HydrationCache()
        hydrator = HydrationResolver(ctx, cache)
        quals = ctx.quals.equal_values()
        stats = _QueryStats()

        if plan.strategy is Strategy.GET:
            items = self._get_items(table, ctx, plan, stats)
        else:
            items = self._list_items(table, plan, stats)

        qlog.debug("Executing %s with %s", plan.strategy.value, plan.params)

        max_workers = max(1, self.settings.max_workers)
        window = 2 * max_workers
        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="cloudtables")
        pending: Deque[Future] = deque()

        try:
            for item in items:
                pending.append(executor.submit(self._build_row, table, hydrator, item, wanted, quals, stats))
                while len(pending) >= window:
                    row = pending.popleft().result()
                    if row is not None:
                        stats.add("rows")
                        yield row
            while pending:
                row = pending.popleft().result()
                if row is not None:
                    stats.add("rows")
                    yield row
        finally:
            for future in pending:
                future.cancel()
            items.close()
            executor.shutdown(wait=True)
            qlog.metric("rows_emitted", stats.rows, unit="rows")
            qlog.metric("hydrate_calls", cache.calls, unit="calls")
            if plan.strategy is Strategy.LIST:
                qlog.metric("pages_fetched", stats.pages, unit="pages")
            if stats.dropped:
                qlog.debug("Dropped %d items whose hydration found nothing", stats.dropped)
