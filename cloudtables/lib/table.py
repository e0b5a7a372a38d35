"""Table declarations.

A table is plain data: typed columns, an optional list strategy, an optional
get strategy and the hydration sources its columns may name. Declarations
are validated when built, so a broken table fails at registry build time
rather than halfway through a query.

Example:
    Table(
        name="aws_route53",
        description="AWS Route 53 hosted zones",
        columns=[
            Column("name", ColumnType.STRING),
            Column("tags", ColumnType.JSON, hydrate="list_tags",
                   transform=from_field("ResourceTagSet.Tags").transform(tags_to_map)),
        ],
        list_config=ListConfig(service="route53", operation="list_hosted_zones", ...),
        hydrate_configs=[HydrateConfig("list_tags", fetch_tags)],
    )
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from cloudtables.lib.config_loader import EngineSettings
from cloudtables.lib.errors import ConfigurationError, TransformError
from cloudtables.lib.items import IdentityPaths, Item
from cloudtables.lib.pagination import PaginationConfig
from cloudtables.lib.quals import KeyColumns, QualMap
from cloudtables.lib.transforms import TransformChain, from_camel

logger = logging.getLogger(__name__)

__all__ = [
    "Column",
    "ColumnType",
    "GetConfig",
    "HydrateConfig",
    "ListConfig",
    "QueryContext",
    "Table",
    "coerce_value",
]


class ColumnType(Enum):
    STRING = "string"
    BOOL = "bool"
    INT = "int"
    DOUBLE = "double"
    TIMESTAMP = "timestamp"
    JSON = "json"


_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


def _to_timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return moment.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).isoformat()
    stamp = pd.Timestamp(value)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return stamp.isoformat()


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return int(float(text))


def coerce_value(value: Any, column_type: ColumnType, *, column: Optional[str] = None) -> Any:
    """Convert a transformed value to the column's declared type.

    None passes through for every type. Timestamps become ISO-8601 strings.

    Raises:
        TransformError: when the value cannot be represented as the type
    """
    if value is None:
        return None
    try:
        if column_type is ColumnType.STRING:
            if isinstance(value, (dict, list)):
                return json.dumps(value, default=str)
            return str(value)
        if column_type is ColumnType.BOOL:
            return _to_bool(value)
        if column_type is ColumnType.INT:
            return _to_int(value)
        if column_type is ColumnType.DOUBLE:
            return float(value)
        if column_type is ColumnType.TIMESTAMP:
            return _to_timestamp(value)
        return value
    except (TypeError, ValueError, OverflowError) as e:
        raise TransformError(
            f"Cannot convert value to {column_type.value}",
            column=column,
            value=value,
            cause=e,
        ) from e


@dataclass
class QueryContext:
    """Query-scoped state handed to parameter builders, get and hydrate functions.

    Attributes:
        table: Table being queried
        quals: Qualifiers for this query
        transport: Provider transport (``AwsTransport`` or a test fake)
        settings: Engine settings
        now: Query start time, shared by every time-derived parameter
    """

    table: "Table"
    quals: QualMap
    transport: Any
    settings: EngineSettings = field(default_factory=EngineSettings)
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def call(self, service: str, operation: str, **params: Any) -> Dict[str, Any]:
        return self.transport.call(service, operation, **params)


HydrateFn = Callable[[QueryContext, Item], Any]
GetFn = Callable[[QueryContext, Dict[str, Any]], Optional[Dict[str, Any]]]
ParamBuilder = Callable[[QualMap, EngineSettings, datetime], Dict[str, Any]]


@dataclass(frozen=True)
class Column:
    """One typed column.

    ``transform`` defaults to reading the CamelCase form of the name, so
    ``caller_reference`` reads ``CallerReference``. A column naming a
    ``hydrate`` source reads that source's result instead of the base item
    when its value is not already on the item.
    """

    name: str
    type: ColumnType
    description: str = ""
    transform: TransformChain = field(default_factory=from_camel)
    hydrate: Optional[str] = None


@dataclass(frozen=True)
class HydrateConfig:
    """A named on-demand fetch of extra data for one item.

    A ``shared`` source returns the same data for every item of a query
    (caller identity, qualifier echoes) and is called once per query.
    """

    name: str
    fn: HydrateFn
    shared: bool = False


@dataclass(frozen=True)
class ListConfig:
    """Primary retrieval: a paginated provider list operation."""

    service: str
    operation: str
    key_columns: KeyColumns = field(default_factory=KeyColumns)
    build_params: Optional[ParamBuilder] = None
    pagination: PaginationConfig = field(default_factory=PaginationConfig)


@dataclass(frozen=True)
class GetConfig:
    """Keyed retrieval of a single item.

    ``fetch`` receives the key column values and returns the detail object,
    or None when nothing matches. A ``NotFoundError`` whose provider code is
    listed in ``ignore_error_codes`` also yields an empty result.
    """

    key_columns: KeyColumns
    fetch: GetFn
    ignore_error_codes: Tuple[str, ...] = ()


@dataclass
class Table:
    name: str
    description: str
    columns: List[Column]
    list_config: Optional[ListConfig] = None
    get_config: Optional[GetConfig] = None
    hydrate_configs: List[HydrateConfig] = field(default_factory=list)
    identity: IdentityPaths = field(default_factory=IdentityPaths)

    def __post_init__(self) -> None:
        issues = self.validate()
        if issues:
            raise ConfigurationError(
                f"Invalid declaration for table '{self.name}'",
                table=self.name,
                issues=issues,
            )
        self._columns_by_name: Dict[str, Column] = {c.name: c for c in self.columns}
        self._hydrates_by_name: Dict[str, HydrateConfig] = {h.name: h for h in self.hydrate_configs}

    def validate(self) -> List[str]:
        issues: List[str] = []

        seen = set()
        for column in self.columns:
            if column.name in seen:
                issues.append(f"Duplicate column name '{column.name}'")
            seen.add(column.name)

        hydrate_names = [h.name for h in self.hydrate_configs]
        if len(set(hydrate_names)) != len(hydrate_names):
            issues.append("Duplicate hydrate source names")
        for column in self.columns:
            if column.hydrate is not None and column.hydrate not in hydrate_names:
                issues.append(
                    f"Column '{column.name}' names undeclared hydrate source '{column.hydrate}'"
                )

        if self.list_config is None and self.get_config is None:
            issues.append("Table needs a list or a get strategy")

        for label, config in (("list", self.list_config), ("get", self.get_config)):
            if config is None:
                continue
            for key in config.key_columns.names:
                if key not in seen:
                    issues.append(f"{label} key column '{key}' is not a declared column")

        return issues

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        try:
            return self._columns_by_name[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown column '{name}'",
                table=self.name,
                column=name,
                suggestion="Columns: " + ", ".join(self.column_names),
            ) from None

    def hydrate(self, name: str) -> HydrateConfig:
        return self._hydrates_by_name[name]
