"""Table engine library modules.

Qualifier resolution, pagination, hydration and column transforms shared by
every table, plus the transport, configuration, logging and error types
around them.
"""

from cloudtables.lib.config_loader import (
    CloudTablesConfig,
    ConnectionConfig,
    EngineSettings,
    ForecastPolicy,
    LookbackPolicy,
    TransformErrorPolicy,
    build_config_from_dict,
    load_config,
)
from cloudtables.lib.errors import (
    CloudTablesError,
    ConfigurationError,
    MissingRequiredFilter,
    NotFoundError,
    TransformError,
    TransportError,
    UnknownTableError,
)
from cloudtables.lib.hydrate import HydrationCache, HydrationResolver
from cloudtables.lib.items import IdentityPaths, Item, ItemShape
from cloudtables.lib.logging import JSONFormatter, QueryLogger, get_query_logger, setup_logging
from cloudtables.lib.pagination import PageFetcher, PaginationConfig, TokenPaginationState
from cloudtables.lib.quals import (
    KeyColumns,
    QualifierResolver,
    QualMap,
    QualOperator,
    Qualifier,
    RequestPlan,
    Strategy,
    TimeWindow,
    derive_forecast_window,
    derive_time_window,
)
from cloudtables.lib.query import QueryEngine, QueryRequest
from cloudtables.lib.registry import TableRegistry
from cloudtables.lib.table import Column, ColumnType, GetConfig, HydrateConfig, ListConfig, QueryContext, Table
from cloudtables.lib.transforms import (
    MISSING,
    TransformChain,
    apply_chain,
    arn_to_akas,
    from_field,
    get_path,
    route53_name_to_akas,
    tags_to_map,
)
from cloudtables.lib.transport import AwsTransport, wrap_client_error

__all__ = [
    "AwsTransport",
    "CloudTablesConfig",
    "CloudTablesError",
    "Column",
    "ColumnType",
    "ConfigurationError",
    "ConnectionConfig",
    "EngineSettings",
    "ForecastPolicy",
    "GetConfig",
    "HydrateConfig",
    "HydrationCache",
    "HydrationResolver",
    "IdentityPaths",
    "Item",
    "ItemShape",
    "JSONFormatter",
    "KeyColumns",
    "ListConfig",
    "LookbackPolicy",
    "MISSING",
    "MissingRequiredFilter",
    "NotFoundError",
    "PageFetcher",
    "PaginationConfig",
    "QualMap",
    "QualOperator",
    "Qualifier",
    "QualifierResolver",
    "QueryContext",
    "QueryEngine",
    "QueryLogger",
    "QueryRequest",
    "RequestPlan",
    "Strategy",
    "Table",
    "TableRegistry",
    "TimeWindow",
    "TokenPaginationState",
    "TransformChain",
    "TransformError",
    "TransformErrorPolicy",
    "TransportError",
    "UnknownTableError",
    "apply_chain",
    "arn_to_akas",
    "build_config_from_dict",
    "derive_forecast_window",
    "derive_time_window",
    "from_field",
    "get_path",
    "get_query_logger",
    "load_config",
    "route53_name_to_akas",
    "setup_logging",
    "tags_to_map",
    "wrap_client_error",
]
