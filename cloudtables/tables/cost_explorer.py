"""Cost Explorer tables.

All cost tables call ``GetCostAndUsage`` over a window derived from the
``granularity`` qualifier and differ only in how results are grouped. Each
``ResultsByTime`` entry expands into one row per group, or a single row from
``Total`` when the period has no groups:

    {"TimePeriod": {...}, "Groups": [{"Keys": ["111"], "Metrics": {...}}, ...]}
    -> {"PeriodStart": ..., "Dimension1": "111", "Metrics": {...}}
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from cloudtables.lib.config_loader import EngineSettings
from cloudtables.lib.items import Item
from cloudtables.lib.pagination import PaginationConfig
from cloudtables.lib.quals import (
    KeyColumns,
    QualMap,
    apply_period_qualifiers,
    derive_forecast_window,
    derive_time_window,
    normalize_granularity,
)
from cloudtables.lib.table import Column, ColumnType, HydrateConfig, ListConfig, QueryContext, Table
from cloudtables.lib.transforms import from_field
from cloudtables.tables.common import common_columns

logger = logging.getLogger(__name__)

__all__ = [
    "COST_METRICS",
    "build_cost_params",
    "build_forecast_params",
    "cost_by_account",
    "cost_by_service",
    "cost_by_service_usage_type",
    "cost_by_tag",
    "cost_forecast",
    "expand_results_by_time",
]

# Metric name -> column prefix
COST_METRICS: Dict[str, str] = {
    "BlendedCost": "blended_cost",
    "UnblendedCost": "unblended_cost",
    "NetUnblendedCost": "net_unblended_cost",
    "AmortizedCost": "amortized_cost",
    "NetAmortizedCost": "net_amortized_cost",
    "UsageQuantity": "usage_quantity",
    "NormalizedUsageAmount": "normalized_usage",
}

FORECAST_METRIC = "UNBLENDED_COST"
QUALS_SOURCE = "cost_quals"

GroupBy = Callable[[QualMap], List[Dict[str, str]]]


def _dimension(key: str) -> GroupBy:
    return lambda quals: [{"Type": "DIMENSION", "Key": key}]


def _tag_group(quals: QualMap) -> List[Dict[str, str]]:
    return [{"Type": "TAG", "Key": str(quals.equals("tag_key"))}]


def build_cost_params(group_by: Optional[GroupBy] = None):
    """Parameter builder for ``GetCostAndUsage`` with the given grouping."""

    def build(quals: QualMap, settings: EngineSettings, now: datetime) -> Dict[str, Any]:
        granularity = normalize_granularity(quals.equals("granularity"))
        window = derive_time_window(granularity, now, settings.lookback)
        window = apply_period_qualifiers(window, quals, granularity)

        params: Dict[str, Any] = {
            "TimePeriod": window.as_date_interval(),
            "Granularity": granularity,
            "Metrics": list(COST_METRICS),
        }
        if group_by is not None:
            params["GroupBy"] = group_by(quals)
        return params

    return build


def build_forecast_params(quals: QualMap, settings: EngineSettings, now: datetime) -> Dict[str, Any]:
    granularity = normalize_granularity(quals.equals("granularity"))
    window = derive_forecast_window(granularity, now, settings.forecast)
    return {
        "TimePeriod": window.as_date_interval(),
        "Granularity": granularity,
        "Metric": FORECAST_METRIC,
    }


def expand_results_by_time(page: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten one ``GetCostAndUsage`` page into row items."""
    rows: List[Dict[str, Any]] = []
    for result in page.get("ResultsByTime") or []:
        period = result.get("TimePeriod") or {}
        base = {
            "PeriodStart": period.get("Start"),
            "PeriodEnd": period.get("End"),
            "Estimated": result.get("Estimated"),
        }
        groups = result.get("Groups") or []
        if not groups:
            rows.append({**base, "Dimension1": None, "Dimension2": None, "Metrics": result.get("Total") or {}})
            continue
        for group in groups:
            keys = group.get("Keys") or []
            rows.append(
                {
                    **base,
                    "Dimension1": keys[0] if len(keys) > 0 else None,
                    "Dimension2": keys[1] if len(keys) > 1 else None,
                    "Metrics": group.get("Metrics") or {},
                }
            )
    return rows


def _hydrate_quals(ctx: QueryContext, item: Item) -> Dict[str, Any]:
    granularity = ctx.quals.equals("granularity")
    return {"Granularity": normalize_granularity(granularity) if granularity is not None else None}


def _granularity_column() -> Column:
    return Column(
        "granularity",
        ColumnType.STRING,
        "The time granularity of the results (HOURLY, DAILY or MONTHLY).",
        transform=from_field("Granularity"),
        hydrate=QUALS_SOURCE,
    )


def _cost_columns() -> List[Column]:
    columns = [
        Column("period_start", ColumnType.TIMESTAMP, "Start timestamp for this cost metric."),
        Column("period_end", ColumnType.TIMESTAMP, "End timestamp for this cost metric."),
        Column("estimated", ColumnType.BOOL, "Whether the result is estimated."),
    ]
    for metric, prefix in COST_METRICS.items():
        columns.append(
            Column(
                f"{prefix}_amount",
                ColumnType.DOUBLE,
                f"The {metric} amount for the period.",
                transform=from_field(f"Metrics.{metric}.Amount"),
            )
        )
        columns.append(
            Column(
                f"{prefix}_unit",
                ColumnType.STRING,
                f"The unit the {metric} amount is measured in.",
                transform=from_field(f"Metrics.{metric}.Unit"),
            )
        )
    return columns


def _cost_table(
    name: str,
    description: str,
    dimension_columns: Sequence[Column],
    group_by: Optional[GroupBy],
    required: Sequence[str] = ("granularity",),
) -> Table:
    common, common_hydrate = common_columns()
    return Table(
        name=name,
        description=description,
        columns=[*dimension_columns, _granularity_column(), *_cost_columns(), *common],
        list_config=ListConfig(
            service="ce",
            operation="get_cost_and_usage",
            key_columns=KeyColumns.all_columns(required, optional=("period_start", "period_end")),
            build_params=build_cost_params(group_by),
            pagination=PaginationConfig(
                request_token_param="NextPageToken",
                response_token_path="NextPageToken",
                items_from_page=expand_results_by_time,
            ),
        ),
        hydrate_configs=[HydrateConfig(QUALS_SOURCE, _hydrate_quals, shared=True), common_hydrate],
    )


def cost_by_account() -> Table:
    return _cost_table(
        "aws_cost_by_account",
        "AWS Cost Explorer - Cost by Linked Account",
        [
            Column(
                "linked_account_id",
                ColumnType.STRING,
                "The linked AWS Account ID.",
                transform=from_field("Dimension1"),
            )
        ],
        _dimension("LINKED_ACCOUNT"),
    )


def cost_by_service() -> Table:
    return _cost_table(
        "aws_cost_by_service",
        "AWS Cost Explorer - Cost by Service",
        [Column("service", ColumnType.STRING, "The name of the AWS service.", transform=from_field("Dimension1"))],
        _dimension("SERVICE"),
    )


def cost_by_service_usage_type() -> Table:
    return _cost_table(
        "aws_cost_by_service_usage_type",
        "AWS Cost Explorer - Cost by Service and Usage Type",
        [
            Column("service", ColumnType.STRING, "The name of the AWS service.", transform=from_field("Dimension1")),
            Column("usage_type", ColumnType.STRING, "The usage type of this metric.", transform=from_field("Dimension2")),
        ],
        lambda quals: [
            {"Type": "DIMENSION", "Key": "SERVICE"},
            {"Type": "DIMENSION", "Key": "USAGE_TYPE"},
        ],
    )


def cost_by_tag() -> Table:
    return _cost_table(
        "aws_cost_by_tag",
        "AWS Cost Explorer - Cost by Tag",
        [
            Column(
                "tag_key",
                ColumnType.STRING,
                "The tag group value, as returned by Cost Explorer (key$value).",
                transform=from_field("Dimension1"),
            )
        ],
        _tag_group,
        required=("granularity", "tag_key"),
    )


def cost_forecast() -> Table:
    common, common_hydrate = common_columns()
    return Table(
        name="aws_cost_forecast",
        description="AWS Cost Explorer - Cost Forecast",
        columns=[
            _granularity_column(),
            Column(
                "period_start",
                ColumnType.TIMESTAMP,
                "Start timestamp for this forecast.",
                transform=from_field("TimePeriod.Start"),
            ),
            Column(
                "period_end",
                ColumnType.TIMESTAMP,
                "End timestamp for this forecast.",
                transform=from_field("TimePeriod.End"),
            ),
            Column("mean_value", ColumnType.DOUBLE, "Average forecasted value."),
            Column(
                "prediction_interval_lower_bound",
                ColumnType.DOUBLE,
                "The lower limit for the prediction interval.",
            ),
            Column(
                "prediction_interval_upper_bound",
                ColumnType.DOUBLE,
                "The upper limit for the prediction interval.",
            ),
            *common,
        ],
        list_config=ListConfig(
            service="ce",
            operation="get_cost_forecast",
            key_columns=KeyColumns.single_column("granularity"),
            build_params=build_forecast_params,
            pagination=PaginationConfig(items_path="ForecastResultsByTime"),
        ),
        hydrate_configs=[HydrateConfig(QUALS_SOURCE, _hydrate_quals, shared=True), common_hydrate],
    )
