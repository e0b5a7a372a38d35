"""Columns every table carries.

``partition`` and ``account_id`` come from the caller identity (one STS call
per transport); regional tables also report the region their client talks
to.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from cloudtables.lib.items import Item
from cloudtables.lib.table import Column, ColumnType, HydrateConfig, QueryContext
from cloudtables.lib.transforms import from_field

__all__ = ["COMMON_SOURCE", "common_columns", "partition_from_arn"]

COMMON_SOURCE = "caller_identity"


def partition_from_arn(arn: Optional[str]) -> Optional[str]:
    """``arn:aws-cn:sts::123:assumed-role/x`` -> ``aws-cn``."""
    if not arn:
        return None
    parts = arn.split(":")
    if len(parts) < 2 or parts[0] != "arn":
        return None
    return parts[1] or None


def _hydrate_common(service: Optional[str]):
    def fetch(ctx: QueryContext, item: Item) -> Dict[str, Any]:
        identity = ctx.transport.caller_identity()
        return {
            "partition": partition_from_arn(identity.get("Arn")),
            "account_id": identity.get("Account"),
            "region": ctx.transport.region_for(service) if service else None,
        }

    return fetch


def common_columns(service: Optional[str] = None) -> Tuple[List[Column], HydrateConfig]:
    """Common columns plus the hydrate source backing them.

    Pass ``service`` for regional tables to add a ``region`` column.
    """
    columns = [
        Column(
            "partition",
            ColumnType.STRING,
            "The AWS partition in which the resource is located (aws, aws-cn, or aws-us-gov).",
            transform=from_field("partition"),
            hydrate=COMMON_SOURCE,
        ),
    ]
    if service:
        columns.append(
            Column(
                "region",
                ColumnType.STRING,
                "The AWS Region in which the resource is located.",
                transform=from_field("region"),
                hydrate=COMMON_SOURCE,
            )
        )
    columns.append(
        Column(
            "account_id",
            ColumnType.STRING,
            "The AWS Account ID in which the resource is located.",
            transform=from_field("account_id"),
            hydrate=COMMON_SOURCE,
        )
    )
    return columns, HydrateConfig(COMMON_SOURCE, _hydrate_common(service), shared=True)
