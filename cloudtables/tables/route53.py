"""Route 53 hosted zones.

Hosted zones have no ARN; ``akas`` is synthesized from the zone name.
Zone ids come back as ``/hostedzone/Z123``; the tagging API wants the bare
``Z123``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from cloudtables.lib.errors import NotFoundError
from cloudtables.lib.items import IdentityPaths, Item
from cloudtables.lib.pagination import PaginationConfig
from cloudtables.lib.quals import KeyColumns
from cloudtables.lib.table import Column, ColumnType, GetConfig, HydrateConfig, ListConfig, QueryContext, Table
from cloudtables.lib.transforms import from_field, route53_name_to_akas, tags_to_map
from cloudtables.tables.common import common_columns

__all__ = ["route53_hosted_zone", "strip_zone_prefix"]

SERVICE = "route53"
NOT_FOUND_CODES = ("NoSuchHostedZone", "InvalidParameterValue")
ZONE_PREFIX = "/hostedzone/"

IDENTITY = IdentityPaths(summary={"id": "Id", "name": "Name"})


def strip_zone_prefix(zone_id: str) -> str:
    if zone_id.startswith(ZONE_PREFIX):
        return zone_id[len(ZONE_PREFIX):]
    return zone_id


def _get_hosted_zone(ctx: QueryContext, keys: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    output = ctx.call(SERVICE, "get_hosted_zone", not_found_codes=NOT_FOUND_CODES, Id=str(keys["id"]))
    return output.get("HostedZone")


def _hydrate_tags(ctx: QueryContext, item: Item) -> Dict[str, Any]:
    zone_id = item.identifier("id")
    if zone_id is None:
        raise NotFoundError("Hosted zone has no id to list tags for", table="aws_route53")
    return ctx.call(
        SERVICE,
        "list_tags_for_resource",
        not_found_codes=NOT_FOUND_CODES,
        ResourceType="hostedzone",
        ResourceId=strip_zone_prefix(zone_id),
    )


def route53_hosted_zone() -> Table:
    common, common_hydrate = common_columns()
    return Table(
        name="aws_route53",
        description="AWS Route 53 hosted zone",
        columns=[
            Column("name", ColumnType.STRING, "The name of the domain."),
            Column("id", ColumnType.STRING, "The ID that Amazon Route 53 assigned to the hosted zone when you created it."),
            Column(
                "caller_reference",
                ColumnType.STRING,
                "The value that you specified for CallerReference when you created the hosted zone.",
            ),
            Column(
                "resource_record_set_count",
                ColumnType.INT,
                "The number of resource record sets in the hosted zone.",
            ),
            Column(
                "comment",
                ColumnType.STRING,
                "Any comments that you want to include about the hosted zone.",
                transform=from_field("Config.Comment"),
            ),
            Column(
                "private_zone",
                ColumnType.BOOL,
                "Indicates whether this is a private hosted zone.",
                transform=from_field("Config.PrivateZone"),
            ),
            Column(
                "linked_service_principal",
                ColumnType.STRING,
                "If the hosted zone was created by another service, the service that created it.",
                transform=from_field("LinkedService.ServicePrincipal"),
            ),
            Column(
                "description",
                ColumnType.STRING,
                "If the hosted zone was created by another service, the description that service provided.",
                transform=from_field("LinkedService.Description"),
            ),
            Column(
                "tags_src",
                ColumnType.JSON,
                "A list of tags assigned to the hosted zone.",
                transform=from_field("ResourceTagSet.Tags"),
                hydrate="list_tags",
            ),
            Column(
                "tags",
                ColumnType.JSON,
                "A map of tags for the resource.",
                transform=from_field("ResourceTagSet.Tags").transform(tags_to_map),
                hydrate="list_tags",
            ),
            Column("title", ColumnType.STRING, "Title of the resource.", transform=from_field("Name")),
            Column(
                "akas",
                ColumnType.JSON,
                "Array of globally unique identifier strings (also known as) for the resource.",
                transform=from_field("Name").transform(route53_name_to_akas),
            ),
            *common,
        ],
        list_config=ListConfig(
            service=SERVICE,
            operation="list_hosted_zones",
            pagination=PaginationConfig(
                request_token_param="Marker",
                response_token_path="NextMarker",
                items_path="HostedZones",
            ),
        ),
        get_config=GetConfig(
            key_columns=KeyColumns.single_column("id"),
            fetch=_get_hosted_zone,
            ignore_error_codes=NOT_FOUND_CODES,
        ),
        hydrate_configs=[HydrateConfig("list_tags", _hydrate_tags), common_hydrate],
        identity=IDENTITY,
    )
