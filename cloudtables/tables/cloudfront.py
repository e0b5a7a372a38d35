"""CloudFront distributions.

``ListDistributions`` returns ``DistributionSummary`` objects with the
configuration fields inline. ``GetDistribution`` returns the ``ETag`` plus a
``Distribution`` whose configuration sits one level deeper under
``DistributionConfig``; the get path lifts those fields to the top so the
same column paths read both shapes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from cloudtables.lib.errors import NotFoundError
from cloudtables.lib.items import IdentityPaths, Item
from cloudtables.lib.pagination import PaginationConfig
from cloudtables.lib.quals import KeyColumns
from cloudtables.lib.table import Column, ColumnType, GetConfig, HydrateConfig, ListConfig, QueryContext, Table
from cloudtables.lib.transforms import arn_to_akas, from_field, tags_to_map
from cloudtables.tables.common import common_columns

__all__ = ["cloudfront_distribution", "normalize_distribution"]

SERVICE = "cloudfront"
NOT_FOUND_CODES = ("NoSuchDistribution",)

IDENTITY = IdentityPaths(
    summary={"id": "Id", "arn": "ARN"},
    detail={"id": "Distribution.Id", "arn": "Distribution.ARN"},
)


def normalize_distribution(output: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a ``GetDistribution`` response into summary layout.

    The original ``Distribution`` and ``ETag`` stay available for columns
    that read them directly.
    """
    distribution = dict(output.get("Distribution") or {})
    config = distribution.pop("DistributionConfig", None) or {}
    return {
        **config,
        **distribution,
        "Distribution": output.get("Distribution"),
        "ETag": output.get("ETag"),
    }


def _get_distribution(ctx: QueryContext, keys: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    output = ctx.call(SERVICE, "get_distribution", not_found_codes=NOT_FOUND_CODES, Id=str(keys["id"]))
    if not output.get("Distribution"):
        return None
    return normalize_distribution(output)


def _hydrate_distribution(ctx: QueryContext, item: Item) -> Dict[str, Any]:
    return ctx.call(SERVICE, "get_distribution", not_found_codes=NOT_FOUND_CODES, Id=item.identifier("id"))


def _hydrate_tags(ctx: QueryContext, item: Item) -> Dict[str, Any]:
    arn = item.identifier("arn")
    if arn is None:
        raise NotFoundError("Distribution has no ARN to list tags for", table="aws_cloudfront_distribution")
    return ctx.call(SERVICE, "list_tags_for_resource", not_found_codes=NOT_FOUND_CODES, Resource=arn)


def cloudfront_distribution() -> Table:
    common, common_hydrate = common_columns(SERVICE)
    return Table(
        name="aws_cloudfront_distribution",
        description="AWS CloudFront Distribution",
        columns=[
            Column("id", ColumnType.STRING, "The identifier for the Distribution."),
            Column("arn", ColumnType.STRING, "The ARN (Amazon Resource Name) for the distribution.", transform=from_field("ARN")),
            Column("enabled", ColumnType.BOOL, "Whether the Distribution is enabled to accept user requests for content."),
            Column(
                "e_tag",
                ColumnType.STRING,
                "The current version of the distribution's information.",
                hydrate="get_distribution",
            ),
            Column(
                "status",
                ColumnType.STRING,
                "The current status of the Distribution. Deployed means the configuration has reached every edge location.",
            ),
            Column("last_modified_time", ColumnType.TIMESTAMP, "The date and time the Distribution was last modified."),
            Column("domain_name", ColumnType.STRING, "The domain name that corresponds to the Distribution."),
            Column(
                "tags_src",
                ColumnType.JSON,
                "A list of tags assigned to the distribution.",
                transform=from_field("Tags.Items"),
                hydrate="list_tags",
            ),
            Column("comment", ColumnType.STRING, "The comment originally specified when this Distribution was created."),
            Column("http_version", ColumnType.STRING, "The maximum HTTP version viewers may use to talk to CloudFront."),
            Column(
                "is_ipv6_enabled",
                ColumnType.BOOL,
                "Whether CloudFront responds to IPv6 DNS requests for the Distribution.",
                transform=from_field("IsIPV6Enabled"),
            ),
            Column(
                "active_trusted_key_groups_enabled",
                ColumnType.BOOL,
                "True if any key group has public keys CloudFront can use to verify signed URLs and cookies.",
                transform=from_field("Distribution.ActiveTrustedKeyGroups.Enabled"),
                hydrate="get_distribution",
            ),
            Column(
                "active_trusted_key_groups_items",
                ColumnType.JSON,
                "The key groups, with the public key identifiers CloudFront can use to verify signatures.",
                transform=from_field("Distribution.ActiveTrustedKeyGroups.Items"),
                hydrate="get_distribution",
            ),
            Column(
                "active_trusted_key_groups_quantity",
                ColumnType.INT,
                "The number of key groups in the list.",
                transform=from_field("Distribution.ActiveTrustedKeyGroups.Quantity"),
                hydrate="get_distribution",
            ),
            Column(
                "active_trusted_signers_enabled",
                ColumnType.BOOL,
                "True if any listed AWS account has active CloudFront key pairs for verifying signatures.",
                transform=from_field("Distribution.ActiveTrustedSigners.Enabled"),
                hydrate="get_distribution",
            ),
            Column(
                "active_trusted_signers_items",
                ColumnType.JSON,
                "The AWS accounts and their active CloudFront key pair identifiers.",
                transform=from_field("Distribution.ActiveTrustedSigners.Items"),
                hydrate="get_distribution",
            ),
            Column(
                "active_trusted_signers_quantity",
                ColumnType.INT,
                "The number of AWS accounts in the list.",
                transform=from_field("Distribution.ActiveTrustedSigners.Quantity"),
                hydrate="get_distribution",
            ),
            Column("price_class", ColumnType.STRING, "The price class of the Distribution."),
            Column(
                "web_acl_id",
                ColumnType.STRING,
                "The Web ACL Id (if any) associated with the distribution.",
                transform=from_field("WebACLId"),
            ),
            Column(
                "aliases_quantity",
                ColumnType.INT,
                "The number of CNAME aliases associated with this Distribution.",
                transform=from_field("Aliases.Quantity"),
            ),
            Column(
                "aliases_items",
                ColumnType.JSON,
                "The CNAME aliases associated with this distribution.",
                transform=from_field("Aliases.Items"),
            ),
            Column(
                "cache_behaviors_quantity",
                ColumnType.INT,
                "The number of cache behaviors for this Distribution.",
                transform=from_field("CacheBehaviors.Quantity"),
            ),
            Column(
                "cache_behaviors_items",
                ColumnType.JSON,
                "The cache behaviors for this Distribution.",
                transform=from_field("CacheBehaviors.Items"),
            ),
            Column(
                "origins_quantity",
                ColumnType.INT,
                "The number of origins for this distribution.",
                transform=from_field("Origins.Quantity"),
            ),
            Column("origins_items", ColumnType.JSON, "A list of origins.", transform=from_field("Origins.Items")),
            Column(
                "in_progress_invalidation_batches",
                ColumnType.INT,
                "The number of invalidation batches currently in progress.",
                transform=from_field("Distribution.InProgressInvalidationBatches"),
                hydrate="get_distribution",
            ),
            Column("title", ColumnType.STRING, "Title of the resource.", transform=from_field("Id")),
            Column(
                "tags",
                ColumnType.JSON,
                "A map of tags for the resource.",
                transform=from_field("Tags.Items").transform(tags_to_map),
                hydrate="list_tags",
            ),
            Column(
                "akas",
                ColumnType.JSON,
                "Array of globally unique identifier strings (also known as) for the resource.",
                transform=from_field("ARN").transform(arn_to_akas),
            ),
            *common,
        ],
        list_config=ListConfig(
            service=SERVICE,
            operation="list_distributions",
            pagination=PaginationConfig(
                request_token_param="Marker",
                response_token_path="DistributionList.NextMarker",
                items_path="DistributionList.Items",
            ),
        ),
        get_config=GetConfig(
            key_columns=KeyColumns.single_column("id"),
            fetch=_get_distribution,
            ignore_error_codes=NOT_FOUND_CODES,
        ),
        hydrate_configs=[
            HydrateConfig("get_distribution", _hydrate_distribution),
            HydrateConfig("list_tags", _hydrate_tags),
            common_hydrate,
        ],
        identity=IDENTITY,
    )
