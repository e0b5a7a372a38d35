"""AWS table declarations.

Usage:
    from cloudtables.tables import build_registry
    registry = build_registry()
    registry.get("aws_cost_by_service")
"""

from cloudtables.lib.registry import TableRegistry
from cloudtables.tables.cloudfront import cloudfront_distribution
from cloudtables.tables.cost_explorer import (
    cost_by_account,
    cost_by_service,
    cost_by_service_usage_type,
    cost_by_tag,
    cost_forecast,
)
from cloudtables.tables.pricing import pricing_product, pricing_service
from cloudtables.tables.route53 import route53_hosted_zone

__all__ = ["TABLE_FACTORIES", "build_registry"]

TABLE_FACTORIES = (
    cost_by_account,
    cost_by_service,
    cost_by_service_usage_type,
    cost_by_tag,
    cost_forecast,
    cloudfront_distribution,
    route53_hosted_zone,
    pricing_service,
    pricing_product,
)


def build_registry() -> TableRegistry:
    """Build a registry holding every AWS table."""
    return TableRegistry(factory() for factory in TABLE_FACTORIES)
