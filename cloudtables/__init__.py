"""AWS resources as queryable tables.

Billing data, CloudFront distributions, Route 53 hosted zones and the Price
List exposed as typed tables with a shared pagination, hydration and
transform engine.

Usage:
    python -m cloudtables --list
    python -m cloudtables query aws_cost_by_service --where granularity=MONTHLY
"""

from cloudtables.lib.query import QueryEngine, QueryRequest
from cloudtables.lib.quals import QualOperator, Qualifier
from cloudtables.lib.transport import AwsTransport
from cloudtables.tables import build_registry

__all__ = [
    "AwsTransport",
    "QualOperator",
    "Qualifier",
    "QueryEngine",
    "QueryRequest",
    "build_registry",
]
