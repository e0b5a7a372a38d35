"""AWS Price List tables.

``GetProducts`` returns each price-list entry as a JSON *string*; entries are
decoded per page before they become items. Product attributes live under
``product.attributes`` with the Price List's own (inconsistent) casing, so
those columns name their field explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from cloudtables.lib.config_loader import EngineSettings
from cloudtables.lib.errors import TransportError
from cloudtables.lib.items import IdentityPaths
from cloudtables.lib.pagination import PaginationConfig
from cloudtables.lib.quals import KeyColumns, QualMap
from cloudtables.lib.table import Column, ColumnType, GetConfig, ListConfig, QueryContext, Table
from cloudtables.lib.transforms import from_field, from_qual, parse_json
from cloudtables.tables.common import common_columns

logger = logging.getLogger(__name__)

__all__ = ["build_product_params", "parse_price_list", "pricing_product", "pricing_service"]

SERVICE = "pricing"

# Optional qualifier -> Price List filter field
PRODUCT_FILTER_FIELDS: Dict[str, str] = {
    "instance_type": "instanceType",
    "location": "location",
    "term_type": "termType",
    "operating_system": "operatingSystem",
    "tenancy": "tenancy",
}

# Column -> field under product.attributes
PRODUCT_ATTRIBUTES: Dict[str, str] = {
    "memory": "memory",
    "storage": "storage",
    "location": "location",
    "operation": "operation",
    "usage_type": "usagetype",
    "clock_speed": "clockSpeed",
    "service_name": "servicename",
    "instance_type": "instanceType",
    "license_model": "licenseModel",
    "location_type": "locationType",
    "instance_family": "instanceFamily",
    "current_generation": "currentGeneration",
    "physical_processor": "physicalProcessor",
    "processor_features": "processorFeatures",
    "network_performance": "networkPerformance",
    "processor_architecture": "processorArchitecture",
    "normalization_size_factor": "normalizationSizeFactor",
    "ecu": "ecu",
    "tenancy": "tenancy",
    "capacity_status": "capacitystatus",
    "pre_installed_sw": "preInstalledSw",
    "operating_system": "operatingSystem",
    "intel_avx_available": "intelAvxAvailable",
    "intel_avx2_available": "intelAvx2Available",
    "intel_turbo_available": "intelTurboAvailable",
    "dedicated_ebs_throughput": "dedicatedEbsThroughput",
    "enhanced_networking_supported": "enhancedNetworkingSupported",
    "engine_code": "engineCode",
    "database_engine": "databaseEngine",
    "database_edition": "databaseEdition",
    "deployment_option": "deploymentOption",
    "instance_type_family": "instanceTypeFamily",
}


def parse_price_list(page: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Decode the JSON price-list entries of one ``GetProducts`` page."""
    return [parse_json(entry) for entry in page.get("PriceList") or []]


def build_product_params(quals: QualMap, settings: EngineSettings, now: datetime) -> Dict[str, Any]:
    filters = [
        {"Type": "TERM_MATCH", "Field": field, "Value": str(quals.equals(column))}
        for column, field in PRODUCT_FILTER_FIELDS.items()
        if quals.has_equal(column)
    ]
    return {"ServiceCode": str(quals.equals("service_code")), "Filters": filters}


def _get_service(ctx: QueryContext, keys: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    service_code = str(keys["service_code"])
    output = ctx.call(SERVICE, "describe_services", not_found_codes=("NotFoundException",), ServiceCode=service_code)
    services = output.get("Services") or []
    if not services:
        return None
    if len(services) != 1:
        raise TransportError(
            f"Expected 1 result for service {service_code} but found {len(services)}",
            service=SERVICE,
            operation="describe_services",
        )
    return services[0]


def pricing_service() -> Table:
    common, common_hydrate = common_columns()
    return Table(
        name="aws_pricing_service",
        description="AWS Pricing - Service List",
        columns=[
            Column("service_code", ColumnType.STRING, "The code for the AWS service."),
            Column("attribute_names", ColumnType.JSON, "The attributes that are available for this service."),
            Column("title", ColumnType.STRING, "Title of the resource.", transform=from_field("ServiceCode")),
            *common,
        ],
        list_config=ListConfig(
            service=SERVICE,
            operation="describe_services",
            pagination=PaginationConfig(
                request_token_param="NextToken",
                response_token_path="NextToken",
                items_path="Services",
            ),
        ),
        get_config=GetConfig(
            key_columns=KeyColumns.single_column("service_code"),
            fetch=_get_service,
            ignore_error_codes=("NotFoundException",),
        ),
        hydrate_configs=[common_hydrate],
        identity=IdentityPaths(summary={"id": "ServiceCode"}),
    )


def _attribute_column(name: str, field: str) -> Column:
    return Column(
        name,
        ColumnType.STRING,
        f"The product's {field} attribute.",
        transform=from_field(f"product.attributes.{field}"),
    )


def pricing_product() -> Table:
    common, common_hydrate = common_columns()
    return Table(
        name="aws_pricing_product",
        description="AWS Pricing - Products",
        columns=[
            Column("service_code", ColumnType.STRING, "The code for the AWS service.", transform=from_field("serviceCode")),
            Column(
                "publication_date",
                ColumnType.TIMESTAMP,
                "When this price list was published.",
                transform=from_field("publicationDate").null_if_zero(),
            ),
            Column("version", ColumnType.STRING, "The price list version.", transform=from_field("version")),
            Column("sku", ColumnType.STRING, "The product SKU.", transform=from_field("product.sku")),
            Column(
                "product_family",
                ColumnType.STRING,
                "The product family (Compute Instance, Storage, ...).",
                transform=from_field("product.productFamily"),
            ),
            Column(
                "term_type",
                ColumnType.STRING,
                "The term type filter (OnDemand or Reserved) the product was listed with.",
                transform=from_qual("term_type"),
            ),
            Column(
                "vcpu",
                ColumnType.INT,
                "The number of virtual CPUs.",
                transform=from_field("product.attributes.vcpu"),
            ),
            *[_attribute_column(name, field) for name, field in PRODUCT_ATTRIBUTES.items()],
            Column("attributes", ColumnType.JSON, "All product attributes.", transform=from_field("product.attributes")),
            Column("terms", ColumnType.JSON, "Pricing terms (OnDemand, Reserved).", transform=from_field("terms")),
            *common,
        ],
        list_config=ListConfig(
            service=SERVICE,
            operation="get_products",
            key_columns=KeyColumns.all_columns(
                ["service_code", "instance_type"],
                optional=["location", "term_type", "operating_system", "tenancy"],
            ),
            build_params=build_product_params,
            pagination=PaginationConfig(
                request_token_param="NextToken",
                response_token_path="NextToken",
                items_from_page=parse_price_list,
            ),
        ),
        hydrate_configs=[common_hydrate],
        identity=IdentityPaths(summary={"id": "product.sku"}),
    )
