"""Tests for table declarations, the registry and items."""

import pytest

from cloudtables.lib.errors import ConfigurationError, TransformError, UnknownTableError
from cloudtables.lib.items import IdentityPaths, Item, ItemShape
from cloudtables.lib.quals import KeyColumns
from cloudtables.lib.registry import TableRegistry
from cloudtables.lib.table import Column, ColumnType, GetConfig, HydrateConfig, ListConfig, Table, coerce_value
from cloudtables.tables import TABLE_FACTORIES, build_registry
from cloudtables.tables.common import partition_from_arn


def simple_table(name="test_table", **overrides):
    fields = dict(
        name=name,
        description="Test",
        columns=[Column("id", ColumnType.STRING), Column("name", ColumnType.STRING)],
        list_config=ListConfig(service="route53", operation="list_hosted_zones"),
    )
    fields.update(overrides)
    return Table(**fields)


# ============================================
# Coercion
# ============================================


class TestCoerceValue:
    """Tests for typed column coercion."""

    @pytest.mark.parametrize(
        "value,column_type,expected",
        [
            ("7", ColumnType.INT, 7),
            ("7.0", ColumnType.INT, 7),
            (True, ColumnType.INT, 1),
            ("1.25", ColumnType.DOUBLE, 1.25),
            ("true", ColumnType.BOOL, True),
            ("No", ColumnType.BOOL, False),
            (0, ColumnType.BOOL, False),
            (12, ColumnType.STRING, "12"),
            ({"a": 1}, ColumnType.STRING, '{"a": 1}'),
            ({"a": 1}, ColumnType.JSON, {"a": 1}),
            ("2025-01-01", ColumnType.TIMESTAMP, "2025-01-01T00:00:00+00:00"),
            ("2025-01-01T10:00:00+02:00", ColumnType.TIMESTAMP, "2025-01-01T10:00:00+02:00"),
        ],
    )
    def test_conversions(self, value, column_type, expected):
        """Values convert to the declared type."""
        assert coerce_value(value, column_type) == expected

    @pytest.mark.parametrize("column_type", list(ColumnType))
    def test_none_passes_through(self, column_type):
        """None is null for every type."""
        assert coerce_value(None, column_type) is None

    @pytest.mark.parametrize(
        "value,column_type",
        [("abc", ColumnType.INT), ("abc", ColumnType.DOUBLE), ("maybe", ColumnType.BOOL), ("not a date", ColumnType.TIMESTAMP)],
    )
    def test_failures(self, value, column_type):
        """Unconvertible values raise TransformError naming the column."""
        with pytest.raises(TransformError) as exc_info:
            coerce_value(value, column_type, column="c")
        assert exc_info.value.column == "c"


# ============================================
# Declarations
# ============================================


class TestTableValidation:
    """Tests for declaration checks."""

    def test_valid(self):
        """A well-formed table builds."""
        table = simple_table()
        assert table.column_names == ["id", "name"]
        assert table.column("name").type is ColumnType.STRING

    def test_unknown_column(self):
        """Unknown column lookups list the real ones."""
        with pytest.raises(ConfigurationError) as exc_info:
            simple_table().column("nope")
        assert "id, name" in exc_info.value.suggestion

    def test_duplicate_columns(self):
        """Column names must be unique."""
        with pytest.raises(ConfigurationError, match="Duplicate column name 'id'"):
            simple_table(columns=[Column("id", ColumnType.STRING), Column("id", ColumnType.INT)])

    def test_undeclared_hydrate(self):
        """Columns may only name declared hydrate sources."""
        with pytest.raises(ConfigurationError, match="undeclared hydrate source 'tags'"):
            simple_table(columns=[Column("tags", ColumnType.JSON, hydrate="tags")])

    def test_duplicate_hydrates(self):
        """Hydrate source names must be unique."""
        fetch = lambda ctx, item: {}  # noqa: E731
        with pytest.raises(ConfigurationError, match="Duplicate hydrate"):
            simple_table(hydrate_configs=[HydrateConfig("tags", fetch), HydrateConfig("tags", fetch)])

    def test_needs_a_strategy(self):
        """A table needs list or get."""
        with pytest.raises(ConfigurationError, match="list or a get"):
            simple_table(list_config=None)

    def test_key_columns_must_exist(self):
        """Key columns must be declared columns."""
        with pytest.raises(ConfigurationError) as exc_info:
            simple_table(
                get_config=GetConfig(key_columns=KeyColumns.single_column("arn"), fetch=lambda ctx, keys: None)
            )
        assert "get key column 'arn' is not a declared column" in exc_info.value.issues


class TestShippedTables:
    """Tests for the built-in table set."""

    def test_every_factory_builds(self):
        """Every shipped declaration validates."""
        names = [factory().name for factory in TABLE_FACTORIES]
        assert len(names) == len(set(names))

    def test_registry_contents(self):
        """The registry holds the cost, CloudFront, Route 53 and pricing tables."""
        registry = build_registry()
        assert registry.names() == [
            "aws_cloudfront_distribution",
            "aws_cost_by_account",
            "aws_cost_by_service",
            "aws_cost_by_service_usage_type",
            "aws_cost_by_tag",
            "aws_cost_forecast",
            "aws_pricing_product",
            "aws_pricing_service",
            "aws_route53",
        ]

    def test_registries_are_independent(self):
        """build_registry returns a fresh value each time."""
        first, second = build_registry(), build_registry()
        assert first is not second
        assert first.get("aws_route53") is not second.get("aws_route53")

    @pytest.mark.parametrize("name", ["aws_route53", "aws_cloudfront_distribution", "aws_pricing_service"])
    def test_common_columns(self, registry, name):
        """Every table reports partition and account."""
        names = registry.get(name).column_names
        assert "partition" in names
        assert "account_id" in names


class TestTableRegistry:
    """Tests for the name lookup."""

    def test_register_and_get(self):
        """Registered tables are found by name."""
        registry = TableRegistry([simple_table("b_table"), simple_table("a_table")])
        assert registry.get("a_table").name == "a_table"
        assert "b_table" in registry
        assert len(registry) == 2
        assert [t.name for t in registry] == ["a_table", "b_table"]

    def test_duplicate_name(self):
        """A name can be registered once."""
        registry = TableRegistry([simple_table()])
        with pytest.raises(ConfigurationError, match="already registered"):
            registry.register(simple_table())

    def test_unknown(self):
        """Unknown names raise UnknownTableError."""
        with pytest.raises(UnknownTableError) as exc_info:
            TableRegistry([simple_table()]).get("other")
        assert exc_info.value.available == ["test_table"]


# ============================================
# Items
# ============================================


class TestItems:
    """Tests for item identity across shapes."""

    IDENTITY = IdentityPaths(
        summary={"id": "Id", "arn": "ARN"},
        detail={"id": "Distribution.Id", "arn": "Distribution.ARN"},
    )

    def test_summary_identity(self):
        """Summary items read top-level paths."""
        item = Item(data={"Id": "E1", "ARN": "arn:1"}, identity=self.IDENTITY)
        assert item.identifier("id") == "E1"
        assert item.identifier("arn") == "arn:1"
        assert item.cache_key == "E1"

    def test_detail_identity(self):
        """Detail items read their nested paths."""
        item = Item(
            data={"Distribution": {"Id": "E1", "ARN": "arn:1"}},
            shape=ItemShape.DETAIL,
            identity=self.IDENTITY,
        )
        assert item.identifier("id") == "E1"
        assert item.identifier("arn") == "arn:1"

    def test_detail_falls_back_to_summary_paths(self):
        """Identifiers a detail shape does not override use summary paths."""
        identity = IdentityPaths(summary={"id": "Id", "name": "Name"})
        item = Item(data={"Id": "Z1", "Name": "example."}, shape=ItemShape.DETAIL, identity=identity)
        assert item.identifier("name") == "example."

    def test_missing_identity_uses_position(self):
        """Items without an id are keyed by position."""
        item = Item(data={}, identity=self.IDENTITY, seq=4)
        assert item.identifier("id") is None
        assert item.cache_key == "#4"
        assert Item(data={}, seq=2).identifier() is None

    def test_data_for(self):
        """Columns read hydrated data when present, else the base item."""
        item = Item(data={"Id": "E1"}, hydrated={"tags": {"Tags": {}}})
        assert item.data_for("tags") == {"Tags": {}}
        assert item.data_for("other") == {"Id": "E1"}
        assert item.data_for(None) == {"Id": "E1"}


class TestPartitionFromArn:
    """Tests for partition extraction."""

    @pytest.mark.parametrize(
        "arn,expected",
        [
            ("arn:aws:sts::123456789012:assumed-role/r/s", "aws"),
            ("arn:aws-cn:iam::123456789012:user/u", "aws-cn"),
            ("arn:aws-us-gov:iam::123456789012:root", "aws-us-gov"),
            ("not-an-arn", None),
            (None, None),
        ],
    )
    def test_partition(self, arn, expected):
        """The partition is the ARN's second field."""
        assert partition_from_arn(arn) == expected
