"""End-to-end tests for the query engine over a fake transport."""

import time

import pytest

from cloudtables.lib.config_loader import EngineSettings, TransformErrorPolicy
from cloudtables.lib.errors import (
    ConfigurationError,
    MissingRequiredFilter,
    NotFoundError,
    TransformError,
    TransportError,
    UnknownTableError,
)
from cloudtables.lib.items import IdentityPaths
from cloudtables.lib.pagination import PaginationConfig
from cloudtables.lib.quals import QualOperator, Qualifier, Strategy
from cloudtables.lib.query import QueryEngine, QueryRequest
from cloudtables.lib.registry import TableRegistry
from cloudtables.lib.table import Column, ColumnType, HydrateConfig, ListConfig, Table
from cloudtables.lib.transforms import from_field
from tests.fakes import ACCOUNT_ID, FIXED_NOW


def eq(column, value):
    return Qualifier(column, QualOperator.EQ, value)


def metrics(amount, unit="USD"):
    return {
        "UnblendedCost": {"Amount": amount, "Unit": unit},
        "BlendedCost": {"Amount": amount, "Unit": unit},
    }


def cost_page(period_start, period_end, groups, token=None):
    page = {
        "ResultsByTime": [
            {
                "TimePeriod": {"Start": period_start, "End": period_end},
                "Estimated": False,
                "Groups": [{"Keys": [key], "Metrics": metrics(amount)} for key, amount in groups],
            }
        ]
    }
    if token:
        page["NextPageToken"] = token
    return page


def zone(zone_id, name):
    return {
        "Id": f"/hostedzone/{zone_id}",
        "Name": name,
        "CallerReference": f"ref-{zone_id}",
        "Config": {"Comment": "", "PrivateZone": False},
        "ResourceRecordSetCount": 2,
    }


def tags_for(zone_id):
    return {
        "ResourceTagSet": {
            "ResourceType": "hostedzone",
            "ResourceId": zone_id,
            "Tags": [{"Key": "zone", "Value": zone_id}],
        }
    }


# ============================================
# List queries
# ============================================


class TestCostByAccountEndToEnd:
    """Two pages of MONTHLY cost grouped by linked account."""

    def test_rows_match_groups(self, make_engine, fake_transport):
        """Each group becomes one row with its key, granularity and account."""
        fake_transport.add(
            "ce",
            "get_cost_and_usage",
            cost_page("2025-08-01", "2025-09-01", [("111111111111", "10.5"), ("222222222222", "3")], token="t1"),
            cost_page("2025-09-01", "2025-10-01", [("111111111111", "12.25")]),
        )
        engine = make_engine()

        rows = list(
            engine.execute(
                QueryRequest(table="aws_cost_by_account", qualifiers=[eq("granularity", "monthly")]),
                now=FIXED_NOW,
            )
        )

        assert [r["linked_account_id"] for r in rows] == ["111111111111", "222222222222", "111111111111"]
        assert {r["granularity"] for r in rows} == {"MONTHLY"}
        assert [r["unblended_cost_amount"] for r in rows] == [10.5, 3.0, 12.25]
        assert rows[0]["unblended_cost_unit"] == "USD"
        assert rows[0]["amortized_cost_amount"] is None
        assert rows[0]["period_start"] == "2025-08-01T00:00:00+00:00"
        assert rows[2]["period_end"] == "2025-10-01T00:00:00+00:00"
        assert rows[0]["estimated"] is False
        assert {r["account_id"] for r in rows} == {ACCOUNT_ID}
        assert {r["partition"] for r in rows} == {"aws"}

        keys = [(r["linked_account_id"], r["period_start"]) for r in rows]
        assert len(keys) == len(set(keys))

    def test_request_parameters(self, make_engine, fake_transport):
        """The window, grouping and continuation token reach the provider."""
        fake_transport.add(
            "ce",
            "get_cost_and_usage",
            cost_page("2025-08-01", "2025-09-01", [("111111111111", "1")], token="t1"),
            cost_page("2025-09-01", "2025-10-01", []),
        )
        engine = make_engine()

        list(
            engine.execute(
                QueryRequest(table="aws_cost_by_account", qualifiers=[eq("granularity", "MONTHLY")]),
                now=FIXED_NOW,
            )
        )

        first, second = fake_transport.calls_for("ce", "get_cost_and_usage")
        assert first["TimePeriod"] == {"Start": "2024-10-19", "End": "2025-10-19"}
        assert first["Granularity"] == "MONTHLY"
        assert first["GroupBy"] == [{"Type": "DIMENSION", "Key": "LINKED_ACCOUNT"}]
        assert "NextPageToken" not in first
        assert second["NextPageToken"] == "t1"

    def test_caller_identity_fetched_once(self, make_engine, fake_transport):
        """Common columns share one identity lookup per query."""
        fake_transport.add(
            "ce",
            "get_cost_and_usage",
            cost_page("2025-08-01", "2025-09-01", [(str(n), "1") for n in range(10)]),
        )
        engine = make_engine(max_workers=4)

        rows = list(
            engine.execute(
                QueryRequest(table="aws_cost_by_account", qualifiers=[eq("granularity", "DAILY")]),
                now=FIXED_NOW,
            )
        )

        assert len(rows) == 10
        assert fake_transport.identity_calls == 1


class TestMissingQualifier:
    """Tests for queries refused before any provider call."""

    def test_zero_calls(self, make_engine, fake_transport):
        """A missing required qualifier raises at execute with no calls."""
        engine = make_engine()
        with pytest.raises(MissingRequiredFilter) as exc_info:
            engine.execute(QueryRequest(table="aws_cost_by_service"))
        assert exc_info.value.column == "granularity"
        assert fake_transport.calls == []

    def test_unknown_column(self, make_engine, fake_transport):
        """Unknown columns are rejected up front."""
        engine = make_engine()
        with pytest.raises(ConfigurationError, match="Unknown column"):
            engine.execute(
                QueryRequest(
                    table="aws_cost_by_service",
                    columns=["no_such_column"],
                    qualifiers=[eq("granularity", "DAILY")],
                )
            )
        assert fake_transport.calls == []

    def test_unknown_table(self, make_engine):
        """Unknown tables are rejected up front."""
        with pytest.raises(UnknownTableError):
            make_engine().execute(QueryRequest(table="aws_s3_bucket"))


class TestColumnProjection:
    """Tests for requesting a subset of columns."""

    def test_only_wanted_columns_and_sources(self, make_engine, fake_transport):
        """Rows hold the wanted columns and unwanted hydrations are skipped."""
        fake_transport.add("route53", "list_hosted_zones", {"HostedZones": [zone("Z1", "example.com.")]})
        engine = make_engine()

        rows = list(engine.execute(QueryRequest(table="aws_route53", columns=["name", "id", "akas"])))

        assert rows == [
            {"name": "example.com.", "id": "/hostedzone/Z1", "akas": ["arn:aws:route53:::example.com."]}
        ]
        assert fake_transport.calls_for("route53", "list_tags_for_resource") == []
        assert fake_transport.identity_calls == 0

    def test_base_value_survives_sibling_hydration(self, fake_transport):
        """A column found on the list item keeps it when a sibling hydrates the same source."""
        fetched = []

        def fetch_extra(ctx, item):
            fetched.append(item.identifier("id"))
            return {"B": "fromsrc"}

        table = Table(
            name="test_split",
            description="Split",
            columns=[
                Column("a", ColumnType.STRING, transform=from_field("A"), hydrate="extra"),
                Column("b", ColumnType.STRING, transform=from_field("B"), hydrate="extra"),
            ],
            list_config=ListConfig(
                service="route53",
                operation="list_hosted_zones",
                pagination=PaginationConfig(items_path="HostedZones"),
            ),
            hydrate_configs=[HydrateConfig("extra", fetch_extra)],
            identity=IdentityPaths(summary={"id": "Id"}),
        )
        fake_transport.add("route53", "list_hosted_zones", {"HostedZones": [{"Id": "Z1", "A": "onbase"}]})
        engine = QueryEngine(TableRegistry([table]), fake_transport, EngineSettings())

        rows = list(engine.execute(QueryRequest(table="test_split", columns=["a", "b"])))

        assert rows == [{"a": "onbase", "b": "fromsrc"}]
        assert fetched == ["Z1"]


class TestOrderingAndConcurrency:
    """Tests for ordered output from concurrent hydration."""

    def test_rows_in_list_order(self, make_engine, fake_transport):
        """Slow early hydrations do not reorder rows."""
        zones = [zone(f"Z{n}", f"zone{n}.example.com.") for n in range(12)]
        fake_transport.add("route53", "list_hosted_zones", {"HostedZones": zones})

        def list_tags(ResourceType, ResourceId):
            # Earlier zones answer slower
            time.sleep(0.002 * (12 - int(ResourceId[1:])))
            return tags_for(ResourceId)

        fake_transport.on("route53", "list_tags_for_resource", list_tags)
        engine = make_engine(max_workers=4)

        rows = list(engine.execute(QueryRequest(table="aws_route53", columns=["name", "tags"])))

        assert [r["name"] for r in rows] == [z["Name"] for z in zones]
        assert rows[3]["tags"] == {"zone": "Z3"}
        assert len(fake_transport.calls_for("route53", "list_tags_for_resource")) == 12

    def test_hydration_not_found_drops_row(self, make_engine, fake_transport):
        """An item whose hydration finds nothing is left out."""
        fake_transport.add(
            "route53",
            "list_hosted_zones",
            {"HostedZones": [zone("Z1", "a.example."), zone("Z2", "b.example."), zone("Z3", "c.example.")]},
        )

        def list_tags(ResourceType, ResourceId):
            if ResourceId == "Z2":
                raise NotFoundError("zone deleted", error_code="NoSuchHostedZone")
            return tags_for(ResourceId)

        fake_transport.on("route53", "list_tags_for_resource", list_tags)

        rows = list(make_engine().execute(QueryRequest(table="aws_route53", columns=["name", "tags"])))

        assert [r["name"] for r in rows] == ["a.example.", "c.example."]

    def test_hydration_failure_is_fatal(self, make_engine, fake_transport):
        """Other hydration errors fail the query."""
        fake_transport.add("route53", "list_hosted_zones", {"HostedZones": [zone("Z1", "a.example.")]})
        fake_transport.add(
            "route53",
            "list_tags_for_resource",
            TransportError("route53.list_tags_for_resource failed", error_code="AccessDenied"),
        )

        with pytest.raises(TransportError):
            list(make_engine().execute(QueryRequest(table="aws_route53", columns=["tags"])))


class TestCancellation:
    """Tests for closing the row iterator early."""

    def test_close_stops_pagination(self, make_engine, fake_transport):
        """Closing after the first row issues no further page calls."""
        fake_transport.add(
            "route53",
            "list_hosted_zones",
            {
                "HostedZones": [zone("Z1", "a.example."), zone("Z2", "b.example."), zone("Z3", "c.example.")],
                "NextMarker": "Z4",
            },
        )
        engine = make_engine(max_workers=1)

        rows = engine.execute(QueryRequest(table="aws_route53", columns=["name"]))
        assert next(rows)["name"] == "a.example."
        rows.close()

        assert len(fake_transport.calls_for("route53", "list_hosted_zones")) == 1

    def test_rows_before_failure_stay_valid(self, make_engine, fake_transport):
        """A provider failure on a later page surfaces after earlier rows."""
        fake_transport.add(
            "route53",
            "list_hosted_zones",
            {"HostedZones": [zone("Z1", "a.example."), zone("Z2", "b.example.")], "NextMarker": "Z3"},
            TransportError("route53.list_hosted_zones failed", error_code="Throttling"),
        )
        engine = make_engine(max_workers=1)

        received = []
        with pytest.raises(TransportError):
            for row in engine.execute(QueryRequest(table="aws_route53", columns=["name"])):
                received.append(row)

        assert received == [{"name": "a.example."}]


# ============================================
# Get queries
# ============================================


class TestGetStrategy:
    """Tests for keyed lookups."""

    def test_get_detail_item(self, make_engine, fake_transport):
        """A get row reads lifted configuration fields without hydration."""
        fake_transport.add(
            "cloudfront",
            "get_distribution",
            {
                "ETag": "E1",
                "Distribution": {
                    "Id": "EDFDVBD6EXAMPLE",
                    "ARN": "arn:aws:cloudfront::123456789012:distribution/EDFDVBD6EXAMPLE",
                    "Status": "Deployed",
                    "InProgressInvalidationBatches": 0,
                    "DistributionConfig": {"Enabled": True, "Comment": "site"},
                },
            },
        )
        engine = make_engine()
        request = QueryRequest(
            table="aws_cloudfront_distribution",
            columns=["id", "e_tag", "enabled", "comment", "in_progress_invalidation_batches"],
            qualifiers=[eq("id", "EDFDVBD6EXAMPLE")],
        )

        assert engine.plan(request).strategy is Strategy.GET
        rows = list(engine.execute(request))

        assert rows == [
            {
                "id": "EDFDVBD6EXAMPLE",
                "e_tag": "E1",
                "enabled": True,
                "comment": "site",
                "in_progress_invalidation_batches": 0,
            }
        ]
        assert len(fake_transport.calls_for("cloudfront", "get_distribution")) == 1

    def test_ignored_not_found_is_empty(self, make_engine, fake_transport):
        """A listed not-found code gives an empty result."""
        fake_transport.add(
            "cloudfront",
            "get_distribution",
            NotFoundError("no such distribution", error_code="NoSuchDistribution"),
        )
        rows = list(
            make_engine().execute(
                QueryRequest(table="aws_cloudfront_distribution", qualifiers=[eq("id", "EMISSING")])
            )
        )
        assert rows == []

    def test_other_not_found_propagates(self, make_engine, fake_transport):
        """Unlisted not-found codes are errors."""
        fake_transport.add(
            "route53",
            "get_hosted_zone",
            NotFoundError("no such delegation set", error_code="NoSuchDelegationSet"),
        )
        with pytest.raises(NotFoundError):
            list(make_engine().execute(QueryRequest(table="aws_route53", qualifiers=[eq("id", "Z1")])))

    def test_transport_error_propagates(self, make_engine, fake_transport):
        """Provider failures on get are errors."""
        fake_transport.add(
            "route53",
            "get_hosted_zone",
            TransportError("route53.get_hosted_zone failed", error_code="AccessDenied"),
        )
        with pytest.raises(TransportError):
            list(make_engine().execute(QueryRequest(table="aws_route53", qualifiers=[eq("id", "Z1")])))


# ============================================
# Transform error policy
# ============================================


class TestTransformErrorPolicy:
    """Tests for column conversion failures."""

    def _add_bad_amount(self, fake_transport):
        fake_transport.add(
            "ce",
            "get_cost_and_usage",
            cost_page("2025-08-01", "2025-09-01", [("AWS Lambda", "not-a-number")]),
        )

    def test_null_policy(self, make_engine, fake_transport, caplog):
        """By default a bad value becomes null and is logged."""
        self._add_bad_amount(fake_transport)
        request = QueryRequest(
            table="aws_cost_by_service",
            columns=["service", "unblended_cost_amount"],
            qualifiers=[eq("granularity", "MONTHLY")],
        )

        with caplog.at_level("WARNING", logger="cloudtables.lib.query"):
            rows = list(make_engine().execute(request, now=FIXED_NOW))

        assert rows == [{"service": "AWS Lambda", "unblended_cost_amount": None}]
        assert "unblended_cost_amount" in caplog.text

    def test_fail_policy(self, make_engine, fake_transport):
        """Under the fail policy the query raises with table and column."""
        self._add_bad_amount(fake_transport)
        request = QueryRequest(
            table="aws_cost_by_service",
            columns=["service", "unblended_cost_amount"],
            qualifiers=[eq("granularity", "MONTHLY")],
        )
        engine = make_engine(transform_errors=TransformErrorPolicy.FAIL)

        with pytest.raises(TransformError) as exc_info:
            list(engine.execute(request, now=FIXED_NOW))

        assert exc_info.value.table == "aws_cost_by_service"
        assert exc_info.value.column == "unblended_cost_amount"


class TestMetrics:
    """Tests for query metrics logging."""

    def test_metrics_logged(self, make_engine, fake_transport, caplog):
        """Rows, hydrate calls and pages are reported when the query ends."""
        fake_transport.add("route53", "list_hosted_zones", {"HostedZones": [zone("Z1", "a.example.")]})

        with caplog.at_level("INFO", logger="cloudtables.lib.query"):
            list(make_engine().execute(QueryRequest(table="aws_route53", columns=["name", "account_id"])))

        assert "METRIC rows_emitted=1" in caplog.text
        assert "METRIC hydrate_calls=1" in caplog.text
        assert "METRIC pages_fetched=1" in caplog.text
