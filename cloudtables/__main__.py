"""CLI entry point for querying tables.

Usage:
    python -m cloudtables --list
    python -m cloudtables describe aws_cost_by_service
    python -m cloudtables query aws_cost_by_service --where granularity=MONTHLY
    python -m cloudtables query aws_route53 --column name --column tags --format json

Qualifiers:
    - ``--where column=value`` for equality, also <>, <, <=, >, >=
    - Required key columns (granularity for cost tables, ...) must be given
      as equality qualifiers
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from cloudtables.lib.config_loader import CloudTablesConfig, load_config
from cloudtables.lib.errors import CloudTablesError
from cloudtables.lib.logging import setup_logging
from cloudtables.lib.quals import Qualifier
from cloudtables.lib.query import QueryEngine, QueryRequest
from cloudtables.lib.registry import TableRegistry
from cloudtables.lib.table import ColumnType, Table
from cloudtables.lib.transport import AwsTransport
from cloudtables.tables import build_registry

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("table", "json", "csv", "parquet")


def build_engine(config: CloudTablesConfig, registry: Optional[TableRegistry] = None) -> QueryEngine:
    """Wire a query engine from configuration."""
    return QueryEngine(
        registry or build_registry(),
        AwsTransport(config.connection),
        config.engine,
    )


def list_tables(registry: TableRegistry) -> None:
    """Print the registered tables."""
    tables = list(registry)
    max_name = max([len(t.name) for t in tables] + [10])

    print("Available tables:")
    print()
    print(f"  {'Name':<{max_name}}  Description")
    print(f"  {'-' * max_name}  {'-' * 40}")
    for table in tables:
        print(f"  {table.name:<{max_name}}  {table.description}")
    print()
    print("Describe one with: python -m cloudtables describe <table>")


def describe_table(table: Table) -> None:
    """Print a table's columns and key columns."""
    print(f"{table.name}: {table.description}")
    print()

    if table.list_config is not None:
        keys = table.list_config.key_columns
        print(f"  list: {table.list_config.service}.{table.list_config.operation}")
        if keys.required:
            print(f"    required: {', '.join(keys.required)}")
        if keys.optional:
            print(f"    optional: {', '.join(keys.optional)}")
    if table.get_config is not None:
        print(f"  get by: {', '.join(table.get_config.key_columns.required)}")
    print()

    max_name = max(len(c.name) for c in table.columns)
    print(f"  {'Column':<{max_name}}  {'Type':<9}  Description")
    print(f"  {'-' * max_name}  {'-' * 9}  {'-' * 40}")
    for column in table.columns:
        print(f"  {column.name:<{max_name}}  {column.type.value:<9}  {column.description}")


def _json_cell(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


def rows_to_frame(rows: List[Dict[str, Any]], table: Table, columns: Sequence[str]) -> pd.DataFrame:
    """Build a DataFrame with JSON columns serialized to strings."""
    names = list(columns) or table.column_names
    json_columns = {c.name for c in table.columns if c.type is ColumnType.JSON}
    records = [
        {name: _json_cell(row.get(name)) if name in json_columns else row.get(name) for name in names}
        for row in rows
    ]
    return pd.DataFrame.from_records(records, columns=names)


def write_rows(
    rows: List[Dict[str, Any]],
    table: Table,
    columns: Sequence[str],
    output_format: str,
    output: Optional[str] = None,
) -> None:
    if output_format == "json":
        text = json.dumps(rows, indent=2, default=str)
        if output:
            with open(output, "w", encoding="utf-8") as f:
                f.write(text + "\n")
        else:
            print(text)
        return

    frame = rows_to_frame(rows, table, columns)

    if output_format == "csv":
        if output:
            frame.to_csv(output, index=False)
        else:
            print(frame.to_csv(index=False), end="")
        return

    if output_format == "parquet":
        if not output:
            raise CloudTablesError("--output is required for parquet format", table=table.name)
        frame.to_parquet(output, engine="pyarrow", index=False)
        return

    if frame.empty:
        print("(no rows)")
        return
    print(frame.to_string(index=False))


def run_query(engine: QueryEngine, args: argparse.Namespace) -> int:
    table = engine.registry.get(args.table)
    request = QueryRequest(
        table=table.name,
        columns=list(args.columns or []),
        qualifiers=[Qualifier.parse(expression) for expression in args.where or []],
    )

    rows: List[Dict[str, Any]] = []
    results = engine.execute(request)
    try:
        for row in results:
            rows.append(row)
            if args.limit and len(rows) >= args.limit:
                break
    finally:
        # Stops pagination when --limit cut the listing short
        results.close()

    write_rows(rows, table, request.columns, args.format, args.output)
    logger.info("Returned %d rows from %s", len(rows), table.name)
    return len(rows)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="cloudtables",
        description="Query AWS resources as tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # List available tables
    python -m cloudtables --list

    # Show columns and required qualifiers
    python -m cloudtables describe aws_cost_by_tag

    # Monthly cost per linked account
    python -m cloudtables query aws_cost_by_account --where granularity=MONTHLY

    # Daily cost per service since a date, as CSV
    python -m cloudtables query aws_cost_by_service --where granularity=DAILY \\
        --where period_start>=2025-01-01 --format csv --output cost.csv

    # One distribution by id
    python -m cloudtables query aws_cloudfront_distribution --where id=E2QWRUHAPOMQZL --format json

    # EC2 prices for one instance type
    python -m cloudtables query aws_pricing_product --where service_code=AmazonEC2 \\
        --where instance_type=m5.large --where location="US East (N. Virginia)"
        """,
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=("query", "describe"),
        help="What to do with the table",
    )
    parser.add_argument(
        "table",
        nargs="?",
        help="Table name (e.g., aws_cost_by_service)",
    )
    parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        dest="list_tables",
        help="List available tables",
    )
    parser.add_argument(
        "--where",
        "-w",
        action="append",
        metavar="EXPR",
        help="Qualifier such as granularity=MONTHLY or period_start>=2025-01-01 (repeatable)",
    )
    parser.add_argument(
        "--column",
        "-c",
        action="append",
        dest="columns",
        metavar="NAME",
        help="Column to return (repeatable, default: all)",
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=OUTPUT_FORMATS,
        default="table",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "--output",
        "-o",
        help="Write rows to this file instead of stdout",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=0,
        help="Stop after this many rows (default: no limit)",
    )
    parser.add_argument(
        "--config",
        help="Path to cloudtables.yaml (default: $CLOUDTABLES_CONFIG or ./cloudtables.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to console",
    )

    args = parser.parse_args(argv)

    registry = build_registry()

    if args.list_tables:
        list_tables(registry)
        return

    if not args.command:
        parser.print_help()
        return

    if not args.table:
        parser.error(f"a table name is required for '{args.command}'")

    setup_logging(
        verbose=args.verbose,
        json_format=args.json_log,
        log_file=args.log_file,
    )

    try:
        if args.command == "describe":
            describe_table(registry.get(args.table))
            return

        config = load_config(args.config)
        engine = build_engine(config, registry)
        run_query(engine, args)

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)

    except ValueError as e:
        # Unparseable --where expression
        logger.error("%s", e)
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)

    except CloudTablesError as e:
        logger.error("Query failed", extra={"error": e.to_dict()})
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
