"""CLI entry point for running quality checks.

Usage:
    python -m dwh_quality --config checks.yaml
    python -m dwh_quality --config checks.yaml --schema silver --as-of 2025-01-15
    python -m dwh_quality --csv ./exports/bronze --format json --output report.json
    python -m dwh_quality --config checks.yaml --list-rules
    python -m dwh_quality --config checks.yaml --check
    python -m dwh_quality --config checks.yaml --profile crm_cust_info.cst_gndr

Exit codes:
    0  checks ran (violations may exist unless --fail-on-violations)
    1  --fail-on-violations and error-level violations were found
    2  configuration, connection or missing-table error
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from typing import List, Optional

from dwh_quality.lib.catalog import RuleCatalog, build_catalog, describe_catalog
from dwh_quality.lib.config_loader import (
    CheckConfig,
    SourceConfig,
    load_config,
    load_snapshot,
)
from dwh_quality.lib.connections import close_all_connections
from dwh_quality.lib.contracts import check_contracts
from dwh_quality.lib.engine import RuleEngine
from dwh_quality.lib.env import load_env_file
from dwh_quality.lib.errors import ConfigurationError, QualityError
from dwh_quality.lib.observability import setup_logging
from dwh_quality.lib.profiling import parse_target, profile_distinct
from dwh_quality.lib.report import REPORT_FORMATS, render_report, write_report
from dwh_quality.lib.values import coerce_date

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dwh-quality",
        description="Run data-quality checks against the bronze/silver warehouse tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Check bronze as configured
    python -m dwh_quality --config checks.yaml

    # Check silver with a fixed as-of date (reproducible reports)
    python -m dwh_quality --config checks.yaml --schema silver --as-of 2025-01-15

    # Check CSV exports without a config file
    python -m dwh_quality --csv ./exports/bronze --format json

    # Show distinct values for a column
    python -m dwh_quality --config checks.yaml --profile erp_loc_a101.cntry
        """,
    )
    parser.add_argument("--config", "-c", help="Path to YAML config file")
    parser.add_argument(
        "--csv",
        dest="csv_dir",
        help="Directory of <table>.csv exports (instead of a config source)",
    )
    parser.add_argument("--schema", help="Schema/layer to read (overrides source.schema)")
    parser.add_argument("--as-of", dest="as_of", help="As-of date YYYY-MM-DD (default: today)")
    parser.add_argument(
        "--format",
        dest="report_format",
        choices=REPORT_FORMATS,
        help="Report format (default: from config, else text)",
    )
    parser.add_argument("--output", "-o", help="Write report to this file instead of stdout")
    parser.add_argument(
        "--list-rules",
        action="store_true",
        help="List the rules that would run and exit",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check connectivity and table columns without running rules",
    )
    parser.add_argument(
        "--profile",
        metavar="TABLE.COLUMN",
        help="Print distinct values of a column with counts and exit",
    )
    parser.add_argument(
        "--fail-on-violations",
        action="store_true",
        help="Exit with status 1 when error-level violations are found",
    )
    parser.add_argument("--workers", type=int, help="Threads used to evaluate rules")
    parser.add_argument("--env-file", help="Load environment variables from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")
    return parser


def resolve_config(args: argparse.Namespace) -> CheckConfig:
    """Config file plus command-line overrides."""
    if args.config:
        config = load_config(args.config)
    elif args.csv_dir:
        config = CheckConfig()
    else:
        raise ConfigurationError(
            "Either --config or --csv is required",
            suggestion="Pass a YAML config, or a directory of CSV exports with --csv.",
        )

    if args.csv_dir:
        config.source = SourceConfig(type="csv", path=args.csv_dir, options={"path": args.csv_dir})
    if args.report_format:
        config.report_format = args.report_format
    if args.output:
        config.report_output = args.output
    if args.workers is not None:
        config.max_workers = args.workers
    if args.as_of:
        try:
            config.as_of = coerce_date(args.as_of)
        except ValueError:
            raise ConfigurationError(
                "--as-of must be a date (YYYY-MM-DD)", field="as_of", value=args.as_of
            ) from None
    return config


def list_rules(catalog: RuleCatalog) -> None:
    """Print the catalog as a table."""
    rows = describe_catalog(catalog)
    if not rows:
        print("No rules enabled.")
        return

    width = max(len(r["name"]) for r in rows)
    table_width = max(len(r["table"]) for r in rows)
    print(f"  {'Rule':<{width}}  {'Table':<{table_width}}  {'Kind':<4}  {'Level':<5}  Description")
    print(f"  {'-' * width}  {'-' * table_width}  ----  -----  {'-' * 40}")
    for r in rows:
        print(
            f"  {r['name']:<{width}}  {r['table']:<{table_width}}  "
            f"{r['kind']:<4}  {r['level']:<5}  {r['description']}"
        )


def run(args: argparse.Namespace) -> int:
    config = resolve_config(args)
    catalog = build_catalog(config.settings)

    if args.list_rules:
        list_rules(catalog)
        return EXIT_OK

    if args.profile:
        table, column = parse_target(args.profile)
        snapshot = load_snapshot(config, [table], schema=args.schema)
        for value, count in profile_distinct(snapshot, table, column):
            print(f"{count:>8}  {value!r}")
        return EXIT_OK

    snapshot = load_snapshot(config, catalog.required_tables, schema=args.schema)

    if args.check:
        issues = check_contracts(snapshot)
        wanted = set(catalog.required_tables)
        relevant = {t: found for t, found in issues.items() if t in wanted}
        for table in catalog.required_tables:
            status = "OK" if table not in relevant else "; ".join(relevant[table])
            print(f"  {table:<20} {status}")
        return EXIT_ERROR if relevant else EXIT_OK

    as_of = config.as_of
    if as_of is None:
        as_of = date.today()
        logger.info("No as-of date given; using today (%s)", as_of.isoformat())

    engine = RuleEngine(catalog, max_workers=config.max_workers)
    report = engine.run(snapshot, as_of)

    if config.report_output:
        write_report(report, config.report_output, config.report_format)
    else:
        print(render_report(report, config.report_format))

    if args.fail_on_violations and report.has_errors:
        return EXIT_VIOLATIONS
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, json_format=args.json_log, log_file=args.log_file)

    if args.env_file:
        load_env_file(args.env_file, override=True)
    else:
        load_env_file()

    try:
        return run(args)
    except (QualityError, KeyError, ValueError) as e:
        logger.debug("Run aborted", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        close_all_connections()


if __name__ == "__main__":
    sys.exit(main())
