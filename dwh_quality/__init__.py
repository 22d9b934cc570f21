"""Data-quality checks for the bronze and silver warehouse layers.

Runs a catalog of rules (duplicates, whitespace, date bounds, sales
arithmetic, product end dates) against snapshots of the CRM and ERP
tables and reports every offending row.

Usage:
    python -m dwh_quality --config checks.yaml --as-of 2025-01-15
    python -m dwh_quality --config checks.yaml --schema silver --format json
    python -m dwh_quality --config checks.yaml --profile crm_cust_info.cst_gndr
"""

from dwh_quality.lib import (
    RuleCatalog,
    RuleEngine,
    RuleReport,
    TableSnapshot,
    Violation,
    build_catalog,
    default_catalog,
    run_checks,
)

__version__ = "1.0.0"

__all__ = [
    "RuleCatalog",
    "RuleEngine",
    "RuleReport",
    "TableSnapshot",
    "Violation",
    "build_catalog",
    "default_catalog",
    "run_checks",
]
