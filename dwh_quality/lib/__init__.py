"""Building blocks for warehouse quality checks."""

from dwh_quality.lib.catalog import CheckSettings, RuleCatalog, build_catalog, default_catalog
from dwh_quality.lib.engine import RuleEngine, run_checks
from dwh_quality.lib.errors import (
    ConfigurationError,
    DuplicateRuleError,
    MissingTableError,
    QualityError,
    RuleExecutionError,
    SourceConnectionError,
)
from dwh_quality.lib.models import Finding, RuleContext, RuleLevel, Violation, ViolationKind
from dwh_quality.lib.report import RuleReport, format_report, write_report
from dwh_quality.lib.rules import Rule, RowRule, SetRule
from dwh_quality.lib.snapshot import TableSnapshot

__all__ = [
    "CheckSettings",
    "ConfigurationError",
    "DuplicateRuleError",
    "Finding",
    "MissingTableError",
    "QualityError",
    "RowRule",
    "Rule",
    "RuleCatalog",
    "RuleContext",
    "RuleEngine",
    "RuleExecutionError",
    "RuleLevel",
    "RuleReport",
    "SetRule",
    "SourceConnectionError",
    "TableSnapshot",
    "Violation",
    "ViolationKind",
    "build_catalog",
    "default_catalog",
    "format_report",
    "run_checks",
    "write_report",
]
