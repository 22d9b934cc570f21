"""Rule report and its renderings.

Provides:
- RuleReport: ordered violations from one engine run
- format_report / log_report: human-readable output
- write_report: text, JSON or CSV file output

Reports carry the run's as-of date but no wall-clock timestamp, so the
same inputs always serialize to the same bytes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from dwh_quality.lib.models import RuleLevel, Violation

logger = logging.getLogger(__name__)

__all__ = [
    "REPORT_FORMATS",
    "RuleReport",
    "format_report",
    "log_report",
    "render_report",
    "write_report",
]

REPORT_FORMATS = ("text", "json", "csv")

_COLUMNS = ["rule", "table", "kind", "level", "row", "keys", "expected", "actual", "description"]


@dataclass
class RuleReport:
    """Violations from running a catalog against one snapshot."""

    as_of: date
    violations: List[Violation] = field(default_factory=list)
    rules_evaluated: List[str] = field(default_factory=list)
    tables: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.violations)

    def __iter__(self):
        return iter(self.violations)

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def error_count(self) -> int:
        """Error-level violations, execution errors included."""
        return sum(1 for v in self.violations if v.level == RuleLevel.ERROR)

    @property
    def warn_count(self) -> int:
        return sum(1 for v in self.violations if v.level == RuleLevel.WARN)

    @property
    def execution_errors(self) -> List[Violation]:
        return [v for v in self.violations if v.is_execution_error]

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def for_rule(self, name: str, table: Optional[str] = None) -> List[Violation]:
        return [
            v for v in self.violations if v.rule == name and (table is None or v.table == table)
        ]

    def counts_by_rule(self) -> Dict[str, int]:
        """Violation count per rule, every evaluated rule included."""
        counts = {name: 0 for name in self.rules_evaluated}
        for v in self.violations:
            counts[v.rule] = counts.get(v.rule, 0) + 1
        return counts

    def to_records(self) -> List[Dict[str, Any]]:
        """Violations as plain dicts, in report order."""
        return [v.to_dict() for v in self.violations]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "as_of": self.as_of.isoformat(),
            "rules_evaluated": len(self.rules_evaluated),
            "row_counts": dict(self.tables),
            "violation_count": len(self.violations),
            "error_count": self.error_count,
            "warn_count": self.warn_count,
            "counts_by_rule": self.counts_by_rule(),
            "violations": self.to_records(),
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=False, default=str)

    def to_dataframe(self) -> pd.DataFrame:
        """Flat table of violations; keys rendered as ``col=value`` pairs."""
        rows = []
        for record in self.to_records():
            rows.append(
                {
                    **record,
                    "keys": ", ".join(f"{k}={v}" for k, v in record["keys"].items()),
                    "details": json.dumps(record["details"], default=str),
                }
            )
        return pd.DataFrame(rows, columns=_COLUMNS + ["details"])


def format_report(report: RuleReport, *, max_rows_per_rule: int = 20) -> str:
    """Format a report as human-readable text."""
    lines = [
        "=" * 60,
        "DATA QUALITY REPORT",
        "=" * 60,
        f"As of: {report.as_of.isoformat()}",
        "Tables: "
        + (", ".join(f"{t} ({n} rows)" for t, n in report.tables.items()) or "none"),
        f"Rules Evaluated: {len(report.rules_evaluated)}",
        f"Violations: {len(report)} ({report.error_count} error, {report.warn_count} warn)",
        "",
    ]

    grouped: Dict[tuple, List[Violation]] = {}
    for v in report.violations:
        grouped.setdefault((v.table, v.rule), []).append(v)

    for (table, rule), items in grouped.items():
        lines.append(f"[{items[0].level.value.upper()}] {table}.{rule}: {len(items)}")
        lines.append("-" * 40)
        for v in items[:max_rows_per_rule]:
            keys = ", ".join(f"{k}={val!r}" for k, val in v.keys.items())
            where = f"row {v.row}" if v.row is not None else "rule"
            lines.append(f"  {where}" + (f" ({keys})" if keys else "") + f": {v.description}")
        if len(items) > max_rows_per_rule:
            lines.append(f"  ... {len(items) - max_rows_per_rule} more")
        lines.append("")

    if report.passed:
        lines.append("STATUS: ALL RULES PASSED")
    elif report.has_errors:
        lines.append("STATUS: FAILED (errors detected)")
    else:
        lines.append("STATUS: PASSED WITH WARNINGS")
    lines.append("=" * 60)

    return "\n".join(lines)


def log_report(report: RuleReport) -> None:
    """Log a report summary at appropriate levels."""
    if report.passed:
        logger.info(
            "Quality check passed: %d rules, as of %s",
            len(report.rules_evaluated),
            report.as_of.isoformat(),
        )
        return

    for rule, count in report.counts_by_rule().items():
        if not count:
            continue
        level = report.for_rule(rule)[0].level
        log = logger.error if level == RuleLevel.ERROR else logger.warning
        log("Quality rule %s: %d violation(s)", rule, count)

    for v in report.execution_errors:
        logger.error("Rule %s on %s could not run: %s", v.rule, v.table, v.description)


def render_report(report: RuleReport, fmt: str = "text") -> str:
    """Render a report in one of REPORT_FORMATS."""
    if fmt == "text":
        return format_report(report)
    if fmt == "json":
        return report.to_json()
    if fmt == "csv":
        return report.to_dataframe().to_csv(index=False, lineterminator="\n")
    raise ValueError(f"Unknown report format '{fmt}'. Valid options: {', '.join(REPORT_FORMATS)}")


def write_report(report: RuleReport, path: Union[str, Path], fmt: str = "text") -> Path:
    """Write a rendered report to ``path`` and return it."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_report(report, fmt), encoding="utf-8")
    logger.info("Wrote %s report to %s", fmt, target)
    return target
