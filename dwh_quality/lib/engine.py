"""Rule engine: runs a catalog against a table snapshot.

Usage:
```python
from dwh_quality.lib.catalog import default_catalog
from dwh_quality.lib.engine import RuleEngine

engine = RuleEngine(default_catalog())
report = engine.run(snapshot, as_of=date(2025, 1, 15))

if report.has_errors:
    ...
```

Every table the catalog reads must be in the snapshot before anything
runs. After that, each rule is isolated: a rule that raises is recorded
as an execution error and the remaining rules still run.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Union

import pandas as pd

from dwh_quality.lib.catalog import RuleCatalog, default_catalog
from dwh_quality.lib.errors import MissingTableError, RuleExecutionError
from dwh_quality.lib.models import RuleContext, Violation, ViolationKind
from dwh_quality.lib.report import RuleReport, log_report
from dwh_quality.lib.rules import Rule
from dwh_quality.lib.values import coerce_date

logger = logging.getLogger(__name__)

__all__ = ["RuleEngine", "run_checks"]

TableSource = Mapping[str, pd.DataFrame]


class RuleEngine:
    """Evaluates a rule catalog against snapshots of the warehouse tables."""

    def __init__(
        self,
        catalog: Optional[RuleCatalog] = None,
        *,
        max_workers: int = 1,
    ) -> None:
        """Initialize engine.

        Args:
            catalog: Rules to evaluate (empty catalog if None)
            max_workers: Threads used to evaluate rules; 1 runs serially
        """
        self.catalog = catalog if catalog is not None else RuleCatalog()
        self.max_workers = max(1, max_workers)
        logger.info("RuleEngine initialized with %d rules", len(self.catalog))

    def register(self, rule: Rule) -> Rule:
        """Add a rule to the engine's catalog (see RuleCatalog.register)."""
        return self.catalog.register(rule)

    def run(
        self,
        snapshot: TableSource,
        as_of: Union[date, datetime, str],
    ) -> RuleReport:
        """Evaluate every rule and collect violations.

        Args:
            snapshot: Table name -> DataFrame
            as_of: Reference date for "not in the future" checks

        Returns:
            RuleReport ordered by catalog position, then row

        Raises:
            MissingTableError: a table some rule needs is absent
        """
        as_of_date = coerce_date(as_of)
        if as_of_date is None:
            raise ValueError("as_of is required")

        rules = self.catalog.rules
        missing = [t for t in self.catalog.required_tables if t not in snapshot]
        if missing:
            raise MissingTableError(missing, available=list(snapshot))

        context = RuleContext(as_of=as_of_date)
        logger.info(
            "Running %d rules as of %s", len(rules), as_of_date.isoformat()
        )

        if self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._evaluate_rule, rule, snapshot[rule.table], context)
                    for rule in rules
                ]
                per_rule = [future.result() for future in futures]
        else:
            per_rule = [
                self._evaluate_rule(rule, snapshot[rule.table], context) for rule in rules
            ]

        violations: List[Violation] = []
        for position, found in enumerate(per_rule):
            violations.extend(
                sorted(found, key=lambda v: (-1 if v.row is None else v.row))
            )
            logger.debug("Rule %s: %d violation(s)", rules[position].name, len(found))

        report = RuleReport(
            as_of=as_of_date,
            violations=violations,
            rules_evaluated=[rule.name for rule in rules],
            tables={t: len(snapshot[t]) for t in self.catalog.required_tables},
        )
        log_report(report)
        return report

    def _evaluate_rule(
        self,
        rule: Rule,
        df: pd.DataFrame,
        context: RuleContext,
    ) -> List[Violation]:
        """Evaluate one rule, turning any failure into a single violation."""
        try:
            return rule.evaluate(df, context)
        except Exception as e:
            error = RuleExecutionError(rule.name, rule.table, e)
            logger.error(
                "%s",
                error.message,
                exc_info=True,
                extra={"rule": rule.name, "table": rule.table},
            )
            return [_execution_violation(rule, error)]


def _execution_violation(rule: Rule, error: RuleExecutionError) -> Violation:
    return Violation(
        rule=rule.name,
        table=rule.table,
        description=error.message,
        details={"error_type": "RuleExecutionError", **error.details},
        level=rule.level,
        kind=ViolationKind.EXECUTION_ERROR,
    )


def run_checks(
    snapshot: TableSource,
    as_of: Union[date, datetime, str],
    catalog: Optional[RuleCatalog] = None,
    **engine_options: Any,
) -> RuleReport:
    """Convenience function: run a catalog (default if None) once."""
    if catalog is None:
        catalog = default_catalog()
    return RuleEngine(catalog, **engine_options).run(snapshot, as_of)
