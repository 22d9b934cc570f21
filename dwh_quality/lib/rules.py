"""Quality rule definitions.

A rule targets one table and comes in two shapes:

- ``RowRule``: a predicate called once per record. Returns a ``Finding``
  when the record is bad, None otherwise.
- ``SetRule``: a function over the whole table. Yields ``(row, Finding)``
  pairs; used where a verdict needs neighbouring rows (duplicates,
  end-date inference).

Factories below build the rule shapes the warehouse checks use. Rules do
not catch their own exceptions; the engine records a rule that raises as
an execution error and moves on.

Example:
    rule = whitespace("crm_cust_info", "cst_firstname", key_columns=["cst_id"])
    violations = rule.evaluate(df, RuleContext(as_of=date(2025, 1, 15)))
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from dwh_quality.lib.models import Finding, RuleContext, RuleLevel, Violation
from dwh_quality.lib.values import (
    coerce_date,
    coerce_number,
    is_missing,
    to_plain,
    yyyymmdd_digits,
)
from dwh_quality.lib.windowing import lead, rank_by_recency, select_survivors

logger = logging.getLogger(__name__)

__all__ = [
    "Record",
    "Rule",
    "RowRule",
    "SetRule",
    "allowed_values",
    "date_range",
    "duplicate_key",
    "end_before_start",
    "inferred_end_date",
    "non_negative",
    "not_null_key",
    "order_date_format",
    "sales_consistency",
    "whitespace",
]

Record = Dict[str, Any]
RowCheck = Callable[[Record, RuleContext], Optional[Finding]]
SetCheck = Callable[[pd.DataFrame, RuleContext], Iterable[Tuple[int, Finding]]]


class Rule:
    """Base class for a rule bound to one table."""

    kind = "abstract"

    def __init__(
        self,
        name: str,
        table: str,
        *,
        key_columns: Sequence[str] = (),
        columns: Sequence[str] = (),
        description: Optional[str] = None,
        level: RuleLevel = RuleLevel.ERROR,
    ) -> None:
        self.name = name
        self.table = table
        self.key_columns = list(key_columns)
        self.columns = list(columns)
        self.description = description or name
        self.level = level

    @property
    def key(self) -> Tuple[str, str]:
        """Catalog identity: (name, table)."""
        return (self.name, self.table)

    def evaluate(self, df: pd.DataFrame, context: RuleContext) -> List[Violation]:
        """Run the rule over a table and return its violations in row order."""
        df = df.reset_index(drop=True)
        missing = [c for c in self.key_columns + self.columns if c not in df.columns]
        if missing:
            raise KeyError(f"Table {self.table} has no column(s): {', '.join(missing)}")

        violations = [
            self._violation(df, row, finding) for row, finding in self._findings(df, context)
        ]
        violations.sort(key=lambda v: v.row if v.row is not None else -1)
        return violations

    def _findings(
        self, df: pd.DataFrame, context: RuleContext
    ) -> Iterable[Tuple[int, Finding]]:
        raise NotImplementedError

    def _violation(self, df: pd.DataFrame, row: int, finding: Finding) -> Violation:
        keys = {col: df.at[row, col] for col in self.key_columns}
        return Violation(
            rule=self.name,
            table=self.table,
            description=finding.description,
            keys=keys,
            row=int(row),
            expected=finding.expected,
            actual=finding.actual,
            details=finding.details,
            level=self.level,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, table={self.table!r})"


class RowRule(Rule):
    """Rule evaluated independently for each record."""

    kind = "row"

    def __init__(self, name: str, table: str, check: RowCheck, **kwargs: Any) -> None:
        super().__init__(name, table, **kwargs)
        self.check = check

    def _findings(
        self, df: pd.DataFrame, context: RuleContext
    ) -> Iterable[Tuple[int, Finding]]:
        for row, record in enumerate(df.to_dict("records")):
            finding = self.check(record, context)
            if finding is not None:
                yield row, finding


class SetRule(Rule):
    """Rule evaluated over the whole table at once."""

    kind = "set"

    def __init__(self, name: str, table: str, check: SetCheck, **kwargs: Any) -> None:
        super().__init__(name, table, **kwargs)
        self.check = check

    def _findings(
        self, df: pd.DataFrame, context: RuleContext
    ) -> Iterable[Tuple[int, Finding]]:
        return self.check(df, context)


def _read(df: pd.DataFrame, column: str, reader: Callable[[Any], Any]) -> pd.Series:
    return pd.Series([reader(v) for v in df[column]], index=df.index, dtype=object)


# ============================================
# Row-level factories
# ============================================


def whitespace(
    table: str,
    column: str,
    *,
    key_columns: Sequence[str],
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Value must equal its trimmed form. Nulls pass."""

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        value = record[column]
        if is_missing(value):
            return None
        text = value if isinstance(value, str) else str(value)
        trimmed = text.strip()
        if text == trimmed:
            return None
        return Finding(
            f"{column} has leading or trailing whitespace: {text!r}",
            expected=trimmed,
            actual=text,
        )

    return RowRule(
        name or f"{column}_whitespace",
        table,
        check,
        key_columns=key_columns,
        columns=[column],
        description=f"{column} must not have leading or trailing whitespace",
        level=level,
    )


def not_null_key(
    table: str,
    key_columns: Sequence[str],
    *,
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Every primary key column must be populated."""

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        nulls = [col for col in key_columns if is_missing(record[col])]
        if not nulls:
            return None
        return Finding(
            f"Primary key column(s) {', '.join(nulls)} are null",
            expected="not null",
            actual=None,
        )

    return RowRule(
        name or f"{'_'.join(key_columns)}_not_null",
        table,
        check,
        key_columns=key_columns,
        description=f"Primary key ({', '.join(key_columns)}) must not be null",
        level=level,
    )


def date_range(
    table: str,
    column: str,
    *,
    key_columns: Sequence[str],
    min_date: date,
    skip_unparseable: bool = False,
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Date must fall within ``[min_date, as_of]``. Nulls pass.

    With ``skip_unparseable`` a value that is not a date is left for a
    format rule to report; otherwise it aborts the rule.
    """

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        raw = record[column]
        try:
            value = coerce_date(raw)
        except ValueError:
            if skip_unparseable:
                return None
            raise
        if value is None:
            return None
        if value < min_date:
            return Finding(
                f"{column} {value.isoformat()} is before {min_date.isoformat()}",
                expected=f">= {min_date.isoformat()}",
                actual=value,
            )
        if value > context.as_of:
            return Finding(
                f"{column} {value.isoformat()} is after as-of date "
                f"{context.as_of.isoformat()}",
                expected=f"<= {context.as_of.isoformat()}",
                actual=value,
            )
        return None

    return RowRule(
        name or f"{column}_range",
        table,
        check,
        key_columns=key_columns,
        columns=[column],
        description=f"{column} must be between {min_date.isoformat()} and the as-of date",
        level=level,
    )


def order_date_format(
    table: str,
    column: str,
    *,
    key_columns: Sequence[str],
    max_value: int = 20500101,
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Integer ``yyyymmdd`` dates must be positive, 8 digits and real days.

    Values already typed as dates pass; nulls pass.
    """

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        value = record[column]
        if is_missing(value) or isinstance(value, (date, datetime)):
            return None

        digits = yyyymmdd_digits(value)
        if digits is None:
            return Finding(
                f"{column} {value!r} is not a yyyymmdd integer",
                expected="yyyymmdd",
                actual=value,
            )

        number = int(digits)
        problem = None
        if number <= 0:
            problem = "is zero or negative"
        elif len(digits) != 8:
            problem = f"has {len(digits)} digits, expected 8"
        elif number > max_value:
            problem = f"is after {max_value}"
        else:
            try:
                datetime.strptime(digits, "%Y%m%d")
            except ValueError:
                problem = "is not a calendar date"

        if problem is None:
            return None
        return Finding(f"{column} {number} {problem}", expected="yyyymmdd", actual=number)

    return RowRule(
        name or f"{column}_format",
        table,
        check,
        key_columns=key_columns,
        columns=[column],
        description=f"{column} must be a valid yyyymmdd date up to {max_value}",
        level=level,
    )


def non_negative(
    table: str,
    column: str,
    *,
    key_columns: Sequence[str],
    allow_null: bool = False,
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Number must be >= 0 (and present unless ``allow_null``)."""

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        value = coerce_number(record[column])
        if value is None:
            if allow_null:
                return None
            return Finding(f"{column} is null", expected=">= 0", actual=None)
        if value < 0:
            return Finding(f"{column} {value} is negative", expected=">= 0", actual=value)
        return None

    return RowRule(
        name or f"{column}_non_negative",
        table,
        check,
        key_columns=key_columns,
        columns=[column],
        description=f"{column} must be non-negative"
        + (" (or null)" if allow_null else " and not null"),
        level=level,
    )


def end_before_start(
    table: str,
    start_column: str,
    end_column: str,
    *,
    key_columns: Sequence[str],
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """A stored end date must not precede its start date."""

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        start = coerce_date(record[start_column])
        end = coerce_date(record[end_column])
        if start is None or end is None or end >= start:
            return None
        return Finding(
            f"{end_column} {end.isoformat()} is before {start_column} {start.isoformat()}",
            expected=f">= {start.isoformat()}",
            actual=end,
        )

    return RowRule(
        name or f"{end_column}_before_start",
        table,
        check,
        key_columns=key_columns,
        columns=[start_column, end_column],
        description=f"{end_column} must not precede {start_column}",
        level=level,
    )


def sales_consistency(
    table: str,
    *,
    key_columns: Sequence[str],
    sales_column: str = "sls_sales",
    quantity_column: str = "sls_quantity",
    price_column: str = "sls_price",
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Sales must be positive and equal quantity x |price|.

    ``calc_sales`` and ``calc_price`` in the finding details are the
    repaired values the silver load would write. A price that is null or
    not positive is re-derived as sales / quantity; a zero quantity makes
    that impossible and leaves ``calc_price`` null.
    """

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        sales = coerce_number(record[sales_column])
        quantity = coerce_number(record[quantity_column])
        price = coerce_number(record[price_column])

        calc_sales = None
        if quantity is not None and price is not None:
            calc_sales = quantity * abs(price)

        problems = []
        if sales is None:
            problems.append(f"{sales_column} is null")
        elif sales <= 0:
            problems.append(f"{sales_column} {sales} is not positive")
        elif calc_sales is not None and sales != calc_sales:
            problems.append(f"{sales_column} {sales} != {quantity} x |{price}| = {calc_sales}")
        if quantity is None:
            problems.append(f"{quantity_column} is null")
        if price is None:
            problems.append(f"{price_column} is null")

        if not problems:
            return None

        if price is None or price <= 0:
            if sales is not None and quantity:
                calc_price = sales / quantity
            else:
                calc_price = None
                problems.append(f"cannot infer {price_column} without a non-zero quantity")
        else:
            calc_price = price

        return Finding(
            "; ".join(problems),
            expected=calc_sales,
            actual=sales,
            details={
                "calc_sales": calc_sales,
                "calc_price": calc_price,
                quantity_column: quantity,
                price_column: price,
            },
        )

    return RowRule(
        name or f"{sales_column}_consistency",
        table,
        check,
        key_columns=key_columns,
        columns=[sales_column, quantity_column, price_column],
        description=f"{sales_column} must be positive and equal "
        f"{quantity_column} x |{price_column}|",
        level=level,
    )


def allowed_values(
    table: str,
    column: str,
    values: Sequence[Any],
    *,
    key_columns: Sequence[str],
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> RowRule:
    """Value must be one of a fixed set (standardization check). Nulls pass."""
    allowed = list(values)

    def check(record: Record, context: RuleContext) -> Optional[Finding]:
        value = record[column]
        if is_missing(value) or value in allowed:
            return None
        return Finding(
            f"{column} {value!r} is not one of {allowed}",
            expected=allowed,
            actual=value,
        )

    return RowRule(
        name or f"{column}_allowed_values",
        table,
        check,
        key_columns=key_columns,
        columns=[column],
        description=f"{column} must be one of: {', '.join(map(str, allowed))}",
        level=level,
    )


# ============================================
# Set-level factories
# ============================================


def duplicate_key(
    table: str,
    key_columns: Sequence[str],
    order_by: str,
    *,
    reader: Callable[[Any], Any] = coerce_date,
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> SetRule:
    """Report every row but the latest within each primary-key group.

    The survivor has the greatest ``order_by`` value; equal values fall
    back to physical order, first row wins. Rows with a null key belong to
    the not-null check, not here.
    """
    keys = list(key_columns)

    def check(df: pd.DataFrame, context: RuleContext) -> Iterable[Tuple[int, Finding]]:
        keyed = df.dropna(subset=keys)
        if keyed.empty:
            return

        order_values = _read(keyed, order_by, reader)
        ranks = rank_by_recency(keyed, keys, order_values)
        survivors = select_survivors(keyed, keys, order_values)

        for row in keyed.index[(ranks > 1).to_numpy()]:
            survivor = int(survivors[row])
            yield row, Finding(
                f"Duplicate key {', '.join(f'{k}={keyed.at[row, k]!r}' for k in keys)}; "
                f"superseded by row {survivor}",
                expected=f"row {survivor}",
                actual=f"row {row}",
                details={
                    "rank": int(ranks[row]),
                    "survivor_row": survivor,
                    order_by: to_plain(order_values[row]),
                    f"survivor_{order_by}": to_plain(order_values[survivor]),
                },
            )

    return SetRule(
        name or f"{'_'.join(keys)}_duplicate",
        table,
        check,
        key_columns=keys,
        columns=[order_by],
        description=f"({', '.join(keys)}) must be unique; latest {order_by} survives",
        level=level,
    )


def inferred_end_date(
    table: str,
    group_column: str,
    start_column: str,
    end_column: str,
    *,
    key_columns: Sequence[str],
    name: Optional[str] = None,
    level: RuleLevel = RuleLevel.ERROR,
) -> SetRule:
    """Stored end date must be the day before the next version's start.

    Versions are grouped by ``group_column`` and ordered by start date;
    the last version in a group is open-ended (null end date).
    """

    def check(df: pd.DataFrame, context: RuleContext) -> Iterable[Tuple[int, Finding]]:
        if df.empty:
            return

        starts = _read(df, start_column, coerce_date)
        ends = _read(df, end_column, coerce_date)
        following = lead(df, [group_column], starts)

        for row in df.index:
            next_start = following[row]
            inferred = next_start - timedelta(days=1) if next_start is not None else None
            stored = ends[row]
            if stored == inferred:
                continue
            yield row, Finding(
                f"{end_column} {stored.isoformat() if stored else 'null'} != inferred "
                f"{inferred.isoformat() if inferred else 'null (open)'}",
                expected=inferred,
                actual=stored,
                details={
                    group_column: df.at[row, group_column],
                    start_column: to_plain(starts[row]),
                    "next_start": to_plain(next_start),
                },
            )

    return SetRule(
        name or f"{end_column}_inferred",
        table,
        check,
        key_columns=key_columns,
        columns=[group_column, start_column, end_column],
        description=f"{end_column} must be one day before the next {start_column} "
        f"within {group_column}",
        level=level,
    )
