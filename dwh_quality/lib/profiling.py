"""Distinct-value profiles for eyeballing standardization."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Tuple

import pandas as pd

from dwh_quality.lib.errors import MissingTableError
from dwh_quality.lib.values import is_missing

__all__ = ["parse_target", "profile_distinct"]


def parse_target(target: str) -> Tuple[str, str]:
    """Split ``table.column``."""
    table, _, column = target.partition(".")
    if not table or not column:
        raise ValueError(f"Expected TABLE.COLUMN, got '{target}'")
    return table, column


def profile_distinct(
    snapshot: Mapping[str, pd.DataFrame],
    table: str,
    column: str,
) -> List[Tuple[Any, int]]:
    """Distinct values of a column with row counts, in first-seen order.

    Nulls are counted as a single ``None`` entry.

    Raises:
        MissingTableError: table not in snapshot
        KeyError: column not in table
    """
    if table not in snapshot:
        raise MissingTableError([table], available=list(snapshot))
    df = snapshot[table]
    if column not in df.columns:
        raise KeyError(f"Table {table} has no column {column}")

    counts: Dict[Any, int] = {}
    for value in df[column]:
        key = None if is_missing(value) else value
        counts[key] = counts.get(key, 0) + 1
    return list(counts.items())
