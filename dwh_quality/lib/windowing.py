"""Window helpers for set-level rules.

Pandas equivalents of the ``ROW_NUMBER() OVER`` and ``LEAD() OVER``
windows the warehouse transformations use. Every helper sorts with a
stable algorithm and falls back to physical row order for ties, so the
same frame always ranks the same way.

Helpers take an ``order_values`` Series (already coerced, aligned with the
frame's index) rather than a column name; rules decide how to read dates.
"""

from __future__ import annotations

from typing import List

import pandas as pd

__all__ = [
    "lead",
    "order_within_groups",
    "rank_by_recency",
    "select_survivors",
]

_POS = "_pos"
_ORD = "_ord"


def order_within_groups(
    df: pd.DataFrame,
    keys: List[str],
    order_values: pd.Series,
    *,
    descending: bool,
) -> pd.DataFrame:
    """Return key columns plus ``_ord``/``_pos`` sorted for a window scan.

    Nulls in the ordering column follow SQL Server: smallest value, so last
    when descending and first when ascending. Physical position breaks ties.
    """
    frame = df[keys].copy()
    frame[_ORD] = order_values.astype(object)
    frame[_POS] = range(len(df))

    # Two stable passes: position first, then ordering value
    frame = frame.sort_values(_POS, kind="mergesort")
    return frame.sort_values(
        _ORD,
        ascending=not descending,
        kind="mergesort",
        na_position="last" if descending else "first",
    )


def rank_by_recency(
    df: pd.DataFrame,
    keys: List[str],
    order_values: pd.Series,
    *,
    descending: bool = True,
) -> pd.Series:
    """1-based rank of each row within its key group.

    Rank 1 is the most recent row when ``descending`` (the default).
    Null keys form their own group, like ``PARTITION BY`` does.
    """
    if df.empty:
        return pd.Series([], index=df.index, dtype="int64")

    ordered = order_within_groups(df, keys, order_values, descending=descending)
    ranks = ordered.groupby(keys, dropna=False, sort=False).cumcount() + 1
    return ranks.reindex(df.index)


def select_survivors(
    df: pd.DataFrame,
    keys: List[str],
    order_values: pd.Series,
) -> pd.Series:
    """Map each row to the index label of its group's survivor.

    The survivor is the rank-1 row of :func:`rank_by_recency`.
    """
    if df.empty:
        return pd.Series([], index=df.index, dtype=object)

    ordered = order_within_groups(df, keys, order_values, descending=True)
    survivor_pos = ordered.groupby(keys, dropna=False, sort=False)[_POS].transform("first")
    labels = pd.Series(df.index[survivor_pos.to_numpy()], index=ordered.index)
    return labels.reindex(df.index)


def lead(
    df: pd.DataFrame,
    keys: List[str],
    order_values: pd.Series,
) -> pd.Series:
    """Next row's ordering value within each key group (ascending order).

    The last row of each group gets None.
    """
    if df.empty:
        return pd.Series([], index=df.index, dtype=object)

    ordered = order_within_groups(df, keys, order_values, descending=False)
    following = ordered.groupby(keys, dropna=False, sort=False)[_ORD].shift(-1)
    following = following.astype(object).where(following.notna(), None)
    return following.reindex(df.index)
