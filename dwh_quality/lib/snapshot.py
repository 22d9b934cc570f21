"""Table snapshots: the read-only data a run checks.

A snapshot maps table names to DataFrames normalized for rule evaluation:
object dtype, ``None`` for missing values, and a fresh RangeIndex so row
numbers are physical positions. Snapshots come from an Ibis backend, a
directory of CSV exports, or in-memory frames and records.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import ibis
import pandas as pd

from dwh_quality.lib.errors import SourceConnectionError
from dwh_quality.lib.resilience import with_retry

logger = logging.getLogger(__name__)

__all__ = ["TableSnapshot", "normalize_frame"]

CSV_NULLS = ["", "NULL"]


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Object dtype, None for nulls, RangeIndex."""
    frame = df.reset_index(drop=True).astype(object)
    return frame.where(frame.notna(), None)


@with_retry(max_attempts=3, backoff_seconds=1.0)
def _fetch_table(con: ibis.BaseBackend, name: str, schema: Optional[str]) -> pd.DataFrame:
    table = con.table(name, database=schema) if schema else con.table(name)
    return table.execute()


class TableSnapshot(Mapping[str, pd.DataFrame]):
    """Immutable name -> DataFrame mapping for one run."""

    def __init__(self, tables: Optional[Mapping[str, pd.DataFrame]] = None) -> None:
        self._tables: Dict[str, pd.DataFrame] = {
            name: normalize_frame(df) for name, df in (tables or {}).items()
        }

    def __getitem__(self, name: str) -> pd.DataFrame:
        return self._tables[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        return f"TableSnapshot({self.row_counts()!r})"

    def row_counts(self) -> Dict[str, int]:
        return {name: len(df) for name, df in self._tables.items()}

    def records(self, name: str) -> List[Dict[str, Any]]:
        """Rows of a table as dicts, in physical order."""
        return self._tables[name].to_dict("records")

    @classmethod
    def from_records(
        cls, tables: Mapping[str, Iterable[Mapping[str, Any]]]
    ) -> "TableSnapshot":
        """Build from lists of row dicts (column order from the first row)."""
        return cls({name: pd.DataFrame(list(rows)) for name, rows in tables.items()})

    @classmethod
    def from_csv_dir(
        cls,
        path: Union[str, Path],
        tables: Optional[Sequence[str]] = None,
    ) -> "TableSnapshot":
        """Load ``<table>.csv`` files from a directory.

        Every column is read as text; rules coerce what they need. Only
        empty cells and the literal ``NULL`` count as missing. Tables
        without a file are simply absent from the snapshot.
        """
        directory = Path(path)
        if not directory.is_dir():
            raise SourceConnectionError(
                f"CSV source directory not found: {directory}",
                suggestion="Export the layer's tables to CSV first.",
            )

        frames: Dict[str, pd.DataFrame] = {}
        for csv_path in sorted(directory.glob("*.csv")):
            name = csv_path.stem.lower()
            if tables is not None and name not in tables:
                continue
            frames[name] = pd.read_csv(
                csv_path,
                dtype=str,
                keep_default_na=False,
                na_values=CSV_NULLS,
            )
            logger.info("Loaded %s: %d rows from %s", name, len(frames[name]), csv_path)

        return cls(frames)

    @classmethod
    def from_backend(
        cls,
        con: ibis.BaseBackend,
        tables: Sequence[str],
        *,
        schema: Optional[str] = None,
    ) -> "TableSnapshot":
        """Read whole tables from an Ibis backend.

        Tables that do not exist in ``schema`` are left out; the engine
        decides whether that is fatal.

        Raises:
            SourceConnectionError: listing or reading failed after retries
        """
        try:
            available = set(con.list_tables(database=schema) if schema else con.list_tables())
        except Exception as e:
            raise SourceConnectionError(
                f"Could not list tables in schema {schema or '(default)'}", cause=e
            ) from e

        frames: Dict[str, pd.DataFrame] = {}
        for name in tables:
            if name not in available:
                logger.warning("Table %s not found in %s", name, schema or "default schema")
                continue
            try:
                frames[name] = _fetch_table(con, name, schema)
            except Exception as e:
                raise SourceConnectionError(
                    f"Could not read table {name}", cause=e, details={"schema": schema}
                ) from e
            logger.info("Loaded %s.%s: %d rows", schema or "", name, len(frames[name]))

        return cls(frames)
