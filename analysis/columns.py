"""Column list aggregation: one 'column(type), column(type)' string per index."""

from __future__ import annotations

import logging
from itertools import groupby
from typing import Optional

from config.settings import COLUMN_DELIMITER
from sql import queries

logger = logging.getLogger("index_analysis.columns")


def format_column(row: dict) -> str:
    return f"{row['column_name']}({row['type_name']})"


def column_sort_key(row: dict) -> tuple:
    """
    Key columns by key_ordinal first, then included columns by index_column_id.

    A partitioning column the engine adds to an index has key_ordinal 0 and is
    not included; it goes after the key columns, ahead of the included ones.
    """
    included = bool(row.get("is_included_column"))
    key_ordinal = row.get("key_ordinal") or 0
    return (included, key_ordinal == 0, key_ordinal, row.get("index_column_id", 0))


def build_column_lists(rows: list[dict]) -> dict[tuple[int, int], str]:
    """
    Aggregate index column rows into one delimited string per (object_id, index_id).

    Rows may arrive in any order; each index is visited once. Indexes without
    participating columns (heaps) get no entry.
    """
    def index_key(row):
        return row["object_id"], row["index_id"]

    column_lists = {}
    for key, group in groupby(sorted(rows, key=index_key), key=index_key):
        columns = sorted(group, key=column_sort_key)
        column_lists[key] = COLUMN_DELIMITER.join(format_column(c) for c in columns)
    return column_lists


class ColumnListMixin:
    """Mixin fetching index columns and aggregating them per index."""

    def collect_column_lists(self, database: str, object_id: Optional[int] = None) -> dict[tuple[int, int], str]:
        params = (object_id,) if object_id is not None else ()
        rows = self._query(database, queries.scoped("INDEX_COLUMNS", object_id), params)
        column_lists = build_column_lists(rows)
        logger.debug(f"Aggregated columns for {len(column_lists)} indexes ({len(rows)} column rows)")
        return column_lists
