"""Report assembly: join index metadata, column lists, usage and physical stats."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from config.settings import (
    DetailLevel,
    HEAP_INDEX_NAME,
    IN_ROW_ALLOCATION_TYPE,
    NOT_UNIQUE_LABEL,
    PAGE_SIZE_KB,
    REPORT_COLUMNS,
    STATS_DATE_FORMAT,
    UNIQUE_LABEL,
)
from sql import queries

logger = logging.getLogger("index_analysis.report")

IndexKey = tuple[int, int]


@dataclass
class IndexReportRow:
    """One row of the report: a single index (or heap) of a user table."""
    schema_name: str
    table_name: str
    index_name: str
    uniqueness: str
    index_type: str
    allocation_type: Optional[str] = None
    page_count: Optional[int] = None
    record_count: Optional[int] = None
    size_mb: Optional[int] = None
    fragmentation_percent: Optional[float] = None
    stats_updated: Optional[str] = None
    user_seeks: int = 0
    user_scans: int = 0
    user_updates: int = 0
    user_lookups: int = 0
    index_columns: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        return {column: data[column] for column in REPORT_COLUMNS}


@dataclass
class IndexReport:
    """Result of one analysis call, with the request that produced it."""
    database: str
    database_id: int
    detail_level: DetailLevel
    table: Optional[str] = None
    index: Optional[str] = None
    rows: list[IndexReportRow] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "database": self.database,
            "database_id": self.database_id,
            "table": self.table,
            "index": self.index,
            "detail_level": self.detail_level.value,
            "generated_at": self.generated_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "row_count": len(self.rows),
            "rows": [row.to_dict() for row in self.rows],
        }


def uniqueness_label(is_unique) -> str:
    return UNIQUE_LABEL if is_unique else NOT_UNIQUE_LABEL


def size_in_mb(page_count: Optional[int]) -> Optional[int]:
    """Whole megabytes occupied by `page_count` 8 KB pages."""
    if page_count is None:
        return None
    return (page_count * PAGE_SIZE_KB) // 1024


def format_stats_date(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime(STATS_DATE_FORMAT)
    return str(value)[:19]


def weighted_fragmentation(rows: list[dict]) -> float:
    pages = [r.get("page_count") or 0 for r in rows]
    fragments = [r.get("avg_fragmentation_in_percent") or 0.0 for r in rows]
    total_pages = sum(pages)
    if total_pages > 0:
        return sum(f * p for f, p in zip(fragments, pages)) / total_pages
    return sum(fragments) / len(fragments)


def summarize_physical_stats(rows: Iterable[dict]) -> dict[IndexKey, dict]:
    """
    Reduce physical stats rows to one summary per index.

    Only leaf-level rows count, so the figures do not depend on whether the
    scan mode also walked the upper levels. Partitions and allocation units
    are added up. Fragmentation is weighted by page count over the in-row
    data units only, since LOB and row-overflow units never report it; an
    index with no in-row unit falls back to all of its leaf rows.
    """
    grouped: dict[IndexKey, list[dict]] = {}
    for row in rows:
        if row.get("index_level") not in (0, None):
            continue
        grouped.setdefault((row["object_id"], row["index_id"]), []).append(row)

    summaries = {}
    for key, leaf_rows in grouped.items():
        alloc_types = []
        for r in leaf_rows:
            if r.get("alloc_unit_type_desc") and r["alloc_unit_type_desc"] not in alloc_types:
                alloc_types.append(r["alloc_unit_type_desc"])

        pages = [r.get("page_count") or 0 for r in leaf_rows]
        total_pages = sum(pages)
        record_counts = [r.get("record_count") for r in leaf_rows]
        in_row = [r for r in leaf_rows if r.get("alloc_unit_type_desc") == IN_ROW_ALLOCATION_TYPE]
        fragmentation = weighted_fragmentation(in_row or leaf_rows)

        summaries[key] = {
            "allocation_type": ", ".join(alloc_types) or None,
            "page_count": total_pages,
            "record_count": None if any(c is None for c in record_counts) else sum(record_counts),
            "fragmentation_percent": round(fragmentation, 2),
        }
    return summaries


def report_sort_key(row: IndexReportRow, is_heap: bool) -> tuple:
    # Heaps sort ahead of named indexes, matching NULL ordering on the server
    return (row.table_name.lower(), row.schema_name.lower(), not is_heap, row.index_name.lower())


def assemble_report(metadata: Iterable[dict], column_lists: dict[IndexKey, str],
                    usage: Iterable[dict], physical: Iterable[dict],
                    index_keys: Optional[Iterable[IndexKey]] = None) -> list[IndexReportRow]:
    """
    Build report rows. Index metadata drives the row set: every index gets
    exactly one row whether or not usage or physical stats exist for it.
    """
    wanted = set(index_keys) if index_keys is not None else None
    usage_by_key = {(u["object_id"], u["index_id"]): u for u in usage}
    physical_by_key = summarize_physical_stats(physical)

    keyed_rows = []
    seen = set()
    for meta in metadata:
        key = (meta["object_id"], meta["index_id"])
        if key in seen or (wanted is not None and key not in wanted):
            continue
        seen.add(key)

        stats = usage_by_key.get(key, {})
        phys = physical_by_key.get(key, {})
        is_heap = meta["index_name"] is None
        row = IndexReportRow(
            schema_name=meta["schema_name"],
            table_name=meta["table_name"],
            index_name=HEAP_INDEX_NAME if is_heap else meta["index_name"],
            uniqueness=uniqueness_label(meta["is_unique"]),
            index_type=meta["type_desc"],
            allocation_type=phys.get("allocation_type"),
            page_count=phys.get("page_count"),
            record_count=phys.get("record_count"),
            size_mb=size_in_mb(phys.get("page_count")),
            fragmentation_percent=phys.get("fragmentation_percent"),
            stats_updated=format_stats_date(meta.get("stats_date")),
            user_seeks=stats.get("user_seeks") or 0,
            user_scans=stats.get("user_scans") or 0,
            user_updates=stats.get("user_updates") or 0,
            user_lookups=stats.get("user_lookups") or 0,
            index_columns=column_lists.get(key),
        )
        keyed_rows.append((report_sort_key(row, is_heap), row))

    return [row for _, row in sorted(keyed_rows, key=lambda kr: kr[0])]


class ReportMixin:
    """Mixin fetching the catalog and DMV data the report joins."""

    def collect_index_metadata(self, database: str, object_id: Optional[int] = None) -> list[dict]:
        params = (object_id,) if object_id is not None else ()
        return self._query(database, queries.scoped("INDEX_METADATA", object_id), params)

    def collect_usage_stats(self, database: str, database_id: int, object_id: Optional[int] = None) -> list[dict]:
        params = (database_id, object_id) if object_id is not None else (database_id,)
        return self._query(database, queries.scoped("INDEX_USAGE_STATS", object_id), params)

    def collect_physical_stats(self, database: str, database_id: int, detail_level: DetailLevel,
                               object_id: Optional[int] = None, index_id: Optional[int] = None) -> list[dict]:
        """Run sys.dm_db_index_physical_stats; DETAILED and SAMPLED read actual pages."""
        rows = self._query(database, queries.INDEX_PHYSICAL_STATS,
                           (database_id, object_id, index_id, detail_level.value))
        logger.debug(f"Physical stats ({detail_level.value}) object_id={object_id} "
                     f"index_id={index_id}: {len(rows)} rows")
        return rows
