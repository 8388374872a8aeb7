"""
Index Analyzer

Reports, for every index of a database's user tables:
- fragmentation and size from sys.dm_db_index_physical_stats
- seek/scan/update/lookup counters from sys.dm_db_index_usage_stats
- statistics update time and the ordered column list of each index

Resolution runs first and raises on any bad input, so a caller gets either
the complete report or an error, never a partial result.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from config.settings import DetailLevel

from .columns import ColumnListMixin
from .report import IndexReport, ReportMixin, assemble_report
from .resolution import ResolutionMixin, parse_detail_level

logger = logging.getLogger("index_analysis")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


class IndexAnalyzer(ResolutionMixin, ColumnListMixin, ReportMixin):
    """Index fragmentation, usage and composition report for one database."""

    def __init__(self, client):
        self.client = client

    def analyze_indexes(self, database: str, table: Optional[str] = None, index: Optional[str] = None,
                        detail_level=DetailLevel.LIMITED) -> IndexReport:
        """
        Build the index report for `database`.

        `table` ('name' or 'schema.name') and `index` narrow the report; both
        must exist. `detail_level` picks the physical stats scan mode and only
        changes the cost and accuracy of the figures, never the rows returned.
        """
        level = parse_detail_level(detail_level)
        table = _blank_to_none(table)
        index = _blank_to_none(index)
        start = time.time()

        database_id, database = self.resolve_database(database)
        self.check_privileges(database)

        object_ids = self.resolve_table(database, table) if table else None
        index_keys = self.resolve_index(database, index, object_ids, table) if index else None

        if index_keys is not None:
            scopes = sorted({object_id for object_id, _ in index_keys})
            scans = sorted(index_keys)
        elif object_ids is not None:
            scopes = sorted(object_ids)
            scans = [(object_id, None) for object_id in scopes]
        else:
            scopes = [None]
            scans = [(None, None)]

        if level != DetailLevel.LIMITED and scans == [(None, None)]:
            logger.warning(f"{level.value} scan of every index in {database}; "
                           f"this reads index pages and may take a long time")

        logger.info(f"Analyzing indexes in {database} (database_id={database_id}, "
                    f"table={table or '*'}, index={index or '*'}, detail={level.value})")

        metadata, usage, physical = [], [], []
        column_lists = {}
        for object_id in scopes:
            metadata.extend(self.collect_index_metadata(database, object_id))
            column_lists.update(self.collect_column_lists(database, object_id))
            usage.extend(self.collect_usage_stats(database, database_id, object_id))
        for object_id, index_id in scans:
            physical.extend(self.collect_physical_stats(database, database_id, level, object_id, index_id))

        rows = assemble_report(metadata, column_lists, usage, physical, index_keys)
        duration = time.time() - start
        logger.info(f"Index analysis of {database} complete: {len(rows)} indexes in {duration:.2f}s")

        return IndexReport(
            database=database,
            database_id=database_id,
            detail_level=level,
            table=table,
            index=index,
            rows=rows,
            duration_seconds=duration,
        )
