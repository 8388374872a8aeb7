"""
ReportWriter: renders an index report as a text table, JSON or CSV.

Text tables go through prettytable; JSON carries the request metadata along
with the rows; CSV is one header line plus one line per index.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from typing import Optional

from prettytable import PrettyTable

from config.settings import REPORT_COLUMNS

logger = logging.getLogger("index_analysis.writer")

FORMATS = ("table", "json", "csv")

# Column headers for the text table
COLUMN_TITLES = {
    "schema_name": "Schema",
    "table_name": "Table",
    "index_name": "Index",
    "uniqueness": "Unique",
    "index_type": "Type",
    "allocation_type": "Allocation",
    "page_count": "Pages",
    "record_count": "Records",
    "size_mb": "Size MB",
    "fragmentation_percent": "Frag %",
    "stats_updated": "Stats Updated",
    "user_seeks": "Seeks",
    "user_scans": "Scans",
    "user_updates": "Updates",
    "user_lookups": "Lookups",
    "index_columns": "Columns",
}

NUMERIC_COLUMNS = {
    "page_count", "record_count", "size_mb", "fragmentation_percent",
    "user_seeks", "user_scans", "user_updates", "user_lookups",
}


def render_table(report) -> str:
    table = PrettyTable()
    table.field_names = [COLUMN_TITLES[c] for c in REPORT_COLUMNS]
    for column in REPORT_COLUMNS:
        table.align[COLUMN_TITLES[column]] = "r" if column in NUMERIC_COLUMNS else "l"
    for row in report.rows:
        data = row.to_dict()
        table.add_row(["" if data[c] is None else data[c] for c in REPORT_COLUMNS])

    header = (f"Index analysis: {report.database} | detail={report.detail_level.value} | "
              f"table={report.table or '*'} | index={report.index or '*'} | {len(report.rows)} indexes")
    return f"{header}\n{table.get_string()}"


def render_json(report) -> str:
    return json.dumps(report.to_dict(), indent=2, default=str)


def render_csv(report) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=REPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for row in report.rows:
        writer.writerow(row.to_dict())
    return buffer.getvalue()


RENDERERS = {
    "table": render_table,
    "json": render_json,
    "csv": render_csv,
}


class ReportWriter:
    """Renders reports and writes them to stdout or a file."""

    def __init__(self, fmt: str = "table"):
        if fmt not in RENDERERS:
            raise ValueError(f"Unsupported format '{fmt}' (expected one of: {', '.join(FORMATS)})")
        self.fmt = fmt

    def render(self, report) -> str:
        return RENDERERS[self.fmt](report)

    def write(self, report, path: Optional[str] = None, stream=None) -> str:
        """Render `report`; write it to `path` if given, else to `stream`."""
        text = self.render(report)
        if path:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            logger.info(f"Wrote {len(report.rows)} rows ({self.fmt}) to {path}")
        elif stream is not None:
            stream.write(text if text.endswith("\n") else text + "\n")
        return text
