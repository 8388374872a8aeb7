"""
Index Analysis: command-line entry point

Reports fragmentation, usage statistics and column composition for the
indexes of one SQL Server database.

The physical stats scan can be expensive: SAMPLED and DETAILED read index
pages, and on a large database that takes time and I/O. Narrow the run with
--table/--index when using them.

Usage:
  python main.py SalesDB
  python main.py SalesDB --table dbo.Orders --detail-level DETAILED
  python main.py SalesDB --index IX_Orders_CustomerID --format json
  python main.py SalesDB --mock                 # in-memory sample catalog
"""

from __future__ import annotations

import argparse
import logging
import sys

from analysis import IndexAnalyzer, IndexAnalysisError, InvalidParameterError
from config.settings import DetailLevel, DEFAULT_DETAIL_LEVEL
from utils.report_writer import FORMATS, ReportWriter
from utils.sqlserver_client import SqlServerClient

logger = logging.getLogger("index_analysis.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="index-analysis",
        description="Index fragmentation, usage and column report for a SQL Server database",
    )
    parser.add_argument("database", help="Name of the database to analyze")
    parser.add_argument("--table", default=None, help="Table to analyze (name or schema.name). Default: all tables")
    parser.add_argument("--index", default=None, help="Index to analyze. Default: all indexes")
    parser.add_argument("--detail-level", default=DEFAULT_DETAIL_LEVEL.value,
                        type=str.upper, choices=[level.value for level in DetailLevel],
                        help="Physical stats scan mode; more detail costs more I/O")
    parser.add_argument("--format", dest="fmt", choices=FORMATS, default="table", help="Output format")
    parser.add_argument("--output", default=None, help="Write the report to this file instead of stdout")
    parser.add_argument("--mock", action="store_true", help="Use the in-memory sample catalog")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging verbosity")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    client = SqlServerClient(mock_mode=args.mock)
    analyzer = IndexAnalyzer(client)
    try:
        report = analyzer.analyze_indexes(
            args.database,
            table=args.table,
            index=args.index,
            detail_level=args.detail_level,
        )
    except InvalidParameterError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except IndexAnalysisError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        client.close_all()

    ReportWriter(args.fmt).write(report, path=args.output, stream=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
