"""Tests for physical stats reduction, derived fields and report joins."""

from __future__ import annotations

from datetime import datetime

import pytest

from analysis.report import (
    IndexReportRow,
    assemble_report,
    format_stats_date,
    size_in_mb,
    summarize_physical_stats,
    uniqueness_label,
)
from config.settings import REPORT_COLUMNS


def _phys(object_id, index_id, pages, frag, records=None, level=0, alloc="IN_ROW_DATA") -> dict:
    return {
        "object_id": object_id, "index_id": index_id, "index_level": level,
        "alloc_unit_type_desc": alloc, "page_count": pages, "record_count": records,
        "avg_fragmentation_in_percent": frag,
    }


def _meta(object_id, index_id, table, index, is_unique=False, type_desc="NONCLUSTERED",
          schema="dbo", stats_date=None) -> dict:
    return {
        "object_id": object_id, "index_id": index_id, "schema_name": schema, "table_name": table,
        "index_name": index, "is_unique": is_unique, "type_desc": type_desc, "stats_date": stats_date,
    }


class TestDerivedFields:

    @pytest.mark.parametrize("pages, expected", [(0, 0), (127, 0), (128, 1), (2560, 20), (None, None)])
    def test_size_in_mb(self, pages, expected) -> None:
        assert size_in_mb(pages) == expected

    def test_uniqueness_label(self) -> None:
        assert uniqueness_label(True) == "UNIQUE"
        assert uniqueness_label(1) == "UNIQUE"
        assert uniqueness_label(False) == "NOT UNIQUE"

    def test_format_stats_date(self) -> None:
        assert format_stats_date(datetime(2026, 1, 5, 7, 8, 9, 123000)) == "2026-01-05 07:08:09"
        assert format_stats_date(None) is None


class TestSummarizePhysicalStats:

    def test_upper_levels_are_ignored(self) -> None:
        summary = summarize_physical_stats([
            _phys(1, 1, 1000, 10.0, records=50000),
            _phys(1, 1, 5, 80.0, records=1000, level=1),
            _phys(1, 1, 1, 0.0, records=5, level=2),
        ])
        assert summary[(1, 1)]["page_count"] == 1000
        assert summary[(1, 1)]["record_count"] == 50000
        assert summary[(1, 1)]["fragmentation_percent"] == 10.0

    def test_partitions_weighted_by_pages(self) -> None:
        summary = summarize_physical_stats([
            _phys(1, 2, 300, 10.0),
            _phys(1, 2, 100, 70.0),
        ])
        assert summary[(1, 2)]["fragmentation_percent"] == 25.0
        assert summary[(1, 2)]["page_count"] == 400

    def test_record_count_unknown_when_any_part_unknown(self) -> None:
        summary = summarize_physical_stats([_phys(1, 1, 10, 0.0, records=100), _phys(1, 1, 10, 0.0)])
        assert summary[(1, 1)]["record_count"] is None

    def test_allocation_units_listed_once_in_order(self) -> None:
        summary = summarize_physical_stats([
            _phys(1, 1, 10, 0.0),
            _phys(1, 1, 4, 0.0, alloc="LOB_DATA"),
            _phys(1, 1, 10, 0.0),
            _phys(1, 1, 1, 0.0, alloc="ROW_OVERFLOW_DATA"),
        ])
        assert summary[(1, 1)]["allocation_type"] == "IN_ROW_DATA, LOB_DATA, ROW_OVERFLOW_DATA"

    def test_lob_pages_do_not_dilute_fragmentation(self) -> None:
        summary = summarize_physical_stats([
            _phys(1, 1, 300, 40.0),
            _phys(1, 1, 100, 0.0, alloc="LOB_DATA"),
            _phys(1, 1, 50, None, alloc="ROW_OVERFLOW_DATA"),
        ])
        assert summary[(1, 1)]["fragmentation_percent"] == 40.0
        assert summary[(1, 1)]["page_count"] == 450

    def test_fragmentation_without_in_row_unit_uses_every_leaf_row(self) -> None:
        summary = summarize_physical_stats([
            _phys(1, 1, 30, 10.0, alloc="LOB_DATA"),
            _phys(1, 1, 10, 50.0, alloc="ROW_OVERFLOW_DATA"),
        ])
        assert summary[(1, 1)]["fragmentation_percent"] == 20.0

    def test_empty_index(self) -> None:
        summary = summarize_physical_stats([_phys(1, 0, 0, 0.0, records=0)])
        assert summary[(1, 0)]["page_count"] == 0
        assert summary[(1, 0)]["fragmentation_percent"] == 0.0


class TestAssembleReport:

    def test_metadata_drives_row_set(self) -> None:
        rows = assemble_report(
            metadata=[_meta(1, 1, "T", "PK_T", is_unique=True, type_desc="CLUSTERED")],
            column_lists={},
            usage=[{"object_id": 9, "index_id": 9, "user_seeks": 1, "user_scans": 1,
                    "user_updates": 1, "user_lookups": 1}],
            physical=[_phys(9, 9, 10, 1.0)],
        )
        assert len(rows) == 1
        row = rows[0]
        assert row.page_count is None
        assert row.fragmentation_percent is None
        assert row.user_seeks == 0

    def test_heap_named_and_sorted_first(self) -> None:
        rows = assemble_report(
            metadata=[
                _meta(1, 2, "T", "AAA_first_by_name"),
                _meta(1, 0, "T", None, type_desc="HEAP"),
            ],
            column_lists={}, usage=[], physical=[],
        )
        assert [r.index_name for r in rows] == ["HEAP", "AAA_first_by_name"]

    def test_sorted_by_table_then_index_case_insensitive(self) -> None:
        rows = assemble_report(
            metadata=[
                _meta(2, 1, "orders", "pk_orders"),
                _meta(1, 2, "Customers", "ix_b"),
                _meta(1, 1, "Customers", "IX_A"),
            ],
            column_lists={}, usage=[], physical=[],
        )
        assert [(r.table_name, r.index_name) for r in rows] == [
            ("Customers", "IX_A"), ("Customers", "ix_b"), ("orders", "pk_orders"),
        ]

    def test_restricted_to_index_keys(self) -> None:
        rows = assemble_report(
            metadata=[_meta(1, 1, "T", "A"), _meta(1, 2, "T", "B")],
            column_lists={(1, 2): "X(int)"}, usage=[], physical=[],
            index_keys=[(1, 2)],
        )
        assert [(r.index_name, r.index_columns) for r in rows] == [("B", "X(int)")]

    def test_null_usage_counters_become_zero(self) -> None:
        rows = assemble_report(
            metadata=[_meta(1, 1, "T", "A")],
            column_lists={},
            usage=[{"object_id": 1, "index_id": 1, "user_seeks": None, "user_scans": 4,
                    "user_updates": None, "user_lookups": None}],
            physical=[],
        )
        assert (rows[0].user_seeks, rows[0].user_scans) == (0, 4)


def test_row_dict_follows_report_column_order() -> None:
    row = IndexReportRow(schema_name="dbo", table_name="T", index_name="A",
                         uniqueness="UNIQUE", index_type="CLUSTERED")
    assert list(row.to_dict()) == REPORT_COLUMNS
