"""
SqlServerClient: pyodbc client for SQL Server catalog and DMV queries.

Handles:
- One connection per database, opened on first use and reused
- Queries on one connection serialized, since pyodbc connections are not
  safe to share between threads (the HTTP service runs handlers on a pool)
- Rows returned as dicts keyed by column name
- Permission-denied driver errors surfaced as StatsAccessDenied
- Mock mode backed by an in-memory catalog (no driver or server needed)
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Optional

from config.settings import ConnectionSettings

logger = logging.getLogger("index_analysis.client")

# Error numbers SQL Server raises when a DMV or object is not accessible
PERMISSION_ERROR_NUMBERS = ("(297)", "(300)", "(229)")


class StatsAccessDenied(Exception):
    """The server refused a catalog or DMV query for lack of permission."""

    def __init__(self, database: str, message: str):
        self.database = database
        super().__init__(message)


def is_permission_denied(error: Exception) -> bool:
    """Whether a driver error reports a denied permission."""
    text = " ".join(str(arg) for arg in getattr(error, "args", ()))
    if "permission was denied" in text.lower():
        return True
    return any(number in text for number in PERMISSION_ERROR_NUMBERS)


class SqlServerClient:
    """
    Mock-capable client for SQL Server introspection queries.
    Each database gets its own connection so catalog views resolve in that database.
    """

    def __init__(self, settings: Optional[ConnectionSettings] = None, mock_mode: bool = False,
                 mock_catalog: Optional[dict] = None):
        self.settings = settings or ConnectionSettings.from_env()
        self.mock_mode = mock_mode
        self.mock_catalog = mock_catalog if mock_catalog is not None else default_mock_catalog()
        self._connections: dict[str, Any] = {}
        self._connection_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def get_connection(self, database: str) -> Any:
        """Get (or open) the connection whose default database is `database`."""
        with self._lock:
            if database in self._connections:
                return self._connections[database]

            if self.mock_mode:
                conn = MockConnection(database=database, catalog=self.mock_catalog)
            else:
                import pyodbc
                logger.debug(f"Connecting to {self.settings.server},{self.settings.port} database={database}")
                conn = pyodbc.connect(
                    self.settings.connection_string(database),
                    autocommit=True,
                    timeout=self.settings.timeout,
                )
            self._connections[database] = conn
            return conn

    def _connection_lock(self, database: str) -> threading.Lock:
        with self._lock:
            return self._connection_locks.setdefault(database, threading.Lock())

    def execute_query(self, database: str, query: str, params: tuple = ()) -> list[dict]:
        """Execute a query in `database` and return results as dicts."""
        conn = self.get_connection(database)

        # One statement at a time per connection; results are fetched before release
        with self._connection_lock(database):
            if self.mock_mode:
                return conn.execute_mock(query, params)

            cur = conn.cursor()
            try:
                cur.execute(query, *params)
                columns = [desc[0] for desc in cur.description] if cur.description else []
                rows = cur.fetchall()
                return [dict(zip(columns, row)) for row in rows]
            except Exception as e:
                if is_permission_denied(e):
                    raise StatsAccessDenied(database, str(e)) from e
                raise
            finally:
                cur.close()

    def ping(self, database: str = "master") -> bool:
        """Round-trip a trivial query."""
        from sql import queries
        rows = self.execute_query(database, queries.PING)
        return bool(rows) and rows[0].get("ok") == 1

    def close_all(self):
        """Close all connections."""
        with self._lock:
            for key, conn in self._connections.items():
                try:
                    conn.close()
                except Exception as e:
                    logger.warning(f"Failed to close connection to {key}: {e}")
            self._connections.clear()
            self._connection_locks.clear()


# =============================================================================
# Mock mode
# =============================================================================

def default_mock_catalog() -> dict:
    """
    A small SalesDB with a clustered/nonclustered mix, a heap, a partitioned
    index, a LOB allocation unit, included columns and a table name that
    exists in two schemas. EmptyDB has no user tables.
    """
    stats_date = datetime(2026, 2, 20, 2, 0, 0)
    catalog = {
        "databases": {"master": 1, "tempdb": 2, "SalesDB": 7, "EmptyDB": 8},
        "permissions": {"view_server_state": 1, "view_database_state": 1},
        "SalesDB": {
            "tables": [
                {"object_id": 1001, "schema_name": "dbo", "table_name": "Customers"},
                {"object_id": 1002, "schema_name": "dbo", "table_name": "Orders"},
                {"object_id": 1003, "schema_name": "dbo", "table_name": "AuditLog"},
                {"object_id": 1004, "schema_name": "archive", "table_name": "Orders"},
            ],
            "indexes": [
                {"object_id": 1001, "index_id": 1, "index_name": "PK_Customers", "is_unique": True,
                 "type_desc": "CLUSTERED", "stats_date": stats_date},
                {"object_id": 1001, "index_id": 2, "index_name": "IX_Customers_Email", "is_unique": True,
                 "type_desc": "NONCLUSTERED", "stats_date": stats_date},
                {"object_id": 1001, "index_id": 3, "index_name": "IX_Customers_Name", "is_unique": False,
                 "type_desc": "NONCLUSTERED", "stats_date": datetime(2026, 2, 18, 23, 15, 42)},
                {"object_id": 1002, "index_id": 1, "index_name": "PK_Orders", "is_unique": True,
                 "type_desc": "CLUSTERED", "stats_date": stats_date},
                {"object_id": 1002, "index_id": 2, "index_name": "IX_Orders_CustomerID", "is_unique": False,
                 "type_desc": "NONCLUSTERED", "stats_date": None},
                {"object_id": 1003, "index_id": 0, "index_name": None, "is_unique": False,
                 "type_desc": "HEAP", "stats_date": None},
                {"object_id": 1003, "index_id": 2, "index_name": "IX_AuditLog_EventTime", "is_unique": False,
                 "type_desc": "NONCLUSTERED", "stats_date": stats_date},
                {"object_id": 1004, "index_id": 0, "index_name": None, "is_unique": False,
                 "type_desc": "HEAP", "stats_date": None},
            ],
            "index_columns": [
                {"object_id": 1001, "index_id": 1, "column_name": "CustomerID", "type_name": "int",
                 "key_ordinal": 1, "index_column_id": 1, "is_included_column": False},
                {"object_id": 1001, "index_id": 2, "column_name": "Email", "type_name": "nvarchar",
                 "key_ordinal": 1, "index_column_id": 1, "is_included_column": False},
                {"object_id": 1001, "index_id": 3, "column_name": "Phone", "type_name": "varchar",
                 "key_ordinal": 0, "index_column_id": 3, "is_included_column": True},
                {"object_id": 1001, "index_id": 3, "column_name": "FirstName", "type_name": "nvarchar",
                 "key_ordinal": 2, "index_column_id": 2, "is_included_column": False},
                {"object_id": 1001, "index_id": 3, "column_name": "LastName", "type_name": "nvarchar",
                 "key_ordinal": 1, "index_column_id": 1, "is_included_column": False},
                {"object_id": 1002, "index_id": 1, "column_name": "OrderID", "type_name": "int",
                 "key_ordinal": 1, "index_column_id": 1, "is_included_column": False},
                {"object_id": 1002, "index_id": 2, "column_name": "OrderDate", "type_name": "datetime",
                 "key_ordinal": 2, "index_column_id": 2, "is_included_column": False},
                {"object_id": 1002, "index_id": 2, "column_name": "CustomerID", "type_name": "int",
                 "key_ordinal": 1, "index_column_id": 1, "is_included_column": False},
                {"object_id": 1003, "index_id": 2, "column_name": "EventTime", "type_name": "datetime2",
                 "key_ordinal": 1, "index_column_id": 1, "is_included_column": False},
            ],
            "usage": [
                {"object_id": 1001, "index_id": 1, "user_seeks": 15000, "user_scans": 12,
                 "user_updates": 340, "user_lookups": 4200},
                {"object_id": 1001, "index_id": 2, "user_seeks": 800, "user_scans": 0,
                 "user_updates": 340, "user_lookups": 0},
                {"object_id": 1002, "index_id": 1, "user_seeks": 45000, "user_scans": 150,
                 "user_updates": 9000, "user_lookups": 12000},
                {"object_id": 1002, "index_id": 2, "user_seeks": 0, "user_scans": 0,
                 "user_updates": 9000, "user_lookups": 0},
                {"object_id": 1003, "index_id": 2, "user_seeks": 25, "user_scans": 3,
                 "user_updates": 50000, "user_lookups": 0},
            ],
            # Leaf-level allocation units; non-leaf levels are synthesized in DETAILED mode
            "physical": [
                {"object_id": 1001, "index_id": 1, "partition_number": 1, "index_type_desc": "CLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 2560, "record_count": 100000,
                 "avg_fragmentation_in_percent": 1.25},
                {"object_id": 1001, "index_id": 2, "partition_number": 1, "index_type_desc": "NONCLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 512, "record_count": 100000,
                 "avg_fragmentation_in_percent": 12.5},
                {"object_id": 1001, "index_id": 3, "partition_number": 1, "index_type_desc": "NONCLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 640, "record_count": 100000,
                 "avg_fragmentation_in_percent": 33.75},
                {"object_id": 1002, "index_id": 1, "partition_number": 1, "index_type_desc": "CLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 96000, "record_count": 3000000,
                 "avg_fragmentation_in_percent": 40.0},
                {"object_id": 1002, "index_id": 1, "partition_number": 1, "index_type_desc": "CLUSTERED INDEX",
                 "alloc_unit_type_desc": "LOB_DATA", "page_count": 32000, "record_count": 500000,
                 "avg_fragmentation_in_percent": 0.0},
                {"object_id": 1002, "index_id": 2, "partition_number": 1, "index_type_desc": "NONCLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 6000, "record_count": 2000000,
                 "avg_fragmentation_in_percent": 10.0},
                {"object_id": 1002, "index_id": 2, "partition_number": 2, "index_type_desc": "NONCLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 2000, "record_count": 1000000,
                 "avg_fragmentation_in_percent": 50.0},
                {"object_id": 1003, "index_id": 0, "partition_number": 1, "index_type_desc": "HEAP",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 1024, "record_count": 40000,
                 "avg_fragmentation_in_percent": 85.0},
                {"object_id": 1003, "index_id": 2, "partition_number": 1, "index_type_desc": "NONCLUSTERED INDEX",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 128, "record_count": 40000,
                 "avg_fragmentation_in_percent": 3.5},
                {"object_id": 1004, "index_id": 0, "partition_number": 1, "index_type_desc": "HEAP",
                 "alloc_unit_type_desc": "IN_ROW_DATA", "page_count": 0, "record_count": 0,
                 "avg_fragmentation_in_percent": 0.0},
            ],
        },
        "EmptyDB": {"tables": [], "indexes": [], "index_columns": [], "usage": [], "physical": []},
    }
    return copy.deepcopy(catalog)


class MockConnection:
    """Mock database connection answering the analyzer's queries from a catalog dict."""

    def __init__(self, database: str, catalog: dict):
        self.database = database
        self.catalog = catalog
        self.executed: list[tuple[str, tuple]] = []

    def _db(self, database: Optional[str] = None) -> dict:
        return self.catalog.get(database or self.database, {})

    def _database_name(self, database_id: int) -> Optional[str]:
        for name, db_id in self.catalog["databases"].items():
            if db_id == database_id:
                return name
        return None

    def execute_mock(self, query: str, params: tuple = ()) -> list[dict]:
        """Return mock data based on the query pattern."""
        self.executed.append((query, tuple(params)))
        q = query.lower()
        if "sys.databases" in q:
            return [
                {"database_id": db_id, "name": name}
                for name, db_id in self.catalog["databases"].items()
                if name.lower() == params[0].lower()
            ]
        elif "has_perms_by_name" in q:
            return [dict(self.catalog["permissions"])]
        elif "dm_db_index_physical_stats" in q:
            return self._physical_stats(*params)
        elif "dm_db_index_usage_stats" in q:
            return self._usage_stats(*params)
        elif "sys.index_columns" in q:
            return self._index_columns(params[0] if params else None)
        elif "stats_date" in q:
            return self._index_metadata(params[0] if params else None)
        elif "from sys.indexes" in q and "i.index_id = 0" in q:
            return self._heap_ids()
        elif "from sys.indexes" in q:
            return self._index_ids(params[0])
        elif "from sys.tables" in q:
            return self._table_ids(*params)
        elif "select 1 as ok" in q:
            return [{"ok": 1}]
        return []

    def _tables(self) -> dict:
        return {t["object_id"]: t for t in self._db().get("tables", [])}

    def _table_ids(self, table_name: str, schema_name: Optional[str] = None) -> list[dict]:
        return [
            dict(t) for t in self._db().get("tables", [])
            if t["table_name"].lower() == table_name.lower()
            and (schema_name is None or t["schema_name"].lower() == schema_name.lower())
        ]

    def _index_ids(self, index_name: str) -> list[dict]:
        return [
            {"object_id": i["object_id"], "index_id": i["index_id"], "index_name": i["index_name"]}
            for i in self._db().get("indexes", [])
            if i["index_name"] is not None and i["index_name"].lower() == index_name.lower()
        ]

    def _heap_ids(self) -> list[dict]:
        return [
            {"object_id": i["object_id"], "index_id": 0, "index_name": None}
            for i in self._db().get("indexes", [])
            if i["index_id"] == 0
        ]

    def _index_columns(self, object_id: Optional[int]) -> list[dict]:
        rows = [
            dict(c) for c in self._db().get("index_columns", [])
            if object_id is None or c["object_id"] == object_id
        ]
        return sorted(rows, key=lambda c: (c["object_id"], c["index_id"], c["is_included_column"],
                                           c["key_ordinal"] == 0, c["key_ordinal"], c["index_column_id"]))

    def _index_metadata(self, object_id: Optional[int]) -> list[dict]:
        tables = self._tables()
        rows = []
        for i in self._db().get("indexes", []):
            if object_id is not None and i["object_id"] != object_id:
                continue
            table = tables[i["object_id"]]
            rows.append({**i, "schema_name": table["schema_name"], "table_name": table["table_name"]})
        # NULL index names sort first, as on the server
        return sorted(rows, key=lambda r: (r["table_name"], r["index_name"] is not None, r["index_name"] or ""))

    def _usage_stats(self, database_id: int, object_id: Optional[int] = None) -> list[dict]:
        name = self._database_name(database_id)
        if name is None:
            return []
        return [
            dict(u) for u in self._db(name).get("usage", [])
            if object_id is None or u["object_id"] == object_id
        ]

    def _physical_stats(self, database_id: int, object_id: Optional[int], index_id: Optional[int],
                        mode: str) -> list[dict]:
        name = self._database_name(database_id)
        if name is None:
            return []
        rows = []
        for p in self._db(name).get("physical", []):
            if object_id is not None and p["object_id"] != object_id:
                continue
            if index_id is not None and p["index_id"] != index_id:
                continue
            row = {**p, "index_level": 0}
            if mode == "LIMITED":
                row["record_count"] = None
            rows.append(row)
            # DETAILED also walks the non-leaf levels of B-trees
            if mode == "DETAILED" and p["index_type_desc"] != "HEAP" and p["alloc_unit_type_desc"] == "IN_ROW_DATA":
                rows.append({**p, "index_level": 1, "page_count": max(1, p["page_count"] // 200),
                             "record_count": p["page_count"], "avg_fragmentation_in_percent": 0.0})
        return rows

    def close(self):
        pass
