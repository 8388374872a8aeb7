"""
Centralized SQL queries for the index analyzer.
Single source of truth: the analyzer and the client's mock catalog key off these.
Object names and ids travel as parameters. The only text substituted into a
query is one of the fixed filter clauses below, via scoped().
"""

# =============================================================================
# Parameter resolution (run against master)
# =============================================================================

DATABASE_ID = """
    SELECT database_id, name
    FROM sys.databases
    WHERE name = ?
"""

PERMISSION_CHECK = """
    SELECT HAS_PERMS_BY_NAME(NULL, NULL, 'VIEW SERVER STATE') AS view_server_state,
           HAS_PERMS_BY_NAME(?, 'DATABASE', 'VIEW DATABASE STATE') AS view_database_state
"""

# =============================================================================
# Parameter resolution (run against the target database)
# =============================================================================

TABLE_IDS = """
    SELECT t.[object_id], s.name AS schema_name, t.name AS table_name
    FROM sys.tables t
    JOIN sys.schemas s ON s.[schema_id] = t.[schema_id]
    WHERE t.name = ?
      AND t.is_ms_shipped = 0
"""

TABLE_IDS_IN_SCHEMA = """
    SELECT t.[object_id], s.name AS schema_name, t.name AS table_name
    FROM sys.tables t
    JOIN sys.schemas s ON s.[schema_id] = t.[schema_id]
    WHERE t.name = ?
      AND s.name = ?
      AND t.is_ms_shipped = 0
"""

INDEX_IDS = """
    SELECT i.[object_id], i.index_id, i.name AS index_name
    FROM sys.indexes i
    JOIN sys.tables t ON t.[object_id] = i.[object_id]
    WHERE i.name = ?
      AND t.is_ms_shipped = 0
"""

HEAP_IDS = """
    SELECT i.[object_id], i.index_id, i.name AS index_name
    FROM sys.indexes i
    JOIN sys.tables t ON t.[object_id] = i.[object_id]
    WHERE i.index_id = 0
      AND t.is_ms_shipped = 0
"""

# =============================================================================
# Column list aggregation
# =============================================================================

INDEX_COLUMNS = """
    SELECT ic.[object_id], ic.index_id, c.name AS column_name, y.name AS type_name,
           ic.key_ordinal, ic.index_column_id, ic.is_included_column
    FROM sys.index_columns ic
    JOIN sys.tables t ON t.[object_id] = ic.[object_id]
    JOIN sys.columns c ON c.[object_id] = ic.[object_id] AND c.column_id = ic.column_id
    JOIN sys.types y ON y.user_type_id = c.user_type_id
    WHERE t.is_ms_shipped = 0
      {object_filter}
    ORDER BY ic.[object_id], ic.index_id, ic.is_included_column,
             CASE WHEN ic.key_ordinal = 0 THEN 1 ELSE 0 END, ic.key_ordinal, ic.index_column_id
"""

# =============================================================================
# Report assembly
# =============================================================================

INDEX_METADATA = """
    SELECT t.[object_id], i.index_id, s.name AS schema_name, t.name AS table_name,
           i.name AS index_name, i.is_unique, i.type_desc,
           STATS_DATE(t.[object_id], i.index_id) AS stats_date
    FROM sys.tables t
    JOIN sys.schemas s ON s.[schema_id] = t.[schema_id]
    JOIN sys.indexes i ON i.[object_id] = t.[object_id]
    WHERE t.is_ms_shipped = 0
      {object_filter}
    ORDER BY t.name, i.name
"""

INDEX_USAGE_STATS = """
    SELECT [object_id], index_id, user_seeks, user_scans, user_updates, user_lookups
    FROM sys.dm_db_index_usage_stats
    WHERE database_id = ?
      {object_filter}
"""

# Arguments: database_id, object_id, index_id, mode. NULL ids widen the scan.
INDEX_PHYSICAL_STATS = """
    SELECT [object_id], index_id, partition_number, index_type_desc,
           alloc_unit_type_desc, index_level, page_count, record_count,
           avg_fragmentation_in_percent
    FROM sys.dm_db_index_physical_stats(?, ?, ?, NULL, ?)
"""

# =============================================================================
# Connectivity
# =============================================================================

PING = """
    SELECT 1 AS ok
"""

# =============================================================================
# Filter clauses for {object_filter}
# =============================================================================

OBJECT_FILTERS = {
    "INDEX_COLUMNS": "AND ic.[object_id] = ?",
    "INDEX_METADATA": "AND t.[object_id] = ?",
    "INDEX_USAGE_STATS": "AND [object_id] = ?",
}


def scoped(name: str, object_id=None) -> str:
    """Return query `name` restricted to one object, or unrestricted when object_id is None."""
    query = globals()[name]
    clause = OBJECT_FILTERS[name] if object_id is not None else ""
    return query.format(object_filter=clause)
