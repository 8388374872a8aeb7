"""Parameter resolution: validate request inputs and turn names into engine ids."""

from __future__ import annotations

import logging
from typing import Optional

from config.settings import DetailLevel, DEFAULT_DETAIL_LEVEL, HEAP_INDEX_NAME, REQUIRED_PERMISSIONS
from sql import queries
from utils.sqlserver_client import StatsAccessDenied

from .errors import (
    DatabaseNotFoundError,
    IndexNotFoundError,
    InsufficientPrivilegeError,
    InvalidParameterError,
    TableNotFoundError,
)

logger = logging.getLogger("index_analysis.resolution")


def parse_detail_level(value) -> DetailLevel:
    """Accept a DetailLevel, its name in any case, or None for the default."""
    if value is None:
        return DEFAULT_DETAIL_LEVEL
    if isinstance(value, DetailLevel):
        return value
    try:
        return DetailLevel(str(value).strip().upper())
    except ValueError:
        choices = ", ".join(level.value for level in DetailLevel)
        raise InvalidParameterError(f"Unknown detail level '{value}' (expected one of: {choices})") from None


def split_table_name(table: str) -> tuple[Optional[str], str]:
    """Split 'schema.table' into its parts; square brackets are stripped."""
    parts = [p.strip().strip("[]") for p in table.split(".", 1)]
    if len(parts) == 2:
        return parts[0], parts[1]
    return None, parts[0]


class ResolutionMixin:
    """Mixin resolving database, table and index names before any report query runs."""

    def _query(self, database: str, query: str, params: tuple = ()) -> list[dict]:
        try:
            return self.client.execute_query(database, query, params)
        except StatsAccessDenied as e:
            logger.error(f"Permission denied in {database}: {e}")
            raise InsufficientPrivilegeError(database, list(REQUIRED_PERMISSIONS.values())) from e

    def resolve_database(self, database: str) -> tuple[int, str]:
        """Return (database_id, canonical name) for `database`."""
        if not database or not str(database).strip():
            raise InvalidParameterError("A database name is required")

        rows = self._query("master", queries.DATABASE_ID, (database.strip(),))
        if not rows:
            raise DatabaseNotFoundError(database)
        row = rows[0]
        logger.debug(f"Resolved database {row['name']} -> database_id={row['database_id']}")
        return row["database_id"], row["name"]

    def check_privileges(self, database: str) -> None:
        """Fail unless the login can read both the usage and the physical stats DMVs."""
        rows = self._query("master", queries.PERMISSION_CHECK, (database,))
        granted = rows[0] if rows else {}
        missing = [perm for key, perm in REQUIRED_PERMISSIONS.items() if not granted.get(key)]
        if missing:
            raise InsufficientPrivilegeError(database, missing)

    def resolve_table(self, database: str, table: str) -> list[int]:
        """Return the object_ids of user tables named `table` (optionally schema-qualified)."""
        schema_name, table_name = split_table_name(table)
        if not table_name:
            raise InvalidParameterError(f"Invalid table name '{table}'")

        if schema_name:
            rows = self._query(database, queries.TABLE_IDS_IN_SCHEMA, (table_name, schema_name))
        else:
            rows = self._query(database, queries.TABLE_IDS, (table_name,))
        if not rows:
            raise TableNotFoundError(database, table)
        if len(rows) > 1:
            schemas = ", ".join(sorted(r["schema_name"] for r in rows))
            logger.info(f"Table name '{table}' matches tables in several schemas ({schemas})")
        return [r["object_id"] for r in rows]

    def resolve_index(self, database: str, index: str, object_ids: Optional[list[int]] = None,
                      table: Optional[str] = None) -> list[tuple[int, int]]:
        """
        Return (object_id, index_id) pairs for indexes named `index`, within `object_ids` if given.

        The report labels heaps HEAP, so that name also selects the heaps.
        """
        index = index.strip()
        rows = self._query(database, queries.INDEX_IDS, (index,))
        if index.upper() == HEAP_INDEX_NAME:
            rows += self._query(database, queries.HEAP_IDS)
        pairs = [
            (r["object_id"], r["index_id"]) for r in rows
            if object_ids is None or r["object_id"] in object_ids
        ]
        if not pairs:
            raise IndexNotFoundError(database, index, table)
        return pairs
