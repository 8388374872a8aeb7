"""
Index Analysis Configuration
Centralized settings for the analyzer, the CLI and the HTTP service.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DetailLevel(Enum):
    """Scan modes of sys.dm_db_index_physical_stats, cheapest first."""
    LIMITED = "LIMITED"
    SAMPLED = "SAMPLED"
    DETAILED = "DETAILED"


DEFAULT_DETAIL_LEVEL = DetailLevel.LIMITED


def _braced(value: str) -> str:
    """Quote an ODBC attribute value; a closing brace is escaped by doubling."""
    return "{" + value.replace("}", "}}") + "}"


@dataclass
class ConnectionSettings:
    """ODBC connection settings for a SQL Server instance."""
    server: str = "localhost"
    port: int = 1433
    user: Optional[str] = None
    password: Optional[str] = None
    driver: str = "ODBC Driver 18 for SQL Server"
    encrypt: str = "yes"
    trust_server_certificate: str = "no"
    timeout: int = 30  # login timeout, seconds

    @classmethod
    def from_env(cls) -> "ConnectionSettings":
        return cls(
            server=os.getenv("DB_SERVER", "localhost"),
            port=int(os.getenv("DB_PORT", "1433")),
            user=os.getenv("DB_USER") or None,
            password=os.getenv("DB_PASSWORD") or None,
            driver=os.getenv("DB_DRIVER", "ODBC Driver 18 for SQL Server"),
            encrypt=os.getenv("DB_ENCRYPT", "yes"),
            trust_server_certificate=os.getenv("DB_TRUST_CERT", "no"),
            timeout=int(os.getenv("DB_TIMEOUT", "30")),
        )

    def connection_string(self, database: str = "master") -> str:
        """Build the ODBC connection string; trusted connection without credentials."""
        conn_str = f"DRIVER={{{self.driver}}};SERVER={self.server},{self.port};DATABASE={_braced(database)};"
        if self.user and self.password:
            conn_str += f"UID={_braced(self.user)};PWD={_braced(self.password)};"
        else:
            conn_str += "Trusted_Connection=yes;"
        conn_str += f"Encrypt={self.encrypt};TrustServerCertificate={self.trust_server_certificate};"
        return conn_str


# Report formatting
HEAP_INDEX_NAME = "HEAP"
IN_ROW_ALLOCATION_TYPE = "IN_ROW_DATA"  # the only allocation unit with meaningful fragmentation
PAGE_SIZE_KB = 8
STATS_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"  # CONVERT(varchar(24), ..., 120)
UNIQUE_LABEL = "UNIQUE"
NOT_UNIQUE_LABEL = "NOT UNIQUE"
COLUMN_DELIMITER = ", "

# Output column order for every report format
REPORT_COLUMNS = [
    "schema_name",
    "table_name",
    "index_name",
    "uniqueness",
    "index_type",
    "allocation_type",
    "page_count",
    "record_count",
    "size_mb",
    "fragmentation_percent",
    "stats_updated",
    "user_seeks",
    "user_scans",
    "user_updates",
    "user_lookups",
    "index_columns",
]

# Permissions needed to read the usage and physical stats DMVs
REQUIRED_PERMISSIONS = {
    "view_server_state": "VIEW SERVER STATE",
    "view_database_state": "VIEW DATABASE STATE",
}

# HTTP service
REPORT_CACHE_TTL_SECONDS = int(os.getenv("INDEX_ANALYSIS_CACHE_TTL", "300"))
MOCK_MODE = os.getenv("INDEX_ANALYSIS_MOCK", "false").lower() in ("1", "true", "yes")
