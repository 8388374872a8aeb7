"""Error kinds surfaced by the index analyzer."""


class IndexAnalysisError(Exception):
    """Base class for every error the analyzer reports to its caller."""


class InvalidParameterError(IndexAnalysisError, ValueError):
    """A request parameter is missing or has an unsupported value."""


class DatabaseNotFoundError(IndexAnalysisError):
    def __init__(self, database: str):
        self.database = database
        super().__init__(f"Database '{database}' does not exist on this server")


class TableNotFoundError(IndexAnalysisError):
    def __init__(self, database: str, table: str):
        self.database = database
        self.table = table
        super().__init__(f"Table '{table}' not found among user tables of database '{database}'")


class IndexNotFoundError(IndexAnalysisError):
    def __init__(self, database: str, index: str, table: str = None):
        self.database = database
        self.index = index
        self.table = table
        scope = f"table '{table}'" if table else f"database '{database}'"
        super().__init__(f"Index '{index}' not found on {scope}")


class InsufficientPrivilegeError(IndexAnalysisError):
    def __init__(self, database: str, missing: list):
        self.database = database
        self.missing = list(missing)
        super().__init__(
            f"Reading index statistics for '{database}' requires "
            f"{', '.join(self.missing)} permission"
        )
