from .analyzer import IndexAnalyzer
from .errors import (
    DatabaseNotFoundError,
    IndexAnalysisError,
    IndexNotFoundError,
    InsufficientPrivilegeError,
    InvalidParameterError,
    TableNotFoundError,
)
from .report import IndexReport, IndexReportRow

__all__ = [
    "IndexAnalyzer",
    "IndexReport",
    "IndexReportRow",
    "IndexAnalysisError",
    "InvalidParameterError",
    "DatabaseNotFoundError",
    "TableNotFoundError",
    "IndexNotFoundError",
    "InsufficientPrivilegeError",
]
