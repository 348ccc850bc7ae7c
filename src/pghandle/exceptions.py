"""
Exception hierarchy for pghandle

Every error raised by a connection handle, a statement builder or the merge
executor derives from PgHandleError so callers can catch the whole family.
"""

from typing import Any, List, Optional


class PgHandleError(Exception):
    """Base class for all pghandle errors"""


class ConfigurationError(PgHandleError):
    """Raised when configuration values fail validation"""


class DriverError(PgHandleError):
    """Raised by driver adapters when the underlying client fails"""


class ConnectionAlreadyOpenError(PgHandleError):
    """Raised when open() is called on a handle that is not closed"""

    def __init__(self, message: str = "Database connection already open."):
        super().__init__(message)


class ConnectionNotOpenError(PgHandleError):
    """Raised when an operation needs an open connection and there is none"""

    def __init__(self, message: str = "Database connection is not open."):
        super().__init__(message)


class ConnectionFailureError(PgHandleError):
    """Raised when the driver could not provide a connection"""


class QueryError(PgHandleError):
    """
    A failed statement.

    Carries the final SQL text (after placeholder rewriting), its parameters
    and the stack of the call site that issued the statement.
    """

    def __init__(self, message: str, sql: Optional[str] = None,
                 params: Optional[List[Any]] = None, stack: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.sql = sql
        self.params = params
        self.stack = stack

    def to_dict(self) -> dict:
        return {
            'message': self.message,
            'sql': self.sql,
            'params': self.params,
            'stack': self.stack,
        }


class ColumnValueCountMismatchError(PgHandleError, ValueError):
    """Raised by the insert/update/merge builders when columns and values differ in length"""


class MergeIterationLimitError(PgHandleError):
    """Raised when merge could neither update nor insert within the iteration limit"""

    def __init__(self, message: str, insert_sql: str, insert_params: Optional[List[Any]],
                 update_sql: str, update_params: Optional[List[Any]],
                 stack: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.insert_sql = insert_sql
        self.insert_params = insert_params
        self.update_sql = update_sql
        self.update_params = update_params
        self.stack = stack

    def to_dict(self) -> dict:
        return {
            'message': self.message,
            'insert_sql': self.insert_sql,
            'insert_params': self.insert_params,
            'update_sql': self.update_sql,
            'update_params': self.update_params,
            'stack': self.stack,
        }
