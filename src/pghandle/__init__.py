"""
pghandle - connection handles for PostgreSQL

Components:
- handle: ConnectionHandle with query, merge, transactions and statement helpers
- queries: placeholder rewriting, WHERE/ORDER BY helpers and statement builders
- merge: insert-or-update executor
- registry / reaper: open-connection registry and idle connection reaper
- manager: ConnectionManager wiring configuration, driver, registry and reaper
"""

__version__ = "1.0.0"

from .config import DatabaseConfig, LoggingConfig, load_config
from .driver import BaseDriver, DriverConnection, QueryResult, SQLAlchemyDriver
from .exceptions import (
    PgHandleError,
    ConfigurationError,
    DriverError,
    ConnectionAlreadyOpenError,
    ConnectionNotOpenError,
    ConnectionFailureError,
    QueryError,
    ColumnValueCountMismatchError,
    MergeIterationLimitError,
)
from .handle import ConnectionHandle, HandleState
from .iteration import async_for_each, aiter_rows
from .logging_config import setup_db_logging
from .manager import ConnectionManager
from .merge import MergeOutcome, execute_merge
from .queries import (
    WhereClause,
    where_helper,
    order_by_helper,
    replace_placeholders,
    SelectOptions,
    InsertOptions,
    UpdateOptions,
    DeleteOptions,
    MergeOptions,
)
from .reaper import IdleReaper
from .registry import ConnectionRegistry

__all__ = [
    'DatabaseConfig',
    'LoggingConfig',
    'load_config',
    'BaseDriver',
    'DriverConnection',
    'QueryResult',
    'SQLAlchemyDriver',
    'PgHandleError',
    'ConfigurationError',
    'DriverError',
    'ConnectionAlreadyOpenError',
    'ConnectionNotOpenError',
    'ConnectionFailureError',
    'QueryError',
    'ColumnValueCountMismatchError',
    'MergeIterationLimitError',
    'ConnectionHandle',
    'HandleState',
    'async_for_each',
    'aiter_rows',
    'setup_db_logging',
    'ConnectionManager',
    'MergeOutcome',
    'execute_merge',
    'WhereClause',
    'where_helper',
    'order_by_helper',
    'replace_placeholders',
    'SelectOptions',
    'InsertOptions',
    'UpdateOptions',
    'DeleteOptions',
    'MergeOptions',
    'IdleReaper',
    'ConnectionRegistry',
]
