"""
Connection handle

A ConnectionHandle owns at most one driver connection at a time. It runs
statements written with ``?`` placeholders, keeps the rows and row count of
the last statement, and offers helpers that build common statements.

Example:
    async with manager.connection() as db:
        await db.select_helper(table="users", columns=["username", "email"],
                               where=db.where_helper({"username -like": "h%"}))
        for row in db.rows:
            print(row["email"])

Only one statement may be in flight per handle; await each call before
issuing the next one.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .driver import BaseDriver, DriverConnection
from .exceptions import (
    ConnectionAlreadyOpenError,
    ConnectionFailureError,
    ConnectionNotOpenError,
    MergeIterationLimitError,
    QueryError,
)
from .iteration import async_for_each
from .logging_config import HandleLoggerAdapter, error_context
from .merge import MergeOutcome, execute_merge
from .queries import (
    DeleteOptions,
    InsertOptions,
    MergeOptions,
    SelectOptions,
    UpdateOptions,
    WhereClause,
    build_delete,
    build_insert,
    build_merge_pair,
    build_select,
    build_update,
    count_placeholders,
    order_by_helper,
    replace_placeholders,
    where_helper,
)
from .reaper import IdleReaper
from .registry import ConnectionRegistry
from .utils.connection_utils import Stopwatch, capture_stack, minutes_since

logger = logging.getLogger(__name__)

UNSPECIFIED_QUERY_ERROR = "Unspecified Database Query Error."


def _resolve_options(model, options, fields: Dict[str, Any]):
    """Options instance from either a prebuilt model or keyword fields, not both"""
    if options is not None and fields:
        raise TypeError(f"Pass either a {model.__name__} or keyword fields, not both "
                        f"(got {', '.join(sorted(fields))})")
    return options if options is not None else model(**fields)


class HandleState(str, Enum):
    """Lifecycle states of a ConnectionHandle"""
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"


class ConnectionHandle:
    """Exclusive use of one database connection"""

    def __init__(self, driver: BaseDriver, registry: ConnectionRegistry,
                 reaper: Optional[IdleReaper] = None):
        """
        Args:
            driver: Source of the underlying connection
            registry: Registry this handle joins while open
            reaper: Idle reaper to start when the first handle opens
        """
        self.driver = driver
        self.registry = registry
        self.reaper = reaper
        self.log = HandleLoggerAdapter(logger, self)

        self._state = HandleState.CLOSED
        self._connection: Optional[DriverConnection] = None
        self._identifier: Optional[str] = None
        self._opened_at: Optional[datetime] = None
        self._opened_monotonic: Optional[float] = None
        self._open_stack: Optional[str] = None

        self._rows: Optional[List[Dict[str, Any]]] = None
        self._row_count = 0
        self._last_error: Optional[Exception] = None

    def __repr__(self) -> str:
        return f"<ConnectionHandle id={self._identifier} state={self._state.value}>"

    # ------------------------------------------------------------------
    # Connection methods
    # ------------------------------------------------------------------

    async def open(self) -> "ConnectionHandle":
        """
        Open the database connection. Must be called before any other method.

        Raises:
            ConnectionAlreadyOpenError: the handle is not closed
            ConnectionFailureError: the driver could not provide a connection
        """
        if self._state is not HandleState.CLOSED:
            error = ConnectionAlreadyOpenError()
            self._fail(error)
            raise error

        self._state = HandleState.OPENING
        self._open_stack = capture_stack(skip=1)

        try:
            connection = await self.driver.connect()
        except BaseException as e:
            # Cancellation included: a failed open always leaves the handle closed
            stack, self._open_stack = self._open_stack, None
            self._state = HandleState.CLOSED
            if not isinstance(e, Exception):
                self.log.warning("Opening database connection was cancelled")
                raise
            self.log.error(f"Problem getting database connection:\n{stack}\n{e!r}")
            error = ConnectionFailureError(str(e) or type(e).__name__)
            self._last_error = error
            raise error from e

        self._connection = connection
        self._opened_at = datetime.now()
        self._opened_monotonic = time.monotonic()
        self._identifier = self.registry.register(self)
        self._state = HandleState.OPEN
        self._last_error = None
        self.log.connection_event('opened', self._opened_at.strftime('%Y-%m-%d %H:%M:%S'))

        if self.reaper is not None:
            self.reaper.ensure_running()
        return self

    start = open

    async def close(self) -> None:
        """
        Release the connection. Closing a closed handle does nothing.

        The connection goes back to the driver's pool; a handle that is never
        closed eventually exhausts it.
        """
        if self._state is not HandleState.OPEN:
            return

        # Mark closed before the first await so a racing close() is a no-op
        self._state = HandleState.CLOSED
        connection, self._connection = self._connection, None
        identifier = self._identifier
        elapsed_ms = round((time.monotonic() - self._opened_monotonic) * 1000)

        try:
            if connection is not None:
                await connection.release()
        except Exception as e:
            self.log.warning(f"Error releasing connection {identifier}: {e}")
        finally:
            self.registry.unregister(identifier)
            self.log.connection_event('released', f"after in use for {elapsed_ms} ms.")
            self._identifier = None
            self._opened_at = None
            self._opened_monotonic = None
            self._open_stack = None
            self._rows = None
            self._row_count = 0
            self._last_error = None

    end = close

    async def __aenter__(self) -> "ConnectionHandle":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def _require_open(self) -> DriverConnection:
        if self._state is not HandleState.OPEN or self._connection is None:
            error = ConnectionNotOpenError()
            self._fail(error)
            raise error
        return self._connection

    def _fail(self, error: Exception) -> None:
        self._last_error = error
        self.log.error(f"Database Error: {error}")

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """
        Execute a statement.

        Use question marks as unnamed parameters:
            await db.query("select username from users where email=?;", ["test@test.com"])

        Args:
            sql: SQL statement with ``?`` placeholders
            params: Values for the placeholders, in order

        Returns:
            The rows, also available as ``rows``

        Raises:
            ConnectionNotOpenError: the handle is not open
            QueryError: the driver failed or returned a malformed result
        """
        self._row_count = 0
        connection = self._require_open()

        stack = capture_stack(skip=1)
        expected = count_placeholders(sql)
        sql = replace_placeholders(sql)
        params = list(params) if params else []

        if expected and expected != len(params):
            self.log.warning(f"Statement has {expected} placeholders but {len(params)} parameters")

        watch = Stopwatch()
        try:
            result = await connection.query(sql, params)
        except Exception as e:
            error = QueryError(str(e) or UNSPECIFIED_QUERY_ERROR, sql=sql, params=params, stack=stack)
            self._log_query_error(error, watch.elapsed)
            self._last_error = error
            self._rows = None
            raise error from e

        rows = getattr(result, 'rows', None)
        row_count = getattr(result, 'row_count', None)
        if result is None or rows is None or row_count is None:
            error = QueryError(UNSPECIFIED_QUERY_ERROR, sql=sql, params=params, stack=stack)
            self._log_query_error(error, watch.elapsed)
            self._last_error = error
            self._rows = None
            raise error

        self.log.query(sql, params, watch.elapsed)
        self._rows = list(rows)
        self._row_count = row_count
        self._last_error = None
        return self._rows

    def _log_query_error(self, error: QueryError, elapsed: float) -> None:
        self.log.error(f"Database Error ({elapsed:.5f}s): {error.message} "
                       f"{error_context(error.sql, error.params, error.stack)}")

    async def merge(self, insert_sql: str, insert_params: Optional[Sequence[Any]],
                    update_sql: str, update_params: Optional[Sequence[Any]]) -> MergeOutcome:
        """
        Insert or update a record.

        The update runs first and the insert only when no row was updated;
        see merge_helper for building both statements.

        Returns:
            MergeOutcome.UPDATE or MergeOutcome.INSERT

        Raises:
            ConnectionNotOpenError: the handle is not open
            QueryError: the update statement failed
            MergeIterationLimitError: neither statement succeeded within the limit
        """
        self._row_count = 0
        connection = self._require_open()

        stack = capture_stack(skip=1)
        insert_sql = replace_placeholders(insert_sql)
        update_sql = replace_placeholders(update_sql)

        watch = Stopwatch()
        try:
            outcome, row_count = await execute_merge(
                connection, insert_sql, insert_params, update_sql, update_params, stack=stack
            )
        except QueryError as e:
            self._log_query_error(e, watch.elapsed)
            self._last_error = e
            raise
        except MergeIterationLimitError as e:
            self.log.error(f"Database Error ({watch.elapsed:.5f}s): {e.to_dict()}")
            self._last_error = e
            raise

        self.log.query(update_sql if outcome is MergeOutcome.UPDATE else insert_sql,
                       update_params if outcome is MergeOutcome.UPDATE else insert_params,
                       watch.elapsed)
        self._row_count = row_count
        self._last_error = None
        return outcome

    # ------------------------------------------------------------------
    # Transaction methods
    # ------------------------------------------------------------------

    async def begin_transaction(self) -> None:
        """Begin a transaction"""
        await self.query("START TRANSACTION;")

    begin = begin_transaction

    async def commit(self) -> None:
        """Commit the transaction"""
        await self.query("COMMIT;")

    async def rollback(self) -> None:
        """Roll back the transaction"""
        await self.query("ROLLBACK;")

    # ------------------------------------------------------------------
    # Helper methods
    # ------------------------------------------------------------------

    async def select_helper(self, options: Optional[SelectOptions] = None, **fields) -> List[Dict[str, Any]]:
        """
        Run a SELECT built from SelectOptions (or its fields as keywords).

        Example:
            await db.select_helper(table="users", columns=["username", "email"],
                                   where=db.where_helper({"username -like": "h%"}),
                                   order_by=db.order_by_helper(["email"]))
        """
        statement = build_select(_resolve_options(SelectOptions, options, fields))
        return await self.query(statement.sql, statement.params)

    async def insert_helper(self, options: Optional[InsertOptions] = None, **fields) -> List[Dict[str, Any]]:
        """
        Run an INSERT built from InsertOptions.

        Example:
            await db.insert_helper(table="users",
                                   columns={"username": "tester", "email": "test@test.com"})
        """
        statement = build_insert(_resolve_options(InsertOptions, options, fields))
        return await self.query(statement.sql, statement.params)

    async def update_helper(self, options: Optional[UpdateOptions] = None, **fields) -> List[Dict[str, Any]]:
        """
        Run an UPDATE built from UpdateOptions.

        Example:
            await db.update_helper(table="users", columns={"email": "new@test.com"},
                                   where=db.where_helper({"username": "tester"}))
        """
        statement = build_update(_resolve_options(UpdateOptions, options, fields))
        return await self.query(statement.sql, statement.params)

    async def delete_helper(self, options: Optional[DeleteOptions] = None, **fields) -> List[Dict[str, Any]]:
        """Run a DELETE built from DeleteOptions."""
        statement = build_delete(_resolve_options(DeleteOptions, options, fields))
        return await self.query(statement.sql, statement.params)

    async def merge_helper(self, options: Optional[MergeOptions] = None, **fields) -> MergeOutcome:
        """
        Insert a record or update it when the WHERE clause already matches.

        Example:
            await db.merge_helper(table="users",
                                  columns={"username": "tester", "email": "test@test.com"},
                                  where=db.where_helper({"username": "tester"}))
        """
        statements = build_merge_pair(_resolve_options(MergeOptions, options, fields))
        return await self.merge(statements.insert_sql, statements.insert_params,
                                statements.update_sql, statements.update_params)

    @staticmethod
    def where_helper(variables: Optional[Mapping[str, Any]], logic: str = "AND") -> Optional[WhereClause]:
        """See pghandle.queries.where_helper"""
        return where_helper(variables, logic)

    @staticmethod
    def order_by_helper(columns: Any, default_sort: str = "ASC") -> Optional[str]:
        """See pghandle.queries.order_by_helper"""
        return order_by_helper(columns, default_sort)

    # ------------------------------------------------------------------
    # Result methods
    # ------------------------------------------------------------------

    def error(self) -> Optional[Exception]:
        """Error from the last command on this handle, or None"""
        return self._last_error

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @property
    def rows(self) -> Optional[List[Dict[str, Any]]]:
        """Rows from the last query"""
        return self._rows

    @property
    def row_count(self) -> int:
        """Number of rows returned or affected by the last statement"""
        return self._row_count

    def to_dataframe(self) -> pd.DataFrame:
        """Rows from the last query as a DataFrame"""
        return pd.DataFrame(self._rows or [])

    async def async_for_each(self, on_item: Callable, on_done: Optional[Callable] = None) -> int:
        """
        Loop over the rows from the last query, one row per event loop tick.

        Example:
            await db.async_for_each(lambda index, row: print(index, row))

        Args:
            on_item: on_item(index, row), sync or async; return False to stop
            on_done: Called once when the loop ends

        Returns:
            Number of rows visited
        """
        return await async_for_each(self._rows, on_item, on_done)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is HandleState.OPEN

    @property
    def identifier(self) -> Optional[str]:
        return self._identifier

    @property
    def opened_at(self) -> Optional[datetime]:
        return self._opened_at

    @property
    def open_stack(self) -> Optional[str]:
        """Stack of the call that opened this handle"""
        return self._open_stack

    @property
    def open_minutes(self) -> float:
        """Minutes since the handle was opened, 0 when closed"""
        return minutes_since(self._opened_monotonic)
