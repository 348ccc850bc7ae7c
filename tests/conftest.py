"""
Shared fixtures: an in-memory driver that records statements and replays
scripted results.
"""

from collections import deque
from typing import Any, List, Optional, Sequence

import pytest

from pghandle.driver import BaseDriver, DriverConnection, QueryResult
from pghandle.exceptions import DriverError
from pghandle.registry import ConnectionRegistry


class FakeConnection(DriverConnection):
    """Records (sql, params) calls and returns queued results or raises queued errors"""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.calls: List[tuple] = []
        self.responses = deque(responses or [])
        self.release_count = 0

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        self.calls.append((sql, list(params or [])))
        if self.responses:
            response = self.responses.popleft()
            if isinstance(response, Exception):
                raise response
            return response
        return QueryResult(rows=[], row_count=0)

    async def release(self) -> None:
        self.release_count += 1


class FakeDriver(BaseDriver):
    """Hands out FakeConnections; set fail_with to make connect() raise"""

    def __init__(self):
        self.connections: List[FakeConnection] = []
        self.fail_with: Optional[Exception] = None
        self.pending_responses: List[Any] = []
        self.disposed = False

    @property
    def last_connection(self) -> FakeConnection:
        return self.connections[-1]

    async def connect(self) -> DriverConnection:
        if self.fail_with is not None:
            raise self.fail_with
        connection = FakeConnection(self.pending_responses)
        self.pending_responses = []
        self.connections.append(connection)
        return connection

    async def dispose(self) -> None:
        self.disposed = True


def rows_result(*rows: dict) -> QueryResult:
    return QueryResult(rows=list(rows), row_count=len(rows))


def affected(count: int) -> QueryResult:
    return QueryResult(rows=[], row_count=count)


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def driver_error():
    return DriverError('duplicate key value violates unique constraint "users_pkey"')
