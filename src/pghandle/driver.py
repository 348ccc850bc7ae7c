"""
Driver collaborators

A ConnectionHandle talks to the database only through BaseDriver and
DriverConnection. SQLAlchemyDriver implements them over SQLAlchemy's asyncio
engine; tests substitute an in-memory driver.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from .config import DatabaseConfig
from .exceptions import DriverError

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Rows returned by a statement and the number of rows it affected"""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0


class DriverConnection(ABC):
    """One checked-out connection"""

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Execute a statement using the driver's native placeholders"""

    @abstractmethod
    async def release(self) -> None:
        """Return the connection to the driver"""


class BaseDriver(ABC):
    """Source of DriverConnections"""

    @abstractmethod
    async def connect(self) -> DriverConnection:
        """Check out a connection, raising DriverError on failure"""

    async def dispose(self) -> None:
        """Release any pooled resources"""


def _driver_message(error: Exception) -> str:
    # DBAPIError wraps the asyncpg exception in .orig
    orig = getattr(error, 'orig', None)
    return str(orig) if orig is not None else str(error)


class SQLAlchemyConnection(DriverConnection):
    """DriverConnection backed by a SQLAlchemy AsyncConnection"""

    def __init__(self, connection: AsyncConnection):
        self._connection = connection

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        try:
            result = await self._connection.exec_driver_sql(sql, tuple(params) if params else ())
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise DriverError(_driver_message(e)) from e

        if result.returns_rows:
            rows = [dict(row._mapping) for row in result]
            return QueryResult(rows=rows, row_count=len(rows))

        return QueryResult(rows=[], row_count=result.rowcount if result.rowcount is not None else 0)

    async def release(self) -> None:
        await self._connection.close()


class SQLAlchemyDriver(BaseDriver):
    """Driver using create_async_engine; pooling is left to SQLAlchemy"""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._engine: Optional[AsyncEngine] = None

    @property
    def engine(self) -> AsyncEngine:
        """Engine created on first use"""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        logger.info(f"Creating engine: {self.config.safe_connection_string}")
        return create_async_engine(self.config.connection_string, **self.config.get_engine_args())

    async def connect(self) -> DriverConnection:
        try:
            connection = await self.engine.connect()
        except (SQLAlchemyError, OSError) as e:
            raise DriverError(_driver_message(e)) from e
        return SQLAlchemyConnection(connection)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info("All database connections closed")
