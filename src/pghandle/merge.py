"""
Merge executor: insert-or-update without a native upsert.

The UPDATE runs first; when it touches no rows the INSERT runs. An INSERT that
fails (typically a unique violation because another client inserted the same
row in between) or inserts nothing starts another UPDATE/INSERT cycle. The
cycles are not atomic; callers needing atomicity wrap the merge in an explicit
transaction.
"""

import logging
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from .driver import DriverConnection
from .exceptions import DriverError, MergeIterationLimitError, QueryError

logger = logging.getLogger(__name__)

MAX_MERGE_ITERATIONS = 10


class MergeOutcome(str, Enum):
    """Which statement completed the merge"""
    UPDATE = "update"
    INSERT = "insert"


def _affected(result: Any) -> int:
    return getattr(result, 'row_count', None) or 0


async def execute_merge(connection: DriverConnection,
                        insert_sql: str, insert_params: Optional[Sequence[Any]],
                        update_sql: str, update_params: Optional[Sequence[Any]],
                        max_iterations: int = MAX_MERGE_ITERATIONS,
                        stack: Optional[str] = None) -> Tuple[MergeOutcome, int]:
    """
    Run the UPDATE/INSERT cycle until one statement affects a row.

    Args:
        connection: Open driver connection
        insert_sql: INSERT statement using native placeholders
        insert_params: INSERT parameters
        update_sql: UPDATE statement using native placeholders
        update_params: UPDATE parameters
        max_iterations: Maximum number of UPDATE/INSERT cycles
        stack: Call-site stack attached to raised errors

    Returns:
        (outcome, affected row count)

    Raises:
        QueryError: the UPDATE failed, or the INSERT failed with a non-driver error
        MergeIterationLimitError: no cycle succeeded within max_iterations
    """
    update_list: List[Any] = list(update_params or [])
    insert_list: List[Any] = list(insert_params or [])

    for iteration in range(1, max_iterations + 1):
        try:
            result = await connection.query(update_sql, update_list)
        except Exception as e:
            raise QueryError(str(e) or "Unspecified Merge:Update error.",
                             sql=update_sql, params=update_list, stack=stack) from e

        row_count = _affected(result)
        if row_count > 0:
            return MergeOutcome.UPDATE, row_count

        try:
            result = await connection.query(insert_sql, insert_list)
        except DriverError as e:
            logger.debug(f"Merge insert failed on iteration {iteration}, retrying: {e}")
            continue
        except Exception as e:
            raise QueryError(str(e) or "Unspecified Merge:Insert error.",
                             sql=insert_sql, params=insert_list, stack=stack) from e

        row_count = _affected(result)
        if row_count > 0:
            return MergeOutcome.INSERT, row_count

        logger.debug(f"Merge affected no rows on iteration {iteration}, retrying")

    raise MergeIterationLimitError(
        "Database Merge exceeded iteration limit",
        insert_sql=insert_sql,
        insert_params=insert_list,
        update_sql=update_sql,
        update_params=update_list,
        stack=stack,
    )
