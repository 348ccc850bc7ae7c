"""
Non-blocking iteration over materialized rows.

Each row is handed out on its own event loop tick so a large result set does
not monopolize the loop.
"""

import asyncio
import inspect
from typing import Any, AsyncIterator, Callable, Optional, Sequence, Tuple


async def _call(func: Callable, *args: Any) -> Any:
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def aiter_rows(rows: Optional[Sequence[Any]]) -> AsyncIterator[Tuple[int, Any]]:
    """Yield (index, row) pairs, giving control back to the loop between rows"""
    for index, row in enumerate(rows or ()):
        await asyncio.sleep(0)
        yield index, row


async def async_for_each(rows: Optional[Sequence[Any]], on_item: Callable,
                         on_done: Optional[Callable] = None) -> int:
    """
    Visit rows one per loop tick.

    Args:
        rows: Materialized rows; None is treated as empty
        on_item: Called as on_item(index, row); may be a coroutine function.
            Returning exactly False stops the iteration.
        on_done: Called once, after the last row or after an early stop;
            may be a coroutine function

    Returns:
        Number of rows handed to on_item
    """
    visited = 0
    async for index, row in aiter_rows(rows):
        visited += 1
        if await _call(on_item, index, row) is False:
            break

    if on_done is not None:
        await _call(on_done)
    return visited
