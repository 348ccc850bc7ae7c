"""
Registry of open connection handles.

Handles register themselves on open and unregister on close; the idle reaper
walks the registry to find handles left open too long.
"""

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, AsyncIterator, Dict, List, Optional, Tuple

from .utils.connection_utils import TOKEN_LENGTH, generate_token

if TYPE_CHECKING:
    from .handle import ConnectionHandle

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Thread-safe mapping of identifier to open ConnectionHandle.

    Iteration always works on a snapshot so handles may be closed (and
    therefore unregistered) while a sweep is in progress.
    """

    def __init__(self, token_length: int = TOKEN_LENGTH):
        self.token_length = token_length
        self._handles: Dict[str, "ConnectionHandle"] = {}
        self._lock = threading.RLock()

    def register(self, handle: "ConnectionHandle") -> str:
        """
        Add a handle under a freshly generated identifier.

        Returns:
            The identifier, unique within this registry
        """
        with self._lock:
            identifier = generate_token(self.token_length, self._handles)
            self._handles[identifier] = handle
        logger.debug(f"Registered connection {identifier} ({len(self)} open)")
        return identifier

    def unregister(self, identifier: Optional[str]) -> bool:
        """Remove an entry; returns False when it was not registered"""
        if identifier is None:
            return False
        with self._lock:
            removed = self._handles.pop(identifier, None) is not None
        if removed:
            logger.debug(f"Unregistered connection {identifier}")
        return removed

    def get(self, identifier: str) -> Optional["ConnectionHandle"]:
        with self._lock:
            return self._handles.get(identifier)

    def snapshot(self) -> List[Tuple[str, "ConnectionHandle"]]:
        """Current entries as a list of (identifier, handle)"""
        with self._lock:
            return list(self._handles.items())

    def clear(self) -> None:
        with self._lock:
            self._handles.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._handles

    async def __aiter__(self) -> AsyncIterator[Tuple[str, "ConnectionHandle"]]:
        for identifier, handle in self.snapshot():
            yield identifier, handle
            await asyncio.sleep(0)
