"""
Connection utilities: identifiers, timing, call-site stacks and health checks
"""

import secrets
import string
import time
import traceback
from typing import Any, Callable, Container, Dict, Optional

TOKEN_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
TOKEN_LENGTH = 6


def generate_token(length: int = TOKEN_LENGTH, taken: Optional[Container[str]] = None) -> str:
    """
    Generate a random alphanumeric token.

    Args:
        length: Token length
        taken: Tokens already in use; a new one is drawn until it is unused

    Returns:
        Token not contained in ``taken``
    """
    while True:
        token = ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
        if taken is None or token not in taken:
            return token


def capture_stack(skip: int = 1) -> str:
    """Formatted stack of the caller, without the innermost ``skip`` frames"""
    frames = traceback.format_stack()
    if skip:
        frames = frames[:-skip]
    return ''.join(frames)


class Stopwatch:
    """Wall-clock timer based on time.perf_counter"""

    def __init__(self):
        self.started = time.perf_counter()

    @property
    def elapsed(self) -> float:
        """Seconds since start"""
        return time.perf_counter() - self.started

    @property
    def elapsed_ms(self) -> float:
        return round(self.elapsed * 1000, 2)


def minutes_since(monotonic_start: Optional[float], clock: Callable[[], float] = time.monotonic) -> float:
    """Minutes elapsed since a time.monotonic() reading, 0 when unset"""
    if monotonic_start is None:
        return 0.0
    return (clock() - monotonic_start) / 60.0


class ConnectionUtils:
    """Utilities for checking connection handles"""

    @staticmethod
    async def test_connection(handle: Any) -> Dict[str, Any]:
        """
        Run a trivial statement on an open handle and report the outcome

        Args:
            handle: Open ConnectionHandle

        Returns:
            Dictionary with success flag, error message and response time
        """
        result = {
            'success': False,
            'error': None,
            'response_time_ms': None,
            'handle_id': getattr(handle, 'identifier', None),
        }

        watch = Stopwatch()
        try:
            await handle.query("SELECT 1;")
            result['success'] = True
        except Exception as e:
            result['error'] = str(e)
        result['response_time_ms'] = watch.elapsed_ms

        return result
