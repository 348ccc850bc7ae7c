"""
Connection utilities
"""

from .connection_utils import (
    ConnectionUtils,
    Stopwatch,
    capture_stack,
    generate_token,
    minutes_since,
)

__all__ = [
    'ConnectionUtils',
    'Stopwatch',
    'capture_stack',
    'generate_token',
    'minutes_since',
]
