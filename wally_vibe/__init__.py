"""
wally-vibe

Run a command and, when it succeeds, buzz every reachable haptic device.
"""

__version__ = "0.1.0"

from .orchestrator import WallyVibeEngine
from .config import WallyVibeConfig
from .errors import (
    WallyVibeError, PatternParseError, SessionConnectError, ChildSpawnError, PlaybackError
)
from .models import PatternStep, ChildResult, RunMetrics, SessionSource
from .pattern import parse_pattern, resolve_pattern

__all__ = [
    "WallyVibeEngine",
    "WallyVibeConfig",
    "WallyVibeError",
    "PatternParseError",
    "SessionConnectError",
    "ChildSpawnError",
    "PlaybackError",
    "PatternStep",
    "ChildResult",
    "RunMetrics",
    "SessionSource",
    "parse_pattern",
    "resolve_pattern",
]
