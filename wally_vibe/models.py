"""
Data models and enums for wally-vibe
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, Tuple
import time

# Reported when the child's exit code is unavailable (killed by a signal, never started)
UNKNOWN_EXIT_CODE = -1


class SessionSource(Enum):
    """Which connection attempt produced a session"""
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class PatternStep:
    """One step of a vibration pattern"""
    intensity: float
    duration_s: float


Pattern = Tuple[PatternStep, ...]

DEFAULT_PATTERN: Pattern = (PatternStep(intensity=1.0, duration_s=3.0),)


@dataclass
class ChildResult:
    """Outcome of the wrapped command"""
    returncode: Optional[int] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        """Check if the wrapped command exited cleanly"""
        return self.returncode == 0

    @property
    def exit_code(self) -> int:
        """Exit code to mirror, negative codes (signals) collapse to UNKNOWN_EXIT_CODE"""
        if self.returncode is None or self.returncode < 0:
            return UNKNOWN_EXIT_CODE
        return self.returncode


@dataclass
class PlaybackResult:
    """What a playback run actually did"""
    steps_played: int = 0
    device_count: int = 0
    stopped: bool = False


@dataclass
class RunMetrics:
    """Timing metrics for one wrapped run"""
    command_ms: Optional[int] = None
    connect_ms: Optional[int] = None
    playback_ms: Optional[int] = None
    branch: Optional[str] = None  # e.g. "remote", "local", "failed:no_session"
    steps_played: int = 0
    device_count: int = 0
    errors: Optional[list] = None
    total_duration_ms: Optional[int] = None

    def __post_init__(self):
        """Initialize errors list if None"""
        if self.errors is None:
            self.errors = []

    def add_error(self, error: str, phase: str = None):
        """Add an error with optional phase context"""
        error_entry = {"error": error, "phase": phase, "timestamp": time.time()}
        self.errors.append(error_entry)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return {
            "command_ms": self.command_ms,
            "connect_ms": self.connect_ms,
            "playback_ms": self.playback_ms,
            "branch": self.branch,
            "steps_played": self.steps_played,
            "device_count": self.device_count,
            "total_duration_ms": self.total_duration_ms,
            "error_count": len(self.errors),
            "errors": self.errors
        }
