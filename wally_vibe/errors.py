"""
Exception hierarchy for wally-vibe
"""


class WallyVibeError(Exception):
    """Base class for every error raised by wally-vibe"""


class PatternParseError(WallyVibeError):
    """Pattern text could not be parsed (recovered with the default pattern)"""


class SessionConnectError(WallyVibeError):
    """No control session could be obtained (playback is skipped)"""


class ChildSpawnError(WallyVibeError):
    """The wrapped command could not be started (fatal for the run)"""


class PlaybackError(WallyVibeError):
    """A device command failed mid-pattern (remaining steps are aborted)"""
